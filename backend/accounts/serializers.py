from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ["id", "email", "first_name", "last_name", "full_name", "phone"]
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    """Validate and create a customer account from a single full-name field."""

    name = serializers.CharField(max_length=300)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)

    def validate_email(self, value: str) -> str:
        email = value.lower()
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError("Email already registered.")
        return email

    def validate_name(self, value: str) -> str:
        name = " ".join(value.split())
        if not name:
            raise serializers.ValidationError("Name is required.")
        return name

    def create(self, validated_data):
        first_name, _, last_name = validated_data["name"].partition(" ")
        email = validated_data["email"]
        return User.objects.create_user(
            username=email,
            email=email,
            password=validated_data["password"],
            first_name=first_name,
            last_name=last_name,
            phone=validated_data.get("phone", ""),
        )


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Accept ``email`` + ``password`` and return the JWT pair with the user payload."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["email"] = serializers.EmailField()
        self.fields[self.username_field].required = False

    def validate(self, attrs):
        attrs[self.username_field] = attrs.pop("email").lower()
        data = super().validate(attrs)
        data["user"] = UserSerializer(self.user).data
        return data
