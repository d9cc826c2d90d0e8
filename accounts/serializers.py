from django.contrib.auth.models import User
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import Profile
from .utils import normalize_email, sanitize_address, sanitize_name, sanitize_phone


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email']


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = ['id', 'email', 'full_name', 'phone', 'user_role', 'is_active', 'verification_status']


class RegistrantSerializer(serializers.Serializer):
    """
    The pending account carried by an OTP request (`userData`).

    Pass the outer request email as ``context["email"]``; an `email` inside
    userData is optional but must match it.
    """
    SELF_REGISTRABLE_ROLES = [Profile.Role.PET_OWNER, Profile.Role.VETERINARIAN]

    email = serializers.EmailField(required=False)
    fullName = serializers.CharField(source="full_name", max_length=150)
    password = serializers.CharField(min_length=8, max_length=128, trim_whitespace=False)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=30, default="")
    address = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")
    userRole = serializers.ChoiceField(
        source="user_role",
        choices=SELF_REGISTRABLE_ROLES,
        required=False,
        allow_blank=True,
        default=Profile.Role.PET_OWNER,
    )
    emergencyContactName = serializers.CharField(
        source="emergency_contact_name", required=False, allow_blank=True, allow_null=True, max_length=150
    )
    emergencyContactPhone = serializers.CharField(
        source="emergency_contact_phone", required=False, allow_blank=True, allow_null=True, max_length=30
    )

    def validate_email(self, value):
        value = normalize_email(value)
        expected = self.context.get("email")
        if expected and value != expected:
            raise serializers.ValidationError("Email does not match the address being verified.")
        return value

    def validate_fullName(self, value):
        value = sanitize_name(value)
        if not value:
            raise serializers.ValidationError("Full name is required.")
        return value

    def validate_phone(self, value):
        return sanitize_phone(value)

    def validate_address(self, value):
        return sanitize_address(value)

    def validate_userRole(self, value):
        return value or Profile.Role.PET_OWNER

    def validate_emergencyContactName(self, value):
        return sanitize_name(value) or None

    def validate_emergencyContactPhone(self, value):
        return sanitize_phone(value) or None

    def validate(self, attrs):
        attrs["email"] = self.context.get("email") or attrs.get("email")
        if not attrs["email"]:
            raise serializers.ValidationError({"email": "Email is required."})
        return attrs


class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Accepts an email or a username in the `username` field (or `email`)."""

    default_error_messages = {
        "no_active_account": "Invalid email or password.",
        "pending_verification": "Your veterinarian account is pending verification.",
        "inactive_profile": "This account has been deactivated.",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields[self.username_field].required = False
        self.fields["email"] = serializers.EmailField(required=False, write_only=True)

    def validate(self, attrs):
        identifier = (attrs.get(self.username_field) or attrs.pop("email", "") or "").strip()
        attrs.pop("email", None)
        if "@" in identifier:
            user = User.objects.filter(email__iexact=identifier).first()
            if user:
                identifier = user.get_username()
        attrs[self.username_field] = identifier

        data = super().validate(attrs)

        profile = getattr(self.user, "profile", None)
        if profile is not None:
            if profile.is_pending_veterinarian:
                raise AuthenticationFailed(self.error_messages["pending_verification"], "pending_verification")
            if not profile.is_active:
                raise AuthenticationFailed(self.error_messages["inactive_profile"], "inactive_profile")

        data["user"] = UserSerializer(self.user).data
        data["profile"] = ProfileSerializer(profile).data if profile else None
        return data
