import logging

from rest_framework.exceptions import ParseError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from .exceptions import OTPWorkflowError, ValidationError
from .serializers import (
    EmailOrUsernameTokenObtainPairSerializer,
    ProfileSerializer,
    UserSerializer,
)
from .services import issue_otp, verify_otp

logger = logging.getLogger(__name__)


class MeView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        user = request.user
        profile = getattr(user, "profile", None)
        return Response(
            {
                "user": UserSerializer(user).data,
                "profile": ProfileSerializer(profile).data if profile else None,
                "email": getattr(user, "email", None),
                "name": profile.full_name if profile else (user.get_full_name() or user.get_username()),
                "role": profile.user_role if profile else None,
            },
            status=200,
        )


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    """JWT login view that accepts either username or email.

    The frontend should POST {"email": "<email>", "password": "..."} (or the
    email/username in "username") to /api/auth/token/. Pending veterinarians
    and deactivated profiles are refused.
    """

    serializer_class = EmailOrUsernameTokenObtainPairSerializer


class OTPAPIView(APIView):
    permission_classes = (AllowAny,)
    authentication_classes = ()

    def get_payload(self, request):
        try:
            data = request.data
        except ParseError:
            raise ValidationError("Request body must be valid JSON")
        if not hasattr(data, "get"):
            raise ValidationError("Request body must be a JSON object")
        return data

    def error_response(self, exc):
        return Response(exc.as_payload(), status=exc.status_code)

    def internal_error_response(self):
        return Response({"success": False, "error": "Internal server error"}, status=500)


class SendOTPView(OTPAPIView):
    """
    Validates the sign-up data, stores it with a fresh OTP and emails the code.
    """

    def post(self, request):
        try:
            data = self.get_payload(request)
            issued = issue_otp(data.get("email"), data.get("userData"))
        except OTPWorkflowError as exc:
            return self.error_response(exc)
        except Exception:
            logger.exception("Send OTP API error")
            return self.internal_error_response()

        return Response({
            "success": True,
            "message": "OTP sent successfully",
            "email": issued.email,
            "expiresAt": issued.expires_at.isoformat(),
            "remainingAttempts": issued.remaining_attempts,
        }, status=200)


class VerifyOTPView(OTPAPIView):
    """
    Verify the registration OTP. Creates the account on success.
    """

    def post(self, request):
        try:
            data = self.get_payload(request)
            account = verify_otp(data.get("email"), data.get("otpCode"))
        except OTPWorkflowError as exc:
            return self.error_response(exc)
        except Exception:
            logger.exception("Verify OTP API error")
            return self.internal_error_response()

        return Response({
            "success": True,
            "message": "Account created successfully!",
            "user": {
                "id": account.id,
                "email": account.email,
                "full_name": account.full_name,
                "user_role": account.user_role,
            },
        }, status=200)
