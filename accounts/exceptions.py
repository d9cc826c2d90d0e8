# accounts/exceptions.py
class OTPWorkflowError(Exception):
    """Base for every failure the OTP endpoints report to the client."""

    status_code = 400
    default_message = "Request could not be processed."

    def __init__(self, message=None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def as_payload(self):
        return {"success": False, "error": self.message, **self.extra}


class ValidationError(OTPWorkflowError):
    default_message = "Invalid request."


class RateLimitedError(OTPWorkflowError):
    status_code = 429
    default_message = "Too many OTP requests. Please try again later."

    def __init__(self, reset_time, message=None):
        self.reset_time = reset_time
        super().__init__(message, resetTime=reset_time.isoformat())


class ConflictError(OTPWorkflowError):
    default_message = "An account with this email already exists"


class NotFoundOrExpiredError(OTPWorkflowError):
    default_message = "Invalid or expired OTP. Please request a new one."


class AttemptsExhaustedError(OTPWorkflowError):
    default_message = "Too many verification attempts. Please request a new OTP."


class IncorrectCodeError(OTPWorkflowError):
    def __init__(self, remaining_attempts):
        self.remaining_attempts = remaining_attempts
        super().__init__(
            f"Incorrect OTP code. {remaining_attempts} attempts remaining.",
            remainingAttempts=remaining_attempts,
        )


class StorageError(OTPWorkflowError):
    status_code = 500
    default_message = "Failed to generate OTP. Please try again."


class DeliveryError(OTPWorkflowError):
    status_code = 500
    default_message = (
        "Failed to send verification email. Please check your email address and try again."
    )


class DownstreamCreationError(OTPWorkflowError):
    status_code = 500
    default_message = "Failed to create account. Please try again."
