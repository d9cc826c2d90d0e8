"""
Email OTP registration.

`issue_otp` validates a sign-up request, stores a one-time code together with
the pending account data and emails the code. `verify_otp` checks a submitted
code against the most recent live record and, when it matches, creates the
Django user with its profile records.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from django.contrib.auth.hashers import make_password
from django.contrib.auth.models import User
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F

from . import conf
from .emails import send_otp_email
from .exceptions import (
    AttemptsExhaustedError,
    ConflictError,
    DeliveryError,
    DownstreamCreationError,
    IncorrectCodeError,
    NotFoundOrExpiredError,
    RateLimitedError,
    StorageError,
    ValidationError,
)
from .models import OTPVerification, PetOwnerProfile, Profile
from .rate_limit import check_send_otp_rate_limit
from .serializers import RegistrantSerializer
from .utils import (
    generate_otp,
    get_otp_expiration_time,
    is_valid_email,
    is_valid_otp_format,
    normalize_email,
    sanitize_otp,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedOTP:
    email: str
    expires_at: datetime
    remaining_attempts: int


@dataclass(frozen=True)
class CreatedAccount:
    id: int
    email: str
    full_name: str
    user_role: str


def account_exists(email):
    return (
        Profile.objects.filter(email__iexact=email).exists()
        or User.objects.filter(email__iexact=email).exists()
    )


def _validate_email(email):
    email = normalize_email(email)
    if not email or not is_valid_email(email):
        raise ValidationError("Valid email is required")
    return email


def _validate_registrant(email, user_data):
    if not isinstance(user_data, dict):
        raise ValidationError("User data is required")

    serializer = RegistrantSerializer(data=user_data, context={"email": email})
    if not serializer.is_valid():
        field, errors = next(iter(serializer.errors.items()))
        message = errors[0] if isinstance(errors, list) and errors else errors
        if field == "non_field_errors":
            raise ValidationError(f"Invalid user data: {message}")
        raise ValidationError(f"Invalid user data ({field}): {message}")

    registration = dict(serializer.validated_data)
    registration["password"] = make_password(registration["password"])
    return registration


def issue_otp(email, user_data):
    email = _validate_email(email)
    registration = _validate_registrant(email, user_data)

    rate = check_send_otp_rate_limit(email)
    if not rate.allowed:
        logger.warning("OTP send rate limit reached for %s", email)
        raise RateLimitedError(rate.reset_time)

    if account_exists(email):
        raise ConflictError()

    otp_code = generate_otp()
    expires_at = get_otp_expiration_time()

    try:
        with transaction.atomic():
            OTPVerification.objects.for_email(email).delete()
            record = OTPVerification.objects.create(
                email=email,
                otp_code=otp_code,
                expires_at=expires_at,
                verification_data=registration,
                attempts=0,
                is_verified=False,
            )
    except DatabaseError:
        logger.exception("Failed to store OTP for %s", email)
        raise StorageError()

    try:
        send_otp_email(email, otp_code)
    except Exception:
        logger.exception("Failed to send OTP email to %s", email)
        # nobody received this code
        record.delete()
        raise DeliveryError()

    logger.info("OTP issued for %s, expires at %s", email, expires_at.isoformat())
    return IssuedOTP(email=email, expires_at=expires_at, remaining_attempts=rate.remaining_attempts)


def _register_failed_attempt(record):
    """Count a wrong code; returns attempts left, or None when the budget was already spent."""
    max_attempts = conf.otp_max_attempts()
    updated = OTPVerification.objects.filter(pk=record.pk, attempts__lt=max_attempts).update(
        attempts=F("attempts") + 1
    )
    if not updated:
        return None
    attempts = OTPVerification.objects.filter(pk=record.pk).values_list("attempts", flat=True).first()
    if attempts is None:
        return None
    return max(0, max_attempts - attempts)


def _unique_username(email):
    base_username = email.split("@")[0][:140]
    username = base_username
    counter = 1
    while User.objects.filter(username=username).exists():
        username = f"{base_username}_{counter}"
        counter += 1
    return username


def create_account(registration):
    """Create the user, its profile and, for pet owners, the pet owner profile."""
    email = registration["email"]
    role = registration.get("user_role") or Profile.Role.PET_OWNER
    full_name = registration["full_name"]
    phone = registration.get("phone", "")

    user = User(username=_unique_username(email), email=email, is_active=True)
    # already hashed when the OTP was issued
    user.password = registration["password"]
    user.save()

    is_veterinarian = role == Profile.Role.VETERINARIAN
    Profile.objects.create(
        user=user,
        email=email,
        full_name=full_name,
        phone=phone,
        user_role=role,
        is_active=not is_veterinarian,
        verification_status=(
            Profile.VerificationStatus.PENDING if is_veterinarian else Profile.VerificationStatus.APPROVED
        ),
    )

    if role == Profile.Role.PET_OWNER:
        PetOwnerProfile.objects.update_or_create(
            user=user,
            defaults={
                "full_name": full_name,
                "phone": phone,
                "address": registration.get("address", ""),
                "emergency_contact_name": registration.get("emergency_contact_name"),
                "emergency_contact_phone": registration.get("emergency_contact_phone"),
            },
        )

    return CreatedAccount(id=user.pk, email=user.email, full_name=full_name, user_role=role)


def verify_otp(email, otp_code):
    email = _validate_email(email)
    otp_code = sanitize_otp(otp_code)
    if not is_valid_otp_format(otp_code):
        raise ValidationError("Invalid OTP format. Please enter 6 digits.")

    record = OTPVerification.objects.live_for_email(email)
    if record is None:
        raise NotFoundOrExpiredError()

    if record.is_expired():
        record.delete()
        raise NotFoundOrExpiredError("OTP has expired. Please request a new one.")

    if record.is_exhausted():
        record.delete()
        raise AttemptsExhaustedError()

    if record.otp_code != otp_code:
        remaining = _register_failed_attempt(record)
        if remaining is None:
            record.delete()
            raise AttemptsExhaustedError()
        if remaining == 0:
            # budget spent, a fresh code must be requested
            record.delete()
        logger.info("Incorrect OTP for %s, %s attempts remaining", email, remaining)
        raise IncorrectCodeError(remaining)

    registration = dict(record.verification_data or {})
    registration["email"] = email

    if account_exists(email):
        record.delete()
        raise ConflictError()

    try:
        with transaction.atomic():
            # claim the record first so a concurrent request cannot create a second account
            claimed = OTPVerification.objects.filter(pk=record.pk, is_verified=False).update(is_verified=True)
            if not claimed:
                raise NotFoundOrExpiredError()
            account = create_account(registration)
    except IntegrityError:
        if account_exists(email):
            logger.warning("Account for %s was created concurrently", email)
            raise ConflictError()
        logger.exception("Account creation failed for %s", email)
        raise DownstreamCreationError()
    except (DatabaseError, KeyError, TypeError, ValueError):
        logger.exception("Account creation failed for %s", email)
        raise DownstreamCreationError()

    logger.info("Account %s created for %s (%s)", account.id, email, account.user_role)
    return account


def cleanup_stale_otps():
    deleted, _ = OTPVerification.objects.stale().delete()
    if deleted:
        logger.info("Deleted %s stale OTP records", deleted)
    return deleted
