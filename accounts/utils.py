# accounts/utils.py
import re
import secrets
from datetime import timedelta

from django.utils import timezone

from . import conf

OTP_LENGTH = 6

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
OTP_RE = re.compile(r"^[0-9]{6}$")
TAG_RE = re.compile(r"<[^>]*>")


def generate_otp(length=OTP_LENGTH):
    # returns string e.g. "048392", uniform over [0, 10**length)
    return str(secrets.randbelow(10**length)).zfill(length)


def is_valid_otp_format(otp):
    return isinstance(otp, str) and bool(OTP_RE.fullmatch(otp))


def sanitize_otp(otp):
    """Keep only the digits of user input, e.g. " 1 2-3456x" -> "123456"."""
    if otp is None:
        return ""
    return re.sub(r"[^0-9]", "", str(otp))[:OTP_LENGTH]


def get_otp_expiration_time():
    return timezone.now() + timedelta(minutes=conf.otp_expiry_minutes())


def is_otp_expired(expires_at):
    return timezone.now() > expires_at


def is_valid_email(email):
    return isinstance(email, str) and bool(EMAIL_RE.fullmatch(email))


def normalize_email(email):
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def send_otp_rate_limit_key(email):
    return f"send_otp_{email}"


def _strip_markup(value):
    value = TAG_RE.sub("", value)
    return re.sub(r"javascript:|on\w+\s*=", "", value, flags=re.IGNORECASE)


def sanitize_name(name):
    if not name or not isinstance(name, str):
        return ""
    name = re.sub(r"[^\w\s\-'.]", "", _strip_markup(name))
    return re.sub(r"\s+", " ", name).strip()


def sanitize_phone(phone):
    if not phone or not isinstance(phone, str):
        return ""
    return re.sub(r"[^0-9+]", "", phone)


def sanitize_address(address):
    if not address or not isinstance(address, str):
        return ""
    address = re.sub(r"[^\w\s.,\-/#()]", "", _strip_markup(address))
    return re.sub(r"\s+", " ", address).strip()
