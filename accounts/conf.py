# accounts/conf.py
from datetime import timedelta

from django.conf import settings


def otp_expiry_minutes():
    return getattr(settings, "OTP_EXPIRY_MINUTES", 10)


def otp_max_attempts():
    return getattr(settings, "OTP_MAX_ATTEMPTS", 3)


def otp_send_limit():
    return getattr(settings, "OTP_SEND_LIMIT", 3)


def otp_send_window():
    return timedelta(seconds=getattr(settings, "OTP_SEND_WINDOW_SECONDS", 60 * 60))


def otp_rate_limiter_backend():
    return getattr(settings, "OTP_RATE_LIMITER_BACKEND", "memory")
