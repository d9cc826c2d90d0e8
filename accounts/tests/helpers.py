import re

from django.core import mail

from accounts.rate_limit import reset_otp_rate_limiter

TEST_OVERRIDES = dict(
    EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
    DEFAULT_FROM_EMAIL="ZamboVet <test@zambovet.local>",
    OTP_EXPIRY_MINUTES=10,
    OTP_MAX_ATTEMPTS=3,
    OTP_SEND_LIMIT=3,
    OTP_SEND_WINDOW_SECONDS=3600,
    OTP_RATE_LIMITER_BACKEND="memory",
)

USER_DATA = {
    "fullName": "A",
    "password": "pw123456",
    "phone": "555",
    "address": "x",
}


def extract_otp_from_mail(body: str) -> str:
    m = re.search(r"\b(\d{6})\b", body)
    if not m:
        raise AssertionError("OTP not found in email body")
    return m.group(1)


def last_otp_sent():
    return extract_otp_from_mail(mail.outbox[-1].body)


def fresh_state():
    mail.outbox.clear()
    reset_otp_rate_limiter()
