# accounts/emails.py
from django.conf import settings
from django.core.mail import send_mail

from . import conf

OTP_SUBJECT = "Your ZamboVet Verification Code"

OTP_TEXT = """Welcome to ZamboVet!

Your verification code is: {otp}

This code will expire in {minutes} minutes for security reasons.

If you didn't request this verification code, please ignore this email."""

OTP_HTML = """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #0032A0; text-align: center;">ZamboVet</h1>
  <div style="background: #f8f9ff; border-radius: 12px; padding: 30px; text-align: center;">
    <h2 style="color: #0032A0; margin-top: 0;">Verify Your Account</h2>
    <p style="color: #666;">Welcome to ZamboVet! Please use the verification code below to complete your account setup:</p>
    <div style="background: white; border: 2px solid #0032A0; border-radius: 8px; padding: 20px; display: inline-block;">
      <span style="font-size: 32px; font-weight: bold; color: #0032A0; letter-spacing: 8px;">{otp}</span>
    </div>
    <p style="color: #666; font-size: 14px;">This code will expire in {minutes} minutes for security reasons.</p>
  </div>
  <div style="text-align: center; color: #888; font-size: 12px;">
    <p>If you didn't request this verification code, please ignore this email.</p>
    <p>This is an automated message, please do not reply.</p>
  </div>
</div>"""


def send_otp_email(email, otp):
    minutes = conf.otp_expiry_minutes()
    send_mail(
        subject=OTP_SUBJECT,
        message=OTP_TEXT.format(otp=otp, minutes=minutes),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[email],
        html_message=OTP_HTML.format(otp=otp, minutes=minutes),
        fail_silently=False,
    )
