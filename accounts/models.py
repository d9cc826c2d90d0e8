# accounts/models.py
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from . import conf
from .utils import is_otp_expired


class OTPVerificationQuerySet(models.QuerySet):
    def for_email(self, email):
        return self.filter(email=email)

    def live_for_email(self, email):
        """Most recently created unverified record for the email, or None."""
        return self.filter(email=email, is_verified=False).order_by("-created_at", "-id").first()

    def stale(self):
        return self.filter(Q(expires_at__lt=timezone.now()) | Q(is_verified=True))


class OTPVerification(models.Model):
    email = models.EmailField(db_index=True)
    otp_code = models.CharField(max_length=6)
    expires_at = models.DateTimeField()
    # pending registrant fields; the password is stored hashed
    verification_data = models.JSONField(default=dict)
    attempts = models.PositiveSmallIntegerField(default=0)
    is_verified = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = OTPVerificationQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["email", "is_verified"], name="accounts_otp_email_verif_idx")]

    def __str__(self):
        return f"{self.email} - {'verified' if self.is_verified else 'pending'}"

    def is_expired(self):
        return is_otp_expired(self.expires_at)

    def is_exhausted(self):
        return self.attempts >= conf.otp_max_attempts()


class Profile(models.Model):
    class Role(models.TextChoices):
        PET_OWNER = "pet_owner", "Pet owner"
        VETERINARIAN = "veterinarian", "Veterinarian"
        ADMIN = "admin", "Admin"

    class VerificationStatus(models.TextChoices):
        APPROVED = "approved", "Approved"
        PENDING = "pending", "Pending"

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="profile")
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=150)
    phone = models.CharField(max_length=30, blank=True)
    user_role = models.CharField(max_length=20, choices=Role.choices, default=Role.PET_OWNER)
    is_active = models.BooleanField(default=True)
    verification_status = models.CharField(
        max_length=20,
        choices=VerificationStatus.choices,
        default=VerificationStatus.APPROVED,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.email} ({self.user_role})"

    @property
    def is_pending_veterinarian(self):
        return self.user_role == self.Role.VETERINARIAN and (
            not self.is_active or self.verification_status == self.VerificationStatus.PENDING
        )


class PetOwnerProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="pet_owner_profile",
    )
    full_name = models.CharField(max_length=150)
    phone = models.CharField(max_length=30, blank=True)
    address = models.CharField(max_length=255, blank=True)
    emergency_contact_name = models.CharField(max_length=150, blank=True, null=True)
    emergency_contact_phone = models.CharField(max_length=30, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.full_name
