from django.contrib import admin

from .models import OTPVerification, PetOwnerProfile, Profile


@admin.register(OTPVerification)
class OTPVerificationAdmin(admin.ModelAdmin):
    list_display = ("email", "created_at", "expires_at", "is_verified", "attempts")
    list_filter = ("is_verified",)
    search_fields = ("email",)
    exclude = ("otp_code", "verification_data")
    readonly_fields = ("email", "created_at", "expires_at", "attempts", "is_verified")


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("email", "full_name", "user_role", "is_active", "verification_status")
    list_filter = ("user_role", "is_active", "verification_status")
    search_fields = ("email", "full_name", "user__username")
    actions = ["approve_veterinarians"]

    def approve_veterinarians(self, request, queryset):
        updated = queryset.filter(user_role=Profile.Role.VETERINARIAN).update(
            is_active=True,
            verification_status=Profile.VerificationStatus.APPROVED,
        )
        self.message_user(request, f"Approved {updated} veterinarian(s).")

    approve_veterinarians.short_description = "Approve selected veterinarians"


@admin.register(PetOwnerProfile)
class PetOwnerProfileAdmin(admin.ModelAdmin):
    list_display = ("full_name", "phone", "user")
    search_fields = ("full_name", "user__email", "user__username")
