import json
from datetime import datetime, timedelta
from io import StringIO
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import Client, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from accounts.models import OTPVerification, Profile

from .helpers import TEST_OVERRIDES, USER_DATA, fresh_state, last_otp_sent

EMAIL = "new@example.com"


class JSONClientMixin:
    def post_json(self, url, payload):
        return self.c.post(url, data=json.dumps(payload), content_type="application/json")

    def send_otp(self, email=EMAIL, user_data=USER_DATA):
        return self.post_json("/api/auth/send-otp", {"email": email, "userData": user_data})

    def verify(self, code, email=EMAIL):
        return self.post_json("/api/auth/verify-otp", {"email": email, "otpCode": code})


@override_settings(**TEST_OVERRIDES)
class SendOTPViewTests(JSONClientMixin, TestCase):
    def setUp(self):
        self.c = Client()
        fresh_state()

    def test_success_shape(self):
        response = self.send_otp()
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["email"], EMAIL)
        self.assertEqual(body["remainingAttempts"], 2)
        self.assertEqual(body["message"], "OTP sent successfully")

        expires_at = datetime.fromisoformat(body["expiresAt"])
        delta = expires_at - timezone.now()
        self.assertGreater(delta, timedelta(minutes=9, seconds=50))
        self.assertLessEqual(delta, timedelta(minutes=10))

    def test_trailing_slash_route(self):
        response = self.post_json(reverse("send-otp"), {"email": EMAIL, "userData": USER_DATA})
        self.assertEqual(response.status_code, 200)
        response = self.post_json("/api/auth/send-otp/", {"email": EMAIL, "userData": USER_DATA})
        self.assertEqual(response.status_code, 200)

    def test_invalid_email(self):
        response = self.send_otp(email="bad")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"success": False, "error": "Valid email is required"})

    def test_missing_user_data(self):
        response = self.post_json("/api/auth/send-otp", {"email": EMAIL})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "User data is required")

    def test_rate_limited(self):
        for expected in [2, 1, 0]:
            self.assertEqual(self.send_otp().json()["remainingAttempts"], expected)

        response = self.send_otp()
        self.assertEqual(response.status_code, 429)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertGreater(datetime.fromisoformat(body["resetTime"]), timezone.now())

    def test_existing_account(self):
        user = User.objects.create_user(username="owner", email=EMAIL, password="pw123456")
        Profile.objects.create(user=user, email=EMAIL, full_name="Owner")
        response = self.send_otp()
        self.assertEqual(response.status_code, 400)
        self.assertIn("already exists", response.json()["error"])

    def test_email_failure_returns_500(self):
        with patch("accounts.services.send_otp_email", side_effect=OSError("smtp down")):
            response = self.send_otp()
        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.json()["success"])
        self.assertFalse(OTPVerification.objects.exists())

    def test_unexpected_error_is_not_leaked(self):
        with patch("accounts.views.issue_otp", side_effect=RuntimeError("secret internals")):
            response = self.send_otp()
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"success": False, "error": "Internal server error"})

    def test_malformed_json(self):
        response = self.c.post("/api/auth/send-otp", data="{not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])

    def test_non_object_body(self):
        response = self.c.post("/api/auth/send-otp", data="[1, 2]", content_type="application/json")
        self.assertEqual(response.status_code, 400)


@override_settings(**TEST_OVERRIDES)
class VerifyOTPViewTests(JSONClientMixin, TestCase):
    def setUp(self):
        self.c = Client()
        fresh_state()

    def test_end_to_end_registration(self):
        sent = self.send_otp()
        self.assertEqual(sent.status_code, 200)
        self.assertEqual(sent.json()["remainingAttempts"], 2)

        response = self.verify(last_otp_sent())
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["user"]["email"], EMAIL)
        self.assertEqual(body["user"]["user_role"], "pet_owner")
        self.assertEqual(body["user"]["full_name"], "A")
        self.assertTrue(User.objects.filter(pk=body["user"]["id"], email=EMAIL).exists())

    def test_replay_after_success(self):
        self.send_otp()
        code = last_otp_sent()
        self.assertEqual(self.verify(code).status_code, 200)

        response = self.verify(code)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(User.objects.filter(email=EMAIL).count(), 1)

    def test_wrong_code_sequence(self):
        self.send_otp()
        code = last_otp_sent()
        wrong = "000000" if code != "000000" else "111111"

        for expected in [2, 1, 0]:
            response = self.verify(wrong)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["remainingAttempts"], expected)

        self.assertFalse(OTPVerification.objects.filter(email=EMAIL).exists())
        response = self.verify(code)
        self.assertEqual(response.status_code, 400)
        self.assertIn("request a new one", response.json()["error"])

    def test_bad_format(self):
        response = self.verify("12ab")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid OTP format. Please enter 6 digits.")

    def test_numeric_code_is_accepted(self):
        # a JSON number cannot carry a leading zero
        with patch("accounts.utils.secrets.randbelow", return_value=482913):
            self.send_otp()
        self.assertEqual(last_otp_sent(), "482913")
        response = self.verify(482913)
        self.assertEqual(response.status_code, 200)

    def test_expired(self):
        self.send_otp()
        OTPVerification.objects.update(expires_at=timezone.now() - timedelta(minutes=1))
        response = self.verify(last_otp_sent())
        self.assertEqual(response.status_code, 400)
        self.assertIn("expired", response.json()["error"])
        self.assertFalse(OTPVerification.objects.exists())

    def test_account_creation_failure_is_500(self):
        self.send_otp()
        with patch("accounts.services.create_account", side_effect=ValueError("bad data")):
            response = self.verify(last_otp_sent())
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "Failed to create account. Please try again.")


@override_settings(**TEST_OVERRIDES)
class SessionViewTests(TestCase):
    def setUp(self):
        self.c = Client()
        self.user = User.objects.create_user(username="owner", email="owner@example.com", password="pw123456")
        Profile.objects.create(user=self.user, email="owner@example.com", full_name="Owner")

    def login(self, **payload):
        return self.c.post(reverse("token_obtain_pair"), data=json.dumps(payload), content_type="application/json")

    def test_login_with_email(self):
        response = self.login(email="owner@example.com", password="pw123456")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertIn("access", body)
        self.assertIn("refresh", body)
        self.assertEqual(body["profile"]["user_role"], "pet_owner")

    def test_login_with_username(self):
        response = self.login(username="owner", password="pw123456")
        self.assertEqual(response.status_code, 200)

    def test_wrong_password(self):
        response = self.login(email="owner@example.com", password="nope-nope")
        self.assertEqual(response.status_code, 401)

    def test_pending_veterinarian_is_refused(self):
        vet = User.objects.create_user(username="vet", email="vet@example.com", password="pw123456")
        Profile.objects.create(
            user=vet,
            email="vet@example.com",
            full_name="Vet",
            user_role=Profile.Role.VETERINARIAN,
            is_active=False,
            verification_status=Profile.VerificationStatus.PENDING,
        )
        response = self.login(email="vet@example.com", password="pw123456")
        self.assertEqual(response.status_code, 401)
        self.assertIn("pending verification", response.json()["detail"])

    def test_me(self):
        access = self.login(email="owner@example.com", password="pw123456").json()["access"]
        response = self.c.get(reverse("me"), HTTP_AUTHORIZATION=f"Bearer {access}")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["email"], "owner@example.com")
        self.assertEqual(body["name"], "Owner")
        self.assertEqual(body["role"], "pet_owner")

    def test_me_requires_auth(self):
        self.assertEqual(self.c.get(reverse("me")).status_code, 401)

    def test_refresh(self):
        refresh = self.login(email="owner@example.com", password="pw123456").json()["refresh"]
        response = self.c.post(
            reverse("token_refresh"), data=json.dumps({"refresh": refresh}), content_type="application/json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())


@override_settings(**TEST_OVERRIDES)
class CleanupCommandTests(TestCase):
    def test_command_reports_deleted_rows(self):
        OTPVerification.objects.create(
            email="a@example.com", otp_code="111111", expires_at=timezone.now() - timedelta(minutes=1)
        )
        out = StringIO()
        call_command("cleanup_otps", stdout=out)
        self.assertIn("Deleted 1 stale OTP record(s).", out.getvalue())
        self.assertFalse(OTPVerification.objects.exists())
