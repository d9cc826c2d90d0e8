from django.urls import path, re_path

from .views import EmailOrUsernameTokenObtainPairView, MeView, SendOTPView, VerifyOTPView

urlpatterns = [
    # the frontend posts without a trailing slash
    re_path(r'^send-otp/?$', SendOTPView.as_view(), name='send-otp'),
    re_path(r'^verify-otp/?$', VerifyOTPView.as_view(), name='verify-otp'),
    path('token/', EmailOrUsernameTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('me/', MeView.as_view(), name='me'),
]
