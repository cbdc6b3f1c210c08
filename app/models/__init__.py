from .user import User
from .otp import OTP, OtpPurpose
