from pydantic import BaseModel, EmailStr, Field


class RegisterOtpRequest(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1)


class PasswordForgotRequest(BaseModel):
    email: EmailStr


class OtpVerify(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=1)


class PasswordReset(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=1)
    new_password: str


class OtpSentResponse(BaseModel):
    success: bool = True
    message: str = "OTP sent to email"
    cooldown_seconds: int


class OtpVerifiedResponse(BaseModel):
    success: bool = True
    verified: bool = True
    message: str = "OTP verified successfully"


class MessageResponse(BaseModel):
    message: str
