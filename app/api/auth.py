from fastapi import APIRouter, Depends, Query, status
from typing import Any

from app.models.otp import OtpPurpose
from app.models.user import ROLE_OWNER
from app.schemas.otp import (
    MessageResponse,
    OtpSentResponse,
    OtpVerifiedResponse,
    OtpVerify,
    PasswordForgotRequest,
    PasswordReset,
    RegisterOtpRequest,
)
from app.schemas.user import EmailCheckResponse, LoginResponse, OwnerRegister, RegistrationResponse, UserLogin
from app.services.auth import (
    UserDirectory,
    authenticate_user,
    complete_password_reset,
    complete_registration,
    get_otp_manager,
    get_user_directory,
)
from app.services.otp import OtpManager

router = APIRouter(prefix="/auth", tags=["auth"])


def _sent(manager: OtpManager) -> OtpSentResponse:
    return OtpSentResponse(cooldown_seconds=int(manager.policy.cooldown.total_seconds()))


@router.get("/check-email", response_model=EmailCheckResponse)
async def check_email(
    email: str = Query(..., min_length=1),
    users: UserDirectory = Depends(get_user_directory),
) -> Any:
    return {"exists": users.exists(email, ROLE_OWNER)}


@router.post("/register/request-otp", response_model=OtpSentResponse)
async def request_register_otp(
    payload: RegisterOtpRequest,
    manager: OtpManager = Depends(get_otp_manager),
) -> Any:
    await manager.request_code(payload.email, OtpPurpose.REGISTER, {"name": payload.name.strip()})
    return _sent(manager)


@router.post("/register/verify-otp", response_model=OtpVerifiedResponse)
async def verify_register_otp(
    payload: OtpVerify,
    manager: OtpManager = Depends(get_otp_manager),
) -> Any:
    await manager.verify_code(payload.email, OtpPurpose.REGISTER, payload.otp)
    return OtpVerifiedResponse(message="Email verified successfully")


@router.post("/register", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: OwnerRegister,
    manager: OtpManager = Depends(get_otp_manager),
    users: UserDirectory = Depends(get_user_directory),
) -> Any:
    user, token = await complete_registration(manager, users, payload)
    return {"access_token": token, "user": {"id": user.id, "email": user.email}}


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: UserLogin,
    users: UserDirectory = Depends(get_user_directory),
) -> Any:
    user, token = await authenticate_user(users, payload.email, payload.password)
    return {"access_token": token, "user": {"id": user.id, "email": user.email}}


@router.post("/password/forgot", response_model=OtpSentResponse)
async def forgot_password(
    payload: PasswordForgotRequest,
    manager: OtpManager = Depends(get_otp_manager),
) -> Any:
    await manager.request_code(payload.email, OtpPurpose.RESET_PASSWORD)
    return _sent(manager)


@router.post("/password/verify-otp", response_model=OtpVerifiedResponse)
async def verify_reset_otp(
    payload: OtpVerify,
    manager: OtpManager = Depends(get_otp_manager),
) -> Any:
    await manager.verify_code(payload.email, OtpPurpose.RESET_PASSWORD, payload.otp)
    return OtpVerifiedResponse()


@router.post("/password/reset", response_model=MessageResponse)
async def reset_password(
    payload: PasswordReset,
    manager: OtpManager = Depends(get_otp_manager),
    users: UserDirectory = Depends(get_user_directory),
) -> Any:
    await complete_password_reset(manager, users, payload.email, payload.otp, payload.new_password)
    return {"message": "Password reset successfully"}
