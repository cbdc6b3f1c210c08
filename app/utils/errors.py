from typing import Any, Dict, Optional


class AuthError(Exception):
    """
    Base error for the auth flows. Carries a stable machine-readable code and the
    HTTP status the API layer should answer with.
    """
    def __init__(self, message="Authentication error", code=None, status=400):
        self.message = message
        self.code = code
        self.status = status
        super().__init__(self.message)

    def extra(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.extra())
        return payload


class OtpError(AuthError):
    """Domain failures of code issuance and verification."""
    default_message = "Verification failed"
    error_code = "otp_error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message, code=self.error_code, status=self.status_code)


class CooldownActive(OtpError):
    error_code = "cooldown"
    status_code = 429

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        super().__init__(f"Please wait {remaining_seconds} seconds before requesting another code")

    def extra(self) -> Dict[str, Any]:
        return {"cooldown_seconds": self.remaining_seconds}


class AlreadyRegistered(OtpError):
    default_message = "Email already registered"
    error_code = "already_registered"
    status_code = 409


class AccountNotFound(OtpError):
    default_message = "No account found for this email"
    error_code = "account_not_found"
    status_code = 404


class DeliveryFailed(OtpError):
    default_message = "Failed to send verification code. Please try again."
    error_code = "delivery_failed"
    status_code = 503


class OtpNotFound(OtpError):
    # Same wording whether the code was never requested or has been cleared
    default_message = "No active code. Please request a new code."
    error_code = "otp_not_found"


class OtpExpired(OtpError):
    default_message = "Verification code expired. Please request a new code."
    error_code = "otp_expired"


class TooManyAttempts(OtpError):
    default_message = "Maximum verification attempts exceeded. Please request a new code."
    error_code = "too_many_attempts"
    status_code = 429


class IncorrectCode(OtpError):
    error_code = "incorrect_code"

    def __init__(self, remaining_attempts: int):
        self.remaining_attempts = remaining_attempts
        super().__init__(f"Incorrect code. {remaining_attempts} attempt(s) remaining.")

    def extra(self) -> Dict[str, Any]:
        return {"remaining_attempts": self.remaining_attempts}


class AlreadyVerified(OtpError):
    default_message = "Code has already been verified. Please request a new code."
    error_code = "already_verified"
    status_code = 409


class NotVerified(OtpError):
    default_message = "Email not verified. Please verify your email with the code first."
    error_code = "not_verified"
    status_code = 403


class StoreUnavailable(AuthError):
    """The OTP record store could not be reached or rejected the operation."""
    def __init__(self, message="Verification service temporarily unavailable"):
        super().__init__(message, code="store_unavailable", status=503)
