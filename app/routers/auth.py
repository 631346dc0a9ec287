from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas, crud
from ..core.dependencies import get_auth_service, get_current_user, get_password_reset_service
from ..core.exceptions import NotFoundError
from ..database import get_db
from ..services.auth import AuthResult, AuthService
from ..services.password_reset import PasswordResetService

router = APIRouter()


def auth_response(message: str, result: AuthResult) -> schemas.AuthResponse:
    return schemas.AuthResponse(
        message=message,
        token=result.token,
        user=schemas.User.model_validate(result.user),
    )


@router.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register_user(
        data: schemas.Credentials,
        service: AuthService = Depends(get_auth_service),
):
    result = service.register(data.email, data.password)
    return auth_response("User created successfully", result)


@router.post("/login", response_model=schemas.AuthResponse)
def login(
        data: schemas.Credentials,
        service: AuthService = Depends(get_auth_service),
):
    result = service.login(data.email, data.password)
    return auth_response("Login successful", result)


@router.post("/google", response_model=schemas.AuthResponse)
async def login_via_google(
        data: schemas.GoogleLogin,
        service: AuthService = Depends(get_auth_service),
):
    result = await service.google_login(data.token)
    return auth_response("Google authentication successful", result)


@router.post("/forgot-password", response_model=schemas.Message)
def forgot_password(
        data: schemas.ForgotPassword,
        service: PasswordResetService = Depends(get_password_reset_service),
):
    service.forgot_password(data.email)
    return {"message": "OTP sent to your email"}


@router.post("/verify-otp", response_model=schemas.ResetTokenResponse)
def verify_otp(
        data: schemas.VerifyOTP,
        service: PasswordResetService = Depends(get_password_reset_service),
):
    reset_token = service.verify_otp(data.email, data.otp)
    return schemas.ResetTokenResponse(message="OTP verified successfully", reset_token=reset_token)


@router.post("/reset-password", response_model=schemas.Message)
def reset_password(
        data: schemas.ResetPassword,
        service: PasswordResetService = Depends(get_password_reset_service),
):
    service.reset_password(data.reset_token, data.new_password)
    return {"message": "Password reset successfully"}


@router.get("/me", response_model=schemas.UserProfile)
def read_users_me(
        current_user: schemas.CurrentUser = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    user = crud.get_user(db, current_user.id)
    if user is None:
        raise NotFoundError("User not found")
    return schemas.UserProfile(
        id=user.id,
        email=user.email,
        has_password=user.password_hash is not None,
        google_linked=user.google_id is not None,
    )
