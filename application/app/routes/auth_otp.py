from fastapi import APIRouter, BackgroundTasks, Depends, Request

from app.dto.auth_otp import (
    LoginUser,
    LogoutResponse,
    ProfileUser,
    RequestOTPRequest,
    RequestOTPResponse,
    UpdateProfileRequest,
    UpdateProfileResponse,
    UserProfileResponse,
    ValidateOTPRequest,
    ValidateOTPResponse,
)
from app.logging.utils import get_app_logger
from app.middlewares.auth import get_current_claims
from app.models.user import User
from app.services.auth_service import AuthService
from app.services.rate_limiter import get_caller_key
from app.services.token_service import SessionClaims

logger = get_app_logger(__name__)

router = APIRouter(tags=["auth"])


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _user_fields(user: User) -> dict:
    return {
        "id": user.id,
        "phone": user.phone,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "user_type": user.user_type,
        "profile_photo": user.profile_photo,
        "rating": float(user.rating) if user.rating is not None else 5.0,
        "is_verified": bool(user.is_verified),
        "is_new_user": user.is_new_user,
    }


@router.post("/send-otp", response_model=RequestOTPResponse, response_model_exclude_none=True)
def send_otp(
    payload: RequestOTPRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Request an OTP for the given phone number.
    Steps:
    1. Rate limit per caller
    2. Normalize the phone number
    3. Generate and store the code
    4. Send the SMS after the response (failures are logged only)
    """
    caller_key = get_caller_key(request, request.app.state.configs.TRUSTED_PROXY_COUNT)
    result = auth_service.request_code(payload.phone, payload.country_code, caller_key)
    background_tasks.add_task(auth_service.dispatch_sms, result.dispatch)

    return RequestOTPResponse(
        success=True,
        message="OTP sent successfully",
        phone=result.phone,
        demo_mode=result.demo_mode,
        hint=result.hint,
    )


@router.post("/verify-otp", response_model=ValidateOTPResponse)
def verify_otp(payload: ValidateOTPRequest, auth_service: AuthService = Depends(get_auth_service)):
    """
    Verify the OTP, create the user on first login and return a session token.
    A wrong code keeps the stored code; a correct one consumes it.
    """
    result = auth_service.verify_code(payload.phone, payload.otp, payload.country_code, payload.user_type)
    return ValidateOTPResponse(
        success=True,
        message="Login successful",
        token=result.token,
        user=LoginUser(**_user_fields(result.user)),
    )


@router.get("/me", response_model=UserProfileResponse)
def get_me(
    claims: SessionClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
):
    user = auth_service.get_profile(claims)
    return UserProfileResponse(
        **_user_fields(user),
        total_rides=user.total_rides or 0,
        language=user.language or "en",
        created_at=user.created_at,
    )


@router.put("/profile", response_model=UpdateProfileResponse)
def update_profile(
    payload: UpdateProfileRequest,
    claims: SessionClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
):
    user = auth_service.update_profile(claims, payload.supplied_fields())
    return UpdateProfileResponse(
        success=True,
        message="Profile updated successfully",
        user=ProfileUser(
            id=user.id,
            phone=user.phone,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            profile_photo=user.profile_photo,
            language=user.language or "en",
        ),
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(
    claims: SessionClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
):
    auth_service.logout(claims)
    return LogoutResponse(success=True, message="Logged out successfully")
