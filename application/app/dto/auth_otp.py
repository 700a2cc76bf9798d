from datetime import datetime
from typing import Literal, Optional

from pydantic import AnyUrl, BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.dto.phone_validations import validate_country_code, validate_phone_number


class RequestOTPRequest(BaseModel):
    """Request model for requesting OTP"""
    model_config = ConfigDict(extra="forbid")

    phone: str = Field(..., description="Phone number, local or with country code (e.g. +211900000001)")
    country_code: Optional[str] = Field(None, description="Country code used when phone has no leading + (optional)")

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        """Validate phone number shape"""
        return validate_phone_number(v)

    @field_validator('country_code')
    @classmethod
    def validate_country(cls, v):
        if v is None:
            return v
        return validate_country_code(v)


class RequestOTPResponse(BaseModel):
    """Response model for OTP request"""
    success: bool
    message: str
    phone: str
    demo_mode: bool
    hint: Optional[str] = Field(None, description="Demo OTP hint, only when demo mode is on")


class ValidateOTPRequest(BaseModel):
    """Request model for validating OTP"""
    model_config = ConfigDict(extra="forbid")

    phone: str = Field(..., description="Phone number used when requesting the OTP")
    otp: str = Field(..., description="6-digit OTP code")
    country_code: Optional[str] = Field(None, description="Country code used when phone has no leading + (optional)")
    user_type: Literal["rider", "driver"] = Field("rider", description="Account type for first-time sign in")

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return validate_phone_number(v)

    @field_validator('otp')
    @classmethod
    def validate_otp(cls, v):
        v = v.strip()
        if len(v) != 6 or not v.isdigit():
            raise ValueError('OTP must be exactly 6 digits')
        return v

    @field_validator('country_code')
    @classmethod
    def validate_country(cls, v):
        if v is None:
            return v
        return validate_country_code(v)


class LoginUser(BaseModel):
    id: int
    phone: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    user_type: str
    profile_photo: Optional[str] = None
    rating: float
    is_verified: bool
    is_new_user: bool


class ValidateOTPResponse(BaseModel):
    """Response model for OTP validation"""
    success: bool
    message: str
    token: str
    user: LoginUser


class UserProfileResponse(BaseModel):
    id: int
    phone: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    user_type: str
    profile_photo: Optional[str] = None
    rating: float
    total_rides: int
    is_verified: bool
    language: str
    is_new_user: bool
    created_at: Optional[datetime] = None


class UpdateProfileRequest(BaseModel):
    """Only these fields may be changed by the user"""
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    profile_photo: Optional[AnyUrl] = None
    language: Optional[Literal["en", "ar"]] = None

    @field_validator('first_name', 'last_name', mode='before')
    @classmethod
    def strip_names(cls, v):
        return v.strip() if isinstance(v, str) else v

    def supplied_fields(self) -> dict:
        fields = self.model_dump(exclude_none=True)
        if "profile_photo" in fields:
            fields["profile_photo"] = str(fields["profile_photo"])
        return fields


class ProfileUser(BaseModel):
    id: int
    phone: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    profile_photo: Optional[str] = None
    language: str


class UpdateProfileResponse(BaseModel):
    success: bool
    message: str
    user: ProfileUser


class LogoutResponse(BaseModel):
    success: bool
    message: str
