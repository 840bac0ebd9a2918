"""
API request and response models for the Folio REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire format is camelCase (the browser client was written against it); the
Python attribute names stay snake_case. FastAPI serializes response_model
output by alias, and populate_by_name lets tests and the Python client build
requests with either spelling.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Account, AccountStatus, Role, Session


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


def _check_email_shape(value: str) -> str:
    """Minimal structural check. Deliverability is the mail server's problem."""
    local, sep, domain = value.partition("@")
    if not sep or not local or "." not in domain or " " in value:
        raise ValueError("Invalid email address")
    return value.lower()


# ---------------------------------------------------------------------------
# Request models -- public endpoints
# ---------------------------------------------------------------------------


class LoginRequest(_CamelModel):
    """Request body for POST /api/login.

    Email shape is not validated here: a malformed email must fail exactly like
    an unknown one (InvalidCredentials), not with a distinguishable 422.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RegisterRequest(_CamelModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def email_shape(cls, value: str) -> str:
        return _check_email_shape(value)


class ForgotPasswordRequest(_CamelModel):
    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(_CamelModel):
    token: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Request models -- authenticated endpoints
# ---------------------------------------------------------------------------


class ProfileUpdate(_CamelModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255)
    preferences: Optional[dict] = None

    @field_validator("email")
    @classmethod
    def email_shape(cls, value: str) -> str:
        return _check_email_shape(value)


class PasswordChange(_CamelModel):
    """Request body for POST /api/profile/change-password ({currentPassword, newPassword})."""

    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=1, max_length=255)


class AccountDeleteRequest(_CamelModel):
    password: str = Field(min_length=1, max_length=255)


class AdminAccountCreate(_CamelModel):
    """Request body for POST /api/admin/users."""

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(min_length=1, max_length=255)
    role: Role = Role.student
    department: Optional[str] = Field(default=None, max_length=255)
    status: AccountStatus = AccountStatus.active

    @field_validator("email")
    @classmethod
    def email_shape(cls, value: str) -> str:
        return _check_email_shape(value)


class AdminAccountUpdate(_CamelModel):
    """Request body for PUT /api/admin/users/{id}. Omitted fields are unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    role: Optional[Role] = None
    department: Optional[str] = Field(default=None, max_length=255)
    status: Optional[AccountStatus] = None

    @field_validator("email")
    @classmethod
    def email_shape(cls, value: Optional[str]) -> Optional[str]:
        return _check_email_shape(value) if value is not None else None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(_CamelModel):
    """Public view of an Account. The password hash never leaves the server."""

    id: int
    name: str
    email: str
    role: Role
    department: Optional[str] = None
    status: AccountStatus
    preferences: dict = Field(default_factory=dict)
    profile_picture: Optional[str] = None
    created_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            role=account.role,
            department=account.department,
            status=account.status,
            preferences=account.preferences,
            profile_picture=account.profile_picture,
            created_at=account.created_at,
            last_login=account.last_login,
        )


class LoginResponse(_CamelModel):
    success: bool = True
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountResponse


class RegisterResponse(_CamelModel):
    success: bool = True
    user: AccountResponse
    password_strength: int


class SuccessResponse(_CamelModel):
    success: bool = True
    message: Optional[str] = None


class FailureResponse(_CamelModel):
    success: bool = False
    message: str


class ProfileUpdateResponse(_CamelModel):
    success: bool = True
    message: str = "Profile updated successfully"
    user: AccountResponse


class RevokeAllResponse(_CamelModel):
    success: bool = True
    revoked: int


class DeviceInfoResponse(_CamelModel):
    browser: str
    os: str
    device: str
    ip_address: str


class SessionResponse(_CamelModel):
    session_id: str
    device_info: DeviceInfoResponse
    created_at: str
    last_activity: str
    is_current: bool

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        info = session.device_info
        return cls(
            session_id=session.session_id,
            device_info=DeviceInfoResponse(
                browser=info.browser, os=info.os, device=info.device, ip_address=info.ip_address
            ),
            created_at=session.created_at,
            last_activity=session.last_activity_at,
            is_current=session.is_current,
        )


class SessionListResponse(_CamelModel):
    sessions: list[SessionResponse]


class AccountListResponse(_CamelModel):
    users: list[AccountResponse]
    total: int
    page: int
    limit: int


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
