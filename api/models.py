"""
API request and response models for ProfileHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in accounts/models.py,
which own the internal domain representation. Route handlers map between the
two.

Request models only check shape (types, lengths). Range and format rules live
in accounts/validation.py so that multipart and JSON routes report them the
same way (400 validation_error).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from accounts.models import Account

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255)
    password: str = Field(max_length=256)


class CompleteProfileRequest(BaseModel):
    """Request body for POST /api/v1/auth/complete-profile.

    password is optional and only honoured for accounts created through a
    federated login.
    """

    age: Optional[int] = None
    gender: Optional[str] = Field(default=None, max_length=30)
    password: Optional[str] = Field(default=None, max_length=256)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/users/change-password."""

    current_password: Optional[str] = Field(default=None, max_length=256)
    new_password: str = Field(max_length=256)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. The password hash is never exposed."""

    id: str
    email: str
    name: str
    age: Optional[int]
    gender: Optional[str]
    picture_url: Optional[str]
    provenance: str
    has_password: bool
    profile_complete: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            age=account.age,
            gender=account.gender,
            picture_url=account.picture_url,
            provenance=account.provenance.value,
            has_password=account.has_password,
            profile_complete=account.profile_complete,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class TokenResponse(BaseModel):
    """Returned by signup and login: the access token plus the account."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountResponse


class MessageResponse(BaseModel):
    message: str


class AccountMessageResponse(BaseModel):
    message: str
    user: AccountResponse


class OAuthProviderInfo(BaseModel):
    """A configured OAuth provider for rendering login buttons."""

    name: str
    label: str


class ComponentHealth(BaseModel):
    status: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response body for GET /api/v1/health."""

    status: str = "ok"
    version: str
    components: dict[str, ComponentHealth] = {}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class SummaryResponse(BaseModel):
    total: int
    last_24h: int
    last_7d: int
    last_30d: int
    profile_complete: int
    by_provenance: dict[str, int]


class DemographicsResponse(BaseModel):
    gender: dict[str, int]
    age: dict[str, int]


class DailyCount(BaseModel):
    date: str
    count: int


class RegistrationTrendResponse(BaseModel):
    days: int
    series: list[DailyCount]


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Inner error object carried in every non-2xx response body."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error envelope for all non-2xx responses.

    Every error response from this API uses this shape so clients can parse
    errors uniformly without inspecting status codes to choose a schema.
    """

    error: ErrorDetail
