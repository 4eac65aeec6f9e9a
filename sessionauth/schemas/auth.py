"""Pydantic schemas for authentication API."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LoginUrlResponse(BaseModel):
    """Provider authorize URL and the state bound to it."""

    login_url: str
    state: str


class KakaoLoginRequest(BaseModel):
    """Callback parameters forwarded by the client after provider login."""

    code: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    code_verifier: str = Field(
        ...,
        min_length=43,
        max_length=128,
        description="PKCE code verifier (RFC 7636: 43-128 characters)",
    )
    redirect_uri: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Refresh or logout request body. Ignored when refresh tokens travel in a cookie."""

    refresh_token: str | None = None


class LoginResponse(BaseModel):
    """Issued session tokens and the authenticated user."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")
    user_id: UUID
    email: str | None = None
    nickname: str | None = None
    refresh_token: str | None = Field(
        None,
        description="Present only when refresh tokens travel in the response body",
    )


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class ErrorResponse(BaseModel):
    """Uniform error envelope."""

    code: str
    message: str


class UserResponse(BaseModel):
    """Response with user information."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: str
    email: str | None
    name: str | None
