# Session Auth Pydantic Schemas
from sessionauth.schemas.auth import (
    ErrorResponse,
    KakaoLoginRequest,
    LoginResponse,
    LoginUrlResponse,
    MessageResponse,
    RefreshRequest,
    UserResponse,
)

__all__ = [
    "ErrorResponse",
    "KakaoLoginRequest",
    "LoginResponse",
    "LoginUrlResponse",
    "MessageResponse",
    "RefreshRequest",
    "UserResponse",
]
