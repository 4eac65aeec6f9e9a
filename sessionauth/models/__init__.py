# Session Auth Models
from sessionauth.models.base import BaseModel
from sessionauth.models.token_blacklist import BlacklistedRefreshToken
from sessionauth.models.user import User

__all__ = [
    "BaseModel",
    "BlacklistedRefreshToken",
    "User",
]
