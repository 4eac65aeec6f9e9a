"""Kakao OAuth2 login with rotating, revocable session tokens."""

__version__ = "0.1.0"
