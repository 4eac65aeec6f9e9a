"""Error taxonomy for login and session-token operations.

Every error carries a stable machine-readable ``error_code`` and the HTTP
status it maps to, so the API layer can render a uniform envelope.
"""


class AuthError(Exception):
    """Base authentication error."""

    error_code = "auth_error"
    status_code = 400
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- Login flow ---


class InvalidStateError(AuthError):
    """OAuth state is unknown, expired or already consumed."""

    error_code = "invalid_state"
    default_message = "Invalid or expired OAuth state"


class InvalidCodeVerifierError(AuthError):
    """PKCE verifier does not match the stored challenge."""

    error_code = "invalid_code_verifier"
    default_message = "PKCE verification failed"


class InvalidRedirectUriError(AuthError):
    """Redirect URI is not in the allow-list."""

    error_code = "invalid_redirect_uri"
    default_message = "Redirect URI is not allowed"


# --- Identity provider ---


class ProviderError(AuthError):
    """Base class for identity-provider failures."""

    error_code = "provider_error"


class TokenExchangeFailedError(ProviderError):
    """Provider rejected the authorization code or returned no access token."""

    error_code = "token_exchange_failed"
    default_message = "Failed to exchange authorization code"


class ProfileFetchFailedError(ProviderError):
    """Provider profile could not be fetched or failed validation."""

    error_code = "profile_fetch_failed"
    default_message = "Failed to fetch user profile"


class ProviderUnavailableError(ProviderError):
    """Provider timed out or kept failing after retries."""

    error_code = "provider_unavailable"
    status_code = 502
    default_message = "Identity provider is unavailable"


# --- Session tokens ---


class TokenError(AuthError):
    """Session token error."""

    error_code = "token_error"
    status_code = 401


class InvalidTokenError(TokenError):
    """Token is missing, malformed, tampered with or of the wrong kind."""

    error_code = "invalid_token"
    default_message = "Invalid token"


class TokenExpiredError(TokenError):
    """Token signature is valid but it has expired."""

    error_code = "expired_token"
    default_message = "Token has expired"


class BlacklistedTokenError(TokenError):
    """Refresh token was already rotated or revoked."""

    error_code = "blacklisted_token"
    default_message = "Token has already been used or revoked"


class UserNotFoundError(AuthError):
    """Token subject does not resolve to a user."""

    error_code = "user_not_found"
    status_code = 401
    default_message = "User not found"
