"""Refresh-token transport: HTTP-only cookie or response body."""

from starlette.requests import Request
from starlette.responses import Response

from sessionauth.core import settings
from sessionauth.core.config import Settings
from sessionauth.core.logging import get_logger

logger = get_logger("cookies")

REFRESH_TOKEN_COOKIE_NAME = "refreshToken"


class TokenTransport:
    """Carries out the core's "set cookie" / "clear cookie" decisions.

    In body mode both operations are no-ops and the refresh token travels
    in the JSON payload instead.
    """

    def __init__(self, config: Settings | None = None):
        self.config = config or settings

    @property
    def uses_cookie(self) -> bool:
        return self.config.use_refresh_cookie

    def set_refresh_token(self, response: Response, value: str, max_age: int) -> None:
        """Attach the refresh token cookie, expiring after ``max_age`` seconds."""
        if not self.uses_cookie:
            logger.debug("Skipping refresh cookie (body transport)")
            return
        response.set_cookie(
            key=REFRESH_TOKEN_COOKIE_NAME,
            value=value,
            max_age=max(0, max_age),
            path=self.config.cookie_path,
            domain=self.config.effective_cookie_domain,
            secure=self.config.cookie_secure,
            httponly=self.config.cookie_http_only,
            samesite=self.config.cookie_same_site,
        )

    def clear_refresh_token(self, response: Response) -> None:
        """Expire the refresh token cookie on the client."""
        if not self.uses_cookie:
            return
        response.delete_cookie(
            key=REFRESH_TOKEN_COOKIE_NAME,
            path=self.config.cookie_path,
            domain=self.config.effective_cookie_domain,
            secure=self.config.cookie_secure,
            httponly=self.config.cookie_http_only,
            samesite=self.config.cookie_same_site,
        )

    def read_refresh_token(self, request: Request, body_token: str | None = None) -> str | None:
        """Resolve the presented refresh token according to the transport mode."""
        if self.uses_cookie:
            return request.cookies.get(REFRESH_TOKEN_COOKIE_NAME)
        return body_token
