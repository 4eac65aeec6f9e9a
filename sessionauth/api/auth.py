"""Authentication API endpoints."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from sessionauth.core import get_db
from sessionauth.models.user import User
from sessionauth.schemas.auth import (
    ErrorResponse,
    KakaoLoginRequest,
    LoginResponse,
    LoginUrlResponse,
    MessageResponse,
    RefreshRequest,
    UserResponse,
)
from sessionauth.services.cookies import TokenTransport
from sessionauth.services.errors import InvalidTokenError, UserNotFoundError
from sessionauth.services.login import LoginOrchestrator
from sessionauth.services.token_codec import TokenKind, get_token_codec
from sessionauth.services.token_lifecycle import SessionTokens
from sessionauth.services.users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)


def get_login_orchestrator(db: AsyncSession = Depends(get_db)) -> LoginOrchestrator:
    """Dependency to get the login orchestrator."""
    return LoginOrchestrator(db)


def get_token_transport() -> TokenTransport:
    """Dependency to get the refresh-token transport."""
    return TokenTransport()


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency to get the current authenticated user from a bearer access token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise InvalidTokenError("Missing or invalid authorization header")

    token = auth_header[7:]  # Remove "Bearer " prefix
    claims = get_token_codec().verify(token, expected_kind=TokenKind.ACCESS)

    try:
        user_id = UUID(claims.subject)
    except ValueError as e:
        raise InvalidTokenError("Token subject is not a user id") from e

    user = await UserService(db).get_by_id(user_id)
    if user is None:
        raise UserNotFoundError()
    return user


def _login_response(tokens: SessionTokens, transport: TokenTransport) -> LoginResponse:
    return LoginResponse(
        access_token=tokens.access_token,
        expires_in=tokens.access_expires_in,
        user_id=tokens.user.id,
        email=tokens.user.email,
        nickname=tokens.user.name,
        # Never echo the refresh token when it already travels in an HTTP-only cookie
        refresh_token=None if transport.uses_cookie else tokens.refresh_token,
    )


@router.get("/kakao/url", response_model=LoginUrlResponse)
async def create_kakao_login_url(
    redirect_uri: Annotated[str, Query(min_length=1)],
    code_challenge: Annotated[str, Query(min_length=43, max_length=128)],
    orchestrator: LoginOrchestrator = Depends(get_login_orchestrator),
) -> LoginUrlResponse:
    """Build the Kakao authorize URL for a PKCE (S256) login."""
    login_url, state = await orchestrator.build_login_url(redirect_uri, code_challenge)
    return LoginUrlResponse(login_url=login_url, state=state)


@router.post("/kakao/login", response_model=LoginResponse, response_model_exclude_none=True)
async def kakao_login(
    request: KakaoLoginRequest,
    response: Response,
    orchestrator: LoginOrchestrator = Depends(get_login_orchestrator),
    transport: TokenTransport = Depends(get_token_transport),
) -> LoginResponse:
    """Complete a Kakao login and issue session tokens."""
    tokens = await orchestrator.complete_login(
        code=request.code,
        state=request.state,
        code_verifier=request.code_verifier,
        redirect_uri=request.redirect_uri,
        response=response,
    )
    return _login_response(tokens, transport)


@router.post("/refresh", response_model=LoginResponse, response_model_exclude_none=True)
async def refresh_tokens(
    http_request: Request,
    response: Response,
    request: Annotated[RefreshRequest | None, Body()] = None,
    orchestrator: LoginOrchestrator = Depends(get_login_orchestrator),
    transport: TokenTransport = Depends(get_token_transport),
) -> LoginResponse:
    """Rotate the refresh token.

    The presented refresh token is consumed; replaying it afterwards fails.
    """
    refresh_token = transport.read_refresh_token(
        http_request, request.refresh_token if request else None
    )
    logger.info(
        f"Refresh requested via {'cookie' if transport.uses_cookie else 'body'} "
        f"(present={refresh_token is not None})"
    )
    tokens = await orchestrator.refresh(refresh_token, response)
    return _login_response(tokens, transport)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    http_request: Request,
    response: Response,
    request: Annotated[RefreshRequest | None, Body()] = None,
    orchestrator: LoginOrchestrator = Depends(get_login_orchestrator),
    transport: TokenTransport = Depends(get_token_transport),
) -> MessageResponse:
    """Log out. Always succeeds and always clears the refresh cookie."""
    refresh_token = transport.read_refresh_token(
        http_request, request.refresh_token if request else None
    )
    await orchestrator.logout(refresh_token, response)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Get the current user's information."""
    return UserResponse.model_validate(current_user)
