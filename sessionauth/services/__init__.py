# Session Auth Services
from sessionauth.services.blacklist import BlacklistStore, fingerprint
from sessionauth.services.blacklist_cleanup import BlacklistCleanupService
from sessionauth.services.cookies import TokenTransport
from sessionauth.services.kakao import KakaoClient, KakaoProfile, get_kakao_client
from sessionauth.services.login import LoginOrchestrator
from sessionauth.services.state_store import (
    InMemoryStateStore,
    RedisStateStore,
    StateStore,
    get_state_store,
)
from sessionauth.services.token_codec import TokenClaims, TokenCodec, TokenKind, get_token_codec
from sessionauth.services.token_lifecycle import SessionTokens, TokenLifecycleManager
from sessionauth.services.users import UserService

__all__ = [
    "BlacklistCleanupService",
    "BlacklistStore",
    "InMemoryStateStore",
    "KakaoClient",
    "KakaoProfile",
    "LoginOrchestrator",
    "RedisStateStore",
    "SessionTokens",
    "StateStore",
    "TokenClaims",
    "TokenCodec",
    "TokenKind",
    "TokenLifecycleManager",
    "TokenTransport",
    "UserService",
    "fingerprint",
    "get_kakao_client",
    "get_state_store",
    "get_token_codec",
]
