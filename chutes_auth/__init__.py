"""Sign in with Chutes: OAuth2 Authorization Code + PKCE for web apps.

Provides the sign-in flow engine, the IDP client, pluggable session
storage and FastAPI routes for the login, callback, logout, session
and refresh endpoints.
"""

from __future__ import annotations

from .app import create_app, current_access_token
from .config import AuthSettings, OAuthConfig, load_settings, resolve_oauth_config
from .exceptions import (
    AuthenticationError,
    ChutesAuthError,
    ConfigurationError,
    IdpConnectionError,
    InvalidStateError,
    MissingParameterError,
    MissingRefreshTokenError,
    MissingVerifierError,
    NoAccessTokenError,
    ProviderError,
    TokenExchangeError,
    TokenRefreshError,
)
from .flow import AuthFlowManager
from .idp_client import IdpClient
from .pkce import PKCEChallenge, compute_challenge, generate_pkce, generate_state
from .routes import create_auth_router
from .state import (
    CookieSessionStore,
    MemorySessionStore,
    NamespacedStore,
    RedisSessionStore,
    SessionStore,
    create_session_store,
)
from .types import AuthSession, FlowState, LoginRedirect, TokenBundle, UserProfile


__version__ = "0.1.0"

__all__ = [
    "AuthFlowManager",
    "AuthSession",
    "AuthSettings",
    "AuthenticationError",
    "ChutesAuthError",
    "ConfigurationError",
    "CookieSessionStore",
    "FlowState",
    "IdpClient",
    "IdpConnectionError",
    "InvalidStateError",
    "LoginRedirect",
    "MemorySessionStore",
    "MissingParameterError",
    "MissingRefreshTokenError",
    "MissingVerifierError",
    "NamespacedStore",
    "NoAccessTokenError",
    "OAuthConfig",
    "PKCEChallenge",
    "ProviderError",
    "RedisSessionStore",
    "SessionStore",
    "TokenBundle",
    "TokenExchangeError",
    "TokenRefreshError",
    "UserProfile",
    "__version__",
    "compute_challenge",
    "create_app",
    "create_auth_router",
    "create_session_store",
    "current_access_token",
    "generate_pkce",
    "generate_state",
    "load_settings",
    "resolve_oauth_config",
]
