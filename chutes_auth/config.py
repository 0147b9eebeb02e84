"""Configuration for chutes-auth using pydantic-settings.

Two layers:

1. ``AuthSettings`` - static settings read from environment variables
   with the ``CHUTES_AUTH__`` prefix (or from an explicit mapping).
   Example: CHUTES_AUTH__CLIENT_ID, CHUTES_AUTH__SCOPES
2. ``OAuthConfig`` - the immutable per-request view every flow step
   receives. Built by :func:`resolve_oauth_config` from settings plus
   the origin of the inbound request, never cached, because the
   redirect URI depends on that origin.
"""

from __future__ import annotations

import os

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


DEFAULT_IDP_BASE_URL = "https://api.chutes.ai"
DEFAULT_SCOPES = "openid profile chutes:invoke"
DEFAULT_CALLBACK_PATH = "/api/auth/chutes/callback"

ENV_PREFIX = "CHUTES_AUTH__"

# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "client_secret",
    "redis_url",
}

_REDACTED = "********"


class AuthSettings(BaseSettings):
    """Static OAuth client and session settings.

    Environment prefix: CHUTES_AUTH__
    Example: CHUTES_AUTH__CLIENT_ID=your-client-id
    Example: CHUTES_AUTH__STORE_BACKEND=redis
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        extra="ignore",
    )

    # Client credentials
    client_id: str = Field(
        default="",
        description="OAuth2 client ID registered with the IDP",
    )
    client_secret: str = Field(
        default="",
        description="OAuth2 client secret (never sent to the browser)",
    )

    # Endpoints
    idp_base_url: str = Field(
        default=DEFAULT_IDP_BASE_URL,
        description="IDP base URL; /idp/authorize, /idp/token and /idp/userinfo hang off it",
    )
    redirect_uri: str = Field(
        default="",
        description="Explicit redirect URI. Overrides every derived value when set",
    )
    public_app_url: str = Field(
        default="",
        description="Public base URL of this app, used to derive the redirect URI",
    )
    callback_path: str = Field(
        default=DEFAULT_CALLBACK_PATH,
        description="Path of the callback route appended to the base URL",
    )
    dev_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used when nothing else determines the redirect URI",
    )

    # Scopes
    scopes: str = Field(
        default=DEFAULT_SCOPES,
        description="Space-separated OAuth2 scopes to request",
    )

    # Lifetimes (seconds)
    flow_ttl: int = Field(
        default=300,
        ge=30,
        le=3600,
        description="Lifetime of the state and PKCE verifier of a pending login",
    )
    refresh_token_ttl: int = Field(
        default=60 * 60 * 24 * 30,
        ge=60,
        description="Lifetime of the stored refresh token",
    )

    # IDP calls
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single IDP request; no retries are made",
    )

    # Session storage
    store_backend: Literal["memory", "redis", "cookie"] = Field(
        default="memory",
        description="Session store: 'memory' (single process), 'redis' or 'cookie'",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the redis store",
    )
    redis_prefix: str = Field(
        default="chutes_auth",
        description="Key prefix for all Redis keys",
    )
    session_cookie: str = Field(
        default="chutes_sid",
        description="Cookie holding the server-side session id",
    )
    cookie_secure: bool = Field(
        default=False,
        description="Set the Secure attribute on cookies. Should be True in production",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level of the chutes_auth logger",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Accept level names in any case."""
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("idp_base_url", "public_app_url", "dev_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so path joins never double the slash."""
        return v.strip().rstrip("/")

    @field_validator("idp_base_url", "dev_base_url", mode="after")
    @classmethod
    def require_http_url(cls, v: str) -> str:
        """Reject base URLs without an http(s) scheme."""
        if not v.startswith(("http://", "https://")):
            msg = f"expected an http(s) URL, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("callback_path", mode="after")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        """Make sure the callback path is absolute."""
        v = v.strip()
        return v if v.startswith("/") else f"/{v}"

    def scope_list(self) -> tuple[str, ...]:
        """Split the scope override, falling back to the default set."""
        parsed = tuple(s for s in self.scopes.replace(",", " ").split() if s)
        return parsed or tuple(DEFAULT_SCOPES.split())

    def to_display_dict(self) -> dict[str, Any]:
        """Return all settings with sensitive values redacted."""
        data = self.model_dump()
        for name in _SENSITIVE_FIELDS:
            if data.get(name):
                data[name] = _REDACTED
        return data


def load_settings(env: Mapping[str, str] | None = None) -> AuthSettings:
    """Build settings from the process environment or an explicit mapping.

    Parameters
    ----------
    env : Mapping[str, str], optional
        Environment to read ``CHUTES_AUTH__*`` variables from. When given,
        the process environment is not consulted at all.

    Returns
    -------
    AuthSettings
        Validated settings.

    Raises
    ------
    ConfigurationError
        If a value fails validation.
    """
    try:
        if env is None:
            return AuthSettings()
        upper = {k.upper(): v for k, v in env.items()}
        values: dict[str, Any] = {}
        for name, info in AuthSettings.model_fields.items():
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in upper:
                values[name] = upper[key]
            else:
                values[name] = info.get_default(call_default_factory=True)
        return AuthSettings(**values)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        msg = f"Invalid chutes-auth settings: {', '.join(fields) or exc.error_count()}"
        raise ConfigurationError(msg, invalid=fields) from None


@dataclass(frozen=True)
class OAuthConfig:
    """Immutable OAuth client configuration for one request.

    Attributes
    ----------
    idp_base_url : str
        IDP base URL without trailing slash.
    client_id : str
        OAuth2 client ID.
    client_secret : str
        OAuth2 client secret. Excluded from ``repr``.
    redirect_uri : str
        Callback URL registered with the IDP.
    scopes : tuple[str, ...]
        Requested scopes, in order.
    """

    idp_base_url: str
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    scopes: tuple[str, ...] = field(default_factory=lambda: tuple(DEFAULT_SCOPES.split()))

    @property
    def authorize_endpoint(self) -> str:
        """The IDP authorization endpoint."""
        return f"{self.idp_base_url}/idp/authorize"

    @property
    def token_endpoint(self) -> str:
        """The IDP token endpoint."""
        return f"{self.idp_base_url}/idp/token"

    @property
    def userinfo_endpoint(self) -> str:
        """The IDP userinfo endpoint."""
        return f"{self.idp_base_url}/idp/userinfo"

    @property
    def scope(self) -> str:
        """Scopes joined with single spaces, as sent to the IDP."""
        return " ".join(self.scopes)


def build_redirect_uri(settings: AuthSettings, request_origin: str | None = None) -> str:
    """Resolve the redirect URI. First match wins.

    1. explicit ``redirect_uri``
    2. ``public_app_url`` + ``callback_path``
    3. ``request_origin`` + ``callback_path``
    4. ``dev_base_url`` + ``callback_path``
    """
    if settings.redirect_uri.strip():
        return settings.redirect_uri.strip()
    if settings.public_app_url:
        return f"{settings.public_app_url}{settings.callback_path}"
    if request_origin and request_origin.strip() and request_origin.strip() != "null":
        return f"{request_origin.strip().rstrip('/')}{settings.callback_path}"
    return f"{settings.dev_base_url}{settings.callback_path}"


def resolve_oauth_config(
    request_origin: str | None = None,
    settings: AuthSettings | None = None,
    env: Mapping[str, str] | None = None,
) -> OAuthConfig:
    """Resolve the OAuth configuration for the current request.

    Parameters
    ----------
    request_origin : str, optional
        Origin (``scheme://host[:port]``) of the inbound request.
    settings : AuthSettings, optional
        Preloaded settings. Loaded from *env* when omitted.
    env : Mapping[str, str], optional
        Explicit environment; defaults to ``os.environ``.

    Returns
    -------
    OAuthConfig
        Configuration for this request.

    Raises
    ------
    ConfigurationError
        If the client id or client secret is missing.
    """
    if settings is None:
        settings = load_settings(os.environ if env is None else env)

    missing = [
        f"{ENV_PREFIX}{name.upper()}"
        for name in ("client_id", "client_secret")
        if not getattr(settings, name).strip()
    ]
    if missing:
        msg = f"Missing OAuth client credentials. Set {' and '.join(missing)}."
        raise ConfigurationError(msg, missing=missing)

    return OAuthConfig(
        idp_base_url=settings.idp_base_url,
        client_id=settings.client_id.strip(),
        client_secret=settings.client_secret.strip(),
        redirect_uri=build_redirect_uri(settings, request_origin),
        scopes=settings.scope_list(),
    )
