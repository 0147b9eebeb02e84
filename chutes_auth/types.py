"""Type definitions shared by the flow engine, IDP client and web glue."""

from __future__ import annotations

import json
import time

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


DEFAULT_EXPIRES_IN = 3600


class FlowState(str, Enum):
    """State of one sign-in attempt."""

    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass
class TokenBundle:
    """Token set returned by the IDP token endpoint.

    Attributes
    ----------
    access_token : str or None
        Bearer token for API requests. ``None`` when a success response
        omitted it; callers must check before treating it as a session.
    refresh_token : str or None
        Optional long-lived token for minting new bundles.
    expires_in : int
        Access token lifetime in seconds from issuance.
    token_type : str
        Token type, typically "Bearer".
    scope : str
        Space-separated list of granted scopes.
    issued_at : float
        Unix timestamp when the bundle was issued.
    raw : dict[str, Any]
        The raw token response from the provider.
    """

    access_token: str | None
    refresh_token: str | None = None
    expires_in: int = DEFAULT_EXPIRES_IN
    token_type: str = "Bearer"  # noqa: S105
    scope: str = ""
    issued_at: float = field(default_factory=time.time)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, payload: dict[str, Any], issued_at: float | None = None) -> TokenBundle:
        """Build a bundle from a token endpoint JSON body.

        ``expires_in`` defaults to 3600 when absent or unparsable. An
        explicit 0 is kept and yields an already expired bundle.
        """
        raw_expires_in = payload.get("expires_in")
        try:
            expires_in = DEFAULT_EXPIRES_IN if raw_expires_in is None else int(raw_expires_in)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN
        return cls(
            access_token=payload.get("access_token") or None,
            refresh_token=payload.get("refresh_token") or None,
            expires_in=expires_in,
            token_type=payload.get("token_type") or "Bearer",
            scope=payload.get("scope") or "",
            issued_at=time.time() if issued_at is None else issued_at,
            raw=payload,
        )

    @property
    def expires_at(self) -> float:
        """Get the access token expiry timestamp."""
        return self.issued_at + self.expires_in

    def is_expired(self, now: float | None = None) -> bool:
        """Check if the access token has expired."""
        return (time.time() if now is None else now) >= self.expires_at

    def __repr__(self) -> str:
        return (
            f"TokenBundle(token_type={self.token_type!r}, expires_in={self.expires_in}, "
            f"has_access_token={self.access_token is not None}, "
            f"has_refresh_token={self.refresh_token is not None})"
        )


_PROFILE_FIELDS = ("sub", "username", "email", "name", "created_at")


@dataclass
class UserProfile:
    """User profile from the IDP userinfo endpoint.

    Attributes
    ----------
    sub : str
        Stable unique subject identifier.
    username, email, name, created_at : str or None
        Optional standard claims.
    extra : dict[str, Any]
        Provider-specific fields not covered above.
    """

    sub: str
    username: str | None = None
    email: str | None = None
    name: str | None = None
    created_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        """Build a profile from a userinfo JSON body."""
        return cls(
            sub=str(data["sub"]),
            username=data.get("username"),
            email=data.get("email"),
            name=data.get("name"),
            created_at=data.get("created_at"),
            extra={k: v for k, v in data.items() if k not in _PROFILE_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Flatten back to the userinfo shape, extension fields included."""
        data: dict[str, Any] = dict(self.extra)
        data["sub"] = self.sub
        for name in _PROFILE_FIELDS[1:]:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    def to_json(self) -> str:
        """Serialize for the session store."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> UserProfile:
        """Deserialize from the session store."""
        return cls.from_dict(json.loads(raw))


@dataclass
class AuthSession:
    """Answer to "who is signed in?".

    Attributes
    ----------
    signed_in : bool
        True iff an unexpired access token is stored.
    user : UserProfile or None
        Cached or lazily fetched profile; ``None`` when unknown.
    expires_at : float or None
        Access token expiry timestamp while signed in.
    """

    signed_in: bool
    user: UserProfile | None = None
    expires_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body served by the session route."""
        return {
            "signedIn": self.signed_in,
            "user": self.user.to_dict() if self.user else None,
            "expiresAt": self.expires_at,
        }


@dataclass(frozen=True)
class LoginRedirect:
    """Result of starting a login.

    Attributes
    ----------
    url : str
        The IDP authorize URL to redirect the browser to.
    state : str
        The state token bound to this attempt.
    expires_in : int
        Seconds the attempt's flow material stays valid.
    """

    url: str
    state: str
    expires_in: int
