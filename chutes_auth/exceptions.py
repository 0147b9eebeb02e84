"""chutes-auth exception hierarchy.

All package exceptions inherit from ChutesAuthError, enabling
catch-all handling while supporting specific error types.

Every terminal failure of a login attempt carries a stable ``code``
(``invalid_state``, ``missing_verifier``, ...) so web handlers can
render a machine-readable error without leaking secrets.
"""

from __future__ import annotations

from typing import Any


class ChutesAuthError(Exception):
    """Base exception for all chutes-auth errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize the exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (status_code, missing, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(ChutesAuthError):
    """OAuth client configuration is missing or invalid.

    Fatal for the current request: the flow never starts.
    """

    def __init__(self, message: str, missing: list[str] | None = None, **context: Any) -> None:
        """Initialize configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        missing : list[str], optional
            Names of the settings that are absent (never their values).
        **context : Any
            Additional context.
        """
        if missing:
            context["missing"] = missing
        super().__init__(message, **context)
        self.missing = missing or []


class AuthenticationError(ChutesAuthError):
    """Base exception for a rejected sign-in attempt.

    Parameters
    ----------
    message : str
        Human-readable error message.
    code : str, optional
        Machine-readable error code; defaults to the class ``code``.
    **context : Any
        Additional context.
    """

    code: str = "authentication_failed"

    def __init__(self, message: str, code: str | None = None, **context: Any) -> None:
        """Initialize authentication error."""
        super().__init__(message, **context)
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe ``{error, error_description}`` payload."""
        return {"error": self.code, "error_description": self.message}


class ProviderError(AuthenticationError):
    """The IDP redirected back with an ``error`` parameter.

    The provider's code and description are surfaced unchanged.
    """

    def __init__(self, error: str, error_description: str | None = None) -> None:
        """Initialize provider error.

        Parameters
        ----------
        error : str
            The ``error`` query parameter sent by the IDP.
        error_description : str, optional
            The ``error_description`` query parameter, if any.
        """
        super().__init__(error_description or error, code=error)
        self.error = error
        self.error_description = error_description

    def to_dict(self) -> dict[str, Any]:
        """Return the provider's error fields as received."""
        return {"error": self.error, "error_description": self.error_description}


class MissingParameterError(AuthenticationError):
    """The callback lacked ``code`` or ``state``."""

    code = "missing_parameter"

    def __init__(self, missing: list[str]) -> None:
        """Initialize with the names of the absent parameters."""
        super().__init__(f"Missing callback parameter(s): {', '.join(missing)}")
        self.missing = missing


class InvalidStateError(AuthenticationError):
    """The returned state does not match a stored, unexpired one."""

    code = "invalid_state"


class MissingVerifierError(AuthenticationError):
    """No PKCE verifier is stored for this attempt (expired or never set)."""

    code = "missing_verifier"


class NoAccessTokenError(AuthenticationError):
    """The token endpoint answered with success but without an access token."""

    code = "no_access_token"


class MissingRefreshTokenError(AuthenticationError):
    """A refresh was requested but the session holds no refresh token."""

    code = "no_refresh_token"


class TokenExchangeError(AuthenticationError):
    """The token endpoint rejected the request.

    Carries the provider's ``error`` / ``error_description`` when the
    response body has them, and always the HTTP status.
    """

    code = "token_exchange_failed"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
        error_description: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize token exchange error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status returned by the token endpoint.
        error : str, optional
            Provider error code from the response body.
        error_description : str, optional
            Provider error description from the response body.
        **context : Any
            Additional context.
        """
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code
        self.error = error
        self.error_description = error_description

    def to_dict(self) -> dict[str, Any]:
        """Return the error payload including the provider's fields."""
        payload = super().to_dict()
        if self.error:
            payload["provider_error"] = self.error
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload


class TokenRefreshError(TokenExchangeError):
    """The token endpoint rejected a refresh_token grant."""

    code = "token_refresh_failed"


class IdpConnectionError(AuthenticationError):
    """The IDP could not be reached (network or timeout failure).

    Kept apart from protocol errors so callers can decide whether
    to retry; nothing in this package retries.
    """

    code = "idp_unreachable"

    def __init__(self, message: str, endpoint: str | None = None, **context: Any) -> None:
        """Initialize connection error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        endpoint : str, optional
            The IDP endpoint that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, endpoint=endpoint, **context)
        self.endpoint = endpoint
