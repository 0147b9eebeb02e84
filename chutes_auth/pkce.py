"""State and PKCE (Proof Key for Code Exchange) material.

RFC 7636 - Proof Key for Code Exchange for OAuth 2.0 public clients.
Uses S256 challenge method (SHA-256 hash of the code verifier).

All randomness comes from :mod:`secrets`. If the OS random source is
unavailable the resulting error propagates; there is no fallback.
"""

from __future__ import annotations

import hashlib
import secrets

from base64 import urlsafe_b64encode
from dataclasses import dataclass


STATE_BYTES = 32
VERIFIER_BYTES = 32


def compute_challenge(verifier: str) -> str:
    """Return the S256 code challenge for *verifier*.

    Parameters
    ----------
    verifier : str
        The PKCE code verifier.

    Returns
    -------
    str
        ``base64url(sha256(verifier))`` without ``=`` padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    verifier : str
        The code verifier (high-entropy random string). Never leaves
        this application except in the token request.
    challenge : str
        The code challenge (base64url-encoded SHA-256 hash of verifier).
    method : str
        The challenge method, always "S256".
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = VERIFIER_BYTES) -> PKCEChallenge:
        """Generate a new PKCE code verifier and challenge.

        Parameters
        ----------
        length : int
            Number of random bytes for the verifier (default 32, which
            encodes to 43 characters). RFC 7636 requires at least 32.

        Returns
        -------
        PKCEChallenge
            A new PKCE challenge pair.
        """
        if length < VERIFIER_BYTES:
            msg = f"PKCE verifier needs at least {VERIFIER_BYTES} random bytes"
            raise ValueError(msg)
        verifier = secrets.token_urlsafe(length)
        return cls(verifier=verifier, challenge=compute_challenge(verifier))

    def __repr__(self) -> str:
        return f"PKCEChallenge(challenge={self.challenge!r}, method={self.method!r})"


def generate_pkce() -> PKCEChallenge:
    """Generate a verifier/challenge pair for one login attempt."""
    return PKCEChallenge.generate()


def generate_state() -> str:
    """Generate an unguessable, URL-safe state token for one login attempt."""
    return secrets.token_urlsafe(STATE_BYTES)
