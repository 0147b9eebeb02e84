"""Unit tests for state and PKCE material."""

from __future__ import annotations

import dataclasses
import hashlib
import re

from base64 import urlsafe_b64decode, urlsafe_b64encode

import pytest

from chutes_auth.pkce import (
    PKCEChallenge,
    compute_challenge,
    generate_pkce,
    generate_state,
)


URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


def _decoded_len(token: str) -> int:
    return len(urlsafe_b64decode(token + "=" * (-len(token) % 4)))


class TestComputeChallenge:
    """Tests for the S256 challenge computation."""

    def test_matches_rfc7636_example(self) -> None:
        """Appendix B of RFC 7636."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert compute_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_deterministic(self) -> None:
        """Same verifier, same challenge."""
        assert compute_challenge("abc") == compute_challenge("abc")

    def test_distinct_verifiers_give_distinct_challenges(self) -> None:
        """Different verifiers produce different challenges."""
        assert compute_challenge("verifier-a") != compute_challenge("verifier-b")

    def test_no_padding(self) -> None:
        """Challenge is unpadded base64url."""
        challenge = compute_challenge("anything")
        assert "=" not in challenge
        assert URL_SAFE.match(challenge)
        assert len(challenge) == 43


class TestPKCEChallenge:
    """Tests for PKCEChallenge generation."""

    def test_generate_returns_challenge(self) -> None:
        """generate() returns a verifier, its challenge and S256."""
        pkce = PKCEChallenge.generate()
        assert pkce.method == "S256"
        expected = urlsafe_b64encode(hashlib.sha256(pkce.verifier.encode()).digest())
        assert pkce.challenge == expected.rstrip(b"=").decode()

    def test_verifier_shape(self) -> None:
        """Verifier is 43 URL-safe characters from 32 random bytes."""
        pkce = generate_pkce()
        assert len(pkce.verifier) == 43
        assert URL_SAFE.match(pkce.verifier)
        assert _decoded_len(pkce.verifier) == 32

    def test_rejects_short_verifier(self) -> None:
        """Fewer than 32 random bytes is refused."""
        with pytest.raises(ValueError, match="at least 32"):
            PKCEChallenge.generate(length=16)

    def test_frozen(self) -> None:
        """PKCEChallenge is immutable."""
        pkce = generate_pkce()
        with pytest.raises(dataclasses.FrozenInstanceError):
            pkce.verifier = "changed"  # type: ignore[misc]

    def test_repr_hides_verifier(self) -> None:
        """The verifier never appears in repr."""
        pkce = generate_pkce()
        assert pkce.verifier not in repr(pkce)
        assert pkce.challenge in repr(pkce)


class TestGenerateState:
    """Tests for state token generation."""

    def test_state_is_url_safe_with_128_bits(self) -> None:
        """State is URL-safe and carries at least 128 bits."""
        state = generate_state()
        assert URL_SAFE.match(state)
        assert _decoded_len(state) * 8 >= 128

    def test_no_collisions(self) -> None:
        """10,000 states and verifiers are all distinct."""
        states = {generate_state() for _ in range(10_000)}
        verifiers = {generate_pkce().verifier for _ in range(10_000)}
        assert len(states) == 10_000
        assert len(verifiers) == 10_000
        assert all(_decoded_len(v) * 8 >= 128 for v in list(verifiers)[:100])
