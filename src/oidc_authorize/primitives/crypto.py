"""Security material for authorization requests.

Generates the per-attempt values that must survive the redirect: the state
parameter, the nonce and the PKCE pair (RFC 7636).
"""

from __future__ import annotations

import base64
import hashlib
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import Protocol

from oidc_authorize.models.errors import SecurityMaterialError

# RFC 3986 unreserved characters
UNRESERVED_ALPHABET = string.ascii_letters + string.digits + "-._~"

# RFC 7636 Section 4.1
CODE_VERIFIER_PATTERN = re.compile(r"[A-Za-z0-9\-._~]{43,128}")
# Unpadded base64url of a SHA-256 digest
S256_CHALLENGE_PATTERN = re.compile(r"[A-Za-z0-9_-]{43}")


@dataclass(frozen=True)
class PKCEParameters:
    """A PKCE pair for one authorization attempt.

    Only the challenge is sent in the authorization URL. The verifier stays
    with the caller until token exchange and is kept out of `repr()`.
    """

    code_verifier: str = field(repr=False)
    code_challenge: str
    code_challenge_method: str = "S256"

    def __post_init__(self) -> None:
        if self.code_challenge_method != "S256":
            raise ValueError(
                f"Unsupported code_challenge_method {self.code_challenge_method!r},"
                " the client only sends S256"
            )
        if not CODE_VERIFIER_PATTERN.fullmatch(self.code_verifier):
            raise ValueError(
                "Security material provider returned an invalid code verifier:"
                " expected 43-128 unreserved characters,"
                f" got {len(self.code_verifier)}"
            )
        if not S256_CHALLENGE_PATTERN.fullmatch(self.code_challenge):
            raise ValueError(
                "Security material provider returned an invalid code challenge:"
                " expected an unpadded base64url SHA-256 digest"
            )

    @classmethod
    def from_verifier(cls, code_verifier: str) -> PKCEParameters:
        """Build the pair for `code_verifier` with its derived S256 challenge."""
        return cls(
            code_verifier=code_verifier,
            code_challenge=create_code_challenge(code_verifier),
        )


class SecurityMaterialProvider(Protocol):
    """Protocol for generating unguessable per-attempt values."""

    def create_state(self) -> str: ...

    def create_nonce(self) -> str: ...

    def create_pkce_data(self) -> PKCEParameters: ...


class CryptoProvider:
    """Default security material provider backed by `secrets`.

    Every value is drawn fresh from the OS CSPRNG, so two calls never return
    the same value with overwhelming probability.
    """

    def __init__(
        self,
        state_length: int = 32,
        nonce_length: int = 32,
        verifier_length: int = 64,
    ):
        """Initialize the provider.

        Args:
            state_length: Characters in each state value
            nonce_length: Characters in each nonce
            verifier_length: Characters in each PKCE code verifier (43-128)
        """
        if not (43 <= verifier_length <= 128):
            raise ValueError("verifier_length must be 43-128 characters")
        self.state_length = state_length
        self.nonce_length = nonce_length
        self.verifier_length = verifier_length

    def create_state(self) -> str:
        """Generate a state parameter for CSRF protection."""
        return _random_string(self.state_length)

    def create_nonce(self) -> str:
        """Generate a nonce to bind the ID token to this attempt."""
        return _random_string(self.nonce_length)

    def create_pkce_data(self) -> PKCEParameters:
        """Generate a PKCE verifier and its S256 challenge.

        Raises:
            SecurityMaterialError: If parameter generation fails
        """
        try:
            return PKCEParameters.from_verifier(_random_string(self.verifier_length))
        except Exception as e:
            raise SecurityMaterialError(
                f"Failed to generate PKCE parameters: {e}"
            ) from e


def create_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _random_string(length: int) -> str:
    return "".join(secrets.choice(UNRESERVED_ALPHABET) for _ in range(length))
