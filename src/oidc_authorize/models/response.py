"""Authorization response model.

Holds the parameters returned by the provider on the redirect URI, whether
they arrived in a query string, a fragment or a form post body.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class AuthorizeResponse:
    raw: str
    values: Mapping[str, str] = field(default_factory=dict)
    code: str | None = None
    state: str | None = None
    id_token: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None
