"""URL construction for provider endpoints.

Serializes ordered parameter sets onto an endpoint using
application/x-www-form-urlencoded encoding, and knows the shape of the
RP-Initiated Logout end session URL.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlencode


class RequestUrl:
    """Builds request URLs for a single provider endpoint."""

    def __init__(self, base_url: str):
        self.base_url = base_url

    def create(self, parameters: Mapping[str, str] | None = None) -> str:
        """Append `parameters` to the endpoint as a query string.

        Parameter order is preserved. An endpoint that already carries a query
        string is extended with `&`.
        """
        if not parameters:
            return self.base_url

        query = urlencode(list(parameters.items()))

        if "?" not in self.base_url:
            return f"{self.base_url}?{query}"
        if self.base_url.endswith(("?", "&")):
            return f"{self.base_url}{query}"
        return f"{self.base_url}&{query}"

    def create_end_session_url(
        self,
        id_token_hint: str | None = None,
        post_logout_redirect_uri: str | None = None,
        state: str | None = None,
        extra: Mapping[str, str] | None = None,
    ) -> str:
        """Build an RP-Initiated Logout URL.

        Empty or missing values are omitted from the query string.
        """
        parameters: dict[str, str] = {}

        if id_token_hint:
            parameters["id_token_hint"] = id_token_hint
        if post_logout_redirect_uri:
            parameters["post_logout_redirect_uri"] = post_logout_redirect_uri
        if state:
            parameters["state"] = state

        if extra:
            for key, value in extra.items():
                if value and value.strip():
                    parameters[key] = value

        return self.create(parameters)
