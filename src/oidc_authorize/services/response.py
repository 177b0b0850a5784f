"""Authorization response interpretation.

Parses the data returned by a browser into an `AuthorizeResponse` and checks
it against the `AuthorizeState` of the attempt it claims to answer.
"""

from __future__ import annotations

import logging
import secrets
from urllib.parse import parse_qsl, urlparse

from oidc_authorize.models.authorize import AuthorizeState
from oidc_authorize.models.errors import (
    AuthorizationResponseError,
    StateValidationError,
)
from oidc_authorize.models.options import AuthenticationFlow
from oidc_authorize.models.response import AuthorizeResponse

logger = logging.getLogger(__name__)


def parse_authorize_response(data: str) -> AuthorizeResponse:
    """Parse browser response data into an `AuthorizeResponse`.

    Accepts a full redirect URL (parameters in the query string or the
    fragment) or a raw form post body. Fragment parameters take precedence
    over query parameters, as hybrid responses are delivered in the fragment.

    Raises:
        AuthorizationResponseError: If the data carries no parameters
    """
    if not data or not data.strip():
        raise AuthorizationResponseError("Authorization response is empty")

    data = data.strip()
    parsed = urlparse(data)
    # Any scheme, including private-use ones (RFC 8252 Section 7.1)
    if parsed.scheme:
        pairs = parse_qsl(parsed.query) + parse_qsl(parsed.fragment)
    else:
        pairs = parse_qsl(data.lstrip("?#"))

    # Last occurrence wins
    values = dict(pairs)
    if not values:
        raise AuthorizationResponseError(
            "Authorization response contains no parameters"
        )

    return AuthorizeResponse(
        raw=data,
        values=values,
        code=values.get("code"),
        state=values.get("state"),
        id_token=values.get("id_token"),
        error=values.get("error"),
        error_description=values.get("error_description"),
        error_uri=values.get("error_uri"),
    )


def validate_state(expected: str, actual: str | None) -> None:
    """Validate that a response state matches the one that was sent.

    Raises:
        StateValidationError: If the state is missing or does not match
    """
    if actual is None:
        raise StateValidationError("Authorization response missing state parameter")
    if not secrets.compare_digest(expected.encode(), actual.encode()):
        raise StateValidationError("State parameter mismatch - possible CSRF attack")


def validate_authorize_response(
    response: AuthorizeResponse,
    authorize_state: AuthorizeState,
    flow: AuthenticationFlow = AuthenticationFlow.AUTHORIZATION_CODE,
) -> None:
    """Check a parsed response against the attempt it answers.

    Raises:
        StateValidationError: If the state is missing or mismatched
        AuthorizationResponseError: If the provider returned an error or the
            response lacks the values the flow requires
    """
    validate_state(authorize_state.state, response.state)

    if response.is_error():
        logger.warning(
            f"Authorization response contained error: {response.error} - "
            f"{response.error_description}"
        )
        raise AuthorizationResponseError(
            f"Authorization failed: {response.error} "
            f"({response.error_description or ''}) "
            f"{'See: ' + response.error_uri if response.error_uri else ''}".strip()
        )

    if response.code is None:
        raise AuthorizationResponseError("Missing authorization code")
    if flow is AuthenticationFlow.HYBRID and response.id_token is None:
        raise AuthorizationResponseError("Missing identity token in hybrid response")
