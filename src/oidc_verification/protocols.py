"""Protocol definitions for the OpenID Connect client.

This module defines structural interfaces using Protocol (PEP 544) for:
- OAuth 2.0 / OpenID providers (where to send users and token requests)
- Token extraction from Flask requests
- Clocks

Using protocols allows for duck-typing and easier testing/mocking without
requiring explicit inheritance. Any class that implements the required members
satisfies the protocol.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

# ============================================================================
# Type Aliases
# ============================================================================

Clock = Callable[[], int]
"""Returns the current time as whole seconds since the epoch."""

ViewFunc = Callable[..., Any]
"""Type alias for Flask view functions (callable that takes any args and returns any)."""


# ============================================================================
# Core Protocols
# ============================================================================


class Provider(Protocol):
    """Protocol for an OAuth 2.0 provider.

    `Discovered` (built from an OpenID discovery document) and
    `StaticProvider` (configured by hand) both satisfy it.
    """

    @property
    def authorization_endpoint(self) -> str:
        """Where the end-user is sent to authenticate (RFC 6749, section 3.1)."""
        ...

    @property
    def token_endpoint(self) -> str:
        """Where authorization codes and refresh tokens are exchanged (RFC 6749, section 3.2)."""
        ...

    @property
    def credentials_in_body(self) -> bool:
        """True to send client credentials in the request body instead of HTTP basic auth."""
        ...


class Extractor(Protocol):
    """Protocol for extracting a raw ID token from a Flask request.

    Common implementations:
    - Cookie set after the login redirect (CookieExtractor)
    - Authorization: Bearer <token> header (BearerExtractor)
    """

    def extract(self) -> str:
        """Extract the raw token string from the current Flask request.

        Raises:
            MissingToken: Token not found or improperly formatted.
        """
        ...
