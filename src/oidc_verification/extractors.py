"""ID token extraction strategies from Flask requests.

Implementations:
- CookieExtractor: Reads the cookie set after the login redirect (default)
- BearerExtractor: Reads an `Authorization: Bearer <id_token>` header

Security Considerations:
- Cookie-based extraction requires HttpOnly/Secure cookies and CSRF protection
- Never extract tokens from URL query parameters (visible in logs/history)
"""

from __future__ import annotations

from flask import request

from .errors import MissingToken


class CookieExtractor:
    """Extracts the raw ID token from an HTTP cookie.

    Example:
        ```python
        extractor = CookieExtractor(cookie_name="id_token")
        oidc = OIDCExtension(client, extractor=extractor)
        ```

    Attributes:
        _name: Name of the cookie containing the ID token.
    """

    def __init__(self, cookie_name: str = "id_token") -> None:
        """Initialize cookie extractor.

        Raises:
            ValueError: If cookie_name is empty.
        """
        if not cookie_name or not cookie_name.strip():
            raise ValueError("cookie_name cannot be empty")
        self._name = cookie_name

    def extract(self) -> str:
        token = request.cookies.get(self._name)

        if not token:
            raise MissingToken(f"Missing cookie '{self._name}'")

        return token


class BearerExtractor:
    """Extracts the raw ID token from an `Authorization: Bearer <id_token>` header.

    The header is parsed by Werkzeug (`request.authorization`), so the scheme
    is matched case-insensitively and surrounding whitespace is dropped.
    """

    def extract(self) -> str:
        """
        Raises:
            MissingToken: If the header is absent, uses another scheme, or
                carries no token.
        """
        credentials = request.authorization

        if credentials is None:
            raise MissingToken("Missing Authorization header")
        if credentials.type != "bearer" or not credentials.token:
            raise MissingToken("Authorization header does not carry a Bearer ID token")

        return credentials.token
