"""Client settings loaded from the environment.

Values are read from `os.environ` after `load_dotenv()`, so a local `.env` file
works during development:

.. code-block:: text

    OIDC_ISSUER=https://accounts.example.com/
    OIDC_CLIENT_ID=my-client
    OIDC_CLIENT_SECRET=change-me
    OIDC_REDIRECT_URI=https://app.example.com/login-redirect
    OIDC_SCOPE=openid profile email
    OIDC_MAX_AGE=3600
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

from dotenv import load_dotenv


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Everything needed to construct a `Client` through discovery.

    Attributes:
        issuer: Provider issuer identifier (discovery base URL).
        client_id: OAuth 2.0 client identifier.
        client_secret: OAuth 2.0 client secret.
        redirect_uri: Registered redirect URI, if any.
        scope: Scope requested by default in authorization URLs.
        max_age: Max authentication age enforced by default, if any.
    """

    issuer: str
    client_id: str
    client_secret: str
    redirect_uri: str | None = None
    scope: str | None = None
    max_age: timedelta | None = None

    @classmethod
    def from_env(
        cls,
        prefix: str = "OIDC_",
        environ: Mapping[str, str] | None = None,
    ) -> ClientSettings:
        """Load settings from environment variables named `{prefix}ISSUER` etc.

        Args:
            prefix: Variable name prefix.
            environ: Mapping to read instead of `os.environ`. When omitted, a
                `.env` file is loaded first.

        Raises:
            ValueError: If a required variable is missing or `MAX_AGE` is not an
                integer number of seconds.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        def get(name: str) -> str | None:
            value = environ.get(prefix + name)
            if value is None:
                return None
            return value.strip() or None

        issuer = get("ISSUER")
        client_id = get("CLIENT_ID")
        client_secret = get("CLIENT_SECRET")
        if not all([issuer, client_id, client_secret]):
            raise ValueError(
                f"Missing required environment variables: {prefix}ISSUER, "
                f"{prefix}CLIENT_ID and {prefix}CLIENT_SECRET must all be set"
            )

        max_age = get("MAX_AGE")
        try:
            max_age_delta = timedelta(seconds=int(max_age)) if max_age else None
        except ValueError as e:
            raise ValueError(f"{prefix}MAX_AGE must be a whole number of seconds") from e

        return cls(
            issuer=issuer,  # type: ignore[arg-type]
            client_id=client_id,  # type: ignore[arg-type]
            client_secret=client_secret,  # type: ignore[arg-type]
            redirect_uri=get("REDIRECT_URI"),
            scope=get("SCOPE"),
            max_age=max_age_delta,
        )
