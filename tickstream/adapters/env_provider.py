from __future__ import annotations

import logging
import os

from tickstream.ports.secrets_provider import SecretsProvider

_LOGGER = logging.getLogger(__name__)


class MissingSecretError(ValueError):
    """
    Raised when a logical secret cannot be resolved from the environment.
    """

    def __init__(self, secret_name: str) -> None:
        super().__init__(secret_name)
        self.secret_name = secret_name

    def __str__(self) -> str:
        return f"Secret '{self.secret_name}' is unavailable"


class EnvSecretsProvider(SecretsProvider):
    def __init__(
        self,
        prefix: str = "TICKSTREAM_",
        allowed: dict[str, str] | None = None,
    ) -> None:
        """
        Configure lookup rules for environment-backed venue credentials.

        With the defaults, "api_key" resolves from TICKSTREAM_API_KEY and
        "access_token" from TICKSTREAM_ACCESS_TOKEN.
        """

        if not prefix:
            raise ValueError("Environment prefix must be a non-empty string")
        self._prefix = prefix
        # logical secret name -> environment variable suffix
        base_allowed: dict[str, str] = {
            "api_key": "API_KEY",
            "access_token": "ACCESS_TOKEN",
        }
        if allowed:
            base_allowed.update(allowed)
        self._allowed = base_allowed

    def get(self, secret_name: str) -> str:
        """Resolve a logical secret name to a concrete environment variable value."""

        if secret_name not in self._allowed:
            raise MissingSecretError(secret_name)

        env_var = f"{self._prefix}{self._allowed[secret_name]}"
        value = os.environ.get(env_var)
        if not value:
            raise MissingSecretError(secret_name)

        _LOGGER.debug(
            "secret_resolved",
            extra={
                "event": "secret_resolved",
                "secret_name": secret_name,
                "source": "env",
            },
        )
        return value
