"""
Client Configuration

Settings for the command line and scripts, read from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .polling import PollPolicy


def _env_float(env: Mapping[str, str], key: str, default: Optional[float]) -> Optional[float]:
    value = env.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {value!r}") from None


@dataclass
class Settings:
    """
    Configuration for talking to the Vertex AI RAG API.

    Example:
        settings = Settings.from_env()
        errors = settings.validate()
    """

    # Google Cloud settings
    project_id: Optional[str] = None  # Falls back to the key file's project
    location: str = "us-central1"
    key_file: Optional[str] = None    # Falls back to application default credentials

    # Generation
    model: str = "gemini-1.5-pro-002"

    # Operation polling
    poll_interval: float = 2.0
    max_wait: Optional[float] = 600.0
    backoff: float = 1.0
    max_interval: float = 30.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read settings from environment variables."""
        env = os.environ if env is None else env
        defaults = cls()

        max_wait = _env_float(env, "VERTEX_RAG_MAX_WAIT", defaults.max_wait)
        return cls(
            project_id=env.get("VERTEX_RAG_PROJECT") or env.get("GOOGLE_CLOUD_PROJECT") or None,
            location=env.get("VERTEX_RAG_LOCATION") or defaults.location,
            key_file=env.get("GOOGLE_APPLICATION_CREDENTIALS") or None,
            model=env.get("VERTEX_RAG_MODEL") or defaults.model,
            poll_interval=_env_float(env, "VERTEX_RAG_POLL_INTERVAL", defaults.poll_interval),
            # 0 disables the wait limit
            max_wait=max_wait if max_wait else None,
            backoff=_env_float(env, "VERTEX_RAG_BACKOFF", defaults.backoff),
            max_interval=_env_float(env, "VERTEX_RAG_MAX_INTERVAL", defaults.max_interval),
        )

    def poll_policy(self) -> PollPolicy:
        return PollPolicy(
            interval=self.poll_interval,
            max_wait=self.max_wait,
            backoff=self.backoff,
            max_interval=self.max_interval,
        )

    def validate(self) -> list[str]:
        """Validate configuration and return any errors."""
        errors = []

        if not self.location:
            errors.append("location is required")

        if self.key_file and not os.path.isfile(self.key_file):
            errors.append(f"key_file does not exist: {self.key_file}")

        errors.extend(f"poll policy: {e}" for e in self.poll_policy().validate())

        return errors
