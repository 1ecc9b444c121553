"""
Advisor configuration.

Each run gets its own AdvisorConfig value; nothing here is process-wide
state, so concurrent runs can point at different endpoints and models.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_LOCAL_MODEL = "local-model"

# Self-hosted OpenAI-compatible servers (LM Studio etc.) ignore the key but require one
LOCAL_SERVER_API_KEY = "lm-studio"

PROVIDERS = ("openai", "ollama")


def normalize_endpoint(endpoint: str, provider: str = "openai") -> str:
    """
    Normalize a user-supplied advisor endpoint.

    Strips trailing slashes and, for OpenAI-compatible servers, makes sure
    the URL ends with /v1 (users often paste just host:port).

    Example:
        >>> normalize_endpoint("http://localhost:1234/")
        'http://localhost:1234/v1'
    """
    url = endpoint.strip().rstrip("/")
    if provider == "openai" and not url.endswith("/v1"):
        url = f"{url}/v1"
    return url


@dataclass
class AdvisorConfig:
    """
    Connection settings for the external inference advisor.

    endpoint=None means the managed OpenAI API; any other value is treated
    as a self-hosted server (OpenAI-compatible or Ollama).
    """

    endpoint: str | None = None
    model: str | None = None
    api_key: str | None = None
    provider: str = "openai"  # "openai" (chat/completions) or "ollama" (/api/chat)
    timeout: float = 30.0
    max_retries: int = 2  # Extra attempts on transport errors
    temperature: float = 0.0  # Deterministic for reproducible runs
    max_tokens: int = 200

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.provider not in PROVIDERS:
            raise ValueError(f"provider must be one of {PROVIDERS}, got: {self.provider}")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")

    @property
    def is_custom(self) -> bool:
        """True when a self-hosted endpoint is configured."""
        return bool(self.endpoint)

    @property
    def base_url(self) -> str:
        """Resolved base URL for requests."""
        if not self.endpoint:
            return OPENAI_BASE_URL
        return normalize_endpoint(self.endpoint, self.provider)

    @property
    def resolved_model(self) -> str:
        """Model name, defaulting by endpoint type."""
        if self.model:
            return self.model
        return DEFAULT_LOCAL_MODEL if self.is_custom else DEFAULT_OPENAI_MODEL

    @property
    def resolved_api_key(self) -> str | None:
        if self.api_key:
            return self.api_key
        return LOCAL_SERVER_API_KEY if self.is_custom else None

    @classmethod
    def from_env(cls, env_path: str | None = None) -> "AdvisorConfig":
        """
        Create config from environment variables.

        Looks for:
        - ADVISOR_ENDPOINT (optional, defaults to the OpenAI API)
        - ADVISOR_MODEL (optional)
        - ADVISOR_API_KEY (optional, falls back to OPENAI_API_KEY)
        - ADVISOR_PROVIDER (optional, 'openai' or 'ollama')
        - ADVISOR_TIMEOUT (optional, seconds)
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        timeout = os.getenv("ADVISOR_TIMEOUT")
        return cls(
            endpoint=os.getenv("ADVISOR_ENDPOINT") or None,
            model=os.getenv("ADVISOR_MODEL") or None,
            api_key=os.getenv("ADVISOR_API_KEY") or os.getenv("OPENAI_API_KEY") or None,
            provider=os.getenv("ADVISOR_PROVIDER", "openai"),
            timeout=float(timeout) if timeout else 30.0,
        )
