"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError naming the first problem found
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from paperfeed.retry import RetryPolicy
from paperfeed.summarizer import DEFAULT_MODEL, SUPPORTED_LANGUAGES
from paperfeed.topics import TopicSet

KNOWN_PUBLISHERS = ("stdout", "email", "web", "discord")


def _env_list(key: str, default: str = "") -> list[str]:
    """Comma-separated environment variable as a list of stripped values."""
    raw = os.environ.get(key, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )

    # ── Topics ──────────────────────────────────────────────────────────────
    #: Legacy single-topic setting; ``TOPICS`` wins when both are set.
    topic: str = field(default_factory=lambda: os.environ.get("TOPIC", ""))
    topics: list[str] = field(default_factory=lambda: _env_list("TOPICS"))

    # ── Fetch / summarise ───────────────────────────────────────────────────
    language: str = field(
        default_factory=lambda: os.environ.get("LANGUAGE", "en")
    )
    max_results: int = field(
        default_factory=lambda: int(os.environ.get("MAX_RESULTS", "20"))
    )
    top_n: int = field(
        default_factory=lambda: int(os.environ.get("TOP_N", "5"))
    )
    summary_model: str = field(
        default_factory=lambda: os.environ.get("SUMMARY_MODEL", DEFAULT_MODEL)
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("MAX_TOKENS", "4096"))
    )

    # ── Retry ───────────────────────────────────────────────────────────────
    retry_max_retries: int = field(
        default_factory=lambda: int(os.environ.get("RETRY_MAX_RETRIES", "3"))
    )
    retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_BASE_DELAY", "1.0"))
    )

    # ── Publishers ──────────────────────────────────────────────────────────
    publishers: list[str] = field(
        default_factory=lambda: _env_list("PUBLISHERS", "stdout")
    )
    discord_webhook_url: str = field(
        default_factory=lambda: os.environ.get("DISCORD_WEBHOOK_URL", "")
    )
    smtp_host: str = field(default_factory=lambda: os.environ.get("SMTP_HOST", ""))
    smtp_port: int = field(
        default_factory=lambda: int(os.environ.get("SMTP_PORT", "587"))
    )
    smtp_username: str = field(default_factory=lambda: os.environ.get("SMTP_USERNAME", ""))
    smtp_password: str = field(default_factory=lambda: os.environ.get("SMTP_PASSWORD", ""))
    email_from: str = field(default_factory=lambda: os.environ.get("EMAIL_FROM", ""))
    email_to: list[str] = field(default_factory=lambda: _env_list("EMAIL_TO"))

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "8080"))
    )

    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper()
    )

    @property
    def topic_set(self) -> TopicSet:
        """Topics collapsed from ``TOPICS`` / ``TOPIC``.

        Raises:
            ValueError: If neither yields a topic.
        """
        return TopicSet.from_config(topic=self.topic, topics=self.topics)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            base_delay=self.retry_base_delay,
        )

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing or invalid."""
        if not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
        self.topic_set  # raises when no topic is configured
        if self.language not in SUPPORTED_LANGUAGES:
            raise ValueError(
                f"unsupported language {self.language!r} "
                f"(supported: {', '.join(SUPPORTED_LANGUAGES)})"
            )
        if self.max_results <= 0:
            raise ValueError("MAX_RESULTS must be positive")
        if self.retry_max_retries < 0:
            raise ValueError("RETRY_MAX_RETRIES must not be negative")
        if not self.publishers:
            raise ValueError("at least one publisher is required")

        for name in self.publishers:
            if name not in KNOWN_PUBLISHERS:
                raise ValueError(
                    f"unsupported publisher type {name!r} "
                    f"(supported: {', '.join(KNOWN_PUBLISHERS)})"
                )
        if "discord" in self.publishers and not self.discord_webhook_url:
            raise ValueError("DISCORD_WEBHOOK_URL is required for the discord publisher")
        if "email" in self.publishers:
            if not self.smtp_host:
                raise ValueError("SMTP_HOST is required for the email publisher")
            if not self.email_to:
                raise ValueError("EMAIL_TO is required for the email publisher")
            if not self.email_from:
                raise ValueError("EMAIL_FROM is required for the email publisher")
