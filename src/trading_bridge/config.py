"""Configuration management for Trading Bridge."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


@dataclass
class BrokerConfig:
    """Broker transport and REST endpoints."""

    ws_url: str = ""
    api_url: str = ""
    app_id: int = 0
    login_url: str = ""
    register_url: str = ""
    affiliate_code: str = ""
    login_attempts: int = 5
    login_retry_delay: float = 2.0  # seconds between login attempts
    login_timeout: float = 5.0
    register_timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        """Check if the broker websocket transport can be reached at all."""
        return bool(self.ws_url) and self.app_id > 0


@dataclass
class VisionConfig:
    """Vision (chart classification) API configuration."""

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    timeout: float = 30.0
    max_tokens: int = 300
    min_interval: float = 0.35  # Minimum gap between outbound calls
    cache_ttl: float = 8.0  # Duplicate-frame cache lifetime
    max_retries: int = 4  # Retries on 429/5xx (attempts = retries + 1)
    entry_offset_seconds: int = 90


@dataclass
class AutomatorConfig:
    """Automated decision loop configuration."""

    max_attempts: int = 5
    retry_delay: float = 0.2
    display_timezone: str = "America/Sao_Paulo"


@dataclass
class StorageConfig:
    """Temporary image storage configuration."""

    upload_root: Path = Path("uploads")
    public_base_url: str = "http://localhost:8000/uploads"
    temp_subfolder: str = "tmp"


@dataclass
class Config:
    """Main configuration container."""

    broker: BrokerConfig = field(default_factory=BrokerConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    automator: AutomatorConfig = field(default_factory=AutomatorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls, env_path: Path | None = None) -> "Config":
        """Load configuration from environment variables.

        Args:
            env_path: Path to .env file (optional)

        Returns:
            Config instance populated from environment
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        try:
            app_id = int(os.getenv("TRADE_APP_ID", "0"))
        except ValueError:
            app_id = 0

        broker = BrokerConfig(
            ws_url=os.getenv("TRADE_WS_URL", ""),
            api_url=os.getenv("TRADE_API_URL", ""),
            app_id=app_id,
            login_url=os.getenv("BROKER_LOGIN_URL", ""),
            register_url=os.getenv("BROKER_REGISTER_URL", ""),
            affiliate_code=os.getenv("BROKER_AFFILIATE_CODE", ""),
        )

        vision = VisionConfig(
            api_key=os.getenv("OPENAI_TOKEN", "").strip(),
            base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            model=os.getenv("VISION_MODEL", "gpt-4o-mini"),
        )

        automator = AutomatorConfig(
            display_timezone=os.getenv("AUTOMATOR_TIMEZONE", "America/Sao_Paulo"),
        )

        storage = StorageConfig(
            upload_root=Path(os.getenv("UPLOAD_ROOT", "uploads")),
            public_base_url=os.getenv(
                "PUBLIC_BASE_URL", "http://localhost:8000/uploads"
            ).rstrip("/"),
        )

        return cls(broker=broker, vision=vision, automator=automator, storage=storage)
