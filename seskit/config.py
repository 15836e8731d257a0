"""Configuration management with Pydantic and XDG base directory support."""

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import Field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TSA_SERVERS = [
    "http://timestamp.digicert.com",
    "http://time.certum.pl",
    "http://zeitstempel.dfn.de",
    "http://timestamp.sectigo.com",
]


def get_xdg_data_home() -> Path:
    """Get XDG_DATA_HOME directory, defaulting to ~/.local/share."""
    xdg_data = os.getenv("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data)
    return Path.home() / ".local" / "share"


def get_xdg_config_home() -> Path:
    """Get XDG_CONFIG_HOME directory, defaulting to ~/.config."""
    xdg_config = os.getenv("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config)
    return Path.home() / ".config"


class Settings(BaseSettings):
    """seskit configuration settings.

    Precedence: CLI flag > environment variable > config file > defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="SESKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Online mode control
    online: bool = Field(
        default=False,
        description="Enable online features (timestamp authority requests)",
    )

    # Data directories
    data_dir: Path | None = Field(
        default=None,
        description="Override data directory (defaults to XDG_DATA_HOME/seskit)",
    )

    config_dir: Path | None = Field(
        default=None,
        description="Override config directory (defaults to XDG_CONFIG_HOME/seskit)",
    )

    # Audit trail settings
    trail_store: Literal["memory", "jsonl"] = Field(
        default="jsonl",
        description="Audit trail persistence backend",
    )

    # Timestamp authority settings
    tsa_servers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TSA_SERVERS),
        description="Ordered list of timestamp authority URLs tried in sequence",
    )

    tsa_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Per-attempt timeout for timestamp authority requests (seconds)",
    )

    tsa_circuit_breaker_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures before an authority is skipped",
    )

    tsa_circuit_breaker_reset_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds before a skipped authority is retried",
    )

    # Evidence export settings
    verification_base_url: str = Field(
        default="https://tu-dominio.com",
        description="Base URL used to build {base}/verify/{signature_id} links",
    )

    company_name: str = Field(
        default="oSign.EU",
        description="Issuer name printed on rendered evidence PDFs",
    )

    pdf_protect: bool = Field(
        default=True,
        description="Protect rendered PDFs with a random owner password",
    )

    pdf_owner_password_length: int = Field(
        default=20,
        ge=8,
        le=64,
        description="Length of the generated PDF owner password",
    )

    contracts_dir: Path | None = Field(
        default=None,
        description="Root directory for the filesystem contract store",
    )

    _resolved_data_dir: Path | None = PrivateAttr(default=None)
    _data_dir_warning_emitted: bool = PrivateAttr(default=False)

    def get_data_dir(self) -> Path:
        """Get the data directory, creating if necessary."""
        if self._resolved_data_dir is not None:
            return self._resolved_data_dir

        if self.data_dir:
            data_dir = self.data_dir
            data_dir.mkdir(parents=True, exist_ok=True)
            self._resolved_data_dir = data_dir
            return data_dir

        primary_dir = get_xdg_data_home() / "seskit"
        try:
            primary_dir.mkdir(parents=True, exist_ok=True)
            self._resolved_data_dir = primary_dir
            return primary_dir
        except PermissionError as exc:
            fallback = Path.cwd() / ".seskit-data"
            fallback.mkdir(parents=True, exist_ok=True)
            self._resolved_data_dir = fallback
            if not self._data_dir_warning_emitted:
                print(
                    f"Warning: cannot create data directory at {primary_dir} ({exc}). "
                    f"Using local '{fallback}' instead. Pass --data-dir to override.",
                    file=sys.stderr,
                )
                self._data_dir_warning_emitted = True
            return fallback

    def get_config_dir(self) -> Path:
        """Get the config directory, creating if necessary."""
        if self.config_dir:
            config_dir = self.config_dir
        else:
            config_dir = get_xdg_config_home() / "seskit"

        config_dir.mkdir(parents=True, exist_ok=True)
        return config_dir

    def get_trails_dir(self) -> Path:
        """Get path to the directory holding persisted audit trails."""
        trails_dir = self.get_data_dir() / "trails"
        trails_dir.mkdir(parents=True, exist_ok=True)
        return trails_dir

    def get_contracts_dir(self) -> Path:
        """Get the contract store root, defaulting to data_dir/contracts."""
        if self.contracts_dir is not None:
            return self.contracts_dir
        return self.get_data_dir() / "contracts"


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set the global settings instance (useful for testing)."""
    global _settings
    _settings = settings
