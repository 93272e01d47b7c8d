"""Configuration management for spretain.

Handles:
- SharePoint app-only credentials (tenant_id, client_id, certificate)
- Retry and pacing settings
- Lists to ignore during traversal
- Secure credential storage via keyring

Config file location:
- Linux/Mac: ~/.config/spretain/config.json
- Windows: %LOCALAPPDATA%/spretain/config.json

Secrets (client_secret) are stored in system keyring, not config file.

The persisted Config is mutable (it is edited by `spretain config set`).
A run works from RunSettings, an immutable value built once at start-up
and passed into the retry policy, pacer and traversal controller.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union
import logging

from ..throttle.pacing import PacingConfig

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Get platform-specific config directory."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", "~"))
    elif sys.platform == "darwin":
        base = Path("~/Library/Application Support")
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config"))

    return base.expanduser() / "spretain"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.json"
KEYRING_SERVICE = "spretain"

# System and infrastructure lists that never carry user retention labels.
DEFAULT_IGNORED_LISTS = (
    "Form Templates",
    "Site Assets",
    "Site Pages",
    "Style Library",
    "Preservation Hold Library",
    "Images",
    "Pages",
    "Site Collection Documents",
    "Site Collection Images",
    "Teams Wiki Data",
    "Converted Forms",
    "Master Page Gallery",
)

ACTION_RESET_LABELS = "reset-labels"
ACTION_UNLOCK_RECORDS = "unlock-records"


class ConfigurationError(Exception):
    """Required input or configuration is missing or unreadable."""

    pass


@dataclass(frozen=True)
class ThrottleSettings:
    """Retry budget for throttled calls."""

    max_attempts: int = 5
    base_delay_ms: int = 5000


@dataclass(frozen=True)
class RunSettings:
    """Immutable settings for one run, threaded into the core at start-up."""

    action: str = ACTION_RESET_LABELS
    report_only: bool = True
    target_label: str = ""
    ignored_lists: frozenset = frozenset(DEFAULT_IGNORED_LISTS)
    throttle: ThrottleSettings = ThrottleSettings()
    pacing: PacingConfig = PacingConfig()
    sync_to_items: bool = True

    @property
    def mode(self) -> str:
        return "report-only" if self.report_only else "apply"


@dataclass
class Config:
    """spretain configuration."""

    # SharePoint app-only credentials
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    cert_path: Optional[str] = None
    cert_thumbprint: Optional[str] = None
    # client_secret stored in keyring, not here

    # Throttling behaviour
    max_attempts: int = 5
    base_delay_ms: int = 5000
    item_delay_ms: int = 100
    list_delay_ms: int = 500
    site_delay_ms: int = 2000

    # Traversal
    ignored_lists: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_LISTS))
    sync_to_items: bool = True

    @classmethod
    def load(cls) -> "Config":
        """Load config from file + environment + keyring."""
        config = cls()

        # Load from file if exists
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = json.load(f)
                config = cls._from_dict(data)
            except (OSError, ValueError, TypeError) as e:
                logger.warning(f"Failed to load config: {e}")

        # Override with environment variables
        if os.environ.get("SPRETAIN_TENANT_ID"):
            config.tenant_id = os.environ["SPRETAIN_TENANT_ID"]
        if os.environ.get("SPRETAIN_CLIENT_ID"):
            config.client_id = os.environ["SPRETAIN_CLIENT_ID"]
        if os.environ.get("SPRETAIN_CERT_PATH"):
            config.cert_path = os.environ["SPRETAIN_CERT_PATH"]
        if os.environ.get("SPRETAIN_CERT_THUMBPRINT"):
            config.cert_thumbprint = os.environ["SPRETAIN_CERT_THUMBPRINT"]

        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary."""
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        config = cls()

        config.tenant_id = data.get("tenant_id")
        config.client_id = data.get("client_id")
        config.cert_path = data.get("cert_path")
        config.cert_thumbprint = data.get("cert_thumbprint")

        throttling = data.get("throttling") or {}
        if not isinstance(throttling, dict):
            raise ValueError("\"throttling\" must be a JSON object")
        config.max_attempts = int(throttling.get("max_attempts", config.max_attempts))
        config.base_delay_ms = int(throttling.get("base_delay_ms", config.base_delay_ms))
        config.item_delay_ms = int(throttling.get("item_delay_ms", config.item_delay_ms))
        config.list_delay_ms = int(throttling.get("list_delay_ms", config.list_delay_ms))
        config.site_delay_ms = int(throttling.get("site_delay_ms", config.site_delay_ms))

        if "ignored_lists" in data:
            if not isinstance(data["ignored_lists"], list):
                raise ValueError("\"ignored_lists\" must be a JSON array")
            config.ignored_lists = [str(title) for title in data["ignored_lists"]]
        config.sync_to_items = data.get("sync_to_items", True)

        return config

    def save(self):
        """Save config to file."""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)

        data = {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "cert_path": self.cert_path,
            "cert_thumbprint": self.cert_thumbprint,
            "throttling": {
                "max_attempts": self.max_attempts,
                "base_delay_ms": self.base_delay_ms,
                "item_delay_ms": self.item_delay_ms,
                "list_delay_ms": self.list_delay_ms,
                "site_delay_ms": self.site_delay_ms,
            },
            "ignored_lists": self.ignored_lists,
            "sync_to_items": self.sync_to_items,
        }

        with open(CONFIG_FILE, "w") as f:
            json.dump(data, f, indent=2)

        logger.debug(f"Config saved to {CONFIG_FILE}")

    def get_client_secret(self) -> Optional[str]:
        """Get client secret from keyring or environment."""
        # Environment takes precedence
        secret = os.environ.get("SPRETAIN_CLIENT_SECRET")
        if secret:
            return secret

        try:
            import keyring

            return keyring.get_password(KEYRING_SERVICE, "client_secret")
        except Exception as e:
            logger.debug(f"Keyring unavailable: {e}")
            return None

    def set_client_secret(self, secret: str):
        """Store client secret in keyring."""
        try:
            import keyring

            keyring.set_password(KEYRING_SERVICE, "client_secret", secret)
            logger.debug("Client secret stored in keyring")
        except Exception as e:
            logger.warning(f"Failed to store secret in keyring: {e}")
            raise

    def get_client_credential(self) -> Optional[Union[str, dict]]:
        """
        Build the MSAL client credential.

        A configured certificate wins over a client secret.

        Raises:
            ConfigurationError: If the certificate file cannot be read
        """
        if self.cert_path and self.cert_thumbprint:
            try:
                private_key = Path(self.cert_path).expanduser().read_text()
            except OSError as e:
                raise ConfigurationError(f"Cannot read certificate {self.cert_path}: {e}")
            return {"thumbprint": self.cert_thumbprint, "private_key": private_key}

        return self.get_client_secret()

    @property
    def has_certificate(self) -> bool:
        return bool(self.cert_path and self.cert_thumbprint)

    @property
    def is_configured(self) -> bool:
        """Check if SharePoint credentials are configured."""
        return bool(
            self.tenant_id
            and self.client_id
            and (self.has_certificate or self.get_client_secret())
        )

    def run_settings(
        self,
        action: str,
        report_only: bool = True,
        target_label: str = "",
        extra_ignored: tuple = (),
        **overrides,
    ) -> RunSettings:
        """
        Freeze this config into the settings for one run.

        Keyword overrides (max_attempts, base_delay_ms, item_delay_ms,
        list_delay_ms, site_delay_ms) replace config values when not None.
        """
        values = {
            "max_attempts": self.max_attempts,
            "base_delay_ms": self.base_delay_ms,
            "item_delay_ms": self.item_delay_ms,
            "list_delay_ms": self.list_delay_ms,
            "site_delay_ms": self.site_delay_ms,
        }
        for key, value in overrides.items():
            if key not in values:
                raise TypeError(f"Unknown setting: {key}")
            if value is not None:
                values[key] = value

        if values["max_attempts"] < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        for key in ("base_delay_ms", "item_delay_ms", "list_delay_ms", "site_delay_ms"):
            if values[key] < 0:
                raise ConfigurationError(f"{key} cannot be negative")

        return RunSettings(
            action=action,
            report_only=report_only,
            target_label=target_label or "",
            ignored_lists=frozenset(self.ignored_lists) | frozenset(extra_ignored),
            throttle=ThrottleSettings(
                max_attempts=values["max_attempts"],
                base_delay_ms=values["base_delay_ms"],
            ),
            pacing=PacingConfig(
                item_delay_ms=values["item_delay_ms"],
                list_delay_ms=values["list_delay_ms"],
                site_delay_ms=values["site_delay_ms"],
            ),
            sync_to_items=self.sync_to_items,
        )


def reset_config():
    """Delete all configuration and credentials."""
    try:
        import keyring

        keyring.delete_password(KEYRING_SERVICE, "client_secret")
    except Exception as e:
        logger.debug(f"No keyring secret removed: {e}")

    if CONFIG_FILE.exists():
        CONFIG_FILE.unlink()

    logger.info("Configuration reset")
