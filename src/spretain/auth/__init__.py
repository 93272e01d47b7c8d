"""Authentication, configuration and SharePoint REST client."""

from .sharepoint import (
    SharePointClient,
    SiteSession,
    SharePointAuthError,
    SharePointAPIError,
    ListInfo,
    ListItem,
    RetentionLabel,
    is_available,
)
from .config import (
    Config,
    RunSettings,
    ThrottleSettings,
    ConfigurationError,
    get_config_dir,
    CONFIG_DIR,
    DEFAULT_IGNORED_LISTS,
)

__all__ = [
    # SharePoint client
    "SharePointClient",
    "SiteSession",
    "SharePointAuthError",
    "SharePointAPIError",
    "ListInfo",
    "ListItem",
    "RetentionLabel",
    "is_available",
    # Config
    "Config",
    "RunSettings",
    "ThrottleSettings",
    "ConfigurationError",
    "get_config_dir",
    "CONFIG_DIR",
    "DEFAULT_IGNORED_LISTS",
]
