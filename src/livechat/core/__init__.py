"""Core settings for livechat."""

from .settings import Settings, TokenStore, get_config_dir, get_data_dir

__all__ = [
    "Settings",
    "TokenStore",
    "get_config_dir",
    "get_data_dir",
]
