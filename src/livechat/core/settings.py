"""Settings management for the chat client."""

import json
import logging
import os
import stat
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import keyring
from appdirs import user_config_dir, user_data_dir
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

APP_NAME = "livechat"
APP_AUTHOR = "livechat"

DEFAULT_API_BASE_URL = "http://localhost:5000/api"
DEFAULT_SOCKET_URL = "ws://localhost:3001/chat"

KEYRING_USERNAME = "access_token"


def get_config_dir() -> Path:
    """Get the configuration directory."""
    path = Path(user_config_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Get the data directory."""
    path = Path(user_data_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


class TokenStore:
    """The viewer's access token in the system keyring.

    Only one secret is kept. When keyring has nothing but its fail backend
    the store is unavailable and the token stays in settings.json.
    """

    def __init__(self, service: str = APP_NAME, username: str = KEYRING_USERNAME):
        self.service = service
        self.username = username
        self._available: bool | None = None

    @property
    def available(self) -> bool:
        if self._available is None:
            backend = keyring.get_keyring()
            self._available = not isinstance(backend, FailKeyring)
            if self._available:
                logger.info(f"Storing access token in keyring ({type(backend).__name__})")
            else:
                logger.info("No keyring backend, access token stays in settings file")
        return self._available

    def get(self) -> str:
        if not self.available:
            return ""
        try:
            return keyring.get_password(self.service, self.username) or ""
        except KeyringError as e:
            logger.warning(f"Failed to read access token from keyring: {e}")
            return ""

    def set(self, token: str) -> bool:
        """Store ``token``, or forget it when empty.

        Returns False when the token must be kept in settings.json instead.
        """
        if not self.available:
            return False
        try:
            if token:
                keyring.set_password(self.service, self.username, token)
            else:
                keyring.delete_password(self.service, self.username)
        except PasswordDeleteError:
            pass  # Nothing stored
        except KeyringError as e:
            logger.warning(f"Failed to store access token in keyring: {e}")
            return False
        return True


token_store = TokenStore()


@dataclass
class ChatDisplaySettings:
    """Viewer display preferences."""

    timestamps: bool = True
    animations: bool = True
    sounds: bool = True
    colored_names: bool = True
    font_size: str = "medium"  # small, medium, large
    theme: str = "dark"  # dark or light


@dataclass
class ConnectionSettings:
    """Transport settings."""

    max_reconnect_attempts: int = 10  # 0 = unlimited


@dataclass
class AccountSettings:
    """Viewer account. The token lives in the keyring when available."""

    user_id: str = ""
    username: str = ""
    access_token: str = ""
    tier: str = "free"


@dataclass
class Settings:
    """Application settings."""

    api_base_url: str = DEFAULT_API_BASE_URL
    socket_url: str = DEFAULT_SOCKET_URL
    history_limit: int = 50
    max_messages: int = 1000

    account: AccountSettings = field(default_factory=AccountSettings)
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    display: ChatDisplaySettings = field(default_factory=ChatDisplaySettings)

    @classmethod
    def load(cls, path: Path | None = None, tokens: TokenStore | None = None) -> "Settings":
        """Load settings from file.

        A token found in the keyring wins over one in the file. A token that
        is only in the file is moved into the keyring and the file rewritten.
        """
        tokens = tokens or token_store
        if path is None:
            path = get_config_dir() / "settings.json"

        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            settings = cls._from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load settings from {path}, using defaults: {e}")
            return cls()

        if tokens.available:
            stored = tokens.get()
            if stored:
                settings.account.access_token = stored
            elif settings.account.access_token and tokens.set(settings.account.access_token):
                settings.save(path, tokens)

        return settings

    def save(self, path: Path | None = None, tokens: TokenStore | None = None) -> None:
        """Save settings to file."""
        tokens = tokens or token_store
        if path is None:
            path = get_config_dir() / "settings.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        in_keyring = tokens.set(self.account.access_token)

        # Atomic write: write to temp file then rename to prevent corruption on crash
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix="settings_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._to_dict(exclude_secrets=in_keyring), f, indent=2)
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        if not in_keyring:
            # The token is in the file, so keep it owner-only
            try:
                os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
            except OSError as e:
                logger.debug(f"Could not set permissions on {path}: {e}")

    @staticmethod
    def _validate_int(value, default: int, min_val: int = 0, max_val: int | None = None) -> int:
        """Validate and constrain an integer value."""
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create Settings from a dictionary with validation."""
        settings = cls()

        settings.api_base_url = data.get("api_base_url", settings.api_base_url)
        settings.socket_url = data.get("socket_url", settings.socket_url)
        settings.history_limit = cls._validate_int(
            data.get("history_limit"), 50, min_val=10, max_val=500
        )
        settings.max_messages = cls._validate_int(
            data.get("max_messages"), 1000, min_val=100, max_val=10000
        )

        if "account" in data:
            a = data["account"]
            settings.account = AccountSettings(
                user_id=a.get("user_id", ""),
                username=a.get("username", ""),
                access_token=a.get("access_token", ""),
                tier=a.get("tier", "free"),
            )

        if "connection" in data:
            c = data["connection"]
            settings.connection = ConnectionSettings(
                max_reconnect_attempts=cls._validate_int(
                    c.get("max_reconnect_attempts"), 10, min_val=0, max_val=100
                ),
            )

        if "display" in data:
            d = data["display"]
            defaults = ChatDisplaySettings()
            font_size = d.get("font_size", defaults.font_size)
            theme = d.get("theme", defaults.theme)
            settings.display = ChatDisplaySettings(
                timestamps=d.get("timestamps", defaults.timestamps),
                animations=d.get("animations", defaults.animations),
                sounds=d.get("sounds", defaults.sounds),
                colored_names=d.get("colored_names", defaults.colored_names),
                font_size=font_size if font_size in ("small", "medium", "large") else "medium",
                theme=theme if theme in ("dark", "light") else "dark",
            )

        return settings

    def _to_dict(self, exclude_secrets: bool = False) -> dict:
        """Convert Settings to a dictionary.

        If exclude_secrets is True, the access token is omitted
        (it is stored in the system keyring instead).
        """
        return {
            "api_base_url": self.api_base_url,
            "socket_url": self.socket_url,
            "history_limit": self.history_limit,
            "max_messages": self.max_messages,
            "account": {
                "user_id": self.account.user_id,
                "username": self.account.username,
                "tier": self.account.tier,
                **({"access_token": self.account.access_token} if not exclude_secrets else {}),
            },
            "connection": {
                "max_reconnect_attempts": self.connection.max_reconnect_attempts,
            },
            "display": {
                "timestamps": self.display.timestamps,
                "animations": self.display.animations,
                "sounds": self.display.sounds,
                "colored_names": self.display.colored_names,
                "font_size": self.display.font_size,
                "theme": self.display.theme,
            },
        }
