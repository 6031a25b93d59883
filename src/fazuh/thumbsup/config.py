import os
from pathlib import Path
import stat
from typing import Self

from dotenv import dotenv_values
from loguru import logger

from fazuh.thumbsup.aur.path import Path as AurPath
from fazuh.thumbsup.error import ConfigError
from fazuh.thumbsup.model import Credentials

DEFAULT_CONFIG_FILE = Path("~/.config/aur-thumbsup.env").expanduser()


def is_file_secure(path: str | os.PathLike) -> bool:
    """Check if a file is readable and writable by its owner only."""
    mode = stat.S_IMODE(os.stat(path).st_mode)
    return mode & 0o666 == 0o600


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def create_config(path: str | os.PathLike, username: str, password: str):
    """Writes a new env file with owner-only permissions. Never overwrites."""
    path = Path(path).expanduser()
    if path.exists():
        raise ConfigError(f"`{path}` already exists.")
    if not username or not password:
        raise ConfigError("Username and password are required.")

    path.parent.mkdir(parents=True, exist_ok=True)
    content = f'AUR_USERNAME="{_escape(username)}"\nAUR_PASSWORD="{_escape(password)}"\n'
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    logger.info(f"Created `{path}`")


class Config:
    """Application configuration manager.

    Reads the AUR account and the client tuning knobs from an env file and the
    process environment. Values in the env file take priority over the
    environment. The env file holds a password, so it must be private to its
    owner.
    """

    _instance: Self | None = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def load(self, path: str | os.PathLike | None = None) -> Self:
        """Load configuration

        The priority is env file > environment variables.
        An explicit `path` must exist; the default file is optional.
        """
        env_path = Path(path).expanduser() if path else DEFAULT_CONFIG_FILE
        values: dict[str, str | None] = dict(os.environ)

        if env_path.exists():
            if not is_file_secure(env_path):
                raise ConfigError(f"`{env_path}` file is not secure. Run `chmod 600 {env_path}`.")
            values.update(dotenv_values(env_path, interpolate=False))
            logger.debug(f"Loaded configuration from {env_path}")
        elif path:
            raise ConfigError(f"`{env_path}` does not exist.")

        username = values.get("AUR_USERNAME")
        password = values.get("AUR_PASSWORD")
        if not username:
            raise ConfigError("User name is required (AUR_USERNAME).")
        if not password:
            raise ConfigError("Password is required (AUR_PASSWORD).")

        self.path = env_path
        self.username = username
        self.password = password

        self.aur_url = values.get("AUR_URL") or AurPath.HOSTNAME
        self.page_size = self._positive_int(values, "AUR_PAGE_SIZE", 250)
        self.timeout = self._positive_float(values, "AUR_TIMEOUT", 30.0)
        self.max_attempts = self._positive_int(values, "AUR_MAX_ATTEMPTS", 3)
        self.backoff = self._positive_float(values, "AUR_BACKOFF", 1.0, allow_zero=True)
        self.workers = self._positive_int(values, "AUR_WORKERS", 8)
        self.verify_exists = self._is_truthy(values.get("AUR_VERIFY_EXISTS") or "true")
        return self

    @property
    def credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)

    @staticmethod
    def _positive_int(values: dict[str, str | None], key: str, default: int) -> int:
        raw = values.get(key)
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError as e:
            raise ConfigError(f"{key} must be an integer, got {raw!r}.") from e
        if value < 1:
            raise ConfigError(f"{key} must be positive, got {value}.")
        return value

    @staticmethod
    def _positive_float(
        values: dict[str, str | None], key: str, default: float, allow_zero: bool = False
    ) -> float:
        raw = values.get(key)
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError as e:
            raise ConfigError(f"{key} must be a number, got {raw!r}.") from e
        if value < 0 or (value == 0 and not allow_zero):
            raise ConfigError(f"{key} must be positive, got {value}.")
        return value

    def _is_truthy(self, bool_value: str) -> bool:
        return bool_value.lower() in (
            "true",
            "1",
            "yes",
        )
