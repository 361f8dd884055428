"""
Configuration Store
Loads and saves the persisted daemon configuration (YAML) and the process settings
taken from the environment
"""
import os
import logging
import tempfile
import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import CorruptConfigError
from .vault import CredentialVault

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = os.path.expanduser("~/.smartermeter")
DEFAULT_DATA_DIR = os.path.expanduser("~/smartermeter/data")

KNOWN_KEYS = ("username", "password", "data_dir", "start_date", "transport", "transport_config")


@dataclass(frozen=True)
class Configuration:
    """
    Persisted daemon configuration.

    The password is held in its encoded form; use ConfigStore.password() for the
    clear text. Keys this version does not know about are kept in extras and
    written back on save.
    """
    data_dir: str = DEFAULT_DATA_DIR
    start_date: date = field(default_factory=lambda: date.today() - timedelta(days=1))
    username: Optional[str] = None
    password: Optional[str] = None
    transport: Optional[str] = None
    transport_config: Dict[str, Any] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable mapping, unknown keys included"""
        data = dict(self.extras)
        data.update({
            "username": self.username,
            "password": self.password,
            "data_dir": self.data_dir,
            "start_date": self.start_date,
            "transport": self.transport,
            "transport_config": dict(self.transport_config),
        })
        return data

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], path: str = "<memory>") -> "Configuration":
        """
        Build a Configuration from a loaded YAML mapping.

        Accepts the symbol style keys (":username") written by older releases.
        """
        data = {_strip_symbol(key): value for key, value in raw.items()}

        transport = data.get("transport")
        if transport is not None:
            transport = _strip_symbol(str(transport))
            if transport in ("", "none"):
                transport = None

        transport_config = data.get("transport_config")
        if transport_config is None and transport and isinstance(data.get(transport), Mapping):
            transport_config = data.pop(transport)
        if transport_config is None:
            transport_config = {}
        if not isinstance(transport_config, Mapping):
            raise CorruptConfigError(path, "transport_config must be a mapping")

        defaults = cls()
        return cls(
            data_dir=os.path.expanduser(str(data.get("data_dir") or defaults.data_dir)),
            start_date=_parse_start_date(data.get("start_date"), defaults.start_date, path),
            username=data.get("username"),
            password=data.get("password"),
            transport=transport,
            transport_config={_strip_symbol(k): v for k, v in transport_config.items()},
            extras={k: v for k, v in data.items() if k not in KNOWN_KEYS},
        )


def _strip_symbol(key: Any) -> Any:
    if isinstance(key, str):
        return key.lstrip(":")
    return key


def _parse_start_date(value: Any, default: date, path: str) -> date:
    if value is None:
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise CorruptConfigError(path, f"start_date {value!r} is not a YYYY-MM-DD date")


class ConfigStore:
    """Owns the current Configuration and its file on disk"""

    def __init__(self, path: str = DEFAULT_CONFIG_FILE, vault: Optional[CredentialVault] = None):
        self.path = os.path.expanduser(path)
        self.vault = vault or CredentialVault()
        self.current = Configuration()

    def load(self) -> Configuration:
        """
        Load the configuration from disk.

        Returns defaults if the file does not exist.

        Raises:
            CorruptConfigError: The file exists but is not a YAML mapping
        """
        if not os.path.exists(self.path):
            logger.info(f"No configuration at {self.path}, using defaults")
            self.current = Configuration()
            return self.current

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise CorruptConfigError(self.path, str(e)) from e

        if not isinstance(raw, Mapping):
            raise CorruptConfigError(self.path, "expected a mapping at the top level")

        self.current = Configuration.from_dict(raw, self.path)
        logger.info(f"Loaded configuration from {self.path}")
        return self.current

    def reload(self) -> Configuration:
        """Re-read the file, keeping the in-memory value if the file is absent"""
        if not os.path.exists(self.path):
            return self.current
        return self.load()

    def save(self, config: Optional[Configuration] = None):
        """Atomically replace the file on disk with the given (or current) configuration"""
        if config is not None:
            self.current = config

        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".smartermeter-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(self.current.to_dict(), f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(f"Saved configuration to {self.path}")

    @staticmethod
    def is_complete(config: Configuration) -> bool:
        """True when both username and password are set"""
        return bool(config.username) and bool(config.password)

    def password(self, config: Optional[Configuration] = None) -> Optional[str]:
        """
        Clear-text password of the given (or current) configuration.

        Raises:
            CorruptConfigError: The stored password cannot be decoded
        """
        config = config or self.current
        try:
            return self.vault.decode(config.password)
        except ValueError as e:
            raise CorruptConfigError(self.path, "password cannot be decoded") from e

    def apply_missing_fields(self, supplied: Mapping[str, Any],
                             config: Optional[Configuration] = None) -> Configuration:
        """
        Merge fields supplied by the user and persist the result.

        A clear-text "password" in supplied is encoded before it is stored.

        Args:
            supplied: Field name to value, e.g. {"username": ..., "password": ...}
            config: Base configuration, defaults to the current one

        Returns:
            The new current configuration
        """
        base = config or self.current
        changes: Dict[str, Any] = {}
        extras = dict(base.extras)

        for key, value in supplied.items():
            key = _strip_symbol(key)
            if key == "password":
                changes["password"] = self.vault.encode(value) if value is not None else None
            elif key == "start_date":
                changes["start_date"] = _parse_start_date(value, base.start_date, self.path)
            elif key in KNOWN_KEYS:
                changes[key] = value
            else:
                extras[key] = value

        updated = dataclasses.replace(base, extras=extras, **changes)
        self.save(updated)
        return updated


@dataclass
class Settings:
    """Process settings that do not belong in the persisted configuration"""
    config_path: str = DEFAULT_CONFIG_FILE
    poll_interval: float = 3600.0
    wait_interval: float = 5.0
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Read SMARTERMETER_* variables, after loading a .env file if one exists"""
        load_dotenv(env_file)
        return cls(
            config_path=os.getenv("SMARTERMETER_CONFIG", DEFAULT_CONFIG_FILE),
            poll_interval=float(os.getenv("SMARTERMETER_POLL_INTERVAL", 3600)),
            wait_interval=float(os.getenv("SMARTERMETER_WAIT_INTERVAL", 5)),
            log_level=os.getenv("SMARTERMETER_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("SMARTERMETER_LOG_FORMAT", "json").lower(),
        )
