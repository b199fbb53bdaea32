"""Configuration management for pledger.

Provides a JSON configuration file in the XDG config directory with sensible
defaults. A missing configuration is created on first use with a random
encryption passphrase.
"""

import copy
import json
import logging
import os
import secrets
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pledger.core.exceptions import ConfigurationError, ExistingFileError
from pledger.core.models import Mode

logger = logging.getLogger(__name__)

APP_NAME = "pledger"
CONFIG_FILENAME = "config.json"
CONFIG_ENV = "PLEDGER_CONFIG"
PASSPHRASE_LENGTH = 32

# Default configuration (used for keys the user hasn't configured)
DEFAULT_CONFIG = {
    "encryption": None,
    "files": {
        "ledger": None,  # Computed: <config dir>/ledger.csv
        "networth": None,  # Computed: <config dir>/networth.csv
    },
    "currency": "EUR",
    "transfer": "Transfer",
    "ignored_accounts": ["Personal"],
    # Example: {"base_path": "https://firefly.example.com",
    #           "token": "...", "opening_balance": "Opening Balance"}
    "firefly": None,
}


def config_dir() -> Path:
    """XDG configuration directory of the application."""
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_NAME


def config_path() -> Path:
    """Path of the configuration file, honouring PLEDGER_CONFIG."""
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return config_dir() / CONFIG_FILENAME


def random_passphrase(length: int = PASSPHRASE_LENGTH) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class FireflyOptions:
    """Connection settings for Firefly III."""
    base_path: str
    token: str
    opening_balance: str = "Opening Balance"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FireflyOptions":
        try:
            return cls(
                base_path=str(data["base_path"]).rstrip("/"),
                token=str(data["token"]),
                opening_balance=data.get("opening_balance") or "Opening Balance",
            )
        except KeyError as e:
            raise ConfigurationError(f"Missing firefly option: {e.args[0]}") from e

    def to_dict(self) -> Dict[str, str]:
        return {
            "base_path": self.base_path,
            "token": self.token,
            "opening_balance": self.opening_balance,
        }


@dataclass
class Config:
    """Complete pledger configuration."""
    ledger_file: str
    networth_file: str
    encryption: Optional[str] = None
    currency: str = "EUR"
    transfer: str = "Transfer"
    ignored_accounts: List[str] = field(default_factory=lambda: ["Personal"])
    firefly: Optional[FireflyOptions] = None
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Optional[Path] = None) -> "Config":
        """Create Config from a dictionary, filling gaps from DEFAULT_CONFIG."""
        merged = _merge(DEFAULT_CONFIG, data)
        directory = path.parent if path else config_dir()
        files = merged.get("files") or {}
        firefly = merged.get("firefly")

        return cls(
            ledger_file=files.get("ledger") or str(directory / "ledger.csv"),
            networth_file=files.get("networth") or str(directory / "networth.csv"),
            encryption=merged.get("encryption") or None,
            currency=str(merged["currency"]).upper(),
            transfer=merged["transfer"],
            ignored_accounts=list(merged["ignored_accounts"] or []),
            firefly=FireflyOptions.from_dict(firefly) if firefly else None,
            path=path,
        )

    @classmethod
    def default(cls, path: Optional[Path] = None) -> "Config":
        """Fresh configuration with a random passphrase."""
        data = copy.deepcopy(DEFAULT_CONFIG)
        data["encryption"] = random_passphrase()
        return cls.from_dict(data, path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "encryption": self.encryption,
            "files": {"ledger": self.ledger_file, "networth": self.networth_file},
            "currency": self.currency,
            "transfer": self.transfer,
            "ignored_accounts": list(self.ignored_accounts),
            "firefly": self.firefly.to_dict() if self.firefly else None,
        }

    def filepath(self, mode: Mode) -> Path:
        """File backing ``mode``, with ``~`` expanded."""
        path = self.networth_file if mode is Mode.NETWORTH else self.ledger_file
        return Path(path).expanduser()

    @property
    def passphrase(self) -> Optional[str]:
        return self.encryption

    def save(self, path: Optional[Path] = None, force: bool = True) -> Path:
        target = Path(path or self.path or config_path())
        if target.exists() and not force:
            raise ExistingFileError(str(target))
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")
        self.path = target
        logger.info("Saved configuration to %s", target)
        return target


def _merge(defaults: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(defaults)
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: Union[str, Path, None] = None) -> Config:
    """
    Load the configuration, creating the default one when missing.

    Args:
        path: Explicit configuration file (default: PLEDGER_CONFIG or XDG)

    Returns:
        Config instance

    Raises:
        ConfigurationError: If the file is not valid JSON
    """
    target = Path(path).expanduser() if path else config_path()

    if not target.exists():
        logger.info("No configuration at %s, creating default one", target)
        config = Config.default(target)
        config.save(target)
        return config

    try:
        with open(target, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid configuration file {target}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid configuration file {target}: expected an object")

    return Config.from_dict(data, target)
