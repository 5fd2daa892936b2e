"""
Configuration for payer organizations.

Settings are resolved once at startup from, in order: an explicit path, the
ACCTPOOL_CONFIG environment variable, ~/.config/acctpool/config.yaml, and the
built-in defaults below. The resolved PayerConfig is passed explicitly to the
allocator and reclaimer.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

import yaml

from .errors import ConfigurationError, UnknownPayerError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ACCTPOOL_CONFIG"
LOCK_TABLE_ENV_VAR = "ACCTPOOL_LOCK_TABLE"
DEFAULT_CONFIG_PATH = Path("~/.config/acctpool/config.yaml")

ADMIN_ROLE_NAME = "OrganizationAccountAccessRole"
DEFAULT_REGION = "us-east-1"
DEFAULT_SESSION_DURATION = 900  # sts minimum

HIVE_SHARDS = (
    "hivei01ue1", "hive-stage-1", "hives02ue1", "hive-stage-v3", "hive-integration-v3",
    "hivep01ue1", "hivep02ue1", "hivep03uw1", "hivep04uw1", "hive-production-v3",
)

DEFAULT_PAYERS: Dict[str, Dict[str, Any]] = {
    "osd-staging-1": {"root_id": "r-0wd6", "claimed_ou_id": "ou-0wd6-z6tzkjek"},
    "osd-staging-2": {"root_id": "r-rs3h", "claimed_ou_id": "ou-rs3h-ry0hn2l9"},
}


@dataclass(frozen=True)
class PayerConfig:
    """Where a payer's pool lives and how to reach into its member accounts."""
    name: str
    root_id: str
    claimed_ou_id: str
    profile: Optional[str] = None
    region: str = DEFAULT_REGION
    partition: str = "aws"
    admin_role_name: str = ADMIN_ROLE_NAME
    role_chain: Tuple[str, ...] = ()
    session_duration: int = DEFAULT_SESSION_DURATION
    lock_table: Optional[str] = None
    account_name_prefix: str = "osd-creds-mgmt"
    account_email_domain: str = "redhat.com"

    @property
    def aws_profile(self) -> str:
        return self.profile or self.name

    def admin_role_arn(self, account_id: str) -> str:
        return f"arn:{self.partition}:iam::{account_id}:role/{self.admin_role_name}"


@dataclass(frozen=True)
class Settings:
    payers: Dict[str, PayerConfig]
    reserved_owners: Tuple[str, ...] = HIVE_SHARDS
    reserved_prefixes: Tuple[str, ...] = ("hive",)
    session_name_prefix: str = "acctpool"
    source: Optional[Path] = None

    def payer(self, name: str) -> PayerConfig:
        """
        Look up a payer by name.

        Raises:
            UnknownPayerError: If the payer is not configured
        """
        try:
            return self.payers[name]
        except KeyError:
            raise UnknownPayerError(name, known_payers(self)) from None


def _payer_from_dict(name: str, data: Dict[str, Any]) -> PayerConfig:
    missing = [key for key in ("root_id", "claimed_ou_id") if not data.get(key)]
    if missing:
        raise ConfigurationError(f"Payer {name} is missing {', '.join(missing)}")

    known = set(PayerConfig.__dataclass_fields__) - {"name"}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Payer {name} has unknown keys: {', '.join(sorted(unknown))}")

    values = dict(data)
    if "role_chain" in values:
        chain = values["role_chain"] or []
        if isinstance(chain, str):
            chain = [chain]
        values["role_chain"] = tuple(chain)
    if "session_duration" in values:
        try:
            values["session_duration"] = int(values["session_duration"])
        except (TypeError, ValueError):
            raise ConfigurationError(f"Payer {name} has a non-integer session_duration") from None
        if not 900 <= values["session_duration"] <= 43200:
            raise ConfigurationError(f"Payer {name} session_duration must be between 900 and 43200 seconds")

    return PayerConfig(name=name, **values)


def settings_from_dict(data: Dict[str, Any], source: Optional[Path] = None) -> Settings:
    """
    Build Settings from parsed configuration data.

    Args:
        data: Mapping with optional keys payers, reserved_owners,
            reserved_prefixes, session_name_prefix
        source: File the data came from, for error messages

    Returns:
        Settings with the ACCTPOOL_LOCK_TABLE override applied
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {source or '<defaults>'} must be a mapping")

    payer_data = data.get("payers", DEFAULT_PAYERS)
    if not isinstance(payer_data, dict) or not payer_data:
        raise ConfigurationError("At least one payer must be configured")

    payers = {name: _payer_from_dict(name, values or {}) for name, values in payer_data.items()}

    lock_table = os.environ.get(LOCK_TABLE_ENV_VAR)
    if lock_table:
        payers = {
            name: payer if payer.lock_table else replace(payer, lock_table=lock_table)
            for name, payer in payers.items()
        }

    kwargs: Dict[str, Any] = {}
    for key in ("reserved_owners", "reserved_prefixes"):
        if key in data:
            kwargs[key] = tuple(data[key] or ())
    if data.get("session_name_prefix"):
        kwargs["session_name_prefix"] = str(data["session_name_prefix"])

    return Settings(payers=payers, source=source, **kwargs)


def find_config_path(explicit: Optional[str] = None) -> Optional[Path]:
    """Return the configuration file to use, or None for built-in defaults."""
    if explicit:
        return Path(explicit).expanduser()
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.exists():
        return default
    return None


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from a YAML or JSON file, falling back to defaults.

    Raises:
        ConfigurationError: If the file is unreadable or invalid
    """
    config_path = find_config_path(path)
    if config_path is None:
        logger.debug("No configuration file found, using built-in payers")
        return settings_from_dict({})

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid configuration file {config_path}: {e}") from e

    logger.debug(f"Loaded configuration from {config_path}")
    return settings_from_dict(data, source=config_path)


def known_payers(settings: Settings) -> List[str]:
    return sorted(settings.payers)
