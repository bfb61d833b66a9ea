"""
Configuration for the OpenPGP batch exchange job.

Two layers:
- Config: where the job keeps its own files (logs, certificates) and which gpg to run
- Runtime settings: the flat key/value map loaded from a scenario JSON file
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Optional

from pgpcrypto.errors import ConfigurationError
from pgpcrypto.models import RuntimeSettings, freeze_settings

# Application version - update this for each release
VERSION = "1.0.0"

# Serilog-style level names used in appsettings.json
LOG_LEVELS = {
    "verbose": logging.DEBUG,
    "debug": logging.DEBUG,
    "information": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


@dataclass
class Config:
    """Application configuration."""

    # Storage paths
    STORAGE_DIR: Path = Path(os.getenv("PGP_BATCH_HOME", Path.home() / ".pgp_batch"))

    # Application settings with scenario mappings
    APPSETTINGS_PATH: Path = Path(os.getenv("PGP_BATCH_APPSETTINGS", "appsettings.json"))

    # GnuPG settings
    GNUPG_HOME: Optional[str] = os.getenv("GNUPGHOME")
    GPG_BINARY: str = os.getenv("PGP_BATCH_GPG_BINARY", "gpg")
    ARMOR: bool = True

    @property
    def logs_dir(self) -> Path:
        """Directory for log files."""
        path = self.STORAGE_DIR / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def certs_dir(self) -> Path:
        """Directory for data protection certificates and their keys."""
        path = self.STORAGE_DIR / "certs"
        path.mkdir(parents=True, exist_ok=True)
        return path


def _flatten(node: Any, result: dict[str, str], key: Optional[str] = None) -> None:
    """Store each leaf under its own name; parent section names are dropped."""
    if isinstance(node, dict):
        for child_key, child in node.items():
            _flatten(child, result, child_key)
    elif isinstance(node, list):
        for index, child in enumerate(node):
            _flatten(child, result, str(index))
    elif key is not None:
        if node is None:
            result[key] = ""
        elif isinstance(node, bool):
            result[key] = "True" if node else "False"
        else:
            result[key] = str(node)


def _read_json(path: Optional[Path]) -> Any:
    if path is None or not str(path).strip():
        raise FileNotFoundError("Configuration file path is empty")
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file [{path}] NOT FOUND!")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Configuration file [{path}] is not valid JSON: {e}") from e


def load_settings(path: Optional[Path]) -> RuntimeSettings:
    """
    Load a scenario JSON file and flatten it to key/value pairs.

    Sections only group settings: {"SenderConfiguration": {"SenderEmailAddress": "a@b"}}
    yields {"SenderEmailAddress": "a@b"}. Array items are keyed "0", "1", ...

    Args:
        path: Path to the JSON file

    Returns:
        Read-only flat settings map

    Raises:
        FileNotFoundError: If the path is blank or the file does not exist
        ConfigurationError: If the file is not a JSON object
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file [{path}] must contain a JSON object")

    result: dict[str, str] = {}
    _flatten(data, result)
    return freeze_settings(result)


def resolve_scenario(appsettings_path: Path, scenario: str) -> Path:
    """
    Look up a scenario's settings file in appsettings.json.

    Args:
        appsettings_path: Path to appsettings.json
        scenario: Key under "ScenarioConfigurations", e.g. "Config_RunAsSender_for_SystemA"

    Returns:
        Path to the scenario file, relative paths resolved against appsettings' folder
    """
    appsettings = _read_json(appsettings_path)
    scenarios = appsettings.get("ScenarioConfigurations") if isinstance(appsettings, dict) else None
    if not isinstance(scenarios, dict) or not scenarios.get(scenario):
        raise ConfigurationError(f"Scenario [{scenario}] not found in [{appsettings_path}]")

    scenario_path = Path(scenarios[scenario])
    if not scenario_path.is_absolute():
        scenario_path = Path(appsettings_path).parent / scenario_path
    return scenario_path


def log_level_from_appsettings(appsettings_path: Path, default: int = logging.INFO) -> int:
    """Read Logging.MinimumLevel (or Serilog.MinimumLevel) from appsettings.json."""
    try:
        appsettings = _read_json(appsettings_path)
    except (FileNotFoundError, ConfigurationError):
        return default
    if not isinstance(appsettings, dict):
        return default

    for section in ("Logging", "Serilog"):
        values = appsettings.get(section)
        if not isinstance(values, dict):
            continue
        level = values.get("MinimumLevel")
        if isinstance(level, dict):
            level = level.get("Default")
        if isinstance(level, str) and level.strip().lower() in LOG_LEVELS:
            return LOG_LEVELS[level.strip().lower()]
    return default


# Global config instance
config = Config()
