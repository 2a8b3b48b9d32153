"""
dicevault/config.py

Runtime configuration.

Program identity constants (dice program, system program, Ed25519
signature-verification program, instructions sysvar) are configuration, not
globals: the ledger and the dice program receive them from a DiceConfig, so
tests and alternative deployments can inject their own ids.

Sources, in increasing precedence:
    1. DiceConfig defaults
    2. YAML file (load_config(path))
    3. DICEVAULT_* environment variables

YAML layout:

    programs:
      dice: <64 hex>
      system: <64 hex>
      ed25519: <64 hex>
      instructions_sysvar: <64 hex>
    refund_timeout_slots: 1000
    rent:
      lamports_per_byte_year: 3480
      exemption_threshold_years: 2
    journal: .dicevault/journal.jsonl
    log_level: INFO
"""

import hashlib
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from dicevault.core.exceptions import ConfigError

ENV_JOURNAL         = "DICEVAULT_JOURNAL"
ENV_LOG_LEVEL       = "DICEVAULT_LOG_LEVEL"
ENV_REFUND_TIMEOUT  = "DICEVAULT_REFUND_TIMEOUT_SLOTS"

# Storage overhead charged per account on top of its data length.
ACCOUNT_STORAGE_OVERHEAD = 128


def _label_id(label: str) -> bytes:
    return hashlib.sha256(label.encode("utf-8")).digest()


@dataclass(frozen=True)
class DiceConfig:
    """Immutable runtime configuration shared by the ledger and the dice program."""

    program_id:             bytes = field(default_factory=lambda: _label_id("dicevault:program:dice"))
    system_program_id:      bytes = bytes(32)
    ed25519_program_id:     bytes = field(default_factory=lambda: _label_id("dicevault:program:ed25519"))
    instructions_sysvar_id: bytes = field(default_factory=lambda: _label_id("dicevault:sysvar:instructions"))

    refund_timeout_slots:      int = 1000
    lamports_per_byte_year:    int = 3480
    exemption_threshold_years: int = 2

    journal_path: Optional[str] = None
    log_level:    str = "INFO"

    def __post_init__(self) -> None:
        ids = {
            "program_id":             self.program_id,
            "system_program_id":      self.system_program_id,
            "ed25519_program_id":     self.ed25519_program_id,
            "instructions_sysvar_id": self.instructions_sysvar_id,
        }
        for name, value in ids.items():
            if not isinstance(value, bytes) or len(value) != 32:
                raise ConfigError(f"{name} must be 32 bytes")
        if len(set(ids.values())) != len(ids):
            raise ConfigError("Program ids must be distinct")
        if self.refund_timeout_slots < 0:
            raise ConfigError(
                "refund_timeout_slots must be >= 0",
                {"value": self.refund_timeout_slots},
            )
        if self.lamports_per_byte_year < 0 or self.exemption_threshold_years < 0:
            raise ConfigError("Rent parameters must be >= 0")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ConfigError("Unknown log level", {"log_level": self.log_level})

    def rent_exempt_minimum(self, data_len: int) -> int:
        """Lamports an account of data_len bytes must hold to be rent exempt."""
        return (
            (ACCOUNT_STORAGE_OVERHEAD + data_len)
            * self.lamports_per_byte_year
            * self.exemption_threshold_years
        )


def _parse_id(name: str, value: Any) -> bytes:
    try:
        raw = bytes.fromhex(str(value))
    except ValueError as exc:
        raise ConfigError(f"{name} is not valid hex", {"value": value}) from exc
    if len(raw) != 32:
        raise ConfigError(f"{name} must decode to 32 bytes", {"length": len(raw)})
    return raw


def _parse_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer", {"value": value}) from exc


def config_from_dict(data: Mapping[str, Any], base: Optional[DiceConfig] = None) -> DiceConfig:
    """Overlay a parsed YAML mapping onto base (defaults if omitted)."""
    base = base or DiceConfig()
    changes: Dict[str, Any] = {}

    programs = data.get("programs") or {}
    if not isinstance(programs, Mapping):
        raise ConfigError("'programs' must be a mapping")
    for key, attr in (
        ("dice",                "program_id"),
        ("system",              "system_program_id"),
        ("ed25519",             "ed25519_program_id"),
        ("instructions_sysvar", "instructions_sysvar_id"),
    ):
        if key in programs:
            changes[attr] = _parse_id(f"programs.{key}", programs[key])

    if "refund_timeout_slots" in data:
        changes["refund_timeout_slots"] = _parse_int(
            "refund_timeout_slots", data["refund_timeout_slots"]
        )

    rent = data.get("rent") or {}
    if not isinstance(rent, Mapping):
        raise ConfigError("'rent' must be a mapping")
    for key in ("lamports_per_byte_year", "exemption_threshold_years"):
        if key in rent:
            changes[key] = _parse_int(f"rent.{key}", rent[key])

    if data.get("journal") is not None:
        changes["journal_path"] = str(data["journal"])
    if data.get("log_level") is not None:
        changes["log_level"] = str(data["log_level"])

    return replace(base, **changes)


def apply_env(config: DiceConfig, environ: Optional[Mapping[str, str]] = None) -> DiceConfig:
    """Apply DICEVAULT_* environment overrides."""
    environ = os.environ if environ is None else environ
    changes: Dict[str, Any] = {}
    if environ.get(ENV_JOURNAL):
        changes["journal_path"] = environ[ENV_JOURNAL]
    if environ.get(ENV_LOG_LEVEL):
        changes["log_level"] = environ[ENV_LOG_LEVEL]
    if environ.get(ENV_REFUND_TIMEOUT):
        changes["refund_timeout_slots"] = _parse_int(
            ENV_REFUND_TIMEOUT, environ[ENV_REFUND_TIMEOUT]
        )
    return replace(config, **changes) if changes else config


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DiceConfig:
    """
    Load configuration from an optional YAML file plus environment overrides.

    Raises ConfigError if the file is missing, unparseable or holds bad values.
    """
    config = DiceConfig()
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise ConfigError(f"Config file {path} must contain a mapping")
        config = config_from_dict(data, config)
    return apply_env(config, environ)


def configure_logging(level: str = "INFO") -> None:
    """Install a basic stderr handler unless the application already has one."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        root.setLevel(level.upper())
