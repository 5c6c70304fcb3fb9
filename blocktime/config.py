"""
Configuration loading.

Precedence, lowest first: built-in defaults, JSON config file, BLOCKTIME_*
environment variables (a ``.env`` file is loaded by the command line), then
explicit overrides from command line flags.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from blocktime.errors import ConfigError
from blocktime.types import CalculatorConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.json"
ENV_PREFIX = "BLOCKTIME_"
CHAIN_TYPES = ("cosmos", "bitcoin")
OUTPUT_FORMATS = ("json", "text", "table")


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoint: str = "http://localhost:26657"
    chain_type: str = "cosmos"
    chain_id: str = "cosmoshub-4"
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    requests_per_second: float = 0.0  # 0 disables rate limiting


@dataclass(frozen=True)
class OutputConfig:
    format: str = "text"
    verbose: bool = False
    pretty_print: bool = True
    save_to_file: str = ""


@dataclass(frozen=True)
class Config:
    chain: ChainConfig = field(default_factory=ChainConfig)
    calculator: CalculatorConfig = field(default_factory=CalculatorConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def validate(self) -> list[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        chain, calc, output = self.chain, self.calculator, self.output

        if chain.chain_type not in CHAIN_TYPES:
            errors.append(f"chain type must be one of {', '.join(CHAIN_TYPES)}: {chain.chain_type}")
        if chain.timeout <= 0:
            errors.append("timeout must be positive")
        if chain.max_retries < 0:
            errors.append("max retries must be non-negative")
        if chain.retry_delay < 0:
            errors.append("retry delay must be non-negative")
        if chain.requests_per_second < 0:
            errors.append("requests per second must be non-negative")

        if calc.sample_size <= 0:
            errors.append("sample size must be positive")
        if calc.min_sample_size <= 0:
            errors.append("min sample size must be positive")
        if calc.min_sample_size > calc.sample_size:
            errors.append("min sample size cannot be greater than sample size")
        if calc.outlier_threshold <= 0:
            errors.append("outlier threshold must be positive")
        if not 0 < calc.confidence_level < 1:
            errors.append("confidence level must be between 0 and 1")
        if not 0 <= calc.trim_percent < 0.5:
            errors.append("trim percent must be between 0 and 0.5")

        if output.format not in OUTPUT_FORMATS:
            errors.append(f"invalid output format: {output.format} (must be json, text, or table)")

        return errors

    def to_dict(self) -> dict:
        return {
            "chain": asdict(self.chain),
            "calculator": asdict(self.calculator),
            "output": asdict(self.output),
        }

    def save(self, path: str) -> None:
        """Save configuration to file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")


_SECTIONS = {
    "chain": ChainConfig,
    "calculator": CalculatorConfig,
    "output": OutputConfig,
}

# BLOCKTIME_<name> -> (section, field)
ENV_KEYS = {
    "RPC": ("chain", "rpc_endpoint"),
    "CHAIN_TYPE": ("chain", "chain_type"),
    "CHAIN_ID": ("chain", "chain_id"),
    "TIMEOUT": ("chain", "timeout"),
    "MAX_RETRIES": ("chain", "max_retries"),
    "RETRY_DELAY": ("chain", "retry_delay"),
    "REQUESTS_PER_SECOND": ("chain", "requests_per_second"),
    "SAMPLE_SIZE": ("calculator", "sample_size"),
    "MIN_SAMPLE_SIZE": ("calculator", "min_sample_size"),
    "OUTLIER_THRESHOLD": ("calculator", "outlier_threshold"),
    "CONFIDENCE": ("calculator", "confidence_level"),
    "TRIM_PERCENT": ("calculator", "trim_percent"),
    "USE_MAD": ("calculator", "use_median_absolute"),
    "OUTPUT": ("output", "format"),
    "VERBOSE": ("output", "verbose"),
    "PRETTY_PRINT": ("output", "pretty_print"),
    "SAVE_TO_FILE": ("output", "save_to_file"),
}


def _coerce(value: Any, kind: type) -> Any:
    if kind is bool and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off", ""):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if kind is int and isinstance(value, float) and not value.is_integer():
        raise ValueError(f"not an integer: {value!r}")
    return kind(value)


def load_file(path: str) -> dict:
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigError([f"{path}: top level must be an object"])
    logger.info(f"Configuration loaded from {path}")
    return data


def load_env(environ: Optional[Mapping[str, str]] = None) -> dict:
    environ = os.environ if environ is None else environ
    data: dict[str, dict] = {}
    for name, (section, key) in ENV_KEYS.items():
        value = environ.get(ENV_PREFIX + name)
        if value is not None:
            data.setdefault(section, {})[key] = value
    return data


def _merge(base: dict, layer: Mapping) -> dict:
    merged = dict(base)
    for section, values in layer.items():
        current = merged.get(section)
        if isinstance(values, Mapping) and isinstance(current, Mapping):
            merged[section] = {**current, **values}
        elif isinstance(values, Mapping):
            merged[section] = dict(values)
        else:
            merged[section] = values
    return merged


def from_dict(data: Mapping) -> Config:
    problems = []
    sections = {}
    for section in data:
        if section not in _SECTIONS:
            problems.append(f"unknown config section: {section}")
    for section, cls in _SECTIONS.items():
        values = data.get(section) or {}
        if not isinstance(values, Mapping):
            problems.append(f"config section {section} must be an object")
            continue
        types = {f.name: type(f.default) for f in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            if key not in types:
                problems.append(f"unknown config key: {section}.{key}")
                continue
            try:
                kwargs[key] = _coerce(value, types[key])
            except (TypeError, ValueError) as e:
                problems.append(f"{section}.{key}: {e}")
        sections[section] = cls(**kwargs)

    if problems:
        raise ConfigError(problems)
    return Config(**sections)


def build_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Build and validate the effective configuration.

    Args:
        path: JSON config file. Without it ``config.json`` in the working
            directory is used when present.
        overrides: ``{section: {field: value}}`` from command line flags.
        environ: Environment to read BLOCKTIME_* variables from.

    Returns:
        Config: The validated configuration.

    Raises:
        ConfigError: Unreadable file, unknown keys, bad values or failed validation.
    """
    data: dict = {}
    if path is None and Path(DEFAULT_CONFIG_FILE).is_file():
        path = DEFAULT_CONFIG_FILE
    if path is not None:
        try:
            data = _merge(data, load_file(path))
        except (OSError, ValueError) as e:
            raise ConfigError([f"failed to read config file {path}: {e}"]) from e

    data = _merge(data, load_env(environ))
    data = _merge(data, overrides or {})

    config = from_dict(data)
    errors = config.validate()
    if errors:
        raise ConfigError(errors)
    return config
