"""
Pipeline Settings

Settings are read from a JSON file (config/pipeline.json by default, or the
file named by SIGNAL_PIPELINE_CONFIG) and then overridden by environment
variables. A missing file means defaults; an unreadable file is logged and
also falls back to defaults, as does any single value of the wrong type.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import SettingsError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "pipeline.json"
DEFAULT_STORE_DIR = PROJECT_ROOT / "data" / "history"

ENV_CONFIG_PATH = "SIGNAL_PIPELINE_CONFIG"

# Environment variable -> (settings field, parser)
ENV_OVERRIDES = {
    "SIGNAL_PIPELINE_STORE_DIR": ("store_dir", str),
    "SIGNAL_PIPELINE_SIGNAL_FILE": ("signal_file", str),
    "SIGNAL_PIPELINE_SIGNAL_URL": ("signal_url", str),
    "SIGNAL_PIPELINE_TIMEOUT": ("run_timeout_seconds", float),
    "SIGNAL_PIPELINE_INTERVAL": ("schedule_interval_seconds", float),
    "SIGNAL_PIPELINE_AUTO_TUNE": ("auto_tune", lambda v: v.strip().lower() in ("1", "true", "yes", "on")),
    "SIGNAL_PIPELINE_RUN_LOG": ("run_log_file", str),
}


@dataclass
class PipelineSettings:
    """Runtime settings for one pipeline instance."""
    store_dir: str = str(DEFAULT_STORE_DIR)
    signal_file: Optional[str] = None
    signal_url: Optional[str] = None
    http_timeout_seconds: float = 10.0

    run_timeout_seconds: float = 60.0
    schedule_interval_seconds: float = 3600.0
    stop_timeout_seconds: float = 10.0
    auto_tune: bool = True

    min_category_signals: int = 3

    # Caps for append-only histories kept in the store
    max_run_history: int = 500
    max_trend_history: int = 1000
    max_intelligence_history: int = 100
    max_digest_history: int = 100

    # Overrides for FilterRules (thresholds, weights, floor/ceiling)
    filter_rules: Dict[str, Any] = field(default_factory=dict)

    # Optional JSONL log of completed/failed runs
    run_log_file: Optional[str] = None

    def validate(self) -> None:
        """Raise SettingsError for values the pipeline cannot run with."""
        errors = []
        if self.run_timeout_seconds <= 0:
            errors.append("run_timeout_seconds must be > 0")
        if self.schedule_interval_seconds <= 0:
            errors.append("schedule_interval_seconds must be > 0")
        if self.stop_timeout_seconds < 0:
            errors.append("stop_timeout_seconds must be >= 0")
        if self.http_timeout_seconds <= 0:
            errors.append("http_timeout_seconds must be > 0")
        if self.min_category_signals < 1:
            errors.append("min_category_signals must be >= 1")
        for name in ("max_run_history", "max_trend_history",
                     "max_intelligence_history", "max_digest_history"):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be >= 1")
        if not isinstance(self.filter_rules, dict):
            errors.append("filter_rules must be an object")

        if errors:
            raise SettingsError(f"Invalid pipeline settings: {errors}")

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineSettings":
        """
        Build settings from a dict.

        Unknown keys are ignored with a warning. A value of the wrong type is
        logged as an error and the field keeps its default.
        """
        defaults = cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown pipeline settings: {unknown}")

        values = {}
        for name, value in data.items():
            if name not in known:
                continue
            default = getattr(defaults, name)
            try:
                values[name] = _coerce_setting(value, default)
            except TypeError:
                logger.error(
                    f"Pipeline setting {name}={value!r} should be "
                    f"{_expected_type(default)}, using default {default!r}"
                )
        return cls(**values)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _expected_type(default: Any) -> str:
    if default is None:
        return "a string or null"
    if isinstance(default, bool):
        return "true or false"
    if isinstance(default, int):
        return "a whole number"
    if isinstance(default, float):
        return "a number"
    if isinstance(default, dict):
        return "an object"
    return "a string"


def _coerce_setting(value: Any, default: Any) -> Any:
    """Check a file value against the type of the field's default."""
    if default is None:
        if value is None or isinstance(value, str):
            return value
    elif isinstance(default, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(default, int):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(default, float):
        if _is_number(value):
            return float(value)
    elif isinstance(default, dict):
        if isinstance(value, dict):
            return value
    elif isinstance(value, str):
        return value
    raise TypeError(f"unexpected {type(value).__name__}")


def _read_config_file(path: Path) -> Dict[str, Any]:
    """Read the settings file; problems are logged and yield {}."""
    if not path.exists():
        logger.info(f"No pipeline config at {path}, using defaults")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"Failed to read pipeline config {path}: {e}, using defaults")
        return {}

    if not isinstance(config, dict):
        logger.error(f"Pipeline config {path} is not a JSON object, using defaults")
        return {}

    logger.debug(f"Loaded pipeline config from {path}")
    return config


def _apply_env_overrides(settings: PipelineSettings, environ: Dict[str, str]) -> None:
    for env_name, (field_name, parse) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            value = parse(raw)
        except ValueError:
            raise SettingsError(f"{env_name}={raw!r} is not a valid value for {field_name}")
        setattr(settings, field_name, value)
        logger.debug(f"Setting {field_name} overridden by {env_name}")


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Dict[str, str]] = None
) -> PipelineSettings:
    """
    Load pipeline settings.

    Args:
        config_path: Settings JSON file. Defaults to $SIGNAL_PIPELINE_CONFIG,
            then config/pipeline.json.
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated PipelineSettings

    Raises:
        SettingsError: If the resulting values are unusable
    """
    environ = dict(os.environ) if environ is None else environ

    if config_path is None:
        config_path = environ.get(ENV_CONFIG_PATH) or DEFAULT_CONFIG_PATH
    path = Path(config_path)

    settings = PipelineSettings.from_dict(_read_config_file(path))

    _apply_env_overrides(settings, environ)

    # Relative store directories are resolved against the project root
    store_dir = Path(settings.store_dir)
    if not store_dir.is_absolute():
        settings.store_dir = str(PROJECT_ROOT / store_dir)

    settings.validate()
    logger.info(
        f"Pipeline settings: store={settings.store_dir}, "
        f"timeout={settings.run_timeout_seconds}s, auto_tune={settings.auto_tune}"
    )
    return settings
