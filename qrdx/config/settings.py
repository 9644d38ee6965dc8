"""Configuration dataclass and loading utilities.

Provides a strongly-typed configuration object that is injected into the
detection engine instead of relying on a global module-level dictionary.
Values are resolved in this order: defaults, JSON file, ``QRDX_*``
environment variables.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
import json, os, logging

from .defaults import DEFAULT_CONFIG
from ..core.entities import DetectionOptions
from ..core.exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "QRDX_"

_VALID_WORKER_MODES = ("process", "thread")
_VALID_DECODERS = ("opencv", "zbar")
_VALID_INVERSION_ATTEMPTS = ("attempt_both", "dont_invert")

@dataclass(slots=True)
class Config:
    kernel_size: int = DEFAULT_CONFIG["kernel_size"]
    use_opencv_backend: bool = DEFAULT_CONFIG["use_opencv_backend"]
    max_image_size: int = DEFAULT_CONFIG["max_image_size"]
    detect_multiple: bool = DEFAULT_CONFIG["detect_multiple"]
    timeout_ms: int = DEFAULT_CONFIG["timeout_ms"]
    return_detailed_info: bool = DEFAULT_CONFIG["return_detailed_info"]

    extended_strategies: bool = DEFAULT_CONFIG["extended_strategies"]
    region_scan: bool = DEFAULT_CONFIG["region_scan"]

    worker_mode: str = DEFAULT_CONFIG["worker_mode"]
    backend_module: str = DEFAULT_CONFIG["backend_module"]
    request_timeout_s: float = DEFAULT_CONFIG["request_timeout_s"]
    init_timeout_s: float = DEFAULT_CONFIG["init_timeout_s"]

    decoder: str = DEFAULT_CONFIG["decoder"]
    inversion_attempts: str = DEFAULT_CONFIG["inversion_attempts"]

    log_level: str = DEFAULT_CONFIG["log_level"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]
    log_to_file: bool = DEFAULT_CONFIG["log_to_file"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        extra = d.pop("extra", {})
        d.update(extra)
        return d

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.__dataclass_fields__ and key != "extra":
            return getattr(self, key)
        return self.extra.get(key, default)

    def to_detection_options(self, **overrides: Any) -> DetectionOptions:
        """Build per-run DetectionOptions from the configured defaults."""
        values = {
            "kernel_size": self.kernel_size,
            "use_opencv_backend": self.use_opencv_backend,
            "max_image_size": self.max_image_size,
            "detect_multiple": self.detect_multiple,
            "timeout_ms": self.timeout_ms,
            "return_detailed_info": self.return_detailed_info,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return DetectionOptions(**values)

    def validate(self) -> None:
        """Raise ConfigError when a value cannot be used."""
        if self.worker_mode not in _VALID_WORKER_MODES:
            raise ConfigError(f"worker_mode must be one of {_VALID_WORKER_MODES}, got {self.worker_mode!r}")
        if self.decoder not in _VALID_DECODERS:
            raise ConfigError(f"decoder must be one of {_VALID_DECODERS}, got {self.decoder!r}")
        if self.inversion_attempts not in _VALID_INVERSION_ATTEMPTS:
            raise ConfigError(
                f"inversion_attempts must be one of {_VALID_INVERSION_ATTEMPTS}, got {self.inversion_attempts!r}"
            )
        if self.request_timeout_s <= 0 or self.init_timeout_s <= 0:
            raise ConfigError("request_timeout_s and init_timeout_s must be positive")


def _coerce(value: str, default: Any) -> Any:
    """Convert an environment string to the type of its default."""
    if isinstance(default, bool):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ConfigError(f"Cannot interpret {value!r} as a boolean")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


def _environment_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for key, default in DEFAULT_CONFIG.items():
        env_key = ENV_PREFIX + key.upper()
        if env_key not in environ:
            continue
        try:
            overrides[key] = _coerce(environ[env_key], default)
        except (ValueError, ConfigError) as e:
            logger.warning(f"Ignoring invalid environment override {env_key}: {e}")
    return overrides


def load_config(path: str = "qrdx.json", environ: Optional[Dict[str, str]] = None) -> Config:
    """Load configuration from a JSON file, then apply environment overrides.

    A missing, empty or malformed file is not fatal: defaults are used and the
    problem is logged. Values that fail validation also fall back to defaults.

    Args:
        path: Path to the JSON configuration file
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Config: Loaded and validated configuration
    """
    data: Dict[str, Any] = {}

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded_data = json.load(f)
            if loaded_data is None:
                logger.warning(f"Configuration file '{path}' is empty, using defaults")
            elif not isinstance(loaded_data, dict):
                logger.error(f"Configuration file '{path}' does not contain a JSON object, using defaults")
            else:
                data = loaded_data
                logger.info(f"Loaded configuration from '{path}'")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON configuration file '{path}': {e}. Using defaults.")
        except OSError as e:
            logger.error(f"Could not read configuration file '{path}': {e}. Using defaults.")
    else:
        logger.debug(f"Configuration file '{path}' does not exist. Using defaults.")

    merged = {**DEFAULT_CONFIG, **data, **_environment_overrides(environ)}

    extra = {k: v for k, v in merged.items() if k not in Config.__dataclass_fields__}
    if extra:
        logger.info(f"Found extra configuration keys: {list(extra.keys())}")

    try:
        cfg = Config(**{k: merged[k] for k in Config.__dataclass_fields__ if k != "extra"}, extra=extra)
        cfg.validate()
        cfg.to_detection_options().validate()
    except Exception as e:
        logger.error(f"Invalid configuration values: {e}. Falling back to defaults.")
        return Config()
    return cfg


def save_config(cfg: Config, path: str = "qrdx.json") -> None:
    """Save configuration to a JSON file."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(cfg.to_dict(), f, indent=2)
        logger.info(f"Saved configuration to '{path}'")
    except OSError as e:
        raise ConfigError(f"Failed to save configuration to '{path}': {e}") from e
