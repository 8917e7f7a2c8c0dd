import math
import structlog
from typing import Any, List, NamedTuple

from copyright_registry import config
from copyright_registry.models.track import SettingType, SimilarityThresholds, SystemSetting

logger = structlog.get_logger()

AUDIO_SIMILARITY_THRESHOLD = "AUDIO_SIMILARITY_THRESHOLD"
LYRICS_SIMILARITY_THRESHOLD = "LYRICS_SIMILARITY_THRESHOLD"
COPYRIGHT_PAYMENT_AMOUNT = "COPYRIGHT_PAYMENT_AMOUNT"
MAX_FILE_SIZE = "MAX_FILE_SIZE"
ALLOWED_FILE_TYPES = "ALLOWED_FILE_TYPES"
MAINTENANCE_MODE = "MAINTENANCE_MODE"
COPYRIGHT_DURATION = "COPYRIGHT_DURATION"

# Settings whose value must lie in [0, 1]
UNIT_INTERVAL_SETTINGS = {AUDIO_SIMILARITY_THRESHOLD, LYRICS_SIMILARITY_THRESHOLD}

# Settings that must not be negative
NON_NEGATIVE_SETTINGS = {COPYRIGHT_PAYMENT_AMOUNT, MAX_FILE_SIZE, COPYRIGHT_DURATION}

class SettingDefault(NamedTuple):
    key: str
    value: str
    description: str
    type: SettingType

DEFAULT_SETTINGS = [
    SettingDefault(AUDIO_SIMILARITY_THRESHOLD, str(config.DEFAULT_AUDIO_SIMILARITY_THRESHOLD),
                   "Audio similarity threshold (0.0-1.0)", SettingType.NUMBER),
    SettingDefault(LYRICS_SIMILARITY_THRESHOLD, str(config.DEFAULT_LYRICS_SIMILARITY_THRESHOLD),
                   "Lyrics similarity threshold (0.0-1.0)", SettingType.NUMBER),
    SettingDefault(COPYRIGHT_PAYMENT_AMOUNT, str(config.COPYRIGHT_PAYMENT_AMOUNT),
                   "Default copyright registration payment amount", SettingType.NUMBER),
    SettingDefault(MAX_FILE_SIZE, str(config.MAX_FILE_SIZE_MB),
                   "Maximum allowed file size for uploads (MB)", SettingType.NUMBER),
    SettingDefault(ALLOWED_FILE_TYPES, config.ALLOWED_FILE_TYPES,
                   "Comma-separated list of allowed file types for uploads", SettingType.STRING),
    SettingDefault(MAINTENANCE_MODE, "false",
                   "Enable or disable system maintenance mode", SettingType.BOOLEAN),
    SettingDefault(COPYRIGHT_DURATION, str(config.COPYRIGHT_DURATION_YEARS),
                   "Copyright duration in years", SettingType.NUMBER),
]

_DEFAULTS_BY_KEY = {d.key: d for d in DEFAULT_SETTINGS}

class SettingError(Exception):
    """Base exception for settings operations."""
    pass

class SettingNotFoundError(SettingError):
    pass

class SettingValueError(SettingError):
    pass

def parse_setting_value(value: str, setting_type: str) -> Any:
    """Convert a stored string value according to its declared type."""
    if setting_type == SettingType.NUMBER:
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise SettingValueError(f"'{value}' is not a number")
        if not math.isfinite(number):
            raise SettingValueError(f"'{value}' is not a finite number")
        return number
    if setting_type == SettingType.BOOLEAN:
        normalized = str(value).strip().lower()
        if normalized in ("true", "1", "yes"):
            return True
        if normalized in ("false", "0", "no"):
            return False
        raise SettingValueError(f"'{value}' is not a boolean")
    return value

def validate_setting_value(key: str, value: Any) -> Any:
    """Check range constraints of a parsed setting value."""
    if key in UNIT_INTERVAL_SETTINGS and not 0.0 <= value <= 1.0:
        raise SettingValueError(f"{key} must be between 0.0 and 1.0")
    if key in NON_NEGATIVE_SETTINGS and value < 0:
        raise SettingValueError(f"{key} must not be negative")
    return value

def _to_stored_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

class SettingsStore:
    """Administrative settings backed by the system_settings table."""

    def __init__(self, store):
        self.store = store

    def seed_defaults(self) -> int:
        """
        Insert missing default settings.

        Safe to run on every startup: existing values are left alone, except
        that an empty stored value is filled from the default.
        """
        for default in DEFAULT_SETTINGS:
            self.store.upsert_default_setting(default.key, default.value, default.description, default.type.value)
        logger.info("Default system settings ensured", count=len(DEFAULT_SETTINGS))
        return len(DEFAULT_SETTINGS)

    def list(self) -> List[SystemSetting]:
        return [SystemSetting(**row) for row in self.store.get_all_settings()]

    def get(self, key: str) -> SystemSetting:
        row = self.store.get_setting(key)
        if row is None:
            raise SettingNotFoundError(f"Setting not found: {key}")
        return SystemSetting(**row)

    def get_value(self, key: str) -> Any:
        """Typed value of a setting, falling back to its default when missing or invalid."""
        row = self.store.get_setting(key)
        if row is not None:
            try:
                return validate_setting_value(key, parse_setting_value(row["value"], row["type"]))
            except SettingValueError as e:
                logger.warning("Invalid stored setting, using default", key=key, error=str(e))
        else:
            logger.warning("Setting missing, using default", key=key)

        default = _DEFAULTS_BY_KEY.get(key)
        if default is None:
            raise SettingNotFoundError(f"Setting not found: {key}")
        return parse_setting_value(default.value, default.type)

    def update(self, key: str, value: Any) -> SystemSetting:
        """Validate and store a new value for an existing setting."""
        current = self.get(key)
        stored_value = _to_stored_value(value)
        validate_setting_value(key, parse_setting_value(stored_value, current.type))

        row = self.store.update_setting(key, stored_value)
        if row is None:
            raise SettingNotFoundError(f"Setting not found: {key}")

        logger.info("Setting changed", key=key, old_value=current.value, new_value=stored_value)
        return SystemSetting(**row)

    def get_thresholds(self) -> SimilarityThresholds:
        """Current audio and lyrics rejection thresholds."""
        return SimilarityThresholds(
            audio=self.get_value(AUDIO_SIMILARITY_THRESHOLD),
            lyrics=self.get_value(LYRICS_SIMILARITY_THRESHOLD),
        )

    def allowed_file_types(self) -> List[str]:
        raw = self.get_value(ALLOWED_FILE_TYPES)
        return [ext.strip().lower() for ext in str(raw).split(",") if ext.strip()]

    def max_file_size_bytes(self) -> int:
        return int(self.get_value(MAX_FILE_SIZE) * 1024 * 1024)

