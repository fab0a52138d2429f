"""
Configuration management for the Cycle Engine
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError
from .models import EngineWarning, SecondaryCycleMode, Tier, parse_month_key
from .thresholds import (
    LOWEST_TIER,
    SECONDARY_BALANCE_LIMIT,
    SECONDARY_THRESHOLD,
    SECONDARY_TIER,
    primary_tier_for,
)


ENV_PREFIX = "CYCLE_ENGINE_"
DEFAULT_LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level}</level> | {message}"


class EngineConfig(BaseModel):
    """Runtime settings for the Cycle Engine"""

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default=DEFAULT_LOG_FORMAT, description="loguru format string")

    # Caching
    enable_caching: bool = Field(default=True, description="Memoize results keyed on input content")
    cache_max_entries: int = Field(default=64, description="Maximum memoized results kept")

    # Product rules
    soft_landing_keeps_rollover: bool = Field(
        default=False,
        description="Carry min(cap, balance) through a soft landing instead of discarding it",
    )

    # Output
    include_ledger_in_output: bool = Field(default=True, description="Include ledger slices in JSON output")


class ConfigManager:
    """Configuration manager for the Cycle Engine"""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration manager

        Args:
            config_file: Path to configuration file
        """
        self.config_file = config_file or "cycle_engine_config.json"
        self._config = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file or environment"""
        try:
            if Path(self.config_file).exists():
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config_data = json.load(f)
                self._config = EngineConfig(**config_data)
            else:
                self._config = EngineConfig(**self.get_environment_config())
        except (OSError, ValueError, PydanticValidationError) as e:
            logger.warning(f"Failed to load configuration: {e}")
            self._config = EngineConfig()

    def get_config(self) -> EngineConfig:
        """Get current configuration"""
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration with new values; unknown keys are ignored"""
        known = {k: v for k, v in kwargs.items() if k in EngineConfig.model_fields}
        self._config = self._config.model_copy(update=known)

    def save_config(self) -> None:
        """Save current configuration to file"""
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self._config.model_dump(), f, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}")

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults"""
        self._config = EngineConfig()

    def validate_config(self) -> Dict[str, Any]:
        """Validate current configuration"""
        validation_results = {
            "valid": True,
            "warnings": [],
            "errors": [],
        }

        valid_log_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        if self._config.log_level.upper() not in valid_log_levels:
            validation_results["errors"].append(f"Invalid log level: {self._config.log_level}")
            validation_results["valid"] = False

        if self._config.cache_max_entries <= 0:
            if self._config.enable_caching:
                validation_results["errors"].append("cache_max_entries must be positive when caching is enabled")
                validation_results["valid"] = False
            else:
                validation_results["warnings"].append("cache_max_entries is not positive")

        if self._config.soft_landing_keeps_rollover:
            validation_results["warnings"].append(
                "soft_landing_keeps_rollover is enabled; rollover survives failed requalification"
            )

        return validation_results

    def get_environment_config(self) -> Dict[str, str]:
        """Get configuration from environment variables"""
        env_config = {}

        for field_name in EngineConfig.model_fields:
            env_var_name = f"{ENV_PREFIX}{field_name.upper()}"
            env_value = os.getenv(env_var_name)

            if env_value is not None:
                env_config[field_name] = env_value

        return env_config


_config_manager: Optional[ConfigManager] = None


def _manager() -> ConfigManager:
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> EngineConfig:
    """Get the global configuration instance"""
    return _manager().get_config()


def update_config(**kwargs) -> None:
    """Update the global configuration"""
    _manager().update_config(**kwargs)


def configure_logging(level: str = "INFO", fmt: str = DEFAULT_LOG_FORMAT) -> None:
    """Replace loguru sinks with a single stderr sink"""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=fmt)


class QualificationSettings(BaseModel):
    """Member's starting configuration for the cycle walk"""

    model_config = ConfigDict(frozen=True)

    cycle_start_month: Optional[str] = None
    starting_tier: Tier = LOWEST_TIER
    starting_xp: int = 0
    starting_secondary_points: int = Field(default=0, validate_default=True)
    secondary_cycle_mode: SecondaryCycleMode = SecondaryCycleMode.FOLLOWS_PRIMARY

    @field_validator("starting_secondary_points")
    @classmethod
    def holder_starts_qualified(cls, v: int, info: ValidationInfo) -> int:
        """A member starting on the secondary tier carries at least its threshold"""
        if info.data.get("starting_tier") == SECONDARY_TIER:
            return max(v, SECONDARY_THRESHOLD)
        return v

    @property
    def primary_starting_tier(self) -> Tier:
        return primary_tier_for(self.starting_tier)

    @property
    def holds_secondary_tier(self) -> bool:
        return self.starting_tier == SECONDARY_TIER

    @classmethod
    def from_raw(cls, raw: Any) -> Tuple["QualificationSettings", List[EngineWarning]]:
        """
        Build settings from loosely-shaped input without raising

        Unparseable fields fall back to defaults (lowest tier, zero rollover) and
        each fallback is reported as an EngineWarning.

        Args:
            raw: QualificationSettings, dict (camelCase or snake_case keys) or None

        Returns:
            Tuple of (settings, warnings)
        """
        if isinstance(raw, cls):
            return raw, []

        warnings: List[EngineWarning] = []
        if raw is None:
            warnings.append(EngineWarning(code="invalid_settings", message="No starting configuration; using defaults"))
            return cls(), warnings
        if not isinstance(raw, dict):
            warnings.append(EngineWarning(
                code="invalid_settings",
                message=f"Unparseable starting configuration of type {type(raw).__name__}; using defaults",
            ))
            return cls(), warnings

        def pick(*keys):
            for key in keys:
                if key in raw and raw[key] is not None:
                    return raw[key]
            return None

        values: Dict[str, Any] = {}

        month = pick("cycle_start_month", "cycleStartMonth", "cycle_start_date", "cycleStartDate")
        if month is not None:
            try:
                values["cycle_start_month"] = parse_month_key(month)
            except ValueError as e:
                warnings.append(EngineWarning(code="invalid_settings", message=str(e)))

        tier = pick("starting_tier", "startingTier", "startingStatus", "starting_status")
        tier_is_valid = True
        if tier is not None:
            try:
                values["starting_tier"] = Tier.parse(tier)
            except ValueError as e:
                tier_is_valid = False
                warnings.append(EngineWarning(code="invalid_settings", message=f"{e}; using {LOWEST_TIER.value}"))

        xp = pick("starting_xp", "startingXP", "startingXp")
        if xp is not None and tier_is_valid:
            values["starting_xp"] = _clamped_points(xp, None, "starting_xp", warnings)

        secondary = pick("starting_secondary_points", "startingSecondaryPoints", "startingUXP", "starting_uxp")
        if secondary is not None:
            values["starting_secondary_points"] = _clamped_points(
                secondary, SECONDARY_BALANCE_LIMIT, "starting_secondary_points", warnings
            )

        mode = pick("secondary_cycle_mode", "secondaryCycleMode", "ultimateCycleType")
        if mode is not None:
            try:
                values["secondary_cycle_mode"] = SecondaryCycleMode.parse(mode)
            except ValueError as e:
                warnings.append(EngineWarning(code="invalid_settings", message=str(e)))

        for warning in warnings:
            logger.warning(f"Starting configuration: {warning.message}")

        return cls(**values), warnings


def _clamped_points(value: Any, cap: Optional[int], name: str, warnings: List[EngineWarning]) -> int:
    try:
        points = int(float(value))
    except (TypeError, ValueError, OverflowError):
        warnings.append(EngineWarning(code="invalid_settings", message=f"Unparseable {name} {value!r}; using 0"))
        return 0

    clamped = max(0, points if cap is None else min(cap, points))
    if clamped != points:
        bounds = f"[0, {cap}]" if cap is not None else "[0, ...)"
        warnings.append(EngineWarning(
            code="clamped_value",
            message=f"{name} {points} outside {bounds}; using {clamped}",
        ))
    return clamped
