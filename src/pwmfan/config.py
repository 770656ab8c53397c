"""
Configuration Module

This module defines the runtime configuration of pwmfan, loads it from
YAML files and validates option ranges before any hardware is touched.
"""

import logging
import os
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional
import yaml

logger = logging.getLogger(__name__)

CONTROLLERS = ("logistic", "pid")

INTEGER_OPTIONS = (
    "startup_seconds", "loop_interval_seconds", "window_capacity",
    "temp_low", "temp_high", "temp_off", "temp_on",
    "duty_min_percent", "duty_max_percent", "period_ns",
)

NUMBER_OPTIONS = ("logistic_critical", "logistic_a", "logistic_b")

# May be None to use values derived at runtime
OPTIONAL_NUMBER_OPTIONS = ("pid_ideal", "pid_kp", "pid_ki", "pid_kd")

# YAML section -> {key: FanConfig field}
SECTIONS = {
    "pwm": {
        "chip": "chip",
        "channel": "channel",
        "period_ns": "period_ns",
    },
    "timing": {
        "startup_seconds": "startup_seconds",
        "loop_interval_seconds": "loop_interval_seconds",
    },
    "thermal": {
        "monitored_device_pattern": "monitored_device_pattern",
        "window_capacity": "window_capacity",
        "temp_off": "temp_off",
        "temp_on": "temp_on",
        "temp_low": "temp_low",
        "temp_high": "temp_high",
    },
    "duty_cycle": {
        "min_percent": "duty_min_percent",
        "max_percent": "duty_max_percent",
    },
    "controller": {
        "kind": "controller_kind",
        "full_speed_override": "full_speed_override",
        "logistic": {
            "critical": "logistic_critical",
            "a": "logistic_a",
            "b": "logistic_b",
        },
        "pid": {
            "ideal": "pid_ideal",
            "kp": "pid_kp",
            "ki": "pid_ki",
            "kd": "pid_kd",
        },
    },
    "paths": {
        "pwm_root": "pwm_root",
        "thermal_root": "thermal_root",
        "cache_root": "cache_root",
    },
}

class ConfigurationError(Exception):
    """Raised when configuration values are invalid or contradictory"""
    pass

@dataclass
class FanConfig:
    """Runtime options of the fan controller.

    Defaults were tested on a NanoPi M4 with the SATA hat and a 12V fan.
    """
    chip: str = "pwmchip0"
    channel: str = "pwm0"
    startup_seconds: int = 3
    loop_interval_seconds: int = 10
    monitored_device_pattern: str = "(soc|cpu)"
    window_capacity: int = 6
    temp_low: int = 45
    temp_high: int = 78
    temp_off: int = 0
    temp_on: int = 1
    duty_min_percent: int = 49
    duty_max_percent: int = 100
    period_ns: int = 25000000
    controller_kind: str = "logistic"
    full_speed_override: bool = False

    # Controller tunables
    logistic_critical: float = 75
    logistic_a: float = 1
    logistic_b: float = 10
    pid_ideal: Optional[float] = None
    pid_kp: Optional[float] = None
    pid_ki: Optional[float] = None
    pid_kd: Optional[float] = None

    # sysfs locations
    pwm_root: str = "/sys/class/pwm/"
    thermal_root: str = "/sys/class/thermal/"
    cache_root: Optional[str] = "/tmp/pwm-fan/"

    def with_overrides(self, **overrides: Any) -> "FanConfig":
        """Return a copy with every non-None override applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> "FanConfig":
        """Check option ranges.

        Returns:
            self, to allow chaining

        Raises:
            ConfigurationError: On the first invalid option
        """
        for name in INTEGER_OPTIONS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"Option '{name}' must be an integer, got {value!r}")
        for name in NUMBER_OPTIONS + OPTIONAL_NUMBER_OPTIONS:
            value = getattr(self, name)
            if value is None and name in OPTIONAL_NUMBER_OPTIONS:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"Option '{name}' must be a number, got {value!r}")
        if not re.fullmatch(r"pwm[0-9]+", str(self.channel)):
            raise ConfigurationError(
                f"Invalid channel '{self.channel}': must contain pwm and at least one integer (pwm0)")
        if not re.fullmatch(r"pwmchip[0-9]+", str(self.chip)):
            raise ConfigurationError(
                f"Invalid chip '{self.chip}': must contain pwmchip and at least one integer (pwmchip0)")
        if not 0 <= self.duty_min_percent <= 49:
            raise ConfigurationError(
                f"Invalid min duty cycle {self.duty_min_percent}%, must be 0-49")
        if not 50 <= self.duty_max_percent <= 100:
            raise ConfigurationError(
                f"Invalid max duty cycle {self.duty_max_percent}%, must be 50-100")
        if self.startup_seconds < 0:
            raise ConfigurationError(f"Invalid startup time {self.startup_seconds}s, must be >= 0")
        if self.loop_interval_seconds < 0:
            raise ConfigurationError(f"Invalid loop interval {self.loop_interval_seconds}s, must be >= 0")
        if self.window_capacity <= 1:
            raise ConfigurationError(
                f"Invalid window capacity {self.window_capacity}, must be greater than 1")
        if not 0 <= self.temp_low <= 59:
            raise ConfigurationError(f"Invalid low temperature {self.temp_low}°C, must be 0-59")
        if not 60 <= self.temp_high <= 120:
            raise ConfigurationError(f"Invalid high temperature {self.temp_high}°C, must be 60-120")
        if not 0 <= self.temp_off <= 59:
            raise ConfigurationError(f"Invalid off temperature {self.temp_off}°C, must be 0-59")
        if self.temp_on <= self.temp_off:
            raise ConfigurationError(
                f"On temperature ({self.temp_on}°C) must be strictly greater than "
                f"off temperature ({self.temp_off}°C)")
        if self.controller_kind not in CONTROLLERS:
            raise ConfigurationError(
                f"Invalid controller '{self.controller_kind}', must be one of {', '.join(CONTROLLERS)}")
        if self.period_ns <= 0:
            raise ConfigurationError(f"Invalid period {self.period_ns} ns, must be > 0")
        if self.logistic_a <= 0 or self.logistic_b <= 0:
            raise ConfigurationError(
                f"Invalid logistic constants a={self.logistic_a}, b={self.logistic_b}, both must be > 0")
        try:
            re.compile(self.monitored_device_pattern)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid device pattern '{self.monitored_device_pattern}': {e}")
        return self


def _flatten(data: Dict[str, Any], sections: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Map nested YAML sections onto FanConfig field names"""
    values = {}
    for key, value in data.items():
        path = f"{prefix}{key}"
        if key not in sections:
            raise ConfigurationError(f"Unknown configuration option '{path}'")
        target = sections[key]
        if isinstance(target, dict):
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigurationError(f"Configuration section '{path}' must be a mapping")
            values.update(_flatten(value, target, prefix=f"{path}."))
        else:
            values[target] = value
    return values


def config_from_dict(data: Optional[Dict[str, Any]]) -> FanConfig:
    """Build a FanConfig from a parsed YAML document"""
    if not data:
        return FanConfig()
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")

    return FanConfig(**_flatten(data, SECTIONS))


def load_config(config_path: str) -> FanConfig:
    """Load configuration from a YAML file

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration with file values over defaults (not yet validated)

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {config_path}: {e}")

    config = config_from_dict(data)
    logger.info(f"Loaded configuration from {config_path}")
    return config
