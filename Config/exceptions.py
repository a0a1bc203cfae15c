# Config/exceptions.py
"""
Configuration errors raised while reading the environment / .env_costbasis.

Every message names the variable so an operator can fix it without reading code.
"""

from typing import Any, Optional

ENV_FILE = ".env_costbasis"


class ConfigError(Exception):
    """Base for anything wrong with the process configuration."""


class ConfigValidationError(ConfigError):
    """A variable is set but its value cannot be used."""

    def __init__(self, key: str, value: Any, reason: str, suggestion: Optional[str] = None):
        self.key = key
        self.value = value
        self.reason = reason
        self.suggestion = suggestion

        lines = [f"{key}={value!r} is not usable: {reason}"]
        if suggestion:
            lines.append(f"  Try: {suggestion}")
        lines.append(f"  Set it in the environment or in {ENV_FILE}")
        super().__init__("\n".join(lines))


class ConfigRangeError(ConfigValidationError):
    """A numeric variable is outside [min_val, max_val]."""

    def __init__(self, key: str, value: Any, min_val: Optional[int], max_val: Optional[int]):
        self.min_val = min_val
        self.max_val = max_val

        bounds = " and ".join(
            text for text in (
                f">= {min_val}" if min_val is not None else None,
                f"<= {max_val}" if max_val is not None else None,
            ) if text
        )
        if min_val is not None and value < min_val:
            suggestion = f"{key}={min_val} or higher"
        elif max_val is not None and value > max_val:
            suggestion = f"{key}={max_val} or lower"
        else:
            suggestion = None
        super().__init__(key, value, f"must be {bounds}", suggestion)


class ConfigMissingError(ConfigError):
    """A required variable is not set anywhere."""

    def __init__(self, key: str, location: str):
        self.key = key
        self.location = location
        super().__init__(f"{key} is required but not set (looked in: {location})")
