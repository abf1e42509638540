"""Configuration utilities for the pricing engine.

This module provides utilities for parsing and validating configuration.
"""

from dataclasses import fields
from typing import Any, Dict

from negrate_american.datatypes import (
    EngineConfig,
    FixedPointEquation,
    SchemeSettings,
    SpectralScheme,
)
from negrate_american.exceptions import ValidationError


def _enum_value(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError as exc:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{name} must be one of {choices}, got {value!r}") from exc


def parse_config(args: Dict[str, Any]) -> EngineConfig:
    """Parse a mapping of options into an EngineConfig.

    Unknown keys are rejected; missing keys take the defaults of
    :func:`default_config`.

    Args:
        args: Dictionary of configuration values.

    Returns:
        Validated EngineConfig instance.

    Raises:
        ValidationError: If a parameter is unknown or out of range.
    """
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(args) - known)
    if unknown:
        raise ValidationError(f"Unknown configuration parameter(s): {', '.join(unknown)}")

    values = dict(args)
    if 'scheme' in values:
        values['scheme'] = _enum_value(SpectralScheme, values['scheme'], 'scheme')
    if 'equation' in values:
        values['equation'] = _enum_value(FixedPointEquation, values['equation'], 'equation')
    settings = values.get('scheme_settings')
    if isinstance(settings, dict):
        values['scheme_settings'] = SchemeSettings(**settings)

    # Validate numeric ranges
    tolerance = values.get('tolerance')
    if tolerance is not None:
        tolerance = float(tolerance)
    if tolerance is not None and not tolerance > 0:
        raise ValidationError("Tolerance must be positive if specified")
    if values.get('fd_space_steps', 801) < 10 or values.get('fd_time_steps', 1000) < 10:
        raise ValidationError("Grid dimensions must be at least 10")
    if values.get('fd_std_devs', 5.0) <= 0:
        raise ValidationError("Grid width in standard deviations must be positive")
    if values.get('fd_rannacher_steps', 2) < 0:
        raise ValidationError("Rannacher steps must be non-negative")
    if values.get('near_expiry_threshold', 1.0 / 252.0) <= 0:
        raise ValidationError("Near-expiry threshold must be positive")
    if values.get('expiry_epsilon', 1e-10) < 0:
        raise ValidationError("Expiry epsilon must be non-negative")
    if values.get('vol_bump', 1e-3) <= 0 or values.get('time_bump', 1.0 / 365.0) <= 0:
        raise ValidationError("Bump sizes must be positive")

    for key in ('fd_space_steps', 'fd_time_steps', 'fd_rannacher_steps'):
        if key in values:
            values[key] = int(values[key])
    for key in ('fd_std_devs', 'near_expiry_threshold', 'expiry_epsilon', 'vol_bump', 'time_bump'):
        if key in values:
            values[key] = float(values[key])
    values['tolerance'] = tolerance
    if 'compute_theta' in values:
        values['compute_theta'] = bool(values['compute_theta'])

    return EngineConfig(**values)


def default_config() -> EngineConfig:
    """Create the default engine configuration.

    Returns:
        Default EngineConfig instance.
    """
    return EngineConfig()
