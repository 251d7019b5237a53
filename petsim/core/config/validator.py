"""
Configuration validation and schema management.

Purpose
-------
Provides recursive schema-based validation for nested configuration structures.
Ensures the rate-limit and effect tuning trees have the right shape before any
subject is accepted.

Responsibilities
----------------
- Define ConfigSchema class for recursive validation
- Maintain schema registry for known top-level configuration keys
- Perform type checking and structural validation
- Report failures with dot-notation paths

Architecture Notes
------------------
- Recursive validation using nested ConfigSchema instances
- Type coercion for int→float compatibility (common in configs)
- Missing fields allowed unless listed in `required`
- `values` validates every entry of a free-form mapping (e.g. per-action rates)

Dependencies
------------
- ConfigValidationError from errors module
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from petsim.core.config.errors import ConfigValidationError


# Type alias for schema field definitions
SchemaField = Union[type, Tuple[type, ...], "ConfigSchema"]


def _type_name(expected: Union[type, Tuple[type, ...]]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _check_leaf(raw: Any, expected: Union[type, Tuple[type, ...]], path: str) -> None:
    accepted = expected if isinstance(expected, tuple) else (expected,)

    # bool is an int subclass; never accept it for numeric fields
    if isinstance(raw, bool) and bool not in accepted:
        raise ConfigValidationError(
            f"Config value at '{path}' must be {_type_name(expected)}; got bool"
        )

    if float in accepted and isinstance(raw, int):
        return

    if not isinstance(raw, accepted):
        raise ConfigValidationError(
            f"Config value at '{path}' must be {_type_name(expected)}; "
            f"got {type(raw).__name__}"
        )


@dataclass(slots=True)
class ConfigSchema:
    """
    Recursive schema for nested configuration validation.

    Attributes
    ----------
    fields:
        Mapping of field names to expected types or nested schemas.
    required:
        Field names that must be present.
    values:
        Optional type or schema every value not named in `fields` must match.
    allow_extra:
        Whether to allow fields not defined in the schema.

    Examples
    --------
    >>> schema = ConfigSchema(fields={"count": int, "rate": float})
    >>> schema.validate({"count": 10, "rate": 0.5})
    {'count': 10, 'rate': 0.5}

    >>> rates = ConfigSchema(fields={}, values=(int, float))
    >>> rates.validate({"Chat": "fast"}, path="base_rates")
    Traceback (most recent call last):
        ...
    ConfigValidationError: Config value at 'base_rates.Chat' must be int or float; got str
    """

    fields: Mapping[str, SchemaField]
    required: FrozenSet[str] = field(default_factory=frozenset)
    values: Optional[SchemaField] = None
    allow_extra: bool = True

    def validate(self, value: Any, path: str = "") -> Any:
        """
        Validate value against this schema.

        Parameters
        ----------
        value:
            The value to validate (typically a dict/mapping).
        path:
            Dot-notation path for error messages (e.g., "ratelimits.base_rates").

        Returns
        -------
        Any
            The original value if validation succeeds.

        Raises
        ------
        ConfigValidationError
            If validation fails, with the offending path in the message.
        """
        if not isinstance(value, Mapping):
            raise ConfigValidationError(
                f"Config value at '{path or '<root>'}' must be a mapping; "
                f"got {type(value).__name__}"
            )

        missing = sorted(self.required - set(value.keys()))
        if missing:
            raise ConfigValidationError(
                f"Missing required config keys at '{path or '<root>'}': {', '.join(missing)}"
            )

        for key, raw in value.items():
            full_path = f"{path}.{key}" if path else str(key)

            expected = self.fields.get(key)
            if expected is None:
                expected = self.values
            if expected is None:
                if not self.allow_extra:
                    raise ConfigValidationError(
                        f"Unexpected config key at '{path or '<root>'}': {key}"
                    )
                continue

            if isinstance(expected, ConfigSchema):
                expected.validate(raw, path=full_path)
            else:
                _check_leaf(raw, expected, full_path)

        return value


# ============================================================================
# Schema Registry
# ============================================================================

_NUMBER = (int, float)

_RATE_TABLE = ConfigSchema(fields={}, values=_NUMBER)

_EFFECT_MODIFIER = ConfigSchema(
    fields={
        "actions": list,
        "multiplier": _NUMBER,
        "duration": int,
        "max_uses": int,
        "consume_on_use": bool,
        "stacking": str,
        "description": str,
        "display_name": str,
        "icon": str,
        "stat_modifiers": ConfigSchema(fields={}, values=_NUMBER),
    },
)

_SCHEMAS: Dict[str, ConfigSchema] = {
    "ratelimits": ConfigSchema(
        fields={
            "rate_window_seconds": int,
            "base_rates": _RATE_TABLE,
            "effect_modifiers": ConfigSchema(fields={}, values=_EFFECT_MODIFIER),
            "anti_exploit": ConfigSchema(
                fields={
                    "absolute_max_rates": _RATE_TABLE,
                    "burst_protection": ConfigSchema(
                        fields={
                            "window_size": int,
                            "max_burst_rates": _RATE_TABLE,
                        },
                    ),
                    "punishment": ConfigSchema(
                        fields={
                            "warning_threshold": int,
                            "kick_threshold": int,
                            "ban_threshold": int,
                            "escalation_window": int,
                        },
                        required=frozenset(
                            {"warning_threshold", "kick_threshold", "ban_threshold", "escalation_window"}
                        ),
                    ),
                },
                required=frozenset({"absolute_max_rates", "burst_protection", "punishment"}),
            ),
            "effect_stacking": ConfigSchema(
                fields={
                    "max_stacked_effects": int,
                    "stacking_mode": str,
                    "diminishing_returns": bool,
                    "diminishing_factor": _NUMBER,
                },
            ),
        },
        required=frozenset({"base_rates", "effect_modifiers", "anti_exploit"}),
    ),
    "effects": ConfigSchema(
        fields={
            "tick_interval_seconds": _NUMBER,
            "save_interval_seconds": _NUMBER,
            "stat_baselines": _RATE_TABLE,
            "player_stats": list,
            "global_stats": list,
            "display": ConfigSchema(fields={}, values=str),
            "events": ConfigSchema(fields={}, values=_NUMBER),
        },
    ),
}


def get_schema_for_top_key(top_key: str) -> Optional[ConfigSchema]:
    """Return the validation schema for a top-level key, or None."""
    return _SCHEMAS.get(top_key)


def validate_config_value(top_key: str, value: Any) -> Any:
    """
    Validate a top-level configuration value against its schema.

    If no schema is registered for the key, the value passes
    validation unchanged.

    Raises
    ------
    ConfigValidationError:
        If validation fails.

    Examples
    --------
    >>> validate_config_value("ratelimits", {"base_rates": {"Chat": 30}})
    Traceback (most recent call last):
        ...
    ConfigValidationError: Missing required config keys at 'ratelimits': anti_exploit, effect_modifiers
    """
    schema = get_schema_for_top_key(top_key)
    if schema is None:
        return value
    return schema.validate(value, path=top_key)


__all__ = [
    "ConfigSchema",
    "SchemaField",
    "get_schema_for_top_key",
    "validate_config_value",
]
