"""
Configuration error hierarchy.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (schema/type validation failures)
└── ConfigInitializationError (startup/init failures)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     config_manager.initialize()
    ... except ConfigError as e:
    ...     logger.error(f"Config operation failed: {e}")
    """


class ConfigValidationError(ConfigError):
    """
    Raised when configuration validation fails.

    This exception is raised when:
    - Schema validation fails (wrong type, invalid structure)
    - A numeric value is outside its allowed range
    - Required fields are missing
    """


class ConfigInitializationError(ConfigError):
    """
    Raised when ConfigManager initialization fails.

    This exception is raised when:
    - The config directory holds no loadable YAML file
    - A YAML file cannot be parsed

    This is a critical error; the process must not accept subjects
    until it is resolved.
    """


__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
