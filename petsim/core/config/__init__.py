"""
Configuration subsystem.

Two layers:

- `Config` (static): environment-driven settings loaded once at import via
  python-dotenv (environment, logging, directories).
- `ConfigManager` (dynamic): YAML tuning tree under `config/` with dot-notation
  reads, schema validation and hot reload. Import it from
  `petsim.core.config.manager`; it depends on the logging subsystem, which in
  turn depends on `Config`.

Usage
-----
```python
from petsim.core.config import Config
from petsim.core.config.manager import ConfigManager

manager = ConfigManager()
manager.initialize()
window = manager.get("ratelimits.rate_window_seconds", 60)
```
"""

from petsim.core.config.config import Config, Environment
from petsim.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)
from petsim.core.config.validator import (
    ConfigSchema,
    SchemaField,
    get_schema_for_top_key,
    validate_config_value,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigError",
    "ConfigInitializationError",
    "ConfigValidationError",
    "ConfigSchema",
    "SchemaField",
    "get_schema_for_top_key",
    "validate_config_value",
]
