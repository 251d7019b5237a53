"""
Core infrastructure layer.

- Configuration (Config, ConfigManager)
- Logging (structured logging, logger factory)
- Event bus
- Clock source
- Infrastructure exceptions
- Service container
"""
