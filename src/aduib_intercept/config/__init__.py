from .loader import ConfigError, load_config, load_config_with_overloads
from .models import EngineConfig, InterceptorEngineConfig, LoggingConfig, ServerConfig

__all__ = [
    "ConfigError",
    "load_config",
    "load_config_with_overloads",
    "EngineConfig",
    "InterceptorEngineConfig",
    "LoggingConfig",
    "ServerConfig",
]
