from .environment import parse_bool, parse_env_bool, parse_env_float, parse_env_int, parse_env_str
from .settings import DEFAULT_SETTINGS, EngineSettings, load_engine_settings

__all__ = [
    "DEFAULT_SETTINGS",
    "EngineSettings",
    "load_engine_settings",
    "parse_bool",
    "parse_env_bool",
    "parse_env_float",
    "parse_env_int",
    "parse_env_str",
]
