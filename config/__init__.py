"""
config package

Network registry, dispatch tunables and the YAML loader.
"""
from .networks import NetworkConfig, NetworkRegistry, default_registry
from .runtime_schema import DispatchConfig
from .loader import LoadedConfig, load_app_config

__all__ = [
    'NetworkConfig',
    'NetworkRegistry',
    'default_registry',
    'DispatchConfig',
    'LoadedConfig',
    'load_app_config',
]
