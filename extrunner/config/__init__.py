from .global_config_loader import (
    ENV_VARIABLES,
    ExtensionsConfig,
    GlobalConfig,
    LockConfig,
    PathsConfig,
    SandboxConfig,
    get_build_mode,
    load_global_config,
    parse_run_mode,
)

__all__ = [
    'ENV_VARIABLES',
    'ExtensionsConfig',
    'GlobalConfig',
    'LockConfig',
    'PathsConfig',
    'SandboxConfig',
    'get_build_mode',
    'load_global_config',
    'parse_run_mode',
]
