"""
Extensions runner - builds third-party extensions from declarative build
manifests inside network-isolated containers.

Main modules:
- core: Enums, schemas, runtime models and exceptions
- config: Global configuration loading
- build: Change detection, group planning, reconciliation and reporting
- sandbox: Docker client and the two-phase group executor
- group: Fetch and build modes run inside the sandbox
"""

from .build.manager import ExtensionBuildManager
from .config.global_config_loader import GlobalConfig, load_global_config
from .core.models import RunnerState

__version__ = "1.0.0"
__all__ = [
    'ExtensionBuildManager',
    'GlobalConfig',
    'load_global_config',
    'RunnerState',
]
