"""
Modes executed inside the sandbox container for one build group.
"""
from .build import package_extension, resolve_output_dir, run_build
from .fetch import run_fetch
from .workspace import GroupWorkspace

__all__ = [
    'GroupWorkspace',
    'package_extension',
    'resolve_output_dir',
    'run_build',
    'run_fetch',
]
