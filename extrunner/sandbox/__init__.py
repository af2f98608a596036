"""
Isolated execution of build groups in containers.
"""
from .docker_client import ContainerSpec, DockerClient, Mount
from .executor import PhaseResult, SandboxExecutor

__all__ = [
    'ContainerSpec',
    'DockerClient',
    'Mount',
    'PhaseResult',
    'SandboxExecutor',
]
