"""
Exception hierarchy for the extension runner.
"""
from typing import Optional, Sequence


class ExtRunnerError(Exception):
    """Base class for all runner errors"""


class ConfigurationError(ExtRunnerError):
    """Runner configuration is missing or invalid"""


class InsecureRepositoryError(ExtRunnerError):
    """A build manifest points at a repository we refuse to clone"""

    def __init__(self, ext: str, repository: str, reason: str):
        self.ext = ext
        self.repository = repository
        self.reason = reason
        super().__init__(f"{ext}: {reason} ({repository})")


class ManifestError(ExtRunnerError):
    """A build manifest failed to parse or validate"""

    def __init__(self, ext: str, message: str):
        self.ext = ext
        super().__init__(f"Invalid manifest for {ext}: {message}")


class GroupResultError(ExtRunnerError):
    """The result written by a sandbox is missing or malformed"""


class DockerAPIError(ExtRunnerError):
    """The container runtime returned an error response"""

    def __init__(self, operation: str, status: int, message: str = ""):
        self.operation = operation
        self.status = status
        self.message = message
        text = f"Docker {operation} failed with HTTP {status}"
        if message:
            text += f": {message}"
        super().__init__(text)


class CommandError(ExtRunnerError):
    """A child process exited unsuccessfully"""

    def __init__(self, command: str, args: Sequence[str], exit_code: Optional[int]):
        self.command = command
        self.args_list = list(args)
        self.exit_code = exit_code
        super().__init__(f"Process {command} exited with code {exit_code}")


class PackagingError(ExtRunnerError):
    """An extension's build output could not be packaged"""
