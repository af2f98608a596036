import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List, Mapping
from dataclasses import dataclass, field

from ..core.enums import RunMode
from ..core.exceptions import ConfigurationError
from ..core.models import RunnerAuthor


ENV_VARIABLES = {
    'build_mode': "EXTRUNNER_BUILD_MODE",
    'author_id': "EXTRUNNER_AUTHOR_ID",
    'author_username': "EXTRUNNER_AUTHOR_USERNAME",
    'author_pr': "EXTRUNNER_AUTHOR_PR",
    'manifests_path': "EXTRUNNER_MANIFESTS_PATH",
    'dist_path': "EXTRUNNER_DIST_PATH",
    'work_path': "EXTRUNNER_WORK_PATH",
    'work_host_path': "EXTRUNNER_WORK_HOST_PATH",
    'group_path': "EXTRUNNER_GROUP_PATH",
    'store_path': "EXTRUNNER_STORE_PATH",
    'npm_store_dir': "NPM_CONFIG_STORE_DIR",
}

# Short names accepted for the build mode, as set by CI workflows
RUN_MODE_ALIASES = {
    'push': RunMode.PUSH,
    'pr': RunMode.PULL_REQUEST,
    'pull-request': RunMode.PULL_REQUEST,
    'all': RunMode.FORCE_ALL,
    'force-all': RunMode.FORCE_ALL,
}


@dataclass
class PathsConfig:
    """Host-side and in-container directories"""
    manifests_dir: str = "/extrunner/manifests"
    dist_dir: str = "/extrunner/dist"
    work_dir: str = "/extrunner/work"
    # The runner talks to the host's docker daemon, so mounts need host paths
    work_host_dir: Optional[str] = None
    group_dir: str = "/extrunner/group"
    store_dir: str = "/extrunner/store"

    @property
    def manifests_exts_dir(self) -> Path:
        return Path(self.manifests_dir) / "exts"

    @property
    def dist_exts_dir(self) -> Path:
        return Path(self.dist_dir) / "exts"

    @property
    def state_path(self) -> Path:
        return Path(self.dist_dir) / "state.json"

    def require_work_host_dir(self) -> Path:
        if not self.work_host_dir:
            raise ConfigurationError(
                f"Work host directory not set (set {ENV_VARIABLES['work_host_path']})"
            )
        return Path(self.work_host_dir)


@dataclass
class SandboxConfig:
    """Container runtime settings"""
    image: str = "extrunner/extensions-runner:latest"
    docker_socket: str = "/var/run/docker.sock"
    api_version: str = "v1.40"
    container_group_dir: str = "/extrunner/group"
    container_store_dir: str = "/extrunner/store"


@dataclass
class ExtensionsConfig:
    """Policy for the extensions being built"""
    api_level: int = 2
    reviewers: List[str] = field(default_factory=list)
    default_scripts: List[str] = field(default_factory=lambda: ["build"])
    archive_extension: str = ".asar"


@dataclass
class LockConfig:
    timeout: int = 30


@dataclass
class GlobalConfig:
    """Global configuration for the extension runner"""
    paths: PathsConfig
    sandbox: SandboxConfig
    extensions: ExtensionsConfig
    lock: LockConfig
    mode: RunMode = RunMode.PUSH
    author: Optional[RunnerAuthor] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GlobalConfig':
        """Create GlobalConfig from dictionary"""
        mode = data.get('mode')
        return cls(
            paths=PathsConfig(**data.get('paths', {})),
            sandbox=SandboxConfig(**data.get('sandbox', {})),
            extensions=ExtensionsConfig(**data.get('extensions', {})),
            lock=LockConfig(**data.get('lock', {})),
            mode=parse_run_mode(mode) if mode else RunMode.PUSH,
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'GlobalConfig':
        """Load GlobalConfig from YAML file"""
        path = Path(yaml_path)
        if not path.exists():
            # Return default config if file doesn't exist
            return cls.default()

        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def default(cls) -> 'GlobalConfig':
        """Return default configuration"""
        return cls(
            paths=PathsConfig(),
            sandbox=SandboxConfig(),
            extensions=ExtensionsConfig(),
            lock=LockConfig(),
        )

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> 'GlobalConfig':
        """Overlay settings supplied through environment variables"""
        env = os.environ if environ is None else environ

        def get(key: str) -> Optional[str]:
            value = env.get(ENV_VARIABLES[key])
            return value if value else None

        self.paths.manifests_dir = get('manifests_path') or self.paths.manifests_dir
        self.paths.dist_dir = get('dist_path') or self.paths.dist_dir
        self.paths.work_dir = get('work_path') or self.paths.work_dir
        self.paths.work_host_dir = get('work_host_path') or self.paths.work_host_dir
        self.paths.group_dir = get('group_path') or self.paths.group_dir
        self.paths.store_dir = get('store_path') or self.paths.store_dir

        build_mode = get('build_mode')
        if build_mode in RUN_MODE_ALIASES:
            self.mode = RUN_MODE_ALIASES[build_mode]

        author_id = get('author_id')
        author_username = get('author_username')
        if author_id and author_username:
            self.author = RunnerAuthor(
                username=author_username,
                id=author_id,
                pr=get('author_pr'),
            )

        return self


def parse_run_mode(value: str) -> RunMode:
    try:
        return RUN_MODE_ALIASES[value]
    except KeyError:
        raise ConfigurationError(f"Unknown run mode: {value}") from None


def get_build_mode(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Raw build mode from the environment (run modes or sandbox group modes)"""
    env = os.environ if environ is None else environ
    return env.get(ENV_VARIABLES['build_mode']) or None


def load_global_config(config_path: Optional[str] = None) -> GlobalConfig:
    """
    Load global configuration from YAML file and the environment.
    If no path provided, looks for extrunner.yaml in standard locations.
    """
    if config_path:
        return GlobalConfig.from_yaml(config_path).apply_env()

    # Try standard locations
    search_paths = [
        Path("./extrunner.yaml"),
        Path("./config/extrunner.yaml"),
        Path("/etc/extrunner/extrunner.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return GlobalConfig.from_yaml(str(path)).apply_env()

    # Return default if no config found
    return GlobalConfig.default().apply_env()
