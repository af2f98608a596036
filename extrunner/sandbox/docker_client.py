"""
Minimal client for the Docker Engine HTTP API over its unix socket.

Only what the sandbox needs: create, start, attach, wait and remove.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.exceptions import DockerAPIError

# Seconds to let the output stream drain after the container exits
ATTACH_DRAIN_TIMEOUT = 5.0


@dataclass
class Mount:
    """A bind mount from the docker host into the container"""
    target: str
    source: str
    read_only: bool = False
    type: str = "bind"

    def to_api(self) -> Dict[str, Any]:
        return {
            'Target': self.target,
            'Source': self.source,
            'Type': self.type,
            'ReadOnly': self.read_only,
        }


@dataclass
class ContainerSpec:
    image: str
    env: List[str] = field(default_factory=list)
    mounts: List[Mount] = field(default_factory=list)
    network_disabled: bool = False
    auto_remove: bool = True
    tty: bool = True
    labels: Dict[str, str] = field(default_factory=dict)

    def to_api(self) -> Dict[str, Any]:
        host_config: Dict[str, Any] = {
            'AutoRemove': self.auto_remove,
            'Mounts': [m.to_api() for m in self.mounts],
        }
        if self.network_disabled:
            host_config['NetworkMode'] = 'none'

        return {
            'Image': self.image,
            'Env': list(self.env),
            'Tty': self.tty,
            'NetworkDisabled': self.network_disabled,
            'Labels': dict(self.labels),
            'HostConfig': host_config,
        }


class DockerClient:
    """
    Talks to the docker daemon. Use as an async context manager so the
    underlying HTTP session is closed.
    """

    def __init__(self, socket_path: str = "/var/run/docker.sock", api_version: str = "v1.40"):
        self.socket_path = socket_path
        self.api_version = api_version
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(__name__)
        self.container_logger = logging.getLogger("extrunner.sandbox.container")

    async def __aenter__(self):
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.UnixConnector(path=self.socket_path),
                # No overall timeout, builds and log streams can take a while
                timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        return f"http://localhost/{self.api_version}{path}"

    def _request(self, method: str, path: str, **kwargs):
        return self._ensure_session().request(method, self._url(path), **kwargs)

    async def _raise_for_status(self, resp: aiohttp.ClientResponse, operation: str) -> None:
        if resp.status < 400:
            return
        text = await resp.text()
        try:
            message = json.loads(text).get('message', text)
        except (ValueError, AttributeError):
            message = text
        raise DockerAPIError(operation, resp.status, message)

    async def create(self, spec: ContainerSpec) -> str:
        """Create a container and return its ID"""
        async with self._request('POST', '/containers/create', json=spec.to_api()) as resp:
            await self._raise_for_status(resp, 'create')
            data = await resp.json(content_type=None)
        return data['Id']

    async def start(self, container_id: str) -> None:
        async with self._request('POST', f'/containers/{container_id}/start') as resp:
            await self._raise_for_status(resp, 'start')

    async def remove(self, container_id: str) -> None:
        """Force-remove a container; one that already auto-removed is fine"""
        async with self._request('DELETE', f'/containers/{container_id}', params={'force': 'true'}) as resp:
            if resp.status in (404, 409):
                self.logger.debug(f"Container {container_id[:12]} already removed ({resp.status})")
                return
            await self._raise_for_status(resp, 'remove')

    async def _read_exit_code(self, resp: aiohttp.ClientResponse) -> int:
        data = await resp.json(content_type=None)
        error = data.get('Error') or {}
        if error.get('Message'):
            self.logger.warning(f"Container wait reported: {error['Message']}")
        return int(data['StatusCode'])

    async def _attach(self, container_id: str) -> Optional[asyncio.Task]:
        """
        Start streaming the container's combined output into the log.

        Output is best effort, a failure here never affects the exit code.
        """
        params = {'stream': 'true', 'stdout': 'true', 'stderr': 'true', 'logs': 'true'}
        try:
            resp = await self._request('POST', f'/containers/{container_id}/attach', params=params)
            try:
                await self._raise_for_status(resp, 'attach')
            except DockerAPIError:
                resp.release()
                raise
        except (aiohttp.ClientError, DockerAPIError) as e:
            self.logger.warning(f"Failed to attach to container {container_id[:12]}: {e}")
            return None

        return asyncio.create_task(self._pump_output(resp))

    async def _pump_output(self, resp: aiohttp.ClientResponse) -> None:
        try:
            async for line in resp.content:
                self.container_logger.info(line.decode('utf-8', errors='replace').rstrip())
        finally:
            resp.release()

    async def _finish_attach(self, task: Optional[asyncio.Task]) -> None:
        if task is None:
            return

        done, _ = await asyncio.wait({task}, timeout=ATTACH_DRAIN_TIMEOUT)
        if not done:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return

        error = task.exception()
        if error is not None:
            self.logger.warning(f"Container output stream failed: {error}")

    async def run_container(self, spec: ContainerSpec) -> int:
        """
        Run a container to completion: create, start, stream output, wait.

        The container is removed afterwards whatever the outcome.

        Returns:
            The container's exit code
        """
        self.logger.info(
            f"Starting container: image={spec.image} network_disabled={spec.network_disabled} "
            f"mounts={[(m.target, 'ro' if m.read_only else 'rw') for m in spec.mounts]}"
        )
        container_id = await self.create(spec)
        self.logger.info(f"Container created: {container_id[:12]}")

        try:
            # Register the wait before starting so a fast exit + auto-remove can't race it
            wait_params = {'condition': 'next-exit'}
            async with self._request('POST', f'/containers/{container_id}/wait', params=wait_params) as wait_resp:
                await self._raise_for_status(wait_resp, 'wait')

                attach_task = await self._attach(container_id)
                try:
                    await self.start(container_id)
                    exit_code = await self._read_exit_code(wait_resp)
                finally:
                    await self._finish_attach(attach_task)

            self.logger.info(f"Container {container_id[:12]} exited with code {exit_code}")
            return exit_code
        finally:
            await self.remove(container_id)
