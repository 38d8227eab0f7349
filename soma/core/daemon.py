"""Thin wrapper over the local Docker daemon.

Translates Docker SDK failures into :class:`~soma.errors.DaemonError` and
streams build output through :func:`~soma.output.message`.
"""

from typing import IO, Any

import docker
import docker.errors

from soma.core.resources import CONTAINER_PORT, LabelFilter
from soma.errors import DaemonError
from soma.output import MessageType, VerbosityLevel, message


class Daemon:
    """Container daemon operations used by soma."""

    def __init__(self, client: docker.DockerClient | None = None):
        """Initialize the daemon wrapper.

        Args:
            client: Docker client to use. Defaults to one configured from
                the environment, created on first use.
        """
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as e:
                raise DaemonError(f"Cannot connect to the Docker daemon: {e}") from e
        return self._client

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def list_images(self, label_filter: LabelFilter) -> list[Any]:
        try:
            return self.client.images.list(filters=label_filter.build())
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to list images: {e}") from e

    def list_containers(self, label_filter: LabelFilter) -> list[Any]:
        try:
            return self.client.containers.list(all=True, filters=label_filter.build())
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to list containers: {e}") from e

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------
    def build(self, context: IO[bytes], tag: str, labels: dict[str, str]) -> None:
        """Build an image from a tar build context, streaming the log.

        Raises:
            DaemonError: If the daemon reports an error at any point
        """
        message(f"Building image {tag}", MessageType.INFO, VerbosityLevel.VERBOSE)
        try:
            stream = self.client.api.build(
                fileobj=context,
                custom_context=True,
                tag=tag,
                labels=labels,
                forcerm=True,
                decode=True,
            )
            for chunk in stream:
                if "error" in chunk:
                    raise DaemonError(f"Failed to build image {tag}: {chunk['error'].strip()}")
                line = chunk.get("stream", "").rstrip()
                if line:
                    message(line, MessageType.DEBUG, VerbosityLevel.EXTRA_VERBOSE)
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to build image {tag}: {e}") from e

    def pull(self, name: str, tag: str = "latest") -> None:
        message(f"Pulling image {name}:{tag}", MessageType.INFO, VerbosityLevel.VERBOSE)
        try:
            for chunk in self.client.api.pull(name, tag=tag, stream=True, decode=True):
                if "error" in chunk:
                    raise DaemonError(f"Failed to pull image {name}:{tag}: {chunk['error']}")
                status = chunk.get("status")
                if status:
                    message(status, MessageType.DEBUG, VerbosityLevel.DEBUG)
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to pull image {name}:{tag}: {e}") from e

    def remove_image(self, name: str) -> None:
        try:
            self.client.images.remove(name)
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to remove image {name}: {e}") from e

    def prune_images(self, label_filter: LabelFilter) -> None:
        try:
            self.client.images.prune(filters=label_filter.build())
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to prune images: {e}") from e

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------
    def create(self, image: str, labels: dict[str, str], port: str) -> str:
        """Create a container serving *image* on host *port*.

        Returns:
            Id of the new container
        """
        try:
            container = self.client.containers.create(
                image,
                labels=labels,
                ports={CONTAINER_PORT: port},
            )
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to create container from {image}: {e}") from e
        return container.id

    def start(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).start()
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to start container {container_id}: {e}") from e

    def stop(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).stop()
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to stop container {container_id}: {e}") from e

    def remove_container(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).remove()
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to remove container {container_id}: {e}") from e

    def prune_containers(self, label_filter: LabelFilter) -> None:
        try:
            self.client.containers.prune(filters=label_filter.build())
        except docker.errors.DockerException as e:
            raise DaemonError(f"Failed to prune containers: {e}") from e
