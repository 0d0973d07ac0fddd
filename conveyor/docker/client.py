"""Container engine backed by the docker daemon.

Pull, inspect, tag and push go through the docker SDK. Images are built
by shelling out to the docker CLI so that .dockerignore and build context
handling match what developers run locally.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

import docker
from docker.errors import DockerException

from conveyor.docker.errors import DockerError, from_docker_exception
from conveyor.process import ProcessError, ProcessTimeoutError, run_command
from conveyor.types import ImageDescriptor, OutputSink

logger = logging.getLogger(__name__)


class ContainerEngine(Protocol):
    """Operations the pipeline needs from a container daemon and registry."""

    def pull(self, repository: str, tag: str, sink: OutputSink) -> None: ...

    def build(self, context_dir: Path, image_name: str, sink: OutputSink) -> None: ...

    def inspect(self, name: str) -> ImageDescriptor: ...

    def tag(self, image: str, tag: str, force: bool = True) -> None: ...

    def push(self, image: str, tag: str, sink: OutputSink) -> None: ...


def write_progress(
    events: Iterable[dict[str, Any]], sink: OutputSink, ref: str
) -> None:
    """Forward decoded pull/push progress events to sink as text lines.

    Raises:
        DockerError: If the daemon reports an error inside the stream.
    """
    for event in events:
        if "error" in event:
            raise DockerError(f"{ref}: {event['error']}", code="stream_error")
        line = " ".join(
            str(event[key]) for key in ("id", "status", "progress") if event.get(key)
        )
        if line:
            sink.write(f"{line}\n".encode())
            sink.flush()


class DockerEngine:
    """ContainerEngine implementation for a local docker daemon.

    The SDK client is created on first use. When a username is configured
    the client logs in to the registry once, before its first pull or push.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        executable: str = "docker",
        username: str | None = None,
        password: str | None = None,
        registry: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self.executable = executable
        self.username = username
        self.password = password
        self.registry = registry
        self.timeout = timeout
        self._logged_in = False
        self._lock = threading.Lock()

    @property
    def client(self) -> docker.DockerClient:
        """Docker SDK client, connected on first access."""
        with self._lock:
            if self._client is None:
                kwargs: dict[str, Any] = {}
                if self.timeout:
                    kwargs["timeout"] = int(self.timeout)
                try:
                    self._client = docker.from_env(**kwargs)
                except DockerException as e:
                    raise from_docker_exception(e, "Cannot connect to docker") from e
            return self._client

    def close(self) -> None:
        """Close the SDK client if one was opened."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def login(self) -> None:
        """Log in to the registry if credentials are configured."""
        if not self.username:
            return
        client = self.client
        with self._lock:
            if self._logged_in:
                return
            try:
                client.login(
                    username=self.username,
                    password=self.password,
                    registry=self.registry,
                )
            except DockerException as e:
                raise from_docker_exception(
                    e, f"docker login as {self.username} failed"
                ) from e
            self._logged_in = True
            logger.info("Logged in to registry %s", self.registry or "docker.io")

    def pull(self, repository: str, tag: str, sink: OutputSink) -> None:
        """Pull repository:tag.

        Raises:
            TagNotFoundError: If the tag does not exist.
            RegistryAuthError: If access is denied.
            DockerError: For any other failure.
        """
        self.login()
        ref = f"{repository}:{tag}"
        logger.info("Pulling %s", ref)
        try:
            events = self.client.api.pull(
                repository, tag=tag, stream=True, decode=True
            )
            write_progress(events, sink, f"pull {ref}")
        except DockerException as e:
            raise from_docker_exception(
                e, f"pull {ref} failed", repository=repository, tag=tag
            ) from e

    def build(self, context_dir: Path, image_name: str, sink: OutputSink) -> None:
        """Build the context directory into image_name with the docker CLI.

        Raises:
            ProcessError: If docker build exits non-zero.
            DockerError: If docker cannot be run or times out.
        """
        logger.info("Building %s from %s", image_name, context_dir)
        try:
            run_command(
                [self.executable, "build", "-t", image_name, "."],
                sink,
                cwd=context_dir,
                timeout=self.timeout,
            )
        except ProcessTimeoutError as e:
            raise DockerError(
                f"docker build of {image_name} timed out", code="timeout"
            ) from e
        except ProcessError as e:
            if e.exit_code is None:
                raise DockerError(str(e), code="execution_error") from e
            raise

    def inspect(self, name: str) -> ImageDescriptor:
        """Return the descriptor of a local image."""
        try:
            image = self.client.images.get(name)
        except DockerException as e:
            raise from_docker_exception(e, f"inspect {name} failed") from e

        attrs = image.attrs
        return ImageDescriptor(
            id=attrs.get("Id", image.id),
            name=name,
            repo_tags=list(attrs.get("RepoTags") or []),
            created=attrs.get("Created"),
        )

    def tag(self, image: str, tag: str, force: bool = True) -> None:
        """Tag image as image:tag.

        With force=False an existing tag is not moved.
        """
        ref = f"{image}:{tag}"
        if not force:
            try:
                self.inspect(ref)
            except DockerError:
                pass
            else:
                raise DockerError(f"Tag {ref} already exists", code="tag_exists")
        try:
            tagged = self.client.api.tag(image, image, tag=tag, force=force)
        except DockerException as e:
            raise from_docker_exception(e, f"tag {ref} failed") from e
        if not tagged:
            raise DockerError(f"tag {ref} failed")

    def push(self, image: str, tag: str, sink: OutputSink) -> None:
        """Push image:tag to the registry."""
        self.login()
        ref = f"{image}:{tag}"
        logger.info("Pushing %s", ref)
        try:
            events = self.client.api.push(image, tag=tag, stream=True, decode=True)
            write_progress(events, sink, f"push {ref}")
        except DockerException as e:
            raise from_docker_exception(e, f"push {ref} failed") from e


__all__ = ["ContainerEngine", "DockerEngine", "write_progress"]
