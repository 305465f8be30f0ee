"""Docker Engine access for n8nctl."""

import logging
from typing import Any, Dict

import docker
from docker.errors import APIError, DockerException, NotFound

from ..utils.errors import DockerError, create_error_suggestions

logger = logging.getLogger(__name__)


class ContainerManager:
    """Talks to the Docker daemon for engine-level tasks compose does not cover."""

    def __init__(self, verbose: bool = False):
        """
        Initialize container manager.

        Args:
            verbose: Whether to enable verbose output
        """
        self.verbose = verbose
        self._client = None

    @property
    def client(self) -> Any:
        """Get Docker client, creating it if necessary."""
        if self._client is None:
            try:
                self._client = docker.from_env()
                self._client.ping()
            except DockerException as e:
                raise DockerError(
                    f"Cannot connect to Docker daemon: {e}",
                    suggestions=create_error_suggestions("docker_not_running"),
                ) from e

        return self._client

    def test_engine(self) -> bool:
        """
        Run the ``hello-world`` image to prove the engine works end to end.

        Raises:
            DockerError: If the test container cannot run
        """
        try:
            self.client.containers.run("hello-world", remove=True)
        except DockerException as e:
            raise DockerError(f"Docker test failed: {e}") from e

        logger.debug("hello-world container ran successfully")
        return True

    def create_network(self, name: str, driver: str = "bridge") -> bool:
        """
        Create Docker network if it doesn't exist.

        Args:
            name: Network name
            driver: Network driver (default: bridge)

        Returns:
            bool: True if the network was created, False if it already existed

        Raises:
            DockerError: If network creation fails
        """
        try:
            try:
                self.client.networks.get(name)
                logger.info("Network '%s' already exists", name)
                return False
            except NotFound:
                pass

            self.client.networks.create(name, driver=driver)
            logger.debug("Created network '%s' with driver '%s'", name, driver)
            return True

        except APIError as e:
            raise DockerError(f"Failed to create network '{name}': {e}") from e

    def prune_dangling_images(self) -> Dict[str, Any]:
        """
        Remove dangling images left behind by an image pull.

        Returns:
            Dict[str, Any]: ``removed`` image count and ``space_reclaimed`` bytes
        """
        try:
            result = self.client.images.prune(filters={"dangling": True}) or {}
        except APIError as e:
            raise DockerError(f"Failed to prune images: {e}") from e

        deleted = result.get("ImagesDeleted") or []
        return {
            "removed": len(deleted),
            "space_reclaimed": result.get("SpaceReclaimed", 0),
        }
