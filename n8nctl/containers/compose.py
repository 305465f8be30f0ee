"""Docker Compose orchestration for n8nctl."""

import json
import logging
import os
import shutil
import subprocess
from typing import Any, Dict, List, Optional

from ..utils.errors import DockerError, N8nctlEnvironmentError, create_error_suggestions

logger = logging.getLogger(__name__)


class ComposeOrchestrator:
    """Runs ``docker compose`` commands against one project directory."""

    def __init__(
        self,
        project_dir: str = ".",
        compose_file: str = "docker-compose.yml",
        timeout: int = 300,
        verbose: bool = False,
    ):
        """
        Initialize Docker Compose orchestrator.

        Args:
            project_dir: Directory holding the compose project
            compose_file: Compose definition file, relative to ``project_dir``
            timeout: Default timeout for compose commands in seconds
            verbose: Whether to enable verbose output
        """
        self.project_dir = os.path.abspath(project_dir)
        self.compose_file = compose_file
        self.timeout = timeout
        self.verbose = verbose

    def _command(self, *args: str) -> List[str]:
        cmd = ["docker", "compose"]
        if os.path.exists(os.path.join(self.project_dir, self.compose_file)):
            cmd.extend(["-f", self.compose_file])
        cmd.extend(args)
        return cmd

    def _run(
        self,
        args: List[str],
        timeout: Optional[int] = None,
        input: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd = self._command(*args)

        if self.verbose:
            logger.debug("Running: %s", " ".join(cmd))

        try:
            return subprocess.run(
                cmd,
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                input=input,
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise DockerError(f"'{' '.join(cmd)}' timed out after {e.timeout}s") from e
        except FileNotFoundError as e:
            raise N8nctlEnvironmentError(
                "Docker is not installed or not in PATH",
                suggestions=create_error_suggestions("docker_missing"),
            ) from e

    def is_compose_available(self) -> bool:
        """Check if the docker CLI and its compose plugin are available."""
        if shutil.which("docker") is None:
            return False
        try:
            result = subprocess.run(
                ["docker", "compose", "version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
            return result.returncode == 0
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False

    def ensure_available(self) -> None:
        """
        Verify the orchestration CLI is installed and functional.

        Raises:
            N8nctlEnvironmentError: If docker or the compose plugin is missing
        """
        if shutil.which("docker") is None:
            raise N8nctlEnvironmentError(
                "Docker is not installed or not in PATH",
                suggestions=create_error_suggestions("docker_missing"),
            )
        if not self.is_compose_available():
            raise N8nctlEnvironmentError(
                "Docker Compose is not available",
                details="'docker compose version' did not succeed",
                suggestions=create_error_suggestions("docker_missing"),
            )

    def is_running(self, service: str) -> bool:
        """Return True when ``service`` has at least one running container."""
        try:
            result = self._run(["ps", "-q", service], timeout=30)
        except DockerError:
            return False
        return result.returncode == 0 and bool(result.stdout.strip())

    def get_service_status(self) -> List[Dict[str, Any]]:
        """
        Get status of services managed by Docker Compose.

        Returns:
            List[Dict[str, Any]]: One entry per container (name, service, state, health)
        """
        try:
            result = self._run(["ps", "--all", "--format", "json"], timeout=30)
        except DockerError as e:
            logger.debug("Failed to get service status: %s", e)
            return []

        if result.returncode != 0 or not result.stdout.strip():
            return []

        # Older compose releases print one JSON array, newer ones one object per line
        output = result.stdout.strip()
        try:
            parsed = json.loads(output)
            entries = parsed if isinstance(parsed, list) else [parsed]
        except json.JSONDecodeError:
            entries = []
            for line in output.splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        services = []
        for entry in entries:
            services.append(
                {
                    "name": entry.get("Name", "unknown"),
                    "service": entry.get("Service", "unknown"),
                    "state": entry.get("State", "unknown"),
                    "health": entry.get("Health", ""),
                    "status": entry.get("Status", ""),
                }
            )
        return services

    def services_running(self) -> bool:
        """True when every container is running and none reports starting/unhealthy."""
        services = self.get_service_status()
        if not services:
            return False
        for service in services:
            if service["state"] != "running":
                return False
            if service["health"] not in ("", "healthy"):
                return False
        return True

    def status_text(self) -> str:
        """Human-readable ``docker compose ps`` output."""
        try:
            result = self._run(["ps"], timeout=30)
        except N8nctlEnvironmentError:
            return "Docker Compose not available"
        except DockerError as e:
            return f"Docker Compose status unavailable: {e}"
        if result.returncode != 0:
            return "Docker Compose not available"
        return result.stdout.rstrip()

    def _checked(self, args: List[str], action: str, timeout: Optional[int] = None) -> bool:
        result = self._run(args, timeout=timeout)
        if result.returncode != 0:
            error_msg = f"Docker Compose {action} failed with exit code {result.returncode}"
            if result.stderr:
                error_msg += f": {result.stderr.strip()}"
            raise DockerError(error_msg)
        return True

    def pull_images(self) -> bool:
        """Pull the newest images for every service."""
        return self._checked(["pull"], "pull", timeout=max(self.timeout, 600))

    def start_services(self, detach: bool = True) -> bool:
        """Start services (``up -d``)."""
        args = ["up"]
        if detach:
            args.append("-d")
        return self._checked(args, "up")

    def stop_services(self) -> bool:
        """Stop and remove the project's containers (``down``)."""
        return self._checked(["down"], "down", timeout=120)

    def exec_command(
        self, service: str, command: List[str], input: Optional[str] = None, timeout: Optional[int] = None
    ) -> subprocess.CompletedProcess:
        """
        Execute a command in a running service container.

        Args:
            service: Service to execute the command in
            command: Command and arguments
            input: Optional text fed to stdin
            timeout: Optional timeout override

        Returns:
            subprocess.CompletedProcess: Result; callers check ``returncode``
        """
        return self._run(["exec", "-T", service] + command, timeout=timeout or 120, input=input)

    def copy_to_service(self, service: str, source: str, destination: str) -> bool:
        """Copy a local file into a service container (``docker compose cp``)."""
        result = self._run(["cp", source, f"{service}:{destination}"], timeout=120)
        return result.returncode == 0

    def get_service_logs(self, service: Optional[str] = None, tail: int = 50) -> str:
        """
        Get logs from services.

        Args:
            service: Specific service to get logs from (None for all)
            tail: Number of lines to tail

        Returns:
            str: Log output
        """
        args = ["logs", "--no-color", "--tail", str(tail)]
        if service:
            args.append(service)

        try:
            result = self._run(args, timeout=30)
        except DockerError as e:
            return f"Error getting logs: {e}"

        if result.returncode == 0:
            return result.stdout
        return f"Failed to get logs: {result.stderr}"
