"""Service health checking for n8nctl."""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

UNAVAILABLE = "unavailable"

# Command that prints the running version, per service
VERSION_COMMANDS: Dict[str, List[str]] = {
    "n8n": ["n8n", "--version"],
    "traefik": ["traefik", "version"],
}


def version_commands(app_service: str, proxy_service: str) -> Dict[str, List[str]]:
    """Map configured service names to the n8n and Traefik version commands."""
    return {
        app_service: VERSION_COMMANDS["n8n"],
        proxy_service: VERSION_COMMANDS["traefik"],
    }


class HealthChecker:
    """Observes compose services: versions, running state and HTTP health paths."""

    def __init__(self, orchestrator: Any, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize health checker.

        Args:
            orchestrator: ComposeOrchestrator (or compatible) to query
            sleep: Blocking sleep function, injectable for tests
        """
        self.orchestrator = orchestrator
        self.sleep = sleep

    def wait_for_services(self, max_attempts: int = 30, interval: float = 10) -> bool:
        """
        Poll ``docker compose ps`` until every service reports running/healthy.

        Args:
            max_attempts: Maximum number of polls
            interval: Seconds to wait between polls

        Returns:
            bool: True if services became healthy within the attempt budget
        """
        for attempt in range(1, max_attempts + 1):
            if self.orchestrator.services_running():
                return True

            logger.info("Attempt %d/%d - waiting for services...", attempt, max_attempts)
            if attempt < max_attempts:
                self.sleep(interval)

        return False

    def get_version(self, service: str, command: Optional[List[str]] = None) -> str:
        """
        Query the version string of a running service.

        Returns ``unavailable`` when the service is not running or the query fails.
        """
        command = command or VERSION_COMMANDS.get(service)
        if not command or not self.orchestrator.is_running(service):
            return UNAVAILABLE

        result = self.orchestrator.exec_command(service, command)
        output = (result.stdout or "").strip()
        if result.returncode != 0 or not output:
            return UNAVAILABLE

        return output.splitlines()[0].strip()

    def get_versions(self, commands: Dict[str, List[str]]) -> Dict[str, str]:
        """Version string for each service in ``commands`` (service -> version command)."""
        return {service: self.get_version(service, command) for service, command in commands.items()}

    def check_endpoint(self, service: str, url: str) -> bool:
        """
        Probe an HTTP health path from inside the service container.

        Args:
            service: Service whose container runs the probe
            url: URL reachable from inside the container

        Returns:
            bool: True if ``wget --spider`` succeeded
        """
        if not self.orchestrator.is_running(service):
            return False

        result = self.orchestrator.exec_command(service, ["wget", "-q", "--spider", url], timeout=30)
        return result.returncode == 0
