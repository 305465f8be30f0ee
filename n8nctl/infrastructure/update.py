"""Update coordinator: pull new images and restart the stack with health checks."""

import filecmp
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from n8nctl.config import OpsConfig
from n8nctl.containers import ComposeOrchestrator, HealthChecker
from n8nctl.containers.health import version_commands
from n8nctl.containers.manager import ContainerManager
from n8nctl.git import GitOperations
from n8nctl.utils.errors import (
    DegradedStepWarning,
    N8nctlError,
    UpdateError,
    UserCancelled,
    create_error_suggestions,
)
from n8nctl.utils.files import human_size
from n8nctl.utils.logging import log_success

from .steps import Step, StepReport, StepRunner

logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    """Outcome of an update run."""

    versions_before: Dict[str, str] = field(default_factory=dict)
    versions_after: Dict[str, str] = field(default_factory=dict)
    healthy: bool = False
    backup_archive: Optional[str] = None
    report: Optional[StepReport] = None

    @property
    def warnings(self):
        return self.report.warnings if self.report else []


class UpdateManager:
    """Pulls the latest images for the compose project and restarts it."""

    def __init__(
        self,
        config: OpsConfig,
        orchestrator: Optional[Any] = None,
        backup_manager: Optional[Any] = None,
        container_manager: Optional[Any] = None,
        git_ops: Optional[GitOperations] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
        verbose: bool = False,
    ):
        """
        Initialize update manager.

        Args:
            config: Project paths and tunables
            orchestrator: Compose orchestrator (defaults to one for ``config``)
            backup_manager: Object with ``run_backup()``, used when ``auto_backup`` is set
            container_manager: Docker SDK wrapper used to prune dangling images
            git_ops: Git inspection used to detect local compose file edits
            confirm: Callback asked whether to continue without a backup
            sleep: Blocking sleep for health polling and version settling
            verbose: Enable verbose output
        """
        self.config = config
        self.verbose = verbose
        self.confirm = confirm
        self.sleep = sleep
        self.orchestrator = orchestrator or ComposeOrchestrator(
            project_dir=config.project_dir,
            compose_file=config.compose_file,
            timeout=config.command_timeout,
            verbose=verbose,
        )
        self.backup_manager = backup_manager
        self.container_manager = container_manager or ContainerManager(verbose=verbose)
        self.git_ops = git_ops or GitOperations(verbose=verbose)
        self.health = HealthChecker(self.orchestrator, sleep=sleep)
        self.runner = StepRunner(verbose=verbose)

        self._result: Optional[UpdateResult] = None

    @property
    def _version_commands(self):
        return version_commands(self.config.app_service, self.config.proxy_service)

    def run_update(self, auto_backup: bool = False) -> UpdateResult:
        """
        Update the running stack.

        Args:
            auto_backup: Take a backup first; a failed backup aborts the update

        Returns:
            UpdateResult: Versions before/after, health outcome and step report

        Raises:
            N8nctlEnvironmentError: If docker compose is unavailable
            UpdateError: If the pre-update backup failed
            UserCancelled: If the operator declined to continue without a backup
        """
        self._result = UpdateResult()
        logger.info("Starting n8n update process...")

        steps = [
            Step("check_environment", self.orchestrator.ensure_available, fatal=True),
            Step("record_versions", self._record_versions, description="Checking current versions..."),
            Step("backup_gate", lambda: self._backup_gate(auto_backup), fatal=True),
            Step("check_drift", self._check_drift),
            Step("pull_images", self._pull, description="Pulling latest images..."),
            Step("stop_services", self._stop, description="Stopping services..."),
            Step("start_services", self._start, description="Starting services with new images..."),
            Step("wait_for_health", self._wait_for_health, description="Waiting for services to be healthy..."),
            Step("report_versions", self._report_versions),
            Step("show_status", self._show_status),
            Step("probe_endpoints", self._probe_endpoints, description="Checking service health..."),
            Step("prune_images", self._prune_images, description="Cleaning up old images..."),
        ]

        report = self.runner.run(steps)
        self._result.report = report

        if not report.success:
            if isinstance(report.error, N8nctlError):
                raise report.error
            raise UpdateError(
                f"Update failed during '{report.failed_step}'",
                details=str(report.error),
            ) from report.error

        if self._result.healthy:
            log_success(logger, "Update completed successfully!")
        else:
            logger.warning("Update finished, but services did not report healthy - check the logs")
        return self._result

    def _record_versions(self) -> Dict[str, str]:
        versions = self.health.get_versions(self._version_commands)
        self._result.versions_before = versions
        for service, version in versions.items():
            logger.info("Current %s version: %s", service, version)
        return versions

    def _backup_gate(self, auto_backup: bool) -> Optional[str]:
        if auto_backup:
            if self.backup_manager is None:
                raise UpdateError("Automatic backup requested but no backup manager is configured")

            logger.info("Creating backup before update...")
            try:
                backup = self.backup_manager.run_backup()
            except UserCancelled:
                raise
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                raise UpdateError(
                    "Backup failed! Aborting update.",
                    details=message,
                    suggestions=create_error_suggestions("backup_failed"),
                ) from e

            self._result.backup_archive = backup.archive_path
            log_success(logger, "Backup completed")
            return backup.archive_path

        logger.warning("No backup will be created before updating")
        if self.confirm is None or not self.confirm("Continue without backup?"):
            logger.info("Update cancelled")
            raise UserCancelled("Update cancelled by user")
        return None

    def _check_drift(self) -> Dict[str, bool]:
        drift = {"compose_modified": False, "env_differs": False}
        compose_path = self.config.compose_path

        if os.path.isfile(compose_path) and self.git_ops.is_file_modified(self.config.project_dir, compose_path):
            drift["compose_modified"] = True
            logger.warning("%s has local modifications", os.path.basename(compose_path))

        env_path = self.config.env_path
        template_path = self.config.env_template_path
        if os.path.isfile(env_path) and os.path.isfile(template_path):
            if not filecmp.cmp(env_path, template_path, shallow=False):
                drift["env_differs"] = True
                logger.info(
                    "%s differs from %s - check for new settings",
                    os.path.basename(template_path),
                    os.path.basename(env_path),
                )
        return drift

    def _pull(self) -> bool:
        self.orchestrator.pull_images()
        log_success(logger, "Images pulled")
        return True

    def _stop(self) -> bool:
        self.orchestrator.stop_services()
        log_success(logger, "Services stopped")
        return True

    def _start(self) -> bool:
        self.orchestrator.start_services()
        log_success(logger, "Services started")
        return True

    def _wait_for_health(self) -> bool:
        healthy = self.health.wait_for_services(
            max_attempts=self.config.health_attempts,
            interval=self.config.health_interval,
        )
        self._result.healthy = healthy

        if not healthy:
            logs = self.orchestrator.get_service_logs(tail=50)
            if logs:
                logger.warning("Recent service logs:\n%s", logs.rstrip())
            raise DegradedStepWarning("Services may not be fully healthy. Check logs with: docker compose logs")

        log_success(logger, "All services are healthy")
        return True

    def _report_versions(self) -> Dict[str, str]:
        self.sleep(self.config.version_settle_seconds)
        versions = self.health.get_versions(self._version_commands)
        self._result.versions_after = versions

        logger.info("Version comparison:")
        for service, after in versions.items():
            before = self._result.versions_before.get(service, "unavailable")
            logger.info("  %s: %s -> %s", service, before, after)
        return versions

    def _show_status(self) -> str:
        status = self.orchestrator.status_text()
        logger.info("Container status:\n%s", status.rstrip() if status else "No services")
        return status

    def _probe_endpoints(self) -> Dict[str, bool]:
        results = {}
        for service, url in self.config.health_endpoints.items():
            ok = self.health.check_endpoint(service, url)
            results[service] = ok
            if ok:
                log_success(logger, "%s health check passed", service)
            else:
                logger.warning("%s health check failed (%s)", service, url)

        failed = [service for service, ok in results.items() if not ok]
        if failed:
            raise DegradedStepWarning(f"Health check failed for: {', '.join(failed)}")
        return results

    def _prune_images(self) -> Dict[str, Any]:
        pruned = self.container_manager.prune_dangling_images()
        log_success(
            logger,
            "Removed %d dangling image(s), reclaimed %s",
            pruned["removed"],
            human_size(pruned["space_reclaimed"]),
        )
        return pruned
