"""Backup coordinator: snapshot data, config, certificates and n8n exports into one archive."""

import getpass
import logging
import os
import shutil
import socket
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional

from jinja2 import Environment, FileSystemLoader

from n8nctl.config import OpsConfig
from n8nctl.containers import ComposeOrchestrator, HealthChecker
from n8nctl.containers.health import VERSION_COMMANDS
from n8nctl.infrastructure.steps import Step, StepReport, StepRunner
from n8nctl.utils.errors import BackupError, DegradedStepWarning, N8nctlError, create_error_suggestions
from n8nctl.utils.files import FileManager, human_size
from n8nctl.utils.logging import log_success

from .storage import BackupStorage

logger = logging.getLogger(__name__)

DATA_ARCHIVE = "n8n_data.tar.gz"
CERTS_ARCHIVE = "traefik_certs.tar.gz"
MANIFEST_FILE = "backup_info.txt"
WORKFLOWS_EXPORT = os.path.join("workflows", "all_workflows.json")
CREDENTIALS_EXPORT = os.path.join("credentials", "all_credentials.json")

# Export kind -> file inside the backup directory
EXPORTS = {
    "workflow": WORKFLOWS_EXPORT,
    "credentials": CREDENTIALS_EXPORT,
}

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "..", "templates")


@dataclass
class BackupResult:
    """Outcome of a successful backup run."""

    archive_path: str
    backup_name: str
    size_bytes: int
    pruned: List[str] = field(default_factory=list)
    report: Optional[StepReport] = None

    @property
    def size_human(self) -> str:
        return human_size(self.size_bytes)

    @property
    def warnings(self) -> List[str]:
        return self.report.warnings if self.report else []


class BackupManager:
    """Creates one timestamped archive per run and applies the retention policy."""

    def __init__(
        self,
        config: OpsConfig,
        orchestrator: Optional[Any] = None,
        storage: Optional[BackupStorage] = None,
        clock: Callable[[], datetime] = datetime.now,
        verbose: bool = False,
    ):
        """
        Initialize backup manager.

        Args:
            config: Project paths and tunables
            orchestrator: Compose orchestrator (defaults to one for ``config``)
            storage: Archive store (defaults to one for ``config.backup_dir``)
            clock: Source of the backup timestamp
            verbose: Enable verbose output
        """
        self.config = config
        self.verbose = verbose
        self.clock = clock
        self.orchestrator = orchestrator or ComposeOrchestrator(
            project_dir=config.project_dir,
            compose_file=config.compose_file,
            timeout=config.command_timeout,
            verbose=verbose,
        )
        self.storage = storage or BackupStorage(
            config.backup_path,
            prefix=config.backup_prefix,
            keep=config.keep_backups,
            verbose=verbose,
        )
        self.files = FileManager(verbose=verbose)
        self.health = HealthChecker(self.orchestrator)
        self.runner = StepRunner(verbose=verbose)
        self.jinja_env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR), trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True
        )

        self._started_at: Optional[datetime] = None
        self._backup_name: Optional[str] = None
        self._contents: List[str] = []

    @property
    def staging_path(self) -> str:
        return self.storage.staging_path(self._backup_name)

    def run_backup(self) -> BackupResult:
        """
        Run a full backup.

        Returns:
            BackupResult: Archive path, size and the step report

        Raises:
            N8nctlEnvironmentError: If docker compose is unavailable
            BackupError: If no archive could be produced
        """
        self._started_at = self.clock()
        self._backup_name = None
        self._contents = []

        logger.info("Starting n8n backup process...")

        steps = [
            Step("check_environment", self.orchestrator.ensure_available, fatal=True),
            Step("create_staging", self._create_staging, fatal=True, description="Creating backup directory..."),
            Step("backup_data", self._backup_data, fatal=True, description="Backing up n8n data..."),
            Step("backup_config", self._backup_config, description="Backing up configuration files..."),
            Step("backup_certificates", self._backup_certificates, fatal=True,
                 description="Backing up Let's Encrypt certificates..."),
            Step("export_workflows", lambda: self._export("workflow"), description="Exporting workflows..."),
            Step("export_credentials", lambda: self._export("credentials"), description="Exporting credentials..."),
            Step("write_manifest", self._write_manifest, description="Creating backup information file..."),
            Step("compress", self._compress, fatal=True, description="Compressing backup..."),
            Step("prune", self._prune, description="Cleaning old backups..."),
            Step("report_size", self._report_size),
        ]

        report = self.runner.run(steps)

        if not report.success:
            if isinstance(report.error, N8nctlError):
                raise report.error
            raise BackupError(
                f"Backup failed during '{report.failed_step}'",
                details=str(report.error),
                suggestions=create_error_suggestions("backup_failed"),
            ) from report.error

        archive_path = report.result_of("compress")
        result = BackupResult(
            archive_path=archive_path,
            backup_name=self._backup_name,
            size_bytes=report.result_of("report_size") or self.storage.archive_size(archive_path),
            pruned=report.result_of("prune") or [],
            report=report,
        )

        log_success(logger, "Backup completed successfully!")
        logger.info("Backup location: %s", archive_path)
        return result

    def _create_staging(self) -> str:
        self.storage.ensure_directory()
        self._backup_name = self.storage.reserve_name(self._started_at)
        try:
            os.makedirs(self.staging_path)
        except OSError as e:
            raise BackupError(f"Cannot create backup directory {self.staging_path}: {e}") from e
        log_success(logger, "Backup directory created: %s", self.staging_path)
        return self.staging_path

    def _backup_data(self) -> str:
        data_path = self.config.data_path
        if not os.path.isdir(data_path):
            raise DegradedStepWarning("n8n data directory not found")

        try:
            archive = self.files.create_tarball(data_path, os.path.join(self.staging_path, DATA_ARCHIVE))
        except (OSError, ValueError) as e:
            raise BackupError(f"Failed to archive n8n data: {e}") from e

        self._contents.append(f"n8n data directory ({DATA_ARCHIVE})")
        log_success(logger, "n8n data backed up")
        return archive

    def _backup_config(self) -> List[str]:
        copied = []
        for source in (self.config.env_path, self.config.compose_path):
            written = self.files.copy_if_exists(source, self.staging_path)
            if written:
                copied.append(written)
                log_success(logger, "%s backed up", os.path.basename(source))

        if copied:
            names = ", ".join(os.path.basename(path) for path in copied)
            self._contents.append(f"Configuration files ({names})")
        else:
            raise DegradedStepWarning("No configuration files found to back up")
        return copied

    def _backup_certificates(self) -> Optional[str]:
        certs_path = self.config.certs_path
        if not os.path.isdir(certs_path):
            raise DegradedStepWarning("Certificate directory not found - skipping certificates")

        try:
            archive = self.files.create_tarball(certs_path, os.path.join(self.staging_path, CERTS_ARCHIVE))
        except (OSError, ValueError) as e:
            raise BackupError(f"Failed to archive certificates: {e}") from e

        self._contents.append(f"Let's Encrypt certificates ({CERTS_ARCHIVE})")
        log_success(logger, "Let's Encrypt certificates backed up")
        return archive

    def _export(self, kind: str) -> str:
        """Export workflows or credentials through the n8n CLI inside the container."""
        service = self.config.app_service
        label = "workflows" if kind == "workflow" else "credentials"

        if not self.orchestrator.is_running(service):
            raise DegradedStepWarning(f"{service} container is not running - skipping {label} export")

        destination = os.path.join(self.staging_path, EXPORTS[kind])
        os.makedirs(os.path.dirname(destination), exist_ok=True)

        container_file = f"/tmp/{kind}_export.json"
        result = self.orchestrator.exec_command(
            service, ["n8n", f"export:{kind}", "--all", f"--output={container_file}"]
        )
        if result.returncode == 0:
            result = self.orchestrator.exec_command(service, ["cat", container_file])

        if result.returncode != 0:
            raise DegradedStepWarning(
                f"Could not export {label} via n8n CLI - data backup includes {label}"
            )

        with open(destination, "w", encoding="utf-8") as f:
            f.write(result.stdout)

        self._contents.append(f"{label.capitalize()} export ({EXPORTS[kind]})")
        if kind == "credentials":
            log_success(logger, "Credentials exported (encrypted)")
        else:
            log_success(logger, "Workflows exported")
        return destination

    def _write_manifest(self) -> str:
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = "unknown"

        template = self.jinja_env.get_template(MANIFEST_FILE + ".j2")
        manifest = template.render(
            backup_date=self._started_at.strftime("%a %b %d %H:%M:%S %Y"),
            backup_name=self._backup_name,
            hostname=socket.gethostname(),
            user=user,
            compose_status=self.orchestrator.status_text() or "No services",
            app_version=self.health.get_version(self.config.app_service, VERSION_COMMANDS["n8n"]),
            contents=self._contents or ["Backup information only"],
            data_archive=DATA_ARCHIVE,
        )

        manifest_path = os.path.join(self.staging_path, MANIFEST_FILE)
        with open(manifest_path, "w", encoding="utf-8") as f:
            f.write(manifest)

        log_success(logger, "Backup information file created")
        return manifest_path

    def _compress(self) -> str:
        archive_path = self.storage.archive_path(self._backup_name)
        try:
            self.files.create_tarball(self.staging_path, archive_path, arcname=self._backup_name)
        except (OSError, ValueError) as e:
            raise BackupError(f"Failed to compress backup: {e}") from e

        shutil.rmtree(self.staging_path)
        log_success(logger, "Backup compressed: %s", archive_path)
        return archive_path

    def _prune(self) -> List[str]:
        try:
            removed = self.storage.prune()
        except OSError as e:
            raise DegradedStepWarning(f"Could not clean old backups: {e}") from e

        log_success(logger, "Keeping %d backup(s)", len(self.storage.list_archives()))
        return removed

    def _report_size(self) -> int:
        size = self.storage.archive_size(self.storage.archive_path(self._backup_name))
        log_success(logger, "Backup size: %s", human_size(size))
        return size
