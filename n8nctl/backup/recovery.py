"""Restore coordinator: unpack a backup archive back into the live project."""

import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from n8nctl.config import OpsConfig
from n8nctl.containers import ComposeOrchestrator
from n8nctl.infrastructure.steps import Step, StepReport, StepRunner
from n8nctl.utils.errors import (
    DegradedStepWarning,
    InvalidFormatError,
    N8nctlError,
    RestoreError,
    UserCancelled,
    create_error_suggestions,
)
from n8nctl.utils.files import FileManager
from n8nctl.utils.logging import log_success

from .manager import CERTS_ARCHIVE, DATA_ARCHIVE, EXPORTS, MANIFEST_FILE
from .storage import BackupStorage

logger = logging.getLogger(__name__)

KNOWN_ARTIFACTS = [DATA_ARCHIVE, CERTS_ARCHIVE, MANIFEST_FILE, ".env", "docker-compose.yml", "workflows", "credentials"]


class RestoreMode(Enum):
    """Which parts of a backup a restore writes back."""

    FULL = "full"
    CONFIG_ONLY = "config-only"
    DATA_ONLY = "data-only"

    @property
    def restores_config(self) -> bool:
        return self in (RestoreMode.FULL, RestoreMode.CONFIG_ONLY)

    @property
    def restores_data(self) -> bool:
        return self in (RestoreMode.FULL, RestoreMode.DATA_ONLY)

    @property
    def restores_certificates(self) -> bool:
        return self is RestoreMode.FULL


@dataclass
class RestoreResult:
    """Outcome of a restore run."""

    archive_path: str
    mode: RestoreMode
    dry_run: bool
    backup_name: Optional[str] = None
    restored: List[str] = field(default_factory=list)
    safety_copies: List[str] = field(default_factory=list)
    services_running: Optional[bool] = None
    report: Optional[StepReport] = None

    @property
    def warnings(self) -> List[str]:
        return self.report.warnings if self.report else []


class RecoveryManager:
    """Restores configuration, data and certificates from a backup archive."""

    def __init__(
        self,
        config: OpsConfig,
        orchestrator: Optional[Any] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
        verbose: bool = False,
    ):
        """
        Initialize recovery manager.

        Args:
            config: Project paths and tunables
            orchestrator: Compose orchestrator (defaults to one for ``config``)
            confirm: Callback asked before destructive changes; returns True to proceed.
                Without one, only ``force`` or ``dry_run`` restores can run.
            sleep: Blocking sleep used for the post-start grace period
            clock: Source of rename-aside timestamps
            verbose: Enable verbose output
        """
        self.config = config
        self.verbose = verbose
        self.confirm = confirm
        self.sleep = sleep
        self.clock = clock
        self.orchestrator = orchestrator or ComposeOrchestrator(
            project_dir=config.project_dir,
            compose_file=config.compose_file,
            timeout=config.command_timeout,
            verbose=verbose,
        )
        self.storage = BackupStorage(config.backup_path, prefix=config.backup_prefix, keep=config.keep_backups)
        self.files = FileManager(verbose=verbose)
        self.runner = StepRunner(verbose=verbose)

        self._result: Optional[RestoreResult] = None
        self._source: Optional[str] = None
        self._unpacked: Dict[str, str] = {}

    def run_restore(
        self,
        archive: str,
        mode: RestoreMode = RestoreMode.FULL,
        force: bool = False,
        dry_run: bool = False,
    ) -> RestoreResult:
        """
        Restore a backup archive.

        Args:
            archive: Archive path, or a file name inside the backup directory
            mode: Which parts to restore
            force: Skip the confirmation prompt
            dry_run: Only narrate intended actions; change nothing on disk

        Returns:
            RestoreResult: What was restored and the step report

        Raises:
            NotFoundError: If the archive does not exist
            InvalidFormatError: If the archive layout is not a backup
            UserCancelled: If the operator declined the confirmation
            RestoreError: If a fatal restore step failed
        """
        mode = RestoreMode(mode)
        archive_path = self.storage.resolve_archive(archive)
        self._result = RestoreResult(archive_path=archive_path, mode=mode, dry_run=dry_run)

        logger.info("Starting n8n restore from %s (mode: %s)", os.path.basename(archive_path), mode.value)
        if dry_run:
            logger.info("DRY RUN - no changes will be made")

        temp_dir = tempfile.mkdtemp(prefix="n8nctl_restore_")
        try:
            steps = [
                Step("extract", lambda: self._extract(archive_path, temp_dir, mode), fatal=True,
                     description="Extracting backup archive..."),
                Step("show_manifest", self._show_manifest),
                Step("confirm", lambda: self._confirm(mode, force, dry_run), fatal=True),
                Step("stop_services", lambda: self._stop_services(dry_run), fatal=True,
                     description="Stopping services..."),
            ]

            if mode.restores_config:
                steps.append(Step("restore_config", lambda: self._restore_config(dry_run), fatal=True,
                                  description="Restoring configuration files..."))
            if mode.restores_data:
                steps.append(Step("restore_data", lambda: self._restore_directory(
                    DATA_ARCHIVE, self.config.data_path, "n8n data", dry_run), fatal=True,
                    description="Restoring n8n data..."))
            if mode.restores_certificates:
                steps.append(Step("restore_certificates", lambda: self._restore_directory(
                    CERTS_ARCHIVE, self.config.certs_path, "certificates", dry_run), fatal=True,
                    description="Restoring certificates..."))

            steps.append(Step("start_services", lambda: self._start_services(dry_run),
                              description="Starting services..."))
            steps.append(Step("verify_services", lambda: self._verify_services(dry_run)))

            if mode.restores_data:
                steps.append(Step("import_workflows", lambda: self._import("workflow", dry_run),
                                  description="Importing workflows..."))
                steps.append(Step("import_credentials", lambda: self._import("credentials", dry_run),
                                  description="Importing credentials..."))

            report = self.runner.run(steps)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        self._result.report = report

        if not report.success:
            if isinstance(report.error, N8nctlError):
                raise report.error
            raise RestoreError(
                f"Restore failed during '{report.failed_step}'",
                details=str(report.error),
            ) from report.error

        if dry_run:
            log_success(logger, "Dry run completed - nothing was changed")
        else:
            log_success(logger, "Restore completed successfully!")
        return self._result

    def _extract(self, archive_path: str, temp_dir: str, mode: RestoreMode) -> str:
        top_level = self.files.extract_tarball(archive_path, temp_dir)
        directories = [name for name in top_level if os.path.isdir(os.path.join(temp_dir, name))]

        if len(top_level) != 1 or len(directories) != 1:
            raise InvalidFormatError(
                "Invalid backup format: expected a single backup directory inside the archive",
                details=f"Found: {', '.join(top_level) or 'nothing'}",
                suggestions=create_error_suggestions("archive_invalid"),
            )

        source = os.path.join(temp_dir, directories[0])
        if not any(os.path.exists(os.path.join(source, name)) for name in KNOWN_ARTIFACTS):
            raise InvalidFormatError(
                "Invalid backup format: no backup artifacts found",
                details=f"Directory: {directories[0]}",
                suggestions=create_error_suggestions("archive_invalid"),
            )

        self._source = source
        self._result.backup_name = directories[0]

        # Sub-archives are unpacked here so a bad one fails before services stop
        self._unpacked = {}
        wanted = []
        if mode.restores_data:
            wanted.append((DATA_ARCHIVE, "n8n data"))
        if mode.restores_certificates:
            wanted.append((CERTS_ARCHIVE, "certificates"))
        for archive_name, label in wanted:
            sub_archive = os.path.join(source, archive_name)
            if os.path.isfile(sub_archive):
                self._unpacked[archive_name] = self._unpack_directory(sub_archive, temp_dir, label)

        log_success(logger, "Backup extracted: %s", directories[0])
        return source

    def _unpack_directory(self, sub_archive: str, temp_dir: str, label: str) -> str:
        unpack_dir = os.path.join(temp_dir, f"unpack_{os.path.basename(sub_archive)}")
        top_level = self.files.extract_tarball(sub_archive, unpack_dir)
        if len(top_level) != 1 or not os.path.isdir(os.path.join(unpack_dir, top_level[0])):
            raise InvalidFormatError(
                f"Invalid {label} archive: expected a single directory",
                details=f"Found: {', '.join(top_level) or 'nothing'}",
                suggestions=create_error_suggestions("archive_invalid"),
            )
        return os.path.join(unpack_dir, top_level[0])

    def _show_manifest(self) -> Optional[str]:
        manifest_path = os.path.join(self._source, MANIFEST_FILE)
        if not os.path.isfile(manifest_path):
            raise DegradedStepWarning("Backup information file not found in archive")

        with open(manifest_path, encoding="utf-8") as f:
            manifest = f.read()

        logger.info("Backup information:\n%s", manifest.rstrip())
        return manifest

    def _confirm(self, mode: RestoreMode, force: bool, dry_run: bool) -> bool:
        if force or dry_run:
            return True

        message = (
            f"This will stop n8n and overwrite the current installation ({mode.value} restore)."
        )
        if self.confirm is None or not self.confirm(message):
            logger.info("Restore cancelled")
            raise UserCancelled("Restore cancelled by user")
        return True

    def _stop_services(self, dry_run: bool) -> bool:
        if dry_run:
            logger.info("DRY RUN: Would stop services (docker compose down)")
            return False

        try:
            self.orchestrator.stop_services()
        except N8nctlError as e:
            raise RestoreError(
                "Could not stop services; refusing to restore over a running installation",
                details=e.message,
            ) from e

        log_success(logger, "Services stopped")
        return True

    def _restore_config(self, dry_run: bool) -> List[str]:
        restored = []
        missing = []

        for target in (self.config.env_path, self.config.compose_path):
            source = os.path.join(self._source, os.path.basename(target))
            if not os.path.isfile(source):
                missing.append(os.path.basename(target))
                continue

            if dry_run:
                logger.info("DRY RUN: Would restore %s", target)
            else:
                shutil.copy2(source, target)
                log_success(logger, "%s restored", os.path.basename(target))
                self._result.restored.append(target)
            restored.append(target)

        if missing:
            raise DegradedStepWarning(f"Not in backup, skipped: {', '.join(missing)}")
        return restored

    def _restore_directory(self, archive_name: str, target: str, label: str, dry_run: bool) -> Optional[str]:
        """Replace ``target`` with the directory stored in ``archive_name``, moving the old one aside."""
        unpacked = self._unpacked.get(archive_name)
        if unpacked is None:
            raise DegradedStepWarning(f"No {label} archive in backup - skipping {label}")

        if dry_run:
            if os.path.exists(target):
                logger.info("DRY RUN: Would move existing %s aside (%s)", label, self.files.safety_copy_name(target, self.clock()))
            logger.info("DRY RUN: Would restore %s to %s", label, target)
            return None

        if os.path.exists(target):
            safety_copy = self.files.rename_aside(target, self.clock())
            self._result.safety_copies.append(safety_copy)
            logger.info("Existing %s moved to %s", label, safety_copy)

            pruned = self.files.prune_safety_copies(target, self.config.keep_safety_copies)
            for stale in pruned:
                logger.info("Removed old safety copy %s", stale)

        shutil.move(unpacked, target)
        self._result.restored.append(target)
        log_success(logger, "%s restored", label.capitalize())
        return target

    def _start_services(self, dry_run: bool) -> bool:
        if dry_run:
            logger.info("DRY RUN: Would start services (docker compose up -d)")
            return False

        self.orchestrator.start_services()
        log_success(logger, "Services started")
        return True

    def _verify_services(self, dry_run: bool) -> Optional[bool]:
        if dry_run:
            return None

        self.sleep(self.config.start_grace_seconds)
        running = self.orchestrator.services_running()
        self._result.services_running = running

        if not running:
            raise DegradedStepWarning("Services are not reporting as running yet - check 'docker compose logs'")

        log_success(logger, "Services are running")
        return running

    def _import(self, kind: str, dry_run: bool) -> Optional[str]:
        label = "workflows" if kind == "workflow" else "credentials"
        export = os.path.join(self._source, EXPORTS[kind])

        if not os.path.isfile(export):
            raise DegradedStepWarning(f"No {label} export in backup - restored data directory already contains {label}")

        if dry_run:
            logger.info("DRY RUN: Would import %s from %s", label, EXPORTS[kind])
            return None

        service = self.config.app_service
        if not self.orchestrator.is_running(service):
            raise DegradedStepWarning(f"{service} container is not running - skipping {label} import")

        container_file = f"/tmp/{kind}_import.json"
        imported = self.orchestrator.copy_to_service(service, export, container_file)
        if imported:
            result = self.orchestrator.exec_command(service, ["n8n", f"import:{kind}", f"--input={container_file}"])
            imported = result.returncode == 0

        if not imported:
            raise DegradedStepWarning(
                f"Could not import {label} via n8n CLI - restored data directory already contains {label}"
            )

        log_success(logger, "%s imported", label.capitalize())
        return container_file
