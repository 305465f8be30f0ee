"""Setup coordinator: one-shot bootstrap of an Ubuntu host for n8n + Traefik."""

import getpass
import glob
import grp
import logging
import os
import shutil
import stat
import subprocess
from typing import Any, Callable, List, Optional

from n8nctl.config import OpsConfig
from n8nctl.containers.manager import ContainerManager
from n8nctl.secrets import SecretGenerator
from n8nctl.utils.errors import DegradedStepWarning, N8nctlError, ProvisioningError
from n8nctl.utils.logging import log_success

from .steps import Step, StepReport, StepRunner

logger = logging.getLogger(__name__)

DOCKER_GPG_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_KEYRING = "/etc/apt/keyrings/docker.gpg"
DOCKER_SOURCES_LIST = "/etc/apt/sources.list.d/docker.list"
DOCKER_PACKAGES = ["docker-ce", "docker-ce-cli", "containerd.io", "docker-compose-plugin"]
LEGACY_DOCKER_PACKAGES = ["docker", "docker-engine", "docker.io", "containerd", "runc"]
FIREWALL_RULES = ["ssh", "80/tcp", "443/tcp"]


def run_command(command: List[str], input: Optional[str] = None) -> subprocess.CompletedProcess:
    """Run a host command, capturing its output as text."""
    logger.debug("Running: %s", " ".join(command))
    return subprocess.run(command, input=input, capture_output=True, text=True)


class HostProvisioner:
    """Prepares a fresh host: packages, Docker, directories, .env and firewall."""

    def __init__(
        self,
        config: OpsConfig,
        runner: Callable[..., subprocess.CompletedProcess] = run_command,
        container_manager: Optional[Any] = None,
        secret_generator: Optional[SecretGenerator] = None,
        geteuid: Callable[[], int] = os.geteuid,
        which: Callable[[str], Optional[str]] = shutil.which,
        os_release: str = "/etc/os-release",
        verbose: bool = False,
    ):
        """
        Initialize host provisioner.

        Args:
            config: Project paths and tunables
            runner: Executes a command list, returns a CompletedProcess
            container_manager: Docker SDK wrapper for the engine test and network
            secret_generator: Produces the proposed N8N_ENCRYPTION_KEY
            geteuid: Effective uid lookup
            which: Executable lookup
            os_release: Path of the os-release file used for distribution detection
            verbose: Enable verbose output
        """
        self.config = config
        self.verbose = verbose
        self.run_command = runner
        self.container_manager = container_manager or ContainerManager(verbose=verbose)
        self.secret_generator = secret_generator or SecretGenerator(verbose=verbose)
        self.geteuid = geteuid
        self.which = which
        self.os_release = os_release
        self.steps = StepRunner(verbose=verbose)

        self.encryption_key: Optional[str] = None

    def run_setup(self) -> StepReport:
        """
        Bootstrap the host.

        Returns:
            StepReport: Outcomes of every step that ran

        Raises:
            ProvisioningError: If a fatal step failed (root user, apt, Docker install,
                engine test or directory creation)
        """
        logger.info("Starting n8n production setup...")

        plan = [
            Step("check_not_root", self._check_not_root, fatal=True),
            Step("check_ubuntu", self._check_ubuntu),
            Step("update_system", self._update_system, fatal=True, description="Updating system packages..."),
            Step("install_docker", self._install_docker, fatal=True),
        ]

        if self._user_in_docker_group():
            plan.append(Step("test_docker", self._test_docker, fatal=True,
                             description="Testing Docker installation..."))
            plan.append(Step("create_network", self._create_network, description="Creating Docker network..."))
        else:
            plan.append(Step("docker_group_pending", self._docker_group_pending))

        plan.extend([
            Step("setup_directories", self._setup_directories, fatal=True,
                 description="Setting up directory structure..."),
            Step("create_env_file", self._create_env_file),
            Step("setup_scripts", self._setup_scripts, description="Making scripts executable..."),
            Step("setup_firewall", self._setup_firewall, description="Setting up firewall..."),
            Step("generate_encryption_key", self._generate_encryption_key),
        ])

        report = self.steps.run(plan)

        if not report.success:
            if isinstance(report.error, ProvisioningError):
                raise report.error
            message = getattr(report.error, "message", None) or str(report.error)
            details = getattr(report.error, "details", None) if isinstance(report.error, N8nctlError) else None
            raise ProvisioningError(
                f"Setup failed during '{report.failed_step}': {message}",
                details=details,
            ) from report.error

        log_success(logger, "Setup complete!")
        return report

    def _sudo(self, *args: str, input: Optional[str] = None) -> subprocess.CompletedProcess:
        command = ["sudo", *args]
        result = self.run_command(command, input=input)
        if result.returncode != 0:
            raise ProvisioningError(
                f"Command failed: {' '.join(command)}",
                details=(result.stderr or "").strip() or None,
            )
        return result

    def _output_of(self, *command: str) -> str:
        result = self.run_command(list(command))
        if result.returncode != 0:
            raise ProvisioningError(f"Command failed: {' '.join(command)}", details=(result.stderr or "").strip() or None)
        return (result.stdout or "").strip()

    def _check_not_root(self) -> bool:
        if self.geteuid() == 0:
            raise ProvisioningError(
                "This command should not be run as root!",
                suggestions=["Run as a regular user with sudo privileges"],
            )
        return True

    def _check_ubuntu(self) -> bool:
        try:
            with open(self.os_release, encoding="utf-8") as f:
                is_ubuntu = "Ubuntu" in f.read()
        except OSError:
            is_ubuntu = False

        if not is_ubuntu:
            raise DegradedStepWarning("This setup is designed for Ubuntu. Proceeding anyway...")
        return True

    def _update_system(self) -> bool:
        self._sudo("apt", "update")
        self._sudo("apt", "upgrade", "-y")
        log_success(logger, "System updated successfully")
        return True

    def _install_docker(self) -> bool:
        """Install Docker CE from the upstream apt repository; returns False when already present."""
        if self.which("docker"):
            logger.info("Docker is already installed")
            return False

        logger.info("Installing Docker...")

        # Old distro packages may or may not be installed
        self.run_command(["sudo", "apt", "remove", "-y", *LEGACY_DOCKER_PACKAGES])

        self._sudo("apt-get", "install", "-y", "ca-certificates", "curl", "gnupg", "lsb-release")
        self._sudo("mkdir", "-p", os.path.dirname(DOCKER_KEYRING))
        self._sudo(
            "sh", "-c", f"curl -fsSL {DOCKER_GPG_URL} | gpg --dearmor --yes -o {DOCKER_KEYRING}"
        )

        architecture = self._output_of("dpkg", "--print-architecture")
        codename = self._output_of("lsb_release", "-cs")
        source = (
            f"deb [arch={architecture} signed-by={DOCKER_KEYRING}] "
            f"https://download.docker.com/linux/ubuntu {codename} stable\n"
        )
        self._sudo("tee", DOCKER_SOURCES_LIST, input=source)

        self._sudo("apt-get", "update")
        self._sudo("apt-get", "install", "-y", *DOCKER_PACKAGES)
        self._sudo("usermod", "-aG", "docker", getpass.getuser())

        log_success(logger, "Docker installed successfully")
        logger.warning("You need to log out and back in for Docker group changes to take effect")
        return True

    def _user_in_docker_group(self) -> bool:
        try:
            docker_gid = grp.getgrnam("docker").gr_gid
        except KeyError:
            return False
        return docker_gid in os.getgroups()

    def _docker_group_pending(self) -> None:
        raise DegradedStepWarning(
            f"Skipping Docker test - please log out and back in, then run "
            f"'docker network create {self.config.network_name}'"
        )

    def _test_docker(self) -> bool:
        self.container_manager.test_engine()
        log_success(logger, "Docker is working correctly")
        return True

    def _create_network(self) -> bool:
        created = self.container_manager.create_network(self.config.network_name)
        if created:
            log_success(logger, "Network '%s' created", self.config.network_name)
        return created

    def _setup_directories(self) -> List[str]:
        created = []
        for path in (self.config.certs_path, self.config.data_path, self.config.backup_path):
            os.makedirs(path, exist_ok=True)
            created.append(path)

        # Owner-only; the search bit stays so backups can read acme.json
        os.chmod(self.config.certs_path, stat.S_IRWXU)

        log_success(logger, "Directories created")
        return created

    def _create_env_file(self) -> bool:
        env_path = self.config.env_path
        if os.path.exists(env_path):
            logger.info("%s file already exists", os.path.basename(env_path))
            return False

        template = self.config.env_template_path
        if not os.path.isfile(template):
            raise DegradedStepWarning(f"No {os.path.basename(template)} found - create {os.path.basename(env_path)} manually")

        logger.info("Creating %s file from template...", os.path.basename(env_path))
        shutil.copy2(template, env_path)
        log_success(logger, "%s file created", os.path.basename(env_path))
        logger.warning("Please edit the .env file with your configuration before starting the services")
        return True

    def _setup_scripts(self) -> List[str]:
        scripts = sorted(glob.glob(os.path.join(glob.escape(self.config.path("scripts")), "*.sh")))
        for script in scripts:
            mode = os.stat(script).st_mode
            os.chmod(script, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        if scripts:
            log_success(logger, "Scripts are now executable")
        return scripts

    def _setup_firewall(self) -> List[str]:
        if not self.which("ufw"):
            raise DegradedStepWarning("UFW not available. Please configure firewall manually.")

        self._sudo("ufw", "--force", "enable")
        for rule in FIREWALL_RULES:
            self._sudo("ufw", "allow", rule)

        log_success(logger, "Firewall configured")
        return FIREWALL_RULES

    def _generate_encryption_key(self) -> str:
        self.encryption_key = self.secret_generator.generate_encryption_key()
        log_success(logger, "Generated encryption key: %s", self.encryption_key)
        logger.info("Please save this key securely and add it to your .env file:")
        logger.info("N8N_ENCRYPTION_KEY=%s", self.encryption_key)
        return self.encryption_key
