"""Pytest configuration and shared fixtures."""

import os
import subprocess
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from n8nctl.config import OpsConfig
from n8nctl.utils.errors import DockerError


def completed(command, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(command, returncode, stdout=stdout, stderr=stderr)


class FakeCompose:
    """In-memory stand-in for ComposeOrchestrator that records every call."""

    def __init__(self, running=("n8n", "traefik")):
        self.running = set(running)
        self.calls = []
        self.healthy = True
        self.fail_stop = False
        self.fail_pull = False
        self.endpoints_ok = True
        self.exports = {
            "workflow": '[{"id": "1", "name": "Daily report"}]',
            "credentials": '[{"id": "7", "data": "U2FsdGVkX1+encrypted"}]',
        }
        self.versions = {"n8n": "1.19.4", "traefik": "Version:      2.10.5\nCodename:     saintmarcelin"}
        self.pulled_versions = None
        self.copied = []
        self.imported = []

    def _record(self, *call):
        self.calls.append(call)

    def called(self, name):
        return [call for call in self.calls if call[0] == name]

    def ensure_available(self):
        self._record("ensure_available")

    def is_running(self, service):
        return service in self.running

    def services_running(self):
        self._record("services_running")
        return self.healthy and bool(self.running)

    def status_text(self):
        return "\n".join(f"{service}  running" for service in sorted(self.running))

    def pull_images(self):
        self._record("pull")
        if self.fail_pull:
            raise DockerError("Docker Compose pull failed with exit code 1")
        if self.pulled_versions:
            self.versions = dict(self.pulled_versions)
        return True

    def stop_services(self):
        self._record("down")
        if self.fail_stop:
            raise DockerError("Docker Compose down failed with exit code 1")
        self.running.clear()
        return True

    def start_services(self, detach=True):
        self._record("up")
        self.running.update({"n8n", "traefik"})
        return True

    def exec_command(self, service, command, input=None, timeout=None):
        self._record("exec", service, tuple(command))
        program = command[0]

        if program in ("n8n", "traefik") and command[1:2] in (["--version"], ["version"]):
            return completed(command, stdout=self.versions.get(program, "") + "\n")

        if program == "n8n" and command[1].startswith("export:"):
            kind = command[1].split(":", 1)[1]
            return completed(command, returncode=0 if kind in self.exports else 1)

        if program == "cat":
            kind = os.path.basename(command[1]).split("_export", 1)[0]
            if kind in self.exports:
                return completed(command, stdout=self.exports[kind])
            return completed(command, returncode=1, stderr="No such file")

        if program == "n8n" and command[1].startswith("import:"):
            self.imported.append(command[1].split(":", 1)[1])
            return completed(command)

        if program == "wget":
            return completed(command, returncode=0 if self.endpoints_ok else 1)

        return completed(command, returncode=1)

    def copy_to_service(self, service, source, destination):
        self._record("cp", service, destination)
        self.copied.append((service, source, destination))
        return True

    def get_service_logs(self, service=None, tail=50):
        return "n8n  | Editor is now accessible"


class StepClock:
    """Clock returning a fixed start time advanced by ``step`` on every call."""

    def __init__(self, start=datetime(2024, 1, 15, 3, 0, 0), step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        now = self.current
        self.current = now + self.step
        return now


def write_file(path, content):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def snapshot(directory):
    """Map of relative path -> file contents (None for directories) below ``directory``."""
    state = {}
    for root, dirs, files in os.walk(directory):
        for name in dirs:
            state[os.path.relpath(os.path.join(root, name), directory)] = None
        for name in files:
            path = os.path.join(root, name)
            with open(path, "rb") as f:
                state[os.path.relpath(path, directory)] = f.read()
    return state


@pytest.fixture
def project_dir(tmp_path):
    """A populated n8n + Traefik compose project."""
    project = tmp_path / "project"
    write_file(str(project / "n8n_data" / "database.sqlite"), "sqlite-v1")
    write_file(str(project / "n8n_data" / "config"), '{"encryptionKey": "abc"}')
    write_file(str(project / "letsencrypt" / "acme.json"), '{"Certificates": []}')
    write_file(str(project / ".env"), "N8N_HOST=n8n.example.com\nN8N_ENCRYPTION_KEY=abc\n")
    write_file(str(project / ".env.example"), "N8N_HOST=\nN8N_ENCRYPTION_KEY=\n")
    write_file(str(project / "docker-compose.yml"), "services:\n  n8n:\n    image: n8nio/n8n\n")
    return str(project)


@pytest.fixture
def ops_config(project_dir):
    """OpsConfig for the sample project with fast health polling."""
    return OpsConfig(
        project_dir=project_dir,
        health_attempts=3,
        health_interval=0,
        start_grace_seconds=0,
        version_settle_seconds=0,
    )


@pytest.fixture
def fake_compose():
    return FakeCompose()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    sleeps = []
    return sleeps.append, sleeps


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def mock_container_manager():
    """ContainerManager double (no Docker daemon needed)."""
    manager = MagicMock()
    manager.test_engine.return_value = True
    manager.create_network.return_value = True
    manager.prune_dangling_images.return_value = {"removed": 2, "space_reclaimed": 3 * 1024 * 1024}
    return manager


@pytest.fixture
def mock_docker_client():
    """Mock Docker SDK client for testing."""
    client = MagicMock()
    client.ping.return_value = True
    client.images.prune.return_value = {"ImagesDeleted": [{"Deleted": "sha256:1"}], "SpaceReclaimed": 1024}
    return client
