"""Tests for the backup coordinator and archive storage."""

import os
import shutil
import tarfile
from datetime import datetime

import pytest

from n8nctl.backup import BackupManager, BackupStorage
from n8nctl.backup.manager import CERTS_ARCHIVE, DATA_ARCHIVE, MANIFEST_FILE
from n8nctl.utils.errors import BackupError, N8nctlEnvironmentError, NotFoundError


def archive_members(path):
    with tarfile.open(path, "r:gz") as tar:
        return tar.getnames()


class TestBackupManager:
    """Test backup runs against a fake compose project."""

    def test_backup_creates_single_archive(self, ops_config, fake_compose, clock):
        manager = BackupManager(ops_config, orchestrator=fake_compose, clock=clock)

        result = manager.run_backup()

        assert result.backup_name == "n8n_backup_20240115_030000"
        assert os.path.basename(result.archive_path) == "n8n_backup_20240115_030000.tar.gz"
        assert sorted(os.listdir(ops_config.backup_path)) == ["n8n_backup_20240115_030000.tar.gz"]
        assert result.size_bytes == os.path.getsize(result.archive_path)

        members = archive_members(result.archive_path)
        prefix = result.backup_name + "/"
        for expected in (DATA_ARCHIVE, CERTS_ARCHIVE, MANIFEST_FILE, ".env", "docker-compose.yml",
                         "workflows/all_workflows.json", "credentials/all_credentials.json"):
            assert prefix + expected in members
        assert not result.warnings

    def test_data_sub_archive_holds_data_directory(self, ops_config, fake_compose, clock, tmp_path):
        result = BackupManager(ops_config, orchestrator=fake_compose, clock=clock).run_backup()

        extract_dir = tmp_path / "out"
        with tarfile.open(result.archive_path) as tar:
            tar.extractall(extract_dir)
        with tarfile.open(extract_dir / result.backup_name / DATA_ARCHIVE) as tar:
            names = tar.getnames()

        assert "n8n_data/database.sqlite" in names

    def test_manifest_content(self, ops_config, fake_compose, clock, tmp_path):
        result = BackupManager(ops_config, orchestrator=fake_compose, clock=clock).run_backup()

        with tarfile.open(result.archive_path) as tar:
            member = tar.extractfile(f"{result.backup_name}/{MANIFEST_FILE}")
            manifest = member.read().decode("utf-8")

        assert "n8n Backup Information" in manifest
        assert "1.19.4" in manifest
        assert "N8N_ENCRYPTION_KEY" in manifest
        assert f"n8nctl restore {result.backup_name}.tar.gz" in manifest

    def test_missing_data_directory_is_advisory(self, ops_config, fake_compose, clock):
        shutil.rmtree(ops_config.data_path)

        result = BackupManager(ops_config, orchestrator=fake_compose, clock=clock).run_backup()

        assert os.path.exists(result.archive_path)
        assert f"{result.backup_name}/{DATA_ARCHIVE}" not in archive_members(result.archive_path)
        assert any("n8n data directory not found" in warning for warning in result.warnings)

    def test_stopped_container_skips_exports(self, ops_config, clock):
        from conftest import FakeCompose

        compose = FakeCompose(running=())
        result = BackupManager(ops_config, orchestrator=compose, clock=clock).run_backup()

        members = archive_members(result.archive_path)
        assert f"{result.backup_name}/workflows/all_workflows.json" not in members
        assert len([w for w in result.warnings if w.startswith("export_")]) == 2
        assert not compose.called("exec")

    def test_failed_credentials_export_still_archives(self, ops_config, fake_compose, clock):
        del fake_compose.exports["credentials"]

        result = BackupManager(ops_config, orchestrator=fake_compose, clock=clock).run_backup()

        members = archive_members(result.archive_path)
        assert f"{result.backup_name}/workflows/all_workflows.json" in members
        assert f"{result.backup_name}/credentials/all_credentials.json" not in members
        assert any(warning.startswith("export_credentials") for warning in result.warnings)

    def test_staging_directory_removed(self, ops_config, fake_compose, clock):
        result = BackupManager(ops_config, orchestrator=fake_compose, clock=clock).run_backup()

        assert not os.path.exists(os.path.join(ops_config.backup_path, result.backup_name))

    def test_same_second_backups_are_distinct(self, ops_config, fake_compose):
        fixed = datetime(2024, 1, 15, 3, 0, 0)
        manager = BackupManager(ops_config, orchestrator=fake_compose, clock=lambda: fixed)

        first = manager.run_backup()
        second = manager.run_backup()

        assert first.archive_path != second.archive_path
        assert second.backup_name == "n8n_backup_20240115_030000_1"
        assert len(os.listdir(ops_config.backup_path)) == 2

    def test_retention_keeps_newest(self, ops_config, fake_compose, clock):
        ops_config.keep_backups = 2
        manager = BackupManager(ops_config, orchestrator=fake_compose, clock=clock)

        results = [manager.run_backup() for _ in range(4)]

        remaining = sorted(os.listdir(ops_config.backup_path))
        assert remaining == sorted(os.path.basename(r.archive_path) for r in results[-2:])
        assert results[-1].pruned == [results[1].archive_path]

    def test_compose_unavailable_aborts(self, ops_config, fake_compose, clock):
        def unavailable():
            raise N8nctlEnvironmentError("Docker is not installed or not in PATH")

        fake_compose.ensure_available = unavailable

        with pytest.raises(N8nctlEnvironmentError):
            BackupManager(ops_config, orchestrator=fake_compose, clock=clock).run_backup()

        assert not os.path.exists(ops_config.backup_path)

    def test_compression_failure_raises_backup_error(self, ops_config, fake_compose, clock):
        manager = BackupManager(ops_config, orchestrator=fake_compose, clock=clock)
        original = manager.files.create_tarball

        def failing(source_dir, output_path, arcname=None):
            if arcname:
                raise OSError("No space left on device")
            return original(source_dir, output_path, arcname)

        manager.files.create_tarball = failing

        with pytest.raises(BackupError) as exc_info:
            manager.run_backup()

        assert "No space left on device" in str(exc_info.value)
        assert [name for name in os.listdir(ops_config.backup_path) if name.endswith(".tar.gz")] == []


class TestBackupStorage:
    """Test naming, listing and resolving archives."""

    def test_list_archives_ignores_other_files(self, tmp_path):
        storage = BackupStorage(str(tmp_path), prefix="n8n_backup")
        for name in ("n8n_backup_20240101_000000.tar.gz", "notes.txt", "other_20240101.tar.gz",
                     "n8n_backup_20240102_000000.tar.gz.partial"):
            (tmp_path / name).write_text("x")

        assert [os.path.basename(p) for p in storage.list_archives()] == ["n8n_backup_20240101_000000.tar.gz"]

    def test_list_archives_newest_first(self, tmp_path):
        storage = BackupStorage(str(tmp_path))
        older = tmp_path / "n8n_backup_20240101_000000.tar.gz"
        newer = tmp_path / "n8n_backup_20240102_000000.tar.gz"
        older.write_text("a")
        newer.write_text("b")
        os.utime(older, (1000, 1000))
        os.utime(newer, (2000, 2000))

        assert storage.list_archives() == [str(newer), str(older)]

    def test_same_mtime_orders_counter_numerically(self, tmp_path):
        """Same-second archives with equal mtimes sort by their numeric counter."""
        storage = BackupStorage(str(tmp_path))
        names = [
            "n8n_backup_20240115_030000.tar.gz",
            "n8n_backup_20240115_030000_9.tar.gz",
            "n8n_backup_20240115_030000_10.tar.gz",
        ]
        for name in names:
            (tmp_path / name).write_text("x")
            os.utime(tmp_path / name, (1000, 1000))

        assert [os.path.basename(p) for p in storage.list_archives()] == list(reversed(names))

        storage.prune(keep=1)

        assert os.listdir(tmp_path) == ["n8n_backup_20240115_030000_10.tar.gz"]

    def test_resolve_archive_by_name(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        backups = tmp_path / "backups"
        backups.mkdir()
        (backups / "n8n_backup_20240101_000000.tar.gz").write_text("x")
        storage = BackupStorage(str(backups))

        assert storage.resolve_archive("n8n_backup_20240101_000000.tar.gz") == str(
            backups / "n8n_backup_20240101_000000.tar.gz"
        )

    def test_resolve_missing_archive(self, tmp_path):
        storage = BackupStorage(str(tmp_path))

        with pytest.raises(NotFoundError) as exc_info:
            storage.resolve_archive("missing.tar.gz")

        assert "No file at 'missing.tar.gz'" in exc_info.value.suggestions
