"""
Tests for the CLI interface.
"""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from conftest import FakeShellSession, FakeTransferSession
from migration_transport import __version__
from migration_transport.cli.main import main
from migration_transport.core.exceptions import ConnectionError
from migration_transport.engine import TransferEngine


@pytest.fixture
def shells():
    return {
        "source": FakeShellSession("source", script={
            "printenv APP_SECRET": [("stdout", b"s3cr3t\n"), ("close", 0, None)],
            "pg_dump app": [("stdout", b"-- dump\n"), ("close", 0, None)],
            "false": [("stderr", b"boom"), ("close", 1, None)],
        }),
        "target": FakeShellSession("target"),
    }


@pytest.fixture
def engine(source_session, target_session, shells):
    return TransferEngine(
        source=source_session,
        target=target_session,
        source_shell=shells["source"],
        target_shell=shells["target"],
    )


@pytest.fixture
def invoke(engine, transfer_env):
    """Invoke the CLI against the in-memory engine."""
    runner = CliRunner()

    def _invoke(*args):
        with patch("migration_transport.cli.main.TransferEngine.from_config", return_value=engine):
            return runner.invoke(main, list(args), env=transfer_env)

    return _invoke


class TestCLIBasics:
    """Test basic CLI functionality."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_version(self):
        result = self.runner.invoke(main, ['--version'])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help(self):
        result = self.runner.invoke(main, ['--help'])
        assert result.exit_code == 0
        for command in ['download', 'upload', 'upload-file', 'relay', 'exists', 'exec']:
            assert command in result.output

    def test_no_subcommand_shows_help(self):
        result = self.runner.invoke(main, [])
        assert result.exit_code == 0
        assert 'download' in result.output

    def test_missing_endpoint_configuration(self, tmp_path):
        result = self.runner.invoke(main, ['download', '/a', str(tmp_path)], env={
            'SOURCE_HOST': '', 'TARGET_HOST': '',
        })
        assert result.exit_code == 1
        assert 'configuration' in result.output

    def test_config_file(self, tmp_path, engine):
        config_file = tmp_path / "transport.yaml"
        config_file.write_text(
            "source: {host: a, username: u, password: p}\n"
            "target: {host: b, username: u, password: p}\n"
        )

        with patch("migration_transport.cli.main.TransferEngine.from_config", return_value=engine) as factory:
            result = self.runner.invoke(main, ['-c', str(config_file), 'exists', '/missing'])

        assert result.exit_code == 1
        assert factory.call_args.args[0].source.host == 'a'

    def test_malformed_config_file(self, tmp_path):
        config_file = tmp_path / "transport.yaml"
        config_file.write_text("source: [unclosed")

        result = self.runner.invoke(main, ['-c', str(config_file), 'exists', '/x'])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert 'configuration' in result.output


class TestTransferCommands:
    """Test download, upload, upload-file and relay."""

    def test_download(self, invoke, tmp_path):
        local_dir = tmp_path / "download"

        result = invoke('download', '/a', str(local_dir))

        assert result.exit_code == 0, result.output
        assert 'completed' in result.output
        assert (local_dir / "file1.txt").read_bytes() == b"one"
        assert (local_dir / "b" / "file2.txt").read_bytes() == b"two"

    def test_download_failure_exits_nonzero(self, invoke, source_session, tmp_path):
        source_session.fail_get.add("/a/file1.txt")

        result = invoke('download', '/a', str(tmp_path / "download"))

        assert result.exit_code == 1
        assert 'failed' in result.output

    def test_download_expands_home(self, invoke, source_session, tmp_path):
        source_session.add_file("/root/.config/app.yml", b"x")

        result = invoke('download', '~/.config', str(tmp_path / "config"))

        assert result.exit_code == 0, result.output
        assert ("list", "/root/.config") in source_session.calls

    def test_upload(self, invoke, target_session, tmp_path):
        local_dir = tmp_path / "upload"
        local_dir.mkdir()
        (local_dir / "x.txt").write_bytes(b"x")

        result = invoke('upload', str(local_dir), '/srv/data')

        assert result.exit_code == 0, result.output
        assert target_session.files["/srv/data/x.txt"] == b"x"

    def test_upload_file(self, invoke, target_session, tmp_path):
        local_file = tmp_path / "settings.json"
        local_file.write_bytes(b"{}")
        target_session.add_dir("/etc/app")

        result = invoke('upload-file', str(local_file), '/etc/app/settings.json')

        assert result.exit_code == 0, result.output
        assert 'Uploaded 2.0 B' in result.output
        assert target_session.files["/etc/app/settings.json"] == b"{}"

    def test_relay(self, invoke, target_session, tmp_path):
        result = invoke('relay', '/c', '/restore/c', '--staging-dir', str(tmp_path / "staging"))

        assert result.exit_code == 0, result.output
        assert target_session.files["/restore/c/file3.txt"] == b"three"

    def test_relay_with_temporary_staging(self, invoke, target_session):
        result = invoke('relay', '/c')

        assert result.exit_code == 0, result.output
        assert target_session.files["/c/file3.txt"] == b"three"


class TestExistsAndExecCommands:
    """Test exists and exec."""

    def test_exists_on_target(self, invoke, target_session):
        target_session.add_dir("/opt/plugins")

        result = invoke('exists', '/opt/plugins')

        assert result.exit_code == 0
        assert 'exists on target' in result.output

    def test_exists_on_source(self, invoke):
        result = invoke('exists', '/a', '--role', 'source')
        assert result.exit_code == 0

    def test_missing_path_exits_nonzero(self, invoke):
        result = invoke('exists', '/nowhere')
        assert result.exit_code == 1

    def test_exec_prints_stdout(self, invoke):
        result = invoke('exec', 'printenv APP_SECRET')

        assert result.exit_code == 0, result.output
        assert 's3cr3t' in result.output

    def test_exec_failure(self, invoke):
        result = invoke('exec', 'false')

        assert result.exit_code == 1
        assert 'command' in result.output

    def test_exec_to_file(self, invoke, tmp_path):
        output = tmp_path / "dumps" / "app.sql"

        result = invoke('exec', 'pg_dump app', '--output', str(output))

        assert result.exit_code == 0, result.output
        assert output.read_bytes() == b"-- dump\n"

    def test_exec_on_target(self, invoke, shells):
        result = invoke('exec', 'uptime', '--role', 'target')

        assert result.exit_code == 0
        assert shells["target"].started == ["uptime"]

    def test_connection_failure(self, invoke, source_session):
        source_session.connect = AsyncMock(
            side_effect=ConnectionError("Failed to connect source SFTP", host="source.example.com")
        )

        result = invoke('exists', '/a')

        assert result.exit_code == 1
        assert 'connectivity' in result.output

    def test_exec_local_write_failure(self, invoke, tmp_path):
        blocker = tmp_path / "dumps"
        blocker.write_text("not a directory")

        result = invoke('exec', 'pg_dump app', '--output', str(blocker / "app.sql"))

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert 'resource' in result.output
