"""
Tests for the transfer engine wiring.
"""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeShellSession
from migration_transport.core.exceptions import ConnectionError
from migration_transport.engine import SOURCE, TARGET, TransferEngine
from migration_transport.models.config import EngineConfig, TransferSettings
from migration_transport.remote.shell import ParamikoShellSession
from migration_transport.transfer.methods.ssh import SftpSession


@pytest.fixture
def engine(source_session, target_session):
    return TransferEngine(
        source=source_session,
        target=target_session,
        source_shell=FakeShellSession("source"),
        target_shell=FakeShellSession("target"),
    )


class TestEngineConstruction:
    """Test building an engine."""

    def test_from_config(self, password_credential):
        config = EngineConfig(
            source=password_credential,
            target=password_credential,
            transfer=TransferSettings(concurrency=3, download_priority=4, connect_timeout=12),
        )

        engine = TransferEngine.from_config(config)

        assert isinstance(engine.sessions[SOURCE], SftpSession)
        assert isinstance(engine.shells[TARGET], ParamikoShellSession)
        assert engine.sessions[SOURCE].connect_timeout == 12
        assert engine.queue.concurrency == 3
        assert engine.synchronizer.download_priority == 4
        assert engine.synchronizer.queue is engine.queue
        assert engine.source_runner.shell is engine.shells[SOURCE]
        assert engine.target_runner.shell is engine.shells[TARGET]

    def test_shares_one_queue(self, engine, source_session, target_session):
        assert engine.synchronizer.source is source_session
        assert engine.synchronizer.target is target_session
        assert engine.queue.concurrency == 5


class TestEngineLifecycle:
    """Test connect, degraded mode and close."""

    @pytest.mark.asyncio
    async def test_connect_all(self, engine):
        errors = await engine.connect()

        assert errors == []
        engine.require_connected()

    @pytest.mark.asyncio
    async def test_degraded_when_one_session_fails(self, engine, target_session, source_session, tmp_path):
        failure = ConnectionError("Failed to connect target SFTP", host="target.example.com")
        target_session.connect = AsyncMock(side_effect=failure)
        target_session.connected = False

        errors = await engine.connect()

        assert errors == [failure]
        with pytest.raises(ConnectionError):
            engine.require_connected()

        # Downloads only need the source session.
        result = await engine.synchronizer.download_directory("/c", str(tmp_path / "c"))
        assert result.success

    @pytest.mark.asyncio
    async def test_unexpected_connect_error_propagates(self, engine, source_session):
        source_session.connect = AsyncMock(side_effect=RuntimeError("bug"))

        with pytest.raises(RuntimeError):
            await engine.connect()

    @pytest.mark.asyncio
    async def test_context_manager_closes_everything(self, engine):
        async with engine as connected:
            assert connected is engine

        assert not engine.sessions[SOURCE].is_connected
        assert not engine.sessions[TARGET].is_connected
        assert not engine.shells[SOURCE].is_connected
        assert not engine.shells[TARGET].is_connected
