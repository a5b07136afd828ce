"""
Unit tests for the broadcastr.__main__ CLI module.

Tests:
- SERVICE_REGISTRY completeness
- parse_args argument parsing
- apply_overrides for --identity and --backup-file
- run_service one-shot and continuous modes
- main() exit codes for invalid configuration
"""

import argparse
import asyncio
import signal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from broadcastr.__main__ import (
    CONFIG_BASE,
    SERVICE_REGISTRY,
    apply_overrides,
    main,
    parse_args,
    run_service,
)
from broadcastr.core.base_service import BaseService
from broadcastr.services.backup import Backup
from broadcastr.services.rebroadcast import Rebroadcast


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_metrics_server() -> MagicMock:
    server = MagicMock()
    server.stop = AsyncMock()
    return server


@pytest.fixture
def mock_service() -> MagicMock:
    service = MagicMock()
    service.config.metrics.enabled = False
    service.run = AsyncMock()
    service.run_forever = AsyncMock()
    service.__aenter__ = AsyncMock(return_value=service)
    service.__aexit__ = AsyncMock(return_value=None)
    return service


# ============================================================================
# Registry
# ============================================================================


class TestServiceRegistry:
    def test_services_registered(self) -> None:
        assert set(SERVICE_REGISTRY) == {"backup", "rebroadcast"}
        assert SERVICE_REGISTRY["backup"].cls is Backup
        assert SERVICE_REGISTRY["rebroadcast"].cls is Rebroadcast

    def test_config_paths(self) -> None:
        for name, entry in SERVICE_REGISTRY.items():
            assert entry.config_path == CONFIG_BASE / "services" / f"{name}.yaml"
            assert issubclass(entry.cls, BaseService)


# ============================================================================
# parse_args
# ============================================================================


class TestParseArgs:
    def test_defaults(self) -> None:
        args = parse_args(["backup"])
        assert args.service == "backup"
        assert args.config is None
        assert args.identity is None
        assert args.backup_file is None
        assert args.log_level == "INFO"
        assert args.once is False

    def test_all_options(self) -> None:
        args = parse_args(
            [
                "rebroadcast",
                "--config",
                "custom.yaml",
                "--identity",
                "npub1xyz",
                "--backup-file",
                "out/b.js",
                "--log-level",
                "DEBUG",
                "--once",
            ]
        )
        assert args.config == Path("custom.yaml")
        assert args.identity == "npub1xyz"
        assert args.backup_file == Path("out/b.js")
        assert args.log_level == "DEBUG"
        assert args.once is True

    def test_unknown_service(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["finder"])


# ============================================================================
# apply_overrides
# ============================================================================


class TestApplyOverrides:
    def test_identity(self) -> None:
        data: dict = {"identity": "old"}
        apply_overrides("backup", data, argparse.Namespace(identity="new", backup_file=None))
        assert data == {"identity": "new"}

    def test_backup_output_path(self) -> None:
        data: dict = {"output": {"timestamped": True}}
        args = argparse.Namespace(identity=None, backup_file=Path("/srv/out/me.js"))
        apply_overrides("backup", data, args)
        assert data["output"] == {"timestamped": True, "directory": "/srv/out", "filename": "me.js"}

    def test_rebroadcast_backup_file(self) -> None:
        data: dict = {}
        args = argparse.Namespace(identity=None, backup_file=Path("b/x.js"))
        apply_overrides("rebroadcast", data, args)
        assert data == {"backup_file": str(Path("b/x.js"))}


# ============================================================================
# run_service
# ============================================================================


class TestRunService:
    async def test_once_success(self, mock_service: MagicMock) -> None:
        assert await run_service("backup", mock_service, once=True) == 0
        mock_service.run.assert_awaited_once()
        mock_service.run_forever.assert_not_awaited()

    async def test_once_failure(self, mock_service: MagicMock) -> None:
        mock_service.run.side_effect = RuntimeError("boom")
        assert await run_service("backup", mock_service, once=True) == 1

    async def test_signal_handlers_installed(self, mock_service: MagicMock) -> None:
        loop = asyncio.get_running_loop()
        with patch.object(loop, "add_signal_handler") as add_handler:
            await run_service("backup", mock_service, once=True)
        assert {c.args[0] for c in add_handler.call_args_list} == {signal.SIGINT, signal.SIGTERM}

    async def test_continuous_stops_metrics(
        self, mock_service: MagicMock, mock_metrics_server: MagicMock
    ) -> None:
        with patch(
            "broadcastr.__main__.start_metrics_server",
            new=AsyncMock(return_value=mock_metrics_server),
        ):
            assert await run_service("backup", mock_service, once=False) == 0
        mock_service.run_forever.assert_awaited_once()
        mock_metrics_server.stop.assert_awaited_once()

    async def test_continuous_failure(
        self, mock_service: MagicMock, mock_metrics_server: MagicMock
    ) -> None:
        mock_service.run_forever.side_effect = RuntimeError("boom")
        with patch(
            "broadcastr.__main__.start_metrics_server",
            new=AsyncMock(return_value=mock_metrics_server),
        ):
            assert await run_service("backup", mock_service, once=False) == 1
        mock_metrics_server.stop.assert_awaited_once()


# ============================================================================
# main
# ============================================================================


class TestMain:
    async def test_invalid_identity_exit_code(self, tmp_path: Path) -> None:
        with patch("broadcastr.__main__.setup_logging"):
            code = await main(
                ["backup", "--config", str(tmp_path / "none.yaml"), "--identity", "bogus", "--once"]
            )
        assert code == 2

    async def test_invalid_yaml_exit_code(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("- not\n- a mapping\n")
        with patch("broadcastr.__main__.setup_logging"):
            assert await main(["rebroadcast", "--config", str(path)]) == 2

    async def test_runs_service_from_config(self, tmp_path: Path, identity: str) -> None:
        path = tmp_path / "backup.yaml"
        path.write_text(f"identity: {identity}\nrelays: [wss://nos.lol]\n")
        run = AsyncMock(return_value=0)
        with (
            patch("broadcastr.__main__.setup_logging"),
            patch("broadcastr.__main__.run_service", new=run),
        ):
            assert await main(["backup", "--config", str(path), "--once"]) == 0

        service = run.await_args.args[1]
        assert isinstance(service, Backup)
        assert service.config.identity == identity
        assert run.await_args.kwargs == {"once": True}
