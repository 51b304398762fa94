"""Tests for CLI module."""

import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from opsfleet.application.dtos.deployment_dtos import BuildResult, DeploySummary
from opsfleet.domain.errors import ConfigError, ResolutionError
from opsfleet.infrastructure.config import OpsSettings
from opsfleet.presentation.cli.cli import async_main, build_parser

from fakes import make_target

CREATE_CONTAINER = "opsfleet.composition_root.create_container"
LOAD_SETTINGS = "opsfleet.presentation.cli.cli.load_settings"


def _make_container(**overrides):
    """Create a mock container with sensible defaults."""
    container = MagicMock()
    container.telemetry.initialize = AsyncMock()
    container.telemetry.shutdown = AsyncMock()
    container.deploy_fleet.execute = AsyncMock(
        return_value=DeploySummary(succeeded=(make_target(1),))
    )
    container.build_images.execute = AsyncMock(return_value=BuildResult(built=("a",)))
    container.pool.status = AsyncMock()
    container.pool.set_strategy = AsyncMock()
    container.pool.drain = AsyncMock()
    container.pool.undrain = AsyncMock()
    container.node_groups.create = AsyncMock()
    container.node_groups.list_groups = AsyncMock()
    container.node_groups.show = AsyncMock()
    container.node_groups.nodes = AsyncMock()
    for key, value in overrides.items():
        setattr(container, key, value)
    return container


async def _run(argv, container):
    with patch("sys.argv", ["ops", *argv]), \
         patch(LOAD_SETTINGS, return_value=OpsSettings()), \
         patch(CREATE_CONTAINER, return_value=container) as create:
        await async_main()
    return create


class TestCLIHelp:
    @pytest.mark.asyncio
    async def test_no_command_prints_help(self, capsys):
        with patch("sys.argv", ["ops"]):
            await async_main()
        assert "deploy apps to a fleet of nodes" in capsys.readouterr().out

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argv", [
        ["--help"],
        ["deploy", "--help"],
        ["build", "--help"],
        ["pool", "--help"],
        ["node-group", "--help"],
    ])
    async def test_help_exits_zero(self, argv):
        with patch("sys.argv", ["ops", *argv]), pytest.raises(SystemExit, match="0"):
            await async_main()


class TestParser:
    def test_deploy_flags(self):
        args = build_parser().parse_args([
            "deploy", "-f", "prod.toml", "--service", "web", "--set", "A=1",
            "--set", "B=2", "--node", "4", "--region", "eu", "--rolling", "--force",
        ])
        assert args.file == "prod.toml"
        assert args.env_vars == ["A=1", "B=2"]
        assert args.node == 4
        assert args.rolling and args.force

    @pytest.mark.parametrize("command", ["drain", "undrain"])
    def test_pool_drain_takes_node_flag(self, command):
        args = build_parser().parse_args(["pool", command, "api.RedQ", "--node", "7"])
        assert args.target == "api.RedQ"
        assert args.node_id == 7

    def test_pool_drain_requires_node(self):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["pool", "drain", "api.RedQ"])
        assert exc.value.code == 2

    def test_node_group_create(self):
        args = build_parser().parse_args([
            "node-group", "create", "--project", "RedQ", "--env", "prod",
        ])
        assert args.environment == "prod"
        assert args.strategy == "round-robin"


class TestDeployCommand:
    @pytest.mark.asyncio
    async def test_success(self):
        container = _make_container()
        create = await _run(
            ["--non-interactive", "deploy", "--node", "1", "--set", "TAG=v2"], container
        )

        request = container.deploy_fleet.execute.call_args[0][0]
        assert request.node_id == 1
        assert request.options.env_vars == ("TAG=v2",)
        assert request.options.interactive is False
        assert create.call_args.kwargs["interactive"] is False
        container.telemetry.initialize.assert_awaited_once()
        container.telemetry.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_target_exits_one(self, capsys):
        summary = DeploySummary(failed=(MagicMock(),))
        container = _make_container()
        container.deploy_fleet.execute = AsyncMock(return_value=summary)

        with pytest.raises(SystemExit) as exc:
            await _run(["deploy"], container)
        assert exc.value.code == 1
        assert "[-] 1 of 1 nodes failed to deploy" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_ops_error_printed(self, capsys):
        container = _make_container()
        container.deploy_fleet.execute = AsyncMock(
            side_effect=ResolutionError("No nodes in region 'us-east' bound to this app")
        )

        with pytest.raises(SystemExit) as exc:
            await _run(["deploy", "--region", "us-east"], container)

        assert exc.value.code == 1
        assert "[-] No nodes in region 'us-east'" in capsys.readouterr().out
        container.telemetry.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bad_set_value(self, capsys):
        container = _make_container()
        with pytest.raises(SystemExit):
            await _run(["deploy", "--set", "NOVALUE"], container)
        assert "KEY=VALUE" in capsys.readouterr().out
        container.deploy_fleet.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_error(self, capsys):
        container = _make_container()
        container.deploy_fleet.execute = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(SystemExit):
            await _run(["deploy"], container)
        assert "[-] deploy failed: boom" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_invalid_settings(self, capsys):
        with patch("sys.argv", ["ops", "deploy"]), \
             patch(LOAD_SETTINGS, side_effect=ValueError("bad endpoint")), \
             pytest.raises(SystemExit):
            await async_main()
        assert "[-] Invalid settings: bad endpoint" in capsys.readouterr().out


class TestOtherCommands:
    @pytest.mark.asyncio
    async def test_build(self):
        container = _make_container()
        await _run(["build", "--ref", "v1.2", "-j", "4", "--no-push"], container)

        request = container.build_images.execute.call_args[0][0]
        assert request.git_ref == "v1.2"
        assert request.jobs == 4
        assert request.no_push

    @pytest.mark.asyncio
    async def test_build_failure_exits_one(self):
        container = _make_container()
        container.build_images.execute = AsyncMock(return_value=BuildResult(failed=("b",)))
        with pytest.raises(SystemExit) as exc:
            await _run(["build"], container)
        assert exc.value.code == 1

    @pytest.mark.asyncio
    async def test_pool_drain(self):
        container = _make_container()
        await _run(["pool", "drain", "api.RedQ", "--node", "7"], container)
        container.pool.drain.assert_awaited_once_with("api.RedQ", 7)

    @pytest.mark.asyncio
    async def test_pool_strategy_error(self, capsys):
        container = _make_container()
        container.pool.set_strategy = AsyncMock(side_effect=ConfigError("Invalid strategy 'x'"))
        with pytest.raises(SystemExit):
            await _run(["pool", "strategy", "api.RedQ", "x"], container)
        assert "[-] Invalid strategy 'x'" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_pool_without_subcommand(self):
        with pytest.raises(SystemExit) as exc:
            await _run(["pool"], _make_container())
        assert exc.value.code == 1

    @pytest.mark.asyncio
    async def test_node_group_show(self):
        container = _make_container()
        await _run(["node-group", "show", "5"], container)
        container.node_groups.show.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_pool_undrain(self):
        container = _make_container()
        await _run(["pool", "undrain", "api.RedQ", "--node", "7"], container)
        container.pool.undrain.assert_awaited_once_with("api.RedQ", 7)
