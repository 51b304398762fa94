"""Tests for the per-target deployment pipeline."""

import logging

import pytest

from opsfleet.application.dtos.deployment_dtos import DeployOptions
from opsfleet.application.use_cases.deploy_pipeline import (
    HEALTH,
    PREFLIGHT,
    ROUTING,
    START,
    STEP_ORDER,
    SYNC_FILES,
    SYNC_SOURCE,
    DeploymentPipeline,
    PreflightDecision,
    decide_preflight,
)
from opsfleet.domain.entities.app_config import AppConfig
from opsfleet.domain.errors import ConfigError, PipelineError
from opsfleet.infrastructure.adapters.nginx_renderer import NginxRouteRenderer

from fakes import FakeSession, RecordingOutput, ScriptedPrompt, make_target


def _config(**kwargs):
    data = {
        "project": "RedQ",
        "app": "api",
        "deploy_path": "/opt/redq/api",
        "deploy": {"source": "push"},
    }
    data.update(kwargs)
    return AppConfig.from_dict(data)


def _pipeline(prompt=None, output=None):
    return DeploymentPipeline(
        output or RecordingOutput(),
        prompt or ScriptedPrompt(interactive=False),
        NginxRouteRenderer(),
        health_attempts=2,
        health_delay=0,
    )


class TestDecidePreflight:
    def test_nothing_running(self):
        assert decide_preflight([], force=True) == PreflightDecision.CONTINUE

    def test_force_cleans(self):
        assert decide_preflight(["web"], force=True) == PreflightDecision.CLEAN

    def test_unasked_continues(self):
        assert decide_preflight(["web"], force=False) == PreflightDecision.CONTINUE

    def test_operator_choice(self):
        assert decide_preflight(["web"], False, 1) == PreflightDecision.CLEAN
        assert decide_preflight(["web"], False, 2) == PreflightDecision.ABORT


class TestStepOrder:
    @pytest.mark.asyncio
    async def test_full_plan_in_order(self):
        config = _config(
            routes=[{"domain": "api.example.com", "port": 8080}],
            healthchecks=[{"name": "api", "url": "http://localhost:8080/health"}],
        )
        session = FakeSession(make_target(1), outputs={"curl -sf": "OK"})

        report = await _pipeline().deploy(config, make_target(1), session, DeployOptions())

        assert report.steps == STEP_ORDER
        assert report.healthy

    @pytest.mark.asyncio
    async def test_routing_and_health_skipped_without_config(self):
        session = FakeSession(make_target(1))
        report = await _pipeline().deploy(_config(), make_target(1), session, DeployOptions())
        assert report.steps == (PREFLIGHT, SYNC_FILES, SYNC_SOURCE, START)
        assert report.health == ()

    @pytest.mark.asyncio
    async def test_restart_only(self):
        config = _config(routes=[{"domain": "api.example.com", "port": 8080}])
        session = FakeSession(make_target(1))

        report = await _pipeline().deploy(
            config, make_target(1), session, DeployOptions(restart_only=True)
        )

        assert SYNC_SOURCE not in report.steps
        assert ROUTING not in report.steps
        assert session.ran("docker compose restart")
        assert not session.ran("ps --services")
        assert session.pushed == []


class TestFailures:
    @pytest.mark.asyncio
    async def test_start_failure_skips_routing_and_health(self):
        config = _config(
            routes=[{"domain": "api.example.com", "port": 8080}],
            healthchecks=[{"name": "api", "url": "http://localhost:8080/health"}],
        )
        session = FakeSession(make_target(1), fail_on=["up -d"])

        with pytest.raises(PipelineError) as exc:
            await _pipeline().deploy(config, make_target(1), session, DeployOptions())

        assert exc.value.step == START
        assert not session.ran("nginx")
        assert not session.ran("curl")

    @pytest.mark.asyncio
    async def test_failure_log_carries_node_and_step(self, caplog):
        session = FakeSession(make_target(4), fail_on=["up -d"])

        with caplog.at_level(logging.ERROR, logger="opsfleet"):
            with pytest.raises(PipelineError):
                await _pipeline().deploy(_config(), make_target(4), session, DeployOptions())

        record = next(r for r in caplog.records if "Step start failed" in r.getMessage())
        assert record.node_id == 4
        assert record.step == START

    @pytest.mark.asyncio
    async def test_git_source_without_git_section(self):
        session = FakeSession(make_target(1))
        with pytest.raises(PipelineError) as exc:
            await _pipeline().deploy(
                _config(deploy={"source": "git"}), make_target(1), session, DeployOptions()
            )
        assert exc.value.step == SYNC_SOURCE
        assert isinstance(exc.value.cause, ConfigError)

    @pytest.mark.asyncio
    async def test_health_failure_is_reported_not_raised(self):
        config = _config(
            healthchecks=[{"name": "api", "url": "http://localhost:8080/health"}]
        )
        session = FakeSession(make_target(1), fail_on=["curl -sf"])
        output = RecordingOutput()

        report = await _pipeline(output=output).deploy(
            config, make_target(1), session, DeployOptions()
        )

        assert report.steps[-1] == HEALTH
        assert not report.healthy
        assert "FAILED" in output.text("warn")


STEP_FAILURE = {
    PREFLIGHT: "mkdir -p /opt/redq/api",
    SYNC_FILES: "cat > /opt/redq/api/.env",
    SYNC_SOURCE: "git init",
    START: "up -d",
    ROUTING: "nginx -t",
}

STEP_MARKER = {
    SYNC_FILES: "cat > /opt/redq/api/.env",
    SYNC_SOURCE: "test -d /opt/redq/api/.git",
    START: "up -d",
    ROUTING: "/etc/nginx/",
    HEALTH: "curl -sf",
}


def _full_git_config():
    return _config(
        deploy={"source": "git", "git": {"repo": "git@github.com:acme/api.git"}},
        env_files=[{"local": ".env.prod", "remote": ".env"}],
        routes=[{"domain": "api.example.com", "port": 8080}],
        healthchecks=[{"name": "api", "url": "http://localhost:8080/health"}],
    )


class TestStepFailureStopsLaterSteps:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("step", list(STEP_FAILURE))
    async def test_failure_at_step(self, step, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.prod").write_text("A=1\n")
        session = FakeSession(make_target(1), fail_on=[STEP_FAILURE[step]])

        with pytest.raises(PipelineError) as exc:
            await _pipeline().deploy(
                _full_git_config(), make_target(1), session, DeployOptions()
            )

        assert exc.value.step == step
        later = STEP_ORDER[STEP_ORDER.index(step) + 1:]
        for name in later:
            assert not session.ran(STEP_MARKER[name]), f"{name} ran after {step} failed"

    @pytest.mark.asyncio
    async def test_every_step_runs_when_nothing_fails(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.prod").write_text("A=1\n")
        session = FakeSession(make_target(1), outputs={"curl -sf": "OK"})

        report = await _pipeline().deploy(
            _full_git_config(), make_target(1), session, DeployOptions()
        )

        assert report.steps == STEP_ORDER
        for marker in STEP_MARKER.values():
            assert session.ran(marker)


class TestFirstGitDeploy:
    @pytest.mark.asyncio
    async def test_env_file_written_before_repo_initialized_in_place(
        self, tmp_path, monkeypatch
    ):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.prod").write_text("A=1\n")
        config = _config(
            deploy={"source": "git", "git": {"repo": "git@github.com:acme/api.git"}},
            env_files=[{"local": ".env.prod", "remote": ".env"}],
        )
        session = FakeSession(make_target(1), outputs={"test -d": "missing"})

        report = await _pipeline().deploy(config, make_target(1), session, DeployOptions())

        env_at = next(i for i, c in enumerate(session.commands) if "cat > /opt/redq/api/.env" in c)
        git_at = next(i for i, c in enumerate(session.commands) if "git init" in c)
        assert env_at < git_at
        assert "git checkout -f -B main origin/main" in session.commands[git_at]
        assert not session.ran("git clone")
        assert SYNC_SOURCE in report.steps


class TestPreflight:
    @pytest.mark.asyncio
    async def test_force_removes_existing(self):
        session = FakeSession(make_target(1), outputs={"ps --services": "web\nworker\n"})
        await _pipeline().deploy(_config(), make_target(1), session, DeployOptions(force=True))
        assert session.ran("down --remove-orphans")

    @pytest.mark.asyncio
    async def test_non_interactive_continues_without_prompt(self):
        prompt = ScriptedPrompt(interactive=True, selections=[2])
        session = FakeSession(make_target(1), outputs={"ps --services": "web\n"})

        await _pipeline(prompt=prompt).deploy(
            _config(), make_target(1), session, DeployOptions(interactive=False)
        )

        assert prompt.asked == []
        assert not session.ran("down --remove-orphans")

    @pytest.mark.asyncio
    async def test_operator_abort(self):
        prompt = ScriptedPrompt(interactive=True, selections=[2])
        session = FakeSession(make_target(1), outputs={"ps --services": "web\n"})

        with pytest.raises(PipelineError, match="aborted") as exc:
            await _pipeline(prompt=prompt).deploy(
                _config(), make_target(1), session, DeployOptions(interactive=True)
            )

        assert exc.value.step == PREFLIGHT
        assert session.pushed == []
        assert not session.ran("up -d")

    @pytest.mark.asyncio
    async def test_check_existing_disabled(self):
        session = FakeSession(make_target(1), outputs={"ps --services": "web\n"})
        await _pipeline().deploy(
            _config(deploy={"source": "push", "check_existing": False}),
            make_target(1),
            session,
            DeployOptions(force=True),
        )
        assert not session.ran("ps --services")
        assert not session.ran("down --remove-orphans")


class TestCommands:
    @pytest.mark.asyncio
    async def test_env_vars_and_service_prefix_compose(self):
        config = _config(deploy={"source": "push", "compose_files": ["prod.yml"]})
        session = FakeSession(make_target(1))

        await _pipeline().deploy(
            config,
            make_target(1),
            session,
            DeployOptions(service="api", env_vars=("TAG=v2",)),
        )

        assert session.ran(
            "TAG=v2 docker compose -f prod.yml build api && "
            "TAG=v2 docker compose -f prod.yml up -d --remove-orphans api"
        )

    @pytest.mark.asyncio
    async def test_image_source_logs_in_via_stdin(self, monkeypatch):
        monkeypatch.setenv("REG_TOKEN", "t0ken")
        config = _config(deploy={
            "source": "image",
            "registry": {"url": "ghcr.io", "username": "bot", "token": "$REG_TOKEN"},
        })
        session = FakeSession(make_target(1))

        await _pipeline().deploy(config, make_target(1), session, DeployOptions())

        login = next(c for c in session.commands if "docker login" in c)
        assert "--password-stdin" in login
        assert "t0ken" not in login
        assert "t0ken" in session.stdins
        assert session.ran("docker compose pull")
        assert session.ran("docker image prune -f")
        assert not session.ran("docker compose build")

    @pytest.mark.asyncio
    async def test_env_files_and_sync_dirs(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.prod").write_text("A=1\n")
        (tmp_path / "static").mkdir()
        config = _config(
            env_files=[
                {"local": ".env.prod", "remote": ".env"},
                {"local": ".env.missing", "remote": ".env2"},
            ],
            sync=[{"local": "static", "remote": "static"}],
        )
        session = FakeSession(make_target(1))

        await _pipeline().deploy(config, make_target(1), session, DeployOptions())

        assert session.ran("cat > /opt/redq/api/.env")
        assert not session.ran(".env2")
        assert "A=1\n" in session.stdins
        assert ("static", "/opt/redq/api/static", (), False) in session.pushed

    @pytest.mark.asyncio
    async def test_routing_uploads_and_reloads(self):
        config = _config(routes=[
            {"domain": "api.example.com", "port": 8080, "ssl": True},
        ])
        session = FakeSession(make_target(1))

        await _pipeline().deploy(config, make_target(1), session, DeployOptions())

        assert session.ran("cat > /etc/nginx/sites-available/ops-api.conf")
        assert session.ran("nginx -t && systemctl reload nginx")
        assert session.ran("certbot --nginx -d api.example.com")
        assert any(s and "server_name api.example.com;" in s for s in session.stdins)
