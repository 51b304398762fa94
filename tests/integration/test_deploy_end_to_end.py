"""Deploy and pool flows through the fully wired container."""

import pytest

from opsfleet.application.dtos.deployment_dtos import DeployRequest
from opsfleet.composition_root import create_container
from opsfleet.domain.entities.deployment import DeploymentStatus
from opsfleet.domain.value_objects.node import NodeStatus
from opsfleet.infrastructure.config import DeploySettings, OpsSettings
from opsfleet.infrastructure.console import Verbosity

from fakes import FakeControlPlane, FakeSessionFactory, make_target

OPS_TOML = """
project = "RedQ"
app = "api"
deploy_path = "/opt/redq/api"

[deploy]
source = "push"

[[routes]]
domain = "api.example.com"
port = 8080

[[healthchecks]]
name = "api"
url = "http://localhost:8080/health"
"""


@pytest.fixture
def settings():
    return OpsSettings(deploy=DeploySettings(health_attempts=1, health_delay=0))


class TestDeployEndToEnd:
    @pytest.mark.asyncio
    async def test_parallel_deploy_to_pool(self, settings, ops_toml, capsys):
        cp = FakeControlPlane()
        cp.add_group(
            "RedQ", "api",
            make_target(1, "eu", status=NodeStatus.HEALTHY),
            make_target(2, "us", status=NodeStatus.HEALTHY),
            group_id=3,
        )
        factory = FakeSessionFactory(outputs={"curl -sf": "OK"})
        container = create_container(
            settings, interactive=False, control_plane=cp, session_factory=factory
        )

        summary = await container.deploy_fleet.execute(
            DeployRequest(config_path=ops_toml(OPS_TOML))
        )

        assert summary.status == DeploymentStatus.SUCCESS
        assert sorted(factory.opened) == [1, 2]
        assert sorted(factory.closed) == [1, 2]
        for session in factory.sessions:
            assert session.ran("systemctl reload nginx")
        assert cp.updates == [(100, "success", None)]
        assert "[+] Deployed api to 2/2 nodes" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_quiet_deploy_prints_only_result(self, settings, ops_toml, capsys):
        cp = FakeControlPlane()
        cp.add_group("RedQ", "api", make_target(1))
        container = create_container(
            settings,
            interactive=False,
            verbosity=Verbosity.QUIET,
            control_plane=cp,
            session_factory=FakeSessionFactory(outputs={"curl -sf": "OK"}),
        )

        await container.deploy_fleet.execute(DeployRequest(config_path=ops_toml(OPS_TOML)))

        out = capsys.readouterr().out
        assert "Reading ops.toml" not in out
        assert "[+] Deployed api to 1/1 nodes" in out

    @pytest.mark.asyncio
    async def test_telemetry_sees_deploy_events(self, settings, ops_toml):
        cp = FakeControlPlane()
        cp.add_group("RedQ", "api", make_target(1), make_target(2))
        factory = FakeSessionFactory(fail_on={2: ["up -d"]}, outputs={"curl -sf": "OK"})
        container = create_container(
            settings, interactive=False, control_plane=cp, session_factory=factory
        )

        summary = await container.deploy_fleet.execute(
            DeployRequest(config_path=ops_toml(OPS_TOML))
        )

        assert summary.status == DeploymentStatus.PARTIAL
        buffered = container.telemetry._metrics_buffer
        outcomes = sorted(
            m["attributes"]["outcome"]
            for m in buffered
            if m["name"] == "opsfleet.deploy.targets"
        )
        assert outcomes == ["failed", "success"]
        assert buffered[-1]["attributes"]["status"] == "partial"


class TestPoolEndToEnd:
    @pytest.mark.asyncio
    async def test_drain_reflected_in_status(self, settings, capsys):
        cp = FakeControlPlane()
        cp.add_group(
            "RedQ", "api",
            make_target(7, status=NodeStatus.HEALTHY),
            make_target(8, status=NodeStatus.HEALTHY),
            group_id=3,
        )
        container = create_container(settings, interactive=False, control_plane=cp)

        await container.pool.drain("api.RedQ", 7)
        capsys.readouterr()
        group = await container.pool.status("api.RedQ")

        assert group.member(7).status == NodeStatus.DRAINING
        assert "1/2 nodes healthy" in capsys.readouterr().out
