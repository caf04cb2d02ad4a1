import pytest

from deploy_cli.activation import (
    NativeBackend,
    ScheduledBackend,
    restart_command,
    select_backend,
    status_command,
)
from deploy_cli.errors import ActivationError, ConfigurationError
from deploy_cli.services import SERVICES, ActivationKind

GATEWAY = SERVICES["gateway"]
WORKER = SERVICES["worker"]
AI = SERVICES["ai"]


class TestCommands:
    def test_systemd_restart(self):
        assert restart_command(GATEWAY.activation) == "sudo systemctl restart penfold-gateway"

    def test_launchd_restart(self):
        assert (
            restart_command(WORKER.activation)
            == "sudo launchctl kickstart -k system/com.penfold.worker"
        )

    def test_status_commands(self):
        assert status_command(GATEWAY.activation).startswith("systemctl is-active penfold-gateway")
        assert "launchctl print system/com.penfold.worker" in status_command(WORKER.activation)


class TestNativeBackend:
    def test_activate_restarts_unit(self, native_backend, remote):
        native_backend.activate(WORKER, "dev01")

        assert remote.restarts == [("dev01", "system/com.penfold.worker")]

    def test_restart_failure(self, native_backend, remote):
        remote.fail_on("systemctl restart")

        with pytest.raises(ActivationError) as exc_info:
            native_backend.activate(GATEWAY, "dev02")

        assert exc_info.value.target == "gateway@dev02"
        assert "restart via systemd failed" in str(exc_info.value)

    def test_status(self, native_backend, remote):
        remote.status_output["dev02"] = "active\n"

        assert native_backend.status(GATEWAY, "dev02") == "active"

    def test_empty_status_is_not_running(self, native_backend):
        assert native_backend.status(GATEWAY, "dev02") == "not running"

    def test_rejects_scheduled_service(self, native_backend, remote):
        with pytest.raises(ConfigurationError):
            native_backend.activate(AI, "dev02")

        assert remote.commands == []

    def test_supports_rollback(self):
        assert NativeBackend.supports_rollback is True


class TestScheduledBackend:
    def test_activate_submits_job_spec(self, scheduled_backend, scheduler, remote, tmp_path):
        scheduled_backend.activate(AI, "dev02")

        assert scheduler.submitted == [tmp_path / "deploy/nomad/ai-coordinator.nomad.hcl"]
        assert remote.restarts == []

    def test_submission_failure(self, scheduled_backend, scheduler):
        scheduler.fail_submit = True

        with pytest.raises(ActivationError, match="job submission penfold-ai-coordinator failed"):
            scheduled_backend.activate(AI, "dev02")

    def test_verify_waits_for_running(self, scheduled_backend, scheduler):
        scheduled_backend.verify(AI, "dev02", "abc1234")

        assert scheduler.status_calls == ["penfold-ai-coordinator"]

    def test_status(self, scheduled_backend, scheduler):
        scheduler.status = "pending"
        assert scheduled_backend.status(AI, "dev02") == "pending"

        scheduler.status = None
        assert scheduled_backend.status(AI, "dev02") == "not found"

    def test_rejects_native_service(self, scheduled_backend, scheduler):
        with pytest.raises(ConfigurationError):
            scheduled_backend.activate(GATEWAY, "dev02")

        assert scheduler.submitted == []

    def test_does_not_support_rollback(self):
        assert ScheduledBackend.supports_rollback is False


class TestSelectBackend:
    def test_matches_activation_kind(self, native_backend, scheduled_backend):
        backends = {
            ActivationKind.NATIVE: native_backend,
            ActivationKind.SCHEDULED: scheduled_backend,
        }

        assert select_backend(GATEWAY, backends) is native_backend
        assert select_backend(WORKER, backends) is native_backend
        assert select_backend(AI, backends) is scheduled_backend

    def test_missing_backend(self, native_backend):
        with pytest.raises(ConfigurationError, match="no scheduled activation backend"):
            select_backend(AI, {ActivationKind.NATIVE: native_backend})
