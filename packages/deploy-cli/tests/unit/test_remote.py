from pathlib import Path
from unittest.mock import MagicMock

import pytest

from deploy_cli.errors import TransportError
from deploy_cli.remote import DEFAULT_SSH_OPTIONS, SSHRemoteHost, TransferManager
from deploy_cli.services import SERVICES
from deploy_cli.shell import CommandResult

GATEWAY = SERVICES["gateway"]
LIVE = ("dev02", GATEWAY.install_path)
PREV = ("dev02", GATEWAY.backup_path)


class TestSSHRemoteHost:
    def test_run_invokes_ssh(self):
        runner = MagicMock()
        runner.run.return_value = CommandResult([], 0, "active\n", "")

        output = SSHRemoteHost(runner=runner).run("dev02", "systemctl is-active penfold-gateway")

        assert output == "active\n"
        runner.run.assert_called_once_with(
            ["ssh", *DEFAULT_SSH_OPTIONS, "dev02", "systemctl is-active penfold-gateway"]
        )

    def test_copy_invokes_scp(self):
        runner = MagicMock()

        SSHRemoteHost(runner=runner, ssh_options=()).copy(Path("/tmp/gw"), "dev02", "/opt/gw.new")

        runner.run.assert_called_once_with(["scp", "/tmp/gw", "dev02:/opt/gw.new"])


class TestTransferManager:
    @pytest.fixture
    def artifact(self, tmp_path):
        path = tmp_path / "gateway-linux"
        path.write_bytes(b"new build")
        return path

    def test_backup_copies_live_binary(self, remote):
        remote.files[LIVE] = b"old build"

        TransferManager(remote).backup(GATEWAY, "dev02")

        assert remote.files[PREV] == b"old build"
        assert remote.files[LIVE] == b"old build"

    def test_backup_on_first_deploy_is_a_no_op(self, remote):
        TransferManager(remote).backup(GATEWAY, "dev02")

        assert PREV not in remote.files

    def test_upload_then_swap_installs_artifact(self, remote, artifact):
        remote.files[LIVE] = b"old build"
        transfer = TransferManager(remote)

        transfer.upload(GATEWAY, "dev02", artifact)
        assert remote.files[("dev02", GATEWAY.staging_path)] == b"new build"
        assert remote.files[LIVE] == b"old build"

        transfer.swap(GATEWAY, "dev02")
        assert remote.files[LIVE] == b"new build"
        assert ("dev02", GATEWAY.staging_path) not in remote.files
        assert remote.commands[-1][1].startswith("chmod +x ")

    def test_restore_puts_backup_back(self, remote):
        remote.files[LIVE] = b"bad build"
        remote.files[PREV] = b"old build"

        TransferManager(remote).restore(GATEWAY, "dev02")

        assert remote.files[LIVE] == b"old build"
        assert PREV not in remote.files

    def test_restore_without_backup_fails(self, remote):
        with pytest.raises(TransportError) as exc_info:
            TransferManager(remote).restore(GATEWAY, "dev02")

        assert exc_info.value.operation == "restore"
        assert exc_info.value.target == "gateway@dev02"

    def test_upload_failure(self, remote, artifact):
        remote.fail_on("scp")

        with pytest.raises(TransportError) as exc_info:
            TransferManager(remote).upload(GATEWAY, "dev02", artifact)

        assert exc_info.value.operation == "upload"
        assert "scp failed" in str(exc_info.value)

    def test_backup_failure(self, remote):
        remote.fail_on("cp ")

        with pytest.raises(TransportError, match="backup failed"):
            TransferManager(remote).backup(GATEWAY, "dev02")
