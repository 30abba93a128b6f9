"""Unit tests for remote_exec module."""

import json
from unittest.mock import Mock

import pytest

from azdisk.remote_exec import (
    FORMAT_RAW_DISKS_SCRIPT,
    RemoteExecError,
    RemoteResult,
    RunCommandExecutor,
)


def _cli_result(success=True, stdout="", stderr=""):
    return {
        "returncode": 0 if success else 1,
        "stdout": stdout,
        "stderr": stderr,
        "success": success,
        "command": "az vm run-command invoke",
        "error": None if success else stderr,
        "elapsed": 0.1,
    }


def _run_command_output(stdout="", stderr=""):
    return json.dumps(
        {
            "value": [
                {"code": "ComponentStatus/StdOut/succeeded", "message": stdout},
                {"code": "ComponentStatus/StdErr/succeeded", "message": stderr},
            ]
        }
    )


@pytest.fixture
def cli():
    return Mock()


class TestRunCommandExecutor:
    """Tests for RunCommandExecutor."""

    def test_invokes_run_command(self, cli):
        cli.execute.return_value = _cli_result(stdout=_run_command_output("ok"))

        RunCommandExecutor(executor=cli).run("svc", "data01", "Get-Disk")

        command = cli.execute.call_args[0][0]
        assert command[:4] == ["az", "vm", "run-command", "invoke"]
        assert command[command.index("--resource-group") + 1] == "svc"
        assert command[command.index("--name") + 1] == "data01"
        assert command[command.index("--command-id") + 1] == "RunPowerShellScript"
        assert command[command.index("--scripts") + 1] == "Get-Disk"

    def test_success_collects_stdout(self, cli):
        cli.execute.return_value = _cli_result(
            stdout=_run_command_output("Formatted disk 2\nInitialized 1 raw disk(s)\n")
        )

        result = RunCommandExecutor(executor=cli).run("svc", "data01", FORMAT_RAW_DISKS_SCRIPT)

        assert result.success is True
        assert result.output == "Formatted disk 2\nInitialized 1 raw disk(s)"
        assert result.error is None

    def test_stderr_marks_failure(self, cli):
        cli.execute.return_value = _cli_result(
            stdout=_run_command_output("Formatted disk 2", "Format-Volume : Access denied")
        )

        result = RunCommandExecutor(executor=cli).run("svc", "data01", FORMAT_RAW_DISKS_SCRIPT)

        assert result.success is False
        assert result.error == "Format-Volume : Access denied"
        assert result.get_output() == "Formatted disk 2\nFormat-Volume : Access denied"

    def test_cli_failure_raises(self, cli):
        cli.execute.return_value = _cli_result(success=False, stderr="VM is deallocated\n")

        with pytest.raises(RemoteExecError, match="VM is deallocated"):
            RunCommandExecutor(executor=cli).run("svc", "data01", "Get-Disk")

    def test_invalid_json_raises(self, cli):
        cli.execute.return_value = _cli_result(stdout="<html>")

        with pytest.raises(RemoteExecError, match="Unexpected run-command output"):
            RunCommandExecutor(executor=cli).run("svc", "data01", "Get-Disk")

    def test_serialized_progress_on_stderr_is_not_a_failure(self, cli):
        progress = (
            '#< CLIXML\r\n<Objs Version="1.1.0.1" xmlns="http://schemas.microsoft.com/powershell/2004/04">'
            '<Obj S="progress" RefId="0"><TN RefId="0"><T>System.Management.Automation.PSCustomObject</T>'
            "</TN><MS><I64 N=\"SourceId\">1</I64><PR N=\"Record\"><AV>Formatting volume</AV></PR></MS>"
            "</Obj></Objs>"
        )
        cli.execute.return_value = _cli_result(
            stdout=_run_command_output("Formatted disk 2\nInitialized 1 raw disk(s)", progress)
        )

        result = RunCommandExecutor(executor=cli).run("svc", "data01", FORMAT_RAW_DISKS_SCRIPT)

        assert result.success is True
        assert result.error is None
        assert result.output == "Formatted disk 2\nInitialized 1 raw disk(s)"

    def test_serialized_error_on_stderr_is_a_failure(self, cli):
        serialized_error = (
            '#< CLIXML\r\n<Objs Version="1.1.0.1" xmlns="http://schemas.microsoft.com/powershell/2004/04">'
            '<S S="Error">Initialize-Disk : Access denied_x000D__x000A_</S></Objs>'
        )
        cli.execute.return_value = _cli_result(stdout=_run_command_output("", serialized_error))

        result = RunCommandExecutor(executor=cli).run("svc", "data01", FORMAT_RAW_DISKS_SCRIPT)

        assert result.success is False
        assert "Access denied" in result.error

    def test_default_executor_has_no_timeout(self):
        """Formatting large disks may run for as long as the guest needs."""
        assert RunCommandExecutor().executor.timeout is None


class TestRemoteResult:
    """Tests for RemoteResult."""

    def test_get_output_prefers_available_text(self):
        assert RemoteResult("vm", True, output="out").get_output() == "out"
        assert RemoteResult("vm", False, error="err").get_output() == "err"
        assert RemoteResult("vm", True).get_output() == ""


def test_format_script_only_touches_raw_disks():
    assert "PartitionStyle -eq 'RAW'" in FORMAT_RAW_DISKS_SCRIPT
    assert "Format-Volume -FileSystem NTFS" in FORMAT_RAW_DISKS_SCRIPT


def test_format_script_silences_progress():
    assert "$ProgressPreference = 'SilentlyContinue'" in FORMAT_RAW_DISKS_SCRIPT
