"""Remote command execution module.

Runs a PowerShell procedure inside a Windows VM through the Azure control
plane (``az vm run-command invoke``), so no inbound WinRM port has to be open
on the machine running azdisk.

The only procedure azdisk ships is FORMAT_RAW_DISKS_SCRIPT: it initializes
every raw data disk, gives it a single partition with a drive letter and
formats it NTFS. Disks that already carry a partition table are left alone.
"""

import json
import logging
from dataclasses import dataclass
from typing import Protocol

from azdisk.azure_cli_visibility import AzureCLIExecutor

logger = logging.getLogger(__name__)

FORMAT_RAW_DISKS_SCRIPT = """\
$ErrorActionPreference = 'Stop'
$ProgressPreference = 'SilentlyContinue'
$disks = @(Get-Disk | Where-Object PartitionStyle -eq 'RAW' | Sort-Object Number)
foreach ($disk in $disks) {
    Initialize-Disk -Number $disk.Number -PartitionStyle GPT -PassThru |
        New-Partition -AssignDriveLetter -UseMaximumSize |
        Format-Volume -FileSystem NTFS -NewFileSystemLabel "DataDisk$($disk.Number)" -Confirm:$false |
        Out-Null
    Write-Output "Formatted disk $($disk.Number)"
}
Write-Output "Initialized $($disks.Count) raw disk(s)"
"""

# Serialized records a non-interactive PowerShell host writes to stderr
_CLIXML_MARKER = "#< CLIXML"
_CLIXML_ERROR_STREAM = 'S="Error"'


def _is_progress_only(text: str) -> bool:
    """True for a CLIXML block that carries no error records."""
    return text.startswith(_CLIXML_MARKER) and _CLIXML_ERROR_STREAM not in text


class RemoteExecError(Exception):
    """Raised when the remote call itself could not be made."""

    pass


@dataclass
class RemoteResult:
    """Result from remote script execution."""

    vm_name: str
    success: bool
    output: str = ""
    error: str | None = None

    def get_output(self) -> str:
        """Get combined output."""
        if self.output and self.error:
            return f"{self.output}\n{self.error}"
        return self.output or self.error or ""


class RemoteExecutor(Protocol):
    """Anything that can run a script inside a VM."""

    def run(self, service_name: str, vm_name: str, script: str) -> RemoteResult: ...


class RunCommandExecutor:
    """Run PowerShell inside a VM with ``az vm run-command invoke``."""

    def __init__(self, executor: AzureCLIExecutor | None = None):
        self.executor = executor or AzureCLIExecutor()

    def run(self, service_name: str, vm_name: str, script: str) -> RemoteResult:
        """Run a script on the VM and collect its output.

        Args:
            service_name: Resource group hosting the VM
            vm_name: VM to run the script on
            script: PowerShell source

        Returns:
            RemoteResult; success is False when the script wrote to stderr

        Raises:
            RemoteExecError: If the run-command call fails or returns garbage
        """
        result = self.executor.execute(
            [
                "az",
                "vm",
                "run-command",
                "invoke",
                "--resource-group",
                service_name,
                "--name",
                vm_name,
                "--command-id",
                "RunPowerShellScript",
                "--scripts",
                script,
                "--output",
                "json",
            ]
        )

        if not result["success"]:
            raise RemoteExecError(
                f"Remote execution on '{vm_name}' failed: {result['stderr'].strip()}"
            )

        try:
            messages = json.loads(result["stdout"]).get("value", [])
        except (json.JSONDecodeError, AttributeError) as e:
            raise RemoteExecError(f"Unexpected run-command output from '{vm_name}': {e}") from e

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        for msg in messages:
            code = msg.get("code", "")
            text = (msg.get("message") or "").strip()
            if not text:
                continue
            if "/StdErr/" in code:
                if _is_progress_only(text):
                    logger.debug(f"Ignoring serialized progress output from {vm_name}")
                    continue
                stderr_parts.append(text)
            else:
                stdout_parts.append(text)

        error = "\n".join(stderr_parts) or None
        if error:
            logger.debug(f"Remote script on {vm_name} wrote to stderr: {error}")

        return RemoteResult(
            vm_name=vm_name,
            success=error is None,
            output="\n".join(stdout_parts),
            error=error,
        )
