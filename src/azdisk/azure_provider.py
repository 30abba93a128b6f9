"""Azure control-plane access for azdisk.

Everything azdisk asks of Azure goes through the CloudProvider protocol, so
the orchestrator can be exercised against fakes. AzureCLIProvider is the real
implementation; it drives the ``az`` CLI, the same tool the user is already
signed in with.

Terminology:
- service: the resource group hosting the VM
- LUN: the slot number a data disk is attached at
"""

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from azdisk.azure_cli_visibility import AzureCLIExecutor
from azdisk.credentials import AdminCredentials
from azdisk.disk_allocator import DiskSlot
from azdisk.image_resolver import Image, family_from_offer_sku, parse_published_date

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_PUBLISHER = "MicrosoftWindowsServer"
DEFAULT_IMAGE_OFFER = "WindowsServer"
WINRM_HTTPS_PORT = 5986

_VAULT_SECRET_URL = re.compile(
    r"^https://(?P<vault>[^./]+)\.vault\.[^/]+/secrets/(?P<name>[^/]+)(?:/(?P<version>[^/?]+))?"
)


class ProvisioningError(Exception):
    """Raised when VM provisioning fails."""

    pass


class AzureCommandError(ProvisioningError):
    """Raised when an ``az`` command exits non-zero."""

    def __init__(self, command: str, stderr: str):
        self.command = command
        self.stderr = stderr.strip()
        super().__init__(f"Azure CLI command failed: {command}\n{self.stderr}")


@dataclass
class VMSpec:
    """Configuration for a VM to be created."""

    name: str
    service_name: str
    location: str
    size: str
    image: str
    credentials: AdminCredentials
    data_disks: list[DiskSlot] = field(default_factory=list)
    key_vault_id: str | None = None
    certificate_url: str | None = None

    def add_disk(self, slot: DiskSlot) -> None:
        """Attach a data disk to the configuration."""
        if any(disk.lun == slot.lun for disk in self.data_disks):
            raise ValueError(f"LUN {slot.lun} already used in configuration for {self.name}")
        self.data_disks.append(slot)


class CloudProvider(Protocol):
    """The provider operations azdisk relies on."""

    def get_subscription(self) -> dict[str, Any]: ...

    def get_storage_account_location(self, account_name: str) -> str: ...

    def list_images(self, location: str | None = None) -> list[Image]: ...

    def get_resource_group_location(self, service_name: str) -> str | None: ...

    def create_resource_group(self, service_name: str, location: str) -> None: ...

    def vm_exists(self, service_name: str, vm_name: str) -> bool: ...

    def get_data_disk_luns(self, service_name: str, vm_name: str) -> list[int]: ...

    def attach_new_disk(self, service_name: str, vm_name: str, slot: DiskSlot) -> None: ...

    def update_vm(self, service_name: str, vm_name: str) -> None: ...

    def create_vm(self, spec: VMSpec) -> None: ...

    def wait_for_running(self, service_name: str, vm_name: str) -> None: ...

    def get_certificate(self, service_name: str, vm_name: str) -> bytes | None: ...

    def get_remote_uri(self, service_name: str, vm_name: str) -> str | None: ...


def _is_not_found(stderr: str) -> bool:
    return "NotFound" in stderr or "could not be found" in stderr or "was not found" in stderr


class AzureCLIProvider:
    """CloudProvider backed by the Azure CLI.

    No command is given a timeout of its own: every call blocks for as long
    as Azure takes, bounded only by the CLI's own limits. Queries run
    without the progress spinner.
    """

    def __init__(
        self,
        executor: AzureCLIExecutor | None = None,
        long_executor: AzureCLIExecutor | None = None,
        image_publisher: str = DEFAULT_IMAGE_PUBLISHER,
        image_offer: str = DEFAULT_IMAGE_OFFER,
    ):
        self.executor = executor or AzureCLIExecutor(show_progress=False)
        self.long_executor = long_executor or AzureCLIExecutor(show_progress=True)
        self.image_publisher = image_publisher
        self.image_offer = image_offer

    # ------------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------------

    def _run(self, command: list[str], long_running: bool = False) -> dict[str, Any]:
        executor = self.long_executor if long_running else self.executor
        result = executor.execute(command)
        if not result["success"]:
            raise AzureCommandError(result["command"], result["stderr"])
        return result

    def _run_json(self, command: list[str], long_running: bool = False) -> Any:
        result = self._run([*command, "--output", "json"], long_running=long_running)
        try:
            return json.loads(result["stdout"] or "null")
        except json.JSONDecodeError as e:
            raise ProvisioningError(f"Unexpected output from '{result['command']}': {e}") from e

    def _get_vm(self, service_name: str, vm_name: str, details: bool = False) -> dict | None:
        command = ["az", "vm", "show", "--resource-group", service_name, "--name", vm_name]
        if details:
            command.append("--show-details")
        result = self.executor.execute([*command, "--output", "json"])
        if not result["success"]:
            if _is_not_found(result["stderr"]):
                return None
            raise AzureCommandError(result["command"], result["stderr"])
        try:
            return json.loads(result["stdout"])
        except json.JSONDecodeError as e:
            raise ProvisioningError(f"Unexpected output from '{result['command']}': {e}") from e

    # ------------------------------------------------------------------
    # Subscription and storage
    # ------------------------------------------------------------------

    def get_subscription(self) -> dict[str, Any]:
        """Return the active subscription (``az account show``)."""
        return self._run_json(["az", "account", "show"])

    def get_storage_account_location(self, account_name: str) -> str:
        """Return the region of a storage account."""
        account = self._run_json(["az", "storage", "account", "show", "--name", account_name])
        return account["location"]

    # ------------------------------------------------------------------
    # Image catalog
    # ------------------------------------------------------------------

    def list_images(self, location: str | None = None) -> list[Image]:
        """List every marketplace image version of the configured publisher/offer."""
        command = [
            "az",
            "vm",
            "image",
            "list",
            "--all",
            "--publisher",
            self.image_publisher,
            "--offer",
            self.image_offer,
        ]
        if location:
            command.extend(["--location", location])

        entries = self._run_json(command, long_running=True) or []
        images = [
            Image(
                family=family_from_offer_sku(entry["offer"], entry["sku"]),
                publisher=entry["publisher"],
                published_date=parse_published_date(entry["version"]),
                image_id=entry["urn"],
            )
            for entry in entries
        ]
        logger.debug(f"Image catalog holds {len(images)} entries")
        return images

    # ------------------------------------------------------------------
    # Resource groups
    # ------------------------------------------------------------------

    def get_resource_group_location(self, service_name: str) -> str | None:
        """Return the group's region, or None if the group does not exist."""
        exists = self._run_json(["az", "group", "exists", "--name", service_name])
        if not exists:
            return None
        group = self._run_json(["az", "group", "show", "--name", service_name])
        return group["location"]

    def create_resource_group(self, service_name: str, location: str) -> None:
        self._run_json(
            ["az", "group", "create", "--name", service_name, "--location", location]
        )

    # ------------------------------------------------------------------
    # Virtual machines
    # ------------------------------------------------------------------

    def vm_exists(self, service_name: str, vm_name: str) -> bool:
        return self._get_vm(service_name, vm_name) is not None

    def get_data_disk_luns(self, service_name: str, vm_name: str) -> list[int]:
        """Return the LUNs of all data disks attached to the VM."""
        vm = self._get_vm(service_name, vm_name)
        if vm is None:
            raise ProvisioningError(f"VM '{vm_name}' not found in '{service_name}'")
        data_disks = vm.get("storageProfile", {}).get("dataDisks", [])
        return [disk["lun"] for disk in data_disks]

    def attach_new_disk(self, service_name: str, vm_name: str, slot: DiskSlot) -> None:
        """Create an empty managed disk and attach it at the slot's LUN."""
        self._run_json(
            [
                "az",
                "vm",
                "disk",
                "attach",
                "--resource-group",
                service_name,
                "--vm-name",
                vm_name,
                "--name",
                f"{vm_name}-{slot.label}",
                "--new",
                "--size-gb",
                str(slot.size_gb),
                "--lun",
                str(slot.lun),
            ],
            long_running=True,
        )

    def update_vm(self, service_name: str, vm_name: str) -> None:
        """Apply the VM's current configuration."""
        self._run_json(
            ["az", "vm", "update", "--resource-group", service_name, "--name", vm_name],
            long_running=True,
        )

    def create_vm(self, spec: VMSpec) -> None:
        """Create the VM with its data disks.

        Azure attaches ``--data-disk-sizes-gb`` entries at LUN 0, 1, ... in
        order, so disks are passed sorted by LUN and must start at 0.
        """
        disks = sorted(spec.data_disks, key=lambda slot: slot.lun)
        if [slot.lun for slot in disks] != list(range(len(disks))):
            raise ProvisioningError(
                f"New VM data disks must occupy LUNs 0..{len(disks) - 1}, "
                f"got {[slot.lun for slot in disks]}"
            )

        command = [
            "az",
            "vm",
            "create",
            "--resource-group",
            spec.service_name,
            "--name",
            spec.name,
            "--location",
            spec.location,
            "--image",
            spec.image,
            "--size",
            spec.size,
            "--admin-username",
            spec.credentials.username,
            "--admin-password",
            spec.credentials.password,
        ]
        if disks:
            command.append("--data-disk-sizes-gb")
            command.extend(str(slot.size_gb) for slot in disks)
        if spec.key_vault_id and spec.certificate_url:
            secrets = [
                {
                    "sourceVault": {"id": spec.key_vault_id},
                    "vaultCertificates": [
                        {"certificateUrl": spec.certificate_url, "certificateStore": "My"}
                    ],
                }
            ]
            command.extend(["--secrets", json.dumps(secrets)])

        self._run_json(command, long_running=True)

    def wait_for_running(self, service_name: str, vm_name: str) -> None:
        """Block until Azure reports the VM as running."""
        self._run(
            [
                "az",
                "vm",
                "wait",
                "--resource-group",
                service_name,
                "--name",
                vm_name,
                "--custom",
                "instanceView.statuses[?code=='PowerState/running']",
            ],
            long_running=True,
        )

    # ------------------------------------------------------------------
    # Remote management
    # ------------------------------------------------------------------

    def get_certificate(self, service_name: str, vm_name: str) -> bytes | None:
        """Return the DER bytes of the VM's remote-management certificate.

        The certificate is the first Key Vault certificate deployed to the VM
        through its OS profile. Returns None when the VM has none.
        """
        vm = self._get_vm(service_name, vm_name)
        if vm is None:
            raise ProvisioningError(f"VM '{vm_name}' not found in '{service_name}'")

        urls = [
            cert["certificateUrl"]
            for secret in (vm.get("osProfile") or {}).get("secrets") or []
            for cert in secret.get("vaultCertificates") or []
            if cert.get("certificateUrl")
        ]
        if not urls:
            return None

        match = _VAULT_SECRET_URL.match(urls[0])
        if not match:
            raise ProvisioningError(f"Unrecognized Key Vault certificate URL: {urls[0]}")

        command = [
            "az",
            "keyvault",
            "certificate",
            "show",
            "--vault-name",
            match.group("vault"),
            "--name",
            match.group("name"),
        ]
        if match.group("version"):
            command.extend(["--version", match.group("version")])

        certificate = self._run_json(command)
        return base64.b64decode(certificate["cer"])

    def get_remote_uri(self, service_name: str, vm_name: str) -> str | None:
        """Return the WinRM HTTPS endpoint of the VM, if it has a public address."""
        vm = self._get_vm(service_name, vm_name, details=True)
        if vm is None:
            return None
        host = (vm.get("fqdns") or "").split(",")[0].strip()
        if not host:
            host = (vm.get("publicIps") or "").split(",")[0].strip()
        if not host:
            return None
        return f"https://{host}:{WINRM_HTTPS_PORT}/wsman"
