"""Provisioning orchestration.

DiskProvisioner drives one run from start to finish:

1. Check the requested location against the configured storage account
2. Resolve the latest image of the configured family
3. Ensure the hosting resource group exists
4. Extend the existing VM with new disks, or create the VM with them
5. Trust the VM's remote-management certificate locally
6. Initialize and format the raw disks inside the guest

Steps run strictly in order and nothing is rolled back: if attaching the
third of five disks fails, the first two stay attached.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from azdisk.azure_provider import CloudProvider, ProvisioningError, VMSpec
from azdisk.cert_handler import TrustStore, get_thumbprint, load_certificate
from azdisk.config_manager import AzdiskConfig
from azdisk.credentials import CredentialSupplier
from azdisk.disk_allocator import DiskSlot, build_disk_slots
from azdisk.image_resolver import Image, resolve_latest_image
from azdisk.remote_exec import FORMAT_RAW_DISKS_SCRIPT, RemoteExecutor, RemoteResult

logger = logging.getLogger(__name__)


class ValidationError(ProvisioningError):
    """Raised when a run is rejected before any resource is changed."""

    pass


@dataclass
class ProvisionRequest:
    """Parameters of one provisioning run."""

    service_name: str
    vm_name: str
    disk_size_gb: int
    number_of_disks: int
    location: str | None = None
    vm_size: str | None = None


@dataclass
class ProvisionResult:
    """Outcome of a provisioning run."""

    service_name: str
    vm_name: str
    location: str
    created: bool
    image: Image
    slots: list[DiskSlot] = field(default_factory=list)
    certificate_thumbprint: str | None = None
    certificate_installed: bool = False
    remote_uri: str | None = None
    remote_result: RemoteResult | None = None

    @property
    def succeeded(self) -> bool:
        """True if the disks were formatted inside the guest."""
        return self.remote_result is not None and self.remote_result.success

    def get_summary(self) -> str:
        """Get human-readable summary."""
        action = "Created" if self.created else "Extended"
        luns = ", ".join(str(slot.lun) for slot in self.slots)
        return (
            f"{action} VM '{self.vm_name}' in '{self.service_name}' ({self.location}) "
            f"with {len(self.slots)} disk(s) at LUN {luns}"
        )


def _same_location(a: str, b: str) -> bool:
    """Compare region names ignoring case and spaces ('West US' == 'westus')."""
    return a.replace(" ", "").lower() == b.replace(" ", "").lower()


class DiskProvisioner:
    """Provision a VM with data disks, or add data disks to an existing VM.

    Collaborators are injected so each one can be replaced in tests:
    - provider: Azure control plane
    - credential_supplier: called only when a VM has to be created
    - trust_store: local store the VM certificate is installed into
    - remote_executor: runs the disk formatting script inside the VM
    """

    def __init__(
        self,
        provider: CloudProvider,
        credential_supplier: CredentialSupplier,
        trust_store: TrustStore,
        remote_executor: RemoteExecutor,
        config: AzdiskConfig | None = None,
        progress_callback: Callable[[str], None] | None = None,
    ):
        self.provider = provider
        self.credential_supplier = credential_supplier
        self.trust_store = trust_store
        self.remote_executor = remote_executor
        self.config = config or AzdiskConfig()
        self.progress_callback = progress_callback

    def _report(self, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(message)
        else:
            logger.info(message)

    def run(self, request: ProvisionRequest) -> ProvisionResult:
        """Execute all provisioning steps for one request.

        Raises:
            ValidationError: Location mismatch, missing location, or no image
            ProvisioningError: Any Azure call failed
            RemoteExecError: The formatting script could not be started
        """
        if request.number_of_disks < 1:
            raise ValidationError("Number of disks must be at least 1")
        if request.disk_size_gb < 1:
            raise ValidationError("Disk size must be at least 1GB")

        self.check_location(request.location)
        image = self.resolve_image(request.location)
        location = self.ensure_service(request.service_name, request.location)

        if self.provider.vm_exists(request.service_name, request.vm_name):
            created = False
            slots = self.extend_vm(request)
        else:
            created = True
            slots = self.create_vm(request, image, location)

        result = ProvisionResult(
            service_name=request.service_name,
            vm_name=request.vm_name,
            location=location,
            created=created,
            image=image,
            slots=slots,
        )

        result.certificate_thumbprint, result.certificate_installed = self.install_certificate(
            request.service_name, request.vm_name
        )
        result.remote_uri = self.provider.get_remote_uri(request.service_name, request.vm_name)
        result.remote_result = self.format_disks(request.service_name, request.vm_name)

        return result

    def check_location(self, location: str | None) -> None:
        """Fail if the requested location differs from the storage account's.

        Raises:
            ValidationError: On mismatch
        """
        account = self.config.storage_account
        if not account:
            logger.debug("No storage account configured, skipping location check")
            return

        account_location = self.provider.get_storage_account_location(account)
        logger.debug(f"Storage account '{account}' is in {account_location}")

        if location and not _same_location(location, account_location):
            raise ValidationError(
                f"Location '{location}' does not match the location of storage account "
                f"'{account}' ({account_location})"
            )

    def resolve_image(self, location: str | None = None) -> Image:
        """Resolve the latest official image of the configured family.

        Raises:
            ValidationError: If no image matches
        """
        catalog = self.provider.list_images(location)
        image = resolve_latest_image(
            catalog,
            self.config.image_family_filter,
            official_only=True,
            official_publisher=self.config.official_publisher_pattern,
        )
        if image is None:
            raise ValidationError(
                f"No image found matching family '{self.config.image_family_filter}' "
                f"from publisher '{self.config.official_publisher_pattern}'"
            )

        self._report(f"Using image {image.family} ({image.image_id})")
        return image

    def ensure_service(self, service_name: str, location: str | None) -> str:
        """Ensure the resource group exists and return its location.

        Raises:
            ValidationError: If the group must be created but no location was given
        """
        existing_location = self.provider.get_resource_group_location(service_name)

        if existing_location is None:
            if not location:
                raise ValidationError(
                    f"Resource group '{service_name}' does not exist; "
                    "a location is required to create it"
                )
            self._report(f"Creating resource group '{service_name}' in {location}")
            self.provider.create_resource_group(service_name, location)
            return location

        if location and not _same_location(location, existing_location):
            logger.warning(
                f"Resource group '{service_name}' already exists in {existing_location}; "
                f"ignoring requested location '{location}'"
            )
        return existing_location

    def extend_vm(self, request: ProvisionRequest) -> list[DiskSlot]:
        """Attach new disks to an existing VM, one after another.

        A failed attach propagates immediately; disks attached before it
        remain attached.
        """
        existing = self.provider.get_data_disk_luns(request.service_name, request.vm_name)
        slots = build_disk_slots(existing, request.number_of_disks, request.disk_size_gb)

        self._report(
            f"VM '{request.vm_name}' exists with {len(existing)} data disk(s); "
            f"adding {len(slots)}"
        )
        for slot in slots:
            self._report(f"Attaching {slot.size_gb}GB disk '{slot.label}' at LUN {slot.lun}")
            self.provider.attach_new_disk(request.service_name, request.vm_name, slot)

        self.provider.update_vm(request.service_name, request.vm_name)
        return slots

    def create_vm(self, request: ProvisionRequest, image: Image, location: str) -> list[DiskSlot]:
        """Create a new VM with its data disks and wait for it to boot."""
        credentials = self.credential_supplier()
        spec = VMSpec(
            name=request.vm_name,
            service_name=request.service_name,
            location=location,
            size=request.vm_size or self.config.default_vm_size,
            image=image.image_id,
            credentials=credentials,
            key_vault_id=self.config.key_vault_id,
            certificate_url=self.config.winrm_certificate_url,
        )

        slots = build_disk_slots([], request.number_of_disks, request.disk_size_gb)
        for slot in slots:
            spec.add_disk(slot)

        self._report(
            f"Creating VM '{spec.name}' ({spec.size}) with {len(slots)} data disk(s)"
        )
        self.provider.create_vm(spec)

        self._report(f"Waiting for VM '{spec.name}' to boot...")
        self.provider.wait_for_running(request.service_name, request.vm_name)
        return slots

    def install_certificate(self, service_name: str, vm_name: str) -> tuple[str | None, bool]:
        """Trust the VM's remote-management certificate locally.

        Returns:
            (thumbprint, installed); thumbprint is None when the VM exposes no
            certificate, installed is False when it was already trusted
        """
        data = self.provider.get_certificate(service_name, vm_name)
        if data is None:
            logger.warning(
                f"VM '{vm_name}' has no remote-management certificate; skipping trust install"
            )
            return None, False

        cert = load_certificate(data)
        thumbprint = get_thumbprint(cert)

        if self.trust_store.contains(thumbprint):
            logger.debug(f"Certificate {thumbprint} already trusted")
            return thumbprint, False

        installed = self.trust_store.install(cert)
        if installed:
            self._report(f"Trusted remote-management certificate {thumbprint}")
        return thumbprint, installed

    def format_disks(self, service_name: str, vm_name: str) -> RemoteResult:
        """Initialize and format every raw disk inside the guest."""
        self._report(f"Formatting raw disks on '{vm_name}'...")
        result = self.remote_executor.run(service_name, vm_name, FORMAT_RAW_DISKS_SCRIPT)
        if result.success:
            logger.debug(result.output)
        else:
            logger.error(f"Disk formatting on '{vm_name}' failed: {result.error}")
        return result
