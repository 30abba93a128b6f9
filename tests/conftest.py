"""
Shared test fixtures and configuration for azdisk tests.

This module provides common fixtures used across all test types:
- An in-memory CloudProvider fake
- Image catalog samples
- Self-signed certificates
- Isolation of ~/.azdisk from the real home directory
"""

from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from azdisk.azure_provider import AzureCommandError, VMSpec
from azdisk.config_manager import ConfigManager
from azdisk.credentials import static_credentials
from azdisk.disk_allocator import DiskSlot
from azdisk.image_resolver import Image
from azdisk.remote_exec import RemoteResult

# ============================================================================
# ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point ConfigManager at a temporary ~/.azdisk for every test."""
    config_dir = tmp_path / ".azdisk"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.setattr(ConfigManager, "DEFAULT_TRUST_STORE_DIR", config_dir / "trusted_certs")
    monkeypatch.delenv("AZDISK_ADMIN_USERNAME", raising=False)
    monkeypatch.delenv("AZDISK_ADMIN_PASSWORD", raising=False)
    return config_dir


# ============================================================================
# IMAGE CATALOG
# ============================================================================


def make_image(family, publisher, date, image_id=None):
    return Image(
        family=family,
        publisher=publisher,
        published_date=datetime.fromisoformat(date).replace(tzinfo=UTC),
        image_id=image_id or f"{publisher}:{family}:{date}",
    )


@pytest.fixture
def sample_catalog():
    """Catalog with two Windows families, a third-party image and an old release."""
    return [
        make_image("WindowsServer 2012-Datacenter", "MicrosoftWindowsServer", "2013-06-01", "ws2012-old"),
        make_image("WindowsServer 2012-Datacenter", "MicrosoftWindowsServer", "2014-09-01", "ws2012-new"),
        make_image("WindowsServer 2012-R2-Datacenter", "MicrosoftWindowsServer", "2014-05-01", "ws2012r2"),
        make_image("Custom 2012-Datacenter", "Contoso", "2015-01-01", "contoso"),
    ]


# ============================================================================
# CERTIFICATES
# ============================================================================


def build_certificate(common_name="vm.example.com", days_valid=365):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=days_valid))
        .sign(key, hashes.SHA256())
    )


@pytest.fixture
def certificate():
    """Self-signed certificate valid for a year."""
    return build_certificate()


@pytest.fixture
def certificate_der(certificate):
    return certificate.public_bytes(serialization.Encoding.DER)


# ============================================================================
# PROVIDER FAKE
# ============================================================================


class FakeProvider:
    """In-memory CloudProvider recording every mutating call."""

    def __init__(
        self,
        images=None,
        groups=None,
        vms=None,
        storage_location="westus2",
        certificate=None,
        remote_uri="https://vm.example.com:5986/wsman",
    ):
        self.images = images or []
        self.groups = dict(groups or {})
        self.vms = {key: list(luns) for key, luns in (vms or {}).items()}
        self.storage_location = storage_location
        self.certificate = certificate
        self.remote_uri = remote_uri
        self.calls = []
        self.created_specs: list[VMSpec] = []
        self.fail_attach_at_lun = None

    def get_subscription(self):
        return {"name": "Test Subscription", "id": "sub-id"}

    def get_storage_account_location(self, account_name):
        self.calls.append(("get_storage_account_location", account_name))
        return self.storage_location

    def list_images(self, location=None):
        self.calls.append(("list_images", location))
        return list(self.images)

    def get_resource_group_location(self, service_name):
        return self.groups.get(service_name)

    def create_resource_group(self, service_name, location):
        self.calls.append(("create_resource_group", service_name, location))
        self.groups[service_name] = location

    def vm_exists(self, service_name, vm_name):
        return (service_name, vm_name) in self.vms

    def get_data_disk_luns(self, service_name, vm_name):
        return list(self.vms[(service_name, vm_name)])

    def attach_new_disk(self, service_name, vm_name, slot: DiskSlot):
        if slot.lun == self.fail_attach_at_lun:
            raise AzureCommandError("az vm disk attach", "(OperationNotAllowed) too many disks")
        self.calls.append(("attach_new_disk", vm_name, slot.lun, slot.size_gb))
        self.vms[(service_name, vm_name)].append(slot.lun)

    def update_vm(self, service_name, vm_name):
        self.calls.append(("update_vm", vm_name))

    def create_vm(self, spec: VMSpec):
        self.calls.append(("create_vm", spec.name))
        self.created_specs.append(spec)
        self.vms[(spec.service_name, spec.name)] = [slot.lun for slot in spec.data_disks]

    def wait_for_running(self, service_name, vm_name):
        self.calls.append(("wait_for_running", vm_name))

    def get_certificate(self, service_name, vm_name):
        return self.certificate

    def get_remote_uri(self, service_name, vm_name):
        return self.remote_uri


class FakeRemoteExecutor:
    """Remote executor returning a canned result."""

    def __init__(self, result=None):
        self.result = result
        self.calls = []

    def run(self, service_name, vm_name, script):
        self.calls.append((service_name, vm_name, script))
        return self.result or RemoteResult(vm_name=vm_name, success=True, output="Initialized 2 raw disk(s)")


@pytest.fixture
def fake_provider(sample_catalog, certificate_der):
    return FakeProvider(images=sample_catalog, certificate=certificate_der)


@pytest.fixture
def fake_remote():
    return FakeRemoteExecutor()


@pytest.fixture
def credential_supplier():
    return static_credentials("azureadmin", "P@ssw0rd-for-tests")


@pytest.fixture
def image_factory():
    """Factory building Image entries from ISO dates."""
    return make_image


@pytest.fixture
def provider_factory(certificate_der):
    """Factory building FakeProvider instances (certificate included by default)."""

    def factory(**kwargs):
        kwargs.setdefault("certificate", certificate_der)
        return FakeProvider(**kwargs)

    return factory


@pytest.fixture
def remote_factory():
    return FakeRemoteExecutor
