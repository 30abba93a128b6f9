"""Unit tests for cert_handler module."""

import stat
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from azdisk.cert_handler import (
    CertificateError,
    TrustStore,
    check_expiration,
    get_thumbprint,
    load_certificate,
)


def _certificate_valid_until(not_after):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "expiring.example.com")])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=400))
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )


class TestLoadCertificate:
    """Tests for load_certificate."""

    def test_loads_der(self, certificate, certificate_der):
        assert load_certificate(certificate_der) == certificate

    def test_loads_pem(self, certificate):
        pem = certificate.public_bytes(serialization.Encoding.PEM)

        assert load_certificate(pem) == certificate

    def test_rejects_garbage(self):
        with pytest.raises(CertificateError, match="Invalid certificate format"):
            load_certificate(b"not a certificate")


class TestThumbprint:
    """Tests for get_thumbprint."""

    def test_uppercase_sha1_hex(self, certificate):
        thumbprint = get_thumbprint(certificate)

        assert len(thumbprint) == 40
        assert thumbprint == thumbprint.upper()
        assert thumbprint == certificate.fingerprint(hashes.SHA1()).hex().upper()


class TestCheckExpiration:
    """Tests for check_expiration."""

    def test_valid_certificate(self, certificate):
        status = check_expiration(certificate)

        assert status.is_expired is False
        assert status.needs_warning is False
        assert status.days_until_expiry > 300

    def test_expiring_soon(self):
        cert = _certificate_valid_until(datetime.now(UTC) + timedelta(days=10))

        status = check_expiration(cert)

        assert status.is_expired is False
        assert status.needs_warning is True

    def test_expired(self):
        cert = _certificate_valid_until(datetime.now(UTC) - timedelta(days=5))

        status = check_expiration(cert)

        assert status.is_expired is True
        assert status.days_until_expiry < 0


class TestTrustStore:
    """Tests for TrustStore."""

    def test_install_writes_pem_named_by_thumbprint(self, tmp_path, certificate):
        store = TrustStore(tmp_path / "certs")

        assert store.install(certificate) is True

        thumbprint = get_thumbprint(certificate)
        path = tmp_path / "certs" / f"{thumbprint}.pem"
        assert path.exists()
        assert load_certificate(path.read_bytes()) == certificate

    def test_install_twice_is_noop(self, tmp_path, certificate):
        store = TrustStore(tmp_path / "certs")

        store.install(certificate)
        path = tmp_path / "certs" / f"{get_thumbprint(certificate)}.pem"
        mtime = path.stat().st_mtime_ns

        assert store.install(certificate) is False
        assert path.stat().st_mtime_ns == mtime
        assert len(store.list_thumbprints()) == 1

    def test_secure_permissions(self, tmp_path, certificate):
        store = TrustStore(tmp_path / "certs")
        store.install(certificate)

        dir_mode = stat.S_IMODE((tmp_path / "certs").stat().st_mode)
        file_mode = stat.S_IMODE(store._path_for(get_thumbprint(certificate)).stat().st_mode)

        assert dir_mode == 0o700
        assert file_mode == 0o600

    def test_contains_is_case_insensitive(self, tmp_path, certificate):
        store = TrustStore(tmp_path / "certs")
        store.install(certificate)

        assert store.contains(get_thumbprint(certificate).lower())

    def test_empty_store(self, tmp_path):
        store = TrustStore(tmp_path / "missing")

        assert store.list_thumbprints() == []
        assert store.contains("ABC") is False

    def test_expiring_certificate_warns_but_installs(self, tmp_path, caplog):
        cert = _certificate_valid_until(datetime.now(UTC) + timedelta(days=5))
        store = TrustStore(tmp_path / "certs")

        assert store.install(cert) is True
        assert "expires soon" in caplog.text

    def test_write_failure_raises(self, tmp_path, certificate):
        store = TrustStore(tmp_path / "certs")

        with patch("pathlib.Path.write_bytes", side_effect=OSError("disk full")):
            with pytest.raises(CertificateError, match="disk full"):
                store.install(certificate)
