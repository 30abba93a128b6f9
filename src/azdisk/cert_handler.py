"""Local trust store for VM remote-management certificates.

The WinRM listener of a provisioned VM presents a certificate that the local
machine does not know. Installing it into the trust store lets remote
management clients validate the encrypted session.

The trust store is a directory of PEM files named after the certificate
thumbprint (uppercase SHA-1 hex, as Windows displays it).

Security Requirements:
- Store directory 0700, certificate files 0600
- Certificates must parse as X.509 (DER or PEM)
- Expiration checked on install, warning if <30 days
"""

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization

logger = logging.getLogger(__name__)

EXPIRATION_WARNING_DAYS = 30


class CertificateError(Exception):
    """Raised when certificate material cannot be parsed or stored."""

    pass


@dataclass
class ExpirationStatus:
    """Certificate expiration status.

    Attributes:
        expiration_date: Certificate expiration date
        days_until_expiry: Days until certificate expires (negative if expired)
        is_expired: True if certificate has expired
        needs_warning: True if certificate expires within 30 days
    """

    expiration_date: datetime
    days_until_expiry: int
    is_expired: bool
    needs_warning: bool


def load_certificate(data: bytes) -> x509.Certificate:
    """Parse certificate bytes in DER or PEM encoding.

    Raises:
        CertificateError: If the bytes are not an X.509 certificate
    """
    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise CertificateError(f"Invalid certificate format: {e}") from e


def get_thumbprint(cert: x509.Certificate) -> str:
    """Return the certificate thumbprint (uppercase SHA-1 hex)."""
    return cert.fingerprint(hashes.SHA1()).hex().upper()  # noqa: S303 - thumbprint, not security


def check_expiration(cert: x509.Certificate) -> ExpirationStatus:
    """Check certificate expiration status."""
    expiration_date = cert.not_valid_after_utc
    days_until_expiry = (expiration_date - datetime.now(UTC)).days

    return ExpirationStatus(
        expiration_date=expiration_date,
        days_until_expiry=days_until_expiry,
        is_expired=days_until_expiry < 0,
        needs_warning=days_until_expiry < EXPIRATION_WARNING_DAYS,
    )


class TrustStore:
    """Directory-backed certificate trust store.

    Examples:
        >>> store = TrustStore(Path("~/.azdisk/trusted_certs").expanduser())
        >>> store.install(cert)   # True: written
        >>> store.install(cert)   # False: already trusted, nothing written
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path_for(self, thumbprint: str) -> Path:
        return self.directory / f"{thumbprint.upper()}.pem"

    def contains(self, thumbprint: str) -> bool:
        """Check whether a certificate with this thumbprint is already trusted."""
        return self._path_for(thumbprint).exists()

    def list_thumbprints(self) -> list[str]:
        """List thumbprints of all trusted certificates."""
        if not self.directory.exists():
            return []
        return sorted(path.stem for path in self.directory.glob("*.pem"))

    def install(self, cert: x509.Certificate) -> bool:
        """Install a certificate unless one with the same thumbprint exists.

        Args:
            cert: Certificate to trust

        Returns:
            True if the certificate was written, False if it was already present

        Raises:
            CertificateError: If the store cannot be written
        """
        thumbprint = get_thumbprint(cert)

        if self.contains(thumbprint):
            logger.debug(f"Certificate {thumbprint} already trusted")
            return False

        status = check_expiration(cert)
        if status.is_expired:
            logger.warning(
                f"Certificate {thumbprint} has expired "
                f"({abs(status.days_until_expiry)} days ago)"
            )
        elif status.needs_warning:
            logger.warning(
                f"Certificate {thumbprint} expires soon (in {status.days_until_expiry} days)"
            )

        path = self._path_for(thumbprint)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            os.chmod(self.directory, 0o700)
            path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
            os.chmod(path, 0o600)
        except OSError as e:
            raise CertificateError(f"Failed to write certificate to {path}: {e}") from e

        logger.info(f"Installed certificate {thumbprint} into {self.directory}")
        return True
