"""azdisk - Azure VM data disk provisioning CLI

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Security by design (no credentials in code)
- Fail fast with helpful guidance

The azdisk CLI creates an Azure VM with attached data disks, or extends an
existing VM with more disks, then initializes and formats those disks inside
the guest.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
