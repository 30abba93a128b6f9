"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores defaults like region, VM size, the image family filter and the
storage account whose location new VMs must match.

Security:
- Config file permissions: 0600 (owner read/write only)
- Path validation
"""

import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for older Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

from azdisk.azure_provider import DEFAULT_IMAGE_OFFER, DEFAULT_IMAGE_PUBLISHER
from azdisk.image_resolver import DEFAULT_OFFICIAL_PUBLISHER

logger = logging.getLogger(__name__)

DEFAULT_VM_SIZE = "Standard_D2s_v3"
DEFAULT_IMAGE_FAMILY_FILTER = "*2012-Datacenter"


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class AzdiskConfig:
    """Azdisk configuration data."""

    default_location: str | None = None
    default_vm_size: str = DEFAULT_VM_SIZE
    image_family_filter: str = DEFAULT_IMAGE_FAMILY_FILTER
    official_publisher_pattern: str = DEFAULT_OFFICIAL_PUBLISHER
    image_publisher: str = DEFAULT_IMAGE_PUBLISHER
    image_offer: str = DEFAULT_IMAGE_OFFER
    storage_account: str | None = None  # location of this account pins new VMs
    admin_username: str | None = None
    trust_store_dir: str | None = None  # defaults to ~/.azdisk/trusted_certs
    key_vault_id: str | None = None  # vault holding the WinRM certificate
    winrm_certificate_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # TOML has no null
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AzdiskConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigManager:
    """Manage azdisk configuration file.

    Configuration is stored at ~/.azdisk/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".azdisk"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"
    DEFAULT_TRUST_STORE_DIR = DEFAULT_CONFIG_DIR / "trusted_certs"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Ensure a custom config path is inside an allowed directory.

        Allowed: ~/.azdisk/, the current working directory, and the system
        temporary directory.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved_path = path.resolve()
        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]

        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}"
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            Path to config file

        Raises:
            ConfigError: If a custom path is invalid or does not exist
        """
        if custom_path:
            path = cls._validate_config_path(Path(custom_path).expanduser())
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions.

        Raises:
            ConfigError: If directory creation fails
        """
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
            return cls.DEFAULT_CONFIG_DIR
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> AzdiskConfig:
        """Load configuration from file.

        A missing default config file yields the built-in defaults.

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return AzdiskConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)  # type: ignore[attr-defined]

            logger.debug(f"Loaded config from: {config_path}")
            return AzdiskConfig.from_dict(data)

        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: AzdiskConfig, custom_path: str | None = None) -> Path:
        """Save configuration to file, preserving comments in an existing file.

        Returns:
            Path the configuration was written to

        Raises:
            ConfigError: If saving fails or path is outside allowed directories
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = cls._validate_config_path(Path(custom_path).expanduser())
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.ensure_config_dir()
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            values = config.to_dict()
            for key in list(doc.keys()):
                if key not in values:
                    del doc[key]
            for key, value in values.items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")
            return config_path

        except ConfigError:
            raise
        except Exception as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> AzdiskConfig:
        """Update configuration values.

        Raises:
            ConfigError: If a key is unknown or the update fails
        """
        config = cls.load_config(custom_path)
        known = {f.name for f in fields(AzdiskConfig)}

        for key, value in updates.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            setattr(config, key, value)

        cls.save_config(config, custom_path)
        return config

    @classmethod
    def get_location(
        cls, cli_value: str | None = None, config: AzdiskConfig | None = None
    ) -> str | None:
        """Get location with CLI override (may be None)."""
        if cli_value:
            return cli_value
        return config.default_location if config else None

    @classmethod
    def get_vm_size(cls, cli_value: str | None = None, config: AzdiskConfig | None = None) -> str:
        """Get VM size with CLI override."""
        if cli_value:
            return cli_value
        return config.default_vm_size if config else DEFAULT_VM_SIZE

    @classmethod
    def get_trust_store_dir(cls, config: AzdiskConfig | None = None) -> Path:
        """Get the local certificate trust store directory."""
        if config and config.trust_store_dir:
            return Path(config.trust_store_dir).expanduser()
        return cls.DEFAULT_TRUST_STORE_DIR
