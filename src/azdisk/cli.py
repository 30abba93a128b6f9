"""Command-line interface for azdisk.

Commands:
    azdisk provision   Create a VM with data disks, or add disks to an existing VM
    azdisk images      Inspect the image catalog
    azdisk config      View and change persistent defaults
"""

import logging
import sys

import click

from azdisk import __version__
from azdisk.azure_provider import AzureCLIProvider, ProvisioningError
from azdisk.cert_handler import CertificateError, TrustStore
from azdisk.click_group import AzdiskGroup
from azdisk.commands.config import config_group
from azdisk.commands.images import images_group
from azdisk.config_manager import ConfigError, ConfigManager
from azdisk.credentials import prompt_credentials
from azdisk.modules.prerequisites import PrerequisiteChecker, PrerequisiteError
from azdisk.orchestrator import DiskProvisioner, ProvisionRequest
from azdisk.remote_exec import RemoteExecError, RunCommandExecutor

logger = logging.getLogger(__name__)


def ensure_prerequisites() -> None:
    """Fail fast when the Azure CLI is missing or signed out.

    Raises:
        PrerequisiteError: With installation/sign-in guidance
    """
    result = PrerequisiteChecker.check_all()
    if not result.all_available:
        raise PrerequisiteError(PrerequisiteChecker.format_missing_message(result))


@click.group(
    cls=AzdiskGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output")
@click.pass_context
@click.version_option(version=__version__)
def main(ctx: click.Context, verbose: bool) -> None:
    """azdisk - Azure VM data disk provisioning.

    Creates a Windows VM with data disks, or adds data disks to an existing
    VM, then initializes and formats the new disks inside the guest.

    \b
    EXAMPLES:
        # Create VM 'data01' in new resource group 'svc' with 4 x 128GB disks
        $ azdisk provision --service-name svc --vm-name data01 \\
              --location westus2 --disk-size-gb 128 --number-of-disks 4

        # Add two more disks to the same VM
        $ azdisk provision --service-name svc --vm-name data01 \\
              --disk-size-gb 128 --number-of-disks 2

    \b
    CONFIGURATION:
        Config file: ~/.azdisk/config.toml
        Set defaults with: azdisk config set KEY VALUE
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


@main.command(name="provision")
@click.option("--service-name", required=True, help="Resource group hosting the VM")
@click.option("--vm-name", required=True, help="Name of the VM to create or extend")
@click.option("--location", help="Azure region (required if the resource group is new)")
@click.option(
    "--disk-size-gb", required=True, type=click.IntRange(min=1), help="Size of each new disk"
)
@click.option(
    "--number-of-disks", required=True, type=click.IntRange(min=1), help="Number of disks to add"
)
@click.option("--vm-size", help="VM size for a new VM (default from config)")
@click.option("--image-filter", help="Image family glob (default from config)")
@click.option("--admin-username", help="Administrator username for a new VM")
@click.option("--config", help="Config file path", type=click.Path())
def provision(
    service_name: str,
    vm_name: str,
    location: str | None,
    disk_size_gb: int,
    number_of_disks: int,
    vm_size: str | None,
    image_filter: str | None,
    admin_username: str | None,
    config: str | None,
) -> None:
    """Create a VM with data disks, or add data disks to an existing VM.

    New disks are attached after the highest LUN already in use. Every raw
    disk on the VM is then initialized (GPT), given a drive letter and
    formatted NTFS.

    Administrator credentials are only asked for when the VM is created;
    set AZDISK_ADMIN_USERNAME and AZDISK_ADMIN_PASSWORD to skip the prompt.
    """
    try:
        azdisk_config = ConfigManager.load_config(config)
        if image_filter:
            azdisk_config.image_family_filter = image_filter

        ensure_prerequisites()

        provider = AzureCLIProvider(
            image_publisher=azdisk_config.image_publisher,
            image_offer=azdisk_config.image_offer,
        )
        subscription = provider.get_subscription()
        click.echo(f"Subscription: {subscription.get('name')} ({subscription.get('id')})")

        provisioner = DiskProvisioner(
            provider=provider,
            credential_supplier=prompt_credentials(
                admin_username or azdisk_config.admin_username
            ),
            trust_store=TrustStore(ConfigManager.get_trust_store_dir(azdisk_config)),
            remote_executor=RunCommandExecutor(),
            config=azdisk_config,
            progress_callback=click.echo,
        )

        request = ProvisionRequest(
            service_name=service_name,
            vm_name=vm_name,
            disk_size_gb=disk_size_gb,
            number_of_disks=number_of_disks,
            location=ConfigManager.get_location(location, azdisk_config),
            vm_size=ConfigManager.get_vm_size(vm_size, azdisk_config),
        )
        result = provisioner.run(request)

        click.echo(result.get_summary())
        if result.remote_uri:
            click.echo(f"Remote management endpoint: {result.remote_uri}")

        remote = result.remote_result
        if remote is None or not remote.success:
            error = remote.error if remote else "no result"
            click.echo(f"Error: Disks attached but formatting failed: {error}", err=True)
            sys.exit(1)

        if remote.output:
            click.echo(remote.output)
        click.echo("Done!")

    except KeyboardInterrupt:
        click.echo("\nCancelled by user.", err=True)
        sys.exit(130)
    except PrerequisiteError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except (ProvisioningError, RemoteExecError, CertificateError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


main.add_command(images_group)
main.add_command(config_group)


if __name__ == "__main__":
    main()
