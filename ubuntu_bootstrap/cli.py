"""CLI interface for the bootstrap tool."""
import dataclasses
from pathlib import Path
from typing import Callable, Optional

import sh
import typer

from ubuntu_bootstrap import steps, utils
from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.errors import BootstrapError

MENU = (
    "Initial Server Setup (Create Sudo User & Harden SSH)",
    "Install Oh My Posh",
    "Uninstall Oh My Posh",
    "Install Docker",
    "Run System Discovery",
    "Exit",
)
EXIT_CHOICE = str(len(MENU))


def run_operation(operation: Callable[..., object], *args) -> bool:
    """Run one operation, reporting its failure instead of raising.

    Returns True on success. Fatal errors terminate the process.
    """
    try:
        operation(*args)
    except BootstrapError as e:
        utils.log_error(str(e))
        if e.fatal:
            raise typer.Exit(1)
        return False
    except sh.ErrorReturnCode as e:
        stderr = e.stderr.decode(errors="replace").strip()
        utils.log_error(f"'{e.full_cmd}' failed" + (f":\n{stderr}" if stderr else "."))
        return False
    except sh.CommandNotFound as e:
        utils.log_error(f"Command not found: {e}")
        return False
    except OSError as e:
        utils.log_error(str(e))
        return False
    return True


def prompt_text(message: str) -> str:
    return typer.prompt(message, default="", show_default=False)


def confirm_font_removal() -> bool:
    return typer.confirm("Do you want to uninstall the Caskaydia Cove Nerd Font?", default=False)


def initial_setup(settings: Settings) -> None:
    utils.require_root()
    username = prompt_text("Enter the username for the new sudo user")
    identity = prompt_text("Enter the GitHub username to fetch the SSH public key from")
    account, _ = steps.setup_user(username, identity, settings)

    typer.echo("Before hardening, confirm that key-based login works from a NEW terminal:")
    typer.echo(f"  ssh {account.username}@<your_server_ip>")
    if typer.confirm("Disable password login and harden the SSH server now?", default=False):
        steps.harden_ssh(account.username, settings)
    else:
        utils.log_info(f"SSH left unchanged. Run 'ubuntu-bootstrap harden {account.username}' when ready.")


def install_posh_for_invoker(settings: Settings) -> None:
    steps.install_prompt_theme(utils.get_real_user(), utils.get_real_home(), settings)


def uninstall_posh_for_invoker(settings: Settings) -> None:
    steps.uninstall_prompt_theme(utils.get_real_user(), utils.get_real_home(), confirm_font_removal, settings)


def install_docker_for_invoker(settings: Settings) -> None:
    steps.install_docker(utils.get_real_user(), settings)


def discover_host(settings: Settings) -> None:
    steps.run_discovery(settings)


MENU_ACTIONS = {
    "1": initial_setup,
    "2": install_posh_for_invoker,
    "3": uninstall_posh_for_invoker,
    "4": install_docker_for_invoker,
    "5": discover_host,
}


def main_menu(settings: Settings) -> None:
    """Show the menu until Exit is chosen."""
    while True:
        typer.secho("\n--- Ubuntu Bootstrap Script Menu ---", fg=typer.colors.YELLOW)
        typer.echo("Please choose an option:")
        for number, label in enumerate(MENU, 1):
            typer.echo(f"{number}. {label}")
        typer.echo("")
        choice = prompt_text(f"Enter your choice [1-{EXIT_CHOICE}]").strip()

        if choice == EXIT_CHOICE:
            typer.echo("Exiting.")
            raise typer.Exit(0)
        action = MENU_ACTIONS.get(choice)
        if action is None:
            typer.secho("Invalid option. Please try again.", fg=typer.colors.RED)
            continue
        run_operation(action, settings)


def main(
    ctx: typer.Context,
    sshd_config: Path = typer.Option(DEFAULT_SETTINGS.sshd_config, "--sshd-config", envvar="BOOTSTRAP_SSHD_CONFIG", help="sshd configuration file to harden"),
    key_host: str = typer.Option(DEFAULT_SETTINGS.key_host, "--key-host", envvar="BOOTSTRAP_KEY_HOST", help="Host publishing <identity>.keys files"),
    scratch_dir: Path = typer.Option(DEFAULT_SETTINGS.scratch_dir, "--scratch-dir", envvar="BOOTSTRAP_SCRATCH_DIR", help="Directory for discovery reports"),
    skip_discovery: bool = typer.Option(False, "--skip-discovery", help="Do not run system discovery before the menu"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Provisioning tool for a fresh Ubuntu server: sudo user, SSH hardening, tooling."""
    utils.setup_logging(verbose)
    settings = dataclasses.replace(
        DEFAULT_SETTINGS, sshd_config=sshd_config, key_host=key_host, scratch_dir=scratch_dir,
    )
    ctx.obj = settings

    if ctx.invoked_subcommand is not None:
        return

    if not skip_discovery:
        run_operation(steps.run_discovery, settings)
        typer.secho("\nSystem discovery complete. Proceeding to main menu...", fg=typer.colors.CYAN)
    main_menu(settings)


app = typer.Typer(
    name="ubuntu-bootstrap",
    help="A menu-driven server provisioning tool.",
    add_completion=False,
    invoke_without_command=True,
    callback=main,
)


def finish(ok: bool) -> None:
    if not ok:
        raise typer.Exit(1)


@app.command("setup-user")
def setup_user(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="Name of the sudo user to create"),
    keys_from: str = typer.Option(..., "--keys-from", help="Identity whose published keys are authorized"),
):
    """Create a sudo user and authorize its SSH keys."""
    finish(run_operation(steps.setup_user, username, keys_from, ctx.obj))


@app.command("harden")
def harden(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="Existing user to allow through sshd"),
):
    """Harden sshd_config and allow USERNAME to log in."""
    finish(run_operation(steps.harden_ssh, username, ctx.obj))


@app.command("install-posh")
def install_posh(ctx: typer.Context):
    """Install Oh My Posh for the invoking user."""
    finish(run_operation(install_posh_for_invoker, ctx.obj))


@app.command("uninstall-posh")
def uninstall_posh(
    ctx: typer.Context,
    remove_font: Optional[bool] = typer.Option(None, "--remove-font/--keep-font", help="Remove the Nerd Font without asking"),
):
    """Uninstall Oh My Posh for the invoking user."""
    confirm = confirm_font_removal if remove_font is None else (lambda: remove_font)
    finish(run_operation(
        steps.uninstall_prompt_theme, utils.get_real_user(), utils.get_real_home(), confirm, ctx.obj,
    ))


@app.command("install-docker")
def install_docker(ctx: typer.Context):
    """Install Docker Engine and add the invoking user to the docker group."""
    finish(run_operation(install_docker_for_invoker, ctx.obj))


@app.command("discover")
def discover(ctx: typer.Context):
    """Write a system discovery report."""
    finish(run_operation(steps.run_discovery, ctx.obj))


if __name__ == "__main__":
    app()
