"""Provisioning operations, one per menu entry."""
import dataclasses
from pathlib import Path
from typing import Callable, Tuple

from ubuntu_bootstrap import discovery, docker, posh
from ubuntu_bootstrap.accounts import (
    AdministrativeAccount, account_exists, create_account, grant_elevation, lookup_account, validate_username,
)
from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.errors import AccountExistsError
from ubuntu_bootstrap.keys import KeyStore, fetch_public_keys, install_keys
from ubuntu_bootstrap.sshd import RemoteLoginConfig, find_overrides, harden_remote_login
from ubuntu_bootstrap.utils import log_info, log_step, log_success, log_warning, require_root


def setup_user(username: str, key_identity: str, settings: Settings = DEFAULT_SETTINGS) -> Tuple[AdministrativeAccount, KeyStore]:
    """Create the sudo user and authorize the identity's public keys.

    Keys are fetched before the account exists, so a bad identity leaves
    nothing behind to clean up.
    """
    require_root()
    username = validate_username(username)
    if account_exists(username):
        raise AccountExistsError(f"User '{username}' already exists.")

    log_step(f"[1/4] Fetching SSH keys for '{key_identity}'...")
    keys = fetch_public_keys(key_identity, settings.key_host)
    log_success(f"{len(keys)} key(s) found.")

    log_step("[2/4] Creating user and adding to groups...")
    account = create_account(username, settings)
    log_success(f"User created and added to {', '.join(sorted(account.groups))}.")
    log_warning(
        f"'{username}' has no password: console and password login are disabled. "
        "Log in with an authorized SSH key, or set a password with 'sudo passwd "
        f"{username}' to keep a console recovery path."
    )

    log_step("[3/4] Configuring passwordless sudo...")
    grant_elevation(account, settings)
    account = dataclasses.replace(account, elevation_grant=True)
    log_success("Passwordless sudo configured.")

    log_step("[4/4] Authorizing SSH keys...")
    store = install_keys(account, keys)
    log_success(f"{len(store.keys)} key(s) authorized in {store.path}.")
    return account, store


def harden_ssh(username: str, settings: Settings = DEFAULT_SETTINGS) -> RemoteLoginConfig:
    """Harden sshd for an existing account and print the follow-up."""
    require_root()
    account = lookup_account(username, settings)

    log_step("Hardening SSH server configuration...")
    result = harden_remote_login(account, settings)
    log_success("SSH server hardened.")

    for path, name, value in find_overrides(result.path):
        log_warning(f"WARNING: {path} sets '{name} {value}', which takes precedence over {result.path}.")

    log_warning(f"IMPORTANT: Please restart the SSH service to apply changes: {result.restart_command}")
    log_info(f"Then, test login in a NEW terminal: ssh {account.username}@<your_server_ip>")
    return result


def install_prompt_theme(user: str, home: Path, settings: Settings = DEFAULT_SETTINGS) -> None:
    log_step("--- Starting Oh My Posh Installation ---")
    posh.install_prompt_theme(user, home, settings)
    log_success("Oh My Posh installation complete!")
    log_info("Please restart your terminal or run 'source ~/.bashrc'.")
    log_info("Don't forget to set 'CaskaydiaCove Nerd Font' in your terminal's settings.")


def uninstall_prompt_theme(
    user: str,
    home: Path,
    confirm_font_removal: Callable[[], bool],
    settings: Settings = DEFAULT_SETTINGS,
) -> None:
    log_step("--- Starting Oh My Posh Uninstallation ---")
    posh.uninstall_prompt_theme(user, home, confirm_font_removal, settings)
    log_success("Oh My Posh uninstallation complete!")
    log_info("Please restart your terminal or run 'source ~/.bashrc'.")


def install_docker(user: str, settings: Settings = DEFAULT_SETTINGS) -> None:
    log_step("--- Starting Docker Installation ---")
    docker.install_container_runtime(user, settings)
    log_success("Docker installation complete!")
    log_warning("IMPORTANT: You must log out and log back in for the group changes to take effect.")
    log_info("After logging back in, you can run 'docker run hello-world' to test the installation.")


def run_discovery(settings: Settings = DEFAULT_SETTINGS) -> Path:
    log_step("--- Running System Discovery ---")
    path = discovery.run_discovery(settings)
    log_success(f"System discovery report saved to {path}")
    return path
