"""Administrative account provisioning."""
import os
import pwd
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet

import sh

from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.errors import AccountExistsError, ValidationError
from ubuntu_bootstrap.utils import command_exists, log_action, require_root

USERNAME_PATTERN = re.compile(r'^[a-z_][a-z0-9_-]*[$]?$')
USERNAME_MAX_LENGTH = 32


@dataclass(frozen=True)
class AdministrativeAccount:
    username: str
    home: Path
    groups: FrozenSet[str] = field(default_factory=frozenset)
    elevation_grant: bool = False

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"

    @property
    def authorized_keys(self) -> Path:
        return self.ssh_dir / "authorized_keys"


def validate_username(username: str) -> str:
    """Return the stripped username, or raise ValidationError."""
    username = (username or "").strip()
    if not username:
        raise ValidationError("No username entered.")
    if len(username) > USERNAME_MAX_LENGTH or not USERNAME_PATTERN.match(username):
        raise ValidationError(f"'{username}' is not a valid username.")
    return username


def account_exists(username: str) -> bool:
    try:
        pwd.getpwnam(username)
    except KeyError:
        return False
    return True


def ensure_group(name: str) -> None:
    """Create a system group; an existing group is left alone."""
    sh.groupadd("--force", name)


def lookup_account(username: str, settings: Settings = DEFAULT_SETTINGS) -> AdministrativeAccount:
    """Build the account model for a user that already exists."""
    username = validate_username(username)
    try:
        entry = pwd.getpwnam(username)
    except KeyError:
        raise ValidationError(f"User '{username}' does not exist.")
    grant = settings.sudoers_dir / grant_filename(username)
    return AdministrativeAccount(
        username=username,
        home=Path(entry.pw_dir),
        groups=frozenset(str(sh.id("-nG", username)).split()),
        elevation_grant=grant.exists(),
    )


def create_account(username: str, settings: Settings = DEFAULT_SETTINGS) -> AdministrativeAccount:
    """Create the administrative account with its groups and home skeleton.

    Steps run strictly in order and a failure leaves earlier steps applied;
    nothing is rolled back.
    """
    require_root()
    username = validate_username(username)
    if account_exists(username):
        raise AccountExistsError(f"User '{username}' already exists.")

    home = settings.home_root / username
    groups = (settings.elevation_group, settings.container_group)

    log_action(f"Creating user '{username}'...")
    sh.useradd("--create-home", "--home-dir", str(home), "--shell", settings.login_shell, username)

    log_action(f"Adding '{username}' to groups: {', '.join(groups)}")
    ensure_group(settings.container_group)
    sh.usermod("-aG", ",".join(groups), username)

    account = AdministrativeAccount(username=username, home=home, groups=frozenset(groups))

    log_action("Setting up user directories...")
    workspace = home / settings.workspace_dir
    account.ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    workspace.mkdir(parents=True, exist_ok=True)
    account.authorized_keys.touch(mode=0o600, exist_ok=True)
    sh.chown("-R", f"{username}:{username}", str(account.ssh_dir), str(workspace))

    return account


def grant_filename(username: str) -> str:
    return f"01-{username}-nopasswd"


def grant_elevation(account: AdministrativeAccount, settings: Settings = DEFAULT_SETTINGS) -> Path:
    """Grant the account passwordless sudo through a dedicated sudoers file."""
    require_root()
    grant = settings.sudoers_dir / grant_filename(account.username)

    log_action(f"Writing sudoers grant {grant}...")
    # Created 0440 from the start so the grant is never group/world writable.
    fd = os.open(grant, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o440)
    with os.fdopen(fd, "w") as f:
        f.write(f"{account.username} ALL=(ALL) NOPASSWD:ALL\n")
    os.chmod(grant, 0o440)

    if command_exists("visudo"):
        try:
            sh.visudo("-cf", str(grant))
        except sh.ErrorReturnCode as e:
            grant.unlink()
            raise ValidationError(f"sudoers grant failed validation: {e.stderr.decode(errors='replace').strip()}")

    return grant
