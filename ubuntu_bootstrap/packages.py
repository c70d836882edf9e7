"""apt package manager primitives."""
import os

import sh

from ubuntu_bootstrap.utils import log_action, log_info, with_retries


def apt_get(*args: str) -> None:
    env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
    sh.Command("apt-get")(*args, _env=env)


def apt_update() -> None:
    """Refresh package metadata."""
    log_action("Updating package lists...")
    with_retries(lambda: apt_get("update", "-qq"))


def apt_install(*packages: str) -> None:
    """Install the packages that are not installed yet."""
    missing = [package for package in packages if not is_installed(package)]
    if not missing:
        log_info(f"{' '.join(packages)} already installed.")
        return
    log_action(f"Installing {' '.join(missing)}...")
    with_retries(lambda: apt_get("install", "-y", "-qq", *missing))


def is_installed(package: str) -> bool:
    """Check whether dpkg reports package as installed."""
    try:
        status = str(sh.Command("dpkg-query")("-W", "-f=${Status}", package))
    except (sh.ErrorReturnCode, sh.CommandNotFound):
        return False
    return status.strip() == "install ok installed"
