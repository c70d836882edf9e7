"""Docker Engine installation from Docker's apt repository."""
from pathlib import Path
from typing import Dict

import sh

from ubuntu_bootstrap import packages
from ubuntu_bootstrap.accounts import ensure_group
from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.utils import log_action, require_root, with_retries

PREREQUISITES = ("ca-certificates", "curl", "gnupg")
DOCKER_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
)


def read_os_release(path: Path) -> Dict[str, str]:
    values = {}
    for line in path.read_text().splitlines():
        if "=" not in line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"\'')
    return values


def repository_line(arch: str, codename: str, keyring: Path, settings: Settings = DEFAULT_SETTINGS) -> str:
    return f"deb [arch={arch} signed-by={keyring}] {settings.docker_repo_url} {codename} stable\n"


def setup_repository(settings: Settings = DEFAULT_SETTINGS) -> Path:
    """Add Docker's signing key and apt source; returns the source file."""
    settings.apt_keyrings_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
    keyring = settings.apt_keyrings_dir / "docker.gpg"

    log_action("Adding Docker's GPG key...")
    key = with_retries(lambda: sh.curl("-fsSL", f"{settings.docker_repo_url}/gpg", _return_cmd=True).stdout)
    sh.gpg("--dearmor", "--yes", "-o", str(keyring), _in=key)
    keyring.chmod(0o644)

    arch = str(sh.dpkg("--print-architecture")).strip()
    codename = read_os_release(settings.os_release).get("VERSION_CODENAME", "")
    source = settings.apt_sources_dir / "docker.list"
    log_action(f"Writing {source}...")
    source.write_text(repository_line(arch, codename, keyring, settings))
    return source


def install_container_runtime(user: str, settings: Settings = DEFAULT_SETTINGS) -> None:
    """Install Docker Engine and let user run it without sudo."""
    require_root()

    packages.apt_update()
    packages.apt_install(*PREREQUISITES)
    setup_repository(settings)
    packages.apt_update()
    packages.apt_install(*DOCKER_PACKAGES)

    ensure_group(settings.container_group)
    if user and user != "root":
        log_action(f"Adding user '{user}' to the '{settings.container_group}' group...")
        sh.usermod("-aG", settings.container_group, user)
