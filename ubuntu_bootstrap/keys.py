"""Authorize remote public keys for an account."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

import sh

from ubuntu_bootstrap.accounts import AdministrativeAccount
from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.errors import KeyFetchError, ValidationError
from ubuntu_bootstrap.utils import log_action, log_info, require_root, with_retries

SSH_DIR_MODE = 0o700
KEY_FILE_MODE = 0o600

# curl -f exits 22 on an HTTP error response; retrying will not change it.
CURL_HTTP_ERROR = 22


@dataclass(frozen=True)
class KeyStore:
    owner: AdministrativeAccount
    directory: Path
    path: Path
    keys: Tuple[str, ...]
    added: int


def keys_url(identity: str, host: str) -> str:
    return f"https://{host}/{identity}.keys"


def parse_keys(text: str) -> List[str]:
    """Return the key records in authorized_keys-style text, in order."""
    return [
        line.strip() for line in text.splitlines()
        if line.strip() and not line.lstrip().startswith('#')
    ]


def fetch_public_keys(identity: str, host: str = DEFAULT_SETTINGS.key_host) -> List[str]:
    """Fetch the published public keys for identity from host."""
    identity = (identity or "").strip()
    if not identity:
        raise ValidationError("No key source identity entered.")

    url = keys_url(identity, host)

    def fetch() -> str:
        try:
            return str(sh.curl("-fsSL", "--max-time", "10", url))
        except sh.ErrorReturnCode as e:
            if getattr(e, "exit_code", None) == CURL_HTTP_ERROR:
                raise KeyFetchError(f"{url} returned an error response. Please check the username.")
            raise

    log_action(f"Fetching SSH keys from {url}...")
    try:
        keys = parse_keys(with_retries(fetch))
    except sh.ErrorReturnCode as e:
        raise KeyFetchError(f"Failed to fetch {url}: {e.stderr.decode(errors='replace').strip()}")

    if not keys:
        raise KeyFetchError(f"No public keys are published at {url}.")
    return keys


def read_keys(path: Path) -> List[str]:
    if not path.exists():
        return []
    return parse_keys(path.read_text())


def secure_key_store(account: AdministrativeAccount) -> None:
    """Set ownership and modes of the account's .ssh directory and key file."""
    sh.chown("-R", f"{account.username}:{account.username}", str(account.ssh_dir))
    os.chmod(account.ssh_dir, SSH_DIR_MODE)
    os.chmod(account.authorized_keys, KEY_FILE_MODE)


def authorize_keys(
    account: AdministrativeAccount,
    identity: str,
    settings: Settings = DEFAULT_SETTINGS,
) -> KeyStore:
    """Append the identity's published keys to the account's authorized_keys.

    Keys are fetched before the key file is touched, so a failed fetch
    leaves it unchanged. Ownership and modes are reapplied on every run.
    """
    require_root()
    fetched = fetch_public_keys(identity, settings.key_host)
    return install_keys(account, fetched)


def install_keys(account: AdministrativeAccount, keys: List[str]) -> KeyStore:
    """Append keys not yet present to the account's authorized_keys."""
    require_root()
    account.ssh_dir.mkdir(mode=SSH_DIR_MODE, parents=True, exist_ok=True)
    existing = read_keys(account.authorized_keys)
    new_keys = [key for key in dict.fromkeys(keys) if key not in existing]

    if new_keys:
        log_action(f"Adding {len(new_keys)} key(s) to {account.authorized_keys}")
        fd = os.open(account.authorized_keys, os.O_WRONLY | os.O_CREAT | os.O_APPEND, KEY_FILE_MODE)
        with os.fdopen(fd, "a") as f:
            if account.authorized_keys.stat().st_size and not _ends_with_newline(account.authorized_keys):
                f.write("\n")
            f.write("\n".join(new_keys) + "\n")
    else:
        log_info(f"All keys are already authorized for '{account.username}'.")
        account.authorized_keys.touch(mode=KEY_FILE_MODE, exist_ok=True)

    secure_key_store(account)

    return KeyStore(
        owner=account,
        directory=account.ssh_dir,
        path=account.authorized_keys,
        keys=tuple(read_keys(account.authorized_keys)),
        added=len(new_keys),
    )


def _ends_with_newline(path: Path) -> bool:
    with open(path, "rb") as f:
        f.seek(-1, os.SEEK_END)
        return f.read(1) == b"\n"
