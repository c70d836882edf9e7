"""sshd_config parsing and hardening."""
import filecmp
import glob
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from ubuntu_bootstrap.accounts import AdministrativeAccount
from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.errors import BackupError, LockoutError
from ubuntu_bootstrap.keys import read_keys
from ubuntu_bootstrap.utils import log_action, require_root

logger = logging.getLogger(__name__)

HARDENED_DIRECTIVES: Mapping[str, str] = {
    "PermitRootLogin": "no",
    "PasswordAuthentication": "no",
    "ChallengeResponseAuthentication": "no",
    "KbdInteractiveAuthentication": "no",
    "UsePAM": "yes",
}

BACKUP_TIMESTAMP = "%Y-%m-%d-%H:%M:%S"

# A keyword and its value, separated by whitespace or "=":
# "PermitRootLogin yes", "PermitRootLogin=yes", "PermitRootLogin = yes".
_DIRECTIVE = re.compile(r'^([A-Za-z][A-Za-z0-9]*)\s*(?:=\s*|\s+)(\S.*)$')


@dataclass
class ConfigLine:
    raw: str
    directive: Optional[str] = None
    value: Optional[str] = None
    commented: bool = False

    @classmethod
    def parse(cls, raw: str) -> "ConfigLine":
        text = raw.strip()
        commented = text.startswith('#')
        if commented:
            text = text.lstrip('#').strip()
        match = _DIRECTIVE.match(text)
        if not match:
            return cls(raw)
        return cls(raw, match.group(1), match.group(2).strip(), commented)

    def is_directive(self, name: str, commented: bool = False) -> bool:
        return (
            self.directive is not None
            and self.commented == commented
            and self.directive.lower() == name.lower()
        )


class SshdConfig:
    """Line-oriented view of an sshd_config file.

    Only the global section (everything before the first Match block) is
    rewritten. Lines that are not touched are rendered back verbatim.
    """

    def __init__(self, lines: List[ConfigLine]):
        self.lines = lines

    @classmethod
    def parse(cls, text: str) -> "SshdConfig":
        return cls([ConfigLine.parse(raw) for raw in text.splitlines()])

    def render(self) -> str:
        return "\n".join(line.raw for line in self.lines) + "\n"

    def _global_end(self) -> int:
        for index, line in enumerate(self.lines):
            if line.is_directive("Match"):
                return index
        return len(self.lines)

    def _find(self, name: str, commented: bool = False) -> List[int]:
        return [
            index for index, line in enumerate(self.lines[:self._global_end()])
            if line.is_directive(name, commented)
        ]

    def get(self, name: str) -> Optional[str]:
        found = self._find(name)
        return self.lines[found[0]].value if found else None

    def _insert(self, line: ConfigLine) -> None:
        end = self._global_end()
        # Everything after a Match line belongs to that block.
        while end > 0 and end < len(self.lines) and not self.lines[end - 1].raw.strip():
            end -= 1
        self.lines.insert(end, line)

    def set_directive(self, name: str, value: str) -> None:
        """Set name to value exactly once in the global section."""
        line = ConfigLine(f"{name} {value}", name, value)
        active = self._find(name)
        if active:
            self.lines[active[0]] = line
            for index in reversed(active[1:]):
                del self.lines[index]
            return
        commented = self._find(name, commented=True)
        if commented:
            self.lines[commented[0]] = line
            return
        self._insert(line)

    @property
    def allow_users(self) -> List[str]:
        users: List[str] = []
        for index in self._find("AllowUsers"):
            users.extend(self.lines[index].value.split())
        return users

    def allow_user(self, username: str) -> bool:
        """Add username to the login allow-list; return False if already there."""
        if username in self.allow_users:
            return False
        found = self._find("AllowUsers")
        if found:
            current = self.lines[found[0]]
            value = f"{current.value} {username}"
            self.lines[found[0]] = ConfigLine(f"{current.directive} {value}", current.directive, value)
        else:
            self._insert(ConfigLine(f"AllowUsers {username}", "AllowUsers", username))
        return True

    def includes(self) -> List[str]:
        patterns: List[str] = []
        for index in self._find("Include"):
            patterns.extend(self.lines[index].value.split())
        return patterns


@dataclass(frozen=True)
class RemoteLoginConfig:
    path: Path
    backup_path: Path
    directives: Dict[str, str]
    allow_users: Tuple[str, ...]
    restart_command: str


def backup_path_for(path: Path, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP)
    return path.with_name(f"{path.name}.bak.{stamp}")


def backup_config(path: Path, now: Optional[datetime] = None) -> Path:
    """Copy path to a timestamped backup and verify it byte for byte."""
    backup = backup_path_for(path, now)
    if backup.exists():
        raise BackupError(f"Backup {backup} already exists; refusing to overwrite it.")
    try:
        shutil.copy2(path, backup)
        identical = filecmp.cmp(path, backup, shallow=False)
    except OSError as e:
        raise BackupError(f"Could not back up {path}: {e}")
    if not identical:
        raise BackupError(f"Backup {backup} does not match {path}.")
    return backup


def write_config(path: Path, text: str) -> None:
    """Replace path with text atomically, keeping its mode."""
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(text)
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def find_overrides(path: Path, directives: Mapping[str, str] = HARDENED_DIRECTIVES) -> List[Tuple[Path, str, str]]:
    """List Include'd drop-in settings that conflict with directives.

    sshd uses the first value it reads for a keyword, so a drop-in included
    above the rewritten lines silently wins.
    """
    config = SshdConfig.parse(path.read_text())
    conflicts = []
    for pattern in config.includes():
        if not os.path.isabs(pattern):
            pattern = str(path.parent / pattern)
        for included in sorted(glob.glob(pattern)):
            dropin = SshdConfig.parse(Path(included).read_text())
            for name, wanted in directives.items():
                value = dropin.get(name)
                if value is not None and value.lower() != wanted.lower():
                    conflicts.append((Path(included), name, value))
    return conflicts


def harden_remote_login(
    account: AdministrativeAccount,
    settings: Settings = DEFAULT_SETTINGS,
    now: Optional[datetime] = None,
) -> RemoteLoginConfig:
    """Back up sshd_config, enforce key-only login and allow the account.

    The ssh service is not restarted; the returned restart_command has to be
    run by the operator.
    """
    require_root()
    path = settings.sshd_config

    if not read_keys(account.authorized_keys):
        raise LockoutError(
            f"'{account.username}' has no authorized keys; "
            "disabling password login would lock the account out."
        )

    backup = backup_config(path, now)
    log_action(f"Backup of {path.name} created at {backup}")

    config = SshdConfig.parse(path.read_text())
    for name, value in HARDENED_DIRECTIVES.items():
        config.set_directive(name, value)
    if not config.allow_user(account.username):
        logger.debug("%s is already in AllowUsers", account.username)

    log_action(f"Writing hardened {path}...")
    write_config(path, config.render())

    return RemoteLoginConfig(
        path=path,
        backup_path=backup,
        directives={name: config.get(name) for name in HARDENED_DIRECTIVES},
        allow_users=tuple(config.allow_users),
        restart_command=settings.restart_command,
    )
