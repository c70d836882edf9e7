"""System discovery report."""
import getpass
import platform
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import sh

from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.utils import get_real_home

REPORT_TIMESTAMP = "%Y%m%d_%H%M%S"


def run_command(*args: str) -> str:
    """Return a command's output, or a note saying why it is unavailable."""
    try:
        return str(sh.Command(args[0])(*args[1:])).rstrip("\n")
    except sh.CommandNotFound:
        return f"({args[0]} unavailable: command not found)"
    except sh.ErrorReturnCode as e:
        return f"({' '.join(args)} failed: {e.stderr.decode(errors='replace').strip()})"


def read_file(path: Path) -> str:
    try:
        return path.read_text().rstrip("\n")
    except OSError as e:
        return f"({path} unavailable: {e.strerror})"


def sections(settings: Settings) -> List[Tuple[str, Callable[[], str]]]:
    return [
        ("OS Information", lambda: run_command("uname", "-a") + "\n" + read_file(settings.os_release)),
        ("Kernel Version", lambda: run_command("uname", "-r")),
        ("Block Devices", lambda: run_command("lsblk", "-f")),
        ("Mounted File Systems", lambda: run_command("df", "-hT")),
        ("User", lambda: f"User: {getpass.getuser()}\nHome: {get_real_home()}"),
    ]


def build_report(settings: Settings = DEFAULT_SETTINGS, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    parts = [
        f"===== SYSTEM DISCOVERY REPORT ({platform.system().upper()}) =====",
        f"Timestamp: {now.strftime('%a %b %d %H:%M:%S %Y')}",
    ]
    for title, collect in sections(settings):
        parts.append(f"\n=== {title} ===")
        parts.append(collect())
    return "\n".join(parts) + "\n"


def run_discovery(settings: Settings = DEFAULT_SETTINGS, now: Optional[datetime] = None) -> Path:
    """Write a discovery report under the scratch directory and echo it."""
    now = now or datetime.now()
    report = build_report(settings, now)
    name = f"system_discovery_{platform.system().lower()}_{now.strftime(REPORT_TIMESTAMP)}.log"
    path = settings.scratch_dir / name
    settings.scratch_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(report)
    print(report)
    return path
