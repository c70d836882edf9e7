"""Utility functions for the bootstrap tool."""
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, Tuple, Type, TypeVar

import sh
import typer

from ubuntu_bootstrap.errors import PrivilegeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_ATTEMPTS = 3
NETWORK_BACKOFF = 1.0


def command_exists(command: str) -> bool:
    """Check if a command exists in the system PATH."""
    return shutil.which(command) is not None


def is_root() -> bool:
    """Check if the script is running as root."""
    return os.geteuid() == 0


def require_root() -> None:
    """Abort the current operation unless running as root."""
    if not is_root():
        raise PrivilegeError("This operation requires root privileges. Please run with sudo.")


def get_real_user() -> str:
    """Get the real username (handles sudo)."""
    return os.environ.get('SUDO_USER', os.environ.get('USER', ''))


def get_real_home() -> Path:
    """Get the real user's home directory (handles sudo)."""
    sudo_user = os.environ.get('SUDO_USER')
    if sudo_user:
        return Path(os.path.expanduser(f'~{sudo_user}'))
    return Path(os.environ.get('HOME', ''))


def with_retries(
    func: Callable[[], T],
    attempts: int = NETWORK_ATTEMPTS,
    backoff: float = NETWORK_BACKOFF,
    exceptions: Tuple[Type[BaseException], ...] = (sh.ErrorReturnCode,),
) -> T:
    """Call func, retrying transient failures with exponential backoff.

    The last exception is re-raised once all attempts are used up.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except exceptions as e:
            if attempt == attempts:
                raise
            delay = backoff * 2 ** (attempt - 1)
            logger.debug("Attempt %d/%d failed (%s), retrying in %.1fs", attempt, attempts, e, delay)
            time.sleep(delay)
    raise ValueError("attempts must be at least 1")


def log_info(message: str) -> None:
    """Log an informational message."""
    print(f"[INFO] {message}")


def log_action(message: str) -> None:
    """Log an action being performed."""
    print(f"  -> {message}")


def log_step(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)


def log_success(message: str) -> None:
    typer.secho(f"✅ {message}", fg=typer.colors.GREEN)


def log_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def log_error(message: str) -> None:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )
