"""Oh My Posh prompt theme engine installation."""
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable

import sh

from ubuntu_bootstrap import packages, shellrc
from ubuntu_bootstrap.config import DEFAULT_SETTINGS, Settings
from ubuntu_bootstrap.utils import log_action, log_info, require_root, with_retries

logger = logging.getLogger(__name__)

DEPENDENCIES = ("curl", "wget", "unzip", "fontconfig")
INIT_MARKER = "oh-my-posh init"
INIT_HEADER = "# Initialize Oh My Posh"


def user_theme_dir(home: Path) -> Path:
    return home / ".cache" / "oh-my-posh"


def init_command(theme_path: Path) -> str:
    return f"eval \"$(oh-my-posh init bash --config '{theme_path}')\""


def install_binary(settings: Settings = DEFAULT_SETTINGS) -> None:
    log_action("Installing Oh My Posh...")
    script = with_retries(lambda: str(sh.curl("-fsSL", settings.posh_install_url)))
    sh.bash("-s", "--", "-d", str(settings.posh_bin_dir), _in=script)


def copy_themes(user: str, home: Path, settings: Settings = DEFAULT_SETTINGS) -> None:
    """Copy the themes fetched by the installer into the user's cache."""
    if not settings.posh_root_themes.is_dir():
        log_info(f"No themes found in {settings.posh_root_themes}, skipping.")
        return
    log_action("Copying themes...")
    themes = user_theme_dir(home) / "themes"
    themes.mkdir(parents=True, exist_ok=True)
    for theme in settings.posh_root_themes.glob("*.omp.json"):
        shutil.copy(theme, themes / theme.name)
    sh.chown("-R", f"{user}:{user}", str(home / ".cache"))


def install_font(settings: Settings = DEFAULT_SETTINGS) -> None:
    if settings.font_dir.is_dir():
        log_info("Caskaydia Cove Nerd Font is already installed.")
        return
    log_action("Installing Caskaydia Cove Nerd Font...")
    # Extracted aside and moved into place, so font_dir only exists once complete.
    with tempfile.TemporaryDirectory() as tmp:
        archive = Path(tmp) / "CascadiaCode.zip"
        staging = Path(tmp) / "fonts"
        staging.mkdir()
        with_retries(lambda: sh.curl("-fsSL", "-o", str(archive), settings.font_url))
        sh.unzip("-q", "-o", str(archive), "-d", str(staging))
        settings.font_dir.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(staging), str(settings.font_dir))
    sh.Command("fc-cache")("-f")


def install_prompt_theme(user: str, home: Path, settings: Settings = DEFAULT_SETTINGS) -> Path:
    """Install Oh My Posh for user and hook it into their .bashrc.

    Returns the path of the edited .bashrc.
    """
    require_root()
    packages.apt_update()
    packages.apt_install(*DEPENDENCIES)

    install_binary(settings)
    copy_themes(user, home, settings)
    install_font(settings)

    log_action("Configuring .bashrc...")
    bashrc = home / ".bashrc"
    theme_path = user_theme_dir(home) / "themes" / f"{settings.theme_name}.omp.json"
    if shellrc.ensure_line(bashrc, INIT_MARKER, init_command(theme_path), INIT_HEADER):
        sh.chown(f"{user}:{user}", str(bashrc))
    return bashrc


def uninstall_prompt_theme(
    user: str,
    home: Path,
    confirm_font_removal: Callable[[], bool],
    settings: Settings = DEFAULT_SETTINGS,
) -> None:
    """Remove Oh My Posh; anything already gone is skipped."""
    require_root()

    removed = shellrc.remove_lines(home / ".bashrc", INIT_MARKER, INIT_HEADER)
    logger.debug("Removed %d line(s) from .bashrc", removed)

    if settings.posh_bin.exists():
        log_action(f"Removing {settings.posh_bin}...")
        settings.posh_bin.unlink()

    themes = user_theme_dir(home)
    if themes.exists():
        log_action(f"Removing {themes}...")
        shutil.rmtree(themes)

    if settings.font_dir.is_dir() and confirm_font_removal():
        log_action("Removing Caskaydia Cove Nerd Font...")
        shutil.rmtree(settings.font_dir)
        sh.Command("fc-cache")("-f")
