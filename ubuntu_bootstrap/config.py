"""Static configuration for the bootstrap tool."""
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    sshd_config: Path = Path("/etc/ssh/sshd_config")
    sudoers_dir: Path = Path("/etc/sudoers.d")
    home_root: Path = Path("/home")
    scratch_dir: Path = Path("/tmp")
    key_host: str = "github.com"

    elevation_group: str = "sudo"
    container_group: str = "docker"
    workspace_dir: str = "docker"
    login_shell: str = "/bin/bash"

    posh_install_url: str = "https://ohmyposh.dev/install.sh"
    posh_bin_dir: Path = Path("/usr/local/bin")
    posh_root_themes: Path = Path("/root/.cache/oh-my-posh/themes")
    theme_name: str = "catppuccin"
    font_dir: Path = Path("/usr/local/share/fonts/cascadia")
    font_url: str = "https://github.com/ryanoasis/nerd-fonts/releases/download/v3.2.1/CascadiaCode.zip"

    docker_repo_url: str = "https://download.docker.com/linux/ubuntu"
    apt_keyrings_dir: Path = Path("/etc/apt/keyrings")
    apt_sources_dir: Path = Path("/etc/apt/sources.list.d")
    os_release: Path = Path("/etc/os-release")

    restart_command: str = "sudo systemctl restart ssh"

    @property
    def posh_bin(self) -> Path:
        return self.posh_bin_dir / "oh-my-posh"


DEFAULT_SETTINGS = Settings()
