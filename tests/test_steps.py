"""Tests for the provisioning operations behind each menu entry."""
from pathlib import Path
from unittest.mock import patch, MagicMock, call

import pytest
import sh

from ubuntu_bootstrap.accounts import AdministrativeAccount
from ubuntu_bootstrap.config import Settings
from ubuntu_bootstrap.errors import AccountExistsError, KeyFetchError, PrivilegeError, ValidationError
from ubuntu_bootstrap.steps import harden_ssh, install_docker, run_discovery, setup_user

ACCOUNT = AdministrativeAccount("alice", Path("/home/alice"), frozenset({"sudo", "docker"}))
KEYS = ["ssh-ed25519 AAAAC3Nza alice@laptop", "ssh-rsa AAAAB3Nza alice@desktop"]


@pytest.mark.usefixtures("as_root")
@patch('ubuntu_bootstrap.steps.account_exists', return_value=False)
class TestSetupUser:
    """Tests for creating the sudo user and authorizing keys."""

    @patch('ubuntu_bootstrap.steps.install_keys')
    @patch('ubuntu_bootstrap.steps.grant_elevation')
    @patch('ubuntu_bootstrap.steps.create_account')
    @patch('ubuntu_bootstrap.steps.fetch_public_keys', return_value=KEYS)
    def test_setup_user(self, mock_fetch, mock_create, mock_grant, mock_install, mock_exists):
        """Test keys are fetched first, then the account is created, granted sudo and given keys."""
        settings = Settings()
        mock_create.return_value = ACCOUNT
        mock_install.return_value = MagicMock(keys=tuple(KEYS), path=ACCOUNT.authorized_keys)
        manager = MagicMock()
        manager.attach_mock(mock_fetch, "fetch")
        manager.attach_mock(mock_create, "create")
        manager.attach_mock(mock_grant, "grant")
        manager.attach_mock(mock_install, "install")

        account, store = setup_user("alice", "alice-gh", settings)

        assert account.elevation_grant is True
        assert [c[0] for c in manager.mock_calls] == ["fetch", "create", "grant", "install"]
        mock_fetch.assert_called_once_with("alice-gh", "github.com")
        mock_create.assert_called_once_with("alice", settings)
        mock_install.assert_called_once_with(account, KEYS)

    @patch('ubuntu_bootstrap.steps.create_account')
    def test_empty_username(self, mock_create, mock_exists):
        with pytest.raises(ValidationError):
            setup_user("", "alice-gh")

        mock_create.assert_not_called()

    @patch('ubuntu_bootstrap.steps.create_account')
    def test_empty_key_identity_checked_before_account_creation(self, mock_create, mock_exists):
        with pytest.raises(ValidationError, match="key source"):
            setup_user("alice", "")

        mock_create.assert_not_called()

    @patch('ubuntu_bootstrap.steps.fetch_public_keys')
    @patch('ubuntu_bootstrap.steps.create_account')
    def test_existing_account_refused_before_fetch(self, mock_create, mock_fetch, mock_exists):
        mock_exists.return_value = True

        with pytest.raises(AccountExistsError):
            setup_user("bob", "bob-gh")

        mock_fetch.assert_not_called()
        mock_create.assert_not_called()

    @patch('ubuntu_bootstrap.accounts.sh.useradd', create=True)
    @patch('ubuntu_bootstrap.keys.sh.curl', create=True)
    def test_key_fetch_failure_creates_no_account(self, mock_curl, mock_useradd, mock_exists):
        """Test a mistyped key identity leaves no half-made account behind."""
        mock_curl.side_effect = sh.ErrorReturnCode_22("curl", b"", b"404 Not Found")

        with pytest.raises(KeyFetchError):
            setup_user("alice", "alice-typo")

        mock_useradd.assert_not_called()

    @patch('ubuntu_bootstrap.steps.install_keys')
    @patch('ubuntu_bootstrap.steps.grant_elevation')
    @patch('ubuntu_bootstrap.steps.create_account', return_value=ACCOUNT)
    @patch('ubuntu_bootstrap.steps.fetch_public_keys', return_value=KEYS)
    def test_operator_told_account_has_no_password(self, mock_fetch, mock_create, mock_grant, mock_install, mock_exists, capsys):
        mock_install.return_value = MagicMock(keys=tuple(KEYS), path=ACCOUNT.authorized_keys)

        setup_user("alice", "alice-gh")

        out = capsys.readouterr().out
        assert "has no password" in out
        assert "sudo passwd alice" in out

    @patch('ubuntu_bootstrap.steps.create_account')
    def test_requires_root(self, mock_create, mock_exists):
        with patch('ubuntu_bootstrap.utils.is_root', return_value=False):
            with pytest.raises(PrivilegeError):
                setup_user("alice", "alice-gh")

        mock_create.assert_not_called()


@pytest.mark.usefixtures("as_root")
class TestHardenSsh:
    """Tests for the standalone hardening operation."""

    @patch('ubuntu_bootstrap.steps.find_overrides')
    @patch('ubuntu_bootstrap.steps.harden_remote_login')
    @patch('ubuntu_bootstrap.steps.lookup_account', return_value=ACCOUNT)
    def test_harden_reports_restart_command(self, mock_lookup, mock_harden, mock_overrides, capsys):
        """Test the operator is told how to apply the change."""
        mock_harden.return_value = MagicMock(path=Path("/etc/ssh/sshd_config"), restart_command="sudo systemctl restart ssh")
        mock_overrides.return_value = [
            (Path("/etc/ssh/sshd_config.d/50-cloud-init.conf"), "PasswordAuthentication", "yes"),
        ]

        harden_ssh("alice")

        out = capsys.readouterr().out
        assert "sudo systemctl restart ssh" in out
        assert "50-cloud-init.conf" in out
        assert "ssh alice@" in out
        mock_harden.assert_called_once()


@patch('ubuntu_bootstrap.steps.docker.install_container_runtime')
def test_install_docker(mock_install, capsys):
    settings = Settings()

    install_docker("alice", settings)

    mock_install.assert_called_once_with("alice", settings)
    assert "log out" in capsys.readouterr().out


@patch('ubuntu_bootstrap.steps.discovery.run_discovery', return_value=Path("/tmp/report.log"))
def test_run_discovery(mock_discovery, capsys):
    assert run_discovery() == Path("/tmp/report.log")
    assert "/tmp/report.log" in capsys.readouterr().out
