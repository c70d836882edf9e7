"""Tests for administrative account provisioning."""
import stat
from pathlib import Path
from unittest.mock import patch, MagicMock, call

import pytest
import sh

from ubuntu_bootstrap.accounts import (
    AdministrativeAccount, account_exists, create_account, ensure_group,
    grant_elevation, lookup_account, validate_username,
)
from ubuntu_bootstrap.config import Settings
from ubuntu_bootstrap.errors import AccountExistsError, PrivilegeError, ValidationError


class TestValidateUsername:
    """Tests for username validation."""

    def test_strips_whitespace(self):
        assert validate_username("  alice ") == "alice"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_username_rejected(self, name):
        """Test empty input raises ValidationError."""
        with pytest.raises(ValidationError, match="No username"):
            validate_username(name)

    @pytest.mark.parametrize("name", ["Bob", "9lives", "al ice", "root;rm", "a" * 33])
    def test_invalid_username_rejected(self, name):
        """Test names useradd would refuse are rejected up front."""
        with pytest.raises(ValidationError, match="not a valid username"):
            validate_username(name)


class TestAccountExists:
    """Tests for account lookup."""

    @patch('ubuntu_bootstrap.accounts.pwd.getpwnam')
    def test_existing_account(self, mock_getpwnam):
        mock_getpwnam.return_value = MagicMock()
        assert account_exists("bob") is True

    @patch('ubuntu_bootstrap.accounts.pwd.getpwnam', side_effect=KeyError("bob"))
    def test_missing_account(self, mock_getpwnam):
        assert account_exists("bob") is False


class TestEnsureGroup:
    """Tests for idempotent group creation."""

    @patch('ubuntu_bootstrap.accounts.sh.groupadd', create=True)
    def test_group_creation_is_forced(self, mock_groupadd):
        """Test creating the group twice never errors."""
        ensure_group("docker")
        ensure_group("docker")

        assert mock_groupadd.call_args_list == [call("--force", "docker"), call("--force", "docker")]


class TestCreateAccount:
    """Tests for creating the administrative account."""

    @pytest.fixture
    def commands(self):
        with patch('ubuntu_bootstrap.accounts.sh.useradd', create=True) as useradd, \
                patch('ubuntu_bootstrap.accounts.sh.usermod', create=True) as usermod, \
                patch('ubuntu_bootstrap.accounts.sh.groupadd', create=True) as groupadd, \
                patch('ubuntu_bootstrap.accounts.sh.chown', create=True) as chown:
            yield MagicMock(useradd=useradd, usermod=usermod, groupadd=groupadd, chown=chown)

    @patch('ubuntu_bootstrap.accounts.account_exists', return_value=False)
    def test_create_account(self, mock_exists, as_root, commands, tmp_path):
        """Test the account is created with groups and home skeleton."""
        settings = Settings(home_root=tmp_path)

        account = create_account("alice", settings)

        home = tmp_path / "alice"
        assert account == AdministrativeAccount(
            username="alice", home=home, groups=frozenset({"sudo", "docker"}),
        )
        commands.useradd.assert_called_once_with(
            "--create-home", "--home-dir", str(home), "--shell", "/bin/bash", "alice",
        )
        commands.groupadd.assert_called_once_with("--force", "docker")
        commands.usermod.assert_called_once_with("-aG", "sudo,docker", "alice")
        commands.chown.assert_called_once_with("-R", "alice:alice", str(home / ".ssh"), str(home / "docker"))

        assert (home / "docker").is_dir()
        assert stat.S_IMODE((home / ".ssh").stat().st_mode) == 0o700
        assert account.authorized_keys.read_text() == ""

    @patch('ubuntu_bootstrap.accounts.account_exists')
    def test_empty_username_mutates_nothing(self, mock_exists, as_root, commands, tmp_path):
        """Test an empty username fails before any host change."""
        with pytest.raises(ValidationError):
            create_account("", Settings(home_root=tmp_path))

        mock_exists.assert_not_called()
        commands.useradd.assert_not_called()
        commands.groupadd.assert_not_called()
        assert list(tmp_path.iterdir()) == []

    @patch('ubuntu_bootstrap.accounts.account_exists', return_value=True)
    def test_existing_account_is_refused(self, mock_exists, as_root, commands, tmp_path):
        """Test an existing account is never reused."""
        with pytest.raises(AccountExistsError, match="bob"):
            create_account("bob", Settings(home_root=tmp_path))

        commands.useradd.assert_not_called()
        commands.usermod.assert_not_called()
        assert list(tmp_path.iterdir()) == []

    @patch('ubuntu_bootstrap.accounts.account_exists', return_value=False)
    def test_requires_root(self, mock_exists, commands, tmp_path):
        """Test nothing happens without root."""
        with patch('ubuntu_bootstrap.utils.is_root', return_value=False):
            with pytest.raises(PrivilegeError):
                create_account("alice", Settings(home_root=tmp_path))

        commands.useradd.assert_not_called()

    @patch('ubuntu_bootstrap.accounts.account_exists', return_value=False)
    def test_failure_stops_later_steps(self, mock_exists, as_root, commands, tmp_path):
        """Test a failing useradd stops before groups and directories."""
        commands.useradd.side_effect = sh.ErrorReturnCode_1("useradd alice", b"", b"failed")

        with pytest.raises(sh.ErrorReturnCode):
            create_account("alice", Settings(home_root=tmp_path))

        commands.usermod.assert_not_called()
        assert not (tmp_path / "alice").exists()


class TestLookupAccount:
    """Tests for building the model of an existing account."""

    @patch('ubuntu_bootstrap.accounts.sh.id', create=True)
    @patch('ubuntu_bootstrap.accounts.pwd.getpwnam')
    def test_lookup_existing(self, mock_getpwnam, mock_id, tmp_path):
        mock_getpwnam.return_value = MagicMock(pw_dir="/home/alice")
        mock_id.return_value = "alice sudo docker\n"
        (tmp_path / "01-alice-nopasswd").write_text("alice ALL=(ALL) NOPASSWD:ALL\n")

        account = lookup_account("alice", Settings(sudoers_dir=tmp_path))

        assert account.home == Path("/home/alice")
        assert account.groups == frozenset({"alice", "sudo", "docker"})
        assert account.elevation_grant is True

    @patch('ubuntu_bootstrap.accounts.pwd.getpwnam', side_effect=KeyError("ghost"))
    def test_lookup_missing(self, mock_getpwnam):
        with pytest.raises(ValidationError, match="does not exist"):
            lookup_account("ghost")


class TestGrantElevation:
    """Tests for the passwordless sudo grant."""

    @patch('ubuntu_bootstrap.accounts.command_exists', return_value=False)
    def test_grant_file(self, mock_exists, as_root, tmp_path):
        """Test the grant has the fixed format and is read-only."""
        account = AdministrativeAccount("alice", tmp_path / "alice")

        grant = grant_elevation(account, Settings(sudoers_dir=tmp_path))

        assert grant == tmp_path / "01-alice-nopasswd"
        assert grant.read_text() == "alice ALL=(ALL) NOPASSWD:ALL\n"
        assert stat.S_IMODE(grant.stat().st_mode) == 0o440

    @patch('ubuntu_bootstrap.accounts.sh.visudo', create=True)
    @patch('ubuntu_bootstrap.accounts.command_exists', return_value=True)
    def test_grant_is_checked_with_visudo(self, mock_exists, mock_visudo, as_root, tmp_path):
        account = AdministrativeAccount("alice", tmp_path / "alice")

        grant = grant_elevation(account, Settings(sudoers_dir=tmp_path))

        mock_visudo.assert_called_once_with("-cf", str(grant))

    @patch('ubuntu_bootstrap.accounts.sh.visudo', create=True)
    @patch('ubuntu_bootstrap.accounts.command_exists', return_value=True)
    def test_invalid_grant_is_removed(self, mock_exists, mock_visudo, as_root, tmp_path):
        """Test a grant rejected by visudo does not stay live."""
        mock_visudo.side_effect = sh.ErrorReturnCode_1("visudo", b"", b"syntax error")
        account = AdministrativeAccount("alice", tmp_path / "alice")

        with pytest.raises(ValidationError, match="syntax error"):
            grant_elevation(account, Settings(sudoers_dir=tmp_path))

        assert not (tmp_path / "01-alice-nopasswd").exists()
