"""Errors raised by provisioning operations.

Fatal errors indicate a condition that is unsafe to continue under; the
interactive menu terminates the process on them instead of looping.
"""


class BootstrapError(Exception):
    """Base class for every provisioning failure."""

    fatal = False


class PrivilegeError(BootstrapError):
    """The process lacks the root privileges an operation requires."""

    fatal = True


class ValidationError(BootstrapError):
    """Operator input was empty or malformed."""


class AccountExistsError(BootstrapError):
    """The account to provision already exists."""

    fatal = True


class KeyFetchError(BootstrapError):
    """Public keys could not be fetched, or none were published."""


class BackupError(BootstrapError):
    """A configuration backup could not be created and verified."""

    fatal = True


class LockoutError(BootstrapError):
    """Hardening would leave the account without any way to log in."""
