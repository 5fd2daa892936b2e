"""
Error types raised by the allocation and reclamation engine.

AWS API failures are not wrapped: ``botocore`` errors propagate as-is on every
fail-fast path so the caller sees the original error code.
"""

from typing import Optional


class AccountPoolError(Exception):
    """Base class for every engine error."""


# Configuration

class ConfigurationError(AccountPoolError):
    """The configuration file is missing fields or malformed."""


class UnknownPayerError(ConfigurationError):
    def __init__(self, payer: str, known=()):
        self.payer = payer
        known_str = ", ".join(sorted(known)) or "none"
        super().__init__(f"invalid payer account provided: {payer} (known payers: {known_str})")


# Pool exhaustion

class PoolExhaustedError(AccountPoolError):
    """No account can be handed out."""


class NoAccountsInRootError(PoolExhaustedError):
    def __init__(self, parent_id: str):
        self.parent_id = parent_id
        super().__init__(f"no accounts found under {parent_id}")


class NoUntaggedAccountsError(PoolExhaustedError):
    def __init__(self, parent_id: str):
        self.parent_id = parent_id
        super().__init__(f"no untagged accounts available under {parent_id}")


# Ownership resolution

class OwnershipResolutionError(AccountPoolError):
    """The requested owner/account mapping could not be resolved."""


class NoTagsOnAccountError(OwnershipResolutionError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"no tags on aws account {account_id}")


class NoOwnerTagError(OwnershipResolutionError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"no owner tag on aws account {account_id}")


class NoResourcesError(OwnershipResolutionError):
    def __init__(self, user: str):
        self.user = user
        super().__init__(f"no resources tagged owner={user}")


class NoAccountsForParentError(OwnershipResolutionError):
    def __init__(self, parent_id: str):
        self.parent_id = parent_id
        super().__init__(f"no accounts for OU {parent_id}")


class AccountsWithNoOwnerError(OwnershipResolutionError):
    def __init__(self, parent_id: str):
        self.parent_id = parent_id
        super().__init__(
            f"aws accounts available under {parent_id} but no owner tags present "
            f"(is this the claimed OU?)"
        )


class NoAccountsForUserError(OwnershipResolutionError):
    def __init__(self, user: str):
        self.user = user
        super().__init__(f"no accounts owned by {user}")


# Policy

class ProtectedAccountError(AccountPoolError):
    """Target is owned by a reserved system identifier."""

    def __init__(self, owner: str, account_id: Optional[str] = None):
        self.owner = owner
        self.account_id = account_id
        where = f"account {account_id} owned by {owner}" if account_id else f"user {owner}"
        super().__init__(f"non-ccs account provided ({where}), only developers accounts accepted")


# Concurrency

class AllocationConflictError(AccountPoolError):
    """Another writer claimed the account between our read and our write."""

    def __init__(self, account_id: str, expected_owner: str, actual_owner: Optional[str],
                 detail: Optional[str] = None):
        self.account_id = account_id
        self.expected_owner = expected_owner
        self.actual_owner = actual_owner
        message = (
            f"account {account_id} was claimed concurrently: expected owner "
            f"{expected_owner}, found {actual_owner or 'none'}"
        )
        if detail:
            message += f" ({detail})"
        super().__init__(message)


# Provisioning

class AccountProvisioningError(AccountPoolError):
    """CreateAccount did not produce a usable account."""


class AccountLimitExceededError(AccountProvisioningError):
    pass


class EmailAlreadyExistsError(AccountProvisioningError):
    pass


class AwsInternalFailureError(AccountProvisioningError):
    pass


class AccountCreationFailedError(AccountProvisioningError):
    pass


# Reclamation

class ReclamationAbortedError(AccountPoolError):
    """A fail-fast reclamation step failed; later accounts were not touched."""

    def __init__(self, account_id: str, step: str, cause: BaseException, report=None):
        self.account_id = account_id
        self.step = step
        self.cause = cause
        self.report = report
        super().__init__(f"reclamation of account {account_id} stopped at {step}: {cause}")


class ReclamationIncompleteError(AccountPoolError):
    """Teardown finished but some artifacts could not be removed."""

    def __init__(self, report):
        self.report = report
        failed = report.failed
        lines = [f"{len(failed)} artifact(s) could not be removed:"]
        lines.extend(f"  {outcome.describe()}" for outcome in failed)
        super().__init__("\n".join(lines))
