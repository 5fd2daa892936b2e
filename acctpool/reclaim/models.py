"""
Result types for reclamation.

Every action taken against an account is recorded as an ArtifactOutcome so the
caller can print what is left to clean up by hand and tests can assert on it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import ReclamationIncompleteError


class OutcomeStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ArtifactOutcome:
    """What happened to one artifact."""
    account_id: str
    kind: str  # "tags", "parent", "role", "role-policy", "policy", "access-key", "user", ...
    name: str
    status: OutcomeStatus
    error: Optional[str] = None

    def describe(self) -> str:
        text = f"account {self.account_id}: {self.kind} {self.name} {self.status.value}"
        if self.error:
            text += f" ({self.error})"
        return text

    def to_dict(self) -> Dict[str, Any]:
        data = {"kind": self.kind, "name": self.name, "status": self.status.value}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class AccountReclamation:
    account_id: str
    stage: str = "pending"
    outcomes: List[ArtifactOutcome] = field(default_factory=list)

    def record(self, kind: str, name: str, status: OutcomeStatus, error: Optional[str] = None) -> ArtifactOutcome:
        outcome = ArtifactOutcome(self.account_id, kind, name, status, error)
        self.outcomes.append(outcome)
        return outcome

    def _with_status(self, status: OutcomeStatus) -> List[ArtifactOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    @property
    def succeeded(self) -> List[ArtifactOutcome]:
        return self._with_status(OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> List[ArtifactOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> List[ArtifactOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "stage": self.stage,
            "succeeded": len(self.succeeded),
            "failed": [outcome.to_dict() for outcome in self.failed],
            "skipped": len(self.skipped),
        }


@dataclass
class ReclamationReport:
    accounts: List[AccountReclamation] = field(default_factory=list)
    declined: bool = False

    @property
    def account_ids(self) -> List[str]:
        return [account.account_id for account in self.accounts]

    @property
    def failed(self) -> List[ArtifactOutcome]:
        return [outcome for account in self.accounts for outcome in account.failed]

    @property
    def ok(self) -> bool:
        return not self.declined and not self.failed

    def raise_for_failures(self) -> None:
        """
        Raises:
            ReclamationIncompleteError: If any artifact could not be removed
        """
        if self.failed:
            raise ReclamationIncompleteError(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "declined": self.declined,
            "accounts": [account.to_dict() for account in self.accounts],
        }
