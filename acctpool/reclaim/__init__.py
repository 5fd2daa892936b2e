"""
Reclamation of claimed accounts: untag, move back to root, IAM teardown.
"""

from .models import AccountReclamation, ArtifactOutcome, OutcomeStatus, ReclamationReport
from .orchestrator import Reclaimer
from .teardown import IamTeardown, is_protected_role

__all__ = [
    "AccountReclamation",
    "ArtifactOutcome",
    "IamTeardown",
    "OutcomeStatus",
    "Reclaimer",
    "ReclamationReport",
    "is_protected_role",
]
