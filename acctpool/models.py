"""
Data models shared by the gateway, allocator and reclaimer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class AccountStatus(Enum):
    """Organizations account status, read-only from our side."""
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING_CLOSURE = "PENDING_CLOSURE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AccountStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class Account:
    """A member account of a payer organization."""
    id: str
    status: AccountStatus = AccountStatus.ACTIVE
    name: Optional[str] = None
    email: Optional[str] = None
    parent_id: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE


@dataclass
class Credentials:
    """Temporary credentials returned by sts:AssumeRole."""
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: Optional[datetime] = None
    assumed_role_arn: Optional[str] = None


@dataclass
class IamRole:
    name: str
    arn: str
    path: str = "/"


@dataclass
class ManagedPolicy:
    name: str
    arn: str
    default_version_id: Optional[str] = None


@dataclass
class PolicyEntities:
    """Principals a managed policy is attached to."""
    users: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)


@dataclass
class AllocationResult:
    """Outcome of a successful ``assign``."""
    username: str
    account_id: str
    payer: str
    created: bool = False

    def __str__(self) -> str:
        return f"  Username: {self.username}\n  Account: {self.account_id}\n"
