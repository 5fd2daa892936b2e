"""
Capability interfaces over the AWS APIs the engine uses.

Each AWS API family gets its own narrow interface so the allocator and the
reclaimer can be driven by the boto3 implementation or by the in-memory one.
Implementations raise ``botocore.exceptions.ClientError`` for API failures.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ..models import Account, Credentials, IamRole, ManagedPolicy, PolicyEntities


class OrganizationsGateway(ABC):
    """AWS Organizations, called with payer credentials."""

    @abstractmethod
    def list_accounts_for_parent(self, parent_id: str) -> List[Account]:
        """All accounts directly under ``parent_id``, every page."""

    @abstractmethod
    def list_tags_for_resource(self, account_id: str) -> Dict[str, str]:
        pass

    @abstractmethod
    def tag_resource(self, account_id: str, tags: Dict[str, str]) -> None:
        pass

    @abstractmethod
    def untag_resource(self, account_id: str, keys: List[str]) -> None:
        pass

    @abstractmethod
    def move_account(self, account_id: str, source_parent_id: str, destination_parent_id: str) -> None:
        pass

    @abstractmethod
    def list_parent(self, account_id: str) -> str:
        """Id of the root or OU the account currently sits in."""

    @abstractmethod
    def create_account(self, account_name: str, email: str) -> str:
        """Start account creation, returning the create request id."""

    @abstractmethod
    def describe_create_account_status(self, request_id: str) -> Dict[str, Any]:
        """Return ``State``, ``AccountId`` and ``FailureReason`` keys as in the API."""


class TaggingGateway(ABC):
    """Resource Groups Tagging API."""

    @abstractmethod
    def get_resource_arns(self, tag_key: str, tag_value: str) -> List[str]:
        """ARNs of every resource tagged ``tag_key=tag_value``."""


class StsGateway(ABC):

    @abstractmethod
    def assume_role(self, role_arn: str, session_name: str, duration_seconds: int) -> Credentials:
        pass


class IamGateway(ABC):
    """IAM inside a single account."""

    # roles
    @abstractmethod
    def list_roles(self) -> List[IamRole]:
        pass

    @abstractmethod
    def list_attached_role_policies(self, role_name: str) -> List[str]:
        pass

    @abstractmethod
    def detach_role_policy(self, role_name: str, policy_arn: str) -> None:
        pass

    @abstractmethod
    def list_role_policies(self, role_name: str) -> List[str]:
        pass

    @abstractmethod
    def delete_role_policy(self, role_name: str, policy_name: str) -> None:
        pass

    @abstractmethod
    def delete_role(self, role_name: str) -> None:
        pass

    # customer managed policies
    @abstractmethod
    def list_local_policies(self) -> List[ManagedPolicy]:
        pass

    @abstractmethod
    def list_entities_for_policy(self, policy_arn: str) -> PolicyEntities:
        pass

    @abstractmethod
    def detach_group_policy(self, group_name: str, policy_arn: str) -> None:
        pass

    @abstractmethod
    def list_policy_versions(self, policy_arn: str) -> List[Dict[str, Any]]:
        """``VersionId``/``IsDefaultVersion`` dictionaries."""

    @abstractmethod
    def delete_policy_version(self, policy_arn: str, version_id: str) -> None:
        pass

    @abstractmethod
    def delete_policy(self, policy_arn: str) -> None:
        pass

    # users
    @abstractmethod
    def list_users(self) -> List[str]:
        pass

    @abstractmethod
    def delete_login_profile(self, user_name: str) -> None:
        pass

    @abstractmethod
    def list_access_keys(self, user_name: str) -> List[str]:
        pass

    @abstractmethod
    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        pass

    @abstractmethod
    def list_signing_certificates(self, user_name: str) -> List[str]:
        pass

    @abstractmethod
    def delete_signing_certificate(self, user_name: str, certificate_id: str) -> None:
        pass

    @abstractmethod
    def list_user_policies(self, user_name: str) -> List[str]:
        pass

    @abstractmethod
    def delete_user_policy(self, user_name: str, policy_name: str) -> None:
        pass

    @abstractmethod
    def list_attached_user_policies(self, user_name: str) -> List[str]:
        pass

    @abstractmethod
    def detach_user_policy(self, user_name: str, policy_arn: str) -> None:
        pass

    @abstractmethod
    def list_groups_for_user(self, user_name: str) -> List[str]:
        pass

    @abstractmethod
    def remove_user_from_group(self, user_name: str, group_name: str) -> None:
        pass

    @abstractmethod
    def delete_user(self, user_name: str) -> None:
        pass


@dataclass
class CloudGateway:
    """
    Everything the engine needs from AWS for one payer.

    ``sts_for`` and ``iam_for`` build clients from assumed-role credentials;
    they are how the reclaimer chains roles and reaches into member accounts.
    """
    organizations: OrganizationsGateway
    tagging: TaggingGateway
    sts: StsGateway
    sts_for: Callable[[Credentials], StsGateway]
    iam_for: Callable[[Credentials], IamGateway]
