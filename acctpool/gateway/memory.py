"""
In-memory implementation of the cloud gateway.

Models just enough of Organizations, the tagging API, STS and IAM to exercise
the engine without AWS: the same error codes are raised as
``botocore.exceptions.ClientError`` and every mutating call is appended to
``MemoryCloud.calls`` so tests can assert on ordering.

This backend is for tests and offline automation; the CLI always uses ``gateway.aws``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import itertools

from botocore.exceptions import ClientError

from ..models import Account, AccountStatus, Credentials, IamRole, ManagedPolicy, PolicyEntities
from .base import CloudGateway, IamGateway, OrganizationsGateway, StsGateway, TaggingGateway

ADMIN_ROLE = "OrganizationAccountAccessRole"
SERVICE_ROLE_PATH = "/aws-service-role/"


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


@dataclass
class MemoryUser:
    login_profile: bool = False
    access_keys: List[str] = field(default_factory=list)
    certificates: List[str] = field(default_factory=list)
    inline_policies: List[str] = field(default_factory=list)
    attached_policies: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)


@dataclass
class MemoryRole:
    role: IamRole
    attached_policies: List[str] = field(default_factory=list)
    inline_policies: List[str] = field(default_factory=list)


@dataclass
class MemoryPolicy:
    policy: ManagedPolicy
    versions: List[str] = field(default_factory=lambda: ["v1"])


class MemoryIamState:
    """IAM contents of one account."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        self.users: Dict[str, MemoryUser] = {}
        self.roles: Dict[str, MemoryRole] = {}
        self.policies: Dict[str, MemoryPolicy] = {}
        self.group_policies: Dict[str, List[str]] = {}
        self.add_role(ADMIN_ROLE)

    def add_role(self, name: str, path: str = "/", attached: Optional[List[str]] = None,
                 inline: Optional[List[str]] = None) -> MemoryRole:
        arn = f"arn:aws:iam::{self.account_id}:role{path}{name}"
        role = MemoryRole(IamRole(name=name, arn=arn, path=path), list(attached or []), list(inline or []))
        self.roles[name] = role
        return role

    def add_service_linked_role(self, name: str) -> MemoryRole:
        return self.add_role(name, path=f"{SERVICE_ROLE_PATH}example.amazonaws.com/")

    def add_policy(self, name: str, versions: Optional[List[str]] = None) -> str:
        arn = f"arn:aws:iam::{self.account_id}:policy/{name}"
        versions = list(versions or ["v1"])
        self.policies[arn] = MemoryPolicy(ManagedPolicy(name=name, arn=arn, default_version_id=versions[0]), versions)
        return arn

    def add_user(self, name: str, **artifacts: Any) -> MemoryUser:
        user = MemoryUser(**artifacts)
        self.users[name] = user
        for group in user.groups:
            self.group_policies.setdefault(group, [])
        return user


class MemoryOrganizations(OrganizationsGateway):
    def __init__(self, cloud: "MemoryCloud"):
        self.cloud = cloud

    def _account(self, account_id: str, operation: str) -> Account:
        self.cloud.check(operation, account_id)
        try:
            return self.cloud.accounts[account_id]
        except KeyError:
            raise client_error("TargetNotFoundException", operation, f"account {account_id} not found") from None

    def list_accounts_for_parent(self, parent_id: str) -> List[Account]:
        self.cloud.check("ListAccountsForParent", parent_id)
        return [
            Account(id=a.id, status=a.status, name=a.name, email=a.email, parent_id=a.parent_id)
            for a in self.cloud.accounts.values() if a.parent_id == parent_id
        ]

    def list_tags_for_resource(self, account_id: str) -> Dict[str, str]:
        return dict(self._account(account_id, "ListTagsForResource").tags)

    def tag_resource(self, account_id: str, tags: Dict[str, str]) -> None:
        account = self._account(account_id, "TagResource")
        self.cloud.record("TagResource", account_id, dict(tags))
        account.tags.update(tags)

    def untag_resource(self, account_id: str, keys: List[str]) -> None:
        account = self._account(account_id, "UntagResource")
        self.cloud.record("UntagResource", account_id, list(keys))
        for key in keys:
            account.tags.pop(key, None)

    def move_account(self, account_id: str, source_parent_id: str, destination_parent_id: str) -> None:
        account = self._account(account_id, "MoveAccount")
        if account.parent_id != source_parent_id:
            raise client_error("AccountNotFoundException", "MoveAccount",
                               f"account {account_id} is not in {source_parent_id}")
        self.cloud.record("MoveAccount", account_id, source_parent_id, destination_parent_id)
        account.parent_id = destination_parent_id

    def list_parent(self, account_id: str) -> str:
        return self._account(account_id, "ListParents").parent_id

    def create_account(self, account_name: str, email: str) -> str:
        self.cloud.check("CreateAccount", email)
        request_id = f"car-{next(self.cloud.counter)}"
        self.cloud.record("CreateAccount", account_name, email)
        self.cloud.create_requests[request_id] = self.cloud.create_outcomes.pop(0) if self.cloud.create_outcomes else {}
        self.cloud.create_requests[request_id].setdefault("email", email)
        return request_id

    def describe_create_account_status(self, request_id: str) -> Dict[str, Any]:
        request = self.cloud.create_requests[request_id]
        states = request.setdefault("states", ["SUCCEEDED"])
        state = states.pop(0) if len(states) > 1 else states[0]
        status: Dict[str, Any] = {"Id": request_id, "State": state}
        if state == "SUCCEEDED":
            account_id = request.get("account_id") or f"{900000000000 + next(self.cloud.counter)}"
            request["account_id"] = account_id
            if account_id not in self.cloud.accounts:
                self.cloud.add_account(account_id, parent_id=self.cloud.new_account_parent, email=request["email"])
            status["AccountId"] = account_id
        elif state == "FAILED":
            status["FailureReason"] = request.get("failure_reason", "INTERNAL_FAILURE")
        return status


class MemoryTagging(TaggingGateway):
    def __init__(self, cloud: "MemoryCloud"):
        self.cloud = cloud

    def get_resource_arns(self, tag_key: str, tag_value: str) -> List[str]:
        self.cloud.check("GetResources", tag_value)
        arns = [
            f"arn:aws:organizations::{self.cloud.payer_id}:account/o-memory/{account.id}"
            for account in self.cloud.accounts.values()
            if account.tags.get(tag_key) == tag_value
        ]
        arns.extend(arn for arn, tags in self.cloud.other_resources.items() if tags.get(tag_key) == tag_value)
        return arns


class MemorySts(StsGateway):
    def __init__(self, cloud: "MemoryCloud", caller: str):
        self.cloud = cloud
        self.caller = caller

    def assume_role(self, role_arn: str, session_name: str, duration_seconds: int) -> Credentials:
        self.cloud.check("AssumeRole", role_arn)
        account_id = role_arn.split(":")[4]
        role_name = role_arn.rsplit("/", 1)[-1]
        state = self.cloud.iam_states.get(account_id)
        if state is None or role_name not in state.roles:
            raise client_error("AccessDenied", "AssumeRole", f"{self.caller} is not authorized to assume {role_arn}")
        self.cloud.record("AssumeRole", role_arn, session_name, duration_seconds, self.caller)
        key = f"ASIA{next(self.cloud.counter):016d}"
        self.cloud.sessions[key] = account_id
        return Credentials(
            access_key_id=key,
            secret_access_key="secret",
            session_token="token",
            assumed_role_arn=f"arn:aws:sts::{account_id}:assumed-role/{role_name}/{session_name}",
        )


class MemoryIam(IamGateway):
    def __init__(self, cloud: "MemoryCloud", account_id: str):
        self.cloud = cloud
        self.account_id = account_id
        self.state = cloud.iam(account_id)

    def _op(self, operation: str, *args: Any) -> None:
        self.cloud.check(operation, *args)

    def _mutate(self, operation: str, *args: Any) -> None:
        # a call that fails was still issued
        self.cloud.record(operation, self.account_id, *args)
        self._op(operation, *args)

    def _user(self, name: str, operation: str) -> MemoryUser:
        try:
            return self.state.users[name]
        except KeyError:
            raise client_error("NoSuchEntity", operation, f"user {name} not found") from None

    def _role(self, name: str, operation: str) -> MemoryRole:
        try:
            return self.state.roles[name]
        except KeyError:
            raise client_error("NoSuchEntity", operation, f"role {name} not found") from None

    @staticmethod
    def _remove(items: List[str], item: str, operation: str) -> None:
        if item not in items:
            raise client_error("NoSuchEntity", operation, f"{item} not found")
        items.remove(item)

    # roles
    def list_roles(self) -> List[IamRole]:
        self._op("ListRoles")
        return [role.role for role in self.state.roles.values()]

    def list_attached_role_policies(self, role_name: str) -> List[str]:
        self._op("ListAttachedRolePolicies", role_name)
        return list(self._role(role_name, "ListAttachedRolePolicies").attached_policies)

    def detach_role_policy(self, role_name: str, policy_arn: str) -> None:
        self._mutate("DetachRolePolicy", role_name, policy_arn)
        self._remove(self._role(role_name, "DetachRolePolicy").attached_policies, policy_arn, "DetachRolePolicy")

    def list_role_policies(self, role_name: str) -> List[str]:
        self._op("ListRolePolicies", role_name)
        return list(self._role(role_name, "ListRolePolicies").inline_policies)

    def delete_role_policy(self, role_name: str, policy_name: str) -> None:
        self._mutate("DeleteRolePolicy", role_name, policy_name)
        self._remove(self._role(role_name, "DeleteRolePolicy").inline_policies, policy_name, "DeleteRolePolicy")

    def delete_role(self, role_name: str) -> None:
        self._mutate("DeleteRole", role_name)
        role = self._role(role_name, "DeleteRole")
        if role.attached_policies or role.inline_policies:
            raise client_error("DeleteConflict", "DeleteRole", f"role {role_name} still has policies")
        del self.state.roles[role_name]

    # managed policies
    def list_local_policies(self) -> List[ManagedPolicy]:
        self._op("ListPolicies")
        return [policy.policy for policy in self.state.policies.values()]

    def list_entities_for_policy(self, policy_arn: str) -> PolicyEntities:
        self._op("ListEntitiesForPolicy", policy_arn)
        if policy_arn not in self.state.policies:
            raise client_error("NoSuchEntity", "ListEntitiesForPolicy", f"policy {policy_arn} not found")
        return PolicyEntities(
            users=[n for n, u in self.state.users.items() if policy_arn in u.attached_policies],
            groups=[n for n, p in self.state.group_policies.items() if policy_arn in p],
            roles=[n for n, r in self.state.roles.items() if policy_arn in r.attached_policies],
        )

    def detach_group_policy(self, group_name: str, policy_arn: str) -> None:
        self._mutate("DetachGroupPolicy", group_name, policy_arn)
        self._remove(self.state.group_policies.get(group_name, []), policy_arn, "DetachGroupPolicy")

    def list_policy_versions(self, policy_arn: str) -> List[Dict[str, Any]]:
        self._op("ListPolicyVersions", policy_arn)
        policy = self.state.policies.get(policy_arn)
        if policy is None:
            raise client_error("NoSuchEntity", "ListPolicyVersions", f"policy {policy_arn} not found")
        return [
            {"VersionId": version, "IsDefaultVersion": version == policy.policy.default_version_id}
            for version in policy.versions
        ]

    def delete_policy_version(self, policy_arn: str, version_id: str) -> None:
        self._mutate("DeletePolicyVersion", policy_arn, version_id)
        policy = self.state.policies.get(policy_arn)
        if policy is None:
            raise client_error("NoSuchEntity", "DeletePolicyVersion", f"policy {policy_arn} not found")
        self._remove(policy.versions, version_id, "DeletePolicyVersion")

    def delete_policy(self, policy_arn: str) -> None:
        self._mutate("DeletePolicy", policy_arn)
        policy = self.state.policies.get(policy_arn)
        if policy is None:
            raise client_error("NoSuchEntity", "DeletePolicy", f"policy {policy_arn} not found")
        entities = self.list_entities_for_policy(policy_arn)
        if entities.users or entities.groups or entities.roles or len(policy.versions) > 1:
            raise client_error("DeleteConflict", "DeletePolicy", f"policy {policy_arn} is still in use")
        del self.state.policies[policy_arn]

    # users
    def list_users(self) -> List[str]:
        self._op("ListUsers")
        return list(self.state.users)

    def delete_login_profile(self, user_name: str) -> None:
        self._mutate("DeleteLoginProfile", user_name)
        user = self._user(user_name, "DeleteLoginProfile")
        if not user.login_profile:
            raise client_error("NoSuchEntity", "DeleteLoginProfile", f"login profile for {user_name} not found")
        user.login_profile = False

    def list_access_keys(self, user_name: str) -> List[str]:
        self._op("ListAccessKeys", user_name)
        return list(self._user(user_name, "ListAccessKeys").access_keys)

    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        self._mutate("DeleteAccessKey", user_name, access_key_id)
        self._remove(self._user(user_name, "DeleteAccessKey").access_keys, access_key_id, "DeleteAccessKey")

    def list_signing_certificates(self, user_name: str) -> List[str]:
        self._op("ListSigningCertificates", user_name)
        return list(self._user(user_name, "ListSigningCertificates").certificates)

    def delete_signing_certificate(self, user_name: str, certificate_id: str) -> None:
        self._mutate("DeleteSigningCertificate", user_name, certificate_id)
        user = self._user(user_name, "DeleteSigningCertificate")
        self._remove(user.certificates, certificate_id, "DeleteSigningCertificate")

    def list_user_policies(self, user_name: str) -> List[str]:
        self._op("ListUserPolicies", user_name)
        return list(self._user(user_name, "ListUserPolicies").inline_policies)

    def delete_user_policy(self, user_name: str, policy_name: str) -> None:
        self._mutate("DeleteUserPolicy", user_name, policy_name)
        self._remove(self._user(user_name, "DeleteUserPolicy").inline_policies, policy_name, "DeleteUserPolicy")

    def list_attached_user_policies(self, user_name: str) -> List[str]:
        self._op("ListAttachedUserPolicies", user_name)
        return list(self._user(user_name, "ListAttachedUserPolicies").attached_policies)

    def detach_user_policy(self, user_name: str, policy_arn: str) -> None:
        self._mutate("DetachUserPolicy", user_name, policy_arn)
        self._remove(self._user(user_name, "DetachUserPolicy").attached_policies, policy_arn, "DetachUserPolicy")

    def list_groups_for_user(self, user_name: str) -> List[str]:
        self._op("ListGroupsForUser", user_name)
        return list(self._user(user_name, "ListGroupsForUser").groups)

    def remove_user_from_group(self, user_name: str, group_name: str) -> None:
        self._mutate("RemoveUserFromGroup", user_name, group_name)
        self._remove(self._user(user_name, "RemoveUserFromGroup").groups, group_name, "RemoveUserFromGroup")

    def delete_user(self, user_name: str) -> None:
        self._mutate("DeleteUser", user_name)
        user = self._user(user_name, "DeleteUser")
        if (user.login_profile or user.access_keys or user.certificates or user.inline_policies
                or user.attached_policies or user.groups):
            raise client_error("DeleteConflict", "DeleteUser", f"user {user_name} still has attached artifacts")
        del self.state.users[user_name]


class MemoryCloud:
    """
    A payer organization held in memory.

    Use ``fail(operation, key, code)`` to make every later call with ``key``
    as its first argument raise a ClientError; the failure stays until
    removed from ``failures``.
    """

    def __init__(self, payer_id: str = "000000000000"):
        self.payer_id = payer_id
        self.accounts: Dict[str, Account] = {}
        self.iam_states: Dict[str, MemoryIamState] = {}
        self.other_resources: Dict[str, Dict[str, str]] = {}
        self.sessions: Dict[str, str] = {}
        self.create_requests: Dict[str, Dict[str, Any]] = {}
        self.create_outcomes: List[Dict[str, Any]] = []
        self.new_account_parent: Optional[str] = None
        self.calls: List[Tuple[Any, ...]] = []
        self.failures: Dict[Tuple[str, Any], str] = {}
        self.counter = itertools.count(1)

    def add_account(self, account_id: str, parent_id: Optional[str], tags: Optional[Dict[str, str]] = None,
                    status: AccountStatus = AccountStatus.ACTIVE, email: Optional[str] = None) -> Account:
        account = Account(id=account_id, status=status, name=f"account-{account_id}",
                          email=email, parent_id=parent_id, tags=dict(tags or {}))
        self.accounts[account_id] = account
        self.iam(account_id)
        return account

    def iam(self, account_id: str) -> MemoryIamState:
        if account_id not in self.iam_states:
            self.iam_states[account_id] = MemoryIamState(account_id)
        return self.iam_states[account_id]

    def fail(self, operation: str, key: Any = None, code: str = "AccessDenied") -> None:
        self.failures[(operation, key)] = code

    def check(self, operation: str, *args: Any) -> None:
        key = args[0] if args else None
        for candidate in ((operation, key), (operation, None)):
            code = self.failures.get(candidate)
            if code is not None:
                raise client_error(code, operation, f"injected failure for {operation} {key or ''}".strip())
        # user-scoped artifacts may also be targeted by their own id
        if len(args) > 1 and (operation, args[1]) in self.failures:
            raise client_error(self.failures[(operation, args[1])], operation, f"injected failure for {args[1]}")

    def record(self, *call: Any) -> None:
        self.calls.append(call)

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]

    def gateway(self) -> CloudGateway:
        def iam_for(credentials: Credentials) -> IamGateway:
            try:
                account_id = self.sessions[credentials.access_key_id]
            except KeyError:
                raise client_error("InvalidClientTokenId", "GetCallerIdentity") from None
            return MemoryIam(self, account_id)

        def sts_for(credentials: Credentials) -> StsGateway:
            return MemorySts(self, caller=credentials.assumed_role_arn or credentials.access_key_id)

        return CloudGateway(
            organizations=MemoryOrganizations(self),
            tagging=MemoryTagging(self),
            sts=MemorySts(self, caller=f"arn:aws:iam::{self.payer_id}:user/payer"),
            sts_for=sts_for,
            iam_for=iam_for,
        )
