"""
IAM teardown inside a reclaimed account.

IAM refuses to delete a principal that still has credentials, policies or
group memberships, so every dependent artifact is removed first and the
principal last. A failure on one artifact is recorded and teardown moves on;
the principal is then left in place because its deletion could not succeed.
"""

from typing import Callable, Optional
import logging

from botocore.exceptions import BotoCoreError, ClientError

from ..gateway.base import IamGateway
from ..models import IamRole, PolicyEntities
from .models import AccountReclamation, OutcomeStatus

logger = logging.getLogger(__name__)

SERVICE_LINKED_ROLE_PATH = "/aws-service-role/"


def is_protected_role(role: IamRole, admin_role_name: str) -> bool:
    """The admin role we came in through and AWS service-linked roles stay."""
    return role.name == admin_role_name or role.path.startswith(SERVICE_LINKED_ROLE_PATH)


def _error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


class IamTeardown:
    """Deletes tenant-created IAM artifacts from one account."""

    def __init__(self, iam: IamGateway, result: AccountReclamation, admin_role_name: str):
        self.iam = iam
        self.result = result
        self.account_id = result.account_id
        self.admin_role_name = admin_role_name
        self.protected_roles = {admin_role_name}

    def _attempt(self, kind: str, name: str, action: Callable, *args) -> bool:
        """
        Run one delete call and record its outcome.

        Returns:
            True if the artifact is gone (deleted now or already absent)
        """
        try:
            action(*args)
        except (ClientError, BotoCoreError) as e:
            if _error_code(e) == "NoSuchEntity":
                self.result.record(kind, name, OutcomeStatus.SKIPPED, "already absent")
                return True
            logger.warning(f"Failed to delete {kind} {name} in account {self.account_id}: {e}")
            self.result.record(kind, name, OutcomeStatus.FAILED, str(e))
            return False
        logger.info(f"Deleted {kind} {name} in account {self.account_id}")
        self.result.record(kind, name, OutcomeStatus.SUCCEEDED)
        return True

    def _list(self, kind: str, owner: str, lister: Callable, *args, empty=None):
        """List the artifacts of one principal; None when listing failed."""
        try:
            return lister(*args)
        except (ClientError, BotoCoreError) as e:
            if _error_code(e) == "NoSuchEntity":
                return [] if empty is None else empty
            logger.warning(f"Failed to list {kind}s of {owner} in account {self.account_id}: {e}")
            self.result.record(kind, f"{owner}/*", OutcomeStatus.FAILED, f"could not list: {e}")
            return None

    def _delete_all(self, kind: str, owner: str, lister: Callable, deleter: Callable) -> bool:
        items = self._list(kind, owner, lister, owner)
        if items is None:
            return False
        ok = True
        for item in items:
            ok = self._attempt(kind, f"{owner}/{item}", deleter, owner, item) and ok
        return ok

    def _delete_principal(self, kind: str, name: str, dependencies_ok: bool, deleter: Callable) -> bool:
        if not dependencies_ok:
            self.result.record(kind, name, OutcomeStatus.SKIPPED, "dependent artifacts could not be removed")
            return False
        return self._attempt(kind, name, deleter, name)

    # roles

    def delete_role(self, role: IamRole) -> bool:
        ok = self._delete_all("role-policy-attachment", role.name,
                              self.iam.list_attached_role_policies, self.iam.detach_role_policy)
        ok = self._delete_all("role-inline-policy", role.name,
                              self.iam.list_role_policies, self.iam.delete_role_policy) and ok
        return self._delete_principal("role", role.name, ok, self.iam.delete_role)

    def delete_roles(self) -> None:
        """Delete every role except the protected ones. Listing is fail-fast."""
        self.result.stage = "list-roles"
        roles = self.iam.list_roles()
        self.result.stage = "delete-roles"
        for role in roles:
            if is_protected_role(role, self.admin_role_name):
                self.protected_roles.add(role.name)
                logger.debug(f"Keeping protected role {role.name} in account {self.account_id}")
                continue
            self.delete_role(role)

    # customer managed policies

    def delete_policy(self, policy) -> bool:
        entities = self._list("policy-attachment", policy.name, self.iam.list_entities_for_policy,
                              policy.arn, empty=PolicyEntities())
        if entities is None:
            return self._delete_principal("policy", policy.arn, False, self.iam.delete_policy)

        kept_by = sorted(set(entities.roles) & self.protected_roles)
        if kept_by:
            logger.info(f"Keeping policy {policy.name} in account {self.account_id}, attached to {kept_by}")
            self.result.record("policy", policy.arn, OutcomeStatus.SKIPPED,
                               f"attached to protected role {', '.join(kept_by)}")
            return True

        ok = True
        for user in entities.users:
            ok = self._attempt("policy-attachment", f"{policy.name}->user/{user}",
                               self.iam.detach_user_policy, user, policy.arn) and ok
        for group in entities.groups:
            ok = self._attempt("policy-attachment", f"{policy.name}->group/{group}",
                               self.iam.detach_group_policy, group, policy.arn) and ok
        for role in entities.roles:
            ok = self._attempt("policy-attachment", f"{policy.name}->role/{role}",
                               self.iam.detach_role_policy, role, policy.arn) and ok

        versions = self._list("policy-version", policy.name, self.iam.list_policy_versions, policy.arn)
        if versions is None:
            ok = False
        else:
            for version in versions:
                if version.get("IsDefaultVersion"):
                    continue
                ok = self._attempt("policy-version", f"{policy.name}/{version['VersionId']}",
                                   self.iam.delete_policy_version, policy.arn, version["VersionId"]) and ok

        return self._delete_principal("policy", policy.arn, ok, self.iam.delete_policy)

    def delete_account_policies(self) -> None:
        """Delete every customer managed policy. Listing is fail-fast."""
        self.result.stage = "list-policies"
        policies = self.iam.list_local_policies()
        self.result.stage = "delete-policies"
        for policy in policies:
            self.delete_policy(policy)

    # users

    def delete_login_profile(self, user_name: str) -> bool:
        return self._attempt("login-profile", user_name, self.iam.delete_login_profile, user_name)

    def delete_access_keys(self, user_name: str) -> bool:
        return self._delete_all("access-key", user_name, self.iam.list_access_keys, self.iam.delete_access_key)

    def delete_signing_certificates(self, user_name: str) -> bool:
        return self._delete_all("signing-certificate", user_name,
                                self.iam.list_signing_certificates, self.iam.delete_signing_certificate)

    def delete_user_policies(self, user_name: str) -> bool:
        return self._delete_all("user-inline-policy", user_name,
                                self.iam.list_user_policies, self.iam.delete_user_policy)

    def detach_user_policies(self, user_name: str) -> bool:
        return self._delete_all("user-policy-attachment", user_name,
                                self.iam.list_attached_user_policies, self.iam.detach_user_policy)

    def remove_from_groups(self, user_name: str) -> bool:
        return self._delete_all("group-membership", user_name,
                                self.iam.list_groups_for_user, self.iam.remove_user_from_group)

    def delete_user(self, user_name: str) -> bool:
        # every step runs even when an earlier one failed
        steps = [
            self.delete_login_profile,
            self.delete_access_keys,
            self.delete_signing_certificates,
            self.delete_user_policies,
            self.detach_user_policies,
            self.remove_from_groups,
        ]
        ok = True
        for step in steps:
            ok = step(user_name) and ok
        return self._delete_principal("user", user_name, ok, self.iam.delete_user)

    def delete_users(self) -> None:
        """Delete every IAM user. Listing is fail-fast."""
        self.result.stage = "list-users"
        users = self.iam.list_users()
        self.result.stage = "delete-users"
        for user_name in users:
            self.delete_user(user_name)

    def run(self) -> AccountReclamation:
        self.delete_roles()
        self.delete_account_policies()
        self.delete_users()
        self.result.stage = "done"
        return self.result
