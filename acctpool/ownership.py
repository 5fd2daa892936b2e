"""
Ownership index: which user owns an account, and which accounts a user owns.

Three lookups exist because AWS exposes ownership differently per direction:
account -> owner is a direct tag read, owner -> accounts goes through the
Resource Groups Tagging API, and OU -> all owners needs one tag read per
account in the OU.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List
import logging

from .errors import (
    AccountsWithNoOwnerError,
    NoAccountsForParentError,
    NoOwnerTagError,
    NoResourcesError,
    NoTagsOnAccountError,
)
from .gateway.base import OrganizationsGateway, TaggingGateway
from .tags import OWNER_TAG, account_id_from_arn, get_owner, is_account_arn

logger = logging.getLogger(__name__)


class OwnershipIndex:
    def __init__(self, organizations: OrganizationsGateway, tagging: TaggingGateway):
        self.organizations = organizations
        self.tagging = tagging

    def list_user_name(self, account_id: str) -> str:
        """
        Return the owner of an account.

        Raises:
            NoTagsOnAccountError: If the account has no tags at all
            NoOwnerTagError: If the account has tags but no owner
        """
        tags = self.organizations.list_tags_for_resource(account_id)
        if not tags:
            raise NoTagsOnAccountError(account_id)
        owner = get_owner(tags)
        if owner is None:
            raise NoOwnerTagError(account_id)
        return owner

    def list_accounts_by_user(self, user: str) -> List[str]:
        """
        Return the ids of the accounts tagged ``owner=<user>``.

        Raises:
            NoResourcesError: If nothing is tagged with this owner
        """
        arns = self.tagging.get_resource_arns(OWNER_TAG, user)
        if not arns:
            raise NoResourcesError(user)

        account_ids: List[str] = []
        for arn in arns:
            if not is_account_arn(arn):
                logger.debug(f"Ignoring non-account resource tagged owner={user}: {arn}")
                continue
            account_id = account_id_from_arn(arn)
            if account_id not in account_ids:
                account_ids.append(account_id)

        if not account_ids:
            raise NoResourcesError(user)
        return account_ids

    def list_all_accounts(self, parent_id: str, max_workers: int = 1) -> Dict[str, List[str]]:
        """
        Group every account under an OU by its owner.

        Args:
            parent_id: OU to scan, normally the payer's claimed OU
            max_workers: Concurrent tag reads; 1 reads sequentially

        Returns:
            Mapping of owner to account ids, in listing order

        Raises:
            NoAccountsForParentError: If the OU is empty
            AccountsWithNoOwnerError: If no account in the OU has an owner
        """
        accounts = self.organizations.list_accounts_for_parent(parent_id)
        if not accounts:
            raise NoAccountsForParentError(parent_id)

        account_ids = [account.id for account in accounts]
        if max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                all_tags = list(executor.map(self.organizations.list_tags_for_resource, account_ids))
        else:
            all_tags = [self.organizations.list_tags_for_resource(account_id) for account_id in account_ids]

        owners: Dict[str, List[str]] = {}
        for account_id, tags in zip(account_ids, all_tags):
            owner = get_owner(tags)
            if not owner:
                # unclaimed accounts are not listed
                continue
            owners.setdefault(owner, []).append(account_id)

        if not owners:
            raise AccountsWithNoOwnerError(parent_id)
        logger.debug(f"Found {len(owners)} owners across {len(account_ids)} accounts in {parent_id}")
        return owners
