"""
Pool scanner: reads accounts and their tags from Organizations.
"""

from typing import Dict, List
import logging

from .errors import NoAccountsInRootError
from .gateway.base import OrganizationsGateway
from .models import Account

logger = logging.getLogger(__name__)


class PoolScanner:
    """Read-only view over the accounts of one payer organization."""

    def __init__(self, organizations: OrganizationsGateway):
        self.organizations = organizations

    def list_pool_accounts(self, parent_id: str) -> List[Account]:
        """
        List every account directly under an OU or root.

        Args:
            parent_id: Root id (r-xxxx) or OU id (ou-xxxx-yyyyyyyy)

        Returns:
            Accounts in listing order

        Raises:
            NoAccountsInRootError: If the parent holds no accounts
        """
        accounts = self.organizations.list_accounts_for_parent(parent_id)
        if not accounts:
            raise NoAccountsInRootError(parent_id)
        return accounts

    def list_tags(self, account_id: str) -> Dict[str, str]:
        tags = self.organizations.list_tags_for_resource(account_id)
        logger.debug(f"Account {account_id} tags: {tags}")
        return tags

    def get_parent(self, account_id: str) -> str:
        return self.organizations.list_parent(account_id)
