"""
Allocator: hands a free pool account to a developer.

An account is handed out in three API calls (tag, verify, move) with no
transaction around them. Candidates are therefore locked, re-checked right
before the write and read back after it, so a concurrent ``assign`` never
silently takes over an account someone else was just given.
"""

from typing import Iterator, Optional
import logging

from botocore.exceptions import ClientError

from .config import PayerConfig
from .errors import AllocationConflictError, NoUntaggedAccountsError, PoolExhaustedError
from .gateway.base import OrganizationsGateway
from .locking import AccountLock, NullAccountLock, new_holder_id
from .models import Account, AllocationResult
from .pool import PoolScanner
from .provision import AccountProvisioner
from .tags import OWNER_TAG, ClaimState, claim_state, claim_tags, get_owner

logger = logging.getLogger(__name__)

# MoveAccount errors seen when the account already left the source parent
MOVED_ERROR_CODES = ("AccountNotFoundException", "SourceParentNotFoundException")


class Allocator:
    def __init__(self, organizations: OrganizationsGateway, payer: PayerConfig,
                 lock: Optional[AccountLock] = None,
                 provisioner: Optional[AccountProvisioner] = None):
        self.organizations = organizations
        self.scanner = PoolScanner(organizations)
        self.payer = payer
        self.lock = lock or NullAccountLock()
        self.provisioner = provisioner

    def iter_untagged_accounts(self, root_id: str) -> Iterator[Account]:
        """
        Yield eligible accounts under ``root_id`` in listing order.

        Tags are read lazily, one account at a time, so the first match costs
        as few API calls as possible.

        Raises:
            NoAccountsInRootError: If the root holds no accounts
        """
        for account in self.scanner.list_pool_accounts(root_id):
            if not account.is_active:
                logger.debug(f"Skipping account {account.id}: status {account.status.value}")
                continue

            tags = self.scanner.list_tags(account.id)
            state = claim_state(tags)
            if state is ClaimState.PARTIALLY_TAGGED:
                logger.warning(f"Account {account.id} is partially tagged ({tags}); not eligible, needs manual review")
                continue
            if state is ClaimState.CLAIMED:
                continue

            account.tags = tags
            yield account

    def find_untagged_account(self, root_id: str) -> str:
        """
        Return the first account under ``root_id`` that is active and carries
        neither the owner nor the claimed tag.

        Raises:
            NoAccountsInRootError: If the root holds no accounts
            NoUntaggedAccountsError: If no account qualifies
        """
        for account in self.iter_untagged_accounts(root_id):
            return account.id
        raise NoUntaggedAccountsError(root_id)

    def tag_account(self, account_id: str, owner: str) -> None:
        logger.info(f"Tagging account {account_id} with owner={owner}")
        self.organizations.tag_resource(account_id, claim_tags(owner))

    def move_account(self, account_id: str, source_id: str, destination_id: str) -> None:
        logger.info(f"Moving account {account_id} from {source_id} to {destination_id}")
        self.organizations.move_account(account_id, source_id, destination_id)

    def _claim(self, account_id: str, owner: str) -> bool:
        """
        Claim one candidate while holding its lock.

        Returns:
            False if the candidate stopped being free before the write

        Raises:
            AllocationConflictError: If another writer claimed the account
                between our re-check and our move
        """
        holder = new_holder_id(owner)
        if not self.lock.acquire(account_id, holder):
            logger.info(f"Account {account_id} is being allocated elsewhere, trying the next one")
            return False

        try:
            state = claim_state(self.scanner.list_tags(account_id))
            if state is not ClaimState.FREE:
                logger.info(f"Account {account_id} was claimed since it was listed ({state.value}), trying the next one")
                return False
            parent = self.scanner.get_parent(account_id)
            if parent != self.payer.root_id:
                logger.info(f"Account {account_id} left {self.payer.root_id} since it was listed "
                            f"(now in {parent}), trying the next one")
                return False

            self.tag_account(account_id, owner)

            actual_owner = get_owner(self.scanner.list_tags(account_id))
            if actual_owner != owner:
                raise AllocationConflictError(account_id, owner, actual_owner)

            try:
                self.move_account(account_id, self.payer.root_id, self.payer.claimed_ou_id)
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code")
                if code not in MOVED_ERROR_CODES:
                    raise
                parent = self.scanner.get_parent(account_id)
                if parent == self.payer.root_id:
                    raise
                logger.error(f"Account {account_id} was moved to {parent} by a concurrent assign after we "
                             f"tagged it for {owner}; its owner tag needs manual review")
                raise AllocationConflictError(
                    account_id, owner, None,
                    detail=f"moved to {parent} by another writer, owner tag overwritten with {owner}",
                ) from e
            return True
        finally:
            self.lock.release(account_id, holder)

    def run(self, owner: str, create_if_exhausted: bool = False) -> AllocationResult:
        """
        Allocate an account from the payer's pool to ``owner``.

        Args:
            owner: Username written to the owner tag, surrounding whitespace
                is stripped
            create_if_exhausted: Create a new member account when the pool
                has nothing eligible (needs a provisioner)

        Returns:
            AllocationResult naming the account

        Raises:
            NoAccountsInRootError: If the payer root is empty
            NoUntaggedAccountsError: If every account is claimed
            AllocationConflictError: If another writer claimed the account
                while we were tagging or moving it
            ValueError: If owner is empty
        """
        owner = claim_tags(owner)[OWNER_TAG]

        try:
            for account in self.iter_untagged_accounts(self.payer.root_id):
                if self._claim(account.id, owner):
                    logger.info(f"Assigned account {account.id} to {owner}")
                    return AllocationResult(username=owner, account_id=account.id, payer=self.payer.name)
            raise NoUntaggedAccountsError(self.payer.root_id)
        except PoolExhaustedError:
            if not (create_if_exhausted and self.provisioner):
                raise

        logger.info(f"No free accounts under {self.payer.root_id}, creating a new one")
        account_id = self.provisioner.create_account()
        if not self._claim(account_id, owner):
            raise NoUntaggedAccountsError(self.payer.root_id)
        return AllocationResult(username=owner, account_id=account_id, payer=self.payer.name, created=True)
