"""
Reclamation orchestrator: returns claimed accounts to the pool.

For each target account: remove the claim tags, move it back to the payer
root, assume the admin role inside it and tear down its IAM contents. The
first three steps stop the whole run on error; the teardown keeps going past
individual failures and reports them.
"""

from typing import Callable, Iterable, List, Optional
import logging

from botocore.exceptions import BotoCoreError, ClientError

from ..config import PayerConfig, Settings
from ..errors import NoAccountsForUserError, NoResourcesError, ProtectedAccountError, ReclamationAbortedError
from ..gateway.base import CloudGateway, IamGateway
from ..ownership import OwnershipIndex
from ..pool import PoolScanner
from ..tags import CLAIM_TAG_KEYS, get_owner, is_reserved_owner
from .models import AccountReclamation, OutcomeStatus, ReclamationReport
from .teardown import IamTeardown

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


class Reclaimer:
    def __init__(self, gateway: CloudGateway, payer: PayerConfig, confirm: Confirm,
                 reserved_owners: Iterable[str] = (), reserved_prefixes: Iterable[str] = (),
                 session_name_prefix: str = "acctpool"):
        self.gateway = gateway
        self.payer = payer
        self.confirm = confirm
        self.reserved_owners = tuple(reserved_owners)
        self.reserved_prefixes = tuple(reserved_prefixes)
        self.session_name_prefix = session_name_prefix
        self.scanner = PoolScanner(gateway.organizations)
        self.ownership = OwnershipIndex(gateway.organizations, gateway.tagging)

    @classmethod
    def from_settings(cls, gateway: CloudGateway, settings: Settings, payer: PayerConfig,
                      confirm: Confirm) -> "Reclaimer":
        return cls(
            gateway, payer, confirm,
            reserved_owners=settings.reserved_owners,
            reserved_prefixes=settings.reserved_prefixes,
            session_name_prefix=settings.session_name_prefix,
        )

    def _is_reserved(self, owner: str) -> bool:
        return is_reserved_owner(owner, self.reserved_owners, self.reserved_prefixes)

    # target resolution

    def check_reclaimable(self, account_id: str) -> Optional[str]:
        """
        Make sure an account is not owned by a system identifier.

        Returns:
            The account's owner, or None if it has no owner tag

        Raises:
            ProtectedAccountError: If the owner is reserved
        """
        owner = get_owner(self.scanner.list_tags(account_id))
        if owner and self._is_reserved(owner):
            raise ProtectedAccountError(owner, account_id)
        return owner

    def list_accounts_from_user(self, username: str) -> List[str]:
        """
        Raises:
            ProtectedAccountError: If the username is reserved
            NoAccountsForUserError: If the user owns no accounts
        """
        if self._is_reserved(username):
            raise ProtectedAccountError(username)
        try:
            return self.ownership.list_accounts_by_user(username)
        except NoResourcesError:
            raise NoAccountsForUserError(username) from None

    def resolve_targets(self, account_id: Optional[str] = None, username: Optional[str] = None) -> List[str]:
        """Account ids to reclaim, checked against the reserved owners."""
        if not account_id and not username:
            raise ValueError("Either an account id or a username is required")

        targets: List[str] = []
        if account_id:
            self.check_reclaimable(account_id)
            targets.append(account_id)
        if username:
            for user_account in self.list_accounts_from_user(username):
                if user_account not in targets:
                    targets.append(user_account)
        return targets

    # fail-fast steps

    def untag_account(self, account_id: str, result: AccountReclamation) -> None:
        result.stage = "untag"
        tags = self.scanner.list_tags(account_id)
        present = [key for key in CLAIM_TAG_KEYS if key in tags]
        if not present:
            result.record("tags", ",".join(CLAIM_TAG_KEYS), OutcomeStatus.SKIPPED, "not tagged")
            return
        logger.info(f"Removing tags {present} from account {account_id}")
        self.gateway.organizations.untag_resource(account_id, list(CLAIM_TAG_KEYS))
        result.record("tags", ",".join(present), OutcomeStatus.SUCCEEDED)

    def move_account(self, account_id: str, source_id: str, destination_id: str) -> None:
        logger.info(f"Moving account {account_id} from {source_id} to {destination_id}")
        self.gateway.organizations.move_account(account_id, source_id, destination_id)

    def return_to_root(self, account_id: str, result: AccountReclamation) -> None:
        result.stage = "move"
        parent = self.scanner.get_parent(account_id)
        if parent == self.payer.root_id:
            result.record("parent", self.payer.root_id, OutcomeStatus.SKIPPED, "already in root")
            return
        self.move_account(account_id, parent, self.payer.root_id)
        result.record("parent", f"{parent}->{self.payer.root_id}", OutcomeStatus.SUCCEEDED)

    def session_name(self, account_id: str) -> str:
        # RoleSessionName is limited to 64 characters
        return f"{self.session_name_prefix}-{account_id}"[:64]

    def assume_role_for_account(self, account_id: str) -> IamGateway:
        """
        Get an IAM client inside ``account_id``.

        Walks the payer's role chain (jump roles) first, then assumes the
        admin role in the target account from the last session.
        """
        session_name = self.session_name(account_id)
        duration = self.payer.session_duration
        sts = self.gateway.sts
        for role_arn in self.payer.role_chain:
            logger.debug(f"Assuming jump role {role_arn}")
            sts = self.gateway.sts_for(sts.assume_role(role_arn, session_name, duration))

        target_arn = self.payer.admin_role_arn(account_id)
        logger.info(f"Assuming {target_arn}")
        credentials = sts.assume_role(target_arn, session_name, duration)
        return self.gateway.iam_for(credentials)

    # orchestration

    def reclaim_account(self, account_id: str, result: Optional[AccountReclamation] = None) -> AccountReclamation:
        """
        Reclaim one account without asking for confirmation.

        AWS errors from the fail-fast steps propagate; ``result.stage`` tells
        how far the account got.
        """
        result = result or AccountReclamation(account_id)
        self.untag_account(account_id, result)
        self.return_to_root(account_id, result)
        result.stage = "assume-role"
        iam = self.assume_role_for_account(account_id)
        IamTeardown(iam, result, self.payer.admin_role_name).run()
        return result

    def reclaim_accounts(self, targets: List[str]) -> ReclamationReport:
        """
        Reclaim already-checked accounts one after the other.

        Raises:
            ReclamationAbortedError: If untag, move, assume-role or a top
                level IAM listing failed; carries the report so far
        """
        report = ReclamationReport()
        for target in targets:
            result = AccountReclamation(target)
            report.accounts.append(result)
            try:
                self.reclaim_account(target, result)
            except (ClientError, BotoCoreError) as e:
                result.record(result.stage, target, OutcomeStatus.FAILED, str(e))
                raise ReclamationAbortedError(target, result.stage, e, report) from e

            if result.failed:
                logger.warning(f"Account {target} reclaimed with {len(result.failed)} failed artifact(s)")
            else:
                logger.info(f"Account {target} reclaimed")
        return report

    def reclaim_user(self, username: str) -> ReclamationReport:
        """Reclaim every account owned by ``username`` without asking."""
        return self.reclaim_accounts(self.list_accounts_from_user(username))

    def run(self, account_id: Optional[str] = None, username: Optional[str] = None) -> ReclamationReport:
        """
        Reclaim an account, or every account of a user, after confirmation.

        Returns:
            ReclamationReport; ``declined`` is set when the operator said no

        Raises:
            ProtectedAccountError: Before any change, for reserved owners
            OwnershipResolutionError: If the user owns no accounts
            ReclamationAbortedError: If untag, move, assume-role or a top
                level IAM listing failed
        """
        targets = self.resolve_targets(account_id=account_id, username=username)

        if not self.confirm(f"Are you sure you want to unassign account(s) {', '.join(targets)}?"):
            logger.info("Unassign cancelled by operator")
            return ReclamationReport(declined=True)

        return self.reclaim_accounts(targets)
