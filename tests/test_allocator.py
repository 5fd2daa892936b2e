"""
Tests for account allocation.
"""

from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from acctpool.allocator import Allocator
from acctpool.errors import (
    AllocationConflictError,
    NoAccountsInRootError,
    NoUntaggedAccountsError,
)
from acctpool.locking import InMemoryAccountLock
from acctpool.models import AccountStatus
from acctpool.provision import AccountProvisioner
from acctpool.tags import ClaimState, claim_state

ROOT_ID = "r-0wd6"
CLAIMED_OU_ID = "ou-0wd6-z6tzkjek"


@pytest.fixture
def allocator(gateway, payer):
    return Allocator(gateway.organizations, payer)


class TestAllocation:
    """Test the happy path and pool exhaustion."""

    def test_assigns_free_account(self, cloud, allocator):
        """Test a free account is tagged and moved to the claimed OU."""
        cloud.add_account("111111111111", ROOT_ID)

        result = allocator.run("alice")

        assert result.account_id == "111111111111"
        assert result.username == "alice"
        assert result.payer == "osd-staging-1"
        assert not result.created
        assert cloud.accounts["111111111111"].tags == {"owner": "alice", "claimed": "true"}
        assert cloud.accounts["111111111111"].parent_id == CLAIMED_OU_ID
        assert cloud.calls == [
            ("TagResource", "111111111111", {"owner": "alice", "claimed": "true"}),
            ("MoveAccount", "111111111111", ROOT_ID, CLAIMED_OU_ID),
        ]

    def test_find_untagged_account(self, cloud, allocator):
        cloud.add_account("111111111111", ROOT_ID)

        assert allocator.find_untagged_account(ROOT_ID) == "111111111111"
        assert cloud.calls == []

    def test_partially_tagged_is_not_free(self, cloud, allocator):
        """Test an account with claimed but no owner is never handed out."""
        cloud.add_account("222222222222", ROOT_ID, tags={"claimed": "true"})

        with pytest.raises(NoUntaggedAccountsError):
            allocator.run("alice")
        assert cloud.calls == []

    def test_owner_without_claimed_is_not_free(self, cloud, allocator):
        cloud.add_account("222222222222", ROOT_ID, tags={"owner": "bob"})
        cloud.add_account("333333333333", ROOT_ID)

        assert allocator.run("alice").account_id == "333333333333"
        assert cloud.accounts["222222222222"].tags == {"owner": "bob"}

    def test_skips_claimed_accounts(self, cloud, allocator):
        cloud.add_account("111111111111", ROOT_ID, tags={"owner": "bob", "claimed": "true"})
        cloud.add_account("222222222222", ROOT_ID)

        assert allocator.run("alice").account_id == "222222222222"
        assert cloud.accounts["111111111111"].tags["owner"] == "bob"

    def test_suspended_account_never_eligible(self, cloud, allocator):
        cloud.add_account("111111111111", ROOT_ID, status=AccountStatus.SUSPENDED)

        with pytest.raises(NoUntaggedAccountsError):
            allocator.run("alice")

        cloud.add_account("222222222222", ROOT_ID)
        assert allocator.run("alice").account_id == "222222222222"

    def test_empty_root(self, allocator):
        with pytest.raises(NoAccountsInRootError):
            allocator.run("alice")

    def test_empty_owner_rejected_before_any_call(self, cloud, allocator):
        cloud.add_account("111111111111", ROOT_ID)

        with pytest.raises(ValueError):
            allocator.run("")
        assert cloud.calls == []

    def test_owner_whitespace_is_stripped(self, cloud, allocator):
        """Test a padded username is claimed and moved under its stripped form."""
        cloud.add_account("111111111111", ROOT_ID)

        result = allocator.run(" alice\n")

        assert result.username == "alice"
        assert cloud.accounts["111111111111"].tags == {"owner": "alice", "claimed": "true"}
        assert cloud.accounts["111111111111"].parent_id == CLAIMED_OU_ID

    def test_tag_invariant(self, cloud, allocator):
        """Test every allocated account ends up fully claimed in the claimed OU."""
        for n in range(1, 4):
            cloud.add_account(f"{n}" * 12, ROOT_ID)

        for user in ("alice", "bob", "carol"):
            result = allocator.run(user)
            account = cloud.accounts[result.account_id]
            assert claim_state(account.tags) is ClaimState.CLAIMED
            assert account.tags["owner"] == user
            assert account.parent_id == CLAIMED_OU_ID

        with pytest.raises(NoUntaggedAccountsError):
            allocator.run("dave")

    def test_str(self, cloud, allocator):
        cloud.add_account("111111111111", ROOT_ID)

        assert str(allocator.run("alice")) == "  Username: alice\n  Account: 111111111111\n"


class TestAllocationRace:
    """Test concurrent assigns never share an account."""

    def test_locked_candidate_is_skipped(self, cloud, gateway, payer):
        cloud.add_account("111111111111", ROOT_ID)
        cloud.add_account("222222222222", ROOT_ID)
        lock = InMemoryAccountLock()
        lock.acquire("111111111111", "someone-else")

        result = Allocator(gateway.organizations, payer, lock=lock).run("alice")

        assert result.account_id == "222222222222"
        assert lock.holder("111111111111") == "someone-else"
        assert lock.holder("222222222222") is None

    def test_claimed_after_listing_is_skipped(self, cloud, gateway, payer):
        """Test the tags are read again under the lock before writing."""
        cloud.add_account("111111111111", ROOT_ID)
        cloud.add_account("222222222222", ROOT_ID)
        orgs = gateway.organizations
        original = orgs.list_tags_for_resource
        reads = {}

        def racing_read(account_id):
            reads[account_id] = reads.get(account_id, 0) + 1
            if account_id == "111111111111" and reads[account_id] == 2:
                cloud.accounts[account_id].tags.update({"owner": "bob", "claimed": "true"})
            return original(account_id)

        with patch.object(orgs, "list_tags_for_resource", side_effect=racing_read):
            result = Allocator(orgs, payer).run("alice")

        assert result.account_id == "222222222222"
        assert cloud.accounts["111111111111"].tags["owner"] == "bob"
        assert cloud.accounts["111111111111"].parent_id == ROOT_ID

    def test_overwritten_tags_raise_conflict(self, cloud, gateway, payer):
        """Test the write is read back and a different owner stops the move."""
        cloud.add_account("111111111111", ROOT_ID)
        orgs = gateway.organizations
        original = orgs.tag_resource

        def racing_write(account_id, tags):
            original(account_id, tags)
            cloud.accounts[account_id].tags["owner"] = "bob"

        lock = InMemoryAccountLock()
        with patch.object(orgs, "tag_resource", side_effect=racing_write):
            with pytest.raises(AllocationConflictError) as exc_info:
                Allocator(orgs, payer, lock=lock).run("alice")

        assert exc_info.value.actual_owner == "bob"
        assert "MoveAccount" not in cloud.operations()
        assert lock.holder("111111111111") is None

    def test_moved_after_listing_is_skipped(self, cloud, gateway, payer):
        """Test the parent is checked again under the lock before writing."""
        cloud.add_account("111111111111", ROOT_ID)
        cloud.add_account("222222222222", ROOT_ID)
        orgs = gateway.organizations
        original = orgs.list_tags_for_resource
        reads = {}

        def racing_read(account_id):
            reads[account_id] = reads.get(account_id, 0) + 1
            if account_id == "111111111111" and reads[account_id] == 2:
                cloud.accounts[account_id].parent_id = CLAIMED_OU_ID
            return original(account_id)

        with patch.object(orgs, "list_tags_for_resource", side_effect=racing_read):
            result = Allocator(orgs, payer).run("alice")

        assert result.account_id == "222222222222"
        assert cloud.accounts["111111111111"].tags == {}

    def test_unlocked_assign_finishing_first_raises_conflict(self, cloud, payer):
        """Test a whole assign landing inside our tag write is reported, not surfaced as a move error."""
        cloud.add_account("111111111111", ROOT_ID)
        first, second = cloud.gateway(), cloud.gateway()
        original = second.organizations.tag_resource
        results = []

        def racing_write(account_id, tags):
            results.append(Allocator(first.organizations, payer).run("alice"))
            original(account_id, tags)

        with patch.object(second.organizations, "tag_resource", side_effect=racing_write):
            with pytest.raises(AllocationConflictError) as exc_info:
                Allocator(second.organizations, payer).run("bob")

        assert results[0].account_id == "111111111111"
        assert exc_info.value.account_id == "111111111111"
        assert exc_info.value.expected_owner == "bob"
        assert CLAIMED_OU_ID in str(exc_info.value)
        assert cloud.accounts["111111111111"].parent_id == CLAIMED_OU_ID
        assert cloud.operations().count("MoveAccount") == 1

    def test_other_move_errors_propagate(self, cloud, gateway, payer):
        cloud.add_account("111111111111", ROOT_ID)
        cloud.fail("MoveAccount", "111111111111", "ConcurrentModificationException")

        with pytest.raises(ClientError) as exc_info:
            Allocator(gateway.organizations, payer).run("alice")

        assert exc_info.value.response["Error"]["Code"] == "ConcurrentModificationException"
        assert cloud.accounts["111111111111"].parent_id == ROOT_ID


class TestCreateIfExhausted:
    """Test new accounts are created when the pool is empty."""

    def make_allocator(self, gateway, payer):
        provisioner = AccountProvisioner(gateway.organizations, payer, sleep=lambda _: None)
        return Allocator(gateway.organizations, payer, provisioner=provisioner)

    def test_creates_and_claims(self, cloud, gateway, payer):
        cloud.add_account("111111111111", ROOT_ID, tags={"owner": "bob", "claimed": "true"})
        cloud.create_outcomes = [{"states": ["IN_PROGRESS", "SUCCEEDED"], "account_id": "555555555555"}]

        result = self.make_allocator(gateway, payer).run("alice", create_if_exhausted=True)

        assert result.account_id == "555555555555"
        assert result.created
        assert cloud.accounts["555555555555"].tags == {"owner": "alice", "claimed": "true"}
        assert cloud.accounts["555555555555"].parent_id == CLAIMED_OU_ID

    def test_empty_root_creates(self, cloud, gateway, payer):
        result = self.make_allocator(gateway, payer).run("alice", create_if_exhausted=True)

        assert result.created
        assert cloud.operations()[0] == "CreateAccount"

    def test_flag_required(self, cloud, gateway, payer):
        with pytest.raises(NoAccountsInRootError):
            self.make_allocator(gateway, payer).run("alice")
        assert cloud.calls == []

    def test_no_provisioner(self, allocator):
        with pytest.raises(NoAccountsInRootError):
            allocator.run("alice", create_if_exhausted=True)
