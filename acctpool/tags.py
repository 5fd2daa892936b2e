"""
Tag conventions for claimed accounts.

An account is claimed when it carries both ``owner`` and ``claimed``. Having
only one of them is an anomaly left behind by an interrupted write; such an
account is never handed out again until someone looks at it.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional

OWNER_TAG = "owner"
CLAIMED_TAG = "claimed"
CLAIM_TAG_KEYS = (OWNER_TAG, CLAIMED_TAG)

# Organizations account ids are always 12 digits
ACCOUNT_ID_LENGTH = 12


class ClaimState(Enum):
    FREE = "free"
    CLAIMED = "claimed"
    PARTIALLY_TAGGED = "partially_tagged"


def claim_tags(owner: str) -> Dict[str, str]:
    """
    Build the tag set written when an account is handed to ``owner``.

    Raises:
        ValueError: If owner is empty
    """
    if not owner or not owner.strip():
        raise ValueError("Owner must not be empty")
    return {OWNER_TAG: owner.strip(), CLAIMED_TAG: "true"}


def claim_state(tags: Dict[str, str]) -> ClaimState:
    """Derive the claim state from an account's tags."""
    has_owner = OWNER_TAG in tags
    has_claimed = CLAIMED_TAG in tags
    if has_owner and has_claimed:
        return ClaimState.CLAIMED
    if has_owner or has_claimed:
        return ClaimState.PARTIALLY_TAGGED
    return ClaimState.FREE


def get_owner(tags: Dict[str, str]) -> Optional[str]:
    return tags.get(OWNER_TAG)


def tags_from_aws(tag_list: Iterable[Dict[str, str]]) -> Dict[str, str]:
    """Convert ``[{"Key": k, "Value": v}, ...]`` into a plain dictionary."""
    return {tag["Key"]: tag.get("Value", "") for tag in tag_list}


def tags_to_aws(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def account_id_from_arn(arn: str) -> str:
    """
    Extract the account id from an Organizations account ARN.

    ARN format: arn:aws:organizations::<payer>:account/o-xxxx/<account-id>

    Raises:
        ValueError: If the ARN does not end in a 12 digit account id
    """
    account_id = arn[-ACCOUNT_ID_LENGTH:]
    if len(arn) < ACCOUNT_ID_LENGTH or not account_id.isdigit():
        raise ValueError(f"Invalid account ARN: {arn}")
    return account_id


def is_account_arn(arn: str) -> bool:
    """True for Organizations account ARNs."""
    parts = arn.split(":")
    if len(parts) < 6 or parts[2] != "organizations":
        return False
    return parts[5].startswith("account/")


def is_reserved_owner(owner: str, reserved_owners: Iterable[str] = (), reserved_prefixes: Iterable[str] = ()) -> bool:
    """
    Check whether an owner is a system identifier rather than a developer.

    Args:
        owner: Value of the owner tag or a username
        reserved_owners: Exact names (hive shards)
        reserved_prefixes: Name prefixes reserved for system owners

    Returns:
        True if the owner must never be reclaimed by hand
    """
    if owner in set(reserved_owners):
        return True
    return any(owner.startswith(prefix) for prefix in reserved_prefixes if prefix)
