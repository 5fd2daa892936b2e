"""
Advisory per-account locks for allocation.

Organizations has no conditional tag write, so two ``assign`` runs against
the same pool can both see an account as free. Holding a lock on the account
id from the final tag check until the move has finished closes that window.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging
import os
import socket
import threading
import time
import uuid

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = 300


def new_holder_id(owner: str) -> str:
    """Unique id for one allocation attempt, readable in the lock table."""
    return f"{owner}@{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class AccountLock(ABC):

    @abstractmethod
    def acquire(self, account_id: str, holder: str) -> bool:
        """Take the lock, returning False if someone else holds it."""

    @abstractmethod
    def release(self, account_id: str, holder: str) -> None:
        pass


class NullAccountLock(AccountLock):
    """Always grants. Used when no lock table is configured."""

    def __init__(self):
        self._warned = False

    def acquire(self, account_id: str, holder: str) -> bool:
        if not self._warned:
            logger.warning("No lock table configured; concurrent assigns against this pool can overwrite each other")
            self._warned = True
        return True

    def release(self, account_id: str, holder: str) -> None:
        pass


class InMemoryAccountLock(AccountLock):
    """Process-local lock, for tests and single-host use."""

    def __init__(self):
        self._holders: Dict[str, str] = {}
        self._mutex = threading.Lock()

    def acquire(self, account_id: str, holder: str) -> bool:
        with self._mutex:
            current = self._holders.get(account_id)
            if current is not None and current != holder:
                return False
            self._holders[account_id] = holder
            return True

    def release(self, account_id: str, holder: str) -> None:
        with self._mutex:
            if self._holders.get(account_id) == holder:
                del self._holders[account_id]

    def holder(self, account_id: str) -> Optional[str]:
        return self._holders.get(account_id)


class DynamoDBAccountLock(AccountLock):
    """
    Lock items in a DynamoDB table keyed by ``account_id``.

    Items carry an ``expires_at`` epoch so a crashed holder does not block the
    account forever; enable DynamoDB TTL on that attribute to clean them up.
    """

    def __init__(self, table_name: str, region: str, session: Optional[boto3.Session] = None,
                 ttl_seconds: int = DEFAULT_LOCK_TTL):
        session = session or boto3.Session(region_name=region)
        self.table = session.resource("dynamodb", region_name=region).Table(table_name)
        self.ttl_seconds = ttl_seconds

    def acquire(self, account_id: str, holder: str) -> bool:
        now = int(time.time())
        try:
            self.table.put_item(
                Item={"account_id": account_id, "holder": holder, "expires_at": now + self.ttl_seconds},
                ConditionExpression="attribute_not_exists(account_id) OR expires_at < :now",
                ExpressionAttributeValues={":now": now},
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.info(f"Account {account_id} is locked by another allocation")
                return False
            raise
        logger.debug(f"Locked account {account_id} as {holder}")
        return True

    def release(self, account_id: str, holder: str) -> None:
        try:
            self.table.delete_item(
                Key={"account_id": account_id},
                ConditionExpression="holder = :holder",
                ExpressionAttributeValues={":holder": holder},
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.warning(f"Lock on account {account_id} expired before release")
                return
            raise


def lock_for_payer(payer, session: Optional[boto3.Session] = None) -> AccountLock:
    """DynamoDB lock when the payer has a lock table, otherwise NullAccountLock."""
    if payer.lock_table:
        if session is None:
            session = boto3.Session(profile_name=payer.aws_profile, region_name=payer.region)
        return DynamoDBAccountLock(payer.lock_table, payer.region, session=session)
    return NullAccountLock()
