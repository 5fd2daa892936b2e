"""
Creation of new member accounts when the pool runs dry.
"""

import random
import string
import time
from typing import Callable, Optional
import logging

from .config import PayerConfig
from .errors import (
    AccountCreationFailedError,
    AccountLimitExceededError,
    AwsInternalFailureError,
    EmailAlreadyExistsError,
)
from .gateway.base import OrganizationsGateway

logger = logging.getLogger(__name__)

FAILURE_REASONS = {
    "ACCOUNT_LIMIT_EXCEEDED": AccountLimitExceededError,
    "EMAIL_ALREADY_EXISTS": EmailAlreadyExistsError,
    "INTERNAL_FAILURE": AwsInternalFailureError,
}


def random_suffix(length: int = 6, rng: Optional[random.Random] = None) -> str:
    """Random lowercase alphanumeric string used in new account names."""
    chooser = rng or random
    return "".join(chooser.choices(string.ascii_lowercase + string.digits, k=length))


class AccountProvisioner:
    """Creates accounts named ``<prefix>+<suffix>`` with a matching email."""

    def __init__(self, organizations: OrganizationsGateway, payer: PayerConfig,
                 poll_interval: float = 5.0, max_polls: int = 120, max_attempts: int = 5,
                 sleep: Callable[[float], None] = time.sleep, rng: Optional[random.Random] = None):
        self.organizations = organizations
        self.payer = payer
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.rng = rng

    def account_identity(self):
        name = f"{self.payer.account_name_prefix}+{random_suffix(rng=self.rng)}"
        return name, f"{name}@{self.payer.account_email_domain}"

    def create_account(self) -> str:
        """
        Create a new member account and wait for it.

        A clashing email is retried with a fresh random name.

        Returns:
            The new account id

        Raises:
            AccountProvisioningError: If creation fails or never completes
        """
        for attempt in range(1, self.max_attempts + 1):
            name, email = self.account_identity()
            logger.info(f"Creating account {name} (attempt {attempt}/{self.max_attempts})")
            try:
                return self._create_and_wait(name, email)
            except EmailAlreadyExistsError:
                logger.warning(f"Email {email} already in use, retrying with a new name")
        raise EmailAlreadyExistsError(f"could not find an unused account email after {self.max_attempts} attempts")

    def _create_and_wait(self, name: str, email: str) -> str:
        request_id = self.organizations.create_account(name, email)

        for _ in range(self.max_polls):
            status = self.organizations.describe_create_account_status(request_id)
            state = status.get("State")
            if state == "SUCCEEDED":
                account_id = status["AccountId"]
                logger.info(f"Created account {account_id} ({name})")
                return account_id
            if state == "FAILED":
                reason = status.get("FailureReason", "UNKNOWN")
                error_cls = FAILURE_REASONS.get(reason, AccountCreationFailedError)
                raise error_cls(f"account creation {request_id} failed: {reason}")
            self.sleep(self.poll_interval)

        raise AccountCreationFailedError(f"account creation {request_id} still in progress after {self.max_polls} polls")
