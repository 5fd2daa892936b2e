"""
Shared fixtures: an in-memory payer organization laid out like osd-staging-1.
"""

import pytest

from acctpool.config import PayerConfig
from acctpool.gateway.memory import MemoryCloud

ROOT_ID = "r-0wd6"
CLAIMED_OU_ID = "ou-0wd6-z6tzkjek"


@pytest.fixture
def payer():
    return PayerConfig(name="osd-staging-1", root_id=ROOT_ID, claimed_ou_id=CLAIMED_OU_ID)


@pytest.fixture
def cloud():
    cloud = MemoryCloud(payer_id="999999999999")
    cloud.new_account_parent = ROOT_ID
    return cloud


@pytest.fixture
def gateway(cloud):
    return cloud.gateway()
