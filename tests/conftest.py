import copy

import pytest
import pytest_asyncio

from fake_node import FUNDING, PROPOSER, TRANSFER_FROM, FakeNode
from race_oracle.config import load_config
from race_oracle.rpc import NodeClient


@pytest.fixture
def config():
    conf = copy.deepcopy(load_config())
    conf["node"]["rpc_url"] = "http://fake-node:8545"
    conf["finality"].update({"mode": "poll", "blocks": 1, "poll_interval": 0, "max_polls": 5})
    conf["timeout"].update({"rpc": 5.0, "submit": 5.0, "startup": 10, "startup_retries": 3, "startup_retry_delay": 0})
    conf["accounts"].update({"proposer": PROPOSER, "transfer_from": TRANSFER_FROM, "funding": FUNDING, "sink": FUNDING})
    return conf


@pytest.fixture
def node():
    return FakeNode()


@pytest_asyncio.fixture
async def client(node, config):
    async with NodeClient.from_config(config, transport=node.transport) as c:
        yield c
