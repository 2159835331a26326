import os
import random
import time
from typing import Iterator, NamedTuple

import pytest
import pytest_asyncio
from pytest import fixture

from clickhouse_node.driver.credentials import Credentials, normalize_credentials
from clickhouse_node.driver.transport import AiohttpTransport, Transport


class TestConfig(NamedTuple):
    host: str
    port: int
    protocol: str
    username: str
    password: str
    test_database: str
    __test__ = False


def pytest_collection_modifyitems(items):
    if os.environ.get('CLICKHOUSE_NODE_TEST_HOST'):
        return
    skip = pytest.mark.skip(reason='CLICKHOUSE_NODE_TEST_HOST is not set')
    for item in items:
        if 'integration_tests' in str(item.path):
            item.add_marker(skip)


@fixture(scope='session', name='test_config')
def test_config_fixture() -> Iterator[TestConfig]:
    host = os.environ.get('CLICKHOUSE_NODE_TEST_HOST', 'localhost')
    port = int(os.environ.get('CLICKHOUSE_NODE_TEST_PORT', '8123'))
    protocol = os.environ.get('CLICKHOUSE_NODE_TEST_PROTOCOL', 'http')
    username = os.environ.get('CLICKHOUSE_NODE_TEST_USER', 'default')
    password = os.environ.get('CLICKHOUSE_NODE_TEST_PASSWORD', '')
    test_database = f'ch_node__{random.randint(100000, 999999)}__{int(time.time() * 1000)}'
    yield TestConfig(host, port, protocol, username, password, test_database)


@fixture(name='transport')
def transport_fixture() -> Transport:
    return AiohttpTransport()


@fixture(name='raw_credentials')
def raw_credentials_fixture(test_config: TestConfig):
    return {'protocol': test_config.protocol,
            'host': test_config.host,
            'port': test_config.port,
            'username': test_config.username,
            'password': test_config.password,
            'defaultDatabase': test_config.test_database}


@pytest_asyncio.fixture(name='credentials')
async def credentials_fixture(raw_credentials, test_config: TestConfig, transport: Transport) -> Credentials:
    server = normalize_credentials(dict(raw_credentials, defaultDatabase=None))
    await transport.request(server, f'CREATE DATABASE IF NOT EXISTS {test_config.test_database}')
    yield normalize_credentials(raw_credentials)
    await transport.request(server, f'DROP DATABASE IF EXISTS {test_config.test_database}')
