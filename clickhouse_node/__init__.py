from clickhouse_node.common import version
from clickhouse_node.driver import create_transport, normalize_credentials
from clickhouse_node.node import ClickHouseNode, NodeDefaults


def get_node(**kwargs):
    return ClickHouseNode(**kwargs)
