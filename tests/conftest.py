import pytest

from clickhouse_node import common, json_impl


@pytest.fixture(autouse=True)
def clean_global_state():
    yield
    common.set_setting('product_name', '')
    json_impl.set_json_library()
