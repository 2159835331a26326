import sys
from importlib.metadata import PackageNotFoundError, version as dist_version
from typing import Any, Dict, Optional

from clickhouse_node.driver.exceptions import ProgrammingError

# Package wide settings.  product_name prefixes the User-Agent sent with every request
_settings: Dict[str, Any] = {'product_name': ''}


def version():
    try:
        return dist_version('clickhouse-node')
    except PackageNotFoundError:
        return 'development'


def get_setting(name: str):
    if name not in _settings:
        raise ProgrammingError(f'Unrecognized common setting {name}')
    return _settings[name]


def set_setting(name: str, value: Any):
    if name not in _settings:
        raise ProgrammingError(f'Unrecognized common setting {name}')
    _settings[name] = value


def build_client_name(client_name: Optional[str] = None):
    product_name = get_setting('product_name')
    prefix = ''.join(f'{name.strip()} ' for name in (client_name, product_name) if name and name.strip())
    py_version = sys.version.split(' ', maxsplit=1)[0]
    return f'{prefix}clickhouse-node/{version()} (lv:py/{py_version}; os:{sys.platform})'
