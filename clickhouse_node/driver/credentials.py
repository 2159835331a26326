from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Union

from clickhouse_node.driver.common import coerce_bool

DEFAULT_PORT = 8123

# Host credential stores use camelCase field names
_aliases = {
    'defaultDatabase': 'default_database',
    'tlsIgnoreSsl': 'tls_ignore_ssl',
}


@dataclass(frozen=True)
class Credentials:
    host: str
    username: str = ''
    password: str = ''
    protocol: str = 'https'
    port: Union[int, str] = DEFAULT_PORT
    default_database: Optional[str] = None
    tls_ignore_ssl: bool = False
    ca: Optional[str] = None
    cert: Optional[str] = None
    key: Optional[str] = None
    passphrase: Optional[str] = None

    @property
    def secure(self) -> bool:
        return self.protocol == 'https'

    def __repr__(self):
        return f'Credentials(protocol={self.protocol!r}, host={self.host!r}, port={self.port!r})'


def normalize_credentials(raw: Union[Credentials, Mapping[str, Any]]) -> Credentials:
    """
    Fill in protocol, port, and TLS defaults for possibly partial credential input.  Never fails
    :param raw: Either a Credentials instance or a mapping as returned by the host credential store
    :return: A fully defaulted Credentials instance
    """
    if isinstance(raw, Credentials):
        return replace(raw,
                       protocol='http' if raw.protocol == 'http' else 'https',
                       port=DEFAULT_PORT if raw.port is None else raw.port,
                       tls_ignore_ssl=coerce_bool(raw.tls_ignore_ssl))
    values = {_aliases.get(key, key): value for key, value in (raw or {}).items()}
    port = values.get('port')
    return Credentials(host=values.get('host') or '',
                       username=values.get('username') or '',
                       password=values.get('password') or '',
                       protocol='http' if values.get('protocol') == 'http' else 'https',
                       port=DEFAULT_PORT if port is None else port,
                       default_database=values.get('default_database') or None,
                       tls_ignore_ssl=coerce_bool(values.get('tls_ignore_ssl')),
                       ca=values.get('ca') or None,
                       cert=values.get('cert') or None,
                       key=values.get('key') or None,
                       passphrase=values.get('passphrase') or None)
