import gzip
import logging
import os
import re
import ssl
import tempfile
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlencode

import certifi

from clickhouse_node.driver.common import join_header_value
from clickhouse_node.driver.credentials import Credentials
from clickhouse_node.driver.exceptions import OperationalError

logger = logging.getLogger(__name__)

scheme_re = re.compile(r'^https?://', re.IGNORECASE)
pem_marker = '-----BEGIN'

SettingValue = Union[str, int, float, bool]


def sanitize_host(host: str) -> str:
    """
    Strip a leading http:// or https:// scheme and any trailing slashes from a configured host name
    """
    return scheme_re.sub('', (host or '').strip()).rstrip('/')


def build_base_url(credentials: Credentials) -> str:
    return f'{credentials.protocol}://{sanitize_host(credentials.host)}:{credentials.port}'


def normalize_setting_value(value: SettingValue) -> str:
    if isinstance(value, bool):
        return '1' if value else '0'
    return str(value)


# pylint: disable=too-many-arguments
def build_query_params(database: Optional[str] = None,
                       fmt: Optional[str] = None,
                       compress: Optional[bool] = True,
                       settings: Optional[Mapping[str, SettingValue]] = None,
                       wait_end_of_query: bool = False,
                       query: Optional[str] = None) -> Dict[str, str]:
    params = {}
    if database:
        params['database'] = database
    if fmt:
        params['default_format'] = fmt
    params['enable_http_compression'] = '0' if compress is False else '1'
    if wait_end_of_query:
        params['wait_end_of_query'] = '1'
    if query:
        params['query'] = query
    for key, value in (settings or {}).items():
        params[key] = normalize_setting_value(value)
    return params


def build_query_string(database: Optional[str] = None,
                       fmt: Optional[str] = None,
                       compress: Optional[bool] = True,
                       settings: Optional[Mapping[str, SettingValue]] = None,
                       wait_end_of_query: bool = False,
                       query: Optional[str] = None) -> str:
    """
    Build the URL query string for the ClickHouse HTTP interface
    :param database: Database parameter, omitted when empty
    :param fmt: ClickHouse default_format parameter, omitted when empty
    :param compress: Ask the server to compress the response.  Defaults to True
    :param settings: Additional ClickHouse settings.  Booleans are sent as 1/0
    :param wait_end_of_query: Ask the server to buffer the full response before replying
    :param query: SQL text to send in the URL instead of the request body
    :return: Query string including the leading ?, or an empty string when there are no parameters
    """
    params = build_query_params(database, fmt, compress, settings, wait_end_of_query, query)
    encoded = urlencode(params)
    return f'?{encoded}' if encoded else ''


def normalize_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    result = {}
    if not headers:
        return result
    items = headers.items()
    if hasattr(headers, 'keys') and hasattr(headers, 'getall'):
        # multidict style headers repeat keys instead of holding lists
        items = ((key, headers.getall(key)) for key in dict.fromkeys(headers.keys()))
    for key, value in items:
        if not key or value is None:
            continue
        result[str(key).lower()] = join_header_value(value)
    return result


def gzip_payload(payload: Union[str, bytes]) -> bytes:
    if isinstance(payload, str):
        payload = payload.encode()
    return gzip.compress(payload)


def decompress_response(data: bytes, encoding: Optional[str]) -> bytes:
    if encoding and 'gzip' in encoding.lower():
        try:
            return gzip.decompress(data)
        except (OSError, EOFError) as ex:
            raise OperationalError(f'Failed to decompress gzip response: {ex}') from ex
    return data


def _write_pem(pem: str) -> str:
    handle, path = tempfile.mkstemp(suffix='.pem')
    with os.fdopen(handle, 'w', encoding='utf-8') as pem_file:
        pem_file.write(pem)
    return path


def get_ssl_context(credentials: Credentials) -> Optional[ssl.SSLContext]:
    """
    Build the TLS context for an https request.  CA, client certificate, and client key values may be PEM text or
    file paths.  A CA value of 'certifi' selects the certifi root bundle
    :param credentials: Normalized credentials
    :return: SSLContext, or None for plain http
    """
    if not credentials.secure:
        return None
    context = ssl.create_default_context()
    if credentials.tls_ignore_ssl:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif credentials.ca:
        if credentials.ca == 'certifi':
            context.load_verify_locations(cafile=certifi.where())
        elif pem_marker in credentials.ca:
            context.load_verify_locations(cadata=credentials.ca)
        else:
            context.load_verify_locations(cafile=credentials.ca)
    if credentials.cert:
        temp_files = []
        cert_file, key_file = credentials.cert, credentials.key
        if pem_marker in cert_file:
            cert_file = _write_pem(cert_file)
            temp_files.append(cert_file)
        if key_file and pem_marker in key_file:
            key_file = _write_pem(key_file)
            temp_files.append(key_file)
        try:
            context.load_cert_chain(cert_file, key_file, password=credentials.passphrase)
        finally:
            for path in temp_files:
                os.remove(path)
    return context
