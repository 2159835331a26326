import asyncio
import json
import logging
from abc import ABCMeta, abstractmethod
from base64 import b64encode
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, NamedTuple, Optional, Union

import aiohttp

from clickhouse_node import common
from clickhouse_node.driver.common import dict_copy, redact_secrets, redact_value, safe_excerpt
from clickhouse_node.driver.credentials import Credentials, normalize_credentials
from clickhouse_node.driver.exceptions import ClickHouseError, DatabaseError, OperationalError
from clickhouse_node.driver.httputil import (SettingValue, build_base_url, build_query_string, decompress_response,
                                             get_ssl_context, gzip_payload, normalize_headers)
from clickhouse_node.driver.response import ClickHouseResponse, normalize_response, response_reason

logger = logging.getLogger(__name__)
ex_header = 'x-clickhouse-exception-code'

DEFAULT_TIMEOUT_MS = 60000

HttpRequestFn = Callable[[Dict[str, Any]], Awaitable[Any]]


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True)
class ClickHouseRequest:
    """
    Everything needed to build a single POST to the ClickHouse HTTP interface.  When query_in_url is set the SQL
    is sent as the query URL parameter and the body carries only the payload, otherwise the SQL is the body
    """
    sql: str
    database_override: Optional[str] = None
    fmt: Optional[str] = None
    compress: bool = True
    settings: Optional[Mapping[str, SettingValue]] = None
    timeout_ms: Optional[int] = DEFAULT_TIMEOUT_MS
    wait_end_of_query: bool = False
    query_in_url: bool = False
    body: Optional[Union[str, bytes]] = None
    request_headers: Dict[str, str] = field(default_factory=dict)
    gzip_request: bool = False


class PreparedRequest(NamedTuple):
    base_url: str
    url: str
    headers: Dict[str, str]
    body: Union[str, bytes]
    timeout_ms: int


def basic_auth(credentials: Credentials) -> str:
    token = b64encode(f'{credentials.username}:{credentials.password}'.encode()).decode()
    return f'Basic {token}'


def prepare_request(credentials: Credentials, request: ClickHouseRequest) -> PreparedRequest:
    timeout_ms = request.timeout_ms or DEFAULT_TIMEOUT_MS
    database = request.database_override or credentials.default_database
    query_string = build_query_string(database=database,
                                      fmt=request.fmt,
                                      compress=request.compress,
                                      settings=request.settings,
                                      wait_end_of_query=request.wait_end_of_query,
                                      query=request.sql if request.query_in_url else None)
    base_url = build_base_url(credentials)
    headers = {'Accept-Encoding': 'gzip',
               'Content-Type': 'text/plain; charset=utf-8',
               'User-Agent': common.build_client_name()}
    headers = dict_copy(headers, request.request_headers)
    headers['Authorization'] = basic_auth(credentials)
    if request.body is not None:
        body = request.body
    else:
        body = '' if request.query_in_url else request.sql
    if request.gzip_request:
        body = gzip_payload(body)
        headers['Content-Encoding'] = 'gzip'
    return PreparedRequest(base_url, f'{base_url}/{query_string}', headers, body, timeout_ms)


def build_error_detail(body: str, headers: Mapping[str, str], credentials: Credentials) -> str:
    content_type = headers.get('content-type', '')
    trimmed = body.strip()
    if 'application/json' in content_type or trimmed.startswith(('{', '[')):
        try:
            parsed = json.loads(body)
        except ValueError:
            return f'Response: {safe_excerpt(body, credentials)}'
        # escaped secrets in the source JSON only match once decoded
        rendered = json.dumps(redact_value(parsed, credentials), separators=(',', ':'), ensure_ascii=False)
        return f'Response JSON: {redact_secrets(rendered, credentials)}'
    return f'Response: {safe_excerpt(body, credentials)}'


def build_response_error(response: ClickHouseResponse,
                         reason: Optional[str],
                         credentials: Credentials) -> DatabaseError:
    status_label = f' {reason}' if reason else ''
    err_code = response.headers.get(ex_header)
    code_label = f', exception code {err_code}' if err_code else ''
    detail = build_error_detail(response.body, response.headers, credentials)
    err_str = f'ClickHouse request failed with status {response.status}{status_label}{code_label}. {detail}'
    logger.debug(err_str)
    return DatabaseError(err_str)


def wrap_error(ex: BaseException, credentials: Credentials, message: Optional[str] = None) -> OperationalError:
    message = redact_secrets(message or str(ex) or type(ex).__name__, credentials)
    return OperationalError(f'ClickHouse request failed: {message}')


def is_error_status(status: int) -> bool:
    return status >= 400 or status == 0


class Transport(metaclass=ABCMeta):
    """
    Issues exactly one POST per call to the ClickHouse HTTP endpoint.  Implementations differ only in how the
    network call is made; both return the same normalized response and raise the same errors:
      DatabaseError for HTTP status >= 400 or 0, with a redacted body excerpt
      OperationalError for network failures and timeouts, chained to the original exception
    """

    # pylint: disable=too-many-arguments
    async def request(self,
                      credentials: Credentials,
                      sql: str,
                      database_override: Optional[str] = None,
                      fmt: Optional[str] = None,
                      compress: bool = True,
                      settings: Optional[Mapping[str, SettingValue]] = None,
                      timeout_ms: Optional[int] = DEFAULT_TIMEOUT_MS,
                      wait_end_of_query: bool = False,
                      query_in_url: bool = False,
                      body: Optional[Union[str, bytes]] = None,
                      request_headers: Optional[Dict[str, str]] = None,
                      gzip_request: bool = False) -> ClickHouseResponse:
        ch_request = ClickHouseRequest(sql=sql,
                                       database_override=database_override,
                                       fmt=fmt,
                                       compress=compress,
                                       settings=settings,
                                       timeout_ms=timeout_ms,
                                       wait_end_of_query=wait_end_of_query,
                                       query_in_url=query_in_url,
                                       body=body,
                                       request_headers=request_headers or {},
                                       gzip_request=gzip_request)
        return await self.send(credentials, ch_request)

    async def send(self, credentials: Credentials, ch_request: ClickHouseRequest) -> ClickHouseResponse:
        prepared = prepare_request(credentials, ch_request)
        logger.debug('POST %s/ (%d byte body, timeout %d ms)', prepared.base_url, len(prepared.body),
                     prepared.timeout_ms)
        try:
            response, reason = await asyncio.wait_for(self._post(credentials, prepared),
                                                      prepared.timeout_ms / 1000)
        except ClickHouseError:
            raise
        except asyncio.TimeoutError as ex:
            raise wrap_error(ex, credentials, f'Request timed out after {prepared.timeout_ms}ms') from ex
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise wrap_error(ex, credentials) from ex
        logger.debug('ClickHouse response status: %d', response.status)
        if is_error_status(response.status):
            raise build_response_error(response, reason, credentials)
        return response

    @abstractmethod
    async def _post(self, credentials: Credentials, prepared: PreparedRequest):
        """
        Perform the POST and return a tuple of the normalized ClickHouseResponse and the optional status reason
        """


class HostHttpTransport(Transport):
    """
    Delegates the network call to the hosting runtime's HTTP helper
    """

    def __init__(self, http_request: HttpRequestFn):
        self.http_request = http_request

    @staticmethod
    def build_options(credentials: Credentials, prepared: PreparedRequest) -> Dict[str, Any]:
        options = {'method': 'POST',
                   'url': prepared.url,
                   'body': prepared.body,
                   'headers': prepared.headers,
                   'timeout': prepared.timeout_ms,
                   'encoding': 'text',
                   'json': False,
                   'returnFullResponse': True,
                   'ignoreHttpStatusErrors': True}
        if credentials.secure:
            options['skipSslCertificateValidation'] = credentials.tls_ignore_ssl
        return options

    async def _post(self, credentials: Credentials, prepared: PreparedRequest):
        raw = await self.http_request(self.build_options(credentials, prepared))
        return normalize_response(raw, credentials), response_reason(raw)


class AiohttpTransport(Transport):
    """
    Performs the request directly with aiohttp, using a fresh session and connection per request
    """

    async def _post(self, credentials: Credentials, prepared: PreparedRequest):
        ssl_context = get_ssl_context(credentials)
        body = prepared.body.encode() if isinstance(prepared.body, str) else prepared.body
        timeout = aiohttp.ClientTimeout(total=prepared.timeout_ms / 1000)
        async with aiohttp.ClientSession(timeout=timeout, auto_decompress=False) as session:
            async with session.post(prepared.url,
                                    data=body,
                                    headers=prepared.headers,
                                    ssl=ssl_context or True) as response:
                raw_body = await response.read()
                headers = normalize_headers(response.headers)
                data = decompress_response(raw_body, headers.get('content-encoding'))
                return (ClickHouseResponse(response.status, headers, data.decode('utf-8', errors='replace')),
                        response.reason)


def create_transport(http_request: Optional[HttpRequestFn] = None) -> Transport:
    """
    Select the transport strategy: delegate to the host HTTP helper when one is supplied, otherwise make the
    request directly
    """
    if http_request is not None:
        return HostHttpTransport(http_request)
    return AiohttpTransport()


async def request(credentials: Union[Credentials, Mapping[str, Any]],
                  sql: str,
                  http_request: Optional[HttpRequestFn] = None,
                  **kwargs) -> ClickHouseResponse:
    """
    Send a single statement using the transport selected by create_transport.  Credentials may be raw host values
    """
    return await create_transport(http_request).request(normalize_credentials(credentials), sql, **kwargs)
