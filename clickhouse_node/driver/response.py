import json
import logging
from typing import Any, Dict, Mapping, NamedTuple, Optional

from clickhouse_node.driver.common import safe_excerpt
from clickhouse_node.driver.credentials import Credentials
from clickhouse_node.driver.httputil import normalize_headers

logger = logging.getLogger(__name__)

_scalar_types = (str, int, float, bool)


class ClickHouseResponse(NamedTuple):
    status: int
    headers: Dict[str, str]
    body: str

    @property
    def query_id(self) -> Optional[str]:
        return self.headers.get('x-clickhouse-query-id')


def _field(value: Any, *names: str):
    """
    Look up the first of names as either a mapping key or an attribute.  Returns a (found, value) pair
    """
    for name in names:
        if isinstance(value, Mapping):
            if name in value:
                return True, value[name]
        elif hasattr(value, name):
            return True, getattr(value, name)
    return False, None


def is_full_response(value: Any) -> bool:
    found_status, _ = _field(value, 'statusCode', 'status_code')
    found_headers, _ = _field(value, 'headers')
    return found_status and found_headers


def is_plain_response(value: Any) -> bool:
    return all(_field(value, name)[0] for name in ('status', 'headers', 'body'))


def response_reason(response: Any) -> Optional[str]:
    if response is None or isinstance(response, _scalar_types):
        return None
    _, reason = _field(response, 'statusMessage', 'reason')
    return str(reason) if reason else None


def normalize_body(body: Any, credentials: Optional[Credentials] = None) -> str:
    if body is None:
        return ''
    if isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body).decode('utf-8', errors='replace')
    try:
        return json.dumps(body, separators=(',', ':'))
    except (TypeError, ValueError):
        logger.debug('Response body of type %s is not JSON serializable', type(body).__name__)
        return safe_excerpt(str(body), credentials)


def _status(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def normalize_response(response: Any, credentials: Optional[Credentials] = None) -> ClickHouseResponse:
    """
    Convert whatever the request mechanism returned into a ClickHouseResponse.  Shapes are checked in order:
    a full response (statusCode/status_code plus headers), a plain status/headers/body record, and finally
    any other object, which is treated as a raw body with a missing status
    :param response: Host full response, status/headers/body record, or raw value
    :param credentials: Used to redact bodies that can only be rendered with str()
    :return: ClickHouseResponse with lowercased header keys and a string body
    """
    if response is None or isinstance(response, _scalar_types):
        return ClickHouseResponse(0, {}, '')
    if is_full_response(response):
        _, status = _field(response, 'statusCode', 'status_code')
        _, headers = _field(response, 'headers')
        _, body = _field(response, 'body')
        return ClickHouseResponse(_status(status), normalize_headers(headers), normalize_body(body, credentials))
    if is_plain_response(response):
        _, status = _field(response, 'status')
        _, headers = _field(response, 'headers')
        _, body = _field(response, 'body')
        return ClickHouseResponse(_status(status), normalize_headers(headers), normalize_body(body, credentials))
    return ClickHouseResponse(0, {}, normalize_body(response, credentials))
