from typing import Any, Dict, Iterable, Mapping, Optional, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from clickhouse_node.driver.credentials import Credentials

REDACTED = '***'
DEFAULT_EXCERPT_LENGTH = 500
sensitive_headers = frozenset(('authorization', 'proxy-authorization', 'set-cookie', 'cookie'))


def dict_copy(source: Dict = None, update: Optional[Dict] = None) -> Dict:
    copy = source.copy() if source else {}
    if update:
        copy.update(update)
    return copy


def coerce_bool(val: Optional[Union[str, bool, int]]) -> bool:
    if not val:
        return False
    if isinstance(val, str):
        return val.lower() in ('true', '1', 'y', 'yes')
    return bool(val)


def is_record(value: Any) -> bool:
    """
    True for JSON objects (dictionaries).  Arrays, scalars and None are not records
    """
    return isinstance(value, Mapping)


def records(values: Any) -> list:
    if not isinstance(values, (list, tuple)):
        return []
    return [dict(value) for value in values if is_record(value)]


def normalize_optional_string(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def redact_secrets(value: str, credentials: Optional['Credentials']) -> str:
    """
    Replace every literal occurrence of the username and password with ***
    :param value: Text that may contain credentials, such as a server response or a network error message
    :param credentials: The credentials used for the request.  Empty values are never replaced
    :return: The redacted text
    """
    if credentials is None:
        return value
    output = value
    for secret in (credentials.username, credentials.password):
        if secret:
            output = output.replace(str(secret), REDACTED)
    return output


def safe_excerpt(body: str, credentials: Optional['Credentials'], max_length: int = DEFAULT_EXCERPT_LENGTH) -> str:
    redacted = redact_secrets(body, credentials)
    return f'{redacted[:max_length]}...' if len(redacted) > max_length else redacted


def redact_value(value: Any, credentials: Optional['Credentials']) -> Any:
    """
    Redact every string inside a decoded JSON value, including object keys
    """
    if isinstance(value, str):
        return redact_secrets(value, credentials)
    if isinstance(value, list):
        return [redact_value(entry, credentials) for entry in value]
    if isinstance(value, Mapping):
        return {redact_secrets(str(key), credentials): redact_value(entry, credentials) for key, entry in value.items()}
    return value


def sanitize_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {key: value for key, value in headers.items() if key.lower() not in sensitive_headers}


def join_header_value(value: Union[str, Iterable[Any], Any]) -> str:
    if isinstance(value, (list, tuple)):
        return ', '.join(str(x) for x in value)
    return str(value)
