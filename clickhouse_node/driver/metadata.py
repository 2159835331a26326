import logging
from typing import Any, Dict, List, NamedTuple, Optional

from clickhouse_node.driver.common import normalize_optional_string
from clickhouse_node.driver.credentials import Credentials
from clickhouse_node.driver.query import parse_json_response
from clickhouse_node.driver.transport import DEFAULT_TIMEOUT_MS, Transport

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class MetadataResult(NamedTuple):
    rows: List[Row]
    meta: List[Row]
    statistics: Row


def parse_metadata_json(body: str, credentials: Optional[Credentials] = None) -> MetadataResult:
    return MetadataResult(*parse_json_response(body, credentials))


def pick_database(credentials: Credentials, override: Optional[str] = None) -> str:
    return normalize_optional_string(override) or normalize_optional_string(credentials.default_database) or 'default'


async def fetch_metadata_rows(transport: Transport,
                              credentials: Credentials,
                              sql: str,
                              timeout_ms: int = DEFAULT_TIMEOUT_MS,
                              compress: bool = True) -> List[Row]:
    response = await transport.request(credentials,
                                       f'{sql} FORMAT JSON',
                                       fmt='JSON',
                                       wait_end_of_query=True,
                                       compress=compress,
                                       timeout_ms=timeout_ms)
    return parse_metadata_json(response.body, credentials).rows


async def list_databases(transport: Transport, credentials: Credentials, **kwargs) -> List[Row]:
    return await fetch_metadata_rows(transport, credentials, 'SHOW DATABASES', **kwargs)


async def list_tables(transport: Transport, credentials: Credentials, database: str, **kwargs) -> List[Row]:
    return await fetch_metadata_rows(transport, credentials, f'SHOW TABLES FROM {database}', **kwargs)


async def list_columns(transport: Transport,
                       credentials: Credentials,
                       database: str,
                       table: Optional[str],
                       **kwargs) -> List[Row]:
    table = normalize_optional_string(table)
    if not table:
        logger.debug('No table selected, skipping column listing')
        return []
    return await fetch_metadata_rows(transport, credentials, f'DESCRIBE TABLE {database}.{table}', **kwargs)
