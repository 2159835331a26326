import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from clickhouse_node import json_impl
from clickhouse_node.driver.common import is_record, sanitize_headers
from clickhouse_node.driver.credentials import Credentials
from clickhouse_node.driver.exceptions import ProgrammingError
from clickhouse_node.driver.transport import DEFAULT_TIMEOUT_MS, Transport

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

Row = Dict[str, Any]


def build_insert_query(table: str,
                       database: Optional[str] = None,
                       columns: Optional[Sequence[str]] = None) -> str:
    table_name = (table or '').strip()
    if not table_name:
        raise ProgrammingError('Table name is required for insert')
    database = (database or '').strip()
    qualified_table = f'{database}.{table_name}' if database else table_name
    cols = f" ({', '.join(columns)})" if columns else ''
    return f'INSERT INTO {qualified_table}{cols} FORMAT JSONEachRow'


def build_ndjson(rows: Iterable[Row]) -> str:
    return '\n'.join(json_impl.to_json(row) for row in rows)


def chunk_rows(rows: Sequence[Row], batch_size: Any) -> List[List[Row]]:
    try:
        safe_batch = max(1, math.floor(float(batch_size)))
    except (TypeError, ValueError, OverflowError):
        safe_batch = 1
    return [list(rows[ix:ix + safe_batch]) for ix in range(0, len(rows), safe_batch)]


def _ui_columns(value: Any) -> List[str]:
    if not is_record(value):
        return []
    columns = value.get('columns') or value.get('values') or value.get('column')
    if is_record(columns):
        columns = columns.get('columns')
    if not isinstance(columns, (list, tuple)):
        return []
    result = []
    for entry in columns:
        if not is_record(entry):
            continue
        column = entry.get('column')
        if isinstance(column, str) and column.strip():
            result.append(column.strip())
    return result


def parse_columns(columns_csv: Optional[str] = None, columns_ui: Any = None) -> List[str]:
    """
    Resolve the insert column list.  A structured list of {'column': name} entries takes precedence over the
    comma separated string
    """
    ui_columns = _ui_columns(columns_ui)
    if ui_columns:
        return ui_columns
    return [col.strip() for col in (columns_csv or '').split(',') if col.strip()]


# pylint: disable=too-many-arguments,too-many-locals
async def execute_insert(transport: Transport,
                         credentials: Credentials,
                         table: str,
                         rows: Sequence[Row],
                         columns: Optional[Sequence[str]] = None,
                         database_override: Optional[str] = None,
                         batch_size: Any = DEFAULT_BATCH_SIZE,
                         ignore_unknown_fields: bool = False,
                         gzip_request: bool = False,
                         timeout_ms: int = DEFAULT_TIMEOUT_MS,
                         compress: bool = True) -> Dict[str, Any]:
    """
    Insert rows as JSONEachRow in sequential batches.  The first failing batch aborts the insert
    :return: Dictionary of inserted row count, batch count, and the sanitized headers of the last batch response
    """
    if not rows:
        logger.debug('No data included in insert, skipping')
        return {'inserted': 0, 'batches': 0, 'headers': {}}

    query = build_insert_query(table, database_override, columns)
    settings: Optional[Mapping[str, Any]] = None
    if ignore_unknown_fields:
        settings = {'input_format_skip_unknown_fields': 1}
    batches = chunk_rows(rows, batch_size)
    inserted = 0
    headers: Dict[str, str] = {}
    for batch in batches:
        response = await transport.request(credentials,
                                           query,
                                           database_override=database_override,
                                           compress=compress,
                                           timeout_ms=timeout_ms,
                                           wait_end_of_query=True,
                                           query_in_url=True,
                                           body=build_ndjson(batch),
                                           gzip_request=gzip_request,
                                           settings=settings)
        inserted += len(batch)
        headers = sanitize_headers(response.headers)
        logger.debug('Inserted batch of %d rows, response code: %d', len(batch), response.status)
    return {'inserted': inserted, 'batches': len(batches), 'headers': headers}
