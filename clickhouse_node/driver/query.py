import json
import logging
import math
from typing import Any, Dict, List, NamedTuple, Optional

from clickhouse_node.driver.common import is_record, records, safe_excerpt
from clickhouse_node.driver.credentials import Credentials
from clickhouse_node.driver.exceptions import DataError, ProgrammingError
from clickhouse_node.driver.transport import DEFAULT_TIMEOUT_MS, Transport

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class JsonPayload(NamedTuple):
    rows: List[Row]
    meta: List[Row]
    statistics: Row


class QueryResult(NamedTuple):
    rows: List[Row]
    meta: List[Row]
    statistics: Row
    summary: Row


def _floor(value: Any) -> int:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(value) or math.isinf(value):
        return 0
    return max(0, math.floor(value))


def strip_trailing_semicolons(sql: str) -> str:
    cleaned = sql.strip()
    while cleaned.endswith(';'):
        cleaned = cleaned[:-1].rstrip()
    return cleaned


def build_paginated_sql(sql: str, limit: Any, offset: Any = 0) -> str:
    """
    Wrap a query as a subquery with LIMIT and OFFSET clauses.  Trailing semicolons and whitespace are removed first
    :param sql: Original query text
    :param limit: Page size, floored and clamped to zero or more
    :param offset: Rows to skip.  The OFFSET clause is omitted when zero
    :return: SELECT * FROM (<sql>) LIMIT <limit>[ OFFSET <offset>]
    """
    safe_offset = _floor(offset)
    offset_clause = f' OFFSET {safe_offset}' if safe_offset > 0 else ''
    return f'SELECT * FROM ({strip_trailing_semicolons(sql)}) LIMIT {_floor(limit)}{offset_clause}'


def parse_json_response(body: str, credentials: Optional[Credentials] = None) -> JsonPayload:
    """
    Parse a ClickHouse FORMAT JSON response envelope.  Entries of data and meta that are not JSON objects are
    dropped, and statistics falls back to an empty object
    """
    try:
        parsed = json.loads(body)
    except ValueError as ex:
        raise DataError(f'Failed to parse ClickHouse JSON response. {safe_excerpt(body, credentials)}') from ex
    if not is_record(parsed):
        parsed = {}
    statistics = parsed.get('statistics')
    return JsonPayload(records(parsed.get('data')),
                       records(parsed.get('meta')),
                       dict(statistics) if is_record(statistics) else {})


def shape_query_output(rows: Optional[List[Row]] = None,
                       meta: Optional[List[Row]] = None,
                       statistics: Optional[Row] = None,
                       summary: Optional[Row] = None) -> Row:
    rows = rows if isinstance(rows, list) else []
    return {'rows': rows,
            'meta': meta if isinstance(meta, list) else [],
            'statistics': statistics if statistics is not None else {},
            'summary': summary if summary is not None else {'rowCount': len(rows)}}


# pylint: disable=too-many-arguments,too-many-locals
async def execute_query(transport: Transport,
                        credentials: Credentials,
                        sql: str,
                        limit: Any = 50,
                        paginate: bool = False,
                        limit_enabled: bool = True,
                        database_override: Optional[str] = None,
                        timeout_ms: int = DEFAULT_TIMEOUT_MS,
                        compress: bool = True) -> QueryResult:
    """
    Run a query with FORMAT JSON, optionally fetching consecutive pages.  Pages are requested one after another
    until a page returns fewer rows than the limit.  When the total row count is an exact multiple of the limit
    this costs one extra request returning no rows, and a server that always returns a full page never stops
    :param transport: Transport used for every page request
    :param credentials: Normalized credentials
    :param sql: Query text
    :param limit: Page size.  A limit of zero or less disables pagination
    :param paginate: Fetch further pages while full pages are returned
    :param limit_enabled: When False the query is sent unwrapped, and pagination is rejected
    :param database_override: Database to use instead of the credential default
    :param timeout_ms: Per request timeout
    :param compress: Ask the server for compressed responses
    :return: QueryResult with meta from the first page and statistics from the last page
    """
    if not limit_enabled and paginate:
        raise ProgrammingError('Limit must be greater than 0 when pagination is enabled')
    safe_limit = _floor(limit) if limit_enabled else 0
    should_paginate = paginate and safe_limit > 0

    rows: List[Row] = []
    meta: List[Row] = []
    statistics: Row = {}
    pages = 0
    while True:
        offset = pages * safe_limit if should_paginate else 0
        page_sql = build_paginated_sql(sql, safe_limit, offset) if limit_enabled else sql
        response = await transport.request(credentials,
                                           page_sql,
                                           database_override=database_override,
                                           fmt='JSON',
                                           compress=compress,
                                           timeout_ms=timeout_ms,
                                           wait_end_of_query=True)
        payload = parse_json_response(response.body, credentials)
        if pages == 0:
            meta = payload.meta
        statistics = payload.statistics
        rows.extend(payload.rows)
        pages += 1
        logger.debug('Fetched query page %d with %d rows', pages, len(payload.rows))
        if not should_paginate or len(payload.rows) < safe_limit:
            break

    summary = {'rowCount': len(rows),
               'limit': safe_limit,
               'pages': pages,
               'paginated': should_paginate}
    return QueryResult(rows, meta, statistics, summary)
