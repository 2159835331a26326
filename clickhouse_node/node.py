import logging
import re
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Protocol

from clickhouse_node.driver.common import is_record, normalize_optional_string, sanitize_headers
from clickhouse_node.driver.credentials import Credentials, normalize_credentials
from clickhouse_node.driver.exceptions import ClickHouseError
from clickhouse_node.driver.insert import DEFAULT_BATCH_SIZE, execute_insert, parse_columns
from clickhouse_node.driver.metadata import list_columns, list_databases, list_tables, pick_database
from clickhouse_node.driver.query import execute_query, shape_query_output
from clickhouse_node.driver.transport import DEFAULT_TIMEOUT_MS, HttpRequestFn, Transport, create_transport

logger = logging.getLogger(__name__)


CREDENTIALS_NAME = 'ClickHouseApi'
path_segment_re = re.compile(r'[^.\[\]]+')

Record = Dict[str, Any]


class HostContext(Protocol):
    """
    The parts of the hosting runtime used by the node.  The host resolves parameter expressions and decrypts
    credentials; helpers.http_request is optional and, when present, performs all HTTP requests
    """
    helpers: Any

    def get_input_data(self) -> List[Record]:
        ...

    def get_node_parameter(self, name: str, item_index: int, default: Any = None) -> Any:
        ...

    async def get_credentials(self, name: str) -> Dict[str, Any]:
        ...

    def continue_on_fail(self) -> bool:
        ...


@dataclass(frozen=True)
class NodeDefaults:
    """
    Defaults for node parameters the host leaves unset.  Host parameter names are the camelCase form of the
    field names
    """
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    compress: bool = True
    database_override: str = ''
    query: str = ''
    command: str = ''
    limit: int = 50
    limit_enabled: bool = True
    paginate: bool = False
    output_mode: str = 'single'
    table: str = ''
    columns_csv: str = ''
    columns_ui: Optional[Dict] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    ignore_unknown_fields: bool = False
    gzip_request: bool = False
    json_array_field: str = 'rows'
    metadata_database: str = ''
    metadata_table: str = ''


def camel_case(name: str) -> str:
    return re.sub(r'_(\w)', lambda match: match.group(1).upper(), name)


def parameter_defaults(defaults: NodeDefaults) -> Dict[str, Any]:
    return {camel_case(f.name): getattr(defaults, f.name) for f in fields(defaults)}


def item_record(json_value: Record, item_index: int) -> Record:
    return {'json': json_value, 'pairedItem': {'item': item_index}}


def get_value_at_path(value: Any, path: str) -> Any:
    """
    Resolve a dotted or bracketed path such as 'payload.rows' or 'batches[0].rows' within an item's JSON
    """
    if not path:
        return None
    current = value
    for segment in path_segment_re.findall(path):
        if is_record(current) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            return None
    return current


def collect_rows_from_json_field(items: List[Record], path_for_item) -> List[Record]:
    rows = []
    for index, item in enumerate(items):
        value = get_value_at_path(item.get('json') or {}, path_for_item(index))
        if not isinstance(value, list):
            continue
        rows.extend(dict(entry) for entry in value if is_record(entry))
    return rows


def build_option(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, str) or not value.strip():
        return None
    return {'name': value.strip(), 'value': value.strip()}


def _first_present(row: Record, *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


class ClickHouseNode:
    """
    Workflow node for querying, commanding, inserting into, and listing metadata from ClickHouse over HTTP
    """
    name = 'clickhouse'
    display_name = 'ClickHouse'

    def __init__(self, transport: Optional[Transport] = None, defaults: Optional[NodeDefaults] = None):
        self._transport = transport
        self._defaults = parameter_defaults(defaults or NodeDefaults())

    def _param(self, context: HostContext, name: str, item_index: int = 0) -> Any:
        default = self._defaults.get(name)
        value = context.get_node_parameter(name, item_index, default)
        return default if value is None else value

    def _timeout(self, context: HostContext, item_index: int = 0) -> int:
        return self._param(context, 'timeoutMs', item_index) or DEFAULT_TIMEOUT_MS

    def _get_transport(self, context: HostContext) -> Transport:
        if self._transport is not None:
            return self._transport
        http_request: Optional[HttpRequestFn] = getattr(getattr(context, 'helpers', None), 'http_request', None)
        return create_transport(http_request)

    @staticmethod
    async def _credentials(context: HostContext) -> Credentials:
        return normalize_credentials(await context.get_credentials(CREDENTIALS_NAME))

    async def execute(self, context: HostContext) -> List[List[Record]]:
        items = context.get_input_data()
        credentials = await self._credentials(context)
        transport = self._get_transport(context)
        resource = self._param(context, 'resource')
        operation = self._param(context, 'operation')
        logger.debug('Executing %s/%s for %d items', resource, operation, len(items))

        if resource == 'insert':
            return [[await self._insert(context, transport, credentials, items, operation)]]
        if resource == 'metadata':
            return [await self._metadata(context, transport, credentials, operation)]

        results = []
        for item_index in range(len(items)):
            try:
                results.extend(await self._execute_item(context, transport, credentials, item_index))
            except ClickHouseError as ex:
                if not context.continue_on_fail():
                    raise
                logger.warning('ClickHouse request for item %d failed, continuing', item_index)
                results.append(item_record({'error': str(ex)}, item_index))
        return [results]

    async def _execute_item(self,
                            context: HostContext,
                            transport: Transport,
                            credentials: Credentials,
                            item_index: int) -> List[Record]:
        resource = self._param(context, 'resource', item_index)
        operation = self._param(context, 'operation', item_index)
        database_override = normalize_optional_string(self._param(context, 'databaseOverride', item_index))
        timeout_ms = self._timeout(context, item_index)
        compress = self._param(context, 'compress', item_index)

        if resource == 'query' and operation == 'executeQuery':
            result = await execute_query(transport,
                                         credentials,
                                         self._param(context, 'query', item_index),
                                         limit=self._param(context, 'limit', item_index),
                                         paginate=self._param(context, 'paginate', item_index),
                                         limit_enabled=self._param(context, 'limitEnabled', item_index),
                                         database_override=database_override,
                                         timeout_ms=timeout_ms,
                                         compress=compress)
            if self._param(context, 'outputMode', item_index) == 'perRow':
                return [item_record(row, item_index) for row in result.rows]
            return [item_record(shape_query_output(result.rows, result.meta, result.statistics, result.summary),
                                item_index)]

        if resource == 'command' and operation == 'executeCommand':
            response = await transport.request(credentials,
                                               self._param(context, 'command', item_index),
                                               database_override=database_override,
                                               timeout_ms=timeout_ms,
                                               compress=compress,
                                               wait_end_of_query=True)
            summary = {'queryId': response.query_id,
                       'headers': sanitize_headers(response.headers)}
            body = response.body.strip()
            if body:
                summary['body'] = body
            return [item_record(summary, item_index)]

        return [item_record({'resource': resource, 'operation': operation, 'stub': True}, item_index)]

    async def _insert(self,
                      context: HostContext,
                      transport: Transport,
                      credentials: Credentials,
                      items: List[Record],
                      operation: str) -> Record:
        if operation == 'insertFromJson':
            rows = collect_rows_from_json_field(items, lambda ix: self._param(context, 'jsonArrayField', ix))
        elif operation == 'insertFromItems':
            rows = [dict(item['json']) for item in items if is_record(item.get('json'))]
        else:
            rows = []
        summary = await execute_insert(transport,
                                       credentials,
                                       self._param(context, 'table'),
                                       rows,
                                       columns=parse_columns(self._param(context, 'columnsCsv'),
                                                             self._param(context, 'columnsUi')),
                                       database_override=normalize_optional_string(
                                           self._param(context, 'databaseOverride')),
                                       batch_size=self._param(context, 'batchSize'),
                                       ignore_unknown_fields=self._param(context, 'ignoreUnknownFields'),
                                       gzip_request=self._param(context, 'gzipRequest'),
                                       timeout_ms=self._timeout(context),
                                       compress=self._param(context, 'compress'))
        return item_record(summary, 0)

    async def _metadata(self,
                        context: HostContext,
                        transport: Transport,
                        credentials: Credentials,
                        operation: str) -> List[Record]:
        database = pick_database(credentials,
                                 normalize_optional_string(self._param(context, 'metadataDatabase')) or
                                 normalize_optional_string(self._param(context, 'databaseOverride')))
        options = {'timeout_ms': self._timeout(context), 'compress': self._param(context, 'compress')}
        if operation == 'listDatabases':
            rows = await list_databases(transport, credentials, **options)
        elif operation == 'listTables':
            rows = await list_tables(transport, credentials, database, **options)
        elif operation == 'listColumns':
            rows = await list_columns(transport, credentials, database, self._param(context, 'metadataTable'),
                                      **options)
        else:
            rows = []
        return [item_record(row, 0) for row in rows]

    async def get_databases(self, context: HostContext) -> List[Dict[str, str]]:
        """
        Load options method listing database names for the metadata database selector
        """
        credentials = await self._credentials(context)
        rows = await list_databases(self._get_transport(context),
                                    credentials,
                                    timeout_ms=self._timeout(context),
                                    compress=self._param(context, 'compress'))
        options = (build_option(_first_present(row, 'name', 'database', 'Database')) for row in rows)
        return [option for option in options if option]

    async def get_tables(self, context: HostContext) -> List[Dict[str, str]]:
        """
        Load options method listing table names in the selected metadata database
        """
        credentials = await self._credentials(context)
        database = pick_database(credentials,
                                 normalize_optional_string(self._param(context, 'metadataDatabase')) or
                                 normalize_optional_string(self._param(context, 'databaseOverride')))
        rows = await list_tables(self._get_transport(context),
                                 credentials,
                                 database,
                                 timeout_ms=self._timeout(context),
                                 compress=self._param(context, 'compress'))
        options = (build_option(_first_present(row, 'name', 'table', 'Table')) for row in rows)
        return [option for option in options if option]
