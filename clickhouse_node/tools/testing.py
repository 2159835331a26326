from types import SimpleNamespace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from clickhouse_node.driver.credentials import Credentials
from clickhouse_node.driver.transport import HttpRequestFn, Transport


class FakeHostContext:
    """
    In memory stand-in for the workflow host.  Parameters in item_parameters override the shared parameters for
    a single item index
    """

    # pylint: disable=too-many-arguments
    def __init__(self,
                 items: Optional[List[Dict[str, Any]]] = None,
                 parameters: Optional[Mapping[str, Any]] = None,
                 credentials: Optional[Mapping[str, Any]] = None,
                 http_request: Optional[HttpRequestFn] = None,
                 item_parameters: Optional[Mapping[int, Mapping[str, Any]]] = None,
                 continue_on_fail: bool = False):
        self.items = items if items is not None else [{'json': {}}]
        self.parameters = dict(parameters or {})
        self.item_parameters = item_parameters or {}
        self.credentials = dict(credentials or {})
        self.helpers = SimpleNamespace()
        if http_request is not None:
            self.helpers.http_request = http_request
        self.fail_silently = continue_on_fail
        self.credential_names: List[str] = []

    def get_input_data(self) -> List[Dict[str, Any]]:
        return self.items

    def get_node_parameter(self, name: str, item_index: int, default: Any = None) -> Any:
        overrides = self.item_parameters.get(item_index, {})
        if name in overrides:
            return overrides[name]
        return self.parameters.get(name, default)

    async def get_credentials(self, name: str) -> Dict[str, Any]:
        self.credential_names.append(name)
        return dict(self.credentials)

    def continue_on_fail(self) -> bool:
        return self.fail_silently


class RecordingHttpRequest:
    """
    Host http_request helper that records each options dictionary and replays canned responses in order.  The
    last response repeats once the others are used up.  Exception instances are raised instead of returned
    """

    def __init__(self, *responses: Any):
        self.responses = list(responses) or [{'statusCode': 200, 'headers': {}, 'body': ''}]
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, options: Dict[str, Any]) -> Any:
        self.calls.append(options)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def urls(self) -> List[str]:
        return [call['url'] for call in self.calls]

    @property
    def bodies(self) -> List[Any]:
        return [call['body'] for call in self.calls]


class TableContext:
    # pylint: disable=too-many-arguments
    def __init__(self, transport: Transport,
                 credentials: Credentials,
                 table: str,
                 columns: Union[str, Sequence[str]],
                 column_types: Optional[Sequence[str]] = None,
                 engine: str = 'MergeTree',
                 order_by: str = None):
        self.transport = transport
        self.credentials = credentials
        self.table = table
        if isinstance(columns, str):
            columns = columns.split(',')
        if column_types is None:
            self.column_names = []
            self.column_types = []
            for col in columns:
                col = col.strip()
                ix = col.find(' ')
                self.column_types.append(col[ix + 1:].strip())
                self.column_names.append(col[:ix].strip())
        else:
            self.column_names = columns
            self.column_types = column_types
        self.engine = engine
        self.order_by = self.column_names[0] if order_by is None else order_by

    async def __aenter__(self):
        await self.transport.request(self.credentials, f'DROP TABLE IF EXISTS {self.table}')
        col_defs = ','.join(f'{name} {col_type}' for name, col_type in zip(self.column_names, self.column_types))
        create_sql = f'CREATE TABLE {self.table} ({col_defs}) ENGINE {self.engine} ORDER BY {self.order_by}'
        await self.transport.request(self.credentials, create_sql)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.transport.request(self.credentials, f'DROP TABLE IF EXISTS {self.table}')
