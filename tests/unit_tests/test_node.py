import json
from urllib.parse import parse_qs, urlsplit

import pytest

from clickhouse_node import ClickHouseNode, NodeDefaults, get_node
from clickhouse_node.driver.exceptions import DatabaseError, ProgrammingError
from clickhouse_node.tools.testing import FakeHostContext, RecordingHttpRequest

base_credentials = {'protocol': 'http',
                    'host': 'localhost',
                    'port': 8123,
                    'username': 'user',
                    'password': 'secret',
                    'defaultDatabase': 'default',
                    'tlsIgnoreSsl': False}

query_params = {'resource': 'query',
                'operation': 'executeQuery',
                'query': 'SELECT 1',
                'limitEnabled': True,
                'limit': 50,
                'paginate': False,
                'outputMode': 'single',
                'databaseOverride': '',
                'timeoutMs': 1000,
                'compress': True}

insert_params = {'resource': 'insert',
                 'operation': 'insertFromItems',
                 'databaseOverride': '',
                 'table': 'events',
                 'columnsCsv': 'id',
                 'columnsUi': {},
                 'batchSize': 1000,
                 'ignoreUnknownFields': False,
                 'gzipRequest': False,
                 'timeoutMs': 1000,
                 'compress': True}


def json_response(rows):
    return {'statusCode': 200,
            'headers': {'content-type': 'application/json'},
            'body': json.dumps({'data': rows, 'meta': [], 'statistics': {}})}


def create_context(http_request, items=None, **params):
    return FakeHostContext(items=items or [{'json': {}}],
                           parameters=params,
                           credentials=base_credentials,
                           http_request=http_request)


@pytest.mark.asyncio
async def test_query_without_limit():
    http_request = RecordingHttpRequest(json_response([{'value': 1}]))
    context = create_context(http_request, **dict(query_params, limitEnabled=False))
    result = await ClickHouseNode().execute(context)
    assert http_request.bodies == ['SELECT 1']
    assert len(result[0][0]['json']['rows']) == 1
    assert context.credential_names == ['ClickHouseApi']


@pytest.mark.asyncio
async def test_query_wraps_limit():
    http_request = RecordingHttpRequest(json_response([{'value': 1}]))
    result = await ClickHouseNode().execute(create_context(http_request, **dict(query_params, limit=10)))
    assert http_request.bodies == ['SELECT * FROM (SELECT 1) LIMIT 10']
    output = result[0][0]
    assert output['pairedItem'] == {'item': 0}
    assert output['json']['summary'] == {'rowCount': 1, 'limit': 10, 'pages': 1, 'paginated': False}
    assert output['json']['meta'] == []
    assert output['json']['statistics'] == {}


@pytest.mark.asyncio
async def test_query_rejects_pagination_without_limit():
    http_request = RecordingHttpRequest()
    context = create_context(http_request, **dict(query_params, limitEnabled=False, paginate=True))
    with pytest.raises(ProgrammingError, match='Limit must be greater than 0'):
        await ClickHouseNode().execute(context)


@pytest.mark.asyncio
async def test_query_per_row_output():
    http_request = RecordingHttpRequest(json_response([{'id': 1}, {'id': 2}]))
    context = create_context(http_request, items=[{'json': {}}, {'json': {}}], **dict(query_params,
                                                                                       outputMode='perRow'))
    result = await ClickHouseNode().execute(context)
    assert len(result[0]) == 4
    assert result[0][0] == {'json': {'id': 1}, 'pairedItem': {'item': 0}}
    assert result[0][3] == {'json': {'id': 2}, 'pairedItem': {'item': 1}}


@pytest.mark.asyncio
async def test_item_parameters():
    http_request = RecordingHttpRequest(json_response([]))
    context = FakeHostContext(items=[{'json': {}}, {'json': {}}],
                              parameters=query_params,
                              item_parameters={1: {'query': 'SELECT 2', 'databaseOverride': 'logs'}},
                              credentials=base_credentials,
                              http_request=http_request)
    await ClickHouseNode().execute(context)
    assert http_request.bodies == ['SELECT * FROM (SELECT 1) LIMIT 50', 'SELECT * FROM (SELECT 2) LIMIT 50']
    databases = [parse_qs(urlsplit(url).query)['database'][0] for url in http_request.urls]
    assert databases == ['default', 'logs']


@pytest.mark.asyncio
async def test_continue_on_fail():
    http_request = RecordingHttpRequest({'statusCode': 500, 'headers': {}, 'body': 'user:secret broke'},
                                        json_response([{'id': 1}]))
    context = FakeHostContext(items=[{'json': {}}, {'json': {}}],
                              parameters=query_params,
                              credentials=base_credentials,
                              http_request=http_request,
                              continue_on_fail=True)
    result = await ClickHouseNode().execute(context)
    error = result[0][0]
    assert error['pairedItem'] == {'item': 0}
    assert 'status 500' in error['json']['error']
    assert 'secret' not in error['json']['error']
    assert result[0][1]['json']['rows'] == [{'id': 1}]

    context.fail_silently = False
    http_request.responses = [{'statusCode': 500, 'headers': {}, 'body': 'broken'}]
    with pytest.raises(DatabaseError):
        await ClickHouseNode().execute(context)


@pytest.mark.asyncio
async def test_command_summary():
    http_request = RecordingHttpRequest({'statusCode': 200,
                                         'headers': {'x-clickhouse-query-id': 'qid', 'set-cookie': 'ignore'},
                                         'body': 'OK\n'})
    context = create_context(http_request,
                             resource='command',
                             operation='executeCommand',
                             command='CREATE TABLE test (id UInt8) ENGINE=Memory',
                             databaseOverride='',
                             timeoutMs=1000,
                             compress=True)
    result = await ClickHouseNode().execute(context)
    summary = result[0][0]['json']
    assert summary['queryId'] == 'qid'
    assert summary['body'] == 'OK'
    assert 'set-cookie' not in summary['headers']
    assert http_request.bodies == ['CREATE TABLE test (id UInt8) ENGINE=Memory']
    assert 'wait_end_of_query=1' in http_request.urls[0]


@pytest.mark.asyncio
async def test_command_without_body():
    http_request = RecordingHttpRequest({'statusCode': 200, 'headers': {}, 'body': '  '})
    context = create_context(http_request, resource='command', operation='executeCommand', command='SYSTEM FLUSH LOGS')
    result = await ClickHouseNode().execute(context)
    assert result[0][0]['json'] == {'queryId': None, 'headers': {}}


@pytest.mark.asyncio
async def test_insert_from_items():
    http_request = RecordingHttpRequest({'statusCode': 200, 'headers': {'x-insert': '1'}, 'body': ''})
    context = create_context(http_request, items=[{'json': {'id': 1}}, {'json': {'id': 2}}],
                             **dict(insert_params, batchSize=1))
    result = await ClickHouseNode().execute(context)
    assert len(http_request.calls) == 2
    assert len(result[0]) == 1
    assert result[0][0]['json'] == {'inserted': 2, 'batches': 2, 'headers': {'x-insert': '1'}}
    assert result[0][0]['pairedItem'] == {'item': 0}


@pytest.mark.asyncio
async def test_insert_from_json_field():
    http_request = RecordingHttpRequest()
    items = [{'json': {'rows': [{'id': 1}, {'id': 2}]}}, {'json': {'payload': {'rows': [{'id': 3}, 'skip']}}},
             {'json': {'rows': 'not a list'}}]
    context = FakeHostContext(items=items,
                              parameters=dict(insert_params, operation='insertFromJson', jsonArrayField='rows',
                                              columnsCsv=''),
                              item_parameters={1: {'jsonArrayField': 'payload.rows'}},
                              credentials=base_credentials,
                              http_request=http_request)
    result = await ClickHouseNode().execute(context)
    assert http_request.bodies == ['{"id":1}\n{"id":2}\n{"id":3}']
    assert result[0][0]['json']['inserted'] == 3


@pytest.mark.asyncio
async def test_insert_ignore_unknown_fields():
    http_request = RecordingHttpRequest()
    context = create_context(http_request, items=[{'json': {'id': 1}}], **dict(insert_params, ignoreUnknownFields=True))
    await ClickHouseNode().execute(context)
    params = parse_qs(urlsplit(http_request.urls[0]).query)
    assert params['input_format_skip_unknown_fields'] == ['1']
    assert params['query'] == ['INSERT INTO events (id) FORMAT JSONEachRow']


@pytest.mark.asyncio
async def test_list_databases():
    http_request = RecordingHttpRequest(json_response([{'name': 'default'}, {'name': 'system'}]))
    context = create_context(http_request, resource='metadata', operation='listDatabases')
    result = await ClickHouseNode().execute(context)
    assert result[0][0] == {'json': {'name': 'default'}, 'pairedItem': {'item': 0}}
    assert len(result[0]) == 2


@pytest.mark.asyncio
async def test_list_columns():
    http_request = RecordingHttpRequest(json_response([{'name': 'id', 'type': 'UInt64'}]))
    context = create_context(http_request, resource='metadata', operation='listColumns', metadataDatabase='',
                             metadataTable='events')
    await ClickHouseNode().execute(context)
    assert http_request.bodies == ['DESCRIBE TABLE default.events FORMAT JSON']


@pytest.mark.asyncio
async def test_get_tables_uses_metadata_database():
    http_request = RecordingHttpRequest(json_response([{'name': 'events'}, {'name': '  '}]))
    context = create_context(http_request, databaseOverride='', metadataDatabase='analytics', timeoutMs=1000)
    options = await ClickHouseNode().get_tables(context)
    assert http_request.bodies == ['SHOW TABLES FROM analytics FORMAT JSON']
    assert options == [{'name': 'events', 'value': 'events'}]


@pytest.mark.asyncio
async def test_get_databases():
    http_request = RecordingHttpRequest(json_response([{'name': 'default'}, {'database': 'logs'}, {'other': 1}]))
    options = await ClickHouseNode().get_databases(create_context(http_request))
    assert options == [{'name': 'default', 'value': 'default'}, {'name': 'logs', 'value': 'logs'}]


@pytest.mark.asyncio
async def test_unknown_operation():
    http_request = RecordingHttpRequest()
    context = create_context(http_request, resource='query', operation='explain')
    result = await ClickHouseNode().execute(context)
    assert result == [[{'json': {'resource': 'query', 'operation': 'explain', 'stub': True},
                        'pairedItem': {'item': 0}}]]
    assert not http_request.calls


@pytest.mark.asyncio
async def test_parameter_defaults():
    http_request = RecordingHttpRequest(json_response([]))
    node = get_node(defaults=NodeDefaults(limit=5, timeout_ms=2500))
    assert node.name == 'clickhouse'
    await node.execute(create_context(http_request, resource='query', operation='executeQuery', query='SELECT 1'))
    assert http_request.bodies == ['SELECT * FROM (SELECT 1) LIMIT 5']
    assert http_request.calls[0]['timeout'] == 2500
