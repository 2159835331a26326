from clickhouse_node.driver.credentials import Credentials, normalize_credentials
from clickhouse_node.driver.exceptions import (ClickHouseError, DatabaseError, DataError, OperationalError,
                                               ProgrammingError)
from clickhouse_node.driver.response import ClickHouseResponse, normalize_response
from clickhouse_node.driver.transport import (AiohttpTransport, HostHttpTransport, Transport, create_transport,
                                              request)
