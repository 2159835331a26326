import logging
import json as py_json
from collections import OrderedDict
from typing import Any

try:
    import orjson
except ImportError:
    orjson = None


def _pyjson_to_json(obj: Any) -> str:
    return py_json.dumps(obj, separators=(',', ':'))


def _orjson_to_json(obj: Any) -> str:
    return orjson.dumps(obj).decode()  # pylint: disable=no-member


logger = logging.getLogger(__name__)
_to_json = OrderedDict()
_to_json['orjson'] = _orjson_to_json if orjson else None
_to_json['python'] = _pyjson_to_json

any_to_json = _pyjson_to_json


def set_json_library(impl: str = None):
    """
    Select the library used to serialize JSONEachRow insert rows.  Without an argument the first available
    library is used, preferring orjson when it is installed
    :param impl: 'orjson' or 'python'
    """
    global any_to_json  # pylint: disable=global-statement
    if impl:
        if impl not in _to_json:
            raise NotImplementedError(f'JSON library {impl} is not supported')
        func = _to_json[impl]
        if not func:
            raise NotImplementedError(f'JSON library {impl} is not installed')
        any_to_json = func
        logger.debug('Using %s library for writing JSON rows', impl)
        return
    for library, func in _to_json.items():
        if func:
            logger.debug('Using %s library for writing JSON rows', library)
            any_to_json = func
            break


def to_json(obj: Any) -> str:
    return any_to_json(obj)


set_json_library()
