"""Hosted key/value store routes."""

from typing import Optional
from urllib.parse import unquote

from ledgerly.services.hosted_store import HostedStore
from ledgerly.utils.http import error_response, make_response

_store: Optional[HostedStore] = None


def get_store() -> HostedStore:
    """Get or create the hosted store (reused across Lambda invocations)."""
    global _store
    if _store is None:
        _store = HostedStore()
    return _store


def reset_store() -> None:
    global _store
    _store = None


def handle_save(body: dict) -> dict:
    key = body.get('key')
    if not key:
        return error_response(400, 'bad_request', 'key is required')
    if 'data' not in body:
        return error_response(400, 'bad_request', 'data is required')
    timestamp = get_store().save(key, body['data'])
    return make_response(200, {'success': True, 'timestamp': timestamp})


def handle_get(key: str) -> dict:
    return make_response(200, {'data': get_store().get(unquote(key))})


def handle_delete(key: str) -> dict:
    get_store().delete(unquote(key))
    return make_response(200, {'success': True})


def handle_list(prefix: str = '') -> dict:
    return make_response(200, {'keys': get_store().list(unquote(prefix))})


def handle_last_save_time() -> dict:
    return make_response(200, {'timestamp': get_store().last_save_time()})


def handle_save_data(body: dict) -> dict:
    """Bulk save of {data: {key: value, ...}}.

    Returns:
        Response with success flag, keys saved and the save timestamp
    """
    data = body.get('data')
    if not isinstance(data, dict) or not data:
        return error_response(400, 'bad_request', 'data must be a non-empty object')
    timestamp = get_store().save_all(data)
    return make_response(200, {'success': True, 'saved': sorted(data), 'timestamp': timestamp})
