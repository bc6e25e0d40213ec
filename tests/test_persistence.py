"""Tests for key/value backends and the hosted store."""

import json
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from ledgerly.models.entities import PersistenceError
from ledgerly.services.hosted_store import LAST_SAVE_KEY, HostedStore
from ledgerly.services.persistence import (
    MemoryStore,
    PrefixedStore,
    S3Store,
    SqliteStore,
    default_backend,
    load_json,
    save_json,
)
from ledgerly.utils import config, s3

SAVED_AT = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def client_error(code, operation='GetObject'):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


class TestMemoryStore:
    """Tests for the dict backend."""

    def test_get_missing(self):
        assert MemoryStore().get('nope') is None

    def test_keys_sorted_by_prefix(self):
        store = MemoryStore({'b_2': '1', 'a_1': '1', 'b_1': '1'})
        assert store.keys('b_') == ['b_1', 'b_2']

    def test_delete_missing_is_noop(self):
        store = MemoryStore()
        store.delete('nope')
        assert store.data == {}


class TestSqliteStore:
    """Tests for the kv_store table backend."""

    def test_set_get_overwrite(self):
        store = SqliteStore()
        store.set('months', '[]')
        store.set('months', '[1]')
        assert store.get('months') == '[1]'

    def test_keys_with_prefix(self):
        store = SqliteStore()
        for key in ('expenses_2024-02', 'expenses_2024-03', 'incomes_2024-03'):
            store.set(key, '[]')
        assert store.keys('expenses_') == ['expenses_2024-02', 'expenses_2024-03']

    def test_prefix_is_literal(self):
        """Underscores and percent signs are not wildcards."""
        store = SqliteStore()
        store.set('a_b', '1')
        store.set('axb', '1')
        assert store.keys('a_') == ['a_b']

    def test_delete(self):
        store = SqliteStore()
        store.set('goals', '[]')
        store.delete('goals')
        assert store.get('goals') is None


class TestJsonHelpers:
    """Tests for load_json and save_json."""

    def test_round_trip(self, memory):
        save_json(memory, 'goals', [{'id': 1}])
        assert load_json(memory, 'goals') == [{'id': 1}]

    def test_missing_returns_default(self, memory):
        assert load_json(memory, 'goals', default=[]) == []

    def test_corrupt_returns_default(self, memory):
        memory.set('goals', '{not json')
        assert load_json(memory, 'goals', default=[]) == []

    def test_read_failure_returns_default(self):
        backend = MagicMock()
        backend.get.side_effect = PersistenceError('disk gone')
        assert load_json(backend, 'goals', default='fallback') == 'fallback'


class TestPrefixedStore:
    """Tests for key namespacing."""

    def test_keys_are_prefixed_in_backend(self, memory):
        store = PrefixedStore(memory, 'app_')
        store.set('goals', '[]')
        assert memory.data == {'app_goals': '[]'}
        assert store.get('goals') == '[]'

    def test_keys_strip_prefix(self, memory):
        memory.set('other_goals', '[]')
        store = PrefixedStore(memory, 'app_')
        store.set('expenses_2024-03', '[]')
        store.set('goals', '[]')
        assert store.keys() == ['expenses_2024-03', 'goals']
        assert store.keys('exp') == ['expenses_2024-03']


class TestS3:
    """Tests for the S3 backend with a mocked client."""

    @pytest.fixture
    def s3_client(self, monkeypatch):
        monkeypatch.setenv('DATA_BUCKET', 'ledgerly-data')
        config.reset_config()
        with patch('ledgerly.utils.s3.get_s3_client') as mock_get_client:
            mock_client = MagicMock()
            mock_get_client.return_value = mock_client
            yield mock_client

    def test_default_backend_uses_bucket(self, s3_client):
        assert isinstance(default_backend(), S3Store)

    def test_default_backend_without_bucket(self):
        assert isinstance(default_backend(), SqliteStore)

    def test_get(self, s3_client):
        body = MagicMock()
        body.read.return_value = b'[1, 2]'
        s3_client.get_object.return_value = {'Body': body}

        assert S3Store().get('goals') == '[1, 2]'
        s3_client.get_object.assert_called_once_with(Bucket='ledgerly-data', Key='goals')

    def test_get_missing_key(self, s3_client):
        s3_client.get_object.side_effect = client_error('NoSuchKey')
        assert S3Store().get('goals') is None

    def test_get_access_denied(self, s3_client):
        s3_client.get_object.side_effect = client_error('AccessDenied')
        with pytest.raises(PersistenceError):
            S3Store().get('goals')

    def test_get_binary_object(self, s3_client):
        """A non-UTF-8 object is a read failure, and load_json falls back."""
        body = MagicMock()
        body.read.return_value = b'\xff\xfe'
        s3_client.get_object.return_value = {'Body': body}

        with pytest.raises(PersistenceError):
            S3Store().get('months')
        assert load_json(S3Store(), 'months', default=[]) == []

    def test_set(self, s3_client):
        S3Store().set('goals', '[]')
        s3_client.put_object.assert_called_once_with(
            Bucket='ledgerly-data', Key='goals', Body=b'[]', ContentType='application/json'
        )

    def test_set_failure(self, s3_client):
        s3_client.put_object.side_effect = client_error('InternalError', 'PutObject')
        with pytest.raises(PersistenceError):
            S3Store().set('goals', '[]')

    def test_keys_across_pages(self, s3_client):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {'Contents': [{'Key': 'app_b'}, {'Key': 'app_a'}]},
            {'Contents': [{'Key': 'app_c'}]},
            {},
        ]
        s3_client.get_paginator.return_value = paginator

        assert s3.list_keys('app_') == ['app_a', 'app_b', 'app_c']
        paginator.paginate.assert_called_once_with(Bucket='ledgerly-data', Prefix='app_')


class TestHostedStore:
    """Tests for the hosted save/backup store."""

    @pytest.fixture
    def hosted(self, memory):
        return HostedStore(backend=memory, prefix='app_', clock=lambda: SAVED_AT)

    def test_save_stamps_time(self, hosted, memory):
        timestamp = hosted.save('goals', [{'id': 1}])
        assert timestamp == SAVED_AT.isoformat()
        assert json.loads(memory.data['app_goals']) == [{'id': 1}]
        assert json.loads(memory.data['app_' + LAST_SAVE_KEY]) == timestamp
        assert hosted.last_save_time() == timestamp

    def test_last_save_time_before_any_save(self, hosted):
        assert hosted.last_save_time() is None

    def test_get_missing(self, hosted):
        assert hosted.get('goals') is None

    def test_list_excludes_timestamp(self, hosted):
        hosted.save('goals', [])
        hosted.save('expenses_2024-03', [])
        assert hosted.list() == ['expenses_2024-03', 'goals']

    def test_save_all(self, hosted):
        hosted.save_all({'goals': [], 'debts': [{'id': 2}]})
        assert hosted.get('debts') == [{'id': 2}]
        assert hosted.last_save_time() == SAVED_AT.isoformat()

    def test_delete(self, hosted):
        hosted.save('goals', [])
        hosted.delete('goals')
        assert hosted.get('goals') is None

    def test_default_prefix_from_config(self, memory, monkeypatch):
        monkeypatch.setenv('LEDGERLY_KEY_PREFIX', 'custom_')
        config.reset_config()
        HostedStore(backend=memory, clock=lambda: SAVED_AT).save('goals', [])
        assert 'custom_goals' in memory.data
