"""Tests for the SQLite record tables."""

from ledgerly.services import database


class TestRecords:
    """Tests for entity record CRUD."""

    def test_create_assigns_id_and_scope(self):
        record = database.create_record('income', 1, '2024-03', {'source': 'Salary', 'amount': 5000})
        assert record['id'] > 0
        assert record['user_id'] == 1
        assert record['month_id'] == '2024-03'
        assert record['amount'] == 5000

    def test_scope_columns_not_stored_in_payload(self):
        record = database.create_record('income', 1, '2024-03', {'id': 99, 'amount': 10})
        assert record['id'] != 99

    def test_month_scope(self):
        database.create_record('expenses', 1, '2024-02', {'amount': 1})
        database.create_record('expenses', 1, '2024-03', {'amount': 2})
        database.create_record('expenses', 2, '2024-03', {'amount': 3})

        assert [r['amount'] for r in database.get_records('expenses', 1, '2024-03')] == [2]
        assert [r['amount'] for r in database.get_records('expenses', 1)] == [1, 2]

    def test_global_entities_ignore_month(self):
        goal = database.create_record('goals', 1, '2024-03', {'name': 'Trip'})
        assert 'month_id' not in goal
        assert len(database.get_records('goals', 1, '2024-05')) == 1

    def test_update_merges(self):
        record = database.create_record('debts', 1, None, {'name': 'Card', 'balance': 500})
        updated = database.update_record('debts', record['id'], {'balance': 400})
        assert updated['name'] == 'Card'
        assert updated['balance'] == 400

    def test_update_date_moves_month(self):
        record = database.create_record('income', 1, '2024-01', {'amount': 100, 'date': '2024-01-05'})
        updated = database.update_record('income', record['id'], {'date': '2024-02-05'})
        assert updated['month_id'] == '2024-02'
        assert database.get_records('income', 1, '2024-01') == []

    def test_update_unknown(self):
        assert database.update_record('debts', 12345, {'balance': 1}) is None

    def test_update_other_entity_not_found(self):
        record = database.create_record('debts', 1, None, {'name': 'Card'})
        assert database.update_record('goals', record['id'], {'name': 'x'}) is None

    def test_delete(self):
        record = database.create_record('alerts', 1, '2024-03', {'message': 'hi'})
        assert database.delete_record('alerts', record['id']) is True
        assert database.delete_record('alerts', record['id']) is False

    def test_delete_records_in_month(self):
        database.create_record('alerts', 1, '2024-03', {'message': 'a'})
        database.create_record('alerts', 1, '2024-03', {'message': 'b'})
        database.create_record('alerts', 1, '2024-04', {'message': 'c'})

        assert database.delete_records('alerts', 1, '2024-03') == 2
        assert [r['message'] for r in database.get_records('alerts', 1)] == ['c']


class TestKeyValue:
    """Tests for the kv_store helpers."""

    def test_missing(self):
        assert database.kv_get('nope') is None

    def test_upsert(self):
        database.kv_set('k', 'one')
        database.kv_set('k', 'two')
        assert database.kv_get('k') == 'two'
        assert database.kv_keys() == ['k']
