"""Entity record routes backed by the SQLite records table."""

from typing import Optional

from aws_lambda_powertools import Logger

from ledgerly.models.entities import ValidationError
from ledgerly.services import categorizer, database, ledger
from ledgerly.utils.http import error_response, make_response

logger = Logger(service="ledgerly-records")

PROFILE_ENTITY = 'user-profile'


def _validate_category(body: dict) -> None:
    if not isinstance(body['category'], str):
        raise ValidationError('category must be a string')
    category = categorizer.match_category_name(body['category'])
    if category is None:
        raise ValidationError(f"Unknown category: {body['category']}")
    body['category'] = category.value


def validate_fields(entity: str, body: dict, partial: bool = False) -> dict:
    """Check and normalize a record payload.

    Args:
        entity: Entity name
        body: Request payload
        partial: Only validate the fields present (updates)

    Returns:
        Normalized copy of body

    Raises:
        ValidationError: missing or invalid field
    """
    data = dict(body)

    def present(field: str) -> bool:
        return not partial or field in data

    if entity in ('income', 'expenses'):
        if present('amount'):
            data['amount'] = ledger.require_positive(data.get('amount'), 'amount')
        if present('date'):
            data['date'] = ledger.require_date(data.get('date'))

    if entity == 'expenses':
        if not partial and not data.get('category'):
            data['category'] = categorizer.categorize_expense(data.get('description', '')).value
        elif 'category' in data:
            _validate_category(data)

    elif entity == 'budgets':
        if present('category'):
            if not data.get('category'):
                raise ValidationError('category is required')
            _validate_category(data)
        if present('limit'):
            data['limit'] = ledger.require_non_negative(data.get('limit'), 'limit')
        if not partial:
            data.setdefault('spent', 0.0)

    elif entity == 'goals':
        if present('name') and not data.get('name'):
            raise ValidationError('name is required')
        if present('target_amount'):
            data['target_amount'] = ledger.require_positive(data.get('target_amount'), 'target_amount')
        if present('target_date'):
            data['target_date'] = ledger.require_date(data.get('target_date'), 'target_date')

    elif entity == 'debts':
        if present('name') and not data.get('name'):
            raise ValidationError('name is required')
        if present('balance'):
            data['balance'] = ledger.require_non_negative(data.get('balance'), 'balance')

    elif entity == 'months':
        if present('id'):
            month_id = ledger.month_id_from_label(data.get('id') or data.get('name', ''))
            data['month'] = month_id
            data['name'] = ledger.month_name(month_id)
        data.pop('id', None)

    return data


def _parse_user(user_id: str) -> int:
    try:
        return int(user_id)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid user id: {user_id}')


def _month_scope(month_id: Optional[str]) -> Optional[str]:
    return ledger.month_id_from_label(month_id) if month_id else None


def handle_list(entity: str, user_id: str, month_id: Optional[str] = None) -> dict:
    """List records for a user, scoped to month_id for month-partitioned entities."""
    records = database.get_records(entity, _parse_user(user_id), _month_scope(month_id))
    return make_response(200, records)


def handle_create(entity: str, user_id: str, month_id: Optional[str], body: dict) -> dict:
    """Create a record.

    Args:
        entity: Entity name
        user_id: Owner id from the path
        month_id: Month from the path; month-partitioned entities fall back to the date
        body: Record payload

    Returns:
        Response with the created record (201)
    """
    data = validate_fields(entity, body)
    scope = _month_scope(month_id)
    if scope is None and data.get('date') and entity not in database.GLOBAL_ENTITIES:
        scope = ledger.month_id_from_date(data['date'])

    if entity == 'months' and any(
        r.get('month') == data['month'] for r in database.get_records('months', _parse_user(user_id))
    ):
        return error_response(400, 'duplicate_month', f"Month {data['month']} already exists")

    record = database.create_record(entity, _parse_user(user_id), scope, data)
    logger.info("Record created", extra={"entity": entity, "record_id": record['id']})
    return make_response(201, record)


def handle_update(entity: str, record_id: int, body: dict) -> dict:
    data = validate_fields(entity, body, partial=True)
    record = database.update_record(entity, record_id, data)
    if record is None:
        return error_response(404, 'not_found', f'{entity} {record_id} not found')
    return make_response(200, record)


def handle_delete(entity: str, record_id: int) -> dict:
    if not database.delete_record(entity, record_id):
        return error_response(404, 'not_found', f'{entity} {record_id} not found')
    logger.info("Record deleted", extra={"entity": entity, "record_id": record_id})
    return make_response(200, {'success': True})


def handle_mark_read(entity: str, record_id: int) -> dict:
    """Mark a recommendation or alert as read."""
    record = database.update_record(entity, record_id, {'is_read': True})
    if record is None:
        return error_response(404, 'not_found', f'{entity} {record_id} not found')
    return make_response(200, record)


def handle_clear_alerts(user_id: str, month_id: str) -> dict:
    removed = database.delete_records('alerts', _parse_user(user_id), _month_scope(month_id))
    logger.info("Alerts cleared", extra={"month_id": month_id, "removed": removed})
    return make_response(200, {'success': True, 'removed': removed})


def handle_set_active_month(user_id: str, month_id: str) -> dict:
    """Mark one month active for a user, creating its record if needed."""
    owner = _parse_user(user_id)
    month_id = ledger.month_id_from_label(month_id)

    months = database.get_records('months', owner)
    if not any(m.get('month') == month_id for m in months):
        database.create_record('months', owner, None, {
            'month': month_id, 'name': ledger.month_name(month_id), 'is_active': True
        })

    for month in database.get_records('months', owner):
        is_active = month.get('month') == month_id
        if month.get('is_active') != is_active:
            database.update_record('months', month['id'], {'is_active': is_active})

    return make_response(200, database.get_records('months', owner))


def handle_get_profile(user_id: str) -> dict:
    profiles = database.get_records(PROFILE_ENTITY, _parse_user(user_id))
    if not profiles:
        return error_response(404, 'not_found', f'No profile for user {user_id}')
    return make_response(200, profiles[0])


def handle_put_profile(user_id: str, body: dict) -> dict:
    """Create or replace a user's profile."""
    owner = _parse_user(user_id)
    profiles = database.get_records(PROFILE_ENTITY, owner)
    if profiles:
        record = database.update_record(PROFILE_ENTITY, profiles[0]['id'], body)
    else:
        record = database.create_record(PROFILE_ENTITY, owner, None, body)
    return make_response(200, record)
