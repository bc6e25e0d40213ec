"""Main Lambda handler for the ledgerly API."""

import json
from typing import Any, List

from aws_lambda_powertools import Logger

from ledgerly.models.entities import LedgerError, ValidationError
from ledgerly.services.database import ENTITIES
from ledgerly.utils.config import get_config
from ledgerly.utils.http import error_response, make_response

logger = Logger(service="ledgerly-api")

logger.info("AI key status", extra={"ai_key_present": get_config().ai_enabled})

READABLE_ENTITIES = ('recommendations', 'alerts')


def handler(event: dict, context: Any) -> dict:
    """Lambda handler for API Gateway events.

    Args:
        event: API Gateway event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        # Parse request
        http_method = event.get('requestContext', {}).get('http', {}).get('method', 'GET')
        path = event.get('rawPath', event.get('path', '/'))
        headers = event.get('headers', {})
        body_str = event.get('body', '{}')

        # Handle CORS preflight
        if http_method == 'OPTIONS':
            return make_response(200, '')

        # Parse body
        try:
            body = json.loads(body_str) if body_str else {}
        except json.JSONDecodeError:
            return error_response(400, 'bad_request', 'Request body is not valid JSON')
        if not isinstance(body, dict):
            return error_response(400, 'bad_request', 'Request body must be a JSON object')

        # Query parameters
        query_params = event.get('queryStringParameters', {}) or {}

        return route_request(http_method, path, headers, body, query_params)

    except ValidationError as e:
        return error_response(400, 'bad_request', str(e))
    except LedgerError as e:
        logger.exception("Ledger error", extra={"error_type": type(e).__name__})
        return error_response(500, 'internal_error', str(e))
    except Exception as e:
        logger.exception("Unhandled error")
        return error_response(500, 'internal_error', str(e))


def _record_id(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'Invalid id: {value}')


def route_request(method: str, path: str, headers: dict, body: dict, query: dict) -> dict:
    """Route request to appropriate handler.

    Args:
        method: HTTP method
        path: Request path
        headers: Request headers
        body: Request body
        query: Query parameters

    Returns:
        API Gateway response
    """
    # Remove /prod prefix if present (API Gateway stage)
    if path.startswith('/prod'):
        path = path[5:]

    # Import route handlers (lazy to keep cold starts small)
    from ledgerly.routes import hosted, insights, loan, records, reports

    parts: List[str] = [p for p in path.split('/') if p]
    if len(parts) < 2 or parts[0] != 'api':
        return error_response(404, 'not_found', f'Route not found: {method} {path}')

    section, rest = parts[1], parts[2:]

    # AI advisor
    if section == 'openai' and method == 'POST' and len(rest) == 1:
        ai_routes = {
            'generate-insights': insights.handle_generate_insights,
            'categorize': insights.handle_categorize,
            'analyze-health': insights.handle_analyze_health,
            'prioritize-goals': insights.handle_prioritize_goals,
            'goal-recommendations': insights.handle_goal_recommendations,
            'analyze-spending': insights.handle_analyze_spending,
        }
        if rest[0] in ai_routes:
            return ai_routes[rest[0]](body)

    if section == 'knowledge' and rest == ['ask'] and method == 'POST':
        return insights.handle_ask(body)

    # Hosted key/value store
    if section == 'replit-db' and rest:
        action, args = rest[0], rest[1:]
        if action == 'save' and method == 'POST':
            return hosted.handle_save(body)
        if action == 'get' and method == 'GET' and len(args) == 1:
            return hosted.handle_get(args[0])
        if action == 'delete' and method == 'DELETE' and len(args) == 1:
            return hosted.handle_delete(args[0])
        if action == 'list' and method == 'GET' and len(args) <= 1:
            return hosted.handle_list(args[0] if args else '')
        if action == 'last-save-time' and method == 'GET':
            return hosted.handle_last_save_time()

    if section == 'save-data' and not rest and method == 'POST':
        return hosted.handle_save_data(body)

    # Loan tracker
    if section == 'loan':
        if not rest and method == 'GET':
            return loan.handle_get_loan()
        if rest == ['details'] and method == 'PUT':
            return loan.handle_save_details(body)
        if rest == ['payments'] and method == 'POST':
            return loan.handle_add_payment(body)
        if len(rest) == 2 and rest[0] == 'payments':
            if method == 'PUT':
                return loan.handle_update_payment(_record_id(rest[1]), body)
            if method == 'DELETE':
                return loan.handle_delete_payment(_record_id(rest[1]))

    # Reports
    if section == 'reports' and rest == ['monthly'] and method == 'GET':
        return reports.handle_monthly_pdf(query.get('month_id') or None)

    # User profile
    if section == records.PROFILE_ENTITY and len(rest) == 1:
        if method == 'GET':
            return records.handle_get_profile(rest[0])
        if method == 'PUT':
            return records.handle_put_profile(rest[0], body)

    # Entity records
    if section in ENTITIES:
        entity = section

        if entity in READABLE_ENTITIES and len(rest) == 2 and rest[1] == 'read' and method == 'PUT':
            return records.handle_mark_read(entity, _record_id(rest[0]))

        if entity == 'alerts' and len(rest) == 2 and method == 'DELETE':
            return records.handle_clear_alerts(rest[0], rest[1])

        if entity == 'months' and len(rest) == 3 and rest[2] == 'active' and method == 'PUT':
            return records.handle_set_active_month(rest[0], rest[1])

        if len(rest) in (1, 2) and method == 'GET':
            return records.handle_list(entity, rest[0], rest[1] if len(rest) == 2 else None)

        if len(rest) in (1, 2) and method == 'POST':
            return records.handle_create(entity, rest[0], rest[1] if len(rest) == 2 else None, body)

        if len(rest) == 1 and method == 'PUT':
            return records.handle_update(entity, _record_id(rest[0]), body)

        if len(rest) == 1 and method == 'DELETE':
            return records.handle_delete(entity, _record_id(rest[0]))

    # Not found
    return error_response(404, 'not_found', f'Route not found: {method} {path}')
