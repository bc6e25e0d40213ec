"""Tests for HTTP routing through the Lambda handler."""

import base64
import json
import pytest
from unittest.mock import patch

from ledgerly.main import handler
from ledgerly.models.entities import ExpenseCategory
from ledgerly.routes import hosted
from ledgerly.services.advisor import HEALTH_FALLBACK, INVALID_INPUT, PARSE, RATE_LIMIT, Outcome
from ledgerly.services.store import LedgerStore


def call(method, path, body=None, query=None, raw_body=None):
    """Invoke the handler with an API Gateway HTTP API event."""
    event = {
        'requestContext': {'http': {'method': method}},
        'rawPath': path,
        'headers': {},
        'body': raw_body if raw_body is not None else (json.dumps(body) if body is not None else None),
        'queryStringParameters': query,
    }
    response = handler(event, None)
    if response['headers']['Content-Type'] == 'application/json' and response['body']:
        response['json'] = json.loads(response['body'])
    return response


class TestRouting:
    """Tests for request parsing and dispatch."""

    def test_options_preflight(self):
        response = call('OPTIONS', '/api/expenses/1')
        assert response['statusCode'] == 200
        assert response['headers']['Access-Control-Allow-Origin'] == '*'

    def test_unknown_route(self):
        response = call('GET', '/api/nothing-here')
        assert response['statusCode'] == 404
        assert response['json']['error'] == 'not_found'

    def test_non_api_path(self):
        assert call('GET', '/health')['statusCode'] == 404

    def test_stage_prefix_stripped(self):
        assert call('GET', '/prod/api/goals/1')['statusCode'] == 200

    def test_invalid_json_body(self):
        response = call('POST', '/api/expenses/1', raw_body='{amount: 5')
        assert response['statusCode'] == 400

    def test_body_must_be_object(self):
        response = call('POST', '/api/expenses/1', raw_body='[1, 2]')
        assert response['statusCode'] == 400

    def test_invalid_user_id(self):
        assert call('GET', '/api/expenses/abc')['statusCode'] == 400

    def test_invalid_record_id(self):
        assert call('PUT', '/api/expenses/abc', {'amount': 5})['statusCode'] == 400


class TestRecordRoutes:
    """Tests for entity record CRUD."""

    def test_create_expense_auto_categorized(self):
        response = call('POST', '/api/expenses/1/2024-03',
                        {'amount': 42.5, 'date': '2024-03-05', 'description': 'Grocery run'})
        assert response['statusCode'] == 201
        assert response['json']['category'] == 'Groceries'
        assert response['json']['month_id'] == '2024-03'

    def test_month_from_date(self):
        response = call('POST', '/api/income/1', {'amount': 100, 'date': '2024-02-10', 'source': 'Gift'})
        assert response['json']['month_id'] == '2024-02'

    @pytest.mark.parametrize('body', [
        {'amount': 0, 'date': '2024-03-05'},
        {'amount': 'lots', 'date': '2024-03-05'},
        {'amount': 10, 'date': 'yesterday'},
        {'amount': 10, 'date': '2024-03-05', 'category': 'Yachts'},
        {'amount': 10, 'date': '2024-03-05', 'category': 5},
    ])
    def test_invalid_expense(self, body):
        response = call('POST', '/api/expenses/1/2024-03', body)
        assert response['statusCode'] == 400
        assert response['json']['error'] == 'bad_request'

    def test_list_scoped_to_month(self):
        call('POST', '/api/expenses/1/2024-03', {'amount': 10, 'date': '2024-03-05', 'category': 'Groceries'})
        call('POST', '/api/expenses/1/2024-04', {'amount': 20, 'date': '2024-04-05', 'category': 'Groceries'})

        response = call('GET', '/api/expenses/1/2024-04')
        assert [r['amount'] for r in response['json']] == [20.0]
        assert len(call('GET', '/api/expenses/1')['json']) == 2

    def test_update_and_delete(self):
        created = call('POST', '/api/budgets/1/2024-03', {'category': 'Utilities', 'limit': 200})['json']

        updated = call('PUT', f"/api/budgets/{created['id']}", {'limit': 250})
        assert updated['statusCode'] == 200
        assert updated['json']['limit'] == 250.0
        assert updated['json']['category'] == 'Utilities'

        assert call('DELETE', f"/api/budgets/{created['id']}")['json'] == {'success': True}
        assert call('DELETE', f"/api/budgets/{created['id']}")['statusCode'] == 404

    def test_update_date_moves_month(self):
        created = call('POST', '/api/income/1', {'amount': 100, 'date': '2024-01-05', 'source': 'Gift'})['json']
        call('PUT', f"/api/income/{created['id']}", {'date': '2024-02-05'})

        assert call('GET', '/api/income/1/2024-01')['json'] == []
        assert [r['id'] for r in call('GET', '/api/income/1/2024-02')['json']] == [created['id']]

    @pytest.mark.parametrize('body', [{'category': 5, 'limit': 100}, {'category': ['Groceries'], 'limit': 100}])
    def test_budget_category_must_be_text(self, body):
        response = call('POST', '/api/budgets/1/2024-03', body)
        assert response['statusCode'] == 400
        assert response['json']['error'] == 'bad_request'

    def test_update_unknown(self):
        assert call('PUT', '/api/goals/999', {'name': 'Trip'})['statusCode'] == 404

    def test_goal_requires_positive_target(self):
        response = call('POST', '/api/goals/1', {'name': 'Trip', 'target_amount': 0, 'target_date': '2024-12-31'})
        assert response['statusCode'] == 400

    def test_mark_read(self):
        created = call('POST', '/api/recommendations/1/2024-03', {'type': 'Savings Tip', 'is_read': False})['json']
        response = call('PUT', f"/api/recommendations/{created['id']}/read")
        assert response['json']['is_read'] is True

    def test_clear_alerts(self):
        call('POST', '/api/alerts/1/2024-03', {'message': 'a'})
        call('POST', '/api/alerts/1/2024-03', {'message': 'b'})
        call('POST', '/api/alerts/1/2024-04', {'message': 'c'})

        response = call('DELETE', '/api/alerts/1/2024-03')
        assert response['json'] == {'success': True, 'removed': 2}
        assert len(call('GET', '/api/alerts/1')['json']) == 1


class TestMonthRoutes:
    """Tests for month records."""

    def test_create_month_from_name(self):
        response = call('POST', '/api/months/1', {'id': 'March 2024'})
        assert response['statusCode'] == 201
        assert response['json']['month'] == '2024-03'
        assert response['json']['name'] == 'March 2024'

    def test_duplicate_month(self):
        call('POST', '/api/months/1', {'id': '2024-03'})
        response = call('POST', '/api/months/1', {'id': 'Mar 2024'})
        assert response['statusCode'] == 400
        assert response['json']['error'] == 'duplicate_month'

    def test_set_active_month(self):
        call('POST', '/api/months/1', {'id': '2024-03', 'is_active': True})
        response = call('PUT', '/api/months/1/2024-04/active')

        active = [m['month'] for m in response['json'] if m['is_active']]
        assert active == ['2024-04']
        assert len(response['json']) == 2


class TestProfileRoutes:
    """Tests for the user profile."""

    def test_missing_profile(self):
        assert call('GET', '/api/user-profile/1')['statusCode'] == 404

    def test_put_then_get(self):
        call('PUT', '/api/user-profile/1', {'name': 'Sam', 'preferred_currency': 'USD'})
        call('PUT', '/api/user-profile/1', {'preferred_currency': 'EUR'})

        response = call('GET', '/api/user-profile/1')
        assert response['json']['name'] == 'Sam'
        assert response['json']['preferred_currency'] == 'EUR'


class TestHostedRoutes:
    """Tests for the hosted key/value routes."""

    def test_save_get_list_delete(self):
        saved = call('POST', '/api/replit-db/save', {'key': 'goals', 'data': [{'id': 1}]})
        assert saved['json']['success'] is True

        assert call('GET', '/api/replit-db/get/goals')['json'] == {'data': [{'id': 1}]}
        assert call('GET', '/api/replit-db/list')['json'] == {'keys': ['goals']}
        assert call('GET', '/api/replit-db/last-save-time')['json']['timestamp'] == saved['json']['timestamp']

        call('DELETE', '/api/replit-db/delete/goals')
        assert call('GET', '/api/replit-db/get/goals')['json'] == {'data': None}

    def test_list_with_prefix(self):
        call('POST', '/api/save-data', {'data': {'expenses_2024-03': [], 'goals': []}})
        assert call('GET', '/api/replit-db/list/expenses_')['json'] == {'keys': ['expenses_2024-03']}

    def test_save_requires_key(self):
        assert call('POST', '/api/replit-db/save', {'data': 1})['statusCode'] == 400

    def test_save_requires_data(self):
        assert call('POST', '/api/replit-db/save', {'key': 'goals'})['statusCode'] == 400

    def test_save_data(self):
        response = call('POST', '/api/save-data', {'data': {'goals': [], 'debts': []}})
        assert response['json']['saved'] == ['debts', 'goals']

    @pytest.mark.parametrize('body', [{}, {'data': {}}, {'data': [1]}])
    def test_save_data_invalid(self, body):
        assert call('POST', '/api/save-data', body)['statusCode'] == 400


class TestAdvisorRoutes:
    """Tests for AI routes; the adapter is mocked or unconfigured."""

    @patch('ledgerly.services.advisor.generate_insights')
    def test_generate_insights(self, mock_generate):
        mock_generate.return_value = Outcome(value=[{'type': 'Tip', 'description': 'd', 'impact': 'i'}])
        response = call('POST', '/api/openai/generate-insights', {'total_income': 1000})
        assert response['statusCode'] == 200
        assert response['json'][0]['type'] == 'Tip'
        mock_generate.assert_called_once_with({'total_income': 1000})

    @patch('ledgerly.services.advisor.generate_insights')
    def test_rate_limited(self, mock_generate):
        mock_generate.return_value = Outcome(value=[], failure=RATE_LIMIT)
        response = call('POST', '/api/openai/generate-insights', {})
        assert response['statusCode'] == 429
        assert response['json']['error'] == 'rate_limited'

    def test_fallback_without_key(self):
        """An unconfigured adapter is a server error, not a silent fallback."""
        response = call('POST', '/api/openai/generate-insights', {})
        assert response['statusCode'] == 500
        assert response['json']['error'] == 'ai_unavailable'

    def test_generate_insights_rejects_text(self):
        response = call('POST', '/api/openai/generate-insights', {'total_income': 'lots'})
        assert response['statusCode'] == 400
        assert response['json']['error'] == 'bad_request'

    def test_categorize_without_key(self):
        assert call('POST', '/api/openai/categorize', {'description': 'Monthly rent'})['statusCode'] == 500

    @patch('ledgerly.services.advisor.categorize')
    def test_categorize_unparsable_reply_uses_keywords(self, mock_categorize):
        mock_categorize.return_value = Outcome(value=ExpenseCategory.RENT_OR_MORTGAGE, failure=PARSE)
        response = call('POST', '/api/openai/categorize', {'description': 'Monthly rent'})
        assert response['statusCode'] == 200
        assert response['json'] == {'category': 'Rent or Mortgage', 'source': 'keywords'}

    def test_categorize_requires_description(self):
        assert call('POST', '/api/openai/categorize', {'description': ' '})['statusCode'] == 400

    def test_categorize_rejects_non_string(self):
        assert call('POST', '/api/openai/categorize', {'description': 5})['statusCode'] == 400

    def test_analyze_health_rejects_text(self):
        assert call('POST', '/api/openai/analyze-health', {'income': 'a lot'})['statusCode'] == 400

    def test_analyze_health_without_key(self):
        response = call('POST', '/api/openai/analyze-health', {'income': 5000, 'expenses': 4000})
        assert response['statusCode'] == 500

    @patch('ledgerly.services.advisor.analyze_health')
    def test_analyze_health_fallback(self, mock_analyze):
        mock_analyze.return_value = Outcome(value=dict(HEALTH_FALLBACK), failure=PARSE)
        response = call('POST', '/api/openai/analyze-health', {'income': 5000, 'expenses': 4000})
        assert response['statusCode'] == 200
        assert response['json']['score'] == 50

    def test_prioritize_goals_requires_goals(self):
        assert call('POST', '/api/openai/prioritize-goals', {'goals': []})['statusCode'] == 400

    @patch('ledgerly.services.advisor.analyze_spending')
    def test_analyze_spending_default_target(self, mock_analyze):
        mock_analyze.return_value = Outcome(value={'optimization_areas': [], 'projected_impact': {}})
        call('POST', '/api/openai/analyze-spending', {'expenses': [{'amount': 1}], 'income': 100})
        mock_analyze.assert_called_once_with([{'amount': 1}], 100.0, 20.0)

    @patch('ledgerly.services.advisor.analyze_spending')
    def test_analyze_spending_invalid_input(self, mock_analyze):
        mock_analyze.return_value = Outcome(value={}, failure=INVALID_INPUT)
        assert call('POST', '/api/openai/analyze-spending', {'expenses': 'none'})['statusCode'] == 400

    @patch('ledgerly.services.advisor.ask')
    def test_ask(self, mock_ask):
        mock_ask.return_value = Outcome(value='Diversify.')
        response = call('POST', '/api/knowledge/ask', {'question': 'How should I invest?'})
        assert response['json'] == {'answer': 'Diversify.'}

    def test_wrong_method(self):
        assert call('GET', '/api/openai/categorize')['statusCode'] == 404


class TestLoanRoutes:
    """Tests for the loan tracker routes."""

    @pytest.fixture
    def loan(self):
        call('PUT', '/api/loan/details', {'principal': 1000, 'interest_rate': 0, 'monthly_payment': 100})

    def test_details_and_payment(self, loan):
        response = call('POST', '/api/loan/payments', {'amount': 250, 'date': '2024-01-15'})
        assert response['statusCode'] == 201
        assert response['json']['current_balance'] == 750.0
        assert response['json']['payoff']['months'] == 8
        assert response['json']['milestone']['milestone'] == 25

        summary = call('GET', '/api/loan')['json']
        assert summary['percent_paid'] == 25
        assert summary['last_milestone'] == 25
        assert [p['amount'] for p in summary['payments']] == [250.0]

    def test_milestone_reported_once(self, loan):
        call('POST', '/api/loan/payments', {'amount': 250, 'date': '2024-01-15'})
        response = call('POST', '/api/loan/payments', {'amount': 10, 'date': '2024-02-15'})
        assert response['json']['milestone'] is None

    def test_update_and_delete_payment(self, loan):
        created = call('POST', '/api/loan/payments', {'amount': 100, 'date': '2024-01-15'})
        payment_id = created['json']['payments'][0]['id']

        updated = call('PUT', f'/api/loan/payments/{payment_id}', {'amount': 200})
        assert updated['json']['current_balance'] == 800.0

        assert call('DELETE', f'/api/loan/payments/{payment_id}')['json'] == {'success': True}
        assert call('GET', '/api/loan')['json']['payments'] == []

    def test_unknown_payment(self, loan):
        assert call('PUT', '/api/loan/payments/999', {'amount': 5})['statusCode'] == 404
        assert call('DELETE', '/api/loan/payments/999')['statusCode'] == 404

    @pytest.mark.parametrize('body', [{'amount': 0, 'date': '2024-01-15'}, {'amount': 10}])
    def test_invalid_payment(self, loan, body):
        assert call('POST', '/api/loan/payments', body)['statusCode'] == 400

    def test_negative_details(self):
        response = call('PUT', '/api/loan/details', {'principal': -1, 'interest_rate': 0, 'monthly_payment': 0})
        assert response['statusCode'] == 400


class TestReportRoutes:
    """Tests for the monthly PDF download."""

    def test_monthly_pdf(self, clock):
        LedgerStore(hosted.get_store().store, clock=clock).load_sample_data()

        response = call('GET', '/api/reports/monthly', query={'month_id': '2024-03'})
        assert response['statusCode'] == 200
        assert response['isBase64Encoded'] is True
        assert response['headers']['Content-Type'] == 'application/pdf'
        assert 'Ledgerly_Report_2024-03.pdf' in response['headers']['Content-Disposition']
        assert base64.b64decode(response['body']).startswith(b'%PDF')

    def test_monthly_pdf_empty_ledger(self):
        response = call('GET', '/api/reports/monthly')
        assert base64.b64decode(response['body']).startswith(b'%PDF')

    def test_monthly_pdf_does_not_write(self):
        call('GET', '/api/reports/monthly')
        assert hosted.get_store().list() == []

    def test_invalid_month(self):
        assert call('GET', '/api/reports/monthly', query={'month_id': 'Smarch'})['statusCode'] == 400
