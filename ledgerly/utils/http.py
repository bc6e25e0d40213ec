"""API Gateway response helpers."""

import base64
import json
from typing import Any


def make_response(status_code: int, body: Any, content_type: str = 'application/json') -> dict:
    """Create API Gateway response.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON-encoded if dict/list)
        content_type: Content-Type header

    Returns:
        API Gateway response dict
    """
    headers = {
        'Content-Type': content_type,
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Headers': 'Content-Type',
        'Access-Control-Allow-Methods': 'GET,POST,PUT,DELETE,OPTIONS'
    }

    if isinstance(body, (dict, list)):
        body = json.dumps(body)

    return {
        'statusCode': status_code,
        'headers': headers,
        'body': body
    }


def error_response(status_code: int, error: str, message: str) -> dict:
    """Create error response.

    Args:
        status_code: HTTP status code
        error: Error code
        message: Error message

    Returns:
        API Gateway response dict
    """
    return make_response(status_code, {'error': error, 'message': message})


def file_response(content: bytes, filename: str, content_type: str) -> dict:
    """Binary download, base64-encoded for API Gateway."""
    response = make_response(200, base64.b64encode(content).decode('utf-8'), content_type)
    response['headers']['Content-Disposition'] = f'attachment; filename="{filename}"'
    response['isBase64Encoded'] = True
    return response
