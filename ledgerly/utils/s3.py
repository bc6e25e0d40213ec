"""S3 utilities for the hosted key/value store."""

from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from ledgerly.utils.config import get_config

# S3 client (reused across Lambda invocations)
_s3_client = None


def get_s3_client():
    """Get or create S3 client."""
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client('s3')
    return _s3_client


def reset_s3_client() -> None:
    global _s3_client
    _s3_client = None


def get_bucket_name() -> str:
    """Get the data bucket name from configuration."""
    return get_config().data_bucket


def download_bytes(key: str) -> Optional[bytes]:
    """Download object content as bytes.

    Args:
        key: S3 object key

    Returns:
        Object content as bytes, or None if not found
    """
    try:
        response = get_s3_client().get_object(Bucket=get_bucket_name(), Key=key)
        return response['Body'].read()
    except ClientError as e:
        if e.response['Error']['Code'] in ('NoSuchKey', '404'):
            return None
        raise


def upload_bytes(content: bytes, key: str, content_type: str = 'application/json') -> None:
    """Upload bytes to S3.

    Args:
        content: Object content as bytes
        key: S3 object key
        content_type: MIME type
    """
    get_s3_client().put_object(
        Bucket=get_bucket_name(),
        Key=key,
        Body=content,
        ContentType=content_type
    )


def delete_object(key: str) -> None:
    """Delete an object. Missing keys are not an error in S3."""
    get_s3_client().delete_object(Bucket=get_bucket_name(), Key=key)


def list_keys(prefix: str = '') -> List[str]:
    """List every object key starting with prefix.

    Args:
        prefix: Key prefix

    Returns:
        Sorted keys across all result pages
    """
    paginator = get_s3_client().get_paginator('list_objects_v2')
    keys = []
    for page in paginator.paginate(Bucket=get_bucket_name(), Prefix=prefix):
        keys.extend(obj['Key'] for obj in page.get('Contents', []))
    return sorted(keys)
