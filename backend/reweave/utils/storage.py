"""S3-compatible object storage helpers for garment photos.

Ingestion uploads photos and stores their object key on the item. The vision
adapter only needs read access: it turns a key into a presigned GET URL the
vision model can fetch. Values that are already URLs pass through unchanged.
"""

from __future__ import annotations

from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from reweave.config import settings
from reweave.pipeline.errors import TransientServiceError

logger = structlog.get_logger()


def _build_client() -> Any:
    return boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url or None,
        aws_access_key_id=settings.storage_access_key_id or None,
        aws_secret_access_key=settings.storage_secret_access_key or None,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


_client: Any = None


def _get_client() -> Any:
    """Lazy-init singleton client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = _build_client()
    return _client


def reset_client() -> None:
    """Drop the cached client (tests, credential rotation)."""
    global _client  # noqa: PLW0603
    _client = None


def generate_presigned_url(key: str) -> str:
    """Presigned GET URL valid for ``settings.presigned_url_expiry_seconds``."""
    client = _get_client()
    try:
        url: str = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.storage_bucket_name, "Key": key},
            ExpiresIn=settings.presigned_url_expiry_seconds,
        )
    except (ClientError, BotoCoreError) as e:
        logger.error("storage_presign_failed", key=key, error=str(e))
        raise TransientServiceError("object_storage", f"cannot presign {key}: {e}") from e
    return url


def resolve_url(key_or_url: str) -> str:
    if key_or_url.startswith(("http://", "https://")):
        return key_or_url
    return generate_presigned_url(key_or_url)
