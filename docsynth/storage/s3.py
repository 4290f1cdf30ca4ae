"""
S3 ObjectStore adapter.

References are either full URIs (`s3://bucket/key`) or bare keys, which
resolve against the configured default bucket. A missing object surfaces
as FileNotFoundError and a denied read as CollaboratorError; other
ClientErrors propagate unchanged so the retry helper can classify them.
"""

from __future__ import annotations

import logging

import aioboto3
from botocore.exceptions import ClientError

from docsynth.core.config import get_settings
from docsynth.core.exceptions import CollaboratorError

logger = logging.getLogger(__name__)

_S3_SCHEME = "s3://"
_DENIED_CODES = ("AccessDenied", "403", "InvalidObjectState")


def parse_ref(ref: str, default_bucket: str) -> tuple[str, str]:
    """Split a reference into (bucket, key)."""
    if ref.startswith(_S3_SCHEME):
        bucket, _, key = ref[len(_S3_SCHEME):].partition("/")
        if not bucket or not key:
            raise ValueError(f"Malformed S3 reference: {ref!r}")
        return bucket, key
    if not default_bucket:
        raise ValueError(f"No bucket configured for bare key {ref!r}")
    return default_bucket, ref.lstrip("/")


class S3ObjectStore:
    """
    Async S3 reads / deletes through aioboto3.

    One aioboto3 session per store; a short-lived client per call.
    """

    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        session: aioboto3.Session | None = None,
    ) -> None:
        settings = get_settings()
        self._bucket  = bucket if bucket is not None else settings.s3_bucket
        self._region  = region or settings.aws_region
        self._session = session or aioboto3.Session(
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", region_name=self._region)

    async def read(self, ref: str) -> bytes:
        bucket, key = parse_ref(ref, self._bucket)
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=bucket, Key=key)
                body = await resp["Body"].read()
            except ClientError as exc:
                code = exc.response["Error"]["Code"]
                if code in ("NoSuchKey", "404"):
                    raise FileNotFoundError(f"Object not found: {ref}") from exc
                if code in _DENIED_CODES:
                    raise CollaboratorError(f"S3 read refused ({code}): {ref}") from exc
                raise

        logger.info("S3 read ok | bucket=%s key=%s size=%d", bucket, key, len(body))
        return body

    async def delete(self, ref: str) -> None:
        bucket, key = parse_ref(ref, self._bucket)
        async with self._client() as s3:
            await s3.delete_object(Bucket=bucket, Key=key)
        logger.info("S3 delete ok | bucket=%s key=%s", bucket, key)
