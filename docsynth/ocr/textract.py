"""
OcrEngine adapter over AWS Textract (DetectDocumentText).

Page images arrive as PNG bytes from the OCR extraction strategy. The boto3
client is synchronous, so each call runs in the default thread executor.
LINE blocks are returned in Textract's reading order, joined by newlines.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from docsynth.core.config import get_settings

logger = logging.getLogger(__name__)


class TextractOcrEngine:
    """
    Usage:
        engine = TextractOcrEngine()
        text = await engine.recognize(png_bytes)
    """

    def __init__(self, client: Any = None, region: str | None = None) -> None:
        self._client = client
        settings = get_settings()
        self._region = region or settings.textract_region or settings.aws_region

    def _get_client(self) -> Any:
        if self._client is None:
            import boto3

            settings = get_settings()
            self._client = boto3.client(
                "textract",
                region_name=self._region,
                aws_access_key_id=settings.aws_access_key_id or None,
                aws_secret_access_key=settings.aws_secret_access_key or None,
            )
        return self._client

    async def recognize(self, image: bytes) -> str:
        loop = asyncio.get_running_loop()
        t0 = time.monotonic()
        response = await loop.run_in_executor(None, self._detect_sync, image)

        lines = [
            block.get("Text", "")
            for block in response.get("Blocks", [])
            if block.get("BlockType") == "LINE"
        ]
        text = "\n".join(line for line in lines if line)
        logger.info(
            "Textract | lines=%d chars=%d latency_ms=%.0f",
            len(lines), len(text), (time.monotonic() - t0) * 1000,
        )
        return text

    def _detect_sync(self, image: bytes) -> dict:
        return self._get_client().detect_document_text(Document={"Bytes": image})
