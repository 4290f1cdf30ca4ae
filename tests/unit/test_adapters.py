"""
Unit Tests — Production Adapters
════════════════════════════════
Tests for docsynth/storage/s3.py, docsynth/ocr/textract.py, docsynth/llm/client.py

All AWS and OpenAI clients are mocks; no network access.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from docsynth.interfaces import LanguageModelClient, ObjectStore, OcrEngine


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "test"}}, "operation")


def _build_s3_mock(body: bytes = b"%PDF-1.4 data") -> MagicMock:
    """Mock aioboto3 S3 client context manager."""
    s3 = AsyncMock()
    s3.__aenter__ = AsyncMock(return_value=s3)
    s3.__aexit__  = AsyncMock(return_value=None)
    stream = MagicMock()
    stream.read = AsyncMock(return_value=body)
    s3.get_object    = AsyncMock(return_value={"Body": stream})
    s3.delete_object = AsyncMock(return_value={})
    return s3


def _session(s3: MagicMock) -> MagicMock:
    session = MagicMock()
    session.client.return_value = s3
    return session


# ─────────────────────────────────────────────────────────────────────────────
# S3
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestParseRef:

    def test_full_uri(self):
        from docsynth.storage.s3 import parse_ref
        assert parse_ref("s3://docs/tenants/a/doc.pdf", "default") == ("docs", "tenants/a/doc.pdf")

    def test_bare_key_uses_default_bucket(self):
        from docsynth.storage.s3 import parse_ref
        assert parse_ref("/uploads/doc.pdf", "default") == ("default", "uploads/doc.pdf")

    @pytest.mark.parametrize("ref,bucket", [("s3://only-bucket", "d"), ("s3:///key", "d"), ("key", "")])
    def test_malformed(self, ref, bucket):
        from docsynth.storage.s3 import parse_ref
        with pytest.raises(ValueError):
            parse_ref(ref, bucket)


@pytest.mark.unit
class TestS3ObjectStore:

    async def test_read(self):
        from docsynth.storage.s3 import S3ObjectStore

        s3 = _build_s3_mock(b"document bytes")
        store = S3ObjectStore(bucket="test-bucket", session=_session(s3))

        assert isinstance(store, ObjectStore)
        assert await store.read("s3://other/doc.pdf") == b"document bytes"
        s3.get_object.assert_awaited_once_with(Bucket="other", Key="doc.pdf")

    async def test_missing_object_is_file_not_found(self):
        from docsynth.storage.s3 import S3ObjectStore

        s3 = _build_s3_mock()
        s3.get_object.side_effect = _client_error("NoSuchKey")
        store = S3ObjectStore(bucket="test-bucket", session=_session(s3))

        with pytest.raises(FileNotFoundError):
            await store.read("doc.pdf")

    async def test_denied_read_is_collaborator_error(self):
        from docsynth.core.exceptions import CollaboratorError
        from docsynth.jobs.retry import _is_retryable
        from docsynth.storage.s3 import S3ObjectStore

        s3 = _build_s3_mock()
        s3.get_object.side_effect = _client_error("AccessDenied")
        store = S3ObjectStore(bucket="test-bucket", session=_session(s3))

        with pytest.raises(CollaboratorError) as exc_info:
            await store.read("doc.pdf")
        assert not _is_retryable(exc_info.value)

    async def test_other_client_errors_propagate(self):
        from docsynth.storage.s3 import S3ObjectStore

        s3 = _build_s3_mock()
        s3.get_object.side_effect = _client_error("SlowDown")
        store = S3ObjectStore(bucket="test-bucket", session=_session(s3))

        with pytest.raises(ClientError):
            await store.read("doc.pdf")

    async def test_delete(self):
        from docsynth.storage.s3 import S3ObjectStore

        s3 = _build_s3_mock()
        await S3ObjectStore(bucket="test-bucket", session=_session(s3)).delete("doc.pdf")
        s3.delete_object.assert_awaited_once_with(Bucket="test-bucket", Key="doc.pdf")


# ─────────────────────────────────────────────────────────────────────────────
# Textract
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestTextractOcrEngine:

    async def test_joins_line_blocks(self):
        from docsynth.ocr.textract import TextractOcrEngine

        client = MagicMock()
        client.detect_document_text.return_value = {"Blocks": [
            {"BlockType": "PAGE"},
            {"BlockType": "LINE", "Text": "First line of the scan"},
            {"BlockType": "WORD", "Text": "First"},
            {"BlockType": "LINE", "Text": "Second line"},
        ]}
        engine = TextractOcrEngine(client=client)

        assert isinstance(engine, OcrEngine)
        assert await engine.recognize(b"png-bytes") == "First line of the scan\nSecond line"
        client.detect_document_text.assert_called_once_with(Document={"Bytes": b"png-bytes"})

    async def test_errors_propagate(self):
        from docsynth.ocr.textract import TextractOcrEngine

        client = MagicMock()
        client.detect_document_text.side_effect = _client_error("ThrottlingException")

        with pytest.raises(ClientError):
            await TextractOcrEngine(client=client).recognize(b"png")


# ─────────────────────────────────────────────────────────────────────────────
# Chat rewrite client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestChatRewriteClient:

    async def test_rewrite_sends_system_and_user_messages(self):
        from docsynth.llm.client import REWRITE_SYSTEM_PROMPT, ChatRewriteClient

        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="  The renter must pay monthly.  "))
        client = ChatRewriteClient(llm=llm, timeout=5)

        assert isinstance(client, LanguageModelClient)
        assert await client.rewrite("The tenant shall pay rent monthly.") == "The renter must pay monthly."

        (messages,), _ = llm.ainvoke.call_args
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == REWRITE_SYSTEM_PROMPT
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "The tenant shall pay rent monthly."

    async def test_timeout(self):
        from docsynth.llm.client import ChatRewriteClient

        async def _slow(messages):
            await asyncio.sleep(1)

        llm = MagicMock()
        llm.ainvoke = _slow

        with pytest.raises(asyncio.TimeoutError):
            await ChatRewriteClient(llm=llm, timeout=0.01).rewrite("A sentence to rewrite.")

    async def test_non_text_content_is_empty(self):
        from docsynth.llm.client import ChatRewriteClient

        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content=[{"type": "image_url"}]))
        assert await ChatRewriteClient(llm=llm).rewrite("Anything at all here.") == ""

    def test_build_chat_model_uses_settings(self):
        from docsynth.llm.client import build_chat_model

        model = build_chat_model()
        assert model.model_name == "gpt-4o-mini"
        assert model.max_retries == 0
