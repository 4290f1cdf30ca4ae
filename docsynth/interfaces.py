"""
Collaborator Interfaces
═══════════════════════

The pipeline core never reaches for a module-level client. Every external
system it touches is passed in through one of these protocols:

  ObjectStore          read(ref) → bytes, delete(ref)
  LanguageModelClient  rewrite(sentence) → text
  OcrEngine            recognize(image) → text
  JobStore             write(job_id, snapshot), read, is_cancelled, request_cancel

Production adapters live next to the technology they wrap
(storage/s3.py, llm/client.py, ocr/textract.py, jobs/stores.py).
The in-memory object store here backs local runs and tests.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ObjectStore(Protocol):
    async def read(self, ref: str) -> bytes: ...

    async def delete(self, ref: str) -> None: ...


@runtime_checkable
class LanguageModelClient(Protocol):
    async def rewrite(self, sentence: str) -> str: ...


@runtime_checkable
class OcrEngine(Protocol):
    async def recognize(self, image: bytes) -> str: ...


@runtime_checkable
class JobStore(Protocol):
    async def write(self, job_id: str, snapshot: dict[str, Any]) -> None: ...

    async def read(self, job_id: str) -> dict[str, Any] | None: ...

    async def is_cancelled(self, job_id: str) -> bool: ...

    async def request_cancel(self, job_id: str) -> None: ...


class InMemoryObjectStore:
    """Dict-backed ObjectStore keyed by reference string."""

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self._objects: dict[str, bytes] = dict(objects or {})

    def put(self, ref: str, body: bytes) -> None:
        self._objects[ref] = body

    async def read(self, ref: str) -> bytes:
        try:
            return self._objects[ref]
        except KeyError:
            raise FileNotFoundError(f"Object not found: {ref}") from None

    async def delete(self, ref: str) -> None:
        self._objects.pop(ref, None)
