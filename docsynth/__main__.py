"""
Local runner: generate a dataset from a file on disk.

    python -m docsynth contract.pdf --mode variants --format openai -o out.jsonl
    python -m docsynth invoice.pdf --mode synthetic --records 50

Uses the in-memory object and job stores; the language model is only
called when OPENAI_API_KEY is configured and --no-llm is not given.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path

from docsynth.core.config import get_settings
from docsynth.core.logging import configure_logging
from docsynth.interfaces import InMemoryObjectStore
from docsynth.jobs.pipeline import DocumentPipeline, PipelineOptions
from docsynth.jobs.stores import InMemoryJobStore

logger = logging.getLogger("docsynth")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docsynth", description=__doc__.splitlines()[1])
    parser.add_argument("path", type=Path, help="PDF, DOCX or text file")
    parser.add_argument("--mime", default=None, help="override the detected MIME type")
    parser.add_argument("--mode", choices=["variants", "synthetic"], default="variants")
    parser.add_argument(
        "--format", dest="output_format", default="openai",
        choices=["openai", "instruction", "prompt", "jsonl", "csv"],
    )
    parser.add_argument("--records", dest="record_count", type=int, default=None)
    parser.add_argument("--chunk-size", type=int, default=None)
    parser.add_argument("--overlap", dest="overlap_size", type=int, default=None)
    parser.add_argument("--class-filter", default="all")
    parser.add_argument("--use-ocr", action="store_true", help="run Textract OCR on every page")
    parser.add_argument("--attempt-all", dest="attempt_all_methods", action="store_true")
    parser.add_argument("--no-tables", dest="detect_tables", action="store_false")
    parser.add_argument("--no-llm", action="store_true", help="use the local rewrite only")
    parser.add_argument("-o", "--output", type=Path, default=None)
    parser.add_argument("--debug", action="store_true")
    return parser


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    ref = args.path.name
    mime = args.mime or mimetypes.guess_type(args.path.name)[0] or "application/octet-stream"

    overrides = {
        "mode":                args.mode,
        "output_format":       args.output_format,
        "class_filter":        args.class_filter,
        "use_ocr":             args.use_ocr,
        "attempt_all_methods": args.attempt_all_methods,
        "detect_tables":       args.detect_tables,
    }
    for name in ("record_count", "chunk_size", "overlap_size"):
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    options = PipelineOptions.from_settings(settings, **overrides)

    llm_client = None
    if settings.openai_api_key and not args.no_llm:
        from docsynth.llm.client import ChatRewriteClient
        llm_client = ChatRewriteClient()

    ocr_engine = None
    if args.use_ocr:
        from docsynth.ocr.textract import TextractOcrEngine
        ocr_engine = TextractOcrEngine()

    pipeline = DocumentPipeline(
        object_store=InMemoryObjectStore({ref: args.path.read_bytes()}),
        job_store=InMemoryJobStore(),
        llm_client=llm_client,
        ocr_engine=ocr_engine,
        settings=settings,
    )
    result = await pipeline.run(ref, mime, options)
    if result is None:
        return 1

    if args.output:
        args.output.write_text(result.output, encoding="utf-8")
        logger.info("Wrote %d records to %s", len(result.records), args.output)
    else:
        sys.stdout.write(result.output)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(debug=args.debug or None)
    try:
        return asyncio.run(_run(args))
    except Exception as exc:
        logger.error("Generation failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
