"""
docsynth — document ingestion and synthetic dataset generation.

    from docsynth import DocumentPipeline, PipelineOptions

    pipeline = DocumentPipeline(object_store, job_store, llm_client)
    result = await pipeline.run("s3://bucket/contract.pdf", "application/pdf",
                                PipelineOptions(mode="variants"))
"""

from docsynth.jobs.pipeline import DocumentPipeline, PipelineMode, PipelineOptions, PipelineResult

__version__ = "0.1.0"

__all__ = [
    "DocumentPipeline",
    "PipelineMode",
    "PipelineOptions",
    "PipelineResult",
]
