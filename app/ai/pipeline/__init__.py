"""Pipeline contracts for curriculum generation."""

from app.ai.pipeline.contracts import ChapterContent, CurriculumStructure, JobContext, StructureChapter

__all__ = ["ChapterContent", "CurriculumStructure", "JobContext", "StructureChapter"]
