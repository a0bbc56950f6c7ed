"""Schema package exports."""

from .jobs import CurriculumGenerationJob

__all__ = ["CurriculumGenerationJob"]
