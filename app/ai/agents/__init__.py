"""Agent implementations."""

from app.ai.agents.base import BaseAgent
from app.ai.agents.chapter_writer import ChapterWriterAgent
from app.ai.agents.structure_planner import StructurePlannerAgent

__all__ = ["BaseAgent", "ChapterWriterAgent", "StructurePlannerAgent"]
