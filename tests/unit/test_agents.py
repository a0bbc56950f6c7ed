from __future__ import annotations

import json

import pytest

from app.ai.agents.chapter_writer import ChapterWriterAgent
from app.ai.agents.prompts import render_chapter_prompt, render_structure_prompt
from app.ai.agents.structure_planner import StructurePlannerAgent
from app.ai.errors import JobDecodeError
from app.ai.utils.cost import calculate_total_cost, sum_tokens
from tests.conftest import ScriptedModel

PARAMS = {"goal": "Teach support staff to triage tickets", "target_audience": "support staff", "duration_minutes": 45, "difficulty_level": "intermediate"}


def test_structure_prompt_fills_every_placeholder() -> None:
  prompt = render_structure_prompt(PARAMS)

  assert "Teach support staff to triage tickets" in prompt
  assert "About 45 minutes" in prompt
  assert "Intermediate" in prompt
  assert "{{" not in prompt


def test_chapter_prompt_numbers_the_chapter() -> None:
  params = {**PARAMS, "structure": {"name": "Triage", "description": "d"}}
  prompt = render_chapter_prompt(params, {"title": "Intro", "order": 2, "learning_objectives": ["Spot urgency"]}, chapter_count=3)

  assert "Chapter number: 2 / 3" in prompt
  assert "1. Spot urgency" in prompt
  assert "Estimated time: 10 minutes" in prompt
  assert "{{" not in prompt


@pytest.mark.anyio
async def test_structure_planner_records_usage_per_call() -> None:
  usage: list[dict] = []
  model = ScriptedModel([json.dumps({"name": "Plan", "chapters": [{"title": "One"}]})], usage={"prompt_tokens": 7, "completion_tokens": 3})
  agent = StructurePlannerAgent(model=model, timeout_seconds=5, use=usage.append)

  raw = await agent.draft(PARAMS)
  result = agent.finalize(raw, PARAMS)

  assert result["chapters"] == [{"order": 1, "title": "One", "summary": "", "learning_objectives": [], "estimated_minutes": 10}]
  assert result["difficulty_level"] == "intermediate"
  assert usage == [{"provider": "gemini", "model": "scripted-model", "prompt_tokens": 7, "completion_tokens": 3, "agent": "StructurePlanner"}]


@pytest.mark.anyio
async def test_chapter_writer_rejects_missing_task() -> None:
  agent = ChapterWriterAgent(model=ScriptedModel([json.dumps({"content": "body only"})]), timeout_seconds=5)

  with pytest.raises(JobDecodeError):
    await agent.run(PARAMS, {"title": "Intro", "order": 1}, chapter_count=1)


def test_cost_uses_per_million_rates_and_ignores_unknown_models() -> None:
  usage = [
    {"provider": "gemini", "model": "gemini-2.5-pro", "prompt_tokens": 1_000_000, "completion_tokens": 500_000},
    {"provider": "openrouter", "model": "unpriced", "prompt_tokens": 10, "completion_tokens": 10},
  ]
  pricing = {"gemini": {"gemini-2.5-pro": (1.25, 10.0)}}

  assert sum_tokens(usage) == (1_000_010, 500_010)
  assert calculate_total_cost(usage, pricing) == pytest.approx(6.25)
  assert usage[1]["estimated_cost"] == 0.0
