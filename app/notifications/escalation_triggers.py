"""Keyword-based escalation detection for chat messages."""

from __future__ import annotations

from dataclasses import dataclass

TRIGGER_LABELS: dict[str, str] = {
  "system_error": "System error",
  "bug_report": "Bug report",
  "urgent": "Urgent",
  "manual": "Manual escalation",
  "sentiment": "Negative sentiment detected",
}

# Checked in order; the first trigger with a match wins.
ESCALATION_KEYWORDS: dict[str, tuple[str, ...]] = {
  "system_error": ("error", "crash", "freeze", "not loading", "doesn't work", "does not work", "500", "404", "outage", "エラー", "バグ", "動かない", "表示されない", "クラッシュ", "フリーズ", "システム障害"),
  "bug_report": ("bug", "broken", "glitch", "unexpected behavior", "not working correctly", "不具合", "おかしい", "壊れ", "正しく動作しない", "意図しない動作"),
  "urgent": ("urgent", "asap", "immediately", "right now", "emergency", "緊急", "至急", "急ぎ", "すぐに", "今すぐ", "大至急"),
}


@dataclass(frozen=True)
class EscalationMatch:
  trigger: str
  keywords: list[str]


def detect_escalation(message: str) -> EscalationMatch | None:
  """Return the first trigger whose keywords appear in the message."""
  lowered = message.lower()
  for trigger, keywords in ESCALATION_KEYWORDS.items():
    matched = [keyword for keyword in keywords if keyword.lower() in lowered]
    if matched:
      return EscalationMatch(trigger=trigger, keywords=matched)
  return None


def trigger_label(trigger: str) -> str:
  return TRIGGER_LABELS.get(trigger, trigger)
