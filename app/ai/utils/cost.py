"""Token accounting and cost estimation for curriculum generation calls."""

from __future__ import annotations

from typing import Any

PricingTable = dict[str, dict[str, Any]]


def usage_entry(*, provider: str, model: str, usage: dict[str, int] | None) -> dict[str, Any]:
  """Normalize one provider usage payload into a cost ledger entry."""
  usage = usage or {}
  return {"provider": provider, "model": model, "prompt_tokens": int(usage.get("prompt_tokens") or 0), "completion_tokens": int(usage.get("completion_tokens") or 0)}


def sum_tokens(usage: list[dict[str, Any]]) -> tuple[int, int]:
  """Return (input_tokens, output_tokens) summed over all calls."""
  input_tokens = sum(int(entry.get("prompt_tokens") or 0) for entry in usage)
  output_tokens = sum(int(entry.get("completion_tokens") or 0) for entry in usage)
  return input_tokens, output_tokens


def calculate_total_cost(usage: list[dict[str, Any]], pricing_table: PricingTable | None = None) -> float:
  """Estimate total cost in USD from per-million-token rates."""
  pricing = pricing_table or {}

  total = 0.0
  for entry in usage:
    # Pricing is keyed by provider then model; unknown models cost nothing.
    provider = str(entry.get("provider") or "").strip().lower()
    model = str(entry.get("model") or "").strip()
    rates = pricing.get(provider, {}).get(model) or (0.0, 0.0)
    price_in, price_out = float(rates[0]), float(rates[1])

    in_tokens = int(entry.get("prompt_tokens") or 0)
    out_tokens = int(entry.get("completion_tokens") or 0)
    call_cost = (in_tokens / 1_000_000) * price_in + (out_tokens / 1_000_000) * price_out
    entry["estimated_cost"] = round(call_cost, 6)
    total += call_cost

  return round(total, 6)
