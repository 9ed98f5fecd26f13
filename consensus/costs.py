"""Per-participant token accounting and cost."""

import logging
import threading
from collections.abc import Mapping
from types import MappingProxyType

from config.config_loader import Pricing
from consensus.models import CostSnapshot, ParticipantCost

logger = logging.getLogger(__name__)

_FREE = Pricing()


def calculate_cost(pricing: Pricing, input_tokens: int, output_tokens: int) -> float:
    return (input_tokens / 1000) * pricing.input_per_1k + (output_tokens / 1000) * pricing.output_per_1k


def format_cost(cost: float) -> str:
    """Format cost as a dollar string, with more precision under one cent."""
    if cost < 0.01:
        return f"${cost:.4f}"
    return f"${cost:.2f}"


class CostAggregator:
    """Accumulates token usage for one session.

    The per-model totals live in an immutable mapping that add_usage()
    replaces wholesale under a lock, so snapshot() never sees a half
    applied update.
    """

    def __init__(self, pricing: Mapping[str, Pricing] | None = None) -> None:
        self._pricing = dict(pricing or {})
        self._lock = threading.Lock()
        self._costs: Mapping[str, ParticipantCost] = MappingProxyType({})

    def add_usage(self, model_id: str, input_tokens: int, output_tokens: int) -> None:
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts must be non-negative")
        pricing = self._pricing.get(model_id, _FREE)
        with self._lock:
            existing = self._costs.get(model_id, ParticipantCost(model_id))
            new_input = existing.input_tokens + input_tokens
            new_output = existing.output_tokens + output_tokens
            updated = dict(self._costs)
            updated[model_id] = ParticipantCost(
                model_id=model_id,
                input_tokens=new_input,
                output_tokens=new_output,
                cost=calculate_cost(pricing, new_input, new_output),
            )
            self._costs = MappingProxyType(updated)
        logger.debug("Usage for %s: +%d in, +%d out", model_id, input_tokens, output_tokens)

    def snapshot(self) -> CostSnapshot:
        costs = self._costs
        by_model = tuple(costs.values())
        return CostSnapshot(
            by_model=by_model,
            total_input_tokens=sum(p.input_tokens for p in by_model),
            total_output_tokens=sum(p.output_tokens for p in by_model),
            total_cost=round(sum(p.cost for p in by_model), 4),
        )

    def for_model(self, model_id: str) -> ParticipantCost | None:
        return self._costs.get(model_id)
