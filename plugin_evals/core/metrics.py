"""Usage tracking for plugin evaluation runs.

Tracks token counts, cost, call counts and run duration.
"""

import asyncio
import time
from .pricing import calculate_cost
from typing import Any, Dict, Optional


class UsageAccumulator:
    """Running token and cost totals for one run.

    The only mutable state shared between concurrently executing scenarios;
    every update goes through the lock.
    """

    def __init__(self):
        """Initialize usage accumulator."""
        self._lock = asyncio.Lock()
        self.input_tokens: int = 0
        self.output_tokens: int = 0
        self.cost_usd: float = 0.0
        self.call_count: int = 0
        self.model_breakdown: Dict[str, Dict[str, Any]] = {}
        self.run_start_time: Optional[float] = None
        self.run_end_time: Optional[float] = None

    def start_run(self):
        """Mark run start time."""
        self.run_start_time = time.time()

    def end_run(self):
        """Mark run end time."""
        self.run_end_time = time.time()

    async def record(
        self,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: Optional[float] = None,
    ) -> float:
        """Record one call's usage.

        Args:
            model: Model identifier used for pricing
            input_tokens: Input tokens consumed
            output_tokens: Output tokens produced
            cost_usd: Cost already computed by the caller; priced from the table if None

        Returns:
            Cost attributed to this call
        """
        if cost_usd is None:
            cost_usd = calculate_cost(model, input_tokens, output_tokens)

        async with self._lock:
            self.input_tokens += input_tokens
            self.output_tokens += output_tokens
            self.cost_usd += cost_usd
            self.call_count += 1

            if model not in self.model_breakdown:
                self.model_breakdown[model] = {
                    'calls': 0,
                    'input_tokens': 0,
                    'output_tokens': 0,
                    'cost_usd': 0.0,
                }
            stats = self.model_breakdown[model]
            stats['calls'] += 1
            stats['input_tokens'] += input_tokens
            stats['output_tokens'] += output_tokens
            stats['cost_usd'] += cost_usd

        return cost_usd

    def get_metrics(self) -> Dict[str, Any]:
        """Return a snapshot of the totals."""
        return {
            'input_tokens': self.input_tokens,
            'output_tokens': self.output_tokens,
            'total_tokens': self.input_tokens + self.output_tokens,
            'cost_usd': self.cost_usd,
            'call_count': self.call_count,
            'model_breakdown': {model: dict(stats) for model, stats in self.model_breakdown.items()},
            'run_duration': (
                self.run_end_time - self.run_start_time
                if self.run_start_time and self.run_end_time
                else 0.0
            ),
        }
