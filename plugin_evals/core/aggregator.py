# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Result aggregation for an evaluation run.

Kept apart from the orchestrator so the summary can be tested by passing in
plain ExecutionResults, and changed without touching execution.
"""

from .errors import ParseError
from .executor import ExecutionResult
from .metrics import UsageAccumulator
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class ComponentError:
    """A component that could not be analyzed."""

    path: str
    kind: str
    message: str

    @classmethod
    def from_parse_error(cls, error: ParseError) -> 'ComponentError':
        return cls(path=error.path, kind=error.kind, message=error.reason)


@dataclass(frozen=True)
class ComponentMetrics:
    """Trigger scoring for one component, over the scenarios whose agent run completed."""

    scenarios_count: int = 0
    triggered_count: int = 0
    passed_count: int = 0
    false_positives: int = 0
    false_negatives: int = 0

    @property
    def trigger_rate(self) -> float:
        return self.triggered_count / self.scenarios_count if self.scenarios_count else 0.0

    @property
    def accuracy(self) -> float:
        return self.passed_count / self.scenarios_count if self.scenarios_count else 0.0


@dataclass(frozen=True)
class EvaluationReport:
    """Structured output of one evaluation run.

    Attributes:
        plugin_name: Plugin that was evaluated
        results: One ExecutionResult per scenario, in scenario order
        component_errors: Components skipped because they could not be analyzed
        total_input_tokens: Input tokens across execution and generation calls
        total_output_tokens: Output tokens across execution and generation calls
        total_cost_usd: Cost across execution and generation calls
        success_count: Results without an error
        failure_count: Results with an error
        duration_ms: Wall time of the run
        stage_history: Stages the run passed through, in order
        scored_count: Results with a trigger verdict
        passed_count: Scored results whose trigger matched the expectation
        false_positives: Scored results that triggered when they should not have
        false_negatives: Scored results that did not trigger when they should have
        component_metrics: Trigger scoring per component key, e.g. "skill:deploy"
    """

    plugin_name: str
    results: List[ExecutionResult] = field(default_factory=list)
    component_errors: List[ComponentError] = field(default_factory=list)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    success_count: int = 0
    failure_count: int = 0
    duration_ms: float = 0.0
    stage_history: List[str] = field(default_factory=list)
    scored_count: int = 0
    passed_count: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    component_metrics: Dict[str, ComponentMetrics] = field(default_factory=dict)

    @property
    def trigger_accuracy(self) -> float:
        """Fraction of scored results whose trigger matched the expectation."""
        return self.passed_count / self.scored_count if self.scored_count else 0.0

    def errors_by_kind(self) -> Dict[str, int]:
        """Count failed results per error kind."""
        counts: Dict[str, int] = {}
        for result in self.results:
            if result.error is not None:
                counts[result.error.kind] = counts.get(result.error.kind, 0) + 1
        return counts


class ResultAggregator:
    """Builds an EvaluationReport from scenario results.

    Example:
        report = ResultAggregator().aggregate(
            plugin_name='my-plugin',
            results=results,
            usage=accumulator,
        )
    """

    def aggregate(
        self,
        plugin_name: str,
        results: Sequence[ExecutionResult],
        usage: Optional[UsageAccumulator] = None,
        component_errors: Sequence[ParseError] = (),
        duration_ms: float = 0.0,
        stage_history: Sequence[Any] = (),
    ) -> EvaluationReport:
        """Aggregate results into a report.

        Token and cost totals come from the usage accumulator when one is given,
        so generation calls are included; otherwise they are summed from results.
        Trigger scoring counts only results that carry a verdict, so transport
        failures and the plugin load check do not lower accuracy.

        Args:
            plugin_name: Plugin that was evaluated
            results: Scenario results
            usage: Run-wide usage accumulator
            component_errors: Parse errors captured during analysis
            duration_ms: Wall time of the run
            stage_history: Stages visited so far

        Returns:
            EvaluationReport
        """
        if usage is not None:
            metrics = usage.get_metrics()
            input_tokens = metrics['input_tokens']
            output_tokens = metrics['output_tokens']
            cost_usd = metrics['cost_usd']
        else:
            input_tokens = sum(r.input_tokens for r in results)
            output_tokens = sum(r.output_tokens for r in results)
            cost_usd = sum(r.cost_usd for r in results)

        success_count = sum(1 for r in results if r.success)
        scored = [r for r in results if r.passed is not None]
        by_component: Dict[str, List[ExecutionResult]] = {}
        for result in scored:
            by_component.setdefault(result.component, []).append(result)

        return EvaluationReport(
            plugin_name=plugin_name,
            results=list(results),
            component_errors=[ComponentError.from_parse_error(e) for e in component_errors],
            total_input_tokens=input_tokens,
            total_output_tokens=output_tokens,
            total_cost_usd=cost_usd,
            success_count=success_count,
            failure_count=len(results) - success_count,
            duration_ms=duration_ms,
            stage_history=[getattr(stage, 'value', stage) for stage in stage_history],
            scored_count=len(scored),
            passed_count=sum(1 for r in scored if r.passed),
            false_positives=_count_false_positives(scored),
            false_negatives=_count_false_negatives(scored),
            component_metrics={
                component: _component_metrics(group) for component, group in by_component.items()
            },
        )


def _count_false_positives(results: Sequence[ExecutionResult]) -> int:
    return sum(1 for r in results if r.triggered and not r.passed)


def _count_false_negatives(results: Sequence[ExecutionResult]) -> int:
    return sum(1 for r in results if not r.triggered and not r.passed)


def _component_metrics(results: Sequence[ExecutionResult]) -> ComponentMetrics:
    return ComponentMetrics(
        scenarios_count=len(results),
        triggered_count=sum(1 for r in results if r.triggered),
        passed_count=sum(1 for r in results if r.passed),
        false_positives=_count_false_positives(results),
        false_negatives=_count_false_negatives(results),
    )
