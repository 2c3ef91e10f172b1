"""Tests for result aggregation and usage tracking."""

import asyncio

import pytest

from plugin_evals.core.aggregator import ResultAggregator
from plugin_evals.core.errors import ParseError
from plugin_evals.core.executor import ExecutionError, ExecutionResult
from plugin_evals.core.metrics import UsageAccumulator
from plugin_evals.core.pipeline import PipelineStage
from plugin_evals.core.pricing import calculate_cost


OK = ExecutionResult(scenario_id='a', success=True, input_tokens=10, output_tokens=5, cost_usd=0.5)
FAILED = ExecutionResult(
    scenario_id='b',
    success=False,
    error=ExecutionError(kind='capability_violation', message='no Bash'),
)


class TestResultAggregator:
    """Tests for ResultAggregator."""

    def test_totals_from_results(self):
        """Test summing results when no accumulator is given."""
        report = ResultAggregator().aggregate('my-plugin', [OK, FAILED])

        assert report.plugin_name == 'my-plugin'
        assert report.success_count == 1
        assert report.failure_count == 1
        assert report.total_input_tokens == 10
        assert report.total_output_tokens == 5
        assert report.total_cost_usd == 0.5
        assert report.errors_by_kind() == {'capability_violation': 1}

    def test_totals_from_accumulator(self):
        """Test that accumulator totals win over result sums."""
        usage = UsageAccumulator()
        usage.input_tokens = 99
        usage.output_tokens = 11
        usage.cost_usd = 2.0

        report = ResultAggregator().aggregate('p', [OK], usage=usage)

        assert report.total_input_tokens == 99
        assert report.total_cost_usd == 2.0

    def test_component_errors_and_stages(self):
        """Test parse errors and stage history in the report."""
        report = ResultAggregator().aggregate(
            'p',
            [],
            component_errors=[ParseError('agents/x.md', 'invalid YAML')],
            stage_history=[PipelineStage.IDLE, PipelineStage.ANALYZING],
        )

        assert report.component_errors[0].path == 'agents/x.md'
        assert report.component_errors[0].message == 'invalid YAML'
        assert report.stage_history == ['idle', 'analyzing']
        assert report.success_count == 0
        assert report.failure_count == 0

    def test_trigger_scoring(self):
        """Test accuracy and error counts over results with a verdict."""
        results = [
            ExecutionResult('s0', True, component='skill:deploy', triggered=True, passed=True),
            ExecutionResult('s1', True, component='skill:deploy', triggered=False, passed=False),
            ExecutionResult('s2', True, component='skill:deploy', triggered=True, passed=False),
            ExecutionResult('a0', True, component='agent:deploy', triggered=False, passed=True),
            ExecutionResult('load', True, component='plugin:p'),
            FAILED,
        ]

        report = ResultAggregator().aggregate('p', results)

        assert report.scored_count == 4
        assert report.passed_count == 2
        assert report.trigger_accuracy == 0.5
        assert report.false_positives == 1
        assert report.false_negatives == 1
        assert set(report.component_metrics) == {'skill:deploy', 'agent:deploy'}
        skill = report.component_metrics['skill:deploy']
        assert skill.scenarios_count == 3
        assert skill.triggered_count == 2
        assert skill.false_positives == 1
        assert skill.false_negatives == 1
        assert skill.accuracy == pytest.approx(1 / 3)
        assert report.component_metrics['agent:deploy'].trigger_rate == 0.0

    def test_no_verdicts(self):
        """Test a run where nothing was scored."""
        report = ResultAggregator().aggregate('p', [OK, FAILED])

        assert report.scored_count == 0
        assert report.trigger_accuracy == 0.0
        assert report.component_metrics == {}


class TestUsageAccumulator:
    """Tests for UsageAccumulator."""

    @pytest.mark.asyncio
    async def test_concurrent_records(self):
        """Test that concurrent updates are all counted."""
        usage = UsageAccumulator()

        await asyncio.gather(
            *(usage.record('claude-sonnet-4-20250514', 100, 10) for _ in range(50))
        )

        assert usage.input_tokens == 5000
        assert usage.output_tokens == 500
        assert usage.call_count == 50
        assert usage.cost_usd == pytest.approx(calculate_cost('claude-sonnet-4-20250514', 5000, 500))
        assert usage.model_breakdown['claude-sonnet-4-20250514']['calls'] == 50

    @pytest.mark.asyncio
    async def test_explicit_cost(self):
        """Test a caller-supplied cost."""
        usage = UsageAccumulator()
        assert await usage.record('m', 1, 1, cost_usd=0.25) == 0.25
        assert usage.cost_usd == 0.25

    def test_metrics_snapshot(self):
        """Test get_metrics."""
        usage = UsageAccumulator()
        usage.start_run()
        usage.end_run()
        metrics = usage.get_metrics()

        assert metrics['total_tokens'] == 0
        assert metrics['run_duration'] >= 0
