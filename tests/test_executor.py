"""Tests for scenario execution."""

import asyncio

import pytest

from plugin_evals.core.agent_client import AgentClient
from plugin_evals.core.components import CommandComponent, ComponentType
from plugin_evals.core.errors import BudgetExceeded, TransientExecutionError
from plugin_evals.core.executor import (
    ExecutionSettings,
    ScenarioExecutor,
    check_batch_budget,
    estimate_execution_cost,
)
from plugin_evals.core.pricing import calculate_cost
from plugin_evals.core.scenario import (
    ScenarioType,
    TestScenario,
    build_file_reference_scenario,
    build_plugin_load_scenario,
)
from plugin_evals.core.tuning import resolve_tuning

from tests.conftest import StubAgentClient, trigger_expected


def _scenario(scenario_id='hooks-direct-0', **overrides):
    values = dict(
        id=scenario_id,
        component_ref='hooks',
        component_type=ComponentType.SKILL,
        scenario_type=ScenarioType.DIRECT,
        user_prompt='create a hook',
    )
    values.update(overrides)
    return TestScenario(**values)


class SlowClient(AgentClient):
    """Agent transport that never answers within the deadline."""

    def __init__(self):
        self.calls = 0

    async def invoke(self, scenario, model, max_turns):
        self.calls += 1
        await asyncio.sleep(10)


class TestRetryProperty:
    """Tests for retries inside execute()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize('failures', [0, 1, 2])
    async def test_success_below_max_retries(self, fast_tuning, failures):
        """Test k < max_retries transient failures then success."""
        client = StubAgentClient(
            failures={'hooks-direct-0': [TransientExecutionError('timeout')] * failures}
        )
        result = await ScenarioExecutor(client).execute(_scenario(), fast_tuning)

        assert result.success is True
        assert result.error is None
        assert result.attempts == failures + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize('failures', [3, 5])
    async def test_failure_at_or_above_max_retries(self, fast_tuning, failures):
        """Test k >= max_retries transient failures."""
        client = StubAgentClient(
            failures={'hooks-direct-0': [ConnectionError('reset')] * failures}
        )
        result = await ScenarioExecutor(client).execute(_scenario(), fast_tuning)

        assert result.success is False
        assert result.error.kind == 'retries_exhausted'
        assert result.attempts == fast_tuning.retry.max_retries
        assert len(client.calls) == fast_tuning.retry.max_retries

    @pytest.mark.asyncio
    async def test_non_transient_failure_not_retried(self, fast_tuning):
        """Test that a permanent transport error is reported immediately."""
        client = StubAgentClient(failures={'hooks-direct-0': [ValueError('invalid request')]})
        result = await ScenarioExecutor(client).execute(_scenario(), fast_tuning)

        assert result.success is False
        assert result.error.kind == 'agent_error'
        assert len(client.calls) == 1


class TestImmediateFailures:
    """Tests for failures that never reach the agent."""

    @pytest.mark.asyncio
    async def test_capability_violation(self, fast_tuning):
        """Test a scenario that needs a tool outside the allowlist."""
        client = StubAgentClient()
        scenario = _scenario(required_tools=('Bash',), allowed_tools=('Read',))

        result = await ScenarioExecutor(client).execute(scenario, fast_tuning)

        assert result.success is False
        assert result.error.kind == 'capability_violation'
        assert 'Bash' in result.error.message
        assert result.attempts == 0
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_malformed_scenario(self, fast_tuning):
        """Test an empty prompt."""
        client = StubAgentClient()
        result = await ScenarioExecutor(client).execute(_scenario(user_prompt='  '), fast_tuning)

        assert result.error.kind == 'malformed_scenario'
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_file_reference_needs_read(self, fast_tuning):
        """Test an @file invocation of a command limited to Bash."""
        command = CommandComponent(
            name='deploy',
            path='commands/deploy.md',
            plugin_prefix='p',
            namespace='',
            full_name='deploy',
            description='Deploy',
            allowed_tools=['Bash'],
        )
        client = StubAgentClient()

        result = await ScenarioExecutor(client).execute(
            build_file_reference_scenario(command), fast_tuning
        )

        assert result.error.kind == 'capability_violation'
        assert 'Read' in result.error.message
        assert result.component == 'command:deploy'
        assert result.passed is None
        assert client.calls == []


class TestDeadlines:
    """Tests for per-call deadlines."""

    @pytest.mark.asyncio
    async def test_run_phase_timeout_is_transient(self, fast_tuning):
        """Test that a timed-out call is retried and then exhausted."""
        client = SlowClient()
        executor = ScenarioExecutor(client, ExecutionSettings(timeout_ms=10))

        result = await executor.execute(_scenario(), fast_tuning)

        assert result.error.kind == 'retries_exhausted'
        assert client.calls == fast_tuning.retry.max_retries

    def test_load_phase_uses_plugin_load_timeout(self):
        """Test deadline selection by phase."""
        tuning = resolve_tuning({'timeouts': {'plugin_load_ms': 1234}})
        executor = ScenarioExecutor(StubAgentClient(), ExecutionSettings(timeout_ms=99))

        assert executor.deadline_ms(build_plugin_load_scenario('p'), tuning) == 1234
        assert executor.deadline_ms(_scenario(), tuning) == 99


class TestUsage:
    """Tests for token and cost accounting."""

    @pytest.mark.asyncio
    async def test_reported_usage(self, fast_tuning):
        """Test cost from reported usage."""
        client = StubAgentClient(input_tokens=1000, output_tokens=200)
        executor = ScenarioExecutor(client, ExecutionSettings(model='claude-sonnet-4-20250514'))

        result = await executor.execute(_scenario(), fast_tuning)

        assert result.input_tokens == 1000
        assert result.output_tokens == 200
        assert result.cost_usd == calculate_cost('claude-sonnet-4-20250514', 1000, 200)
        assert [t.name for t in result.detected_tools] == ['Skill']

    @pytest.mark.asyncio
    async def test_estimated_usage_when_missing(self, fast_tuning):
        """Test per-turn estimates when the transport reports no usage."""
        client = StubAgentClient(input_tokens=None, output_tokens=None)
        result = await ScenarioExecutor(client).execute(_scenario(), fast_tuning)

        # StubAgentClient reports one turn
        assert result.input_tokens == fast_tuning.token_estimates.input_per_turn
        assert result.output_tokens == fast_tuning.token_estimates.output_per_turn


class TestBatchBudget:
    """Tests for the batch budget check."""

    def test_estimate(self):
        """Test the per-scenario estimate."""
        tuning = resolve_tuning()
        settings = ExecutionSettings(model='claude-sonnet-4-20250514', max_turns=2)
        expected = calculate_cost('claude-sonnet-4-20250514', 500 * 2 * 3, 2000 * 2 * 3)
        assert estimate_execution_cost(3, tuning, settings) == pytest.approx(expected)

    def test_batch_within_allowance(self):
        """Test a batch that fits."""
        settings = ExecutionSettings(max_budget_usd=100.0, max_turns=1)
        estimated = check_batch_budget([_scenario()] * 5, resolve_tuning(), settings, 0.0)
        assert estimated > 0

    def test_batch_over_allowance(self):
        """Test a batch that would exceed the safety margin of the budget."""
        settings = ExecutionSettings(max_budget_usd=1.0, max_turns=5)
        with pytest.raises(BudgetExceeded) as exc_info:
            check_batch_budget([_scenario()] * 10, resolve_tuning(), settings, 0.0)
        assert exc_info.value.remaining_usd == pytest.approx(0.75)

    def test_spent_reduces_allowance(self):
        """Test that prior spend counts against the allowance."""
        settings = ExecutionSettings(max_budget_usd=10.0, max_turns=1)
        tuning = resolve_tuning()
        check_batch_budget([_scenario()], tuning, settings, 0.0)
        with pytest.raises(BudgetExceeded):
            check_batch_budget([_scenario()], tuning, settings, 7.5)


class TestTriggerScoring:
    """Tests for trigger verdicts on completed scenarios."""

    @pytest.mark.asyncio
    async def test_expected_component_triggered(self, fast_tuning):
        """Test a scenario whose skill was loaded."""
        client = StubAgentClient(captures=trigger_expected)
        result = await ScenarioExecutor(client).execute(
            _scenario(expected_component='hooks'), fast_tuning
        )

        assert result.success is True
        assert result.component == 'skill:hooks'
        assert result.triggered is True
        assert result.passed is True
        assert [d.component_name for d in result.detections] == ['hooks']

    @pytest.mark.asyncio
    async def test_unrelated_tools_do_not_count(self, fast_tuning):
        """Test a completed scenario that never loaded the skill."""
        client = StubAgentClient(tools=['Read', 'Grep'])
        result = await ScenarioExecutor(client).execute(
            _scenario(expected_component='hooks'), fast_tuning
        )

        assert result.success is True
        assert result.triggered is False
        assert result.passed is False
        assert result.detections == []

    @pytest.mark.asyncio
    async def test_negative_scenario_passes_when_silent(self, fast_tuning):
        """Test a negative scenario where nothing fired."""
        client = StubAgentClient(captures=trigger_expected)
        scenario = _scenario(
            'skill:hooks-negative-0',
            scenario_type=ScenarioType.NEGATIVE,
            expected_trigger=False,
            expected_component='hooks',
        )

        result = await ScenarioExecutor(client).execute(scenario, fast_tuning)

        assert result.triggered is False
        assert result.passed is True

    @pytest.mark.asyncio
    async def test_transport_failure_has_no_verdict(self, fast_tuning):
        """Test that a failed scenario is not scored."""
        client = StubAgentClient(failures={'hooks-direct-0': [ValueError('boom')]})
        result = await ScenarioExecutor(client).execute(_scenario(), fast_tuning)

        assert result.success is False
        assert result.triggered is None
        assert result.passed is None
