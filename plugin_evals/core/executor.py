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

"""Executes test scenarios against the agent under test."""

import asyncio
import time
from .agent_client import AgentClient, AgentTranscript, ToolCapture
from .constants import (
    DEFAULT_EXECUTION_MODEL,
    DEFAULT_MAX_BUDGET_USD,
    DEFAULT_MAX_TURNS,
    DEFAULT_TIMEOUT_MS,
)
from .detector import Detection, evaluate_trigger
from .errors import (
    BudgetExceeded,
    CancellationError,
    CapabilityViolation,
    MalformedScenarioError,
    PluginEvalError,
    TransientExecutionError,
)
from .pricing import calculate_cost, resolve_model_id
from .retry import RetryPolicy, retry_async
from .scenario import ScenarioPhase, TestScenario
from .tuning import Tuning
from dataclasses import dataclass, field
from loguru import logger
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class ExecutionSettings:
    """Settings for the agent under test.

    Attributes:
        model: Model name or alias the agent runs on
        max_turns: Maximum conversation turns per scenario
        timeout_ms: Deadline for one run-phase call
        max_budget_usd: Spend ceiling for the whole run
    """

    model: str = DEFAULT_EXECUTION_MODEL
    max_turns: int = DEFAULT_MAX_TURNS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_budget_usd: float = DEFAULT_MAX_BUDGET_USD


@dataclass(frozen=True)
class ExecutionError:
    """Error recorded on a failed ExecutionResult."""

    kind: str
    message: str
    recoverable: bool = True

    @classmethod
    def from_exception(cls, error: BaseException) -> 'ExecutionError':
        if isinstance(error, PluginEvalError):
            return cls(kind=error.kind, message=str(error), recoverable=error.recoverable)
        return cls(kind='agent_error', message=f'{type(error).__name__}: {error}')


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of running one scenario.

    success reports whether the agent ran to completion. triggered and passed
    score its behaviour: whether the expected component fired, and whether that
    matched the scenario's expected_trigger. Both are None when the agent did
    not complete or the scenario targets no component.
    """

    scenario_id: str
    success: bool
    component: str = ''
    transcript: Optional[AgentTranscript] = None
    detected_tools: List[ToolCapture] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    elapsed_ms: float = 0.0
    attempts: int = 0
    num_turns: int = 0
    error: Optional[ExecutionError] = None
    triggered: Optional[bool] = None
    passed: Optional[bool] = None
    detections: List[Detection] = field(default_factory=list)


def failure_result(
    scenario: TestScenario,
    error: BaseException,
    elapsed_ms: float = 0.0,
    attempts: int = 0,
) -> ExecutionResult:
    """Build a failed result for a scenario that produced no transcript."""
    return ExecutionResult(
        scenario_id=scenario.id,
        success=False,
        component=scenario.component_key,
        elapsed_ms=elapsed_ms,
        attempts=attempts,
        error=ExecutionError.from_exception(error),
    )


def estimate_execution_cost(count: int, tuning: Tuning, settings: ExecutionSettings) -> float:
    """Estimate the cost of running count scenarios to their turn limit."""
    input_tokens = tuning.token_estimates.input_per_turn * settings.max_turns * count
    output_tokens = tuning.token_estimates.output_per_turn * settings.max_turns * count
    return calculate_cost(resolve_model_id(settings.model), input_tokens, output_tokens)


def check_batch_budget(
    scenarios: Sequence[TestScenario],
    tuning: Tuning,
    settings: ExecutionSettings,
    spent_usd: float = 0.0,
) -> float:
    """Check a batch against the remaining allowance before it is dispatched.

    The allowance is max_budget_usd scaled by batching.safety_margin, less what
    the run has already spent.

    Args:
        scenarios: Scenarios about to be dispatched together
        tuning: Resolved tuning
        settings: Execution settings
        spent_usd: Cost accumulated so far in the run

    Returns:
        Estimated cost of the batch

    Raises:
        BudgetExceeded: If the estimate is larger than the remaining allowance
    """
    estimated = estimate_execution_cost(len(scenarios), tuning, settings)
    remaining = settings.max_budget_usd * tuning.batching.safety_margin - spent_usd
    if estimated > remaining:
        raise BudgetExceeded(estimated, remaining)
    return estimated


class ScenarioExecutor:
    """Runs a single scenario with deadlines and retries."""

    def __init__(self, client: AgentClient, settings: Optional[ExecutionSettings] = None):
        """Initialize the executor.

        Args:
            client: Transport to the agent under test
            settings: Execution settings (defaults from environment)
        """
        self.client = client
        self.settings = settings or ExecutionSettings()
        self.model = resolve_model_id(self.settings.model)

    def deadline_ms(self, scenario: TestScenario, tuning: Tuning) -> float:
        if scenario.phase == ScenarioPhase.LOAD:
            return tuning.timeouts.plugin_load_ms
        return self.settings.timeout_ms

    async def execute(
        self,
        scenario: TestScenario,
        tuning: Tuning,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        """Execute a scenario.

        Malformed scenarios and capability violations fail without calling the
        agent. Transient failures are retried under the tuning's retry policy.

        Args:
            scenario: Scenario to run
            tuning: Resolved tuning
            cancel_event: Run-level cancellation signal

        Returns:
            ExecutionResult, successful or carrying the error

        Raises:
            CancellationError: If the run is cancelled while the scenario is pending
        """
        start = time.perf_counter()

        if not scenario.user_prompt.strip():
            error = MalformedScenarioError(f'Scenario {scenario.id} has an empty prompt')
            logger.error(str(error))
            return failure_result(scenario, error)

        disallowed = scenario.disallowed_tools()
        if disallowed:
            error = CapabilityViolation(scenario.component_ref, disallowed)
            logger.error(f'{scenario.id}: {error}')
            return failure_result(scenario, error)

        deadline_ms = self.deadline_ms(scenario, tuning)
        attempts = 0

        async def attempt() -> AgentTranscript:
            nonlocal attempts
            attempts += 1
            try:
                return await asyncio.wait_for(
                    self.client.invoke(scenario, self.model, self.settings.max_turns),
                    timeout=deadline_ms / 1000,
                )
            except asyncio.TimeoutError as e:
                raise TransientExecutionError(
                    f'{scenario.id} timed out after {deadline_ms:.0f}ms'
                ) from e

        def on_retry(error: BaseException, next_attempt: int, delay_ms: float) -> None:
            logger.warning(
                f'{scenario.id}: transient failure ({error}), attempt {next_attempt} in {delay_ms:.0f}ms'
            )

        try:
            transcript = await retry_async(
                attempt,
                RetryPolicy.from_tuning(tuning),
                on_retry=on_retry,
                cancel_event=cancel_event,
            )
        except CancellationError:
            raise
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.error(f'{scenario.id} failed after {attempts} attempt(s): {e}')
            return failure_result(scenario, e, elapsed_ms=elapsed_ms, attempts=attempts)

        elapsed_ms = (time.perf_counter() - start) * 1000
        input_tokens, output_tokens = self._token_usage(transcript, tuning)
        cost_usd = calculate_cost(self.model, input_tokens, output_tokens)
        outcome = evaluate_trigger(scenario, transcript.detected_tools)

        logger.debug(
            f'{scenario.id} completed in {elapsed_ms:.0f}ms: '
            f'{len(transcript.detected_tools)} tool call(s), {input_tokens}/{output_tokens} tokens'
        )
        if outcome is not None and not outcome.passed:
            expected = 'trigger' if scenario.expected_trigger else 'no trigger'
            logger.info(f'{scenario.id}: expected {expected} of {scenario.component_key}')

        return ExecutionResult(
            scenario_id=scenario.id,
            success=True,
            component=scenario.component_key,
            triggered=outcome.triggered if outcome is not None else None,
            passed=outcome.passed if outcome is not None else None,
            detections=outcome.detections if outcome is not None else [],
            transcript=transcript,
            detected_tools=list(transcript.detected_tools),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost_usd,
            elapsed_ms=elapsed_ms,
            attempts=attempts,
            num_turns=transcript.num_turns,
        )

    def _token_usage(self, transcript: AgentTranscript, tuning: Tuning):
        """Return reported usage, or the per-turn estimate when none was reported."""
        turns = transcript.num_turns or self.settings.max_turns
        input_tokens = transcript.input_tokens
        output_tokens = transcript.output_tokens
        if input_tokens is None:
            input_tokens = tuning.token_estimates.input_per_turn * turns
        if output_tokens is None:
            output_tokens = tuning.token_estimates.output_per_turn * turns
        return input_tokens, output_tokens
