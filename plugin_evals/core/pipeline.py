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

"""Orchestrates one evaluation run of a plugin.

Stages run in a fixed order:

    IDLE -> ANALYZING -> GENERATING_VARIATIONS -> EXECUTING -> AGGREGATING -> DONE

FAILED is reachable from every non-terminal stage. Only cancellation and
internal faults end a run in FAILED; component and scenario errors are
recorded in the report and the run continues. The orchestrator never retries
a stage; retries happen inside the ScenarioExecutor.
"""

import asyncio
import time
from .aggregator import EvaluationReport, ResultAggregator
from .analyzer import analyze_agent, analyze_command, analyze_skill
from .components import AgentComponent, SkillComponent
from .errors import (
    BudgetExceeded,
    CancellationError,
    ParseError,
    PipelineInvariantError,
    ScenarioFailure,
)
from .executor import (
    ExecutionError,
    ExecutionResult,
    ScenarioExecutor,
    check_batch_budget,
    failure_result,
)
from .frontmatter import read_component_file
from .metrics import UsageAccumulator
from .progress import ProgressCallbacks, ProgressEmitter
from .scenario import (
    Component,
    TestScenario,
    build_direct_scenarios,
    build_negative_scenarios,
    build_plugin_load_scenario,
    build_semantic_scenarios,
)
from .tuning import Tuning, resolve_tuning
from .variation_generator import (
    VariationGenerator,
    extract_component_keywords,
    would_trigger_different_component,
)
from dataclasses import dataclass
from enum import Enum
from loguru import logger
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence


class PipelineStage(str, Enum):
    IDLE = 'idle'
    ANALYZING = 'analyzing'
    GENERATING_VARIATIONS = 'generating_variations'
    EXECUTING = 'executing'
    AGGREGATING = 'aggregating'
    DONE = 'done'
    FAILED = 'failed'


ALLOWED_TRANSITIONS: Dict[PipelineStage, FrozenSet[PipelineStage]] = {
    PipelineStage.IDLE: frozenset({PipelineStage.ANALYZING, PipelineStage.FAILED}),
    PipelineStage.ANALYZING: frozenset(
        {PipelineStage.GENERATING_VARIATIONS, PipelineStage.FAILED}
    ),
    PipelineStage.GENERATING_VARIATIONS: frozenset(
        {PipelineStage.EXECUTING, PipelineStage.FAILED}
    ),
    PipelineStage.EXECUTING: frozenset({PipelineStage.AGGREGATING, PipelineStage.FAILED}),
    PipelineStage.AGGREGATING: frozenset({PipelineStage.DONE, PipelineStage.FAILED}),
    PipelineStage.DONE: frozenset(),
    PipelineStage.FAILED: frozenset(),
}

TERMINAL_STAGES = frozenset({PipelineStage.DONE, PipelineStage.FAILED})


@dataclass(frozen=True)
class PluginSources:
    """Component files of one plugin.

    Attributes:
        skill_dirs: Skill directories, each holding a SKILL.md
        agent_paths: Agent markdown files
        command_files: Mappings with 'path' and 'namespace' keys
    """

    skill_dirs: Sequence[Any] = ()
    agent_paths: Sequence[Any] = ()
    command_files: Sequence[Mapping[str, Any]] = ()


class PipelineOrchestrator:
    """Runs analysis, variation generation, execution and aggregation for one plugin.

    An orchestrator instance runs once; create a new one per evaluation run.
    """

    def __init__(
        self,
        plugin_name: str,
        executor: ScenarioExecutor,
        sources: Optional[PluginSources] = None,
        components: Optional[Sequence[Component]] = None,
        generator: Optional[VariationGenerator] = None,
        tuning: Optional[Any] = None,
        progress: Optional[ProgressCallbacks] = None,
        cancel_event: Optional[asyncio.Event] = None,
        usage: Optional[UsageAccumulator] = None,
        reader: Callable[[Any], Any] = read_component_file,
        verify_plugin_load: bool = False,
        include_negative: bool = False,
    ):
        """Initialize the orchestrator.

        Args:
            plugin_name: Plugin name, also the command invocation prefix
            executor: Scenario executor
            sources: Component files to analyze
            components: Already-analyzed components, used in addition to sources
            generator: Semantic variation generator; None skips variation generation
            tuning: Partial tuning mapping or resolved Tuning
            progress: Progress callbacks
            cancel_event: Run-level cancellation signal
            usage: Accumulator for run totals; share it with the generator to include
                generation calls
            reader: Component file reader
            verify_plugin_load: Run a load check before component scenarios
            include_negative: Add control scenarios that must not trigger each component
        """
        self.plugin_name = plugin_name
        self.executor = executor
        self.sources = sources or PluginSources()
        self.initial_components = list(components or [])
        self.generator = generator
        self.tuning: Tuning = resolve_tuning(tuning)
        self.progress = ProgressEmitter(progress)
        self.cancel_event = cancel_event or asyncio.Event()
        self.usage = usage or UsageAccumulator()
        self.reader = reader
        self.verify_plugin_load = verify_plugin_load
        self.include_negative = include_negative
        self.aggregator = ResultAggregator()

        self.stage = PipelineStage.IDLE
        self.stage_history: List[PipelineStage] = [PipelineStage.IDLE]
        self.components: List[Component] = []
        self.component_errors: List[ParseError] = []
        self.scenarios: List[TestScenario] = []
        self._results: List[Optional[ExecutionResult]] = []

    def transition(self, target: PipelineStage) -> None:
        """Move to target, enforcing ALLOWED_TRANSITIONS.

        Raises:
            PipelineInvariantError: If the transition is not allowed
        """
        if target not in ALLOWED_TRANSITIONS[self.stage]:
            raise PipelineInvariantError(
                f'Illegal stage transition {self.stage.value} -> {target.value}'
            )
        logger.debug(f'Pipeline stage: {self.stage.value} -> {target.value}')
        self.stage = target
        self.stage_history.append(target)

    @property
    def results(self) -> List[ExecutionResult]:
        """Results produced so far, in scenario order."""
        return [result for result in self._results if result is not None]

    def cancel(self) -> None:
        self.cancel_event.set()

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CancellationError(results=self.results)

    async def run(self) -> EvaluationReport:
        """Run the pipeline to completion.

        Returns:
            EvaluationReport, even when every scenario failed

        Raises:
            CancellationError: If cancelled; carries the results produced so far
            PipelineInvariantError: On an illegal stage transition
        """
        start = time.perf_counter()
        self.usage.start_run()

        try:
            await self._analyze()
            await self._generate_variations()
            await self._execute()
            report = self._aggregate(start)
        except CancellationError as e:
            cancelled = CancellationError(str(e), results=self.results)
            self._fail(cancelled)
            raise cancelled from e
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self.usage.end_run()

        logger.info(
            f'Evaluation of {self.plugin_name} complete: {report.success_count} succeeded, '
            f'{report.failure_count} failed, trigger accuracy {report.trigger_accuracy:.0%} '
            f'({report.passed_count}/{report.scored_count})'
        )
        return report

    def _fail(self, error: BaseException) -> None:
        logger.error(f'Evaluation of {self.plugin_name} failed in {self.stage.value}: {error}')
        if self.stage not in TERMINAL_STAGES:
            self.transition(PipelineStage.FAILED)
        self.progress.error(error, None)

    async def _analyze(self) -> None:
        self.transition(PipelineStage.ANALYZING)
        tasks: List[Callable[[], Component]] = []
        for skill_dir in self.sources.skill_dirs:
            tasks.append(lambda d=skill_dir: analyze_skill(d, self.reader))
        for agent_path in self.sources.agent_paths:
            tasks.append(lambda p=agent_path: analyze_agent(p, self.reader))
        for entry in self.sources.command_files:
            tasks.append(
                lambda e=entry: analyze_command(
                    e['path'], e.get('namespace', ''), self.plugin_name, self.reader
                )
            )

        total = len(tasks) + len(self.initial_components)
        self.progress.stage_start(PipelineStage.ANALYZING.value, total)
        stage_start = time.perf_counter()

        components: List[Component] = list(self.initial_components)
        for task in tasks:
            try:
                components.append(task())
            except ParseError as e:
                logger.error(f'Skipping component: {e}')
                self.component_errors.append(e)
                self.progress.error(e, None)

        self.components = components
        self.executor.client.prepare(self.plugin_name, components)
        logger.info(
            f'Analyzed {len(components)} component(s), {len(self.component_errors)} parse error(s)'
        )
        self.progress.stage_complete(
            PipelineStage.ANALYZING.value, _elapsed_ms(stage_start), len(components)
        )
        self._check_cancelled()

    async def _generate_variations(self) -> None:
        self.transition(PipelineStage.GENERATING_VARIATIONS)
        targets = []
        if self.generator is not None:
            targets = [c for c in self.components if isinstance(c, (SkillComponent, AgentComponent))]
        total = sum(len(c.semantic_intents) for c in targets)
        self.progress.stage_start(PipelineStage.GENERATING_VARIATIONS.value, total)
        stage_start = time.perf_counter()

        keywords = extract_component_keywords(
            self.components, self.tuning.limits.conflict_domain_part_min
        )
        semaphore = asyncio.Semaphore(self.tuning.batching.max_concurrent)

        async def vary(component: Component) -> Component:
            variations = []
            for intent in component.semantic_intents:
                self._check_cancelled()
                async with semaphore:
                    generated = await self.generator.generate_variations(
                        intent, self.tuning.token_estimates.semantic_gen_max_tokens
                    )
                for variation in generated:
                    if would_trigger_different_component(
                        intent.raw_phrase, variation.variation, keywords
                    ):
                        logger.debug(
                            f'Dropping variation that targets another component: {variation.variation}'
                        )
                        continue
                    variations.append(variation)
            return component.with_variations(variations)

        varied = await asyncio.gather(*(vary(c) for c in targets))
        by_id = {id(original): updated for original, updated in zip(targets, varied)}
        self.components = [by_id.get(id(c), c) for c in self.components]

        scenarios: List[TestScenario] = []
        if self.verify_plugin_load:
            scenarios.append(build_plugin_load_scenario(self.plugin_name))
        for component in self.components:
            scenarios.extend(build_direct_scenarios(component))
            if isinstance(component, (SkillComponent, AgentComponent)):
                scenarios.extend(build_semantic_scenarios(component, component.semantic_variations))
            if self.include_negative:
                scenarios.extend(build_negative_scenarios(component))
        self.scenarios = scenarios

        variation_count = sum(len(c.semantic_variations) for c in varied)
        logger.info(f'Generated {variation_count} variation(s), {len(scenarios)} scenario(s)')
        self.progress.stage_complete(
            PipelineStage.GENERATING_VARIATIONS.value, _elapsed_ms(stage_start), total
        )
        self._check_cancelled()

    async def _execute(self) -> None:
        self.transition(PipelineStage.EXECUTING)
        scenarios = self.scenarios
        total = len(scenarios)
        self._results = [None] * total
        self.progress.stage_start(PipelineStage.EXECUTING.value, total)
        stage_start = time.perf_counter()

        start_index = 0
        if self.verify_plugin_load and scenarios:
            load_result = await self._run_scenario(0, total)
            start_index = 1
            if not load_result.success:
                self._skip_after_failed_load(start_index, load_result)
                start_index = total

        # Batch size is the fan-out bound; each batch is budget-checked before dispatch
        batch_size = max(1, self.tuning.batching.max_concurrent)
        for batch_start in range(start_index, total, batch_size):
            self._check_cancelled()
            indices = list(range(batch_start, min(batch_start + batch_size, total)))
            batch = [scenarios[i] for i in indices]

            try:
                check_batch_budget(batch, self.tuning, self.executor.settings, self.usage.cost_usd)
            except BudgetExceeded as e:
                logger.warning(f'Rejecting batch of {len(batch)} scenario(s): {e}')
                self.progress.error(e, None)
                for i in indices:
                    self._results[i] = failure_result(scenarios[i], e)
                continue

            outcomes = await asyncio.gather(
                *(self._run_scenario(i, total) for i in indices), return_exceptions=True
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException) and not isinstance(outcome, CancellationError):
                    raise outcome
            if any(isinstance(outcome, CancellationError) for outcome in outcomes):
                raise CancellationError('Evaluation run cancelled during execution', self.results)

        self.progress.stage_complete(
            PipelineStage.EXECUTING.value, _elapsed_ms(stage_start), len(self.results)
        )
        self._check_cancelled()

    async def _run_scenario(self, index: int, total: int) -> ExecutionResult:
        scenario = self.scenarios[index]
        self._check_cancelled()
        self.progress.scenario_start(scenario, index, total)

        result = await self.executor.execute(scenario, self.tuning, self.cancel_event)
        if result.success:
            await self.usage.record(
                self.executor.model, result.input_tokens, result.output_tokens, result.cost_usd
            )
        self._results[index] = result

        self.progress.scenario_complete(result, index, total, scenario=scenario)
        if result.error is not None:
            self.progress.error(
                ScenarioFailure(scenario.id, result.error.kind, result.error.message), scenario
            )
        return result

    def _skip_after_failed_load(self, start_index: int, load_result: ExecutionResult) -> None:
        reason = load_result.error.message if load_result.error else 'unknown error'
        logger.error(f'Plugin {self.plugin_name} failed to load: {reason}')
        error = ExecutionError(kind='plugin_load_failed', message=f'Plugin failed to load: {reason}')
        for i in range(start_index, len(self.scenarios)):
            self._results[i] = ExecutionResult(
                scenario_id=self.scenarios[i].id,
                success=False,
                component=self.scenarios[i].component_key,
                error=error,
            )

    def _aggregate(self, start: float) -> EvaluationReport:
        self.transition(PipelineStage.AGGREGATING)
        results = self.results
        self.progress.stage_start(PipelineStage.AGGREGATING.value, len(results))
        stage_start = time.perf_counter()

        report = self.aggregator.aggregate(
            plugin_name=self.plugin_name,
            results=results,
            usage=self.usage,
            component_errors=self.component_errors,
            duration_ms=_elapsed_ms(start),
            stage_history=self.stage_history + [PipelineStage.DONE],
        )
        self.progress.stage_complete(
            PipelineStage.AGGREGATING.value, _elapsed_ms(stage_start), len(results)
        )
        self.transition(PipelineStage.DONE)
        return report


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
