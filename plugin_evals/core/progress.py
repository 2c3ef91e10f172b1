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

"""Progress callbacks for long-running evaluations.

The pipeline reports progress through five optional hooks. Hooks are
notifications only: the pipeline never reads their return values, and a hook
that raises is logged and reported through on_error instead of aborting the run.

Stock reporters:
- console_progress(): stage banners and a progress bar
- verbose_progress(): per-scenario detail
- json_progress(): one JSON object per event
- silent_progress(): no output
- streaming_progress(callback): forwards events as dictionaries
"""

import json
from .tuning import DEFAULT_TUNING, Tuning
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from loguru import logger
from typing import Any, Callable, Dict, Optional


@dataclass(frozen=True)
class ProgressCallbacks:
    """Optional progress hooks.

    Attributes:
        on_stage_start: (stage, total_items) when a stage begins
        on_scenario_start: (scenario, index, total) before a scenario runs
        on_scenario_complete: (result, index, total) after a scenario finishes
        on_stage_complete: (stage, elapsed_ms, item_count) when a stage ends
        on_error: (error, scenario or None) for every recoverable or fatal error
    """

    on_stage_start: Optional[Callable[[str, int], Any]] = None
    on_scenario_start: Optional[Callable[[Any, int, int], Any]] = None
    on_scenario_complete: Optional[Callable[[Any, int, int], Any]] = None
    on_stage_complete: Optional[Callable[[str, float, int], Any]] = None
    on_error: Optional[Callable[[BaseException, Any], Any]] = None


class ProgressEmitter:
    """Invokes progress callbacks without letting them affect the pipeline."""

    def __init__(self, callbacks: Optional[ProgressCallbacks] = None):
        self.callbacks = callbacks or ProgressCallbacks()

    def _call(self, name: str, *args: Any, scenario: Any = None) -> None:
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f'Progress callback {name} failed: {e}')
            self._report_callback_failure(e, scenario)

    def _report_callback_failure(self, error: Exception, scenario: Any) -> None:
        if self.callbacks.on_error is None:
            return
        try:
            self.callbacks.on_error(error, scenario)
        except Exception as e:
            logger.warning(f'Progress callback on_error failed: {e}')

    def stage_start(self, stage: str, total: int) -> None:
        self._call('on_stage_start', stage, total)

    def scenario_start(self, scenario: Any, index: int, total: int) -> None:
        self._call('on_scenario_start', scenario, index, total, scenario=scenario)

    def scenario_complete(self, result: Any, index: int, total: int, scenario: Any = None) -> None:
        self._call('on_scenario_complete', result, index, total, scenario=scenario)

    def stage_complete(self, stage: str, elapsed_ms: float, count: int) -> None:
        self._call('on_stage_complete', stage, elapsed_ms, count)

    def error(self, error: BaseException, scenario: Any = None) -> None:
        """Report an error; a failing on_error hook is only logged."""
        if self.callbacks.on_error is None:
            return
        try:
            self.callbacks.on_error(error, scenario)
        except Exception as e:
            logger.warning(f'Progress callback on_error failed: {e}')


def _stage_start(stage: str, total: int) -> None:
    logger.info('=' * 60)
    logger.info(f'STAGE: {stage.upper()} ({total} items)')
    logger.info('=' * 60)


def _stage_complete(stage: str, elapsed_ms: float, count: int) -> None:
    logger.info(f'✅ {stage} complete: {count} items in {elapsed_ms / 1000:.1f}s')


def _error(error: BaseException, scenario: Any) -> None:
    where = f' in {scenario.id}' if scenario is not None else ''
    logger.error(f'❌ Error{where}: {error}')


def progress_bar(done: int, total: int, width: int) -> str:
    """Render a fixed-width text progress bar."""
    filled = int(width * done / total) if total else width
    return '█' * filled + '░' * (width - filled)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else f'{text[:limit]}...'


def console_progress(tuning: Tuning = DEFAULT_TUNING) -> ProgressCallbacks:
    """Stage banners plus a progress bar line per completed scenario."""
    width = tuning.limits.progress_bar_width

    def on_scenario_complete(result: Any, index: int, total: int) -> None:
        done = index + 1
        status = '✅' if result.success else '❌'
        pct = round(done / total * 100) if total else 100
        logger.info(
            f'{status} [{progress_bar(done, total, width)}] {done}/{total} ({pct}%) - {result.scenario_id}'
        )

    return ProgressCallbacks(
        on_stage_start=_stage_start,
        on_scenario_complete=on_scenario_complete,
        on_stage_complete=_stage_complete,
        on_error=_error,
    )


def verbose_progress(tuning: Tuning = DEFAULT_TUNING) -> ProgressCallbacks:
    """Per-scenario detail: prompt, outcome, cost and detected tools."""
    prompt_limit = tuning.limits.prompt_display_length

    def on_scenario_start(scenario: Any, index: int, total: int) -> None:
        expected = 'trigger' if scenario.expected_trigger else 'no trigger'
        logger.info(f'[{index + 1}/{total}] Starting: {scenario.id}')
        logger.info(f'  Type: {scenario.component_type.value} | Expected: {expected}')
        logger.info(f'  Prompt: {_truncate(scenario.user_prompt, prompt_limit)}')

    def on_scenario_complete(result: Any, index: int, total: int) -> None:
        status = '✅ PASSED' if result.success else '❌ FAILED'
        logger.info(
            f'  Result: {status} | Cost: ${result.cost_usd:.4f} | Duration: {result.elapsed_ms:.0f}ms'
        )
        if result.triggered is not None:
            verdict = 'matched' if result.passed else 'did not match'
            logger.info(f'  Triggered: {result.triggered} ({verdict} expectation)')
        if result.detected_tools:
            logger.info(f'  Detected: {", ".join(t.name for t in result.detected_tools)}')
        if result.error is not None:
            logger.info(f'  Error: [{result.error.kind}] {result.error.message}')

    return ProgressCallbacks(
        on_stage_start=_stage_start,
        on_scenario_start=on_scenario_start,
        on_scenario_complete=on_scenario_complete,
        on_stage_complete=_stage_complete,
        on_error=_error,
    )


def silent_progress() -> ProgressCallbacks:
    return ProgressCallbacks()


def _scenario_start_event(scenario: Any, index: int, total: int) -> Dict[str, Any]:
    return {
        'scenario_id': scenario.id,
        'index': index,
        'total': total,
        'component_type': scenario.component_type.value,
        'expected_trigger': scenario.expected_trigger,
    }


def _scenario_complete_event(result: Any, index: int, total: int) -> Dict[str, Any]:
    return {
        'scenario_id': result.scenario_id,
        'index': index,
        'total': total,
        'success': result.success,
        'triggered': result.triggered,
        'passed': result.passed,
        'cost_usd': result.cost_usd,
        'duration_ms': result.elapsed_ms,
        'tools_detected': len(result.detected_tools),
        'error': result.error.kind if result.error is not None else None,
    }


def streaming_progress(callback: Callable[[Dict[str, Any]], Any]) -> ProgressCallbacks:
    """Forward every event to callback as {'type': ..., 'data': {...}}."""
    return ProgressCallbacks(
        on_stage_start=lambda stage, total: callback(
            {'type': 'stage_start', 'data': {'stage': stage, 'total': total}}
        ),
        on_scenario_start=lambda scenario, index, total: callback(
            {'type': 'scenario_start', 'data': _scenario_start_event(scenario, index, total)}
        ),
        on_scenario_complete=lambda result, index, total: callback(
            {'type': 'scenario_complete', 'data': _scenario_complete_event(result, index, total)}
        ),
        on_stage_complete=lambda stage, elapsed_ms, count: callback(
            {
                'type': 'stage_complete',
                'data': {'stage': stage, 'duration_ms': elapsed_ms, 'count': count},
            }
        ),
        on_error=lambda error, scenario: callback(
            {
                'type': 'error',
                'data': {
                    'scenario_id': scenario.id if scenario is not None else None,
                    'error': str(error),
                },
            }
        ),
    )


def json_progress(write: Callable[[str], Any] = print) -> ProgressCallbacks:
    """Emit one JSON line per event, for CI logs and machine parsing."""

    def emit(event: Dict[str, Any]) -> None:
        line = {'event': event['type'], **event['data']}
        line['timestamp'] = datetime.now(timezone.utc).isoformat()
        write(json.dumps(line))

    return streaming_progress(emit)


def create_progress_reporter(
    overrides: Dict[str, Callable[..., Any]],
    base: Optional[ProgressCallbacks] = None,
) -> ProgressCallbacks:
    """Build callbacks from a base reporter with some hooks replaced.

    Args:
        overrides: Hook name to callable, e.g. {'on_scenario_complete': fn}
        base: Reporter to extend (console_progress() by default)

    Returns:
        Merged ProgressCallbacks
    """
    known = {f.name for f in fields(ProgressCallbacks)}
    unknown = set(overrides) - known
    if unknown:
        raise ValueError(f'Unknown progress hooks: {", ".join(sorted(unknown))}')
    return replace(base or console_progress(), **overrides)
