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

"""Error types raised by the evaluation pipeline.

Component-level and scenario-level errors are captured into the report.
Only CancellationError and PipelineInvariantError end a run without one.
"""

import asyncio
from typing import Any, List, Optional


class PluginEvalError(Exception):
    """Base class for pipeline errors."""

    kind = 'error'
    recoverable = True


class ParseError(PluginEvalError):
    """A component file's fields could not be analyzed."""

    kind = 'parse_error'

    def __init__(self, path: str, reason: str):
        """Initialize ParseError.

        Args:
            path: Path of the component file
            reason: What went wrong
        """
        super().__init__(f'Failed to parse {path}: {reason}')
        self.path = path
        self.reason = reason


class TransientExecutionError(PluginEvalError):
    """Timeout or transport hiccup; eligible for retry."""

    kind = 'transient'


class RetriesExhausted(PluginEvalError):
    """A transient failure persisted through every allowed attempt."""

    kind = 'retries_exhausted'

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f'Gave up after {attempts} attempt(s): {last_error}')
        self.attempts = attempts
        self.last_error = last_error


class CapabilityViolation(PluginEvalError):
    """A scenario needs a tool the component is not allowed to use."""

    kind = 'capability_violation'

    def __init__(self, component: str, tools: List[str]):
        super().__init__(f'{component} is not allowed to use: {", ".join(tools)}')
        self.component = component
        self.tools = tools


class MalformedScenarioError(PluginEvalError):
    """The scenario cannot be sent to the agent as built."""

    kind = 'malformed_scenario'


class ScenarioFailure(PluginEvalError):
    """A scenario finished with an error; raised only to report it through on_error."""

    def __init__(self, scenario_id: str, kind: str, message: str):
        super().__init__(f'{scenario_id}: {message}')
        self.scenario_id = scenario_id
        self.kind = kind


class BudgetExceeded(PluginEvalError):
    """A batch would go past the allowed spend; it is rejected before dispatch."""

    kind = 'budget_exceeded'

    def __init__(self, estimated_usd: float, remaining_usd: float):
        super().__init__(
            f'Estimated batch cost ${estimated_usd:.4f} exceeds remaining allowance '
            f'${remaining_usd:.4f}'
        )
        self.estimated_usd = estimated_usd
        self.remaining_usd = remaining_usd


class CancellationError(PluginEvalError):
    """The run was cancelled by the caller."""

    kind = 'cancelled'
    recoverable = False

    def __init__(self, message: str = 'Evaluation run cancelled', results: Optional[List[Any]] = None):
        super().__init__(message)
        self.results = list(results or [])


class PipelineInvariantError(PluginEvalError):
    """Internal fault, such as an illegal stage transition."""

    kind = 'internal'
    recoverable = False


_TRANSIENT_MESSAGE_MARKERS = (
    'rate limit',
    'too many requests',
    'throttl',
    'overloaded',
    'temporarily unavailable',
    'timeout',
    'timed out',
    'network',
    'connection reset',
    'connection refused',
    'econnreset',
    'econnrefused',
    'socket hang up',
    '500',
    '502',
    '503',
    '504',
)

_TRANSIENT_CLIENT_CODES = {
    'ThrottlingException',
    'ServiceUnavailableException',
    'ModelNotReadyException',
    'InternalServerException',
    'ModelTimeoutException',
}


def is_transient_error(error: BaseException) -> bool:
    """Decide whether an error is worth retrying.

    Args:
        error: Exception raised by the agent transport or LLM provider

    Returns:
        True for timeouts, throttling, 429/5xx and connection failures
    """
    if isinstance(error, TransientExecutionError):
        return True
    if isinstance(error, PluginEvalError):
        return False
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True

    # botocore ClientError carries the service error code in .response
    response = getattr(error, 'response', None)
    if isinstance(response, dict):
        code = response.get('Error', {}).get('Code')
        if code in _TRANSIENT_CLIENT_CODES:
            return True
        status = response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        if isinstance(status, int):
            return status == 429 or 500 <= status < 600

    status = getattr(error, 'status', None) or getattr(error, 'status_code', None)
    if isinstance(status, int):
        return status == 429 or 500 <= status < 600

    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MESSAGE_MARKERS)
