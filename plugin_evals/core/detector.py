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

"""Programmatic trigger detection from captured tool calls.

Each trigger tool names the component it activates:
- Skill: input['skill'] names a skill
- Task: input['subagent_type'] names an agent
- SlashCommand: input['command'] holds a /plugin:name invocation

A command scenario whose prompt starts with slash syntax counts as a direct
invocation even when no SlashCommand call was captured.
"""

import re
from .agent_client import ToolCapture
from .components import ComponentType
from .scenario import TestScenario
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple


TRIGGER_TOOLS: Dict[str, Tuple[ComponentType, str]] = {
    'Skill': (ComponentType.SKILL, 'skill'),
    'Task': (ComponentType.AGENT, 'subagent_type'),
    'SlashCommand': (ComponentType.COMMAND, 'command'),
}

COMMAND_PATTERN = re.compile(r'^/(?:[a-z0-9_-]+:)?([a-z0-9_\-/:]+)', re.IGNORECASE)


@dataclass(frozen=True)
class Detection:
    """A component the agent activated during a scenario."""

    component_type: ComponentType
    component_name: str
    tool_name: str
    evidence: str
    timestamp: float = 0.0


@dataclass(frozen=True)
class TriggerOutcome:
    """Whether the expected component fired, and whether that matched the expectation."""

    triggered: bool
    passed: bool
    detections: List[Detection]


def parse_command_name(text: str) -> Optional[str]:
    """Return the command name from a slash invocation.

    "/my-plugin:advanced/deploy prod" and "/my-plugin:advanced:deploy" both
    yield "advanced/deploy".
    """
    match = COMMAND_PATTERN.match(text.strip())
    if not match:
        return None
    return match.group(1).strip('/:').replace(':', '/')


def _component_name(component_type: ComponentType, value: str) -> Optional[str]:
    if component_type == ComponentType.COMMAND:
        return parse_command_name(value)
    # Skills and agents may be addressed as plugin:name
    return value.rsplit(':', 1)[-1].strip() or None


def detect_from_captures(captures: Iterable[ToolCapture]) -> List[Detection]:
    """Map trigger-tool captures to detections, ignoring other tools and malformed input."""
    detections = []
    for capture in captures:
        if capture.name not in TRIGGER_TOOLS:
            continue
        component_type, key = TRIGGER_TOOLS[capture.name]
        value = capture.input.get(key)
        if not isinstance(value, str):
            continue
        name = _component_name(component_type, value)
        if name is None:
            continue
        detections.append(
            Detection(
                component_type=component_type,
                component_name=name,
                tool_name=capture.name,
                evidence=f'{capture.name} tool invoked: {value}',
                timestamp=capture.timestamp,
            )
        )
    return detections


def detect_direct_invocation(scenario: TestScenario) -> Optional[Detection]:
    """Detect a command invoked with slash syntax in the scenario prompt."""
    if scenario.component_type != ComponentType.COMMAND or not scenario.user_prompt.startswith('/'):
        return None
    name = parse_command_name(scenario.user_prompt)
    if name is None:
        return None
    return Detection(
        component_type=ComponentType.COMMAND,
        component_name=name,
        tool_name='DirectInvocation',
        evidence=f'Direct command invocation in prompt: {scenario.user_prompt.split()[0]}',
    )


def detect_components(captures: Iterable[ToolCapture], scenario: TestScenario) -> List[Detection]:
    """Return unique detections from captures plus any direct command invocation."""
    detections = detect_from_captures(captures)
    direct = detect_direct_invocation(scenario)
    if direct is not None:
        detections.append(direct)

    seen = set()
    unique = []
    for detection in detections:
        key = (detection.component_type, detection.component_name)
        if key not in seen:
            seen.add(key)
            unique.append(detection)
    return unique


def was_component_triggered(
    detections: Iterable[Detection], component_name: str, component_type: ComponentType
) -> bool:
    return any(
        d.component_type == component_type and d.component_name == component_name
        for d in detections
    )


def evaluate_trigger(scenario: TestScenario, captures: Iterable[ToolCapture]) -> Optional[TriggerOutcome]:
    """Score a scenario's captures against its expectation.

    Args:
        scenario: Executed scenario
        captures: Tool calls recorded during the run

    Returns:
        TriggerOutcome, or None for scenarios that do not target a component
        (the plugin load check)
    """
    if scenario.component_type == ComponentType.PLUGIN:
        return None
    detections = detect_components(captures, scenario)
    triggered = was_component_triggered(
        detections, scenario.expected_component, scenario.component_type
    )
    return TriggerOutcome(
        triggered=triggered,
        passed=triggered == scenario.expected_trigger,
        detections=detections,
    )
