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

"""Test scenarios and the builders that derive them from components.

Scenario kinds:
- direct: a trigger phrase used verbatim
- semantic: a generated paraphrase of a trigger phrase
- example: the user message of an agent <example> block
- invocation: an explicit slash-command call, optionally with an @file reference
- negative: an unrelated request that must not trigger the component
- plugin_load: checks that the plugin loads at all

Ids have the form {component_type}:{component}-{kind}-{index}, so components of
different kinds that share a name never collide.
"""

from .analyzer import get_command_invocation
from .components import (
    AgentComponent,
    CommandComponent,
    ComponentType,
    SemanticVariation,
    SkillComponent,
    VariationType,
)
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union


Component = Union[SkillComponent, AgentComponent, CommandComponent]


class ScenarioType(str, Enum):
    DIRECT = 'direct'
    SEMANTIC = 'semantic'
    EXAMPLE = 'example'
    INVOCATION = 'invocation'
    NEGATIVE = 'negative'
    PLUGIN_LOAD = 'plugin_load'


class ScenarioPhase(str, Enum):
    """Which deadline applies: plugin load or regular execution."""

    LOAD = 'load'
    RUN = 'run'


@dataclass(frozen=True)
class SetupMessage:
    """Prior conversation turn sent before the scenario prompt."""

    role: str
    content: str


@dataclass(frozen=True)
class TestScenario:
    """A single unit of work for the executor.

    Attributes:
        id: Unique scenario identifier within a run
        component_ref: Name of the component under test
        component_type: Kind of component under test
        scenario_type: How the prompt was derived
        user_prompt: Message sent to the agent
        expected_trigger: Whether the component should be triggered
        expected_component: Component expected to handle the prompt
        phase: Deadline class for the call
        required_tools: Tools the scenario needs the component to be allowed to use;
            builders fill it where the prompt implies a tool, callers may add more
        allowed_tools: The component's tool allowlist (None means unrestricted)
        setup_messages: Conversation turns that precede the prompt
        original_trigger_phrase: Trigger phrase a semantic scenario paraphrases
        semantic_variation_type: Variation type of a semantic scenario
        reasoning: Why the scenario should behave as expected
    """

    __test__ = False

    id: str
    component_ref: str
    component_type: ComponentType
    scenario_type: ScenarioType
    user_prompt: str
    expected_trigger: bool = True
    expected_component: str = ''
    phase: ScenarioPhase = ScenarioPhase.RUN
    required_tools: Tuple[str, ...] = ()
    allowed_tools: Optional[Tuple[str, ...]] = None
    setup_messages: Tuple[SetupMessage, ...] = ()
    original_trigger_phrase: Optional[str] = None
    semantic_variation_type: Optional[VariationType] = None
    reasoning: str = ''

    def disallowed_tools(self) -> List[str]:
        """Return required tools the component may not use."""
        if self.allowed_tools is None:
            return []
        return [tool for tool in self.required_tools if tool not in self.allowed_tools]

    @property
    def component_key(self) -> str:
        """Component identity across kinds, e.g. "skill:deploy"."""
        return f'{self.component_type.value}:{self.component_ref}'


# File referenced by command scenarios that exercise @file syntax
FILE_REFERENCE = 'README.md'

NEGATIVE_PROMPTS = {
    ComponentType.SKILL: 'What is the weather today?',
    ComponentType.AGENT: 'What is the capital of France?',
}


def scenario_id(component_type: ComponentType, name: str, kind: str, index: int) -> str:
    return f'{component_type.value}:{name}-{kind}-{index}'


def _allowlist(component: Component) -> Optional[Tuple[str, ...]]:
    tools = component.permitted_tools
    return tuple(tools) if tools is not None else None


def _component_label(component: Component) -> str:
    if isinstance(component, CommandComponent):
        return component.full_name
    return component.name


def build_command_scenario(command: CommandComponent) -> TestScenario:
    """Build the slash-command invocation scenario for a command."""
    invocation = get_command_invocation(command)
    prompt = ' '.join([invocation] + command.arguments)
    return TestScenario(
        id=scenario_id(ComponentType.COMMAND, command.full_name, 'invocation', 0),
        component_ref=command.full_name,
        component_type=ComponentType.COMMAND,
        scenario_type=ScenarioType.INVOCATION,
        user_prompt=prompt,
        expected_component=command.full_name,
        allowed_tools=_allowlist(command),
        reasoning=f'Explicit invocation of {invocation}',
    )


def build_file_reference_scenario(command: CommandComponent) -> TestScenario:
    """Build an invocation that passes an @file reference; the command must be allowed to Read."""
    invocation = get_command_invocation(command)
    return TestScenario(
        id=scenario_id(ComponentType.COMMAND, command.full_name, 'file-ref', 0),
        component_ref=command.full_name,
        component_type=ComponentType.COMMAND,
        scenario_type=ScenarioType.INVOCATION,
        user_prompt=f'{invocation} @{FILE_REFERENCE}',
        expected_component=command.full_name,
        required_tools=('Read',),
        allowed_tools=_allowlist(command),
        reasoning='Command invocation with a file reference',
    )


def build_direct_scenarios(component: Component) -> List[TestScenario]:
    """Build scenarios that use a component's declared triggers verbatim.

    Skills and agents get one scenario per trigger phrase; agents also get one
    per <example> block. Commands get their invocation and file-reference scenarios.
    """
    if isinstance(component, CommandComponent):
        return [build_command_scenario(component), build_file_reference_scenario(component)]

    name = _component_label(component)
    scenarios = [
        TestScenario(
            id=scenario_id(component.component_type, name, 'direct', i),
            component_ref=name,
            component_type=component.component_type,
            scenario_type=ScenarioType.DIRECT,
            user_prompt=phrase,
            expected_component=name,
            allowed_tools=_allowlist(component),
            original_trigger_phrase=phrase,
            reasoning='Trigger phrase taken from the component description',
        )
        for i, phrase in enumerate(component.trigger_phrases)
    ]

    if isinstance(component, AgentComponent):
        for i, example in enumerate(component.example_triggers):
            setup = (SetupMessage(role='user', content=example.context),) if example.context else ()
            scenarios.append(
                TestScenario(
                    id=scenario_id(ComponentType.AGENT, name, 'example', i),
                    component_ref=name,
                    component_type=ComponentType.AGENT,
                    scenario_type=ScenarioType.EXAMPLE,
                    user_prompt=example.user_message,
                    expected_component=name,
                    allowed_tools=_allowlist(component),
                    setup_messages=setup,
                    reasoning=example.commentary,
                )
            )

    return scenarios


def build_semantic_scenarios(
    component: Component, variations: Iterable[SemanticVariation]
) -> List[TestScenario]:
    """Build one semantic scenario per variation."""
    name = _component_label(component)
    return [
        TestScenario(
            id=scenario_id(component.component_type, name, 'semantic', i),
            component_ref=name,
            component_type=component.component_type,
            scenario_type=ScenarioType.SEMANTIC,
            user_prompt=variation.variation,
            expected_component=name,
            allowed_tools=_allowlist(component),
            original_trigger_phrase=variation.original_trigger,
            semantic_variation_type=variation.variation_type,
            reasoning=variation.explanation,
        )
        for i, variation in enumerate(variations)
    ]


def build_negative_scenarios(component: Component) -> List[TestScenario]:
    """Build control scenarios that must not trigger the component.

    Skills and agents get an unrelated request. Commands get a natural-language
    request to run them, which should not replace explicit slash syntax; for
    commands with model invocation disabled, the request asks for programmatic use.
    """
    name = _component_label(component)
    if isinstance(component, CommandComponent):
        if component.disable_model_invocation:
            prompt = f'Please invoke the {component.name} command programmatically'
            reasoning = 'Model invocation is disabled for this command'
        else:
            prompt = f'Run the {component.name} command'
            reasoning = 'Only explicit slash syntax should invoke a command'
    else:
        prompt = NEGATIVE_PROMPTS[component.component_type]
        reasoning = 'Unrelated request should not trigger the component'

    return [
        TestScenario(
            id=scenario_id(component.component_type, name, 'negative', 0),
            component_ref=name,
            component_type=component.component_type,
            scenario_type=ScenarioType.NEGATIVE,
            user_prompt=prompt,
            expected_trigger=False,
            expected_component=name,
            allowed_tools=_allowlist(component),
            reasoning=reasoning,
        )
    ]


def build_plugin_load_scenario(plugin_name: str) -> TestScenario:
    """Build the load check run before any component scenario."""
    return TestScenario(
        id=scenario_id(ComponentType.PLUGIN, plugin_name, 'load', 0),
        component_ref=plugin_name,
        component_type=ComponentType.PLUGIN,
        scenario_type=ScenarioType.PLUGIN_LOAD,
        user_prompt=f'List the skills, agents and slash commands provided by the {plugin_name} plugin.',
        expected_trigger=False,
        expected_component=plugin_name,
        phase=ScenarioPhase.LOAD,
        reasoning='Plugin must load before component scenarios run',
    )
