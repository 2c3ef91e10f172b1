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

"""Transport to the agent under test.

The executor treats the agent as an opaque call that returns a transcript.
BedrockAgentClient emulates plugin loading on Bedrock: components are listed in
the system prompt and exposed through the Skill, SlashCommand and Task tools, and
every tool call the model makes is captured.
"""

import time
from .analyzer import get_command_invocation
from .components import AgentComponent, CommandComponent, SkillComponent
from .llm_provider import LLMProvider
from .scenario import TestScenario
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from loguru import logger
from typing import Any, Dict, Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class ToolCapture:
    """One tool invocation observed during a scenario."""

    name: str
    input: Dict[str, Any]
    tool_use_id: str = ''
    timestamp: float = 0.0


@dataclass(frozen=True)
class AgentTranscript:
    """What the agent did for one scenario.

    Attributes:
        messages: Full conversation, in the transport's message format
        final_response: Text of the last assistant message
        detected_tools: Tool invocations in call order
        input_tokens: Reported input tokens, None when the transport has no usage data
        output_tokens: Reported output tokens, None when the transport has no usage data
        num_turns: Model turns taken
        stop_reason: Why the conversation ended
    """

    messages: List[Dict[str, Any]] = field(default_factory=list)
    final_response: str = ''
    detected_tools: List[ToolCapture] = field(default_factory=list)
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    num_turns: int = 0
    stop_reason: str = ''


class AgentClient(ABC):
    """Sends a scenario to the agent under test."""

    @abstractmethod
    async def invoke(self, scenario: TestScenario, model: str, max_turns: int) -> AgentTranscript:
        """Run one scenario.

        Args:
            scenario: Scenario to run
            model: Model the agent runs on
            max_turns: Maximum conversation turns

        Returns:
            AgentTranscript

        Raises:
            Exception: Transport errors propagate; the executor classifies them
        """
        pass

    def prepare(self, plugin_name: str, components: Sequence[Any]) -> None:
        """Receive the analyzed components before the first scenario runs."""
        pass


def get_trigger_tools() -> List[Dict[str, Any]]:
    """Return Bedrock tool specs for the tools that trigger plugin components."""
    return [
        {
            'toolSpec': {
                'name': 'Skill',
                'description': 'Load a plugin skill whose description matches the request',
                'inputSchema': {
                    'json': {
                        'type': 'object',
                        'properties': {
                            'skill': {'type': 'string', 'description': 'Skill name'},
                        },
                        'required': ['skill'],
                    }
                },
            }
        },
        {
            'toolSpec': {
                'name': 'SlashCommand',
                'description': 'Run a plugin slash command',
                'inputSchema': {
                    'json': {
                        'type': 'object',
                        'properties': {
                            'command': {
                                'type': 'string',
                                'description': 'Command invocation, e.g. /plugin:name args',
                            },
                        },
                        'required': ['command'],
                    }
                },
            }
        },
        {
            'toolSpec': {
                'name': 'Task',
                'description': 'Delegate the request to a plugin agent',
                'inputSchema': {
                    'json': {
                        'type': 'object',
                        'properties': {
                            'subagent_type': {'type': 'string', 'description': 'Agent name'},
                            'prompt': {'type': 'string', 'description': 'Task for the agent'},
                        },
                        'required': ['subagent_type', 'prompt'],
                    }
                },
            }
        },
    ]


def build_plugin_system_prompt(plugin_name: str, components: Iterable[Any]) -> str:
    """Describe the plugin's components the way they are presented to the agent."""
    skills, agents, commands = [], [], []
    for component in components:
        if isinstance(component, SkillComponent):
            skills.append(f'- {component.name}: {component.description}')
        elif isinstance(component, AgentComponent):
            agents.append(f'- {component.name}: {component.description}')
        elif isinstance(component, CommandComponent) and not component.disable_model_invocation:
            hint = f' {component.argument_hint}' if component.argument_hint else ''
            commands.append(f'- {get_command_invocation(component)}{hint}: {component.description}')

    sections = [
        f'You are a coding assistant with the "{plugin_name}" plugin installed.',
        'Use the Skill tool to load a skill, the SlashCommand tool to run a command and the '
        'Task tool to delegate to an agent, whenever the request matches their description.',
    ]
    if skills:
        sections.append('Available skills:\n' + '\n'.join(skills))
    if agents:
        sections.append('Available agents:\n' + '\n'.join(agents))
    if commands:
        sections.append('Available slash commands:\n' + '\n'.join(commands))
    return '\n\n'.join(sections)


def build_scenario_messages(scenario: TestScenario) -> List[Dict[str, Any]]:
    """Build the opening conversation: setup turns followed by the scenario prompt.

    Converse requires user and assistant turns to alternate, so consecutive
    turns with the same role are merged into one message with several text blocks.
    """
    turns = [(setup.role, setup.content) for setup in scenario.setup_messages]
    turns.append(('user', scenario.user_prompt))

    messages: List[Dict[str, Any]] = []
    for role, text in turns:
        if messages and messages[-1]['role'] == role:
            messages[-1]['content'].append({'text': text})
        else:
            messages.append({'role': role, 'content': [{'text': text}]})
    return messages


class BedrockAgentClient(AgentClient):
    """Agent loop on Bedrock with the plugin's trigger tools."""

    def __init__(
        self, provider: LLMProvider, plugin_name: str = '', components: Sequence[Any] = ()
    ):
        """Initialize the client.

        Args:
            provider: LLM provider with converse support
            plugin_name: Plugin name shown to the agent
            components: Analyzed components of the plugin
        """
        self.provider = provider
        self.system_prompt = build_plugin_system_prompt(plugin_name, components)

    def prepare(self, plugin_name: str, components: Sequence[Any]) -> None:
        self.system_prompt = build_plugin_system_prompt(plugin_name, components)

    async def invoke(self, scenario: TestScenario, model: str, max_turns: int) -> AgentTranscript:
        """Run the agent loop for one scenario."""
        messages = build_scenario_messages(scenario)
        captures: List[ToolCapture] = []
        input_tokens = 0
        output_tokens = 0
        stop_reason = ''
        turn = 0

        while turn < max_turns:
            turn += 1
            logger.debug(f'=== {scenario.id}: turn {turn}/{max_turns} ===')

            start = time.time()
            response = await self.provider.converse(
                messages,
                model=model,
                system=self.system_prompt,
                toolConfig={'tools': get_trigger_tools()},
            )
            logger.debug(f'Agent responded in {time.time() - start:.2f}s')

            usage = response.get('usage', {})
            input_tokens += usage.get('inputTokens', 0)
            output_tokens += usage.get('outputTokens', 0)

            content = response['output']['message']['content']
            messages.append({'role': 'assistant', 'content': content})
            stop_reason = response.get('stopReason', '')

            if stop_reason != 'tool_use':
                break

            tool_results = []
            for block in content:
                if 'toolUse' not in block:
                    continue
                tool_use = block['toolUse']
                logger.debug(f'Tool requested: {tool_use["name"]}')
                captures.append(
                    ToolCapture(
                        name=tool_use['name'],
                        input=dict(tool_use.get('input', {})),
                        tool_use_id=tool_use['toolUseId'],
                        timestamp=time.time(),
                    )
                )
                tool_results.append(
                    {
                        'toolResult': {
                            'toolUseId': tool_use['toolUseId'],
                            'content': [{'text': f'{tool_use["name"]} invoked.'}],
                        }
                    }
                )
            messages.append({'role': 'user', 'content': tool_results})

        if turn >= max_turns and stop_reason == 'tool_use':
            logger.warning(f'{scenario.id}: reached max turns ({max_turns})')

        return AgentTranscript(
            messages=messages,
            final_response=_final_text(messages),
            detected_tools=captures,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            num_turns=turn,
            stop_reason=stop_reason,
        )


def _final_text(messages: List[Dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message['role'] != 'assistant':
            continue
        texts = [block['text'] for block in message['content'] if 'text' in block]
        if texts:
            return '\n'.join(texts)
    return ''
