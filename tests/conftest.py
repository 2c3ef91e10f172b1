"""Shared fixtures for plugin evaluation tests."""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from plugin_evals.core.agent_client import AgentClient, AgentTranscript, ToolCapture
from plugin_evals.core.frontmatter import RawComponent
from plugin_evals.core.llm_provider import LLMProvider, LLMResponse
from plugin_evals.core.tuning import resolve_tuning


class StubProvider(LLMProvider):
    """LLM provider that replays canned generate() responses in order."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.prompts: List[str] = []
        self.max_tokens: List[Optional[int]] = []

    async def generate(self, prompt, model, max_tokens=None):
        self.prompts.append(prompt)
        self.max_tokens.append(max_tokens)
        response = self.responses.pop(0) if self.responses else '[]'
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, LLMResponse):
            return response
        return LLMResponse(text=response, input_tokens=100, output_tokens=50)

    async def converse(self, messages, model, system=None, **kwargs):
        raise NotImplementedError


class StubAgentClient(AgentClient):
    """Agent transport that fails a scripted number of times per scenario, then succeeds.

    Args:
        failures: Scenario id to list of exceptions raised on successive calls
        tools: Tool names reported as detected on success
        input_tokens: Reported input tokens (None to omit usage)
        output_tokens: Reported output tokens (None to omit usage)
        captures: Builds the tool captures for a scenario; overrides tools
    """

    def __init__(
        self,
        failures: Optional[Dict[str, List[BaseException]]] = None,
        tools: Optional[List[str]] = None,
        input_tokens: Optional[int] = 1000,
        output_tokens: Optional[int] = 200,
        captures: Optional[Callable[[Any], List[ToolCapture]]] = None,
    ):
        self.failures = {key: list(value) for key, value in (failures or {}).items()}
        self.tools = tools or ['Skill']
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.captures = captures
        self.calls: List[str] = []
        self.prepared: Optional[List[Any]] = None

    def prepare(self, plugin_name, components):
        self.prepared = list(components)

    async def invoke(self, scenario, model, max_turns):
        self.calls.append(scenario.id)
        pending = self.failures.get(scenario.id)
        if pending:
            raise pending.pop(0)
        return AgentTranscript(
            messages=[{'role': 'user', 'content': [{'text': scenario.user_prompt}]}],
            final_response='done',
            detected_tools=self._captures(scenario),
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            num_turns=1,
            stop_reason='end_turn',
        )

    def _captures(self, scenario) -> List[ToolCapture]:
        if self.captures is not None:
            return self.captures(scenario)
        return [
            ToolCapture(name=name, input={}, tool_use_id=f'tool-{i}')
            for i, name in enumerate(self.tools)
        ]


def trigger_expected(scenario) -> List[ToolCapture]:
    """Captures of an agent that triggers exactly the components it is expected to."""
    if not scenario.expected_trigger:
        return []
    tool, key = {
        'skill': ('Skill', 'skill'),
        'agent': ('Task', 'subagent_type'),
        'command': ('SlashCommand', 'command'),
    }[scenario.component_type.value]
    value = f'/p:{scenario.expected_component}' if tool == 'SlashCommand' else scenario.expected_component
    return [ToolCapture(name=tool, input={key: value}, tool_use_id='tool-0')]


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def stub_client():
    return StubAgentClient()


@pytest.fixture
def fast_tuning():
    """Tuning with near-zero backoff delays."""
    return resolve_tuning(
        {
            'timeouts': {'retry_initial_ms': 1, 'retry_max_ms': 2},
            'retry': {'jitter_factor': 0},
        }
    )


SKILL_MD = """---
name: hook-development
description: This skill should be used when the user asks to "create a hook", "add a PreToolUse hook", or "validate tool use". Provides guidance for plugin hooks.
allowed-tools: Read, Write
---

# Hook development

Body text.
"""

AGENT_MD = """---
name: code-reviewer
description: Use this agent when the user asks to "review my code" or "check for bugs in the parser".
model: sonnet
tools:
  - Read
  - Grep
---

<example>
Context: The user just finished a feature.
user: "Can you review my changes?"
assistant: "I'll use the code-reviewer agent."
<commentary>
A completed feature should be reviewed.
</commentary>
</example>

You review code.
"""

COMMAND_MD = """---
description: A test command
argument-hint: "[filename]"
allowed-tools:
  - Read
---

Process $1.
"""

NESTED_COMMAND_MD = """---
description: Nested command
disable-model-invocation: true
---

Advanced things.
"""


@pytest.fixture
def plugin_dir(tmp_path: Path) -> Path:
    """A small plugin with one skill, one agent and two commands."""
    root = tmp_path / 'test-plugin'
    (root / 'skills' / 'hook-development').mkdir(parents=True)
    (root / 'skills' / 'hook-development' / 'SKILL.md').write_text(SKILL_MD)
    (root / 'agents').mkdir()
    (root / 'agents' / 'code-reviewer.md').write_text(AGENT_MD)
    (root / 'commands' / 'advanced').mkdir(parents=True)
    (root / 'commands' / 'test-command.md').write_text(COMMAND_MD)
    (root / 'commands' / 'advanced' / 'nested-command.md').write_text(NESTED_COMMAND_MD)
    return root


def make_record(path: str, frontmatter: Dict[str, Any], body: str = '') -> RawComponent:
    return RawComponent(path=path, frontmatter=frontmatter, body=body)
