"""Tests for programmatic trigger detection."""

import pytest

from plugin_evals.core.agent_client import ToolCapture
from plugin_evals.core.components import CommandComponent, ComponentType, SkillComponent
from plugin_evals.core.detector import (
    detect_components,
    detect_from_captures,
    evaluate_trigger,
    parse_command_name,
)
from plugin_evals.core.scenario import (
    build_direct_scenarios,
    build_negative_scenarios,
    build_plugin_load_scenario,
)


SKILL = SkillComponent(
    name='hook-development',
    path='skills/hook-development/SKILL.md',
    description='Use to "create a hook".',
    trigger_phrases=['create a hook'],
)

COMMAND = CommandComponent(
    name='deploy',
    path='commands/deploy.md',
    plugin_prefix='test-plugin',
    namespace='',
    full_name='deploy',
    description='Deploy the app',
)


class TestParseCommandName:
    """Tests for parse_command_name."""

    @pytest.mark.parametrize(
        'text,expected',
        [
            ('/test-plugin:deploy', 'deploy'),
            ('/test-plugin:deploy prod', 'deploy'),
            ('/test-plugin:advanced/deploy', 'advanced/deploy'),
            ('/test-plugin:advanced:deploy', 'advanced/deploy'),
            ('/deploy', 'deploy'),
        ],
    )
    def test_slash_forms(self, text, expected):
        """Test plugin-prefixed and bare invocations."""
        assert parse_command_name(text) == expected

    def test_not_a_command(self):
        """Test text without slash syntax."""
        assert parse_command_name('run deploy') is None


class TestDetectFromCaptures:
    """Tests for detect_from_captures."""

    def test_trigger_tools(self):
        """Test each trigger tool maps to its component."""
        captures = [
            ToolCapture(name='Skill', input={'skill': 'hook-development'}),
            ToolCapture(name='Task', input={'subagent_type': 'code-reviewer', 'prompt': 'x'}),
            ToolCapture(name='SlashCommand', input={'command': '/p:advanced/nested-command args'}),
        ]

        detections = detect_from_captures(captures)

        assert [(d.component_type, d.component_name) for d in detections] == [
            (ComponentType.SKILL, 'hook-development'),
            (ComponentType.AGENT, 'code-reviewer'),
            (ComponentType.COMMAND, 'advanced/nested-command'),
        ]
        assert detections[0].evidence == 'Skill tool invoked: hook-development'

    def test_plugin_prefixed_skill(self):
        """Test a skill addressed as plugin:name."""
        detections = detect_from_captures([ToolCapture(name='Skill', input={'skill': 'p:hooks'})])
        assert detections[0].component_name == 'hooks'

    def test_ignores_other_tools_and_malformed_input(self):
        """Test non-trigger tools and inputs missing the expected key."""
        captures = [
            ToolCapture(name='Read', input={'file_path': 'README.md'}),
            ToolCapture(name='Skill', input={}),
            ToolCapture(name='Task', input={'subagent_type': 3}),
            ToolCapture(name='SlashCommand', input={'command': 'deploy'}),
        ]
        assert detect_from_captures(captures) == []


class TestDetectComponents:
    """Tests for detect_components."""

    def test_direct_command_invocation(self):
        """Test a slash prompt counts as invoking the command."""
        scenario = build_direct_scenarios(COMMAND)[0]

        detections = detect_components([], scenario)

        assert len(detections) == 1
        assert detections[0].tool_name == 'DirectInvocation'
        assert detections[0].component_name == 'deploy'

    def test_duplicates_collapsed(self):
        """Test a component detected twice is reported once."""
        scenario = build_direct_scenarios(COMMAND)[0]
        captures = [ToolCapture(name='SlashCommand', input={'command': '/test-plugin:deploy'})]

        detections = detect_components(captures, scenario)

        assert [d.tool_name for d in detections] == ['SlashCommand']


class TestEvaluateTrigger:
    """Tests for evaluate_trigger."""

    def test_expected_trigger_fires(self):
        """Test a positive scenario whose skill was loaded."""
        scenario = build_direct_scenarios(SKILL)[0]
        outcome = evaluate_trigger(
            scenario, [ToolCapture(name='Skill', input={'skill': 'hook-development'})]
        )
        assert outcome.triggered is True
        assert outcome.passed is True

    def test_expected_trigger_missing(self):
        """Test a positive scenario where another skill was loaded."""
        scenario = build_direct_scenarios(SKILL)[0]
        outcome = evaluate_trigger(scenario, [ToolCapture(name='Skill', input={'skill': 'other'})])
        assert outcome.triggered is False
        assert outcome.passed is False
        assert len(outcome.detections) == 1

    def test_negative_not_triggered(self):
        """Test a negative scenario that left the skill alone."""
        scenario = build_negative_scenarios(SKILL)[0]
        outcome = evaluate_trigger(scenario, [])
        assert outcome.triggered is False
        assert outcome.passed is True

    def test_negative_triggered(self):
        """Test a negative scenario that loaded the skill anyway."""
        scenario = build_negative_scenarios(SKILL)[0]
        outcome = evaluate_trigger(
            scenario, [ToolCapture(name='Skill', input={'skill': 'hook-development'})]
        )
        assert outcome.triggered is True
        assert outcome.passed is False

    def test_plugin_load_not_scored(self):
        """Test that the plugin load scenario gets no verdict."""
        assert evaluate_trigger(build_plugin_load_scenario('p'), []) is None
