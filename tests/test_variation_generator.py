"""Tests for semantic variation generation."""

import json

import pytest

from plugin_evals.core.components import SemanticIntent, SkillComponent, VariationType
from plugin_evals.core.errors import TransientExecutionError
from plugin_evals.core.llm_provider import LLMResponse
from plugin_evals.core.metrics import UsageAccumulator
from plugin_evals.core.retry import RetryPolicy
from plugin_evals.core.variation_generator import (
    GenerationSettings,
    LLMVariationGenerator,
    extract_component_keywords,
    parse_semantic_variations,
    would_trigger_different_component,
)

from tests.conftest import StubProvider


INTENT = SemanticIntent(action='create', object='hook', raw_phrase='create a hook')


def _variations_json(*items):
    return json.dumps(
        [
            {'original': 'create a hook', 'variation': v, 'variation_type': t, 'explanation': 'x'}
            for v, t in items
        ]
    )


class TestParseSemanticVariations:
    """Tests for parse_semantic_variations."""

    def test_valid_array(self):
        """Test a clean JSON response."""
        response = _variations_json(('build a hook', 'synonym'), ('need a hook', 'informal'))
        variations = parse_semantic_variations(response, 'create a hook')

        assert [v.variation for v in variations] == ['build a hook', 'need a hook']
        assert variations[0].variation_type == VariationType.SYNONYM
        assert all(v.original_trigger == 'create a hook' for v in variations)

    def test_code_fence(self):
        """Test a response wrapped in a markdown fence."""
        response = '```json\n' + _variations_json(('make a hook', 'synonym')) + '\n```'
        assert len(parse_semantic_variations(response, 'create a hook')) == 1

    def test_degenerate_variations_dropped(self):
        """Test that identical, case-only and empty variations are discarded."""
        response = _variations_json(
            ('create a hook', 'synonym'),
            ('Create A Hook', 'structure'),
            ('', 'informal'),
            ('set up a hook', 'synonym'),
        )
        variations = parse_semantic_variations(response, 'create a hook')
        assert [v.variation for v in variations] == ['set up a hook']

    def test_unknown_type_dropped(self):
        """Test that an unknown variation_type is discarded."""
        response = _variations_json(('build a hook', 'antonym'))
        assert parse_semantic_variations(response, 'create a hook') == []

    @pytest.mark.parametrize('response', ['not json', '{"variation": "x"}', ''])
    def test_malformed_output_yields_empty(self, response):
        """Test malformed responses."""
        assert parse_semantic_variations(response, 'create a hook') == []


class TestLLMVariationGenerator:
    """Tests for LLMVariationGenerator."""

    @pytest.mark.asyncio
    async def test_requests_budget_and_records_usage(self):
        """Test that the budget is passed as max_tokens and usage is recorded."""
        provider = StubProvider([_variations_json(('build a hook', 'synonym'))])
        usage = UsageAccumulator()
        generator = LLMVariationGenerator(provider, model='sonnet-4', usage=usage)

        variations = await generator.generate_variations(INTENT, 1000)

        assert len(variations) == 1
        assert provider.max_tokens == [1000]
        assert 'create a hook' in provider.prompts[0]
        assert usage.input_tokens == 100
        assert usage.output_tokens == 50
        assert usage.call_count == 1

    @pytest.mark.asyncio
    async def test_never_returns_original(self):
        """Test that no variation equals the original trigger across responses."""
        responses = [
            _variations_json(('create a hook', 'synonym'), ('build a hook', 'synonym')),
            _variations_json(('create a hook', 'informal')),
            _variations_json(('make me a hook', 'informal'), ('create a hook', 'structure')),
        ]
        generator = LLMVariationGenerator(StubProvider(responses))

        for _ in responses:
            for variation in await generator.generate_variations(INTENT, 500):
                assert variation.variation != variation.original_trigger

    @pytest.mark.asyncio
    async def test_provider_failure_yields_empty(self):
        """Test that a failing provider degrades to no variations."""
        provider = StubProvider([ValueError('bad request')])
        generator = LLMVariationGenerator(provider)

        assert await generator.generate_variations(INTENT, 500) == []

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        """Test that a transient provider error is retried."""
        provider = StubProvider(
            [TransientExecutionError('throttled'), _variations_json(('build a hook', 'synonym'))]
        )
        policy = RetryPolicy(max_retries=3, initial_delay_ms=0, max_delay_ms=0, jitter_factor=0)
        generator = LLMVariationGenerator(provider, retry_policy=policy)

        variations = await generator.generate_variations(INTENT, 500)

        assert [v.variation for v in variations] == ['build a hook']
        assert len(provider.prompts) == 2

    @pytest.mark.asyncio
    async def test_explicit_llm_response(self):
        """Test a provider that returns an LLMResponse directly."""
        provider = StubProvider([LLMResponse(text='[]', input_tokens=1, output_tokens=1)])
        generator = LLMVariationGenerator(provider)
        assert await generator.generate_variations(INTENT, 500) == []

    def test_prompt_includes_context(self):
        """Test the prompt for an intent with context."""
        intent = SemanticIntent(
            action='create', object='hook', raw_phrase='create a hook for bash', context='for bash'
        )
        generator = LLMVariationGenerator.from_settings(
            StubProvider(), GenerationSettings(num_variations=5)
        )
        prompt = generator.build_prompt(intent)

        assert 'context="for bash"' in prompt
        assert 'Generate 5 semantically equivalent phrases' in prompt


class TestComponentDrift:
    """Tests for filtering variations that target other components."""

    def test_component_kind_swap(self):
        """Test a variation that swaps hook for skill."""
        assert would_trigger_different_component('create a hook', 'create a skill', [])

    def test_other_component_name(self):
        """Test a variation that names another component."""
        keywords = ['code-reviewer', 'reviewer']
        assert would_trigger_different_component('create a hook', 'hook for the reviewer', keywords)

    def test_plain_paraphrase_kept(self):
        """Test a safe paraphrase."""
        assert not would_trigger_different_component('create a hook', 'build a hook', ['reviewer'])

    def test_original_without_kind_word(self):
        """Test that phrases without a component kind are never filtered."""
        assert not would_trigger_different_component('review my code', 'create a skill', [])

    def test_keywords(self):
        """Test keyword extraction from component names."""
        skill = SkillComponent(name='hook-development', path='p', description='d')
        keywords = extract_component_keywords([skill], min_part_length=5)
        assert keywords == ['hook-development', 'development']
