"""Tests for model pricing."""

import pytest

from plugin_evals.core.pricing import (
    DEFAULT_PRICING,
    MODEL_PRICING,
    calculate_cost,
    format_cost,
    get_model_pricing,
    resolve_model_id,
)


ALL_MODELS = list(MODEL_PRICING) + ['some-unreleased-model']


class TestGetModelPricing:
    """Tests for pricing lookup."""

    def test_known_model(self):
        """Test exact-match lookup."""
        pricing = get_model_pricing('claude-opus-4-5-20251101')
        assert pricing.input == 15.0
        assert pricing.output == 75.0

    def test_unknown_model_uses_default(self):
        """Test that lookup never fails."""
        assert get_model_pricing('not-a-model') == DEFAULT_PRICING
        assert DEFAULT_PRICING.input == 3.0
        assert DEFAULT_PRICING.output == 15.0


class TestCalculateCost:
    """Tests for calculate_cost."""

    @pytest.mark.parametrize('model', ALL_MODELS)
    def test_zero_tokens_cost_nothing(self, model):
        """Test that zero tokens cost exactly zero."""
        assert calculate_cost(model, 0, 0) == 0

    @pytest.mark.parametrize('model', ALL_MODELS)
    def test_one_million_each(self, model):
        """Test that a million tokens each way costs input + output price."""
        pricing = get_model_pricing(model)
        assert calculate_cost(model, 1_000_000, 1_000_000) == pricing.input + pricing.output

    def test_no_rounding(self):
        """Test that small costs are not rounded."""
        assert calculate_cost('claude-sonnet-4-20250514', 1, 0) == pytest.approx(3e-6)


class TestFormatCost:
    """Tests for format_cost."""

    @pytest.mark.parametrize(
        'amount,expected',
        [
            (0.0, '$0.0000'),
            (0.0012, '$0.0012'),
            (0.00999, '$0.0100'),
            (0.01, '$0.01'),
            (1.234, '$1.23'),
            (12.5, '$12.50'),
        ],
    )
    def test_precision_depends_on_amount(self, amount, expected):
        """Test four decimals below one cent and two otherwise."""
        assert format_cost(amount) == expected


class TestResolveModelId:
    """Tests for model alias resolution."""

    def test_alias(self):
        """Test that aliases map to full identifiers."""
        assert resolve_model_id('sonnet-4') == 'claude-sonnet-4-20250514'
        assert resolve_model_id('haiku') == 'claude-haiku-3-5-20250929'

    def test_unknown_passes_through(self):
        """Test that unknown names are returned unchanged."""
        assert resolve_model_id('my-custom-model') == 'my-custom-model'
