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

"""Model pricing in USD per million tokens."""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class ModelPricing:
    """Input and output price per million tokens."""

    input: float
    output: float


MODEL_PRICING: Dict[str, ModelPricing] = {
    # Opus 4.5
    'claude-opus-4-5-20251101': ModelPricing(input=15.0, output=75.0),
    # Sonnet 4.5
    'claude-sonnet-4-5-20250929': ModelPricing(input=3.0, output=15.0),
    # Sonnet 4
    'claude-sonnet-4-20250514': ModelPricing(input=3.0, output=15.0),
    # Haiku 3.5
    'claude-haiku-3-5-20250929': ModelPricing(input=0.8, output=4.0),
}

# Sonnet rates; used for any model not in the table
DEFAULT_PRICING = ModelPricing(input=3.0, output=15.0)

MODEL_ALIASES: Dict[str, str] = {
    'claude-opus-4.5': 'claude-opus-4-5-20251101',
    'opus-4.5': 'claude-opus-4-5-20251101',
    'opus': 'claude-opus-4-5-20251101',
    'claude-sonnet-4.5': 'claude-sonnet-4-5-20250929',
    'sonnet-4.5': 'claude-sonnet-4-5-20250929',
    'claude-sonnet-4': 'claude-sonnet-4-20250514',
    'sonnet-4': 'claude-sonnet-4-20250514',
    'sonnet': 'claude-sonnet-4-5-20250929',
    'claude-haiku-3.5': 'claude-haiku-3-5-20250929',
    'haiku-3.5': 'claude-haiku-3-5-20250929',
    'haiku': 'claude-haiku-3-5-20250929',
}


def resolve_model_id(name: str) -> str:
    """Map a short model alias to its full identifier. Unknown names pass through."""
    return MODEL_ALIASES.get(name, name)


def get_model_pricing(model_id: str) -> ModelPricing:
    """Return pricing for a model, falling back to DEFAULT_PRICING."""
    return MODEL_PRICING.get(model_id, DEFAULT_PRICING)


def calculate_cost(model_id: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate the USD cost of a call.

    Args:
        model_id: Full model identifier
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens

    Returns:
        Unrounded cost in USD
    """
    pricing = get_model_pricing(model_id)
    return (input_tokens / 1_000_000) * pricing.input + (output_tokens / 1_000_000) * pricing.output


def format_cost(cost_usd: float) -> str:
    """Format a cost for display; sub-cent amounts keep four decimals."""
    if cost_usd < 0.01:
        return f'${cost_usd:.4f}'
    return f'${cost_usd:.2f}'
