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

"""Semantic variation generation.

Components are matched semantically, not by exact phrase: "build a hook" should
trigger a skill whose trigger phrase is "create a hook". The generator asks an
LLM for paraphrases of each intent so scenarios exercise that matching:
1. Synonyms: "create" -> "build", "make"
2. Related concepts: "hook" -> "event handler", "callback"
3. Different structures: "create a hook" -> "I need a hook created"
4. Informal wording: "create a hook" -> "need a hook"

Output is non-deterministic. Degenerate variations are dropped, never retried;
fewer variations than requested is an acceptable result.
"""

import json
import re
from .components import SemanticIntent, SemanticVariation, VariationType
from .constants import DEFAULT_GENERATION_MODEL, SEMANTIC_VARIATION_PROMPT
from .errors import CancellationError
from .llm_provider import LLMProvider
from .metrics import UsageAccumulator
from .pricing import resolve_model_id
from .retry import RetryPolicy, retry_async
from abc import ABC, abstractmethod
from dataclasses import dataclass
from loguru import logger
from typing import Any, Iterable, List, Optional


# Generic component kinds; a variation that swaps one for another tests the wrong component
COMPONENT_TYPE_WORDS = ('hook', 'skill', 'agent', 'command', 'mcp', 'plugin', 'marketplace')

_CODE_FENCE = re.compile(r'```(?:json)?\s*(.*?)```', re.DOTALL)


@dataclass(frozen=True)
class GenerationSettings:
    """Settings for semantic variation generation."""

    model: str = DEFAULT_GENERATION_MODEL
    num_variations: int = 3


class VariationGenerator(ABC):
    """Produces paraphrases of a semantic intent."""

    @abstractmethod
    async def generate_variations(
        self, intent: SemanticIntent, budget: int
    ) -> List[SemanticVariation]:
        """Generate variations for one intent.

        Args:
            intent: Intent to paraphrase
            budget: Maximum output tokens for the underlying call

        Returns:
            Variations, none identical to intent.raw_phrase
        """
        pass


def _is_degenerate(original: str, variation: str) -> bool:
    return not variation or variation == original or variation.casefold() == original.casefold()


def parse_semantic_variations(response: str, original_trigger: str) -> List[SemanticVariation]:
    """Parse an LLM response into variations of original_trigger.

    Accepts a bare JSON array or one wrapped in a markdown code fence. Entries
    with an unknown variation_type, or that repeat the original, are dropped.

    Args:
        response: Raw LLM response text
        original_trigger: Trigger phrase that was paraphrased

    Returns:
        Valid variations, possibly empty
    """
    text = response.strip()
    fenced = _CODE_FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f'Could not parse variations for "{original_trigger}": {e}')
        return []

    if not isinstance(parsed, list):
        logger.warning(f'Expected a JSON array of variations for "{original_trigger}"')
        return []

    variations = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        variation = str(item.get('variation', '')).strip()
        if _is_degenerate(original_trigger, variation):
            logger.debug(f'Dropping degenerate variation of "{original_trigger}": {variation!r}')
            continue
        try:
            variation_type = VariationType(item.get('variation_type'))
        except ValueError:
            logger.debug(f'Dropping variation with unknown type: {item.get("variation_type")!r}')
            continue
        variations.append(
            SemanticVariation(
                original_trigger=original_trigger,
                variation=variation,
                variation_type=variation_type,
                explanation=str(item.get('explanation', '')),
            )
        )
    return variations


class LLMVariationGenerator(VariationGenerator):
    """Variation generator backed by an LLM provider."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str = DEFAULT_GENERATION_MODEL,
        num_variations: int = 3,
        retry_policy: Optional[RetryPolicy] = None,
        usage: Optional[UsageAccumulator] = None,
    ):
        """Initialize the generator.

        Args:
            provider: LLM provider used for generation
            model: Model name or alias
            num_variations: Variations requested per intent
            retry_policy: Backoff for transient provider errors
            usage: Accumulator that receives token usage of each call
        """
        self.provider = provider
        self.model = resolve_model_id(model)
        self.num_variations = num_variations
        self.retry_policy = retry_policy or RetryPolicy()
        self.usage = usage

    @classmethod
    def from_settings(
        cls,
        provider: LLMProvider,
        settings: GenerationSettings,
        retry_policy: Optional[RetryPolicy] = None,
        usage: Optional[UsageAccumulator] = None,
    ) -> 'LLMVariationGenerator':
        return cls(provider, settings.model, settings.num_variations, retry_policy, usage)

    def build_prompt(self, intent: SemanticIntent) -> str:
        context_line = f', context="{intent.context}"' if intent.context else ''
        return SEMANTIC_VARIATION_PROMPT.format(
            trigger_phrase=intent.raw_phrase,
            action=intent.action,
            object=intent.object,
            context_line=context_line,
            num_variations=self.num_variations,
        )

    async def generate_variations(
        self, intent: SemanticIntent, budget: int
    ) -> List[SemanticVariation]:
        """Generate variations, returning [] when the provider keeps failing."""
        prompt = self.build_prompt(intent)

        try:
            response = await retry_async(
                lambda: self.provider.generate(prompt, self.model, max_tokens=budget),
                self.retry_policy,
            )
        except CancellationError:
            raise
        except Exception as e:
            logger.warning(f'Failed to generate semantic variations for "{intent.raw_phrase}": {e}')
            return []

        if self.usage is not None:
            await self.usage.record(self.model, response.input_tokens, response.output_tokens)

        variations = parse_semantic_variations(response.text, intent.raw_phrase)
        logger.debug(f'Generated {len(variations)} variation(s) for "{intent.raw_phrase}"')
        return variations


def would_trigger_different_component(
    original: str, variation: str, component_keywords: Iterable[str]
) -> bool:
    """Check whether a variation drifts toward a different component.

    Args:
        original: Original trigger phrase
        variation: Generated variation
        component_keywords: Names and name parts of every component in the plugin

    Returns:
        True if the variation should be filtered out
    """
    original_lower = original.lower()
    variation_lower = variation.lower()

    original_kind = next((w for w in original_lower.split() if w in COMPONENT_TYPE_WORDS), None)
    if original_kind is None:
        return False

    variation_kind = next((w for w in variation_lower.split() if w in COMPONENT_TYPE_WORDS), None)
    if variation_kind and variation_kind != original_kind:
        return True

    for keyword in component_keywords:
        keyword_lower = keyword.lower()
        if keyword_lower in variation_lower and keyword_lower not in original_lower:
            return True

    return False


def extract_component_keywords(components: Iterable[Any], min_part_length: int = 4) -> List[str]:
    """Collect component names and their hyphen-separated parts.

    Args:
        components: Skill, agent and command components
        min_part_length: Shortest name part kept as a keyword

    Returns:
        Keywords in first-seen order
    """
    keywords: List[str] = []
    for component in components:
        candidates = [component.name] + [
            part for part in component.name.split('-') if len(part) >= min_part_length
        ]
        for keyword in candidates:
            if keyword not in keywords:
                keywords.append(keyword)
    return keywords
