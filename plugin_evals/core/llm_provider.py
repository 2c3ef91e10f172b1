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

"""LLM provider abstraction used by the variation generator and the agent client.

This module provides a unified interface for LLM interactions: simple text
generation (semantic variations) and multi-turn conversations (agent under test).
"""

import asyncio
import boto3
from .constants import DEFAULT_AWS_REGION, DEFAULT_TEMPERATURE
from .pricing import resolve_model_id
from abc import ABC, abstractmethod
from dataclasses import dataclass
from loguru import logger
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class LLMResponse:
    """Text returned by a provider plus the token usage it reported."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0


def to_bedrock_model_id(model: str) -> str:
    """Return the Bedrock inference profile for a model name or alias.

    Identifiers that already name a Bedrock model are returned unchanged.
    """
    model_id = resolve_model_id(model)
    if 'anthropic.' in model_id or model_id.startswith('arn:'):
        return model_id
    return f'us.anthropic.{model_id}-v1:0'


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    Supports both simple text generation (for variation generation) and
    conversational interactions (for the agent under test).
    """

    @abstractmethod
    async def generate(self, prompt: str, model: str, max_tokens: Optional[int] = None) -> LLMResponse:
        """Generate text from a simple prompt.

        Args:
            prompt: Text prompt for generation
            model: Model name or alias
            max_tokens: Output token cap for the call

        Returns:
            LLMResponse with text and usage
        """
        pass

    @abstractmethod
    async def converse(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        system: Optional[str] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        """Conduct one conversation turn.

        Args:
            messages: List of conversation messages
            model: Model name or alias
            system: Optional system prompt
            **kwargs: Additional provider-specific parameters

        Returns:
            Response dictionary from the LLM
        """
        pass


class BedrockLLMProvider(LLMProvider):
    """AWS Bedrock LLM provider implementation."""

    def __init__(self, bedrock_client: Any, temperature: Optional[float] = None):
        """Initialize Bedrock LLM provider.

        Args:
            bedrock_client: Boto3 Bedrock Runtime client
            temperature: Temperature (defaults to framework default)
        """
        self.bedrock_client = bedrock_client
        self.temperature = temperature if temperature is not None else DEFAULT_TEMPERATURE

    async def generate(self, prompt: str, model: str, max_tokens: Optional[int] = None) -> LLMResponse:
        """Generate text using AWS Bedrock."""
        inference_config: Dict[str, Any] = {'temperature': self.temperature}
        if max_tokens is not None:
            inference_config['maxTokens'] = max_tokens

        response = await self.converse(
            [{'role': 'user', 'content': [{'text': prompt}]}],
            model=model,
            inferenceConfig=inference_config,
        )

        usage = response.get('usage', {})
        text = ''.join(
            block.get('text', '') for block in response['output']['message']['content']
        )
        return LLMResponse(
            text=text,
            input_tokens=usage.get('inputTokens', 0),
            output_tokens=usage.get('outputTokens', 0),
        )

    async def converse(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        system: Optional[str] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        """Conduct conversation using AWS Bedrock."""
        converse_params: Dict[str, Any] = {
            'modelId': to_bedrock_model_id(model),
            'messages': messages,
            'inferenceConfig': {'temperature': self.temperature},
        }

        if system:
            converse_params['system'] = [{'text': system}]

        # Allow overriding with additional kwargs
        converse_params.update(kwargs)

        # boto3 is synchronous; keep the event loop free for other scenarios
        return await asyncio.to_thread(self.bedrock_client.converse, **converse_params)

    @classmethod
    def from_region(
        cls, region_name: str = DEFAULT_AWS_REGION, temperature: Optional[float] = None
    ) -> 'BedrockLLMProvider':
        """Create a provider with a new bedrock-runtime client.

        Args:
            region_name: AWS region of the Bedrock endpoint
            temperature: Temperature (defaults to framework default)
        """
        bedrock_client = boto3.client(service_name='bedrock-runtime', region_name=region_name)
        logger.debug(f'Bedrock client initialized in {region_name}')
        return cls(bedrock_client, temperature)
