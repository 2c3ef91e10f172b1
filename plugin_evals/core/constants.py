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

"""Configuration constants for the plugin evaluation pipeline.

Centralized location for all configurable values.

Environment variable overrides:
- PLUGIN_EVAL_GENERATION_MODEL: Model used to generate semantic variations
- PLUGIN_EVAL_EXECUTION_MODEL: Model the agent under test runs on
- PLUGIN_EVAL_AWS_REGION: Override default AWS region
- PLUGIN_EVAL_MAX_TURNS: Override default max conversation turns per scenario
- PLUGIN_EVAL_TIMEOUT_MS: Override default per-scenario timeout
- PLUGIN_EVAL_MAX_BUDGET_USD: Override default spend ceiling for a run
- PLUGIN_EVAL_TEMPERATURE: Override default model temperature
"""

import os


# Fallback values (used when environment variables are not set)
_FALLBACK_GENERATION_MODEL = 'claude-sonnet-4-5-20250929'
_FALLBACK_EXECUTION_MODEL = 'claude-sonnet-4-20250514'
_FALLBACK_AWS_REGION = 'us-east-1'
_FALLBACK_MAX_TURNS = 5
_FALLBACK_TIMEOUT_MS = 60000
_FALLBACK_MAX_BUDGET_USD = 10.0
_FALLBACK_TEMPERATURE = 0.0

# Model configuration (configurable via environment variables)
DEFAULT_GENERATION_MODEL = os.environ.get(
    'PLUGIN_EVAL_GENERATION_MODEL', _FALLBACK_GENERATION_MODEL
)
DEFAULT_EXECUTION_MODEL = os.environ.get('PLUGIN_EVAL_EXECUTION_MODEL', _FALLBACK_EXECUTION_MODEL)
DEFAULT_AWS_REGION = os.environ.get('PLUGIN_EVAL_AWS_REGION', _FALLBACK_AWS_REGION)
DEFAULT_TEMPERATURE = float(os.environ.get('PLUGIN_EVAL_TEMPERATURE', str(_FALLBACK_TEMPERATURE)))

# Execution configuration (configurable via environment variables)
DEFAULT_MAX_TURNS = int(os.environ.get('PLUGIN_EVAL_MAX_TURNS', str(_FALLBACK_MAX_TURNS)))
DEFAULT_TIMEOUT_MS = int(os.environ.get('PLUGIN_EVAL_TIMEOUT_MS', str(_FALLBACK_TIMEOUT_MS)))
DEFAULT_MAX_BUDGET_USD = float(
    os.environ.get('PLUGIN_EVAL_MAX_BUDGET_USD', str(_FALLBACK_MAX_BUDGET_USD))
)

# Component descriptions longer than this are cut when taken from the markdown body
DESCRIPTION_BODY_LIMIT = 500

# Semantic variation prompt

SEMANTIC_VARIATION_PROMPT = """Given this trigger phrase: "{trigger_phrase}"

The phrase was parsed as: action="{action}", object="{object}"{context_line}

Generate {num_variations} semantically equivalent phrases that should trigger the same behavior.
Focus on:
1. Synonyms: "create" -> "build", "make", "generate", "add"
2. Related concepts: "hook" -> "event handler", "callback", "interceptor"
3. Different sentence structures: "create a hook" -> "I need a hook created"
4. Informal variations: "create a hook" -> "hook me up with a hook", "need a hook"

Return ONLY a JSON array (no markdown):
[
  {{
    "original": "{trigger_phrase}",
    "variation": "semantically equivalent phrase",
    "variation_type": "synonym" | "related_concept" | "structure" | "informal",
    "explanation": "why this should trigger the same behavior"
  }}
]"""
