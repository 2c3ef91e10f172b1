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


"""Plugin evaluation pipeline.

- Tuning / resolve_tuning: fully populated configuration tree
- Pricing: per-model token prices and cost formatting
- Analyzer: skills, agents and commands parsed into component records
- VariationGenerator: LLM paraphrases of trigger phrases
- ScenarioExecutor: runs scenarios with deadlines, retries and budget checks
- Detector: scores captured tool calls against each scenario's expectation
- ProgressCallbacks: stage and scenario notifications
- PipelineOrchestrator: sequences the stages for one plugin
"""

# Configuration
from .tuning import Tuning, DEFAULT_TUNING, resolve_tuning, load_tuning_file
from .pricing import (
    ModelPricing,
    MODEL_PRICING,
    DEFAULT_PRICING,
    get_model_pricing,
    calculate_cost,
    format_cost,
    resolve_model_id,
)

# Errors
from .errors import (
    PluginEvalError,
    ParseError,
    TransientExecutionError,
    RetriesExhausted,
    CapabilityViolation,
    MalformedScenarioError,
    BudgetExceeded,
    CancellationError,
    PipelineInvariantError,
    ScenarioFailure,
    is_transient_error,
)

# Components and analysis
from .components import (
    ComponentType,
    VariationType,
    SemanticIntent,
    SemanticVariation,
    AgentExample,
    SkillComponent,
    AgentComponent,
    CommandComponent,
)
from .frontmatter import RawComponent, parse_frontmatter, read_component_file
from .analyzer import (
    analyze_agent,
    analyze_agent_record,
    analyze_agents,
    analyze_command,
    analyze_command_record,
    analyze_commands,
    analyze_skill,
    analyze_skill_record,
    analyze_skills,
    extract_agent_examples,
    extract_semantic_intents,
    extract_trigger_phrases,
    get_command_invocation,
    get_full_name,
    parse_argument_hint,
    parse_semantic_intent,
)

# Generation
from .llm_provider import LLMProvider, LLMResponse, BedrockLLMProvider
from .variation_generator import (
    GenerationSettings,
    VariationGenerator,
    LLMVariationGenerator,
    parse_semantic_variations,
    would_trigger_different_component,
    extract_component_keywords,
)
from .scenario import (
    ScenarioType,
    ScenarioPhase,
    SetupMessage,
    TestScenario,
    build_command_scenario,
    build_direct_scenarios,
    build_file_reference_scenario,
    build_negative_scenarios,
    build_semantic_scenarios,
    build_plugin_load_scenario,
)

# Execution
from .retry import RetryPolicy, calculate_delay, retry_async
from .agent_client import AgentClient, AgentTranscript, BedrockAgentClient, ToolCapture
from .detector import Detection, TriggerOutcome, detect_components, evaluate_trigger
from .executor import (
    ExecutionSettings,
    ExecutionError,
    ExecutionResult,
    ScenarioExecutor,
    check_batch_budget,
    estimate_execution_cost,
)
from .metrics import UsageAccumulator

# Progress, aggregation and orchestration
from .progress import (
    ProgressCallbacks,
    ProgressEmitter,
    console_progress,
    verbose_progress,
    json_progress,
    silent_progress,
    streaming_progress,
    create_progress_reporter,
)
from .aggregator import ComponentError, ComponentMetrics, EvaluationReport, ResultAggregator
from .pipeline import PipelineOrchestrator, PipelineStage, PluginSources, ALLOWED_TRANSITIONS


__all__ = [
    # Configuration
    'Tuning',
    'DEFAULT_TUNING',
    'resolve_tuning',
    'load_tuning_file',
    'ModelPricing',
    'MODEL_PRICING',
    'DEFAULT_PRICING',
    'get_model_pricing',
    'calculate_cost',
    'format_cost',
    'resolve_model_id',
    # Errors
    'PluginEvalError',
    'ParseError',
    'TransientExecutionError',
    'RetriesExhausted',
    'CapabilityViolation',
    'MalformedScenarioError',
    'BudgetExceeded',
    'CancellationError',
    'PipelineInvariantError',
    'ScenarioFailure',
    'is_transient_error',
    # Components and analysis
    'ComponentType',
    'VariationType',
    'SemanticIntent',
    'SemanticVariation',
    'AgentExample',
    'SkillComponent',
    'AgentComponent',
    'CommandComponent',
    'RawComponent',
    'parse_frontmatter',
    'read_component_file',
    'analyze_agent',
    'analyze_agent_record',
    'analyze_agents',
    'analyze_command',
    'analyze_command_record',
    'analyze_commands',
    'analyze_skill',
    'analyze_skill_record',
    'analyze_skills',
    'extract_agent_examples',
    'extract_semantic_intents',
    'extract_trigger_phrases',
    'get_command_invocation',
    'get_full_name',
    'parse_argument_hint',
    'parse_semantic_intent',
    # Generation
    'LLMProvider',
    'LLMResponse',
    'BedrockLLMProvider',
    'GenerationSettings',
    'VariationGenerator',
    'LLMVariationGenerator',
    'parse_semantic_variations',
    'would_trigger_different_component',
    'extract_component_keywords',
    'ScenarioType',
    'ScenarioPhase',
    'SetupMessage',
    'TestScenario',
    'build_command_scenario',
    'build_direct_scenarios',
    'build_file_reference_scenario',
    'build_negative_scenarios',
    'build_semantic_scenarios',
    'build_plugin_load_scenario',
    # Execution
    'RetryPolicy',
    'calculate_delay',
    'retry_async',
    'AgentClient',
    'AgentTranscript',
    'BedrockAgentClient',
    'ToolCapture',
    'Detection',
    'TriggerOutcome',
    'detect_components',
    'evaluate_trigger',
    'ExecutionSettings',
    'ExecutionError',
    'ExecutionResult',
    'ScenarioExecutor',
    'check_batch_budget',
    'estimate_execution_cost',
    'UsageAccumulator',
    # Progress, aggregation and orchestration
    'ProgressCallbacks',
    'ProgressEmitter',
    'console_progress',
    'verbose_progress',
    'json_progress',
    'silent_progress',
    'streaming_progress',
    'create_progress_reporter',
    'ComponentError',
    'ComponentMetrics',
    'EvaluationReport',
    'ResultAggregator',
    'PipelineOrchestrator',
    'PipelineStage',
    'PluginSources',
    'ALLOWED_TRANSITIONS',
]
