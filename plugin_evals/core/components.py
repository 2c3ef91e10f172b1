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

"""Component records parsed from plugin files.

Records are immutable snapshots. The one permitted change after creation is
attaching semantic variations, which returns a new record.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional


class VariationType(str, Enum):
    """How a semantic variation departs from its trigger phrase."""

    SYNONYM = 'synonym'
    RELATED_CONCEPT = 'related_concept'
    STRUCTURE = 'structure'
    INFORMAL = 'informal'


class ComponentType(str, Enum):
    """Kind of plugin component under test."""

    SKILL = 'skill'
    AGENT = 'agent'
    COMMAND = 'command'
    PLUGIN = 'plugin'


@dataclass(frozen=True)
class SemanticIntent:
    """Structured reading of one trigger phrase.

    Attributes:
        action: Action verb, e.g. "create" or "set up"
        object: Object of the action, e.g. "hook" or "mcp server"
        context: Optional trailing clause, e.g. "for validation"
        raw_phrase: The phrase exactly as it appears in the description
    """

    action: str
    object: str
    raw_phrase: str
    context: Optional[str] = None


@dataclass(frozen=True)
class SemanticVariation:
    """A paraphrase of a trigger phrase that should trigger the same component."""

    original_trigger: str
    variation: str
    variation_type: VariationType
    explanation: str = ''


@dataclass(frozen=True)
class AgentExample:
    """One <example> block from an agent description."""

    user_message: str
    context: str = ''
    expected_response: str = ''
    commentary: str = ''


@dataclass(frozen=True)
class SkillComponent:
    """Parsed SKILL.md."""

    name: str
    path: str
    description: str
    trigger_phrases: List[str] = field(default_factory=list)
    semantic_intents: List[SemanticIntent] = field(default_factory=list)
    allowed_tools: Optional[List[str]] = None
    semantic_variations: List[SemanticVariation] = field(default_factory=list)

    component_type = ComponentType.SKILL

    @property
    def permitted_tools(self) -> Optional[List[str]]:
        return self.allowed_tools

    def with_variations(self, variations: Iterable[SemanticVariation]) -> 'SkillComponent':
        """Return a copy with variations appended."""
        return replace(self, semantic_variations=self.semantic_variations + list(variations))


@dataclass(frozen=True)
class AgentComponent:
    """Parsed agent markdown file."""

    name: str
    path: str
    description: str
    model: str = 'inherit'
    tools: Optional[List[str]] = None
    trigger_phrases: List[str] = field(default_factory=list)
    semantic_intents: List[SemanticIntent] = field(default_factory=list)
    example_triggers: List[AgentExample] = field(default_factory=list)
    semantic_variations: List[SemanticVariation] = field(default_factory=list)

    component_type = ComponentType.AGENT

    @property
    def permitted_tools(self) -> Optional[List[str]]:
        return self.tools

    def with_variations(self, variations: Iterable[SemanticVariation]) -> 'AgentComponent':
        """Return a copy with variations appended."""
        return replace(self, semantic_variations=self.semantic_variations + list(variations))


@dataclass(frozen=True)
class CommandComponent:
    """Parsed slash-command markdown file.

    Attributes:
        namespace: Subdirectory under commands/ ("" at the top level)
        full_name: "namespace/name", or just "name" without a namespace
        arguments: Argument names parsed from argument_hint
    """

    name: str
    path: str
    plugin_prefix: str
    namespace: str
    full_name: str
    description: str
    argument_hint: Optional[str] = None
    arguments: List[str] = field(default_factory=list)
    allowed_tools: Optional[List[str]] = None
    disable_model_invocation: bool = False

    component_type = ComponentType.COMMAND

    @property
    def permitted_tools(self) -> Optional[List[str]]:
        return self.allowed_tools

    @property
    def trigger_phrases(self) -> List[str]:
        return []

    @property
    def semantic_intents(self) -> List[SemanticIntent]:
        return []
