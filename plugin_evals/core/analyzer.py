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

"""Component analysis for skills, agents and commands.

Turns raw component records into typed components:
- Trigger phrases: quoted spans in a description
- Semantic intents: (action, object, context) read from each trigger phrase
- Commands: namespaced names, argument hints and invocation strings
- Agents: <example> blocks from the description and body

Extraction rules are heuristic by nature. A phrase that yields no action/object
pair is kept as a trigger phrase and simply produces no intent.
"""

import re
from .components import (
    AgentComponent,
    AgentExample,
    CommandComponent,
    SemanticIntent,
    SkillComponent,
)
from .constants import DESCRIPTION_BODY_LIMIT
from .errors import ParseError
from .frontmatter import RawComponent, read_component_file
from loguru import logger
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union


ComponentReader = Callable[[Union[str, Path]], RawComponent]

# Double quotes, curly quotes, or single quotes that are not apostrophes
_QUOTED_SPAN = re.compile(r'"([^"\n]+)"|“([^”\n]+)”|(?<!\w)\'([^\'\n]+)\'(?!\w)')
_MIN_PHRASE_LENGTH = 3
_MAX_PHRASE_LENGTH = 80

ACTION_VERBS = {
    'add',
    'analyze',
    'build',
    'change',
    'check',
    'configure',
    'convert',
    'create',
    'debug',
    'define',
    'delete',
    'deploy',
    'develop',
    'document',
    'explain',
    'find',
    'fix',
    'format',
    'generate',
    'implement',
    'install',
    'lint',
    'make',
    'migrate',
    'modify',
    'optimize',
    'refactor',
    'remove',
    'review',
    'run',
    'scaffold',
    'search',
    'set',
    'setup',
    'test',
    'update',
    'validate',
    'write',
}

# Multi-word verbs are matched before single words
PHRASAL_VERBS = {('set', 'up'), ('clean', 'up'), ('look', 'up'), ('write', 'up')}

CONTEXT_PREPOSITIONS = {'for', 'in', 'when', 'with', 'to', 'on', 'from', 'using'}

DETERMINERS = {'a', 'an', 'the', 'my', 'our', 'your', 'some', 'this', 'that', 'these', 'those'}

# Leading words skipped when no known action verb is present
FILLER_WORDS = {'i', 'we', 'you', 'please', 'can', 'could', 'would', 'help', 'me', 'us', "let's", 'just'}

_EDGE_PUNCTUATION = '.,!?;:()[]{}'


def extract_trigger_phrases(description: str) -> List[str]:
    """Extract quoted trigger phrases from a description.

    A phrase is the trimmed content of a quoted span, 3-80 characters long and
    starting with a letter. Duplicates are removed, first occurrence wins.

    Args:
        description: Component description text

    Returns:
        Trigger phrases in order of appearance
    """
    phrases: List[str] = []
    for match in _QUOTED_SPAN.finditer(description):
        span = next(group for group in match.groups() if group is not None)
        phrase = span.strip()
        if not _MIN_PHRASE_LENGTH <= len(phrase) <= _MAX_PHRASE_LENGTH:
            continue
        if not phrase[0].isalpha():
            continue
        if phrase not in phrases:
            phrases.append(phrase)
    return phrases


def _tokenize(phrase: str) -> List[str]:
    words = [word.strip(_EDGE_PUNCTUATION).lower() for word in phrase.split()]
    return [word for word in words if word]


def _find_action(words: Sequence[str]) -> Tuple[Optional[str], int]:
    """Return (action, index just past the action) or (None, -1)."""
    for i, word in enumerate(words):
        if i + 1 < len(words) and (word, words[i + 1]) in PHRASAL_VERBS:
            return f'{word} {words[i + 1]}', i + 2
        if word in ACTION_VERBS:
            return word, i + 1

    content = [i for i, word in enumerate(words) if word not in FILLER_WORDS]
    if len(words) >= 2 and content:
        first = content[0]
        return words[first], first + 1
    return None, -1


def parse_semantic_intent(phrase: str) -> Optional[SemanticIntent]:
    """Read one trigger phrase as an (action, object, context) triple.

    Args:
        phrase: Trigger phrase, e.g. "create a hook for validation"

    Returns:
        SemanticIntent, or None when no action/object pair can be found
    """
    words = _tokenize(phrase)
    action, start = _find_action(words)
    if not action:
        return None

    rest = words[start:]
    context_at = next((i for i, word in enumerate(rest) if word in CONTEXT_PREPOSITIONS), len(rest))
    object_words = [word for word in rest[:context_at] if word not in DETERMINERS]
    if not object_words:
        return None

    context = ' '.join(rest[context_at:]) or None
    return SemanticIntent(
        action=action,
        object=' '.join(object_words),
        context=context,
        raw_phrase=phrase,
    )


def extract_semantic_intents(trigger_phrases: Iterable[str]) -> List[SemanticIntent]:
    """Parse intents from trigger phrases, dropping phrases without structure."""
    intents = []
    for phrase in trigger_phrases:
        intent = parse_semantic_intent(phrase)
        if intent is None:
            logger.debug(f'No action/object found in trigger phrase: {phrase!r}')
            continue
        intents.append(intent)
    return intents


def parse_argument_hint(argument_hint: Optional[str]) -> List[str]:
    """Return argument names from a hint such as "<required> [optional]"."""
    if not argument_hint:
        return []
    return [arg.strip() for arg in re.findall(r'[<\[]([^\]>]+)[>\]]', argument_hint) if arg.strip()]


def get_full_name(name: str, namespace: str) -> str:
    """Return "namespace/name", or "name" when there is no namespace."""
    return f'{namespace}/{name}' if namespace else name


def get_command_invocation(command: CommandComponent) -> str:
    """Return the slash-command invocation, e.g. "/my-plugin:advanced/deploy"."""
    return f'/{command.plugin_prefix}:{command.full_name}'


def _get_str(record: RawComponent, *keys: str) -> Optional[str]:
    for key in keys:
        value = record.frontmatter.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ParseError(record.path, f"'{key}' must be a string, got {type(value).__name__}")
        return value
    return None


def _get_flag(record: RawComponent, *keys: str) -> bool:
    for key in keys:
        if key in record.frontmatter:
            return record.frontmatter[key] is True
    return False


def _get_tools(record: RawComponent, key: str) -> Optional[List[str]]:
    raw = record.frontmatter.get(key)
    if raw is None:
        return None
    if isinstance(raw, str):
        return [tool.strip() for tool in raw.split(',') if tool.strip()]
    if isinstance(raw, list):
        return [tool for tool in raw if isinstance(tool, str)]
    raise ParseError(record.path, f"'{key}' must be a string or a list, got {type(raw).__name__}")


def _get_description(record: RawComponent, fallback: str) -> str:
    description = _get_str(record, 'description')
    return description if description is not None else fallback


def analyze_command_record(
    record: RawComponent, namespace: str, plugin_prefix: str
) -> CommandComponent:
    """Analyze an already-read command file.

    Args:
        record: Raw command record
        namespace: Namespace from the directory structure ("" for top level)
        plugin_prefix: Plugin name used in the invocation

    Returns:
        CommandComponent

    Raises:
        ParseError: If a frontmatter field has an unusable type
    """
    name = _get_str(record, 'name') or Path(record.path).stem
    argument_hint = _get_str(record, 'argument-hint', 'argument_hint')

    return CommandComponent(
        name=name,
        path=record.path,
        plugin_prefix=plugin_prefix,
        namespace=namespace,
        full_name=get_full_name(name, namespace),
        description=_get_description(record, record.body[:DESCRIPTION_BODY_LIMIT]),
        argument_hint=argument_hint,
        arguments=parse_argument_hint(argument_hint),
        allowed_tools=_get_tools(record, 'allowed-tools'),
        disable_model_invocation=_get_flag(
            record, 'disable-model-invocation', 'disable_model_invocation'
        ),
    )


def analyze_command(
    command_path: Union[str, Path],
    namespace: str,
    plugin_prefix: str,
    reader: ComponentReader = read_component_file,
) -> CommandComponent:
    """Analyze a command file."""
    return analyze_command_record(reader(command_path), namespace, plugin_prefix)


def analyze_commands(
    command_files: Iterable[Mapping[str, Any]],
    plugin_prefix: str,
    reader: ComponentReader = read_component_file,
) -> List[CommandComponent]:
    """Analyze commands in input order.

    Args:
        command_files: Mappings with 'path' and 'namespace' keys
        plugin_prefix: Plugin name used in invocations
        reader: Component file reader

    Raises:
        ParseError: For the first file that cannot be analyzed
    """
    return [
        analyze_command(entry['path'], entry.get('namespace', ''), plugin_prefix, reader)
        for entry in command_files
    ]


def analyze_skill_record(record: RawComponent, default_name: str) -> SkillComponent:
    """Analyze an already-read SKILL.md."""
    name = _get_str(record, 'name') or default_name
    description = _get_description(record, record.body[:DESCRIPTION_BODY_LIMIT])
    trigger_phrases = extract_trigger_phrases(description)

    return SkillComponent(
        name=name,
        path=record.path,
        description=description,
        trigger_phrases=trigger_phrases,
        semantic_intents=extract_semantic_intents(trigger_phrases),
        allowed_tools=_get_tools(record, 'allowed-tools'),
    )


def analyze_skill(
    skill_dir: Union[str, Path], reader: ComponentReader = read_component_file
) -> SkillComponent:
    """Analyze a skill directory containing SKILL.md."""
    skill_dir = Path(skill_dir)
    return analyze_skill_record(reader(skill_dir / 'SKILL.md'), skill_dir.name)


def analyze_skills(
    skill_dirs: Iterable[Union[str, Path]], reader: ComponentReader = read_component_file
) -> List[SkillComponent]:
    return [analyze_skill(skill_dir, reader) for skill_dir in skill_dirs]


def analyze_agent_record(record: RawComponent) -> AgentComponent:
    """Analyze an already-read agent file."""
    name = _get_str(record, 'name') or Path(record.path).stem
    description = _get_description(record, record.body)
    trigger_phrases = extract_trigger_phrases(description)

    return AgentComponent(
        name=name,
        path=record.path,
        description=description,
        model=_get_str(record, 'model') or 'inherit',
        tools=_get_tools(record, 'tools'),
        trigger_phrases=trigger_phrases,
        semantic_intents=extract_semantic_intents(trigger_phrases),
        example_triggers=extract_agent_examples(f'{description}\n{record.body}'),
    )


def analyze_agent(
    agent_path: Union[str, Path], reader: ComponentReader = read_component_file
) -> AgentComponent:
    """Analyze an agent markdown file."""
    return analyze_agent_record(reader(agent_path))


def analyze_agents(
    agent_paths: Iterable[Union[str, Path]], reader: ComponentReader = read_component_file
) -> List[AgentComponent]:
    return [analyze_agent(path, reader) for path in agent_paths]


_EXAMPLE_BLOCK = re.compile(r'<example>.*?</example>', re.IGNORECASE | re.DOTALL)
_CONTEXT = re.compile(r'Context:\s*(.*?)(?=\nuser:)', re.IGNORECASE | re.DOTALL)
_USER = re.compile(r'user:\s*["\']?(.*?)["\']?\s*(?=\nassistant:)', re.IGNORECASE | re.DOTALL)
_ASSISTANT = re.compile(
    r'assistant:\s*["\']?(.*?)["\']?\s*(?=\n<commentary>|</example>)', re.IGNORECASE | re.DOTALL
)
_COMMENTARY = re.compile(r'<commentary>(.*?)</commentary>', re.IGNORECASE | re.DOTALL)


def _search(pattern: 're.Pattern[str]', block: str) -> str:
    match = pattern.search(block)
    return match.group(1).strip() if match else ''


def _parse_example_with_regex(block: str) -> Optional[AgentExample]:
    user_message = _search(_USER, block)
    if not user_message:
        return None
    return AgentExample(
        context=_search(_CONTEXT, block),
        user_message=user_message,
        expected_response=_search(_ASSISTANT, block),
        commentary=_search(_COMMENTARY, block),
    )


def _strip_quotes(text: str) -> str:
    return re.sub(r'^["\']|["\']$', '', text)


def _parse_example_by_lines(block: str) -> Optional[AgentExample]:
    """Fallback for blocks the regexes miss, e.g. when sections share a line."""
    parts: Dict[str, List[str]] = {'context': [], 'user': [], 'assistant': [], 'commentary': []}
    section = None

    for line in block.splitlines():
        stripped = line.strip()
        lowered = stripped.lower()
        if lowered.startswith('context:'):
            section, content = 'context', stripped[len('context:'):].strip()
        elif lowered.startswith('user:'):
            section, content = 'user', _strip_quotes(stripped[len('user:'):].strip())
        elif lowered.startswith('assistant:'):
            section, content = 'assistant', _strip_quotes(stripped[len('assistant:'):].strip())
        elif lowered == '<commentary>':
            section, content = 'commentary', ''
        elif lowered in ('</commentary>', '</example>'):
            section, content = None, ''
        elif section is not None and lowered != '<example>':
            content = stripped
        else:
            continue

        if section is not None and content:
            parts[section].append(content)

    user_message = ' '.join(parts['user']).strip()
    if not user_message:
        return None
    return AgentExample(
        context=' '.join(parts['context']).strip(),
        user_message=user_message,
        expected_response=' '.join(parts['assistant']).strip(),
        commentary=' '.join(parts['commentary']).strip(),
    )


def extract_agent_examples(text: str) -> List[AgentExample]:
    """Extract <example> blocks from agent description text.

    Args:
        text: Description and body of an agent file

    Returns:
        Parsed examples; blocks without a user message are skipped with a warning
    """
    examples = []
    for block in _EXAMPLE_BLOCK.findall(text):
        example = _parse_example_with_regex(block) or _parse_example_by_lines(block)
        if example is None:
            logger.warning(f'Could not parse example block, skipping: {block[:100]}...')
            continue
        if example not in examples:
            examples.append(example)
    return examples
