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

"""Default reader for plugin markdown files with YAML frontmatter."""

import re
import yaml
from .errors import ParseError
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple, Union


_FRONTMATTER_PATTERN = re.compile(r'\A---\s*\r?\n(.*?)\r?\n---\s*(?:\r?\n|\Z)', re.DOTALL)


@dataclass(frozen=True)
class RawComponent:
    """Unanalyzed contents of one component file."""

    path: str
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    body: str = ''


def parse_frontmatter(content: str, path: str = '<string>') -> Tuple[Dict[str, Any], str]:
    """Split markdown content into its frontmatter mapping and body.

    Args:
        content: Full file content
        path: Source path, used in error messages

    Returns:
        Tuple of (frontmatter, body). Content without frontmatter yields ({}, content).

    Raises:
        ParseError: If the frontmatter is not valid YAML or not a mapping
    """
    match = _FRONTMATTER_PATTERN.match(content)
    if not match:
        return {}, content

    try:
        frontmatter = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ParseError(path, f'invalid YAML frontmatter: {e}') from e

    if not isinstance(frontmatter, dict):
        raise ParseError(path, 'frontmatter must be a mapping')

    return frontmatter, content[match.end():]


def read_component_file(path: Union[str, Path]) -> RawComponent:
    """Read and split a component markdown file.

    Raises:
        ParseError: If the file cannot be read or its frontmatter is invalid
    """
    path_str = str(path)
    try:
        content = Path(path).read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(path_str, str(e)) from e

    frontmatter, body = parse_frontmatter(content, path_str)
    return RawComponent(path=path_str, frontmatter=frontmatter, body=body)
