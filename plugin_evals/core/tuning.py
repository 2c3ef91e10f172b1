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

"""Tuning parameters for the evaluation pipeline.

A resolved Tuning is always fully populated. Callers supply a partial mapping
(typically the ``tuning`` section of a YAML config) and resolve it once at the
boundary with resolve_tuning(); everything downstream reads plain attributes.
"""

import yaml
from dataclasses import dataclass, field, fields, replace
from loguru import logger
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union


@dataclass(frozen=True)
class TimeoutsConfig:
    """Per-call deadlines and backoff bounds, in milliseconds."""

    plugin_load_ms: int = 30000
    retry_initial_ms: int = 1000
    retry_max_ms: int = 30000
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for transient failures."""

    max_retries: int = 3
    backoff_multiplier: float = 2
    jitter_factor: float = 0.1
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TokenEstimatesConfig:
    """Token estimates used when actual usage is not reported."""

    output_per_scenario: int = 800
    transcript_prompt: int = 3000
    judge_output: int = 500
    input_per_turn: int = 500
    output_per_turn: int = 2000
    per_skill: int = 600
    per_agent: int = 800
    per_command: int = 300
    semantic_gen_max_tokens: int = 1000
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LimitsConfig:
    """Display and matching limits."""

    transcript_content_length: int = 500
    prompt_display_length: int = 80
    progress_bar_width: int = 20
    conflict_domain_part_min: int = 4
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchingConfig:
    """Batch dispatch settings.

    Attributes:
        safety_margin: Fraction of the spend ceiling a batch may plan to use
        max_concurrent: Upper bound on scenarios executing at once
    """

    safety_margin: float = 0.75
    max_concurrent: int = 10
    extra: Dict[str, Any] = field(default_factory=dict)


_SECTIONS = {
    'timeouts': TimeoutsConfig,
    'retry': RetryConfig,
    'token_estimates': TokenEstimatesConfig,
    'limits': LimitsConfig,
    'batching': BatchingConfig,
}


@dataclass(frozen=True)
class Tuning:
    """Fully resolved tuning tree."""

    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    token_estimates: TokenEstimatesConfig = field(default_factory=TokenEstimatesConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Return the tree as nested plain dictionaries, pass-through keys included."""
        result: Dict[str, Any] = {}
        for name in _SECTIONS:
            section = getattr(self, name)
            values = {f.name: getattr(section, f.name) for f in fields(section) if f.name != 'extra'}
            values.update(section.extra)
            result[name] = values
        result.update(self.extra)
        return result


DEFAULT_TUNING = Tuning()


def _merge_section(default_section: Any, overrides: Mapping[str, Any]) -> Any:
    known = {f.name for f in fields(default_section) if f.name != 'extra'}
    known_values = {key: value for key, value in overrides.items() if key in known}
    extra = dict(default_section.extra)
    extra.update({key: value for key, value in overrides.items() if key not in known})
    return replace(default_section, extra=extra, **known_values)


def resolve_tuning(partial: Optional[Union[Mapping[str, Any], Tuning]] = None) -> Tuning:
    """Merge a partial tuning mapping over the defaults.

    Each section is merged one level deep: keys present in the partial section
    replace the default leaf, all other leaves keep their default. Sections that
    are missing come straight from the defaults. Unknown keys are kept as-is so
    newer config files still resolve.

    Args:
        partial: Partial tuning mapping, an already-resolved Tuning, or None

    Returns:
        Fully populated Tuning
    """
    if partial is None:
        return DEFAULT_TUNING
    if isinstance(partial, Tuning):
        return partial

    resolved = {}
    for name in _SECTIONS:
        default_section = getattr(DEFAULT_TUNING, name)
        overrides = partial.get(name)
        if not overrides:
            resolved[name] = default_section
        else:
            resolved[name] = _merge_section(default_section, overrides)

    extra = {key: value for key, value in partial.items() if key not in _SECTIONS}
    return Tuning(extra=extra, **resolved)


def load_tuning_file(config_path: Union[str, Path]) -> Tuning:
    """Resolve the ``tuning`` section of a YAML config file.

    Args:
        config_path: Path to a YAML document; a missing ``tuning`` key means defaults

    Returns:
        Fully populated Tuning
    """
    path = Path(config_path)
    document = yaml.safe_load(path.read_text()) or {}
    if not isinstance(document, dict):
        raise ValueError(f'Config file {path} must contain a mapping at the top level')

    partial = document.get('tuning') or {}
    logger.debug(f'Loaded tuning overrides from {path}: {sorted(partial)}')
    return resolve_tuning(partial)
