"""
Structural classification of form fields.

Decides whether a field holds one global value, a global set of values, or a
value inside a repeating section row. Rules are applied in priority order:

1. Flat survey guard (referral source, consent, availability ...) is never sectional
2. Multi-select of set nouns (skills, tools ...) is an atomic set
3. Base keys already proven to repeat stay SECTION_REPEATER
4. Sectional scoring and tiers decide the rest
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ...models import FieldDescriptor, IndexSource, InstanceType, Scope
from ...patterns import (
    ATOMIC_SET_PATTERN,
    FLAT_SURVEY_PATTERN,
    PROFILE_QUESTION_PATTERN,
    SECTION_KEYWORD_PATTERN,
)
from ..keys.generator import SemanticKeyGenerator
from ..keys.vocabulary import is_global_fact
from .registry import RepeaterRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Classification:
    instance_type: InstanceType
    scope: Scope


class FieldClassifier:
    def __init__(
        self,
        registry: Optional[RepeaterRegistry] = None,
        key_generator: Optional[SemanticKeyGenerator] = None,
        *,
        section_score_threshold: int = 2,
        structural_signal_threshold: int = 2,
        repeat_threshold: int = 2,
        max_field_index: int = 50,
    ) -> None:
        self.registry = registry if registry is not None else RepeaterRegistry()
        self.key_generator = key_generator or SemanticKeyGenerator()
        self.section_score_threshold = section_score_threshold
        self.structural_signal_threshold = structural_signal_threshold
        self.repeat_threshold = repeat_threshold
        self.max_field_index = max_field_index

    def classify_instance_type(self, field: FieldDescriptor, duplicate_count: int = 1) -> InstanceType:
        context = field.context_text()
        multi = field.is_multi_valued
        atomic = InstanceType.ATOMIC_MULTI if multi else InstanceType.ATOMIC_SINGLE

        if FLAT_SURVEY_PATTERN.search(context):
            field.routing_reasons.append("flat_survey_guard")
            return atomic

        if multi and ATOMIC_SET_PATTERN.search(context):
            field.routing_reasons.append("atomic_set")
            return InstanceType.ATOMIC_MULTI

        base_key = self._base_key(field)
        if base_key in self.registry:
            field.routing_reasons.append(f"registry:{base_key}")
            return InstanceType.SECTION_REPEATER

        if not multi and field.field_index is None:
            field.routing_reasons.append("not_indexed")
            return atomic

        score, signals = self.score(field)
        field.sectional_score = score
        field.structural_signal_count = signals

        if signals >= self.structural_signal_threshold:
            if self.registry.add(base_key):
                logger.debug("Registered repeating base key %s (%s)", base_key, field.selector)
            field.routing_reasons.append(f"tier1:signals={signals}")
            return InstanceType.SECTION_REPEATER
        if score >= self.section_score_threshold and duplicate_count >= self.repeat_threshold:
            field.routing_reasons.append(f"tier2:score={score},dup={duplicate_count}")
            return InstanceType.SECTION_REPEATER
        if score >= self.section_score_threshold:
            field.routing_reasons.append(f"tier3:score={score}")
            return InstanceType.SECTION_CANDIDATE
        field.routing_reasons.append(f"atomic:score={score}")
        return atomic

    def score(self, field: FieldDescriptor) -> tuple[int, int]:
        """Return (sectional score, structural signal count)."""
        context = field.context_text()
        score = 0
        if SECTION_KEYWORD_PATTERN.search(context):
            score += 1
        structural = field.index_source == IndexSource.STRUCTURAL
        if structural:
            score += 1
        if field.field_index is not None and 0 < field.field_index < self.max_field_index:
            score += 1
        if field.in_repeater_container:
            score += 1
        if PROFILE_QUESTION_PATTERN.search(context):
            score -= 1
        signals = int(structural) + int(field.is_strong_repeater)
        return max(score, 0), signals

    def classify_scope(self, field: FieldDescriptor, instance_type: Optional[InstanceType] = None) -> Scope:
        kind = instance_type or field.instance_type
        if field.group_id:
            return Scope.GROUP
        if kind == InstanceType.ATOMIC_MULTI:
            return Scope.GLOBAL
        if is_global_fact(self._base_key(field)):
            return Scope.GLOBAL
        if kind in (InstanceType.SECTION_REPEATER, InstanceType.SECTION_CANDIDATE):
            return Scope.SECTION
        if field.field_index is not None:
            return Scope.SECTION
        return Scope.GLOBAL

    def classify(self, field: FieldDescriptor, duplicate_count: int = 1) -> Classification:
        """Classify and freeze instance type and scope on the field."""
        instance_type = self.classify_instance_type(field, duplicate_count)
        scope = self.classify_scope(field, instance_type)
        field.assign_structure(instance_type, scope)
        return Classification(instance_type, scope)

    def _base_key(self, field: FieldDescriptor) -> str:
        if not field.base_key:
            field.base_key = self.key_generator.base_key(field)
        return field.base_key
