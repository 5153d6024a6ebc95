from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .cache import CacheRepository, InMemoryCacheRepository, SqliteCacheRepository
from .config import Settings
from .core.classification import FieldClassifier, RepeaterRegistry
from .core.keys import FuzzyKeyMatcher, SemanticKeyGenerator
from .pipeline import ResolutionPipeline
from .store import TieredCacheStore

logger = logging.getLogger(__name__)


@dataclass
class FormRecallApp:
    settings: Settings
    repository: CacheRepository
    store: TieredCacheStore
    key_generator: SemanticKeyGenerator
    matcher: FuzzyKeyMatcher
    _pipeline: ResolutionPipeline | None = None

    @classmethod
    def create(cls, settings: Settings, repository: Optional[CacheRepository] = None) -> "FormRecallApp":
        if repository is None:
            if settings.cache.backend == "memory":
                repository = InMemoryCacheRepository()
            else:
                repository = SqliteCacheRepository(settings.cache.path)
        key_generator = SemanticKeyGenerator(ml_confidence_threshold=settings.keys.ml_confidence_threshold)
        matcher = FuzzyKeyMatcher(
            threshold=settings.matching.match_threshold,
            hint_tolerance=settings.matching.hint_tolerance,
        )
        store = TieredCacheStore(repository, settings, key_generator=key_generator, matcher=matcher)
        return cls(
            settings=settings,
            repository=repository,
            store=store,
            key_generator=key_generator,
            matcher=matcher,
        )

    def build_classifier(self, registry: Optional[RepeaterRegistry] = None) -> FieldClassifier:
        thresholds = self.settings.classifier
        return FieldClassifier(
            registry or RepeaterRegistry(),
            self.key_generator,
            section_score_threshold=thresholds.section_score_threshold,
            structural_signal_threshold=thresholds.structural_signal_threshold,
            repeat_threshold=thresholds.repeat_threshold,
            max_field_index=thresholds.max_field_index,
        )

    def build_pipeline(self, **collaborators: Any) -> ResolutionPipeline:
        """Pipeline over this app's store; collaborators are passed through (rule_engine, executor ...)."""
        collaborators.setdefault("classifier", self.build_classifier())
        self._pipeline = ResolutionPipeline(
            self.store,
            settings=self.settings,
            key_generator=self.key_generator,
            **collaborators,
        )
        logger.debug("Pipeline strategies: %s", ", ".join(self._pipeline.strategy_names))
        return self._pipeline

    def close(self) -> None:
        self.repository.close()
