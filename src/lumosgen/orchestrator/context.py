"""Token-budgeted context selection from a project analysis snapshot.

Selection is a pure function of `(task_type, snapshot, max_tokens)`:
candidate fragments are scored with fixed category weights and keyword
overlap, ranked with a stable tie-break on candidate order, and accumulated
until the next fragment would overflow the budget.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath
from typing import Any

REQUIRED_CATEGORY_BONUS = 10.0
PARAGRAPH_BOUNDARY_RATIO = 0.7


class DocumentCategory(str, Enum):
    """Document categories derived from file paths."""

    README = "readme"
    CHANGELOG = "changelog"
    GUIDE = "guide"
    API = "api"
    EXAMPLE = "example"
    TEST = "test"
    DOCS = "docs"
    CONFIG = "config"
    OTHER = "other"
    METADATA = "metadata"
    TECH_STACK = "tech-stack"
    FEATURES = "features"
    DEPENDENCIES = "dependencies"


_STRUCTURED_WEIGHTS: dict[DocumentCategory, float] = {
    DocumentCategory.METADATA: 0.95,
    DocumentCategory.FEATURES: 0.9,
    DocumentCategory.TECH_STACK: 0.85,
    DocumentCategory.DEPENDENCIES: 0.5,
}


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def categorize_document(path: str) -> DocumentCategory:
    """Map a document path to its category."""

    posix = PurePosixPath(path.replace("\\", "/"))
    file_name = posix.name.lower()
    dir_path = str(posix.parent).lower()

    if "readme" in file_name:
        return DocumentCategory.README
    if "changelog" in file_name:
        return DocumentCategory.CHANGELOG
    if "guide" in file_name or "tutorial" in file_name:
        return DocumentCategory.GUIDE
    if "api" in file_name or "reference" in file_name:
        return DocumentCategory.API
    if "example" in file_name or "example" in dir_path:
        return DocumentCategory.EXAMPLE
    if "test" in file_name or "test" in dir_path:
        return DocumentCategory.TEST
    if "docs" in dir_path or "doc" in dir_path:
        return DocumentCategory.DOCS
    if "config" in file_name:
        return DocumentCategory.CONFIG
    return DocumentCategory.OTHER


@dataclass(slots=True, frozen=True)
class AnalysisDocument:
    path: str
    content: str
    token_count: int | None = None

    @property
    def tokens(self) -> int:
        if self.token_count is not None and self.token_count > 0:
            return self.token_count
        return estimate_tokens(self.content)


@dataclass(slots=True, frozen=True)
class AnalysisSnapshot:
    """Externally produced project analysis, consumed read-only."""

    metadata: dict[str, Any] = field(default_factory=dict)
    tech_stack: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    documents: tuple[AnalysisDocument, ...] = ()
    dependencies: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AnalysisSnapshot:
        """Parse the `{metadata, techStack, features, documents[]}` structure."""

        metadata = raw.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("Analysis snapshot 'metadata' must be an object.")
        documents: list[AnalysisDocument] = []
        for index, entry in enumerate(raw.get("documents") or []):
            if not isinstance(entry, dict):
                raise ValueError(f"Analysis document #{index} must be an object.")
            path = entry.get("path")
            content = entry.get("content", "")
            if not isinstance(path, str) or not path.strip():
                raise ValueError(f"Analysis document #{index} requires a non-empty 'path'.")
            if not isinstance(content, str):
                raise ValueError(f"Analysis document {path!r} content must be a string.")
            token_count = entry.get("tokenCount", entry.get("token_count"))
            documents.append(
                AnalysisDocument(
                    path=path,
                    content=content,
                    token_count=int(token_count) if token_count is not None else None,
                ),
            )
        return cls(
            metadata=dict(metadata),
            tech_stack=_names(raw.get("techStack")),
            features=_names(raw.get("features")),
            documents=tuple(documents),
            dependencies=_names(raw.get("dependencies")),
        )


@dataclass(slots=True, frozen=True)
class ContextStrategy:
    """Per-task-type selection policy."""

    task_type: str
    required_categories: frozenset[DocumentCategory]
    weights: dict[DocumentCategory, float]
    max_tokens: int
    keywords: tuple[str, ...] = ()
    include_structured: bool = True

    def weight(self, category: DocumentCategory) -> float:
        if category in _STRUCTURED_WEIGHTS:
            return _STRUCTURED_WEIGHTS[category]
        return self.weights.get(category, 0.1)


@dataclass(slots=True, frozen=True)
class ContextFragment:
    source: str
    category: DocumentCategory
    content: str
    tokens: int
    score: float
    truncated: bool = False


@dataclass(slots=True, frozen=True)
class ContextSelection:
    """Bounded slice of project context chosen for one task type."""

    task_type: str
    max_tokens: int
    selected_items: tuple[ContextFragment, ...]
    total_tokens: int
    selection_reason: str

    @property
    def truncated(self) -> bool:
        return any(item.truncated for item in self.selected_items)


def _strategy(
    task_type: str,
    required: tuple[str, ...],
    weights: dict[str, float],
    max_tokens: int,
    keywords: tuple[str, ...],
) -> ContextStrategy:
    return ContextStrategy(
        task_type=task_type,
        required_categories=frozenset(DocumentCategory(name) for name in required),
        weights={DocumentCategory(name): weight for name, weight in weights.items()},
        max_tokens=max_tokens,
        keywords=keywords,
    )


DEFAULT_STRATEGIES: dict[str, ContextStrategy] = {
    strategy.task_type: strategy
    for strategy in (
        _strategy(
            "marketing-content",
            ("readme",),
            {"readme": 1.0, "docs": 0.8, "guide": 0.7, "example": 0.6, "changelog": 0.5,
             "api": 0.3, "test": 0.1, "config": 0.1, "other": 0.2},
            8000,
            ("feature", "benefit", "user", "install", "overview", "why"),
        ),
        _strategy(
            "technical-docs",
            ("docs", "api"),
            {"docs": 1.0, "api": 0.9, "guide": 0.8, "readme": 0.7, "example": 0.6,
             "config": 0.4, "changelog": 0.3, "test": 0.2, "other": 0.1},
            12000,
            ("architecture", "api", "configuration", "module", "install", "usage"),
        ),
        _strategy(
            "api-documentation",
            ("api",),
            {"api": 1.0, "docs": 0.8, "example": 0.7, "readme": 0.5, "guide": 0.4,
             "config": 0.3, "changelog": 0.2, "test": 0.1, "other": 0.1},
            10000,
            ("api", "endpoint", "function", "parameter", "return", "class"),
        ),
        _strategy(
            "user-guide",
            ("guide", "readme"),
            {"guide": 1.0, "readme": 0.9, "example": 0.8, "docs": 0.6, "api": 0.4,
             "changelog": 0.3, "config": 0.2, "test": 0.1, "other": 0.2},
            8000,
            ("guide", "step", "how", "usage", "install", "tutorial"),
        ),
        _strategy(
            "changelog",
            ("changelog",),
            {"changelog": 1.0, "readme": 0.6, "docs": 0.4, "guide": 0.3, "api": 0.2,
             "example": 0.2, "config": 0.1, "test": 0.1, "other": 0.1},
            6000,
            ("added", "fixed", "changed", "release", "version", "breaking"),
        ),
        _strategy(
            "readme-enhancement",
            ("readme",),
            {"readme": 1.0, "docs": 0.7, "guide": 0.6, "example": 0.5, "changelog": 0.4,
             "api": 0.3, "config": 0.2, "test": 0.1, "other": 0.2},
            8000,
            ("readme", "install", "usage", "example", "license", "contributing"),
        ),
        _strategy(
            "project-analysis",
            ("readme", "docs"),
            {"readme": 1.0, "docs": 0.9, "guide": 0.7, "api": 0.6, "example": 0.5,
             "changelog": 0.4, "config": 0.3, "test": 0.2, "other": 0.3},
            16000,
            ("architecture", "dependency", "feature", "stack", "module", "test"),
        ),
        _strategy(
            "feature-extraction",
            ("readme",),
            {"readme": 1.0, "docs": 0.8, "guide": 0.7, "example": 0.6, "api": 0.4,
             "changelog": 0.3, "config": 0.2, "test": 0.1, "other": 0.2},
            10000,
            ("feature", "support", "capability", "integration", "benefit"),
        ),
        _strategy(
            "general",
            ("readme",),
            {"readme": 1.0, "docs": 0.8, "guide": 0.7, "api": 0.6, "example": 0.5,
             "changelog": 0.4, "config": 0.3, "test": 0.2, "other": 0.3},
            8000,
            ("overview", "feature", "usage"),
        ),
    )
}


class ContextSelector:
    """Pick a token-bounded, relevance-ordered slice of project context."""

    def __init__(
        self,
        strategies: dict[str, ContextStrategy] | None = None,
        *,
        default_max_tokens: int | None = None,
    ) -> None:
        self._strategies = dict(strategies or DEFAULT_STRATEGIES)
        if "general" not in self._strategies:
            self._strategies["general"] = DEFAULT_STRATEGIES["general"]
        self.default_max_tokens = default_max_tokens

    def available_strategies(self) -> list[str]:
        return sorted(self._strategies)

    def strategy_for(self, task_type: str) -> ContextStrategy:
        return self._strategies.get(task_type) or self._strategies["general"]

    def with_overrides(self, task_type: str, **changes: Any) -> ContextStrategy:
        """Register a customized copy of a task type's strategy."""

        base = self.strategy_for(task_type)
        custom = replace(base, task_type=task_type, **changes)
        self._strategies[task_type] = custom
        return custom

    def select_context(
        self,
        task_type: str,
        analysis: AnalysisSnapshot,
        max_tokens: int | None = None,
    ) -> ContextSelection:
        """Select context for `task_type` within `max_tokens`.

        Fragments are taken in descending relevance until the next one would
        overflow the budget. When the top-ranked fragment alone is larger than
        the budget it is truncated to fit, so a non-empty corpus never yields
        an empty selection.
        """

        strategy = self.strategy_for(task_type)
        budget = (
            max_tokens
            if max_tokens is not None
            else self.default_max_tokens or strategy.max_tokens
        )
        if budget < 1:
            raise ValueError(f"max_tokens must be >= 1, got {budget}")

        candidates = _candidates(analysis, strategy)
        ranked = [
            fragment
            for _, fragment in sorted(
                enumerate(candidates),
                key=lambda pair: (-pair[1].score, pair[0]),
            )
        ]

        selected: list[ContextFragment] = []
        total = 0
        for fragment in ranked:
            if total + fragment.tokens <= budget:
                selected.append(fragment)
                total += fragment.tokens
                continue
            if not selected:
                truncated = _truncate(fragment, budget)
                selected.append(truncated)
                total = truncated.tokens
            break

        return ContextSelection(
            task_type=task_type,
            max_tokens=budget,
            selected_items=tuple(selected),
            total_tokens=total,
            selection_reason=_selection_reason(
                task_type=task_type,
                strategy=strategy,
                selected=selected,
                candidate_count=len(candidates),
                total=total,
                budget=budget,
            ),
        )


def _candidates(analysis: AnalysisSnapshot, strategy: ContextStrategy) -> list[ContextFragment]:
    raw: list[tuple[str, DocumentCategory, str, int | None]] = []
    if strategy.include_structured:
        if analysis.metadata:
            metadata_text = "\n".join(
                f"{key}: {_render_value(value)}" for key, value in analysis.metadata.items()
            )
            raw.append(("metadata", DocumentCategory.METADATA, metadata_text, None))
        if analysis.tech_stack:
            raw.append(
                ("techStack", DocumentCategory.TECH_STACK, ", ".join(analysis.tech_stack), None),
            )
        if analysis.features:
            features_text = "\n".join(f"- {feature}" for feature in analysis.features)
            raw.append(("features", DocumentCategory.FEATURES, features_text, None))
        if analysis.dependencies:
            raw.append(
                (
                    "dependencies",
                    DocumentCategory.DEPENDENCIES,
                    ", ".join(analysis.dependencies),
                    None,
                ),
            )
    for document in analysis.documents:
        raw.append(
            (
                f"document:{document.path}",
                categorize_document(document.path),
                document.content,
                document.tokens,
            ),
        )

    fragments: list[ContextFragment] = []
    for source, category, content, declared_tokens in raw:
        if not content.strip():
            continue
        fragments.append(
            ContextFragment(
                source=source,
                category=category,
                content=content,
                tokens=declared_tokens if declared_tokens is not None else estimate_tokens(content),
                score=_score(category=category, content=content, strategy=strategy),
            ),
        )
    return fragments


def _score(*, category: DocumentCategory, content: str, strategy: ContextStrategy) -> float:
    haystack = content.lower()
    overlap = sum(1 for keyword in strategy.keywords if keyword in haystack)
    bonus = REQUIRED_CATEGORY_BONUS if category in strategy.required_categories else 0.0
    return round(strategy.weight(category) * 100 + bonus + overlap, 6)


def _truncate(fragment: ContextFragment, budget: int) -> ContextFragment:
    ratio = budget / fragment.tokens
    target = max(1, min(math.floor(len(fragment.content) * ratio), budget * 4))
    text = fragment.content[:target]
    boundary = text.rfind("\n\n")
    if boundary > target * PARAGRAPH_BOUNDARY_RATIO:
        text = text[:boundary]
    return replace(
        fragment,
        content=text,
        tokens=max(1, estimate_tokens(text)),
        truncated=True,
    )


def _selection_reason(  # noqa: PLR0913
    *,
    task_type: str,
    strategy: ContextStrategy,
    selected: list[ContextFragment],
    candidate_count: int,
    total: int,
    budget: int,
) -> str:
    if not selected:
        return f"No context available for {task_type} task: the analysis snapshot is empty."
    categories: list[str] = []
    for fragment in selected:
        if fragment.category.value not in categories:
            categories.append(fragment.category.value)
    required = ", ".join(sorted(category.value for category in strategy.required_categories))
    reason = (
        f"Selected {len(selected)} of {candidate_count} fragments for {task_type} task. "
        f"Categories included: {', '.join(categories)}. "
        f"Total tokens: {total}/{budget}. "
        f"Strategy: prioritized {required} as required categories."
    )
    if any(fragment.truncated for fragment in selected):
        reason += " Top fragment truncated to fit the token budget."
    return reason


def _render_value(value: Any) -> str:
    if isinstance(value, list | tuple):
        return ", ".join(str(item) for item in value)
    return str(value)


def _names(values: Any) -> tuple[str, ...]:
    if not values:
        return ()
    names: list[str] = []
    for value in values:
        if isinstance(value, dict):
            name = value.get("name") or value.get("title")
            if name is None:
                continue
            description = value.get("description") or value.get("version")
            names.append(f"{name}: {description}" if description else str(name))
        else:
            names.append(str(value))
    return tuple(names)
