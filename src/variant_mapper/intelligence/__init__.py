"""
Theme Intelligence Package.

Discovers where a theme renders each product field:
- Stable selector generation with dynamic-value filtering
- Confidence-scored selector candidates per field
- Structural theme fingerprints
- Incremental Theme Adapter building and the adapter store
"""

from .element_selectors import (
    SelectorOption,
    ResolvedSelectors,
    find_product_region,
    is_dynamic_value,
    resolve_selectors,
    stable_selector_options,
    structural_path,
    STABLE_ATTRIBUTES,
    DYNAMIC_PATTERNS,
)
from .scorer import (
    FieldProfile,
    ScoredCandidate,
    ScoringHints,
    SelectorCandidateScorer,
    FIELD_PROFILES,
    score,
)
from .fingerprint import structural_skeleton, theme_fingerprint
from .builder import AdapterDraft, FieldOutcome, ThemeAdapterBuilder, extract_product_hints
from .adapter_store import ThemeAdapterStore

__all__ = [
    # Selectors
    "SelectorOption",
    "ResolvedSelectors",
    "find_product_region",
    "is_dynamic_value",
    "resolve_selectors",
    "stable_selector_options",
    "structural_path",
    "STABLE_ATTRIBUTES",
    "DYNAMIC_PATTERNS",
    # Scoring
    "FieldProfile",
    "ScoredCandidate",
    "ScoringHints",
    "SelectorCandidateScorer",
    "FIELD_PROFILES",
    "score",
    # Fingerprinting
    "structural_skeleton",
    "theme_fingerprint",
    # Building
    "AdapterDraft",
    "FieldOutcome",
    "ThemeAdapterBuilder",
    "extract_product_hints",
    # Storage
    "ThemeAdapterStore",
]
