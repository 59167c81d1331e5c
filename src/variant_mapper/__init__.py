"""Theme mapping engine and variant injection agent for storefront product pages."""

__version__ = "0.1.0"

from variant_mapper.models import (
    CanonicalField,
    ElementSelector,
    FieldType,
    JobPriority,
    JobStatus,
    MappingJob,
    MappingOptions,
    MappingRequest,
    RenderStrategy,
    ThemeAdapter,
)
from variant_mapper.config import Config, ScoringThresholds, settings
from variant_mapper.fetcher import (
    FetchError,
    FetchTimeoutError,
    InvalidTargetError,
    PageFetcher,
    resolve_product_url,
)
from variant_mapper.jobs import (
    DuplicateJobError,
    InvalidTransitionError,
    JobNotFoundError,
    MappingJobManager,
)
from variant_mapper.injection import InjectionReport, VariantInjectionAgent
from variant_mapper.markup import (
    MarkupRenderer,
    build_injection_payload,
    render_layout,
    render_payload_script,
)

# Intelligence
from variant_mapper.intelligence import (
    SelectorCandidateScorer,
    ScoringHints,
    ThemeAdapterBuilder,
    ThemeAdapterStore,
    theme_fingerprint,
)

__all__ = [
    "CanonicalField",
    "ElementSelector",
    "FieldType",
    "JobPriority",
    "JobStatus",
    "MappingJob",
    "MappingOptions",
    "MappingRequest",
    "RenderStrategy",
    "ThemeAdapter",
    "Config",
    "ScoringThresholds",
    "settings",
    "FetchError",
    "FetchTimeoutError",
    "InvalidTargetError",
    "PageFetcher",
    "resolve_product_url",
    "DuplicateJobError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "MappingJobManager",
    "InjectionReport",
    "VariantInjectionAgent",
    "MarkupRenderer",
    "build_injection_payload",
    "render_layout",
    "render_payload_script",
    "SelectorCandidateScorer",
    "ScoringHints",
    "ThemeAdapterBuilder",
    "ThemeAdapterStore",
    "theme_fingerprint",
]
