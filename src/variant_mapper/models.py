"""Data models for theme mapping and variant injection."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from variant_mapper.constants import DEFAULT_CONFIDENCE_FLOOR, DEFAULT_MAX_CANDIDATES


class FieldType(str, Enum):
    """Kind of page element a canonical field binds to."""
    TEXT = "text"
    IMAGE = "image"
    CTA = "cta"
    USP_LIST = "usp-list"
    BADGE = "badge"


class RenderStrategy(str, Enum):
    """How variant content replaces a bound element."""
    TEXT = "text"  # replace text content
    HTML = "html"  # replace markup content
    IMAGE_SRC = "image_src"  # replace the image source attribute
    LIST_TEXT = "list_text"  # regenerate list items


@dataclass(frozen=True)
class FieldSpec:
    """Static description of a canonical field."""
    field_type: FieldType
    strategy: RenderStrategy
    priority: int  # lower is scored first
    aliases: tuple[str, ...] = ()


class CanonicalField(str, Enum):
    """Closed set of content fields a variant can override."""
    TITLE = "title"
    SUBTITLE = "subtitle"
    DESCRIPTION = "description"
    CTA_PRIMARY = "cta_primary"
    CTA_SECONDARY = "cta_secondary"
    PROMOTIONAL_BADGE = "promotional_badge"
    HERO_IMAGE = "hero_image"
    USP_LIST = "usp_list"
    BADGES = "badges"

    @property
    def spec(self) -> FieldSpec:
        return FIELD_SPECS[self]

    @property
    def field_type(self) -> FieldType:
        return self.spec.field_type

    @property
    def default_strategy(self) -> RenderStrategy:
        return self.spec.strategy

    @classmethod
    def from_key(cls, key: str) -> Optional["CanonicalField"]:
        """Resolve a payload or adapter key (canonical name or alias)."""
        if not isinstance(key, str):
            return None
        return _KEY_INDEX.get(key.strip().lower())

    @classmethod
    def by_priority(cls) -> list["CanonicalField"]:
        return sorted(cls, key=lambda f: f.spec.priority)


# Text fields come first: they gate whether a generated template is viable.
FIELD_SPECS: dict[CanonicalField, FieldSpec] = {
    CanonicalField.TITLE: FieldSpec(
        FieldType.TEXT, RenderStrategy.TEXT, 0, ("product_title", "headline")
    ),
    CanonicalField.SUBTITLE: FieldSpec(
        FieldType.TEXT, RenderStrategy.TEXT, 1, ("product_subtitle",)
    ),
    CanonicalField.DESCRIPTION: FieldSpec(
        FieldType.TEXT, RenderStrategy.HTML, 2, ("description_html", "product_description")
    ),
    CanonicalField.CTA_PRIMARY: FieldSpec(
        FieldType.CTA, RenderStrategy.TEXT, 3, ("add_to_cart", "cta")
    ),
    CanonicalField.CTA_SECONDARY: FieldSpec(
        FieldType.CTA, RenderStrategy.TEXT, 4, ("buy_now",)
    ),
    CanonicalField.PROMOTIONAL_BADGE: FieldSpec(
        FieldType.BADGE, RenderStrategy.TEXT, 5, ("badge",)
    ),
    CanonicalField.HERO_IMAGE: FieldSpec(
        FieldType.IMAGE, RenderStrategy.IMAGE_SRC, 6, ("product_images", "images", "image")
    ),
    CanonicalField.USP_LIST: FieldSpec(
        FieldType.USP_LIST, RenderStrategy.LIST_TEXT, 7, ("usp", "usps", "benefits")
    ),
    CanonicalField.BADGES: FieldSpec(
        FieldType.BADGE, RenderStrategy.LIST_TEXT, 8, ("product_badges",)
    ),
}

_KEY_INDEX: dict[str, CanonicalField] = {}
for _field, _spec in FIELD_SPECS.items():
    _KEY_INDEX[_field.value] = _field
    for _alias in _spec.aliases:
        _KEY_INDEX[_alias] = _field


@dataclass
class ElementSelector:
    """One field's discovered binding to a DOM location."""
    key: CanonicalField
    selector: str
    type: FieldType
    confidence: float  # 0.0 to 1.0
    order: int
    strategy: RenderStrategy
    fallback_selector: Optional[str] = None
    low_confidence: bool = False
    attributes: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"confidence for {self.key.value} must be within [0, 1], got {self.confidence}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "key": self.key.value,
            "selector": self.selector,
            "fallback_selector": self.fallback_selector,
            "type": self.type.value,
            "confidence": self.confidence,
            "order": self.order,
            "strategy": self.strategy.value,
            "low_confidence": self.low_confidence,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ElementSelector":
        """Deserialize from dictionary."""
        key = CanonicalField.from_key(data["key"])
        if key is None:
            raise ValueError(f"Unknown field key: {data['key']!r}")
        return cls(
            key=key,
            selector=data["selector"],
            fallback_selector=data.get("fallback_selector"),
            type=FieldType(data.get("type", key.field_type.value)),
            confidence=float(data["confidence"]),
            order=int(data.get("order", 0)),
            strategy=RenderStrategy(data.get("strategy", key.default_strategy.value)),
            low_confidence=bool(data.get("low_confidence", False)),
            attributes=dict(data.get("attributes") or {}),
        )


@dataclass
class ThemeAdapter:
    """
    Discovery output for one theme.

    Field keys are unique. ``order`` on each selector is only used to lay out
    generated markup; injection treats every field independently.
    """
    theme_fingerprint: str
    selectors: list[ElementSelector] = field(default_factory=list)
    theme_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        seen = set()
        for entry in self.selectors:
            if entry.key in seen:
                raise ValueError(f"Duplicate field key in adapter: {entry.key.value}")
            seen.add(entry.key)
        self.selectors = sorted(self.selectors, key=lambda s: s.order)

    def get(self, key: CanonicalField) -> Optional[ElementSelector]:
        for entry in self.selectors:
            if entry.key == key:
                return entry
        return None

    @property
    def keys(self) -> list[CanonicalField]:
        return [entry.key for entry in self.selectors]

    @property
    def order(self) -> list[str]:
        return [entry.key.value for entry in self.selectors]

    @property
    def average_confidence(self) -> float:
        if not self.selectors:
            return 0.0
        return round(sum(s.confidence for s in self.selectors) / len(self.selectors), 3)

    def coverage(self, attempted: int) -> float:
        """Share of attempted fields that made it into the adapter."""
        if attempted <= 0:
            return 0.0
        return round(len(self.selectors) / attempted, 3)

    def touch(self) -> "ThemeAdapter":
        """Return a copy with a refreshed update timestamp."""
        return replace(self, updated_at=datetime.now())

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted adapter shape."""
        return {
            "theme_fingerprint": self.theme_fingerprint,
            "theme_id": self.theme_id,
            "selectors": {s.key.value: s.selector for s in self.selectors},
            "fallbacks": {
                s.key.value: s.fallback_selector
                for s in self.selectors if s.fallback_selector
            },
            "order": self.order,
            "confidence": {s.key.value: s.confidence for s in self.selectors},
            "strategies": {s.key.value: s.strategy.value for s in self.selectors},
            "low_confidence": [s.key.value for s in self.selectors if s.low_confidence],
            "attributes": {
                s.key.value: dict(s.attributes) for s in self.selectors if s.attributes
            },
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ThemeAdapter":
        """Deserialize from the persisted adapter shape."""
        selectors_map = data.get("selectors") or {}
        order = data.get("order") or list(selectors_map.keys())
        confidence = data.get("confidence") or {}
        strategies = data.get("strategies") or {}
        fallbacks = data.get("fallbacks") or {}
        attributes = data.get("attributes") or {}
        low = set(data.get("low_confidence") or [])

        entries = []
        for position, raw_key in enumerate(order):
            key = CanonicalField.from_key(raw_key)
            if key is None or raw_key not in selectors_map:
                continue
            entries.append(ElementSelector(
                key=key,
                selector=selectors_map[raw_key],
                fallback_selector=fallbacks.get(raw_key),
                type=key.field_type,
                confidence=float(confidence.get(raw_key, 0.0)),
                order=position,
                strategy=RenderStrategy(strategies.get(raw_key, key.default_strategy.value)),
                low_confidence=raw_key in low,
                attributes=dict(attributes.get(raw_key) or {}),
            ))

        created_at = data.get("created_at")
        updated_at = data.get("updated_at")
        return cls(
            theme_fingerprint=data["theme_fingerprint"],
            theme_id=data.get("theme_id"),
            selectors=entries,
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else datetime.now(),
        )


class MappingOptions(BaseModel):
    """Which fields a mapping job attempts and how strict it is."""

    field_types: list[FieldType] = Field(
        default_factory=lambda: list(FieldType),
        description="Field types to attempt",
    )
    extract_images: bool = Field(default=True, description="Attempt image fields")
    extract_usp: bool = Field(default=True, description="Attempt USP list fields")
    extract_badges: bool = Field(default=True, description="Attempt badge fields")
    confidence_threshold: float = Field(
        default=DEFAULT_CONFIDENCE_FLOOR,
        ge=0.0,
        le=1.0,
        description="Fields scoring below this are kept but marked low-confidence",
    )
    max_candidates: int = Field(default=DEFAULT_MAX_CANDIDATES, ge=1, le=50)
    reuse_cached: bool = Field(
        default=True,
        description="Reuse a stored adapter whose fingerprint matches the page",
    )

    def requested_fields(self) -> list[CanonicalField]:
        """Canonical fields to attempt, in scoring priority order."""
        allowed = set(self.field_types)
        if not self.extract_images:
            allowed.discard(FieldType.IMAGE)
        if not self.extract_usp:
            allowed.discard(FieldType.USP_LIST)
        if not self.extract_badges:
            allowed.discard(FieldType.BADGE)
        return [f for f in CanonicalField.by_priority() if f.field_type in allowed]


class JobPriority(str, Enum):
    """Scheduling priority of a mapping job."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Queue rank; lower runs first."""
        return {JobPriority.HIGH: 0, JobPriority.NORMAL: 1, JobPriority.LOW: 2}[self]


class MappingRequest(BaseModel):
    """Operator request to discover a theme adapter for one product page."""

    shop_id: str = Field(min_length=1)
    product_handle: Optional[str] = None
    product_url: Optional[str] = None
    product_gid: Optional[str] = None
    theme_id: Optional[str] = None
    priority: JobPriority = JobPriority.NORMAL
    options: MappingOptions = Field(default_factory=MappingOptions)

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "MappingRequest":
        given = [v for v in (self.product_handle, self.product_url, self.product_gid) if v]
        if len(given) != 1:
            raise ValueError(
                "Exactly one of product_handle, product_url or product_gid is required"
            )
        return self


class JobStatus(str, Enum):
    """Lifecycle states of a mapping job."""
    PENDING = "pending"
    PROCESSING = "processing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.RUNNING})

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({
        JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED,
    }),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class MappingJob:
    """
    Immutable snapshot of one mapping job.

    The job runner publishes a new snapshot on every change; pollers only
    ever read whole snapshots.
    """
    id: str
    shop_id: str
    theme_id: Optional[str]
    priority: JobPriority
    options: MappingOptions
    product_handle: Optional[str] = None
    product_url: Optional[str] = None
    product_gid: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None  # timeout, network, http, parse, invalid_target, internal
    result: Optional[ThemeAdapter] = None
    resolved_url: Optional[str] = None
    reused_adapter: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def target(self) -> tuple[str, str]:
        """(kind, value) of the page this job analyzes."""
        if self.product_url:
            return ("product_url", self.product_url)
        if self.product_gid:
            return ("product_gid", self.product_gid)
        return ("product_handle", self.product_handle or "")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the poll response shape."""
        kind, value = self.target
        data: dict[str, Any] = {
            "id": self.id,
            "shop_id": self.shop_id,
            kind: value,
            "theme_id": self.theme_id,
            "priority": self.priority.value,
            "options": self.options.model_dump(mode="json"),
            "status": self.status.value,
            "progress": self.progress,
            "reused_adapter": self.reused_adapter,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
        if self.status == JobStatus.COMPLETED and self.result is not None:
            data["result"] = self.result.to_dict()
        if self.status == JobStatus.FAILED:
            data["error"] = self.error
            data["error_kind"] = self.error_kind
        return data
