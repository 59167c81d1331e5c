from dotenv import load_dotenv
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional
from pathlib import Path
import json
import logging
import os

from variant_mapper.constants import (
    DEFAULT_CONFIDENCE_FLOOR,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENT_JOBS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)

load_dotenv()  # Loads variables from .env file

logger = logging.getLogger(__name__)


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    USER_AGENT = os.getenv("USER_AGENT", "Variant-Mapper-Bot/1.0")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


@dataclass
class Config:
    """Configuration for the mapping engine."""
    user_agent: str = "Variant-Mapper-Bot/1.0"
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS
    # Default confidence_threshold for jobs that do not set one
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    adapter_store_path: Optional[str] = None  # SQLite file; None keeps adapters in memory
    thresholds_file: Optional[str] = None  # JSON scoring thresholds; None reads the environment

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config: Configuration instance with values from environment
        """
        def env(name, default):
            return os.getenv(name, str(default))

        return cls(
            user_agent=os.getenv("USER_AGENT", settings.USER_AGENT),
            request_timeout=float(env("MAPPING_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS)),
            fetch_timeout=float(env("MAPPING_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT_SECONDS)),
            max_retries=int(env("MAPPING_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
            max_concurrent_jobs=int(
                env("MAPPING_MAX_CONCURRENT_JOBS", DEFAULT_MAX_CONCURRENT_JOBS)
            ),
            confidence_floor=float(env("MAPPING_CONFIDENCE_FLOOR", DEFAULT_CONFIDENCE_FLOOR)),
            adapter_store_path=os.getenv("ADAPTER_STORE_PATH"),
            thresholds_file=os.getenv("MAPPING_THRESHOLDS_FILE"),
        )

    def scoring_thresholds(self) -> "ScoringThresholds":
        """Scoring thresholds from ``thresholds_file``, or from the environment."""
        if self.thresholds_file:
            return ScoringThresholds.from_file(self.thresholds_file)
        return ScoringThresholds.from_env()


@dataclass
class ScoringThresholds:
    """Configurable weights and bounds for selector scoring."""

    # Signal weights (sum to 1.0)
    weight_semantics: float = 0.35
    weight_position: float = 0.20
    weight_content: float = 0.20
    weight_uniqueness: float = 0.25

    # Bonus when the element text matches a known product value
    expected_text_bonus: float = 0.15
    # Shortest text-to-expected length ratio that earns the partial bonus
    partial_match_min_ratio: float = 0.6

    # Uniqueness credit when only a structural path is unique
    structural_uniqueness_credit: float = 0.5

    # Text length bounds (characters)
    title_min_length: int = 2
    title_max_length: int = 150
    description_min_length: int = 20
    description_max_length: int = 5000
    cta_max_length: int = 40
    badge_max_length: int = 30
    usp_item_max_length: int = 120
    usp_min_items: int = 2

    ENV_PREFIX = "VARIANT_MAPPER_THRESHOLD_"

    @classmethod
    def from_env(cls) -> "ScoringThresholds":
        """Load thresholds from environment variables.

        Variables are the field names upper-cased behind ENV_PREFIX,
        e.g. VARIANT_MAPPER_THRESHOLD_WEIGHT_SEMANTICS=0.4
        """
        overrides = {}
        for f in fields(cls):
            raw = os.getenv(f"{cls.ENV_PREFIX}{f.name.upper()}")
            if raw is not None:
                overrides[f.name] = raw
        return cls._with_overrides(overrides, source="environment")

    @classmethod
    def from_file(cls, path: str) -> "ScoringThresholds":
        """Load thresholds from a JSON file.

        The file holds the fields at top level or under a ``thresholds`` key.
        A missing file gives the defaults.
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.warning(f"Thresholds file {path} not found, using defaults")
            return cls()

        with open(file_path, 'r') as f:
            data = json.load(f)

        return cls._with_overrides(data.get('thresholds', data), source=str(path))

    @classmethod
    def _with_overrides(cls, overrides: Dict[str, Any], source: str) -> "ScoringThresholds":
        thresholds = cls()
        for f in fields(cls):
            if f.name not in overrides:
                continue
            convert = int if f.type in (int, "int") else float
            try:
                setattr(thresholds, f.name, convert(overrides[f.name]))
            except (TypeError, ValueError):
                logger.warning(
                    f"Ignoring threshold {f.name}={overrides[f.name]!r} from {source}"
                )
        return thresholds

    def to_dict(self) -> dict:
        """Convert thresholds to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


# Global default thresholds instance
default_thresholds = ScoringThresholds()
