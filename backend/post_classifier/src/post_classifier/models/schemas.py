from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator


class AppBaseModel(BaseModel):
    """Base Pydantic model with common configuration."""

    model_config = {
        "frozen": False,
        "extra": "forbid",
        "populate_by_name": True,
    }


class FrozenModel(AppBaseModel):
    """Base for configuration objects that must not change once loaded."""

    model_config = {
        "frozen": True,
        "extra": "forbid",
        "populate_by_name": True,
    }


class KeywordTier(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    BRAND = "brand"


class Language(str, Enum):
    VI = "vi"
    EN = "en"


class MatchType(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"


# --- Keyword dictionary (static configuration) ---


class LocalizedKeywords(FrozenModel):
    """Keyword phrases of one tier, split by language."""
    vi: Tuple[str, ...] = Field(default_factory=tuple)
    en: Tuple[str, ...] = Field(default_factory=tuple)

    def by_language(self) -> Iterator[Tuple[Language, Tuple[str, ...]]]:
        yield Language.VI, self.vi
        yield Language.EN, self.en


class CategoryProfile(FrozenModel):
    """
    Every keyword of one category plus its multiplicative weight.
    A profile with no keywords is legal; it simply never scores.
    """
    name: str = Field(min_length=1, description="Category name used as the tag.")
    primary: LocalizedKeywords = Field(default_factory=LocalizedKeywords)
    secondary: LocalizedKeywords = Field(default_factory=LocalizedKeywords)
    brands: Tuple[str, ...] = Field(default_factory=tuple)
    weight: float = Field(default=1.0, ge=0.0)

    def keyword_groups(self) -> Iterator[Tuple[KeywordTier, Optional[Language], Tuple[str, ...]]]:
        """Yield (tier, language, keywords) in scoring order; brands carry no language."""
        for language, keywords in self.primary.by_language():
            yield KeywordTier.PRIMARY, language, keywords
        for language, keywords in self.secondary.by_language():
            yield KeywordTier.SECONDARY, language, keywords
        yield KeywordTier.BRAND, None, self.brands

    @property
    def keyword_count(self) -> int:
        return sum(len(keywords) for _, _, keywords in self.keyword_groups())


class ScoringWeights(FrozenModel):
    """Tunable scoring parameters. confidence_scale and minimum_confidence are coupled."""
    primary: float = Field(default=10.0, ge=0.0)
    secondary: float = Field(default=5.0, ge=0.0)
    brand: float = Field(default=8.0, ge=0.0)
    exact_match: float = Field(default=1.5, ge=0.0)
    partial_match: float = Field(default=1.0, ge=0.0)
    minimum_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    confidence_scale: float = Field(default=100.0, gt=0.0)
    max_tags: int = Field(default=3, ge=1)

    def tier_weight(self, tier: KeywordTier) -> float:
        if tier is KeywordTier.PRIMARY:
            return self.primary
        if tier is KeywordTier.SECONDARY:
            return self.secondary
        return self.brand


class KeywordDictionary(FrozenModel):
    """
    The full classifier configuration: the ordered closed set of categories
    and the scoring weights. Category order is the tie-break order for results.
    """
    categories: Tuple[CategoryProfile, ...] = Field(default_factory=tuple)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)

    @field_validator("categories")
    @classmethod
    def unique_names(cls, categories: Tuple[CategoryProfile, ...]) -> Tuple[CategoryProfile, ...]:
        seen = set()
        for profile in categories:
            if profile.name in seen:
                raise ValueError(f"Duplicate category name: {profile.name}")
            seen.add(profile.name)
        return categories

    @property
    def category_names(self) -> List[str]:
        return [profile.name for profile in self.categories]

    def get(self, name: str) -> Optional[CategoryProfile]:
        for profile in self.categories:
            if profile.name == name:
                return profile
        return None


# --- Classification results ---


class Match(AppBaseModel):
    keyword: str
    type: MatchType
    score: float


class CategoryScore(AppBaseModel):
    score: float = 0.0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ClassificationResult(AppBaseModel):
    tag: str
    confidence: float = Field(ge=0.0, le=1.0)


class ClassificationOutcome(AppBaseModel):
    """
    Result of classifying one caption. Classification never raises; an
    internal failure shows up as `error` with no results.
    """
    results: List[ClassificationResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def tags(self) -> List[str]:
        return [result.tag for result in self.results]


# --- API request/response models ---


class ClassifyRequest(AppBaseModel):
    caption: Optional[str] = Field(default=None, description="Post caption to classify.")


class ClassifyResponse(AppBaseModel):
    results: List[ClassificationResult] = Field(default_factory=list)


class PreviewResponse(AppBaseModel):
    tags: List[str] = Field(default_factory=list)
    confidence: List[float] = Field(default_factory=list)
    has_results: bool = False


class PostRecord(AppBaseModel):
    """A stored post as seen by the batch service."""
    id: str = Field(min_length=1)
    caption: Optional[str] = None
    tags: Optional[List[str]] = None


class PostIn(AppBaseModel):
    id: str = Field(min_length=1)
    caption: Optional[str] = None


class BatchRequest(AppBaseModel):
    posts: List[PostIn] = Field(default_factory=list)


class BatchItem(AppBaseModel):
    post_id: str
    tags: List[str] = Field(default_factory=list)
    confidence: float = 0.0


class TaggedPost(AppBaseModel):
    post_id: str
    tags: List[str] = Field(default_factory=list)
    results: List[ClassificationResult] = Field(
        default_factory=list,
        description="Scored results behind the tags. Only tag names are persisted."
    )


class ClassificationStats(AppBaseModel):
    total_posts: int = 0
    classified_posts: int = 0
    unclassified_posts: int = 0
    classification_rate: int = Field(default=0, description="Percentage of posts carrying tags.")
    tag_distribution: Dict[str, int] = Field(default_factory=dict)


class ValidationCase(AppBaseModel):
    caption: str
    expected_tags: List[str] = Field(default_factory=list)


class ValidationRequest(AppBaseModel):
    cases: List[ValidationCase] = Field(default_factory=list)


class CaseReport(AppBaseModel):
    caption: str
    expected_tags: List[str]
    predicted_tags: List[str]
    precision: float
    recall: float
    f1: float


class ValidationReport(AppBaseModel):
    cases: List[CaseReport] = Field(default_factory=list)
    average_precision: float = 0.0
    average_recall: float = 0.0
    average_f1: float = 0.0
    exact_match_rate: float = 0.0

    @model_validator(mode="after")
    def rates_in_range(self) -> "ValidationReport":
        for value in (self.average_precision, self.average_recall, self.average_f1, self.exact_match_rate):
            if not 0.0 <= value <= 1.0:
                raise ValueError("Validation averages must lie in [0, 1]")
        return self
