"""Request/result types for link resolution."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MatchSource(str, Enum):
    BRAND_RULE = "brand_rule"
    BRAND_DEFAULT = "brand_default"
    INDEX_LIST_MATCH = "index_list_match"
    VECTOR_HIGH_CONFIDENCE = "vector_high_confidence"
    VECTOR_CLAUDE_CONFIRMED = "vector_claude_confirmed"
    NO_MATCH = "no_match"
    NO_INDEX = "no_index"
    LOW_CONFIDENCE = "low_confidence"
    VERIFICATION_FAILED = "verification_failed"


class CampaignContext(BaseModel):
    campaign_type: str = ""
    primary_focus: str = ""
    detected_products: list[str] = Field(default_factory=list)
    detected_collections: list[str] = Field(default_factory=list)

    def rule_text(self) -> str:
        """Lowercased focus + detected products + detected collections."""
        parts = [self.primary_focus, *self.detected_products, *self.detected_collections]
        return " ".join(p for p in parts if p).lower()


class ResolutionRequest(BaseModel):
    brand_id: str
    slice_description: str
    campaign_context: CampaignContext = Field(default_factory=CampaignContext)
    is_generic_cta: bool = False


class MatchResult(BaseModel):
    url: Optional[str] = None
    source: MatchSource
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    matched_entry_id: Optional[str] = None
    # Best similarity seen on the vector path, kept for diagnostics even when url is None
    top_similarity: Optional[float] = None

    @classmethod
    def miss(cls, source: MatchSource, top_similarity: Optional[float] = None) -> "MatchResult":
        return cls(url=None, source=source, confidence=0.0, top_similarity=top_similarity)


class LinkRule(BaseModel):
    id: Optional[str] = None
    name: str
    destination_url: str


class LinkPreferences(BaseModel):
    """Operator-authored overrides stored on Brand.link_preferences."""

    default_destination_url: Optional[str] = None
    rules: list[LinkRule] = Field(default_factory=list)
    primary_collection_url: Optional[str] = None
    catalog_size: Optional[str] = None
    product_churn: Optional[str] = None
    sitemap_url: Optional[str] = None

    model_config = {"extra": "allow"}

    def match_rule(self, context_text: str) -> Optional[LinkRule]:
        """First rule (in list order) whose name is a substring of the context text.

        Plain containment: a short rule name such as "tee" also matches
        "steel". Kept as-is so existing brand rules keep resolving the same way.
        """
        for rule in self.rules:
            if rule.name.lower() in context_text:
                return rule
        return None


@dataclass
class ScoredEntry:
    """A catalog entry returned by vector search with its cosine similarity."""

    id: str
    url: str
    title: Optional[str]
    link_type: str
    similarity: float
    use_count: int = 0


@dataclass
class CatalogLink:
    """Minimal view of a catalog entry used for list matching."""

    id: str
    url: str
    title: Optional[str]
    link_type: str
