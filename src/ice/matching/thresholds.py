"""
Matching thresholds.

Tiers, highest first:
1. exact    - normalized names identical, always bound
2. high     - similarity >= AUTO_MATCH_THRESHOLD, bound without asking
3. medium   - MANUAL_RESOLUTION_THRESHOLD <= similarity < AUTO_MATCH_THRESHOLD, a human decides
4. low      - below MANUAL_RESOLUTION_THRESHOLD, a human confirms a new employee

Raising AUTO_MATCH_THRESHOLD trades more manual work for fewer false merges;
lowering it does the opposite. FIRST_NAME_THRESHOLD is checked before any
full-name comparison so that two people sharing a surname are never merged.
"""
from typing import Literal
from pydantic import BaseModel, Field

ConfidenceLevel = Literal["exact", "high", "medium", "low"]


class MatchingThresholds(BaseModel):
    model_config = {"frozen": True}

    exact_match: float = 1.0
    auto_match: float = Field(0.85, ge=0.0, le=1.0)
    manual_resolution: float = Field(0.75, ge=0.0, le=1.0)
    first_name: float = Field(0.85, ge=0.0, le=1.0)
    max_candidates: int = Field(5, ge=1)

    @classmethod
    def from_settings(cls, settings) -> "MatchingThresholds":
        return cls(
            exact_match=settings.EXACT_MATCH,
            auto_match=settings.AUTO_MATCH_THRESHOLD,
            manual_resolution=settings.MANUAL_RESOLUTION_THRESHOLD,
            first_name=settings.FIRST_NAME_THRESHOLD,
            max_candidates=settings.MAX_CANDIDATES_PER_CONFLICT,
        )

    def confidence_level(self, score: float) -> ConfidenceLevel:
        if score >= self.exact_match:
            return "exact"
        if score >= self.auto_match:
            return "high"
        if score >= self.manual_resolution:
            return "medium"
        return "low"


DEFAULT_THRESHOLDS = MatchingThresholds()
