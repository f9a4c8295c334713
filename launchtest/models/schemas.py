from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from launchtest.models.decision import DecisionConfidence, DecisionStatus
from launchtest.services.statistics.confidence import ConfidenceLevel, Recommendation
from launchtest.services.statistics.thresholds import (
    ConfidenceThresholdsConfig,
    SampleThresholdsConfig,
)


class RawVariantCounts(BaseModel):
    """Aggregated counts for one variant as delivered by the event pipeline."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    variant_id: str = Field(..., alias="variantId")
    clicks: int
    conversions: int


class _ResultModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class WilsonInterval(_ResultModel):
    point: float
    lower: float
    upper: float
    confidence_level: float


class WinnerInfo(_ResultModel):
    variant_id: str
    cvr: float
    conversions: int
    clicks: int
    win_probability: float
    wilson_ci: WilsonInterval


class VariantRankingEntry(_ResultModel):
    rank: int
    variant_id: str
    cvr: float
    conversions: int
    clicks: int
    win_probability: float
    score: float
    wilson_ci: WilsonInterval


class WilsonComparisonSummary(_ResultModel):
    variant_a: str
    variant_b: str
    overlapping: bool
    relative_lift: float
    a_significantly_better: bool
    b_significantly_better: bool


class BayesSummary(_ResultModel):
    win_probabilities: Dict[str, float]
    expected_loss: Dict[str, float]
    likely_winner: Optional[str]
    likely_winner_probability: float


class AggregateSummary(_ResultModel):
    total_clicks: int
    total_conversions: int
    variant_count: int


class ThresholdsUsed(_ResultModel):
    sample: SampleThresholdsConfig
    confidence: ConfidenceThresholdsConfig


class StatsDetails(_ResultModel):
    method: Literal["wilson", "bayes"]
    aggregate: AggregateSummary
    wilson_comparisons: List[WilsonComparisonSummary]
    bayes_analysis: BayesSummary
    thresholds_used: ThresholdsUsed


class DecisionAnalysisResult(_ResultModel):
    confidence: ConfidenceLevel
    winner_id: Optional[str]
    winner_info: Optional[WinnerInfo]
    ranking: List[VariantRankingEntry]
    stats: StatsDetails
    rationale: str
    recommendation: Recommendation
    additional_samples_needed: Optional[int]


class CreateDecisionInput(BaseModel):
    run_id: str = Field(..., min_length=1)
    status: DecisionStatus = DecisionStatus.DRAFT
    confidence: DecisionConfidence
    winner_json: Dict[str, Any] = Field(default_factory=dict)
    ranking_json: List[Dict[str, Any]] = Field(default_factory=list)
    stats_json: Dict[str, Any] = Field(default_factory=dict)
    rationale: str = ""
    decided_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None


class UpdateDecisionInput(BaseModel):
    status: Optional[DecisionStatus] = None
    confidence: Optional[DecisionConfidence] = None
    winner_json: Optional[Dict[str, Any]] = None
    ranking_json: Optional[List[Dict[str, Any]]] = None
    stats_json: Optional[Dict[str, Any]] = None
    rationale: Optional[str] = None
    decided_at: Optional[datetime] = None
