from launchtest.models.decision import Decision, DecisionConfidence, DecisionStatus  # noqa: F401
from launchtest.models.schemas import (  # noqa: F401
    CreateDecisionInput,
    DecisionAnalysisResult,
    RawVariantCounts,
    UpdateDecisionInput,
    WinnerInfo,
)
