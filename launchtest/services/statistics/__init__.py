"""
Statistical decision engine for launch tests.

This module provides:
- Variant metrics and aggregation
- Wilson score confidence intervals
- Bayesian Beta-Binomial posteriors with Monte-Carlo win probability and expected loss
- Confidence tier classification (insufficient / directional / confident)
- Ranking and winner selection
"""

from launchtest.services.statistics.bayes import (
    BayesianComparison,
    BayesianPosterior,
    calculate_bayesian_posterior,
    calculate_expected_loss,
    calculate_win_probabilities,
    compare_bayesian,
    make_rng,
    probability_a_beats_b,
)
from launchtest.services.statistics.confidence import (
    ConfidenceLevel,
    DecisionResult,
    RankingEntry,
    Recommendation,
    calculate_additional_samples_needed,
    classify_confidence,
    determine_recommendation,
    evaluate_confidence,
    generate_rationale,
)
from launchtest.services.statistics.metrics import (
    AggregateMetrics,
    InvalidMetricsError,
    VariantMetrics,
    calculate_aggregate_metrics,
    create_variant_metrics,
)
from launchtest.services.statistics.ranking import (
    QuickAnalysis,
    SortCriteria,
    StatisticsResult,
    analyze_variants,
    determine_winner,
    generate_ranking,
    is_clear_winner,
    quick_analysis,
    sort_variants,
)
from launchtest.services.statistics.thresholds import (
    DEFAULT_DECISION_CONFIG,
    DEFAULT_SAMPLE_THRESHOLDS,
    DEFAULT_STATISTICS_CONFIG,
    ConfidenceThresholdsConfig,
    DecisionConfig,
    SampleThresholdsConfig,
    StatisticsConfig,
    parse_decision_config,
)
from launchtest.services.statistics.wilson import (
    WilsonCiComparison,
    WilsonCiResult,
    calculate_variant_wilson_ci,
    calculate_wilson_ci,
    compare_all_variants_wilson_ci,
    compare_variants_wilson_ci,
    is_significant_winner,
)

__all__ = [
    "VariantMetrics",
    "AggregateMetrics",
    "InvalidMetricsError",
    "create_variant_metrics",
    "calculate_aggregate_metrics",
    "WilsonCiResult",
    "WilsonCiComparison",
    "calculate_wilson_ci",
    "calculate_variant_wilson_ci",
    "compare_variants_wilson_ci",
    "compare_all_variants_wilson_ci",
    "is_significant_winner",
    "BayesianPosterior",
    "BayesianComparison",
    "make_rng",
    "calculate_bayesian_posterior",
    "calculate_win_probabilities",
    "compare_bayesian",
    "probability_a_beats_b",
    "calculate_expected_loss",
    "ConfidenceLevel",
    "Recommendation",
    "RankingEntry",
    "DecisionResult",
    "classify_confidence",
    "calculate_additional_samples_needed",
    "generate_rationale",
    "determine_recommendation",
    "evaluate_confidence",
    "SortCriteria",
    "StatisticsResult",
    "QuickAnalysis",
    "sort_variants",
    "generate_ranking",
    "determine_winner",
    "is_clear_winner",
    "analyze_variants",
    "quick_analysis",
    "SampleThresholdsConfig",
    "ConfidenceThresholdsConfig",
    "DecisionConfig",
    "StatisticsConfig",
    "DEFAULT_SAMPLE_THRESHOLDS",
    "DEFAULT_DECISION_CONFIG",
    "DEFAULT_STATISTICS_CONFIG",
    "parse_decision_config",
]
