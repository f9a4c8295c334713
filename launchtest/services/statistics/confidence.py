"""
Confidence tier classification.

Three tiers describe how far the data can be trusted:

- insufficient: not enough traffic or conversions to read anything
- directional: a trend is visible but not yet statistically reliable
- confident: enough conversions everywhere and a >=95% Bayesian leader

``classify_confidence`` is the single implementation of the tier rules; the
statistics layer (``evaluate_confidence``) and the decision orchestrator both
call it.
"""

import enum
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from launchtest.services.statistics.bayes import BayesianComparison, compare_bayesian
from launchtest.services.statistics.metrics import (
    AggregateMetrics,
    VariantMetrics,
    calculate_aggregate_metrics,
    ensure_unique_variant_ids,
)
from launchtest.services.statistics.thresholds import (
    CONFIDENT_WIN_PROBABILITY,
    DEFAULT_SAMPLE_THRESHOLDS,
    DEFAULT_STATISTICS_CONFIG,
    FALLBACK_CVR,
    SampleThresholdsConfig,
    StatisticsConfig,
)
from launchtest.services.statistics.wilson import WilsonCiResult, calculate_variant_wilson_ci


# Win probabilities this close count as a tie
WIN_PROBABILITY_TIE_TOLERANCE = 0.01


class ConfidenceLevel(str, enum.Enum):
    INSUFFICIENT = "insufficient"
    DIRECTIONAL = "directional"
    CONFIDENT = "confident"


class Recommendation(str, enum.Enum):
    CONTINUE = "continue"
    STOP_WINNER = "stop_winner"
    STOP_NO_WINNER = "stop_no_winner"


@dataclass(frozen=True)
class RankingEntry:
    rank: int  # 1 = best
    variant_id: str
    metrics: VariantMetrics
    wilson_ci: WilsonCiResult
    bayesian_win_probability: float
    score: float


@dataclass(frozen=True)
class DecisionResult:
    confidence: ConfidenceLevel
    winner_id: Optional[str]
    ranking: List[RankingEntry]
    rationale: str
    recommendation: Recommendation
    additional_samples_needed: Optional[int]


def is_insufficient(aggregate: AggregateMetrics, thresholds: SampleThresholdsConfig) -> bool:
    return (
        aggregate.total_clicks < thresholds.insufficient.min_total_clicks
        and aggregate.total_conversions < thresholds.insufficient.min_total_cvs
    )


def is_directional(aggregate: AggregateMetrics, thresholds: SampleThresholdsConfig) -> bool:
    return (
        aggregate.total_clicks >= thresholds.directional.min_total_clicks
        or aggregate.total_conversions >= thresholds.directional.min_total_cvs
    )


def _meets_min_effect(variants: Sequence[VariantMetrics], min_effect: float) -> bool:
    if min_effect <= 0:
        return True
    if len(variants) < 2:
        return False

    by_cvr = sorted(variants, key=lambda v: v.cvr, reverse=True)
    top, runner_up = by_cvr[0], by_cvr[1]

    if runner_up.cvr == 0:
        return top.cvr >= min_effect

    return (top.cvr - runner_up.cvr) / runner_up.cvr >= min_effect


def is_confident(
    aggregate: AggregateMetrics,
    variants: Sequence[VariantMetrics],
    top_win_probability: float,
    thresholds: SampleThresholdsConfig,
    min_effect: float = 0.0,
) -> bool:
    if aggregate.total_conversions < thresholds.confident.min_total_cvs:
        return False

    min_per_variant = thresholds.confident.min_per_variant_cvs
    if not all(v.conversions >= min_per_variant for v in variants):
        return False

    if top_win_probability < CONFIDENT_WIN_PROBABILITY:
        return False

    return _meets_min_effect(variants, min_effect)


def classify_confidence(
    aggregate: AggregateMetrics,
    variants: Sequence[VariantMetrics],
    top_win_probability: float,
    thresholds: SampleThresholdsConfig = DEFAULT_SAMPLE_THRESHOLDS,
    min_effect: float = 0.0,
) -> ConfidenceLevel:
    # Order matters: confident implies directional, so it is checked first
    if is_insufficient(aggregate, thresholds):
        return ConfidenceLevel.INSUFFICIENT

    if is_confident(aggregate, variants, top_win_probability, thresholds, min_effect):
        return ConfidenceLevel.CONFIDENT

    if is_directional(aggregate, thresholds):
        return ConfidenceLevel.DIRECTIONAL

    return ConfidenceLevel.INSUFFICIENT


def calculate_additional_samples_needed(
    aggregate: AggregateMetrics,
    thresholds: SampleThresholdsConfig = DEFAULT_SAMPLE_THRESHOLDS,
) -> Optional[int]:
    """Estimate the extra clicks needed to reach the confident conversion count."""
    if aggregate.total_conversions >= thresholds.confident.min_total_cvs:
        return None

    current_cvr = (
        aggregate.total_conversions / aggregate.total_clicks if aggregate.total_clicks > 0 else 0.0
    )
    estimated_cvr = current_cvr if current_cvr > 0 else FALLBACK_CVR

    conversions_needed = thresholds.confident.min_total_cvs - aggregate.total_conversions
    return max(0, math.ceil(conversions_needed / estimated_cvr))


def generate_rationale(
    confidence: ConfidenceLevel,
    aggregate: AggregateMetrics,
    winner_id: Optional[str],
    top_win_probability: float,
    thresholds: SampleThresholdsConfig = DEFAULT_SAMPLE_THRESHOLDS,
) -> str:
    clicks = aggregate.total_clicks
    conversions = aggregate.total_conversions
    variant_count = aggregate.variant_count

    if confidence == ConfidenceLevel.INSUFFICIENT:
        return (
            f"Confidence: insufficient. "
            f"Current: {clicks} clicks, {conversions} conversions across {variant_count} variants. "
            f"Minimum required: {thresholds.insufficient.min_total_clicks} clicks or "
            f"{thresholds.insufficient.min_total_cvs} conversions to start reading trends, "
            f"{thresholds.directional.min_total_clicks} clicks or "
            f"{thresholds.directional.min_total_cvs} conversions for a directional read. "
            f"Recommendation: continue collecting data."
        )

    if confidence == ConfidenceLevel.DIRECTIONAL:
        if winner_id:
            return (
                f"Confidence: directional. "
                f'Variant "{winner_id}" is currently leading with '
                f"{top_win_probability * 100:.1f}% probability of being best. "
                f"Based on {clicks} clicks and {conversions} conversions across "
                f"{variant_count} variants. "
                f"Not yet confident: needs {thresholds.confident.min_total_cvs} total conversions, "
                f"{thresholds.confident.min_per_variant_cvs} per variant and "
                f"{CONFIDENT_WIN_PROBABILITY * 100:.0f}% win probability. "
                f"Recommendation: continue collecting data."
            )
        return (
            f"Confidence: directional, but no clear leader. "
            f"{clicks} clicks, {conversions} conversions across {variant_count} variants. "
            f"Recommendation: continue collecting data."
        )

    return (
        f"Confidence: confident. "
        f'Variant "{winner_id}" is the winner with '
        f"{top_win_probability * 100:.1f}% probability of being best. "
        f"Based on {clicks} clicks and {conversions} conversions across {variant_count} variants. "
        f"Criteria met: {thresholds.confident.min_total_cvs}+ total conversions, "
        f"{thresholds.confident.min_per_variant_cvs}+ per variant, "
        f"{CONFIDENT_WIN_PROBABILITY * 100:.0f}%+ win probability. "
        f"Recommendation: stop the test and select the winner."
    )


def single_variant_rationale(variant: VariantMetrics) -> str:
    return (
        f'Confidence: insufficient. Only one variant present ("{variant.variant_id}", '
        f"{variant.clicks} clicks, {variant.conversions} conversions); "
        f"a single variant cannot be compared against anything. "
        f"Add at least one more variant to reach a decision."
    )


def determine_recommendation(
    confidence: ConfidenceLevel, winner_id: Optional[str]
) -> Recommendation:
    if confidence == ConfidenceLevel.CONFIDENT and winner_id:
        return Recommendation.STOP_WINNER
    return Recommendation.CONTINUE


def _order_by_win_probability(
    variants: Sequence[VariantMetrics], win_probabilities: Dict[str, float]
) -> List[VariantMetrics]:
    """Order by win probability, with near-ties ordered by CVR.

    Variants within the tie tolerance of a group's leading (highest)
    probability form one group. Anchoring groups on their leader keeps the
    order independent of comparison order.
    """
    by_probability = sorted(
        variants, key=lambda v: win_probabilities.get(v.variant_id, 0.0), reverse=True
    )

    ordered: List[VariantMetrics] = []
    group: List[VariantMetrics] = []
    group_top = 0.0

    for variant in by_probability:
        probability = win_probabilities.get(variant.variant_id, 0.0)
        if group and group_top - probability > WIN_PROBABILITY_TIE_TOLERANCE + 1e-9:
            ordered.extend(sorted(group, key=lambda v: v.cvr, reverse=True))
            group = []
        if not group:
            group_top = probability
        group.append(variant)

    ordered.extend(sorted(group, key=lambda v: v.cvr, reverse=True))
    return ordered


def build_ranking_entries(
    variants: Sequence[VariantMetrics],
    win_probabilities: Dict[str, float],
    confidence_level: float = 0.95,
) -> List[RankingEntry]:
    """Rank by win probability, breaking near-ties by CVR."""
    ordered = _order_by_win_probability(variants, win_probabilities)

    entries = []
    for index, variant in enumerate(ordered):
        win_probability = win_probabilities.get(variant.variant_id, 0.0)
        entries.append(
            RankingEntry(
                rank=index + 1,
                variant_id=variant.variant_id,
                metrics=variant,
                wilson_ci=calculate_variant_wilson_ci(variant, confidence_level),
                bayesian_win_probability=win_probability,
                score=win_probability * 0.7 + variant.cvr * 0.3,
            )
        )

    return entries


def evaluate_confidence(
    variants: Sequence[VariantMetrics],
    config: StatisticsConfig = DEFAULT_STATISTICS_CONFIG,
    bayesian: Optional[BayesianComparison] = None,
) -> DecisionResult:
    """Classify the run and rank its variants.

    ``bayesian`` lets a caller that already ran ``compare_bayesian`` for these
    variants reuse it instead of simulating again.
    """
    if not variants:
        return DecisionResult(
            confidence=ConfidenceLevel.INSUFFICIENT,
            winner_id=None,
            ranking=[],
            rationale="No variants to analyze.",
            recommendation=Recommendation.CONTINUE,
            additional_samples_needed=None,
        )

    ensure_unique_variant_ids(variants)
    aggregate = calculate_aggregate_metrics(variants)

    if len(variants) == 1:
        only = variants[0]
        return DecisionResult(
            confidence=ConfidenceLevel.INSUFFICIENT,
            winner_id=None,
            ranking=build_ranking_entries(
                variants, {only.variant_id: 1.0}, config.wilson_confidence_level
            ),
            rationale=single_variant_rationale(only),
            recommendation=Recommendation.CONTINUE,
            additional_samples_needed=calculate_additional_samples_needed(
                aggregate, config.thresholds
            ),
        )

    if bayesian is None:
        bayesian = compare_bayesian(
            variants,
            config.bayes_prior_alpha,
            config.bayes_prior_beta,
            config.bayes_simulations,
            seed=config.seed,
        )

    confidence = classify_confidence(
        aggregate,
        variants,
        bayesian.likely_winner_probability,
        config.thresholds,
        config.min_effect,
    )

    winner_id = bayesian.likely_winner if confidence == ConfidenceLevel.CONFIDENT else None

    return DecisionResult(
        confidence=confidence,
        winner_id=winner_id,
        ranking=build_ranking_entries(
            variants, bayesian.win_probabilities, config.wilson_confidence_level
        ),
        rationale=generate_rationale(
            confidence,
            aggregate,
            bayesian.likely_winner,
            bayesian.likely_winner_probability,
            config.thresholds,
        ),
        recommendation=determine_recommendation(confidence, winner_id),
        additional_samples_needed=calculate_additional_samples_needed(
            aggregate, config.thresholds
        ),
    )
