"""
Ranking and winner selection for A/B test variants.

Combines point estimates, Wilson lower bounds, Bayesian win probabilities and
expected loss into a composite ranking, and offers two standalone winner
checks: ``determine_winner`` (Bayesian, with an 80-point probability gap
guardrail) and ``is_clear_winner`` (Wilson intervals only).

The decision pathway (``evaluate_confidence``, ``quick_analysis`` and the
decision orchestrator) always uses the threshold-gated winner from the
confidence classifier; the helpers here never feed into it.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from launchtest.services.statistics.bayes import (
    BayesianComparison,
    calculate_expected_loss,
    compare_bayesian,
)
from launchtest.services.statistics.confidence import (
    ConfidenceLevel,
    DecisionResult,
    RankingEntry,
    evaluate_confidence,
)
from launchtest.services.statistics.metrics import (
    AggregateMetrics,
    VariantMetrics,
    calculate_aggregate_metrics,
    ensure_unique_variant_ids,
)
from launchtest.services.statistics.thresholds import DEFAULT_STATISTICS_CONFIG, StatisticsConfig
from launchtest.services.statistics.wilson import (
    WilsonCiComparison,
    calculate_variant_wilson_ci,
    compare_all_variants_wilson_ci,
    is_significant_winner,
)

# Composite score weights
CVR_WEIGHT = 0.3
WILSON_LOWER_WEIGHT = 0.2
WIN_PROBABILITY_WEIGHT = 0.4
EXPECTED_LOSS_WEIGHT = 0.1

MIN_WIN_PROBABILITY = 0.95
MIN_PROBABILITY_GAP = 0.8


class SortCriteria(str, enum.Enum):
    CVR = "cvr"
    WILSON_LOWER = "wilson_lower"
    BAYESIAN_PROBABILITY = "bayesian_probability"
    EXPECTED_LOSS = "expected_loss"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class StatisticsResult:
    decision: DecisionResult
    wilson_analysis: List[WilsonCiComparison]
    bayesian_analysis: BayesianComparison
    aggregate: AggregateMetrics
    analyzed_at: str  # ISO-8601, UTC


@dataclass(frozen=True)
class QuickAnalysis:
    winner_id: Optional[str]
    confidence: ConfidenceLevel
    top_win_probability: float


def composite_score(
    variant: VariantMetrics,
    bayesian_result: Optional[BayesianComparison] = None,
    expected_loss: Optional[Dict[str, float]] = None,
    confidence_level: float = 0.95,
) -> float:
    score = variant.cvr * CVR_WEIGHT

    ci = calculate_variant_wilson_ci(variant, confidence_level)
    score += ci.lower * WILSON_LOWER_WEIGHT

    if bayesian_result is not None:
        probability = bayesian_result.win_probabilities.get(variant.variant_id, 0.0)
        score += probability * WIN_PROBABILITY_WEIGHT

    if expected_loss:
        max_loss = max(expected_loss.values())
        loss = expected_loss.get(variant.variant_id, max_loss)
        normalized_loss = loss / max_loss if max_loss > 0 else 0.0
        score += (1 - normalized_loss) * EXPECTED_LOSS_WEIGHT

    return score


def sort_variants(
    variants: Sequence[VariantMetrics],
    criteria: SortCriteria = SortCriteria.COMPOSITE,
    bayesian_result: Optional[BayesianComparison] = None,
    expected_loss: Optional[Dict[str, float]] = None,
    config: StatisticsConfig = DEFAULT_STATISTICS_CONFIG,
) -> List[VariantMetrics]:
    """Return a new list ordered best-first; sorts are stable."""
    ensure_unique_variant_ids(variants)
    criteria = SortCriteria(criteria)
    level = config.wilson_confidence_level

    if criteria == SortCriteria.CVR:
        return sorted(variants, key=lambda v: v.cvr, reverse=True)

    if criteria == SortCriteria.WILSON_LOWER:
        return sorted(
            variants,
            key=lambda v: calculate_variant_wilson_ci(v, level).lower,
            reverse=True,
        )

    if criteria == SortCriteria.BAYESIAN_PROBABILITY:
        if bayesian_result is None:
            return list(variants)
        probabilities = bayesian_result.win_probabilities
        return sorted(variants, key=lambda v: probabilities.get(v.variant_id, 0.0), reverse=True)

    if criteria == SortCriteria.EXPECTED_LOSS:
        if expected_loss is None:
            return list(variants)
        # Lower loss is better; variants without loss data go last
        return sorted(variants, key=lambda v: expected_loss.get(v.variant_id, float("inf")))

    scores = {
        v.variant_id: composite_score(v, bayesian_result, expected_loss, level) for v in variants
    }
    return sorted(variants, key=lambda v: scores[v.variant_id], reverse=True)


def generate_ranking(
    variants: Sequence[VariantMetrics],
    config: StatisticsConfig = DEFAULT_STATISTICS_CONFIG,
) -> List[RankingEntry]:
    if not variants:
        return []

    ensure_unique_variant_ids(variants)

    bayesian_result = compare_bayesian(
        variants,
        config.bayes_prior_alpha,
        config.bayes_prior_beta,
        config.bayes_simulations,
        seed=config.seed,
    )
    expected_loss = calculate_expected_loss(
        variants,
        config.bayes_prior_alpha,
        config.bayes_prior_beta,
        config.bayes_simulations,
        seed=config.seed,
    )

    ordered = sort_variants(
        variants, SortCriteria.COMPOSITE, bayesian_result, expected_loss, config
    )

    return [
        RankingEntry(
            rank=index + 1,
            variant_id=variant.variant_id,
            metrics=variant,
            wilson_ci=calculate_variant_wilson_ci(variant, config.wilson_confidence_level),
            bayesian_win_probability=bayesian_result.win_probabilities.get(
                variant.variant_id, 0.0
            ),
            score=composite_score(
                variant, bayesian_result, expected_loss, config.wilson_confidence_level
            ),
        )
        for index, variant in enumerate(ordered)
    ]


def determine_winner(
    ranking: Sequence[RankingEntry], min_win_probability: float = MIN_WIN_PROBABILITY
) -> Optional[str]:
    """Top-ranked variant if it is both likely best and far ahead of second place."""
    if not ranking:
        return None

    top = ranking[0]
    if top.bayesian_win_probability < min_win_probability:
        return None

    if len(ranking) > 1:
        gap = top.bayesian_win_probability - ranking[1].bayesian_win_probability
        if gap < MIN_PROBABILITY_GAP:
            return None

    return top.variant_id


def is_clear_winner(
    variant_id: str,
    variants: Sequence[VariantMetrics],
    config: StatisticsConfig = DEFAULT_STATISTICS_CONFIG,
) -> bool:
    target = next((v for v in variants if v.variant_id == variant_id), None)
    if target is None:
        return False

    others = [v for v in variants if v.variant_id != variant_id]
    return is_significant_winner(target, others, config.wilson_confidence_level)


def analyze_variants(
    variants: Sequence[VariantMetrics],
    config: StatisticsConfig = DEFAULT_STATISTICS_CONFIG,
) -> StatisticsResult:
    ensure_unique_variant_ids(variants)

    # One simulation feeds both the decision and the reported Bayesian analysis
    bayesian_analysis = compare_bayesian(
        variants,
        config.bayes_prior_alpha,
        config.bayes_prior_beta,
        config.bayes_simulations,
        seed=config.seed,
    )
    decision = evaluate_confidence(variants, config, bayesian=bayesian_analysis)

    return StatisticsResult(
        decision=decision,
        wilson_analysis=compare_all_variants_wilson_ci(variants, config.wilson_confidence_level),
        bayesian_analysis=bayesian_analysis,
        aggregate=calculate_aggregate_metrics(variants),
        analyzed_at=datetime.now(timezone.utc).isoformat(),
    )


def quick_analysis(
    variants: Sequence[VariantMetrics],
    config: StatisticsConfig = DEFAULT_STATISTICS_CONFIG,
) -> QuickAnalysis:
    if not variants:
        return QuickAnalysis(
            winner_id=None, confidence=ConfidenceLevel.INSUFFICIENT, top_win_probability=0.0
        )

    decision = evaluate_confidence(variants, config)
    top_win_probability = decision.ranking[0].bayesian_win_probability if decision.ranking else 0.0

    return QuickAnalysis(
        winner_id=decision.winner_id,
        confidence=decision.confidence,
        top_win_probability=top_win_probability,
    )
