from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from launchtest.models.schemas import (
    AggregateSummary,
    BayesSummary,
    DecisionAnalysisResult,
    RawVariantCounts,
    StatsDetails,
    ThresholdsUsed,
    VariantRankingEntry,
    WilsonComparisonSummary,
    WilsonInterval,
    WinnerInfo,
)
from launchtest.services.statistics.bayes import (
    DEFAULT_SEED,
    DEFAULT_SIMULATIONS,
    calculate_expected_loss,
    compare_bayesian,
    make_rng,
)
from launchtest.services.statistics.confidence import (
    ConfidenceLevel,
    RankingEntry,
    Recommendation,
    build_ranking_entries,
    calculate_additional_samples_needed,
    classify_confidence,
    determine_recommendation,
    generate_rationale,
    single_variant_rationale,
)
from launchtest.services.statistics.metrics import (
    VariantMetrics,
    calculate_aggregate_metrics,
    create_variant_metrics,
    ensure_unique_variant_ids,
)
from launchtest.services.statistics.thresholds import (
    DEFAULT_DECISION_CONFIG,
    DecisionConfig,
    to_statistics_config,
)
from launchtest.services.statistics.wilson import WilsonCiResult, compare_all_variants_wilson_ci

logger = structlog.get_logger()

RawCounts = Union[RawVariantCounts, Mapping[str, Any]]


def build_variant_metrics(raw_counts: Iterable[RawCounts]) -> List[VariantMetrics]:
    metrics = []
    for raw in raw_counts:
        counts = raw if isinstance(raw, RawVariantCounts) else RawVariantCounts.model_validate(raw)
        metrics.append(
            create_variant_metrics(counts.variant_id, counts.clicks, counts.conversions)
        )

    ensure_unique_variant_ids(metrics)
    return metrics


def _interval(ci: WilsonCiResult) -> WilsonInterval:
    return WilsonInterval(
        point=ci.point, lower=ci.lower, upper=ci.upper, confidence_level=ci.confidence_level
    )


def _ranking_entry(entry: RankingEntry) -> VariantRankingEntry:
    return VariantRankingEntry(
        rank=entry.rank,
        variant_id=entry.variant_id,
        cvr=entry.metrics.cvr,
        conversions=entry.metrics.conversions,
        clicks=entry.metrics.clicks,
        win_probability=entry.bayesian_win_probability,
        score=entry.score,
        wilson_ci=_interval(entry.wilson_ci),
    )


def _winner_info(winner_id: Optional[str], ranking: Sequence[RankingEntry]) -> Optional[WinnerInfo]:
    if winner_id is None:
        return None

    entry = next((r for r in ranking if r.variant_id == winner_id), None)
    if entry is None:
        return None

    return WinnerInfo(
        variant_id=entry.variant_id,
        cvr=entry.metrics.cvr,
        conversions=entry.metrics.conversions,
        clicks=entry.metrics.clicks,
        win_probability=entry.bayesian_win_probability,
        wilson_ci=_interval(entry.wilson_ci),
    )


def _empty_result(config: DecisionConfig) -> DecisionAnalysisResult:
    return DecisionAnalysisResult(
        confidence=ConfidenceLevel.INSUFFICIENT,
        winner_id=None,
        winner_info=None,
        ranking=[],
        stats=StatsDetails(
            method=config.confidence_thresholds.method,
            aggregate=AggregateSummary(total_clicks=0, total_conversions=0, variant_count=0),
            wilson_comparisons=[],
            bayes_analysis=BayesSummary(
                win_probabilities={},
                expected_loss={},
                likely_winner=None,
                likely_winner_probability=0.0,
            ),
            thresholds_used=ThresholdsUsed(
                sample=config.sample_thresholds, confidence=config.confidence_thresholds
            ),
        ),
        rationale="No variants to analyze.",
        recommendation=Recommendation.CONTINUE,
        additional_samples_needed=None,
    )


def analyze_variants(
    raw_counts: Iterable[RawCounts],
    config: DecisionConfig = DEFAULT_DECISION_CONFIG,
    *,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = DEFAULT_SEED,
) -> DecisionAnalysisResult:
    """Run the full decision analysis over raw per-variant counts.

    Args:
        raw_counts: ``{"variantId", "clicks", "conversions"}`` mappings (or
            ``variant_id``) or ``RawVariantCounts`` models.
        config: Parsed run thresholds, see ``parse_decision_config``.
        simulations: Monte-Carlo draws for win probability and expected loss.
        seed: Seed for the analysis' random generator; ``None`` draws fresh
            entropy and gives non-reproducible results.

    Raises:
        InvalidMetricsError: A variant has negative counts, more conversions
            than clicks, or a duplicated id.
    """
    variants = build_variant_metrics(raw_counts)

    if not variants:
        return _empty_result(config)

    stats_config = to_statistics_config(config, simulations=simulations, seed=seed)
    thresholds = config.sample_thresholds
    confidence_level = stats_config.wilson_confidence_level

    aggregate = calculate_aggregate_metrics(variants)

    # One generator threads through both simulations
    rng = make_rng(seed)
    bayesian = compare_bayesian(
        variants,
        stats_config.bayes_prior_alpha,
        stats_config.bayes_prior_beta,
        simulations,
        rng=rng,
    )
    expected_loss = calculate_expected_loss(
        variants,
        stats_config.bayes_prior_alpha,
        stats_config.bayes_prior_beta,
        simulations,
        rng=rng,
    )

    comparisons = compare_all_variants_wilson_ci(variants, confidence_level)

    if len(variants) == 1:
        # A single arm is never more than insufficient
        confidence = ConfidenceLevel.INSUFFICIENT
    else:
        confidence = classify_confidence(
            aggregate,
            variants,
            bayesian.likely_winner_probability,
            thresholds,
            stats_config.min_effect,
        )

    winner_id = bayesian.likely_winner if confidence == ConfidenceLevel.CONFIDENT else None

    ranking = build_ranking_entries(variants, bayesian.win_probabilities, confidence_level)

    if len(variants) == 1:
        rationale = single_variant_rationale(variants[0])
    else:
        rationale = generate_rationale(
            confidence,
            aggregate,
            bayesian.likely_winner,
            bayesian.likely_winner_probability,
            thresholds,
        )

    stats = StatsDetails(
        method=config.confidence_thresholds.method,
        aggregate=AggregateSummary(
            total_clicks=aggregate.total_clicks,
            total_conversions=aggregate.total_conversions,
            variant_count=aggregate.variant_count,
        ),
        wilson_comparisons=[
            WilsonComparisonSummary(
                variant_a=c.variant_a.variant_id,
                variant_b=c.variant_b.variant_id,
                overlapping=c.overlapping,
                relative_lift=c.relative_lift,
                a_significantly_better=c.a_significantly_better,
                b_significantly_better=c.b_significantly_better,
            )
            for c in comparisons
        ],
        bayes_analysis=BayesSummary(
            win_probabilities=dict(bayesian.win_probabilities),
            expected_loss=expected_loss,
            likely_winner=bayesian.likely_winner,
            likely_winner_probability=bayesian.likely_winner_probability,
        ),
        thresholds_used=ThresholdsUsed(
            sample=config.sample_thresholds, confidence=config.confidence_thresholds
        ),
    )

    result = DecisionAnalysisResult(
        confidence=confidence,
        winner_id=winner_id,
        winner_info=_winner_info(winner_id, ranking),
        ranking=[_ranking_entry(entry) for entry in ranking],
        stats=stats,
        rationale=rationale,
        recommendation=determine_recommendation(confidence, winner_id),
        additional_samples_needed=calculate_additional_samples_needed(aggregate, thresholds),
    )

    logger.info(
        "decision_analyzed",
        confidence=confidence.value,
        winner_id=winner_id,
        variant_count=aggregate.variant_count,
        total_clicks=aggregate.total_clicks,
        total_conversions=aggregate.total_conversions,
        top_win_probability=round(bayesian.likely_winner_probability, 4),
    )

    return result
