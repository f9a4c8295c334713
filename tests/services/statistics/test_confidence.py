from unittest.mock import patch

import pytest

from launchtest.services.statistics.bayes import compare_bayesian
from launchtest.services.statistics.confidence import (
    ConfidenceLevel,
    Recommendation,
    build_ranking_entries,
    calculate_additional_samples_needed,
    classify_confidence,
    determine_recommendation,
    evaluate_confidence,
    generate_rationale,
)
from launchtest.services.statistics.metrics import (
    AggregateMetrics,
    InvalidMetricsError,
    calculate_aggregate_metrics,
    create_variant_metrics,
)
from launchtest.services.statistics.thresholds import (
    DEFAULT_SAMPLE_THRESHOLDS,
    ConfidentThresholds,
    SampleThresholdsConfig,
    StatisticsConfig,
)


@pytest.fixture
def clear_winner():
    return [
        create_variant_metrics("control", 5000, 500),
        create_variant_metrics("treatment", 5000, 100),
    ]


class TestClassifyConfidence:
    def test_insufficient_needs_both_clicks_and_conversions_low(self):
        variants = [create_variant_metrics("a", 50, 1), create_variant_metrics("b", 50, 1)]
        aggregate = calculate_aggregate_metrics(variants)

        assert classify_confidence(aggregate, variants, 0.5) == ConfidenceLevel.INSUFFICIENT

    def test_clicks_alone_reach_directional(self):
        variants = [create_variant_metrics("a", 150, 1), create_variant_metrics("b", 150, 1)]
        aggregate = calculate_aggregate_metrics(variants)

        assert classify_confidence(aggregate, variants, 0.5) == ConfidenceLevel.DIRECTIONAL

    def test_conversions_alone_reach_directional(self):
        variants = [create_variant_metrics("a", 40, 3), create_variant_metrics("b", 40, 3)]
        aggregate = calculate_aggregate_metrics(variants)

        assert classify_confidence(aggregate, variants, 0.5) == ConfidenceLevel.DIRECTIONAL

    def test_between_insufficient_and_directional_falls_back(self):
        thresholds = SampleThresholdsConfig.model_validate(
            {
                "insufficient": {"min_total_clicks": 100, "min_total_cvs": 3},
                "directional": {"min_total_clicks": 500, "min_total_cvs": 10},
            }
        )
        variants = [create_variant_metrics("a", 100, 2), create_variant_metrics("b", 100, 2)]
        aggregate = calculate_aggregate_metrics(variants)

        level = classify_confidence(aggregate, variants, 0.5, thresholds)

        assert level == ConfidenceLevel.INSUFFICIENT

    def test_confident(self, clear_winner):
        aggregate = calculate_aggregate_metrics(clear_winner)

        assert classify_confidence(aggregate, clear_winner, 0.999) == ConfidenceLevel.CONFIDENT

    def test_win_probability_below_threshold_is_directional(self, clear_winner):
        aggregate = calculate_aggregate_metrics(clear_winner)

        assert classify_confidence(aggregate, clear_winner, 0.94) == ConfidenceLevel.DIRECTIONAL

    def test_win_probability_at_threshold_is_confident(self, clear_winner):
        aggregate = calculate_aggregate_metrics(clear_winner)

        assert classify_confidence(aggregate, clear_winner, 0.95) == ConfidenceLevel.CONFIDENT

    def test_per_variant_minimum(self):
        variants = [create_variant_metrics("a", 5000, 500), create_variant_metrics("b", 5000, 4)]
        aggregate = calculate_aggregate_metrics(variants)

        assert classify_confidence(aggregate, variants, 1.0) == ConfidenceLevel.DIRECTIONAL

    def test_custom_confident_thresholds(self, clear_winner):
        thresholds = SampleThresholdsConfig(
            confident=ConfidentThresholds(min_total_cvs=1000, min_per_variant_cvs=5)
        )
        aggregate = calculate_aggregate_metrics(clear_winner)

        assert (
            classify_confidence(aggregate, clear_winner, 1.0, thresholds)
            == ConfidenceLevel.DIRECTIONAL
        )

    def test_min_effect_gate(self, clear_winner):
        aggregate = calculate_aggregate_metrics(clear_winner)

        # Lift of control over treatment is 4.0
        assert (
            classify_confidence(aggregate, clear_winner, 1.0, DEFAULT_SAMPLE_THRESHOLDS, 3.0)
            == ConfidenceLevel.CONFIDENT
        )
        assert (
            classify_confidence(aggregate, clear_winner, 1.0, DEFAULT_SAMPLE_THRESHOLDS, 10.0)
            == ConfidenceLevel.DIRECTIONAL
        )


class TestAdditionalSamples:
    def test_uses_current_cvr(self):
        aggregate = AggregateMetrics(total_clicks=1000, total_conversions=10, variant_count=2)

        needed = calculate_additional_samples_needed(aggregate)

        assert needed > 0
        assert needed == pytest.approx(1000, abs=1)

    def test_falls_back_to_one_percent_without_data(self):
        aggregate = AggregateMetrics(total_clicks=0, total_conversions=0, variant_count=2)

        assert calculate_additional_samples_needed(aggregate) == pytest.approx(2000, abs=1)

    def test_none_once_target_reached(self):
        aggregate = AggregateMetrics(total_clicks=1000, total_conversions=20, variant_count=2)

        assert calculate_additional_samples_needed(aggregate) is None


class TestRationale:
    def test_insufficient_lists_minimums(self):
        aggregate = AggregateMetrics(total_clicks=50, total_conversions=1, variant_count=2)

        rationale = generate_rationale(ConfidenceLevel.INSUFFICIENT, aggregate, "a", 0.6)

        assert rationale.startswith("Confidence: insufficient.")
        assert "50 clicks" in rationale
        assert "200 clicks" in rationale
        assert "continue collecting data" in rationale

    def test_directional_names_leader(self):
        aggregate = AggregateMetrics(total_clicks=600, total_conversions=12, variant_count=2)

        rationale = generate_rationale(ConfidenceLevel.DIRECTIONAL, aggregate, "b", 0.8734)

        assert rationale.startswith("Confidence: directional.")
        assert '"b"' in rationale
        assert "87.3%" in rationale

    def test_directional_without_leader(self):
        aggregate = AggregateMetrics(total_clicks=600, total_conversions=12, variant_count=2)

        rationale = generate_rationale(ConfidenceLevel.DIRECTIONAL, aggregate, None, 0.0)

        assert "no clear leader" in rationale

    def test_confident(self):
        aggregate = AggregateMetrics(total_clicks=10000, total_conversions=600, variant_count=2)

        rationale = generate_rationale(ConfidenceLevel.CONFIDENT, aggregate, "a", 0.9991)

        assert rationale.startswith("Confidence: confident.")
        assert "99.9%" in rationale
        assert "select the winner" in rationale


class TestRecommendation:
    def test_confident_with_winner_stops(self):
        assert (
            determine_recommendation(ConfidenceLevel.CONFIDENT, "a") == Recommendation.STOP_WINNER
        )

    @pytest.mark.parametrize(
        "confidence,winner",
        [
            (ConfidenceLevel.CONFIDENT, None),
            (ConfidenceLevel.DIRECTIONAL, "a"),
            (ConfidenceLevel.INSUFFICIENT, None),
        ],
    )
    def test_otherwise_continue(self, confidence, winner):
        assert determine_recommendation(confidence, winner) == Recommendation.CONTINUE


class TestBuildRankingEntries:
    def test_orders_by_probability_then_cvr(self):
        variants = [
            create_variant_metrics("a", 100, 5),
            create_variant_metrics("b", 100, 9),
            create_variant_metrics("c", 100, 7),
        ]

        entries = build_ranking_entries(variants, {"a": 0.6, "b": 0.2, "c": 0.2})

        assert [e.variant_id for e in entries] == ["a", "b", "c"]
        assert [e.rank for e in entries] == [1, 2, 3]
        assert entries[0].score == pytest.approx(0.6 * 0.7 + 0.05 * 0.3)

    def test_missing_probability_counts_as_zero(self):
        variants = [create_variant_metrics("a", 100, 5), create_variant_metrics("b", 100, 1)]

        entries = build_ranking_entries(variants, {"b": 1.0})

        assert entries[-1].variant_id == "a"
        assert entries[-1].bayesian_win_probability == 0.0

    def test_near_tie_is_ordered_by_cvr(self):
        variants = [create_variant_metrics("a", 1000, 40), create_variant_metrics("b", 1000, 60)]

        entries = build_ranking_entries(variants, {"a": 0.505, "b": 0.495})

        assert [e.variant_id for e in entries] == ["b", "a"]
        assert entries[0].bayesian_win_probability == 0.495

    def test_gap_beyond_tolerance_keeps_probability_order(self):
        variants = [create_variant_metrics("a", 1000, 40), create_variant_metrics("b", 1000, 60)]

        entries = build_ranking_entries(variants, {"a": 0.52, "b": 0.48})

        assert [e.variant_id for e in entries] == ["a", "b"]

    def test_tie_groups_are_anchored_on_their_leader(self):
        variants = [
            create_variant_metrics("a", 1000, 50),
            create_variant_metrics("b", 1000, 80),
            create_variant_metrics("c", 1000, 200),
        ]

        # b is within 0.01 of a, c is within 0.01 of b but not of a
        entries = build_ranking_entries(variants, {"a": 0.52, "b": 0.511, "c": 0.502})

        assert [e.variant_id for e in entries] == ["b", "a", "c"]
        assert [e.rank for e in entries] == [1, 2, 3]

    def test_order_does_not_depend_on_input_order(self):
        variants = [
            create_variant_metrics("a", 1000, 50),
            create_variant_metrics("b", 1000, 80),
            create_variant_metrics("c", 1000, 200),
        ]
        probabilities = {"a": 0.52, "b": 0.511, "c": 0.502}

        forward = build_ranking_entries(variants, probabilities)
        backward = build_ranking_entries(list(reversed(variants)), probabilities)

        assert [e.variant_id for e in forward] == [e.variant_id for e in backward]


class TestEvaluateConfidence:
    def test_reuses_given_bayesian_comparison(self, clear_winner):
        bayesian = compare_bayesian(clear_winner, seed=3)

        with patch("launchtest.services.statistics.confidence.compare_bayesian") as simulate:
            result = evaluate_confidence(clear_winner, bayesian=bayesian)

        simulate.assert_not_called()
        assert result.ranking[0].bayesian_win_probability == bayesian.win_probabilities["control"]

    def test_empty(self):
        result = evaluate_confidence([])

        assert result.confidence == ConfidenceLevel.INSUFFICIENT
        assert result.winner_id is None
        assert result.ranking == []
        assert result.recommendation == Recommendation.CONTINUE
        assert result.additional_samples_needed is None

    def test_single_variant(self):
        result = evaluate_confidence([create_variant_metrics("only", 1000, 50)])

        assert result.confidence == ConfidenceLevel.INSUFFICIENT
        assert result.winner_id is None
        assert "only one variant" in result.rationale.lower()
        assert len(result.ranking) == 1
        assert result.ranking[0].bayesian_win_probability == 1.0
        assert result.recommendation == Recommendation.CONTINUE

    def test_clear_winner(self, clear_winner):
        result = evaluate_confidence(clear_winner)

        assert result.confidence == ConfidenceLevel.CONFIDENT
        assert result.winner_id == "control"
        assert result.recommendation == Recommendation.STOP_WINNER
        assert result.additional_samples_needed is None
        assert result.ranking[0].variant_id == "control"
        assert result.ranking[0].bayesian_win_probability > 0.99

    def test_too_little_data(self):
        variants = [create_variant_metrics("a", 50, 1), create_variant_metrics("b", 50, 0)]

        result = evaluate_confidence(variants)

        assert result.confidence == ConfidenceLevel.INSUFFICIENT
        assert result.winner_id is None
        assert result.additional_samples_needed > 0

    def test_close_race_is_directional(self):
        variants = [create_variant_metrics("a", 1000, 50), create_variant_metrics("b", 1000, 52)]

        result = evaluate_confidence(variants)

        assert result.confidence == ConfidenceLevel.DIRECTIONAL
        assert result.winner_id is None
        assert result.recommendation == Recommendation.CONTINUE

    def test_min_effect_blocks_confident(self, clear_winner):
        result = evaluate_confidence(clear_winner, StatisticsConfig(min_effect=10.0))

        assert result.confidence == ConfidenceLevel.DIRECTIONAL
        assert result.winner_id is None

    def test_deterministic(self, clear_winner):
        first = evaluate_confidence(clear_winner)
        second = evaluate_confidence(clear_winner)

        assert first == second

    def test_rejects_duplicate_ids(self):
        variants = [create_variant_metrics("a", 100, 5), create_variant_metrics("a", 100, 6)]

        with pytest.raises(InvalidMetricsError):
            evaluate_confidence(variants)
