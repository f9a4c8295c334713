"""
Wilson score interval for binomial proportions.

Preferred over the normal (Wald) approximation for conversion rates: it
stays inside [0, 1] and keeps reasonable coverage for small samples and
proportions near 0 or 1.

Reference: Wilson, E.B. (1927). "Probable inference, the law of succession,
and statistical inference". JASA 22(158).
"""

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Sequence

from scipy import stats as scipy_stats

from launchtest.services.statistics.metrics import VariantMetrics


@dataclass(frozen=True)
class WilsonCiResult:
    point: float
    lower: float
    upper: float
    confidence_level: float


@dataclass(frozen=True)
class VariantInterval:
    variant_id: str
    cvr: float
    ci: WilsonCiResult


@dataclass(frozen=True)
class WilsonCiComparison:
    variant_a: VariantInterval
    variant_b: VariantInterval
    overlapping: bool
    relative_lift: float  # A over B, as a fraction
    a_significantly_better: bool
    b_significantly_better: bool


@lru_cache(maxsize=32)
def get_z_score(confidence_level: float) -> float:
    if not 0 < confidence_level < 1:
        raise ValueError(f"confidence_level must be in (0, 1), got {confidence_level}")

    alpha = 1 - confidence_level
    return float(scipy_stats.norm.ppf(1 - alpha / 2))


def calculate_wilson_ci(
    successes: int, trials: int, confidence_level: float = 0.95
) -> WilsonCiResult:
    if trials <= 0:
        return WilsonCiResult(point=0.0, lower=0.0, upper=0.0, confidence_level=confidence_level)

    n = trials
    p = successes / n
    z = get_z_score(confidence_level)
    z2 = z * z

    denominator = 1 + z2 / n
    center = (p + z2 / (2 * n)) / denominator
    margin = z * math.sqrt(p * (1 - p) / n + z2 / (4 * n * n)) / denominator

    # Clamp, and keep the point inside the bounds despite float rounding at p=0 or p=1
    lower = min(max(0.0, center - margin), p)
    upper = max(min(1.0, center + margin), p)

    return WilsonCiResult(point=p, lower=lower, upper=upper, confidence_level=confidence_level)


def calculate_variant_wilson_ci(
    variant: VariantMetrics, confidence_level: float = 0.95
) -> WilsonCiResult:
    return calculate_wilson_ci(variant.conversions, variant.clicks, confidence_level)


def compare_variants_wilson_ci(
    variant_a: VariantMetrics, variant_b: VariantMetrics, confidence_level: float = 0.95
) -> WilsonCiComparison:
    ci_a = calculate_variant_wilson_ci(variant_a, confidence_level)
    ci_b = calculate_variant_wilson_ci(variant_b, confidence_level)

    overlapping = ci_a.lower <= ci_b.upper and ci_b.lower <= ci_a.upper

    if variant_b.cvr > 0:
        relative_lift = (variant_a.cvr - variant_b.cvr) / variant_b.cvr
    else:
        relative_lift = 0.0

    return WilsonCiComparison(
        variant_a=VariantInterval(variant_a.variant_id, variant_a.cvr, ci_a),
        variant_b=VariantInterval(variant_b.variant_id, variant_b.cvr, ci_b),
        overlapping=overlapping,
        relative_lift=relative_lift,
        a_significantly_better=ci_a.lower > ci_b.upper,
        b_significantly_better=ci_b.lower > ci_a.upper,
    )


def compare_all_variants_wilson_ci(
    variants: Sequence[VariantMetrics], confidence_level: float = 0.95
) -> List[WilsonCiComparison]:
    comparisons = []

    for i in range(len(variants)):
        for j in range(i + 1, len(variants)):
            comparisons.append(
                compare_variants_wilson_ci(variants[i], variants[j], confidence_level)
            )

    return comparisons


def is_significant_winner(
    target: VariantMetrics,
    others: Sequence[VariantMetrics],
    confidence_level: float = 0.95,
) -> bool:
    """True when the target's lower bound clears every other variant's upper bound."""
    if not others:
        return False

    target_ci = calculate_variant_wilson_ci(target, confidence_level)

    for other in others:
        other_ci = calculate_variant_wilson_ci(other, confidence_level)
        if not target_ci.lower > other_ci.upper:
            return False

    return True
