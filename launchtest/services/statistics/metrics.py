from dataclasses import dataclass
from typing import Iterable


class InvalidMetricsError(ValueError):
    """Raised when a variant's click/conversion counts are impossible."""


@dataclass(frozen=True)
class VariantMetrics:
    variant_id: str
    clicks: int
    conversions: int
    cvr: float

    @property
    def non_conversions(self) -> int:
        return self.clicks - self.conversions


@dataclass(frozen=True)
class AggregateMetrics:
    total_clicks: int
    total_conversions: int
    variant_count: int


def calculate_cvr(conversions: int, clicks: int) -> float:
    if clicks == 0:
        return 0.0
    return conversions / clicks


def create_variant_metrics(variant_id: str, clicks: int, conversions: int) -> VariantMetrics:
    if clicks < 0 or conversions < 0:
        raise InvalidMetricsError(
            f"Variant {variant_id!r} has negative counts "
            f"(clicks={clicks}, conversions={conversions})"
        )
    if conversions > clicks:
        raise InvalidMetricsError(
            f"Variant {variant_id!r} has more conversions than clicks "
            f"(clicks={clicks}, conversions={conversions})"
        )

    return VariantMetrics(
        variant_id=variant_id,
        clicks=clicks,
        conversions=conversions,
        cvr=calculate_cvr(conversions, clicks),
    )


def calculate_aggregate_metrics(variants: Iterable[VariantMetrics]) -> AggregateMetrics:
    total_clicks = 0
    total_conversions = 0
    variant_count = 0

    for variant in variants:
        total_clicks += variant.clicks
        total_conversions += variant.conversions
        variant_count += 1

    return AggregateMetrics(
        total_clicks=total_clicks,
        total_conversions=total_conversions,
        variant_count=variant_count,
    )


def ensure_unique_variant_ids(variants: Iterable[VariantMetrics]) -> None:
    seen = set()
    for variant in variants:
        if variant.variant_id in seen:
            raise InvalidMetricsError(f"Duplicate variant id {variant.variant_id!r}")
        seen.add(variant.variant_id)
