"""
Threshold configuration for the decision engine.

Runs carry their thresholds as JSON in the run design::

    {
        "sample_thresholds": {
            "insufficient": {"min_total_clicks": 200, "min_total_cvs": 3},
            "directional": {"min_total_clicks": 200, "min_total_cvs": 5},
            "confident": {"min_total_cvs": 20, "min_per_variant_cvs": 5}
        },
        "confidence_thresholds": {"method": "wilson", "alpha": 0.05, "min_effect": 0}
    }

Any subset may be present. ``parse_decision_config`` fills every missing or
malformed field from the defaults independently and never raises.
"""

import json
import math
from typing import Any, Literal, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from launchtest.services.statistics.bayes import DEFAULT_SEED, DEFAULT_SIMULATIONS

logger = structlog.get_logger()

CONFIDENT_WIN_PROBABILITY = 0.95
FALLBACK_CVR = 0.01


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class InsufficientThresholds(_FrozenModel):
    min_total_clicks: int = 200
    min_total_cvs: int = 3


class DirectionalThresholds(_FrozenModel):
    min_total_clicks: int = 200
    min_total_cvs: int = 5


class ConfidentThresholds(_FrozenModel):
    min_total_cvs: int = 20
    min_per_variant_cvs: int = 5


class SampleThresholdsConfig(_FrozenModel):
    insufficient: InsufficientThresholds = InsufficientThresholds()
    directional: DirectionalThresholds = DirectionalThresholds()
    confident: ConfidentThresholds = ConfidentThresholds()


class ConfidenceThresholdsConfig(_FrozenModel):
    method: Literal["wilson", "bayes"] = "wilson"
    alpha: float = 0.05
    min_effect: float = 0.0


class DecisionConfig(_FrozenModel):
    sample_thresholds: SampleThresholdsConfig = SampleThresholdsConfig()
    confidence_thresholds: ConfidenceThresholdsConfig = ConfidenceThresholdsConfig()


class StatisticsConfig(_FrozenModel):
    thresholds: SampleThresholdsConfig = SampleThresholdsConfig()
    wilson_confidence_level: float = 0.95
    bayes_prior_alpha: float = 1.0
    bayes_prior_beta: float = 1.0
    bayes_simulations: int = DEFAULT_SIMULATIONS
    seed: Optional[int] = DEFAULT_SEED
    # Minimum relative CVR lift of the leader over the runner-up for "confident"; 0 disables
    min_effect: float = 0.0


DEFAULT_SAMPLE_THRESHOLDS = SampleThresholdsConfig()
DEFAULT_CONFIDENCE_THRESHOLDS = ConfidenceThresholdsConfig()
DEFAULT_DECISION_CONFIG = DecisionConfig()
DEFAULT_STATISTICS_CONFIG = StatisticsConfig()


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False

    # Integers beyond float range overflow here
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _section(parent: Any, key: str) -> Mapping[str, Any]:
    if isinstance(parent, Mapping):
        value = parent.get(key)
        if isinstance(value, Mapping):
            return value
    return {}


def _count_field(section: Mapping[str, Any], key: str, default: int, path: str) -> int:
    if key not in section:
        return default

    value = section[key]
    if _is_number(value) and value >= 0 and float(value).is_integer():
        return int(value)

    logger.debug("decision_config_field_defaulted", field=path, value=repr(value), default=default)
    return default


def _method_field(section: Mapping[str, Any], default: str) -> str:
    if "method" not in section:
        return default

    value = section["method"]
    if isinstance(value, str) and value.strip().lower() in ("wilson", "bayes"):
        return value.strip().lower()

    logger.debug(
        "decision_config_field_defaulted",
        field="confidence_thresholds.method",
        value=repr(value),
        default=default,
    )
    return default


def _alpha_field(section: Mapping[str, Any], default: float) -> float:
    if "alpha" not in section:
        return default

    value = section["alpha"]
    if _is_number(value) and 0 < value < 1:
        return float(value)

    logger.debug(
        "decision_config_field_defaulted",
        field="confidence_thresholds.alpha",
        value=repr(value),
        default=default,
    )
    return default


def _min_effect_field(section: Mapping[str, Any], default: float) -> float:
    if "min_effect" not in section:
        return default

    value = section["min_effect"]
    if _is_number(value) and value >= 0:
        return float(value)

    logger.debug(
        "decision_config_field_defaulted",
        field="confidence_thresholds.min_effect",
        value=repr(value),
        default=default,
    )
    return default


def _load_design(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw

    if isinstance(raw, (str, bytes, bytearray)):
        try:
            design = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            logger.debug("decision_config_unparsable", payload_type=type(raw).__name__)
            return {}
        if isinstance(design, Mapping):
            return design

    return {}


def parse_decision_config(raw: Any) -> DecisionConfig:
    design = _load_design(raw)

    sample = _section(design, "sample_thresholds")
    insufficient = _section(sample, "insufficient")
    directional = _section(sample, "directional")
    confident = _section(sample, "confident")
    confidence = _section(design, "confidence_thresholds")

    defaults = DEFAULT_SAMPLE_THRESHOLDS

    sample_thresholds = SampleThresholdsConfig(
        insufficient=InsufficientThresholds(
            min_total_clicks=_count_field(
                insufficient,
                "min_total_clicks",
                defaults.insufficient.min_total_clicks,
                "sample_thresholds.insufficient.min_total_clicks",
            ),
            min_total_cvs=_count_field(
                insufficient,
                "min_total_cvs",
                defaults.insufficient.min_total_cvs,
                "sample_thresholds.insufficient.min_total_cvs",
            ),
        ),
        directional=DirectionalThresholds(
            min_total_clicks=_count_field(
                directional,
                "min_total_clicks",
                defaults.directional.min_total_clicks,
                "sample_thresholds.directional.min_total_clicks",
            ),
            min_total_cvs=_count_field(
                directional,
                "min_total_cvs",
                defaults.directional.min_total_cvs,
                "sample_thresholds.directional.min_total_cvs",
            ),
        ),
        confident=ConfidentThresholds(
            min_total_cvs=_count_field(
                confident,
                "min_total_cvs",
                defaults.confident.min_total_cvs,
                "sample_thresholds.confident.min_total_cvs",
            ),
            min_per_variant_cvs=_count_field(
                confident,
                "min_per_variant_cvs",
                defaults.confident.min_per_variant_cvs,
                "sample_thresholds.confident.min_per_variant_cvs",
            ),
        ),
    )

    confidence_thresholds = ConfidenceThresholdsConfig(
        method=_method_field(confidence, DEFAULT_CONFIDENCE_THRESHOLDS.method),
        alpha=_alpha_field(confidence, DEFAULT_CONFIDENCE_THRESHOLDS.alpha),
        min_effect=_min_effect_field(confidence, DEFAULT_CONFIDENCE_THRESHOLDS.min_effect),
    )

    return DecisionConfig(
        sample_thresholds=sample_thresholds,
        confidence_thresholds=confidence_thresholds,
    )


def to_statistics_config(
    config: DecisionConfig,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = DEFAULT_SEED,
) -> StatisticsConfig:
    return StatisticsConfig(
        thresholds=config.sample_thresholds,
        wilson_confidence_level=1 - config.confidence_thresholds.alpha,
        bayes_simulations=simulations,
        seed=seed,
        min_effect=config.confidence_thresholds.min_effect,
    )
