"""
Bayesian Beta-Binomial analysis for conversion experiments.

Each variant's true conversion rate is modelled as a Beta posterior: with a
Beta(prior_alpha, prior_beta) prior and Binomial clicks/conversions data the
posterior is Beta(prior_alpha + conversions, prior_beta + non_conversions).

Win probabilities, pairwise "A beats B" probabilities and expected loss are
estimated by Monte-Carlo draws from those posteriors. All randomness flows
through an explicit ``numpy.random.Generator``: pass ``seed`` for a fresh,
reproducible generator or ``rng`` to share one generator across several
calls. Global random state is never used, so identical inputs and seed give
bit-identical results.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats as scipy_stats

from launchtest.services.statistics.metrics import VariantMetrics

DEFAULT_SEED = 42
DEFAULT_SIMULATIONS = 10000


@dataclass(frozen=True)
class BayesianPosterior:
    variant_id: str
    alpha: float
    beta: float
    posterior_mean: float
    credible_interval_lower: float
    credible_interval_upper: float


@dataclass(frozen=True)
class BayesianComparison:
    variants: List[BayesianPosterior]
    win_probabilities: Dict[str, float]
    likely_winner: Optional[str]
    likely_winner_probability: float


def make_rng(seed: Optional[int] = DEFAULT_SEED) -> np.random.Generator:
    return np.random.default_rng(seed)


def _resolve_rng(seed: Optional[int], rng: Optional[np.random.Generator]) -> np.random.Generator:
    if rng is not None:
        return rng
    return make_rng(seed)


def _check_simulations(simulations: int) -> None:
    if simulations < 1:
        raise ValueError(f"simulations must be at least 1, got {simulations}")


def posterior_parameters(
    variant: VariantMetrics, prior_alpha: float = 1.0, prior_beta: float = 1.0
) -> Tuple[float, float]:
    if prior_alpha <= 0 or prior_beta <= 0:
        raise ValueError(
            f"Beta prior parameters must be positive, got ({prior_alpha}, {prior_beta})"
        )

    alpha = prior_alpha + variant.conversions
    beta = prior_beta + (variant.clicks - variant.conversions)
    return alpha, beta


def _sample_posteriors(
    variants: Sequence[VariantMetrics],
    prior_alpha: float,
    prior_beta: float,
    simulations: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw a (simulations, n_variants) matrix of posterior conversion rates."""
    params = [posterior_parameters(v, prior_alpha, prior_beta) for v in variants]
    alphas = np.array([a for a, _ in params], dtype=float)
    betas = np.array([b for _, b in params], dtype=float)

    return rng.beta(alphas, betas, size=(simulations, len(variants)))


def calculate_bayesian_posterior(
    variant: VariantMetrics,
    prior_alpha: float = 1.0,
    prior_beta: float = 1.0,
    credible_level: float = 0.95,
) -> BayesianPosterior:
    alpha, beta = posterior_parameters(variant, prior_alpha, prior_beta)

    tail = (1 - credible_level) / 2
    lower, upper = scipy_stats.beta.ppf([tail, 1 - tail], alpha, beta)

    return BayesianPosterior(
        variant_id=variant.variant_id,
        alpha=alpha,
        beta=beta,
        posterior_mean=alpha / (alpha + beta),
        credible_interval_lower=float(lower),
        credible_interval_upper=float(upper),
    )


def calculate_win_probabilities(
    variants: Sequence[VariantMetrics],
    prior_alpha: float = 1.0,
    prior_beta: float = 1.0,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = DEFAULT_SEED,
    rng: Optional[np.random.Generator] = None,
) -> Dict[str, float]:
    """Probability that each variant has the highest true conversion rate."""
    if not variants:
        return {}

    if len(variants) == 1:
        return {variants[0].variant_id: 1.0}

    _check_simulations(simulations)
    generator = _resolve_rng(seed, rng)

    samples = _sample_posteriors(variants, prior_alpha, prior_beta, simulations, generator)
    winners = samples.argmax(axis=1)
    win_counts = np.bincount(winners, minlength=len(variants))

    return {
        variant.variant_id: int(count) / simulations
        for variant, count in zip(variants, win_counts)
    }


def compare_bayesian(
    variants: Sequence[VariantMetrics],
    prior_alpha: float = 1.0,
    prior_beta: float = 1.0,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = DEFAULT_SEED,
    rng: Optional[np.random.Generator] = None,
) -> BayesianComparison:
    posteriors = [calculate_bayesian_posterior(v, prior_alpha, prior_beta) for v in variants]

    win_probabilities = calculate_win_probabilities(
        variants, prior_alpha, prior_beta, simulations, seed=seed, rng=rng
    )

    likely_winner = None
    likely_winner_probability = 0.0

    # Strict comparison keeps the first variant in input order on ties
    for variant_id, probability in win_probabilities.items():
        if likely_winner is None or probability > likely_winner_probability:
            likely_winner = variant_id
            likely_winner_probability = probability

    return BayesianComparison(
        variants=posteriors,
        win_probabilities=win_probabilities,
        likely_winner=likely_winner,
        likely_winner_probability=likely_winner_probability,
    )


def probability_a_beats_b(
    variant_a: VariantMetrics,
    variant_b: VariantMetrics,
    prior_alpha: float = 1.0,
    prior_beta: float = 1.0,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = DEFAULT_SEED,
    rng: Optional[np.random.Generator] = None,
) -> float:
    _check_simulations(simulations)
    generator = _resolve_rng(seed, rng)

    samples = _sample_posteriors(
        [variant_a, variant_b], prior_alpha, prior_beta, simulations, generator
    )
    a_wins = np.count_nonzero(samples[:, 0] > samples[:, 1])

    return int(a_wins) / simulations


def calculate_expected_loss(
    variants: Sequence[VariantMetrics],
    prior_alpha: float = 1.0,
    prior_beta: float = 1.0,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = DEFAULT_SEED,
    rng: Optional[np.random.Generator] = None,
) -> Dict[str, float]:
    """Expected conversion-rate shortfall of shipping each variant instead of the best one.

    Per draw the loss of a variant is ``max(0, best_other - this)``, which is
    the draw's maximum minus the variant's own sample.
    """
    if not variants:
        return {}

    if len(variants) == 1:
        return {variants[0].variant_id: 0.0}

    _check_simulations(simulations)
    generator = _resolve_rng(seed, rng)

    samples = _sample_posteriors(variants, prior_alpha, prior_beta, simulations, generator)
    best = samples.max(axis=1, keepdims=True)
    losses = (best - samples).mean(axis=0)

    return {variant.variant_id: float(loss) for variant, loss in zip(variants, losses)}
