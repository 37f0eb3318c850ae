"""Probability adjustment against the market."""

MODEL_WEIGHT = 0.60
IMPLIED_WEIGHT = 0.40
SHRINK_WEIGHT = 0.75
PRIOR = 0.50
MAX_PROBABILITY = 0.85


def adjust_probability(p_model: float, p_implied: float) -> float:
    """
    Blend a model probability with the market-implied one.

    60/40 blend with the implied probability, shrink 25% toward 0.5, then
    cap at 0.85.
    """
    blend = MODEL_WEIGHT * p_model + IMPLIED_WEIGHT * p_implied
    shrunk = SHRINK_WEIGHT * blend + (1 - SHRINK_WEIGHT) * PRIOR
    return min(shrunk, MAX_PROBABILITY)
