import sys
import torch
import numpy as np

from exactct.utils.math_utils import log_factorial_sum
from exactct.static.global_variables import TARGET_DISTRIBUTIONS


def table_nonnegative(table:torch.tensor) -> bool:
    return not bool(torch.any(table < 0))


def uniform_acceptance_probability(table_prev:torch.tensor, table_new:torch.tensor) -> float:
    '''Every non-negative proposal is accepted under the uniform target'''
    if not table_nonnegative(table_new):
        return 0.0
    return 1.0


def hypergeometric_acceptance_probability(table_prev:torch.tensor, table_new:torch.tensor) -> float:
    '''
    Metropolis Hastings ratio for the conditional multinomial (hypergeometric) target
    sigma(table_new) / sigma(table_prev) where sigma(f) = prod_{x} (f(x)!)^{-1}, i.e.
    exp( sum_x log(table_prev(x)!) - log(table_new(x)!) ) truncated at one.
    '''
    if not table_nonnegative(table_new):
        return 0.0
    log_ratio = log_factorial_sum(table_prev) - log_factorial_sum(table_new)
    if log_ratio >= 0:
        return 1.0
    return float(torch.exp(log_ratio).item())


class AcceptanceEvaluator(object):

    def __init__(self, distribution:str, rng:np.random.Generator):
        if distribution not in TARGET_DISTRIBUTIONS:
            raise ValueError(f"Target distribution {distribution} not in {', '.join(TARGET_DISTRIBUTIONS)}")
        self.distribution = distribution
        self.rng = rng
        self.acceptance_probability = getattr(
            sys.modules[__name__],
            f"{distribution}_acceptance_probability"
        )

    def __repr__(self):
        return f"AcceptanceEvaluator({self.distribution})"

    def probability(self, table_prev:torch.tensor, table_new:torch.tensor) -> float:
        return self.acceptance_probability(table_prev, table_new)

    def accept(self, probability:float) -> bool:
        # Consume one uniform draw per decision
        return bool(self.rng.random() < probability)
