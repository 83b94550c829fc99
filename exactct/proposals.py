import torch
import numpy as np

from typing import Tuple

from exactct.utils.misc_utils import setup_logger
from exactct.acceptance import hypergeometric_acceptance_probability
from exactct.static.global_variables import PROPOSAL_TYPES, ADAPTIVE_DIRECTIONS


def proposal_type_from_flags(hit_and_run:bool = False, adaptive:bool = False) -> str:
    # Adaptive proposals walk along the hit and run line
    if adaptive:
        return 'adaptive'
    elif hit_and_run:
        return 'hit_and_run'
    else:
        return 'unit_step'


def feasible_step_range(table_prev:torch.tensor, move:torch.tensor) -> Tuple[int,int]:
    '''
    Smallest and largest integer step sizes s such that table_prev + s * move is non-negative.
    Only cells where the move is non-zero restrict the step size:
    cells with a positive move entry bound s from below by ceil(-table/move) and
    cells with a negative move entry bound s from above by floor(-table/move).
    A direction that no cell restricts is limited to a unit step.
    '''
    non_zero = move != 0
    cells = table_prev[non_zero]
    entries = move[non_zero]

    positive = entries > 0
    negative = entries < 0

    if torch.any(positive):
        # ceil(-c/m) = -floor(c/m)
        lb = int(torch.max(-torch.div(cells[positive], entries[positive], rounding_mode = 'floor')).item())
    else:
        lb = -1
    if torch.any(negative):
        ub = int(torch.min(torch.div(cells[negative], -entries[negative], rounding_mode = 'floor')).item())
    else:
        ub = 1
    return lb, ub


class ProposalGenerator(object):
    """
    Proposes the next table of the chain along a chosen move.
    The proposed table may have negative cells; these are rejected at acceptance.
    """

    def __init__(self, proposal_type:str, rng:np.random.Generator, **kwargs):
        # Setup logger
        level = kwargs.get('level',None)
        self.logger = setup_logger(
            __name__,
            console_level = level,
        ) if kwargs.get('logger',None) is None else kwargs['logger']

        if proposal_type not in PROPOSAL_TYPES:
            raise ValueError(f"Proposal type {proposal_type} not in {', '.join(PROPOSAL_TYPES)}")
        self.proposal_type = proposal_type
        self.rng = rng
        # Strategy is fixed for the lifetime of the generator
        self.propose = getattr(self, f"{proposal_type}_proposal")

    def __repr__(self):
        return f"ProposalGenerator({self.proposal_type})"

    def __call__(self, table_prev:torch.tensor, move:torch.tensor) -> torch.tensor:
        return self.propose(table_prev, move)

    def unit_step_proposal(self, table_prev:torch.tensor, move:torch.tensor) -> torch.tensor:
        return table_prev + move

    def hit_and_run_step_size(self, table_prev:torch.tensor, move:torch.tensor) -> int:
        lb, ub = feasible_step_range(table_prev, move)
        if lb > ub:
            # Empty line: take a unit step
            return 1
        step_size = int(self.rng.integers(lb, ub + 1))
        # Always move
        if step_size == 0:
            step_size = 1
        return step_size

    def hit_and_run_proposal(self, table_prev:torch.tensor, move:torch.tensor) -> torch.tensor:
        step_size = self.hit_and_run_step_size(table_prev, move)
        self.logger.trace(f"Hit and run step size {step_size}")
        return table_prev + step_size * move

    def adaptive_proposal(self, table_prev:torch.tensor, move:torch.tensor) -> torch.tensor:
        '''
        Runs a random walk along the line spanned by the move for as many steps as the
        length of the feasible line. Each step goes one unit up or down the line and is
        accepted with the hypergeometric Metropolis ratio.
        The last state of the walk is the proposal.
        '''
        lb, ub = feasible_step_range(table_prev, move)
        if lb > ub:
            return self.unit_step_proposal(table_prev, move)

        line_length = ub - lb
        table_walk = table_prev.clone()
        for _ in range(line_length):
            direction = int(self.rng.choice(ADAPTIVE_DIRECTIONS))
            table_step = table_walk + direction * move
            probability = hypergeometric_acceptance_probability(table_walk, table_step)
            if self.rng.random() < probability:
                table_walk = table_step
        self.logger.trace(f"Adaptive walk of length {line_length}")
        return table_walk
