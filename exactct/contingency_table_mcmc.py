import torch
import numpy as np
import concurrent.futures

from tqdm import tqdm
from copy import deepcopy
from torch import int64
from typing import Dict, List, Tuple

from exactct.sis import sis_table
from exactct.move_selection import MoveSelector
from exactct.acceptance import AcceptanceEvaluator
from exactct.utils.exceptions import *
from exactct.proposals import ProposalGenerator, proposal_type_from_flags
from exactct.utils.misc_utils import set_seed, setup_logger, to_numpy, to_tensor
from exactct.static.global_variables import TARGET_DISTRIBUTIONS, SIS_REFRESH_PROBABILITY


class ContingencyTableMarkovChainMonteCarlo(object):

    """
    Metropolis Hastings random walk on the fiber of a contingency table.
    Moves are the columns of an integer matrix whose rows are the (flattened) table cells.
    """

    def __init__(
        self,
        moves,
        distribution:str = 'hypergeometric',
        hit_and_run:bool = False,
        sis:bool = False,
        non_uniform:bool = False,
        adaptive:bool = False,
        config = None,
        suff_stats = None,
        seed:int = None,
        **kwargs
    ):
        # Setup logger
        level = kwargs.get('level',None)
        self.logger = setup_logger(
            __name__,
            console_level = level,
        ) if kwargs.get('logger',None) is None else kwargs['logger']
        # Update logger level
        self.logger.setLevels( console_level = level )

        # Enable/disable tqdm
        self.tqdm_disabled = not kwargs.get('monitor_progress',False)

        self.distribution = distribution
        self.hit_and_run = hit_and_run
        self.sis = sis
        self.non_uniform = non_uniform
        self.adaptive = adaptive
        self.seed = seed

        # Validate and store moves (read only for the lifetime of the sampler)
        self.moves = self.validate_moves(moves)
        self.ncells, self.n_moves = self.moves.shape

        # SIS collaborator inputs are only needed when refreshing the chain
        self.config = None if config is None else to_numpy(config)
        self.suff_stats = None if suff_stats is None else to_numpy(suff_stats).ravel()
        if self.sis:
            self.validate_sis_inputs()

        # Random stream of this sampler
        self.rng = set_seed(seed)

        # Build proposal and acceptance mechanisms
        self.build()

        self.logger.debug(self.__str__())

    def __str__(self):
        return f"""
            Markov Chain Monte Carlo algorithm
            Target: {self.target_distribution}
            Cells: {self.ncells}
            Number of moves: {self.n_moves}
            Proposal: {self.proposal_type.replace('_',' ').title()}
            Move selection: {'Non uniform' if self.non_uniform else 'Uniform'}
            SIS refresh: {self.sis_probability if self.sis else 'off'}
            Random seed: {self.seed}
        """

    def __repr__(self):
        return f"MetropolisHastings({self.distribution},{self.proposal_type})"

    def validate_moves(self, moves) -> torch.tensor:
        moves_array = np.asarray(to_numpy(moves, dtype = 'float64'))
        if moves_array.ndim != 2:
            raise InvalidDataShape(
                data_name_shapes = {'moves':moves_array.shape},
                message = 'Moves must be a matrix with one move per column.'
            )
        if moves_array.shape[1] == 0:
            raise InvalidDataShape(
                data_name_shapes = {'moves':moves_array.shape},
                message = 'At least one move is required.'
            )
        if not np.all(np.mod(moves_array, 1) == 0):
            raise CastingException(
                data_name = 'moves',
                from_type = str(moves_array.dtype),
                to_type = 'int64'
            )
        return to_tensor(moves_array, dtype = int64)

    def validate_sis_inputs(self) -> None:
        if self.config is None or self.suff_stats is None:
            raise MissingData(
                missing_data_name = 'config' if self.config is None else 'suff_stats',
                data_names = 'config, suff_stats',
                location = 'SIS refresh'
            )
        if self.config.ndim != 2 or self.config.shape[1] != self.ncells or \
            self.config.shape[0] != self.suff_stats.shape[0]:
            raise InvalidDataShape(
                data_name_shapes = {
                    'config':self.config.shape,
                    'suff_stats':self.suff_stats.shape,
                    'moves':tuple(self.moves.shape)
                },
                message = 'SIS configuration matrix must have one column per cell and one row per sufficient statistic.'
            )

    def validate_table(self, table) -> torch.tensor:
        table_array = np.asarray(to_numpy(table, dtype = 'float64'))
        if not np.all(np.mod(table_array, 1) == 0):
            raise CastingException(
                data_name = 'current',
                from_type = str(table_array.dtype),
                to_type = 'int64'
            )
        table = to_tensor(table_array, dtype = int64)
        if table.ndim != 1 or table.shape[0] != self.ncells:
            raise InvalidDataShape(
                data_name_shapes = {'current':tuple(table.shape),'moves':tuple(self.moves.shape)},
                message = 'Initial table must have one entry per move row.'
            )
        if torch.any(table < 0):
            raise InvalidDataRange(
                data = table.tolist(),
                rang = '>= 0',
                data_name = 'Initial table'
            )
        return table

    def build(self) -> None:
        if self.distribution not in TARGET_DISTRIBUTIONS:
            raise ValueError(f"Target distribution {self.distribution} not in {', '.join(TARGET_DISTRIBUTIONS)}")

        self.target_distribution = self.distribution.capitalize()
        self.proposal_type = proposal_type_from_flags(
            hit_and_run = self.hit_and_run,
            adaptive = self.adaptive
        )
        self.proposal = ProposalGenerator(
            self.proposal_type,
            rng = self.rng,
            logger = self.logger
        )
        self.acceptance = AcceptanceEvaluator(
            self.distribution,
            rng = self.rng
        )
        self.sis_probability = SIS_REFRESH_PROBABILITY[self.distribution]

        # Move weights of the latest run
        self.move_selector = None
        self.n_accepted = 0

    def sis_proposal(self) -> torch.tensor:
        table = sis_table(
            self.config,
            self.suff_stats,
            rng = self.rng
        )
        return to_tensor(table, dtype = int64)

    def run(self, current, iter:int, thin:int = 1) -> Tuple[torch.tensor, float]:
        '''
        Runs iter x thin Metropolis Hastings steps from `current` and records
        the table after every `thin` steps.
        Returns the recorded tables as columns of a (cells x iter) matrix and the
        average acceptance probability over all steps.
        '''
        for name,value in [('iter',iter),('thin',thin)]:
            if int(value) != value or value < 1:
                raise InvalidDataRange(data = value, rang = '>= 1', data_name = name)
        iter, thin = int(iter), int(thin)
        table_prev = self.validate_table(current)

        self.move_selector = MoveSelector(
            self.n_moves,
            rng = self.rng,
            non_uniform = self.non_uniform
        )
        self.n_accepted = 0

        n_total_samples = iter * thin
        steps = torch.zeros((self.ncells, iter), dtype = int64)
        accept_prob = 0.0

        self.logger.info(f"Running {n_total_samples} steps ({iter} recorded) of {self.__repr__()}")

        for i in tqdm(range(iter), disable = self.tqdm_disabled, desc = 'Table MCMC', leave = False):
            # One refresh draw per outer iteration
            sis_refresh = self.sis and (self.rng.random() < self.sis_probability)
            if sis_refresh:
                self.logger.debug(f"SIS refresh at iteration {i}")

            for j in range(thin):
                # Select move
                move_index = self.move_selector.select()
                # Propose new table
                table_new = self.proposal(table_prev, self.moves[:,move_index])
                if sis_refresh:
                    table_new = self.sis_proposal()

                # Evaluate acceptance probability
                probability = self.acceptance.probability(table_prev, table_new)
                accept_prob += probability / n_total_samples

                # Accept/reject
                if self.acceptance.accept(probability):
                    table_prev = table_new
                    self.n_accepted += 1
                    # SIS tables still credit the selected move
                    self.move_selector.accepted(move_index)

            # Store thinned sample
            steps[:,i] = table_prev

        self.logger.progress(f"Average acceptance probability {accept_prob:.4f}")
        return steps, accept_prob

    @property
    def move_distribution(self):
        if self.move_selector is None:
            return None
        return self.move_selector.move_distribution


def metropolis_hypergeometric(
        current,
        moves,
        suff_stats = None,
        config = None,
        iter:int = 1000,
        thin:int = 1,
        hit_and_run:bool = False,
        sis:bool = False,
        non_uniform:bool = False,
        adaptive:bool = False,
        **kwargs
    ) -> Tuple[torch.tensor, float]:
    sampler = ContingencyTableMarkovChainMonteCarlo(
        moves,
        distribution = 'hypergeometric',
        hit_and_run = hit_and_run,
        sis = sis,
        non_uniform = non_uniform,
        adaptive = adaptive,
        config = config,
        suff_stats = suff_stats,
        **kwargs
    )
    return sampler.run(current, iter = iter, thin = thin)


def metropolis_uniform(
        current,
        moves,
        suff_stats = None,
        config = None,
        iter:int = 1000,
        thin:int = 1,
        hit_and_run:bool = False,
        sis:bool = False,
        non_uniform:bool = False,
        adaptive:bool = False,
        **kwargs
    ) -> Tuple[torch.tensor, float]:
    sampler = ContingencyTableMarkovChainMonteCarlo(
        moves,
        distribution = 'uniform',
        hit_and_run = hit_and_run,
        sis = sis,
        non_uniform = non_uniform,
        adaptive = adaptive,
        config = config,
        suff_stats = suff_stats,
        **kwargs
    )
    return sampler.run(current, iter = iter, thin = thin)


def metropolis(
        init,
        moves,
        iter:int = 1000,
        burn:int = 0,
        thin:int = 1,
        dist:str = 'hypergeometric',
        hit_and_run:bool = False,
        sis:bool = False,
        non_uniform:bool = False,
        adaptive:bool = False,
        A = None,
        seed:int = None,
        **kwargs
    ) -> Dict:
    '''
    Samples the fiber of `init` using the moves and their negatives.
    The first `burn` steps are discarded; the chain then records
    `iter` tables, one every `thin` steps.
    '''
    moves = to_numpy(moves)
    if moves.ndim == 2:
        # Proposals go up or down every move
        all_moves = np.hstack([moves, -moves])
    else:
        all_moves = moves

    suff_stats = None
    if A is not None:
        suff_stats = to_numpy(A) @ to_numpy(init).ravel()

    sampler = ContingencyTableMarkovChainMonteCarlo(
        all_moves,
        distribution = dist,
        hit_and_run = hit_and_run,
        sis = sis,
        non_uniform = non_uniform,
        adaptive = adaptive,
        config = A,
        suff_stats = suff_stats,
        seed = seed,
        **kwargs
    )

    current = init
    if burn > 0:
        sampler.logger.debug(f"Burning in {burn} steps")
        burn_steps, _ = sampler.run(current, iter = burn, thin = 1)
        current = burn_steps[:,-1]

    steps, accept_prob = sampler.run(current, iter = iter, thin = thin)

    return {
        'steps':steps,
        'moves':moves,
        'accept_prob':accept_prob,
        'move_distribution':sampler.move_distribution
    }


def _run_chain(chain_kwargs:Dict) -> Dict:
    return metropolis(**chain_kwargs)


def run_chains(
        init,
        moves,
        n_chains:int = 1,
        n_workers:int = 1,
        seed:int = None,
        **kwargs
    ) -> List[Dict]:
    '''
    Runs independent chains of `metropolis`, chain k with seed `seed + k`.
    Chains run in a process pool if more than one worker is requested.
    '''
    chain_kwargs = []
    for k in range(n_chains):
        chain_kwargs.append(dict(
            init = to_numpy(init).ravel(),
            moves = to_numpy(moves),
            seed = None if seed is None else seed + k,
            **deepcopy(kwargs)
        ))

    if n_workers <= 1 or n_chains <= 1:
        return [_run_chain(ck) for ck in chain_kwargs]

    results = [None]*n_chains
    with concurrent.futures.ProcessPoolExecutor(max_workers = n_workers) as executor:
        futures = {executor.submit(_run_chain, ck):k for k,ck in enumerate(chain_kwargs)}
        for future in concurrent.futures.as_completed(futures):
            k = futures[future]
            try:
                results[k] = future.result()
            except Exception as exc:
                raise MultiprocessorFailed(
                    keys = [f'chain {k}'],
                    message = str(exc)
                ) from exc
    return results
