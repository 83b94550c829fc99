import torch
import pytest
import numpy as np

from exactct.utils.exceptions import *
from exactct.model_matrix import hmat
from exactct.move_selection import MoveDistribution, MoveSelector
from exactct.proposals import ProposalGenerator, feasible_step_range, proposal_type_from_flags
from exactct.acceptance import AcceptanceEvaluator, uniform_acceptance_probability, hypergeometric_acceptance_probability
from exactct.contingency_table_mcmc import *


@pytest.fixture
def basis_2x2():
    # Basic move of the independence model and its negative
    return np.array([[1,-1],[-1,1],[-1,1],[1,-1]])

@pytest.fixture
def independence_2x3():
    A = hmat([2,3],[[0],[1]])
    table = np.array([3,1,2,2,1,1])
    # Basic moves of the independence model
    moves = np.array([
        [1,-1,0,-1,1,0],
        [1,0,-1,-1,0,1],
        [0,1,-1,0,-1,1]
    ]).T
    return A, table, np.hstack([moves,-moves])


def test_proposal_type_from_flags():
    assert proposal_type_from_flags() == 'unit_step'
    assert proposal_type_from_flags(hit_and_run = True) == 'hit_and_run'
    assert proposal_type_from_flags(adaptive = True) == 'adaptive'
    # Adaptive takes precedence
    assert proposal_type_from_flags(hit_and_run = True, adaptive = True) == 'adaptive'

def test_build(basis_2x2):
    mcmc = ContingencyTableMarkovChainMonteCarlo(basis_2x2)
    assert mcmc.target_distribution == 'Hypergeometric'
    assert mcmc.proposal_type == 'unit_step'
    assert mcmc.sis_probability == 0.01
    assert (mcmc.ncells, mcmc.n_moves) == (4,2)

    mcmc = ContingencyTableMarkovChainMonteCarlo(basis_2x2, distribution = 'uniform', hit_and_run = True)
    assert mcmc.target_distribution == 'Uniform'
    assert mcmc.proposal_type == 'hit_and_run'
    assert mcmc.sis_probability == 0.05

    with pytest.raises(ValueError):
        ContingencyTableMarkovChainMonteCarlo(basis_2x2, distribution = 'poisson')

def test_uniform_acceptance():
    assert uniform_acceptance_probability(torch.tensor([2,3]), torch.tensor([3,2])) == 1.0
    assert uniform_acceptance_probability(torch.tensor([0,3]), torch.tensor([-1,4])) == 0.0

def test_hypergeometric_acceptance():
    assert hypergeometric_acceptance_probability(torch.tensor([0,0]), torch.tensor([1,-1])) == 0.0
    # 1!1! / 2!0! = 1/2
    assert abs(hypergeometric_acceptance_probability(torch.tensor([1,1]), torch.tensor([2,0])) - 0.5) <= 1e-12
    # Moves towards a more probable table are always accepted
    assert hypergeometric_acceptance_probability(torch.tensor([2,0]), torch.tensor([1,1])) == 1.0

def test_acceptance_evaluator():
    rng = np.random.default_rng(0)
    evaluator = AcceptanceEvaluator('uniform', rng = rng)
    prob = evaluator.probability(torch.tensor([2,3]), torch.tensor([3,2]))
    assert prob == 1.0
    assert evaluator.accept(prob)
    assert not evaluator.accept(0.0)
    with pytest.raises(ValueError):
        AcceptanceEvaluator('binomial', rng = rng)

def test_move_distribution():
    md = MoveDistribution(4)
    assert md.total == 4
    assert np.allclose(md.probabilities(), 0.25)
    # First index whose cumulative share reaches u
    assert md.select(0.25) == 0
    assert md.select(0.26) == 1
    assert md.select(1.0) == 3
    md.reward(2)
    assert md.total == 5
    assert md.weights.tolist() == [1,1,2,1]
    assert md.select(0.5) == 2

def test_move_selector():
    rng = np.random.default_rng(1)
    selector = MoveSelector(3, rng = rng)
    assert selector.move_distribution is None
    assert all([0 <= selector.select() < 3 for _ in range(100)])
    selector.accepted(1)

    selector = MoveSelector(3, rng = rng, non_uniform = True)
    selector.accepted(1)
    assert selector.move_distribution.weights.tolist() == [1,2,1]

def test_feasible_step_range():
    assert feasible_step_range(torch.tensor([0,5]), torch.tensor([1,-1])) == (0,5)
    assert feasible_step_range(torch.tensor([3,5]), torch.tensor([2,-2])) == (-1,2)
    # A direction without restricting cells is limited to a unit step
    assert feasible_step_range(torch.tensor([2,3]), torch.tensor([0,-1])) == (-1,3)
    assert feasible_step_range(torch.tensor([2,3]), torch.tensor([1,0])) == (-2,1)
    # Empty line
    assert feasible_step_range(torch.tensor([-3,0]), torch.tensor([1,-1])) == (3,0)

def test_unit_step_proposal():
    proposal = ProposalGenerator('unit_step', rng = np.random.default_rng(0))
    assert proposal(torch.tensor([2,3]), torch.tensor([1,-1])).tolist() == [3,2]
    with pytest.raises(ValueError):
        ProposalGenerator('gibbs', rng = np.random.default_rng(0))

def test_hit_and_run_proposal():
    proposal = ProposalGenerator('hit_and_run', rng = np.random.default_rng(1234))
    current = torch.tensor([0,5])
    move = torch.tensor([1,-1])
    for _ in range(200):
        table = proposal(current, move)
        assert torch.all(table >= 0)
        # Always move
        assert not torch.equal(table, current)
        assert table.sum().item() == 5
    # Empty line falls back to a unit step
    assert proposal.hit_and_run_step_size(torch.tensor([-3,0]), move) == 1

def test_adaptive_proposal():
    proposal = ProposalGenerator('adaptive', rng = np.random.default_rng(1234))
    current = torch.tensor([0,5])
    move = torch.tensor([1,-1])
    for _ in range(100):
        table = proposal(current, move)
        # Sub-chain never leaves the non negative line
        assert torch.all(table >= 0)
        assert table.sum().item() == 5
    assert proposal(torch.tensor([-3,0]), move).tolist() == [-2,-1]

def test_thinning_and_acceptance_accumulator(basis_2x2):
    mcmc = ContingencyTableMarkovChainMonteCarlo(basis_2x2, distribution = 'uniform', seed = 1234)
    steps, accept_prob = mcmc.run(np.array([100,100,100,100]), iter = 5, thin = 10)
    assert steps.shape == (4,5)
    # Every one of the 50 inner steps is feasible and accepted
    assert mcmc.n_accepted == 50
    assert accept_prob == pytest.approx(1.0)

@pytest.mark.parametrize("distribution", ["hypergeometric","uniform"])
@pytest.mark.parametrize("hit_and_run,adaptive,non_uniform", [
    (False,False,False),
    (True,False,False),
    (False,True,False),
    (True,False,True),
    (False,False,True)
])
def test_chain_invariants(independence_2x3, distribution, hit_and_run, adaptive, non_uniform):
    A, table, moves = independence_2x3
    mcmc = ContingencyTableMarkovChainMonteCarlo(
        moves,
        distribution = distribution,
        hit_and_run = hit_and_run,
        adaptive = adaptive,
        non_uniform = non_uniform,
        seed = 1234
    )
    steps, accept_prob = mcmc.run(table, iter = 100, thin = 2)
    steps = steps.numpy()
    assert steps.shape == (6,100)
    assert np.all(steps >= 0)
    # Sufficient statistics are preserved
    assert np.all(A @ steps == (A @ table)[:,None])
    assert 0 <= accept_prob <= 1
    if non_uniform:
        md = mcmc.move_distribution
        assert np.all(md.weights >= 1)
        assert md.total == moves.shape[1] + mcmc.n_accepted
        assert md.weights.sum() == md.total
    else:
        assert mcmc.move_distribution is None

def test_chain_is_reproducible(independence_2x3):
    A, table, moves = independence_2x3
    steps1, prob1 = metropolis_hypergeometric(table, moves, iter = 50, thin = 3, hit_and_run = True, seed = 99)
    steps2, prob2 = metropolis_hypergeometric(table, moves, iter = 50, thin = 3, hit_and_run = True, seed = 99)
    assert torch.equal(steps1, steps2)
    assert prob1 == prob2

def test_chain_explores_fiber(independence_2x3):
    A, table, moves = independence_2x3
    steps, _ = metropolis_uniform(table, moves, iter = 200, thin = 1, seed = 1)
    assert len(set(map(tuple,steps.T.tolist()))) > 1

def test_sis_refresh(independence_2x3):
    A, table, moves = independence_2x3
    b = A @ table
    mcmc = ContingencyTableMarkovChainMonteCarlo(
        moves,
        distribution = 'uniform',
        sis = True,
        config = A,
        suff_stats = b,
        seed = 1234
    )
    # Refresh every outer iteration
    mcmc.sis_probability = 1.0
    steps, accept_prob = mcmc.run(table, iter = 20, thin = 2)
    steps = steps.numpy()
    assert np.all(steps >= 0)
    assert np.all(A @ steps == b[:,None])
    # Every SIS table is accepted under the uniform target
    assert accept_prob == pytest.approx(1.0)
    assert mcmc.n_accepted == 40

def test_sis_refresh_with_default_probability(independence_2x3):
    A, table, moves = independence_2x3
    steps, accept_prob = metropolis_hypergeometric(
        table,
        moves,
        suff_stats = A @ table,
        config = A,
        iter = 100,
        thin = 1,
        sis = True,
        non_uniform = True,
        seed = 5
    )
    assert np.all(A @ steps.numpy() == (A @ table)[:,None])

def test_sis_refresh_credits_selected_move(independence_2x3):
    A, table, moves = independence_2x3
    mcmc = ContingencyTableMarkovChainMonteCarlo(
        moves,
        distribution = 'uniform',
        sis = True,
        non_uniform = True,
        config = A,
        suff_stats = A @ table,
        seed = 1234
    )
    mcmc.sis_probability = 1.0
    mcmc.run(table, iter = 20, thin = 1)
    # Every step is an accepted SIS table
    assert mcmc.n_accepted == 20
    md = mcmc.move_distribution
    assert md.total == moves.shape[1] + mcmc.n_accepted
    assert md.weights.sum() == md.total
    assert np.all(md.weights >= 1)

def test_invalid_inputs(basis_2x2, independence_2x3):
    with pytest.raises(InvalidDataShape):
        ContingencyTableMarkovChainMonteCarlo(np.array([1,-1,-1,1]))
    with pytest.raises(InvalidDataShape):
        ContingencyTableMarkovChainMonteCarlo(np.zeros((4,0)))
    with pytest.raises(CastingException):
        ContingencyTableMarkovChainMonteCarlo(np.array([[0.5],[-0.5]]))

    mcmc = ContingencyTableMarkovChainMonteCarlo(basis_2x2)
    with pytest.raises(InvalidDataShape):
        mcmc.run(np.array([1,2,3]), iter = 10)
    with pytest.raises(InvalidDataRange):
        mcmc.run(np.array([1,2,3,-1]), iter = 10)
    # Fractional tables are not truncated
    with pytest.raises(CastingException):
        mcmc.run(np.array([1.5,2.7,3.0,4.0]), iter = 3)
    with pytest.raises(InvalidDataRange):
        mcmc.run(np.array([1,2,3,4]), iter = 0)
    with pytest.raises(InvalidDataRange):
        mcmc.run(np.array([1,2,3,4]), iter = 10, thin = 0)

    # SIS requires the configuration matrix and the sufficient statistics
    with pytest.raises(MissingData):
        ContingencyTableMarkovChainMonteCarlo(basis_2x2, sis = True)
    A, table, _ = independence_2x3
    with pytest.raises(InvalidDataShape):
        ContingencyTableMarkovChainMonteCarlo(basis_2x2, sis = True, config = A, suff_stats = A @ table)

def test_metropolis(basis_2x2):
    init = np.array([4,44,9,43])
    A = hmat([2,2],[[0],[1]])
    result = metropolis(init, basis_2x2[:,[0]], iter = 100, burn = 20, thin = 2, seed = 1234)
    assert result['steps'].shape == (4,100)
    # The supplied moves are returned, not their symmetrisation
    assert result['moves'].shape == (4,1)
    assert 0 <= result['accept_prob'] <= 1
    assert np.all(A @ result['steps'].numpy() == (A @ init)[:,None])

def test_metropolis_with_sis(basis_2x2):
    init = np.array([4,44,9,43])
    A = hmat([2,2],[[0],[1]])
    result = metropolis(init, basis_2x2[:,[0]], iter = 50, burn = 0, dist = 'uniform', sis = True, A = A, seed = 3)
    assert np.all(A @ result['steps'].numpy() == (A @ init)[:,None])

@pytest.mark.parametrize("n_workers", [1,2])
def test_run_chains(basis_2x2, n_workers):
    init = np.array([4,44,9,43])
    chains = run_chains(init, basis_2x2[:,[0]], n_chains = 2, n_workers = n_workers, seed = 10, iter = 30, burn = 5)
    assert len(chains) == 2
    for chain in chains:
        assert chain['steps'].shape == (4,30)
    # Chain k runs with seed + k
    single = metropolis(init, basis_2x2[:,[0]], iter = 30, burn = 5, seed = 11)
    assert torch.equal(chains[1]['steps'], single['steps'])
