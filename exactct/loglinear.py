import numpy as np
import pandas as pd

from typing import Dict, List
from scipy.stats import multinomial

from exactct.sis import rmove
from exactct.model_matrix import hmat, preserves_suff_stats
from exactct.utils.exceptions import *
from exactct.utils.math_utils import *
from exactct.contingency_table_mcmc import metropolis, run_chains
from exactct.utils.misc_utils import setup_logger, set_seed, to_numpy, tab2vec, freq_to_table
from exactct.static.global_variables import EXPECTED_TABLE_METHODS, STATISTICS, CRESSIE_READ_LAMBDAS, IPF_TOLERANCE, IPF_MAX_ITERATIONS


def table_and_levels(data, freq_column:str = None):
    # Frequency data frames are converted to arrays
    if isinstance(data, pd.DataFrame):
        table, levels = freq_to_table(data, freq_column = freq_column)
    else:
        table = to_numpy(data)
        levels = {f"var{i+1}":list(range(dim)) for i,dim in enumerate(table.shape)}
    if np.any(table < 0):
        raise InvalidDataRange(
            data = table.tolist(),
            rang = '>= 0',
            data_name = 'Table'
        )
    return table, levels


def parse_facets(facets:List, variables:List[str]) -> List[List[int]]:
    '''
    Facets may refer to variables by (zero-based) axis or by name.
    '''
    parsed = []
    for facet in facets:
        axes = []
        for var in (facet if isinstance(facet,(list,tuple)) else [facet]):
            if isinstance(var, str):
                if var not in variables:
                    raise MissingData(
                        missing_data_name = var,
                        data_names = ', '.join(variables),
                        location = 'facets'
                    )
                axes.append(variables.index(var))
            else:
                axes.append(int(var))
        parsed.append(sorted(set(axes)))
    return parsed


def model_terms(facets:List[List[int]]) -> List[tuple]:
    # Every subset of every facet, intercept first then by order
    terms = set()
    for facet in facets:
        terms.update(powerset(facet, include_null = True))
    return sorted(terms, key = lambda term: (len(term), term))


def term_name(term:tuple, variables:List[str]) -> str:
    if len(term) == 0:
        return '(Intercept)'
    return '.'.join([variables[ax] for ax in term])


def parameters_per_term(terms:List[tuple], dims:tuple, variables:List[str]) -> Dict[str,int]:
    return {
        term_name(term, variables):int(np.prod([dims[ax]-1 for ax in term])) if len(term) > 0 else 1
        for term in terms
    }


def decompose_log_fit(expected:np.ndarray, terms:List[tuple], variables:List[str]) -> Dict[str,np.ndarray]:
    '''
    Sweeps the log of the fitted table into one effect per model term.
    '''
    log_fit = np.zeros_like(expected)
    log_fit[expected > 0] = np.log(expected[expected > 0])
    axes = tuple(range(expected.ndim))
    params = {}
    for term in terms:
        mean_axes = tuple(ax for ax in axes if ax not in term)
        effect = log_fit.mean(axis = mean_axes, keepdims = True)
        log_fit = log_fit - effect
        params[term_name(term, variables)] = effect.squeeze() if len(term) > 0 else float(effect.ravel()[0])
    return params


def compute_statistics(observed:np.ndarray, samples:np.ndarray, expected:np.ndarray) -> Dict[str,np.ndarray]:
    '''
    Every statistic of the observed table (first column) and every sampled table.
    Statistics are evaluated column-wise on one matrix so that identical tables
    get identical values.
    '''
    tables = np.column_stack([observed, samples]).astype('float64')
    values = {
        'PR':log_unnormalised_probability(tables),
        'X2':pearson_chi_squared(tables, expected),
        'G2':likelihood_ratio(tables, expected),
        'FT':cressie_read(tables, expected, lambd = CRESSIE_READ_LAMBDAS['FT']),
        'CR':cressie_read(tables, expected, lambd = CRESSIE_READ_LAMBDAS['CR']),
        'NM':neyman_modified_chi_squared(tables, expected)
    }
    return {stat:np.asarray(vals) for stat,vals in values.items()}


def exact_p_values(statistics:Dict[str,np.ndarray]) -> Dict[str,Dict[str,float]]:
    p_value, std_err, mid_p_value = {}, {}, {}
    for stat,vals in statistics.items():
        obs, samps = vals[0], vals[1:]
        if STATISTICS[stat] == 'less_equal':
            # Smaller probabilities are more extreme
            p_value[stat] = float(np.mean(samps <= obs))
            more_extreme = np.mean(samps < obs)
        else:
            p_value[stat] = float(np.mean(samps >= obs))
            more_extreme = np.mean(samps > obs)
        mid_p_value[stat] = float(more_extreme + np.mean(samps == obs) / 2)
        std_err[stat] = float(np.sqrt(p_value[stat] * (1 - p_value[stat]) / len(samps)))
    return {
        'p_value':p_value,
        'p_value_std_err':std_err,
        'mid_p_value':mid_p_value
    }


def loglinear(
        data,
        facets:List = None,
        A = None,
        moves = None,
        init = None,
        iter:int = 10000,
        burn:int = 1000,
        thin:int = 10,
        method:str = 'ipf',
        distribution:str = 'hypergeometric',
        hit_and_run:bool = False,
        sis:bool = False,
        non_uniform:bool = False,
        adaptive:bool = False,
        sis_moves:int = 1000,
        n_chains:int = 1,
        n_workers:int = 1,
        seed:int = None,
        freq_column:str = None,
        **kwargs
    ) -> Dict:
    '''
    Exact conditional goodness-of-fit test of a log-linear model.
    The model is given either by `facets` (hierarchical model on the table axes)
    or by a configuration matrix `A`. The fiber of the observed table is
    sampled with Metropolis Hastings and every goodness-of-fit statistic of the
    observed table is compared against the sampled ones.
    '''
    # Setup logger
    level = kwargs.get('level',None)
    logger = setup_logger(
        __name__,
        console_level = level,
    ) if kwargs.get('logger',None) is None else kwargs['logger']

    if method not in EXPECTED_TABLE_METHODS:
        raise ValueError(f"Expected table method {method} not in {', '.join(EXPECTED_TABLE_METHODS)}")

    table, levels = table_and_levels(data, freq_column = freq_column)
    variables = list(levels.keys())
    dims = table.shape
    u = tab2vec(table)

    if np.any(table == 0):
        logger.warning("Care ought be taken with tables with sampling zeros to ensure the MLE exists.")

    # Model
    model_given_by_matrix = facets is None
    if model_given_by_matrix:
        if A is None:
            raise MissingData(
                missing_data_name = 'facets',
                data_names = 'facets, A',
                location = 'loglinear'
            )
        A = to_numpy(A)
        if A.ndim != 2 or A.shape[1] != u.shape[0]:
            raise InvalidDataShape(
                data_name_shapes = {'A':A.shape,'table':dims},
                message = 'Configuration matrix must have one column per table cell.'
            )
    else:
        facets = parse_facets(facets, variables)
        A = hmat(dims, facets)

    # Moves
    if moves is None or (isinstance(moves, str) and moves == 'sis'):
        logger.warning(
            "No moves were provided. The resulting chain is likely not connected and strongly autocorrelated."
        )
        logger.note(f"Computing {sis_moves} SIS moves")
        moves = rmove(sis_moves, A, A @ u, rng = set_seed(seed))
    moves = to_numpy(moves)
    if moves.ndim != 2 or moves.shape[0] != u.shape[0]:
        raise InvalidDataShape(
            data_name_shapes = {'moves':moves.shape,'table':dims},
            message = 'Moves must have one row per table cell.'
        )
    if moves.shape[1] == 0:
        raise InvalidDataShape(
            data_name_shapes = {'moves':moves.shape},
            message = 'No moves available: the fiber of the table may be a single point.'
        )
    if not preserves_suff_stats(A, moves):
        raise InvalidDataRange(
            data = (A @ moves).tolist(),
            rang = '0',
            data_name = 'Sufficient statistics of moves'
        )

    # Run Metropolis Hastings
    init = u if init is None else tab2vec(init)
    chain_kwargs = dict(
        iter = iter,
        burn = burn,
        thin = thin,
        dist = distribution,
        hit_and_run = hit_and_run,
        sis = sis,
        non_uniform = non_uniform,
        adaptive = adaptive,
        A = A,
        logger = logger,
        monitor_progress = kwargs.get('monitor_progress',False)
    )
    if n_chains > 1:
        # Loggers are rebuilt in every worker
        chain_kwargs.pop('logger')
        chain_kwargs['level'] = level
        chains = run_chains(
            init,
            moves,
            n_chains = n_chains,
            n_workers = n_workers,
            seed = seed,
            **chain_kwargs
        )
        steps = np.hstack([to_numpy(chain['steps']) for chain in chains])
        accept_prob = float(np.mean([chain['accept_prob'] for chain in chains]))
    else:
        chain = metropolis(init, moves, seed = seed, **chain_kwargs)
        steps = to_numpy(chain['steps'])
        accept_prob = chain['accept_prob']

    # Expected table
    if model_given_by_matrix and method == 'ipf':
        logger.note(
            "Iterative proportional fitting is not available for models given by configuration matrices. "
            "Changing to method = mcmc."
        )
        method = 'mcmc'
    if method == 'ipf':
        expected = ipf(table, facets, tolerance = IPF_TOLERANCE, max_iterations = IPF_MAX_ITERATIONS)
    else:
        expected = steps.astype('float64').mean(axis = 1).reshape(dims)
    e = expected.astype('float64').ravel()

    # Goodness of fit statistics
    statistics = compute_statistics(u, steps, e)

    # Pearson residuals
    residuals = np.zeros(dims, dtype = 'float64')
    positive = expected > 0
    residuals[positive] = (table[positive] - expected[positive]) / np.sqrt(expected[positive])

    result = {
        'steps':steps,
        'moves':moves,
        'accept_prob':accept_prob,
        'obs':table,
        'exp':expected,
        'A':A,
        'levels':levels,
        'residuals':residuals,
        'statistic':{stat:float(vals[0]) for stat,vals in statistics.items()},
        'samples_statistics':{stat:vals[1:] for stat,vals in statistics.items()},
        'iter':iter,
        'burn':burn,
        'thin':thin,
        'cells':int(u.shape[0]),
        'method':method
    }
    result.update(exact_p_values(statistics))

    if not model_given_by_matrix:
        terms = model_terms(facets)
        result['df'] = parameters_per_term(terms, dims, variables)
        result['param'] = decompose_log_fit(expected.astype('float64'), terms, variables)
        # Model selection
        k = sum(result['df'].values())
        n = int(u.sum())
        log_likelihood = float(multinomial.logpmf(u, n, e / e.sum()))
        aic = 2*k - 2*log_likelihood
        result['quality'] = {
            'AIC':aic,
            'AICc':aic + 2*k*(k+1)/(n-k-1) if n-k-1 != 0 else float('nan'),
            'BIC':np.log(n)*k - 2*log_likelihood
        }

    logger.progress(', '.join([f"{stat} p-value = {p:.4f}" for stat,p in result['p_value'].items()]))
    return result
