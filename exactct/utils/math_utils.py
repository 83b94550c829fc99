import torch
import numpy as np

from torch import float64
from scipy.special import gammaln
from itertools import chain, combinations

from exactct.utils.misc_utils import flatten, to_numpy


def log_factorial_sum(arr:torch.tensor):
    return torch.lgamma(arr.to(dtype = float64)+1).sum()


def powerset(iterable, include_null:bool = False):
    # Flatten list
    s = list(flatten(iterable))
    # Remove duplicates and keep order
    s = list(dict.fromkeys(s))
    start = 0 if include_null else 1
    return chain.from_iterable(combinations(s, r) for r in range(start,len(s)+1))


def _as_columns(observed, expected = None):
    # Tables are columns: a single table becomes an (n,1) matrix
    u = to_numpy(observed, dtype = 'float64')
    single = (u.ndim == 1)
    if single:
        u = u[:,None]
    if expected is None:
        return u, None, single
    e = to_numpy(expected, dtype = 'float64').ravel()[:,None]
    return u, e, single


def _unpack(stat, single:bool):
    return float(stat[0]) if single else stat


def log_unnormalised_probability(observed):
    """
    Log of the unnormalised multinomial weight prod_x (1/u(x)!) of each table.
    """
    u, _, single = _as_columns(observed)
    return _unpack(-gammaln(u+1).sum(axis = 0), single)


def pearson_chi_squared(observed, expected):
    u, e, single = _as_columns(observed, expected)
    with np.errstate(divide = 'ignore', invalid = 'ignore'):
        terms = np.where(e > 0, (u-e)**2 / e, 0.0)
    return _unpack(terms.sum(axis = 0), single)


def likelihood_ratio(observed, expected):
    u, e, single = _as_columns(observed, expected)
    with np.errstate(divide = 'ignore', invalid = 'ignore'):
        terms = np.where((u > 0) & (e > 0), u * np.log(u / e), 0.0)
    return _unpack(2 * terms.sum(axis = 0), single)


def cressie_read(observed, expected, lambd:float = 2/3):
    """
    Cressie-Read power divergence statistic
    2 / (lambda (lambda + 1)) sum_x u(x) ((u(x) / e(x))^lambda - 1).
    Empty cells contribute zero for lambda > -1.
    """
    u, e, single = _as_columns(observed, expected)
    with np.errstate(divide = 'ignore', invalid = 'ignore', over = 'ignore'):
        terms = np.where((u > 0) & (e > 0), u * ((u / e)**lambd - 1), 0.0)
    return _unpack(2 / (lambd * (lambd + 1)) * terms.sum(axis = 0), single)


def freeman_tukey(observed, expected):
    return cressie_read(observed, expected, lambd = -0.5)


def neyman_modified_chi_squared(observed, expected):
    u, e, single = _as_columns(observed, expected)
    with np.errstate(divide = 'ignore', invalid = 'ignore'):
        terms = np.where(u > 0, (u-e)**2 / u, 0.0)
    return _unpack(terms.sum(axis = 0), single)


def ipf(table, facets:list, tolerance:float = 1e-8, max_iterations:int = 1000):
    """
    Iterative proportional fitting of the hierarchical log-linear model generated by `facets`.
    Returns the fitted table, which matches the observed facet margins.
    """
    table = to_numpy(table, dtype = 'float64')
    axes = tuple(range(table.ndim))
    fit = np.full(table.shape, table.sum() / table.size)
    for _ in range(max_iterations):
        previous = fit.copy()
        for facet in facets:
            summed_axes = tuple(ax for ax in axes if ax not in facet)
            observed_margin = table.sum(axis = summed_axes, keepdims = True)
            fitted_margin = fit.sum(axis = summed_axes, keepdims = True)
            with np.errstate(divide = 'ignore', invalid = 'ignore'):
                ratio = np.where(fitted_margin > 0, observed_margin / fitted_margin, 0.0)
            fit = fit * ratio
        if np.max(np.abs(fit - previous)) < tolerance:
            break
    return fit
