import numpy as np

from typing import Tuple, Union
from scipy.optimize import linprog

from exactct.utils.exceptions import SISFailed, InvalidDataShape
from exactct.utils.misc_utils import to_numpy
from exactct.static.global_variables import SIS_MAX_RESTARTS, SIS_LP_TOLERANCE


def relaxation_is_feasible(A:np.ndarray, b:np.ndarray) -> bool:
    result = linprog(
        np.zeros(A.shape[1]),
        A_eq = A,
        b_eq = b,
        bounds = (0, None),
        method = 'highs'
    )
    return result.status == 0


def cell_bounds(A:np.ndarray, b:np.ndarray, table:np.ndarray, fixed:np.ndarray, cell:int) -> Union[Tuple[int,int],None]:
    '''
    Integer range of values of `cell` over the linear relaxation of the fiber
    {x >= 0 : A x = b} with the `fixed` cells set to their values in `table`.
    Returns None if the relaxation is infeasible.
    '''
    free = ~fixed
    # Sufficient statistics left for the free cells
    b_residual = b - A[:,fixed] @ table[fixed]
    A_free = A[:,free]
    # Position of the cell among the free cells
    position = int(np.sum(free[:cell]))
    c = np.zeros(A_free.shape[1])
    c[position] = 1.0

    bounds = []
    for sign in [1.0,-1.0]:
        result = linprog(
            sign * c,
            A_eq = A_free,
            b_eq = b_residual,
            bounds = (0, None),
            method = 'highs'
        )
        if result.status == 0:
            bounds.append(sign * result.fun)
            continue
        # Presolve may not tell infeasible and unbounded problems apart
        if result.status == 2 or (result.status == 4 and not relaxation_is_feasible(A_free, b_residual)):
            return None
        elif result.status in [3,4]:
            raise SISFailed(
                keys = ['config','suff_stats'],
                message = 'The fiber is unbounded; the configuration matrix must bound every cell.'
            )
        else:
            raise SISFailed(
                keys = ['config','suff_stats'],
                message = f'Linear program failed: {result.message}'
            )

    lower = int(np.ceil(bounds[0] - SIS_LP_TOLERANCE))
    upper = int(np.floor(bounds[1] + SIS_LP_TOLERANCE))
    return max(lower,0), upper


def sis_table(config, suff_stats, rng:np.random.Generator = None, max_restarts:int = SIS_MAX_RESTARTS) -> np.ndarray:
    '''
    Sequential importance sampling draw of a table in the fiber {x >= 0 integer : config x = suff_stats}.
    Cells are filled in order, each uniformly within the range allowed by the
    linear relaxation given the cells filled so far. Draws that run into an
    integer gap are restarted.
    '''
    rng = np.random.default_rng() if rng is None else rng
    A = to_numpy(config, dtype = 'float64')
    b = to_numpy(suff_stats, dtype = 'float64').ravel()
    if A.ndim != 2 or A.shape[0] != b.shape[0]:
        raise InvalidDataShape(
            data_name_shapes = {'config':A.shape,'suff_stats':b.shape},
            message = 'Configuration matrix must have one row per sufficient statistic.'
        )
    ncells = A.shape[1]

    for _ in range(max_restarts):
        table = np.zeros(ncells, dtype = 'int64')
        fixed = np.zeros(ncells, dtype = bool)
        feasible = True
        for cell in range(ncells):
            bounds = cell_bounds(A, b, table, fixed, cell)
            if bounds is None or bounds[0] > bounds[1]:
                feasible = False
                break
            table[cell] = rng.integers(bounds[0], bounds[1] + 1)
            fixed[cell] = True

        if feasible and np.allclose(A @ table, b):
            return table

    raise SISFailed(
        keys = ['config','suff_stats'],
        message = f'No table found after {max_restarts} restarts.'
    )


def rmove(n:int, A, b, rng:np.random.Generator = None, **kwargs) -> np.ndarray:
    '''
    Moves generated as differences of pairs of SIS tables.
    Zero moves are dropped and moves are unique up to sign.
    Returns a matrix with one move per column.
    '''
    rng = np.random.default_rng() if rng is None else rng
    moves = {}
    for _ in range(n):
        move = sis_table(A, b, rng = rng, **kwargs) - sis_table(A, b, rng = rng, **kwargs)
        non_zero = np.flatnonzero(move)
        if len(non_zero) == 0:
            continue
        # Orient so that the first non-zero entry is positive
        if move[non_zero[0]] < 0:
            move = -move
        moves.setdefault(tuple(move.tolist()), move)

    ncells = to_numpy(A).shape[1]
    if len(moves) == 0:
        return np.zeros((ncells,0), dtype = 'int64')
    return np.column_stack(list(moves.values())).astype('int64')
