import numpy as np

from typing import List, Union

from exactct.utils.exceptions import InvalidDataShape, InvalidDataRange
from exactct.utils.misc_utils import tab2vec, to_numpy, tuplize


def hmat(levels:List[int], facets:List[Union[int,List[int]]]) -> np.ndarray:
    """
    Configuration matrix of the hierarchical log-linear model generated by `facets`
    on a table with `levels[i]` levels in variable i.
    Each facet contributes one indicator row per cell of its marginal table.
    Table cells are columns, flattened in C order.
    """
    levels = [int(lvl) for lvl in levels]
    ncells = int(np.prod(levels))
    # Multi-index of every cell in C order
    cells = np.array(np.unravel_index(np.arange(ncells), levels)).T

    blocks = []
    for facet in facets:
        facet = list(tuplize(facet))
        if any([(ax < 0) or (ax >= len(levels)) for ax in facet]):
            raise InvalidDataRange(
                data = facet,
                rang = [0,len(levels)-1],
                data_name = 'Facet'
            )
        facet_levels = [levels[ax] for ax in facet]
        # Row of every cell within this facet's marginal table
        rows = np.ravel_multi_index(cells[:,facet].T, facet_levels) if len(facet) > 0 else np.zeros(ncells,dtype = int)
        block = np.zeros((int(np.prod(facet_levels)), ncells), dtype = 'int64')
        block[rows, np.arange(ncells)] = 1
        blocks.append(block)

    return np.vstack(blocks)


def lawrence(A) -> np.ndarray:
    """
    Lawrence lifting [[A, 0], [I, I]] of a configuration matrix.
    """
    A = to_numpy(A)
    nrows, ncols = A.shape
    top = np.hstack([A, np.zeros((nrows, ncols), dtype = 'int64')])
    bottom = np.hstack([np.eye(ncols, dtype = 'int64'), np.eye(ncols, dtype = 'int64')])
    return np.vstack([top, bottom])


def suff_stats(A, table) -> np.ndarray:
    A = to_numpy(A)
    vec = tab2vec(table)
    if A.shape[1] != vec.shape[0]:
        raise InvalidDataShape(
            data_name_shapes = {'A':A.shape,'table':vec.shape},
            message = 'Configuration matrix must have one column per table cell.'
        )
    return A @ vec


def preserves_suff_stats(A, moves) -> bool:
    # Every move (column) must lie in the kernel of A
    return bool(np.all(to_numpy(A) @ to_numpy(moves) == 0))
