import pytest
import numpy as np

from exactct.utils.exceptions import *
from exactct.model_matrix import hmat
from exactct.sis import sis_table, cell_bounds, rmove


@pytest.fixture
def independence_2x3():
    A = hmat([2,3],[[0],[1]])
    table = np.array([3,1,2,2,1,1])
    return A, A @ table


def test_cell_bounds():
    A = hmat([2,2],[[0],[1]])
    # Row sums (3,2) and column sums (4,1)
    b = np.array([3,2,4,1])
    table = np.zeros(4, dtype = 'int64')
    fixed = np.zeros(4, dtype = bool)
    assert cell_bounds(A, b, table, fixed, 0) == (2,3)
    # Fixing the first cell determines the rest of the table
    table[0] = 2
    fixed[0] = True
    assert cell_bounds(A, b, table, fixed, 1) == (1,1)

def test_cell_bounds_infeasible():
    A = hmat([2,2],[[0],[1]])
    # Row and column sums disagree
    b = np.array([3,2,4,2])
    assert cell_bounds(A, b, np.zeros(4, dtype = 'int64'), np.zeros(4, dtype = bool), 0) is None

def test_cell_bounds_unbounded():
    A = np.array([[1,-1]])
    with pytest.raises(SISFailed):
        cell_bounds(A, np.array([0]), np.zeros(2, dtype = 'int64'), np.zeros(2, dtype = bool), 0)

def test_sis_table_in_fiber(independence_2x3):
    A, b = independence_2x3
    rng = np.random.default_rng(1234)
    for _ in range(20):
        table = sis_table(A, b, rng = rng)
        assert table.dtype == np.int64
        assert np.all(table >= 0)
        assert np.array_equal(A @ table, b)

def test_sis_table_reproducible(independence_2x3):
    A, b = independence_2x3
    table1 = sis_table(A, b, rng = np.random.default_rng(7))
    table2 = sis_table(A, b, rng = np.random.default_rng(7))
    assert np.array_equal(table1, table2)

def test_sis_table_single_point_fiber():
    A = hmat([2,2],[[0],[1]])
    # Margins (0,2) and (1,1) admit a single table
    table = sis_table(A, np.array([0,2,1,1]), rng = np.random.default_rng(0))
    assert np.array_equal(table, [0,0,1,1])

def test_sis_table_failures():
    A = hmat([2,2],[[0],[1]])
    with pytest.raises(InvalidDataShape):
        sis_table(A, np.array([1,2,3]))
    with pytest.raises(SISFailed):
        sis_table(A, np.array([3,2,4,2]), rng = np.random.default_rng(0), max_restarts = 2)

def test_rmove(independence_2x3):
    A, b = independence_2x3
    moves = rmove(50, A, b, rng = np.random.default_rng(1234))
    assert moves.shape[0] == 6
    assert moves.shape[1] > 0
    # Moves lie in the kernel of the configuration matrix
    assert np.all(A @ moves == 0)
    for j in range(moves.shape[1]):
        move = moves[:,j]
        # Non zero and oriented
        assert np.any(move != 0)
        assert move[np.flatnonzero(move)[0]] > 0
    # Unique columns
    assert len(set(map(tuple,moves.T.tolist()))) == moves.shape[1]

def test_rmove_single_point_fiber():
    A = hmat([2,2],[[0],[1]])
    moves = rmove(5, A, np.array([0,2,1,1]), rng = np.random.default_rng(0))
    assert moves.shape == (4,0)
