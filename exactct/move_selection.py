import numpy as np


class MoveDistribution(object):
    """
    Empirical move-selection weights of a single chain.
    Every weight starts at one and grows by one each time its move leads to an accepted step.
    """

    def __init__(self, n_moves:int):
        self.weights = np.ones(n_moves, dtype = 'float64')
        self.total = float(n_moves)

    def __len__(self):
        return len(self.weights)

    def __repr__(self):
        return f"MoveDistribution(n_moves = {len(self)}, total = {self.total})"

    def probabilities(self) -> np.ndarray:
        return self.weights / self.total

    def select(self, u:float) -> int:
        # First index whose cumulative weight share reaches u
        cumulative = np.cumsum(self.weights) / self.total
        index = int(np.searchsorted(cumulative, u, side = 'left'))
        return min(index, len(self) - 1)

    def reward(self, index:int) -> None:
        self.weights[index] += 1
        self.total += 1


class MoveSelector(object):

    def __init__(self, n_moves:int, rng:np.random.Generator, non_uniform:bool = False):
        self.n_moves = n_moves
        self.rng = rng
        self.non_uniform = non_uniform
        self.move_distribution = MoveDistribution(n_moves) if non_uniform else None

    def __repr__(self):
        return f"MoveSelector({'non uniform' if self.non_uniform else 'uniform'}, n_moves = {self.n_moves})"

    def select(self) -> int:
        if self.non_uniform:
            return self.move_distribution.select(self.rng.random())
        return int(self.rng.integers(self.n_moves))

    def accepted(self, index:int) -> None:
        if self.non_uniform:
            self.move_distribution.reward(index)
