TARGET_DISTRIBUTIONS = ["hypergeometric","uniform"]

PROPOSAL_TYPES = ["unit_step","hit_and_run","adaptive"]

# Probability of replacing the proposal of an outer iteration by an independent SIS table
SIS_REFRESH_PROBABILITY = {
    "uniform":0.05,
    "hypergeometric":0.01
}

# Direction of a step taken in the adaptive sub-chain
ADAPTIVE_DIRECTIONS = [-1,1]

EXPECTED_TABLE_METHODS = ["ipf","mcmc"]

FREQUENCY_COLUMN_NAMES = ["freq","count","frequency"]

# Goodness-of-fit statistics and the direction in which a sample is at least as extreme
STATISTICS = {
    "PR":"less_equal",
    "X2":"greater_equal",
    "G2":"greater_equal",
    "FT":"greater_equal",
    "CR":"greater_equal",
    "NM":"greater_equal"
}

# Cressie-Read powers of the Freeman-Tukey and Cressie-Read statistics
CRESSIE_READ_LAMBDAS = {
    "FT":-0.5,
    "CR":2/3
}

IPF_TOLERANCE = 1e-8
IPF_MAX_ITERATIONS = 1000

SIS_MAX_RESTARTS = 100
# Tolerance used when rounding linear programming cell bounds to integers
SIS_LP_TOLERANCE = 1e-7

LOG_LEVEL_CHOICES = ['debug','info','warning','error','critical']
