import os
import click
import psutil

from exactct.utils.logger_class import *
from exactct.utils.click_parsers import *
from exactct.static.global_variables import *


def set_threads(n_threads):
    if n_threads is not None:
        os.environ['OMP_NUM_THREADS'] = str(n_threads)
        os.environ['MKL_NUM_THREADS'] = str(n_threads)
        os.environ['OPENBLAS_NUM_THREADS'] = str(n_threads)
        import torch
        torch.set_num_threads(n_threads)

# Get total number of threads
AVAILABLE_CORES = psutil.cpu_count(logical = True)
AVAILABLE_THREADS = psutil.cpu_count(logical = True)


@click.group('exactct')
def cli():
    """
    Command line tool for exact conditional goodness-of-fit tests of log-linear models on contingency tables
    """
    pass

_common_options = [
    click.option('--logging_mode','-log', type = click.Choice(LOG_LEVEL_CHOICES+LOG_LEVELS), default='info',
            help = f'Type of logging mode used.'),
    click.option('--seed','-seed', type = click.IntRange(min = 0), show_default = True,
            default = None, help = 'Overwrites random number generation seed.'),
    click.option('--freq_column','-fc', type = click.STRING, default = None,
            help = 'Overwrites name of the frequency column of csv tables.'),
    click.option('--facet','-f', 'facets', type = click.STRING, multiple = True, callback = facets_callback,
            help = 'Overwrites model facets. Variables of a facet are separated by &, e.g. -f 0&1 -f 2'),
]

_mcmc_options = [
    click.option('--iter','-n', type = click.IntRange(min = 1), default = None,
            help = 'Overwrites number of recorded Markov chain steps.'),
    click.option('--burn','-b', type = click.IntRange(min = 0), default = None,
            help = 'Overwrites number of burn-in steps.'),
    click.option('--thin','-t', type = click.IntRange(min = 1), default = None,
            help = 'Overwrites number of steps between recorded steps.'),
    click.option('--distribution','-dist', type = click.Choice(TARGET_DISTRIBUTIONS), default = None,
            help = 'Overwrites target distribution on the fiber.'),
    click.option('--hit_and_run/--no-hit_and_run', default = None, is_flag = True,
            help = 'Flag for whether hit and run proposals are used.'),
    click.option('--sis/--no-sis', default = None, is_flag = True,
            help = 'Flag for whether the chain is occasionally refreshed with SIS tables.'),
    click.option('--non_uniform/--no-non_uniform', default = None, is_flag = True,
            help = 'Flag for whether moves are selected with adaptive non uniform weights.'),
    click.option('--adaptive/--no-adaptive', default = None, is_flag = True,
            help = 'Flag for whether adaptive proposals are used.'),
    click.option('--method','-m', type = click.Choice(EXPECTED_TABLE_METHODS), default = None,
            help = 'Overwrites method used to compute the expected table.'),
    click.option('--n_chains','-nc', type = click.IntRange(min = 1), default = None,
            help = 'Overwrites number of independent chains.'),
    click.option('--n_workers','-nw', type = click.IntRange(min = 1,max = AVAILABLE_CORES), default = None,
            help = 'Overwrites number of independent workers used in multiprocessing'),
    click.option('--n_threads','-nt', type = click.IntRange(min = 1,max = AVAILABLE_THREADS), default = None,
            help = 'Overwrites number of threads (per worker) used in multithreading.'),
    click.option('--monitor_progress/--no-monitor_progress', default = False, is_flag = True,
            help = 'Flag for whether a progress bar is shown.'),
]

def common_options(func):
    for option in reversed(_common_options):
        func = option(func)
    return func

def mcmc_options(func):
    for option in reversed(_mcmc_options):
        func = option(func)
    return func


def summarise(result:dict) -> dict:
    keys = [
        'statistic','p_value','p_value_std_err','mid_p_value',
        'accept_prob','df','quality','method','iter','burn','thin','cells'
    ]
    return {k:result[k] for k in keys if k in result}


@cli.command('run')
@click.argument('config_path', type = click.Path(exists = True), required = True)
@click.option('--table','-tab', type = click.STRING, default = None, help = 'Overwrites input table filename in config')
@click.option('--moves','-mv', type = click.STRING, default = None, help = 'Overwrites moves filename in config')
@click.option('--out_directory','-o', 'directory', type = click.Path(exists = False), default = None,
        help = 'Overwrites output directory in config')
@click.option('--title','-ttl', type = click.STRING, default = None, help = 'Overwrites title of the output folder')
@common_options
@mcmc_options
def run(
        config_path,
        table,
        moves,
        directory,
        title,
        logging_mode,
        seed,
        freq_column,
        facets,
        iter,
        burn,
        thin,
        distribution,
        hit_and_run,
        sis,
        non_uniform,
        adaptive,
        method,
        n_chains,
        n_workers,
        n_threads,
        monitor_progress
    ):
    """
    Run an exact conditional test of the log-linear model in CONFIG_PATH.
    """
    # Gather all arguments in dictionary
    settings = {k:v for k,v in locals().items() if k not in ['config_path','logging_mode','monitor_progress','n_threads']}
    # Remove all nulls
    settings = {k: v for k, v in settings.items() if v is not None}

    set_threads(n_threads)

    # Import all modules
    from exactct.config import Config
    from exactct.loglinear import loglinear
    from exactct.utils.misc_utils import setup_logger, deep_updates, makedir, read_table, read_moves, \
        write_npy, write_json, write_csv, table_to_freq

    # Setup logger
    logger = setup_logger(
        __name__,
        console_level = logging_mode,
    )

    # Read config
    config = Config(
        path = config_path,
        console_level = logging_mode,
        logger = logger
    )
    # Update root
    config.path_sets_root()
    # Command line paths are relative to the working directory
    for key in ['table','moves','directory']:
        if key in settings:
            settings[key] = os.path.abspath(settings[key])
    # Update settings with overwritten values
    deep_updates(config.settings, settings, overwrite = True)
    config.validate()

    data = read_table(config.require('inputs','table'))
    moves_path = config['inputs']['moves']
    moves_data = read_moves(moves_path) if moves_path else None

    result = loglinear(
        data,
        facets = config.require('model','facets'),
        moves = moves_data,
        seed = config['inputs']['seed'],
        freq_column = config['inputs']['freq_column'],
        logger = logger,
        monitor_progress = monitor_progress,
        **config['mcmc']
    )

    # Write outputs
    output_path = os.path.join(config['outputs']['directory'], config['outputs']['title'] or 'exact_test')
    makedir(output_path)
    write_npy(result['steps'], os.path.join(output_path,'steps.npy'))
    write_json(summarise(result), os.path.join(output_path,'summary.json'), indent = 2)
    write_json(config.settings, os.path.join(output_path,'config.json'), indent = 2)
    write_csv(
        table_to_freq(result['exp'], result['levels'], freq_column = 'expected', dtype = 'float64'),
        os.path.join(output_path,'expected.csv'),
        index = False
    )
    logger.success(f'Outputs written to {output_path}')


@cli.command('moves')
@click.argument('table_path', type = click.Path(exists = True), required = True)
@click.option('--n','-n', type = click.IntRange(min = 1), default = 1000, show_default = True,
        help = 'Number of pairs of SIS tables whose differences are used as moves.')
@click.option('--output','-o', type = click.Path(exists = False), required = True,
        help = 'Path of the csv file the moves (one per column) are written to.')
@common_options
def moves(
        table_path,
        n,
        output,
        logging_mode,
        seed,
        freq_column,
        facets
    ):
    """
    Generate moves of the log-linear model on the table in TABLE_PATH from SIS tables.
    """
    import pandas as pd
    from exactct.sis import rmove
    from exactct.model_matrix import hmat
    from exactct.loglinear import table_and_levels, parse_facets
    from exactct.utils.misc_utils import setup_logger, set_seed, read_table, tab2vec, write_csv

    # Setup logger
    logger = setup_logger(
        __name__,
        console_level = logging_mode,
    )

    if facets is None:
        raise click.UsageError('At least one facet is required.')

    data = read_table(table_path)
    table, levels = table_and_levels(data, freq_column = freq_column)

    A = hmat(table.shape, parse_facets(facets, list(levels.keys())))
    logger.info(f"Computing {n} SIS moves")
    moves_data = rmove(n, A, A @ tab2vec(table), rng = set_seed(seed))
    logger.info(f"Found {moves_data.shape[1]} distinct moves")

    write_csv(pd.DataFrame(moves_data), output, header = False, index = False)
    logger.success(f'Moves written to {output}')
