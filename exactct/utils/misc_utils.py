import os
import json
import torch
import random
import logging
import numpy as np
import pandas as pd

from typing import Dict, List, Union, Tuple
from collections.abc import Iterable, Mapping

from exactct.utils.exceptions import *
from exactct.utils.logger_class import *
from exactct.static.global_variables import FREQUENCY_COLUMN_NAMES


class NumpyEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        if isinstance(obj, torch.Tensor):
            return obj.tolist()
        return json.JSONEncoder.default(self, obj)


def setup_logger(
        name,
        console_level:str = None,
        file_level:str = None,
        log_file:str = None
    ):
    # Silence warnings from other packages
    for package in ['torch','scipy']:
        logging.getLogger(package).setLevel(logging.WARNING)

    # Get logger
    logger = DualLogger(
        name = name,
        level = console_level,
        log_file = log_file
    )

    logger.setLevels(
        console_level = console_level,
        file_level = file_level
    )

    return logger


def set_seed(seed):
    if seed is not None:
        random.seed(seed)
        np.random.seed(seed)
        torch.random.manual_seed(seed)
        return np.random.default_rng(seed)
    else:
        return np.random.default_rng(None)


def makedir(directory:str) -> None:
    if not os.path.exists(directory):
        os.makedirs(directory)


def tuplize(tup):
    # Convert strings
    if isinstance(tup,str):
        tup = int(tup)
    if hasattr(tup,'__len__'):
        return tuple(tup)
    else:
        return tuple([tup])


def flatten(xs):
    for x in xs:
        if isinstance(x, Iterable) and not isinstance(x, (str, bytes)):
            yield from flatten(x)
        else:
            yield x


# https://stackoverflow.com/questions/3232943/update-value-of-a-nested-dictionary-of-varying-depth
def update_recursively(d:Dict, u:Dict, overwrite:bool = False) -> Dict:
    for k, v in u.items():
        if isinstance(v, Mapping):
            d[k] = update_recursively(d.get(k, {}), v, overwrite)
        else:
            if overwrite:
                # Overwrite even if key exists
                d[k] = v
            else:
                # Do not overwrite if key exists
                if k not in d.keys():
                    d[k] = v
    return d


def deep_update(d,key,val,**kwargs):
    for dict_key,dict_val in d.items():
        if (dict_key == key) and kwargs.get('overwrite',True):
            d[key] = val
        elif isinstance(dict_val, dict):
            deep_update(dict_val,key,val,**kwargs)


def deep_updates(main_dict,update_dict,**kwargs):
    for k,v in update_dict.items():
        # None means the option was not set on the command line
        if v is None:
            continue
        deep_update(main_dict,k,v,**kwargs)
    return main_dict


def write_json(data:Dict,filepath:str,**kwargs:Dict) -> None:
    if not filepath.endswith('.json'):
        filepath += '.json'
    with open(filepath, 'w') as f:
        json.dump(data,f,cls = NumpyEncoder,**kwargs)


def write_npy(data:np.ndarray,filepath:str,**kwargs:Dict) -> None:
    # Write array to npy format
    if isinstance(data,torch.Tensor):
        data = data.detach().cpu().numpy()
    np.save(file = filepath, arr = data)


def read_npy(filepath:str,**kwargs:Dict) -> np.ndarray:
    return np.load(filepath, allow_pickle = False)


def write_csv(data:pd.DataFrame,filepath:str,**kwargs:Dict) -> None:
    # Write pandas to csv
    if not filepath.endswith('.csv'):
        filepath += '.csv'
    data.to_csv(filepath,**kwargs)


def to_numpy(data,dtype:str = 'int64') -> np.ndarray:
    if isinstance(data,torch.Tensor):
        data = data.detach().cpu().numpy()
    elif isinstance(data,(pd.DataFrame,pd.Series)):
        data = data.to_numpy()
    try:
        return np.asarray(data).astype(dtype)
    except (TypeError,ValueError):
        raise CastingException(
            data_name = type(data).__name__,
            from_type = str(getattr(data,'dtype',type(data).__name__)),
            to_type = dtype
        )


def to_tensor(data,dtype = torch.int64) -> torch.Tensor:
    if isinstance(data,torch.Tensor):
        return data.detach().clone().to(dtype = dtype)
    numpy_dtype = 'float64' if dtype.is_floating_point else 'int64'
    return torch.as_tensor(to_numpy(data,dtype = numpy_dtype)).to(dtype = dtype)


def tab2vec(table) -> np.ndarray:
    # Cells are flattened in C order (last axis varies fastest)
    return to_numpy(table).ravel()


def vec2tab(vec, dims:Union[List,Tuple]) -> np.ndarray:
    vec = to_numpy(vec)
    # Columns of a matrix are treated as separate tables
    if vec.ndim == 2:
        return np.stack([vec[:,j].reshape(tuple(dims)) for j in range(vec.shape[1])],axis = -1)
    return vec.reshape(tuple(dims))


def find_frequency_column(df:pd.DataFrame, freq_column:str = None) -> str:
    if freq_column is not None:
        if freq_column not in df.columns:
            raise MissingData(
                missing_data_name = freq_column,
                data_names = ', '.join(map(str,df.columns)),
                location = 'frequency table'
            )
        return freq_column
    for column in df.columns:
        if str(column).lower() in FREQUENCY_COLUMN_NAMES:
            return column
    raise MissingData(
        missing_data_name = '/'.join(FREQUENCY_COLUMN_NAMES),
        data_names = ', '.join(map(str,df.columns)),
        location = 'frequency table'
    )


def freq_to_table(df:pd.DataFrame, freq_column:str = None) -> Tuple[np.ndarray,Dict]:
    """
    Converts a data frame of frequencies (one row per cell, one column per variable
    and one count column) into an array indexed by the sorted levels of each variable.
    Cells that do not appear in the data frame are set to zero.
    """
    freq_column = find_frequency_column(df, freq_column)
    variables = [c for c in df.columns if c != freq_column]
    levels = {var:sorted(df[var].unique().tolist()) for var in variables}
    # Aggregate duplicate cells and fill in missing ones
    counts = df.groupby(variables)[freq_column].sum()
    full_index = pd.MultiIndex.from_product(
        [levels[var] for var in variables],
        names = variables
    ) if len(variables) > 1 else pd.Index(levels[variables[0]],name = variables[0])
    counts = counts.reindex(full_index, fill_value = 0)
    table = counts.to_numpy().astype('int64').reshape(tuple(len(levels[var]) for var in variables))
    return table, levels


def table_to_freq(table, levels:Dict = None, freq_column:str = 'freq', dtype:str = 'int64') -> pd.DataFrame:
    table = to_numpy(table, dtype = dtype)
    if levels is None:
        levels = {f"var{i+1}":list(range(dim)) for i,dim in enumerate(table.shape)}
    index = pd.MultiIndex.from_product(list(levels.values()),names = list(levels.keys()))
    df = pd.DataFrame({freq_column:table.ravel()},index = index).reset_index()
    return df


def read_table(filepath:str) -> Union[np.ndarray,pd.DataFrame]:
    # Arrays are stored as npy, frequency tables as csv
    if filepath.endswith('.npy'):
        return read_npy(filepath).astype('int64')
    elif filepath.endswith('.csv'):
        return pd.read_csv(filepath)
    else:
        raise MissingData(
            missing_data_name = filepath,
            data_names = '.csv, .npy',
            location = 'read_table'
        )


def read_moves(filepath:str) -> np.ndarray:
    # Moves are stored one per column
    if filepath.endswith('.npy'):
        return read_npy(filepath).astype('int64')
    return pd.read_csv(filepath, header = None).to_numpy().astype('int64')
