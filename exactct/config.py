import os
import json
import toml

from copy import deepcopy

from exactct.utils.exceptions import *
from exactct.utils.misc_utils import setup_logger, update_recursively, NumpyEncoder
from exactct.static.global_variables import TARGET_DISTRIBUTIONS, EXPECTED_TABLE_METHODS


class Config:

    DEFAULT_SETTINGS = {
        "logging":'info',
        "inputs":{
            "seed":None,
            "table":None,
            "moves":None,
            "freq_column":None
        },
        "model":{
            "facets":None
        },
        "mcmc":{
            "iter":10000,
            "burn":1000,
            "thin":10,
            "distribution":'hypergeometric',
            "hit_and_run":False,
            "sis":False,
            "non_uniform":False,
            "adaptive":False,
            "n_chains":1,
            "n_workers":1,
            "sis_moves":1000,
            "method":'ipf'
        },
        "outputs":{
            "directory":'data/outputs/',
            "title":''
        }
    }

    # Expected type and admissible values of every validated key
    SCHEMA = {
        ("mcmc","iter"):(int,lambda v: v >= 1,'>= 1'),
        ("mcmc","burn"):(int,lambda v: v >= 0,'>= 0'),
        ("mcmc","thin"):(int,lambda v: v >= 1,'>= 1'),
        ("mcmc","n_chains"):(int,lambda v: v >= 1,'>= 1'),
        ("mcmc","n_workers"):(int,lambda v: v >= 1,'>= 1'),
        ("mcmc","sis_moves"):(int,lambda v: v >= 1,'>= 1'),
        ("mcmc","distribution"):(str,lambda v: v in TARGET_DISTRIBUTIONS,TARGET_DISTRIBUTIONS),
        ("mcmc","method"):(str,lambda v: v in EXPECTED_TABLE_METHODS,EXPECTED_TABLE_METHODS),
        ("mcmc","hit_and_run"):(bool,None,None),
        ("mcmc","sis"):(bool,None,None),
        ("mcmc","non_uniform"):(bool,None,None),
        ("mcmc","adaptive"):(bool,None,None),
        ("inputs","table"):(str,None,None),
    }

    def __init__(self, path:str = None, settings:dict = None, **kwargs):
        """
        Config object constructor.
        :param path: Path to configuration TOML file
        :param settings: Settings dictionary used instead of a file
        """
        # Setup logger
        level = kwargs.get('console_level',None)
        self.logger = setup_logger(
            __name__,
            console_level = level,
        ) if kwargs.get('logger',None) is None else kwargs['logger']

        self.path = path
        if path is not None:
            if not os.path.isfile(path):
                raise ConfigException(f'Config not found in {path}')
            self.logger.debug(f'Loading config from {path}')
            loaded = toml.load(path, _dict = dict)
        elif settings is not None:
            loaded = deepcopy(settings)
        else:
            raise ConfigException('Neither a config path nor settings were provided.')

        self.settings = update_recursively(
            deepcopy(self.DEFAULT_SETTINGS),
            loaded,
            overwrite = True
        )
        self.validate()

    def __str__(self):
        return json.dumps(self.settings, indent = 2, cls = NumpyEncoder)

    def __getitem__(self, key):
        return self.settings[key]

    def __setitem__(self, key, value):
        self.settings[key] = value

    def __contains__(self, key):
        return key in self.settings

    def validate(self) -> None:
        for key_path,(dtype,check,rang) in self.SCHEMA.items():
            value = self.settings
            for key in key_path:
                value = value.get(key,None) if isinstance(value,dict) else None
            if value is None:
                continue
            # Booleans are integers in python
            if (dtype is int and isinstance(value, bool)) or not isinstance(value, dtype):
                raise InvalidConfigType(
                    message = f'Expected {dtype.__name__}',
                    key_path = key_path,
                    data = value
                )
            if check is not None and not check(value):
                raise InvalidDataRange(
                    data = value,
                    rang = rang,
                    data_name = '>'.join(key_path)
                )

    def require(self, *key_path):
        value = self.settings
        for key in key_path:
            if not isinstance(value, dict) or value.get(key,None) is None:
                raise MissingConfigKey(key_path = key_path)
            value = value[key]
        return value

    def path_sets_root(self) -> None:
        """
        Roots relative input and output paths at the directory of the config file.
        """
        root = os.path.dirname(os.path.abspath(self.path)) if self.path is not None else os.getcwd()
        for section,key in [('inputs','table'),('inputs','moves'),('outputs','directory')]:
            value = self.settings[section].get(key,None)
            if isinstance(value, str) and not os.path.isabs(value):
                self.settings[section][key] = os.path.normpath(os.path.join(root, value))
