"""Console and file loggers with the extra sampler log levels.
Console output goes through coloredlogs, file output is buffered until the handler is closed.
"""
import os
import inspect
import logging
import coloredlogs
from pathlib import Path

# Define the additional log levels
TRACE = 5
REMARK = 12
NOTE = 17
ITERATION = 18
PROGRESS = 19
CAUTION = 23
HILIGHT = 25
SUCCESS = 35
EMPTY = 60

EXTRA_LOG_LEVELS = {
    'trace':TRACE,
    'remark':REMARK,
    'note':NOTE,
    'iteration':ITERATION,
    'progress':PROGRESS,
    'caution':CAUTION,
    'hilight':HILIGHT,
    'success':SUCCESS,
    'empty':EMPTY
}
LOG_LEVELS = list(EXTRA_LOG_LEVELS.keys())

for _name,_level in EXTRA_LOG_LEVELS.items():
    logging.addLevelName(_level, _name.upper())

LOG_FORMAT = '%(asctime)s.%(msecs)03d %(modulename)-s %(levelname)-3s %(message)s'


def parse_level(level):
    if level is None:
        return None
    if isinstance(level,str):
        return logging.getLevelName(level.upper())
    return level


class CustomFileHandler(logging.FileHandler):
    def __init__(self, filename, mode='a', delay = True, **kwargs):
        dirpath = Path(filename).absolute().parent
        if not os.path.exists(dirpath) or not os.path.isdir(dirpath):
            os.makedirs(dirpath)

        super().__init__(filename = filename, mode = mode, delay = True)
        self.mode = mode
        self.buffered = delay
        self.logger_name = kwargs.get('name','')
        self.buffer = []

    def emit(self, record):
        self.buffer.append(self.format(record))

    def flush(self):
        if not self.buffered:
            self._write_to_file()

    def _write_to_file(self):
        if len(self.buffer) == 0:
            return
        with open(self.baseFilename, self.mode) as f:
            for message in self.buffer:
                f.write(message + '\n')
        self.buffer = []

    def close(self):
        self._write_to_file()
        super().close()


class CustomLogger(logging.Logger):
    """Logger class with the additional levels registered above"""

    def __init__(self, name, level = logging.NOTSET):
        super().__init__(name, level)

    def __getattr__(self, attr):
        # Expose one logging method per extra level (e.g. logger.note(...))
        if attr in EXTRA_LOG_LEVELS:
            level = EXTRA_LOG_LEVELS[attr]
            def log_at_level(msg, *args, **kwargs):
                if self.isEnabledFor(level):
                    self._log(level, msg, args, **kwargs)
            return log_at_level
        raise AttributeError(attr)


class DualLogger():

    def __init__(self, name, level = logging.NOTSET, log_file:str = None):

        logging.setLoggerClass(CustomLogger)

        self.name = name
        # Instantiate loggers
        self.console = logging.getLogger(name + "_console")
        self.file = logging.getLogger(name + "_file")
        self.file.propagate = False

        # Console handler
        coloredlogs.install(
            fmt = LOG_FORMAT,
            datefmt = '%M:%S',
            logger = self.console,
            level = parse_level(level) or logging.INFO
        )
        self.setLevels(console_level = level)

        # File handler (only if a log file was requested)
        if log_file is not None:
            self.file.disabled = False
            # Remove any handler that is not ours
            for handler in list(self.file.handlers):
                if not isinstance(handler,CustomFileHandler):
                    self.file.removeHandler(handler)

            if len(self.file.handlers) <= 0:
                file_handler = CustomFileHandler(log_file, name = name)
                file_handler.setFormatter(logging.Formatter(
                    fmt = LOG_FORMAT,
                    datefmt = '%M:%S'
                ))
                self.file.addHandler(file_handler)

            for handler in self.file.handlers:
                handler.setLevel(logging.DEBUG)
        else:
            self.file.disabled = True

    def __getstate__(self):
        # Loggers are recovered by name when unpickled in worker processes
        return {'name':self.name,'levels':self.getLevels(numeric = True)}

    def __setstate__(self, state):
        self.name = state['name']
        self.console = logging.getLogger(self.name + "_console")
        self.file = logging.getLogger(self.name + "_file")
        self.setLevels(
            console_level = state['levels']['console'],
            file_level = state['levels']['file']
        )

    def getLevels(self, numeric:bool = False):
        if numeric:
            return {
                "console":self.console.level,
                "file":self.file.level
            }
        return {
            "console":logging.getLevelName(self.console.level),
            "file":logging.getLevelName(self.file.level)
        }

    def setLevels(self, console_level = None, file_level = None) -> None:
        console_level = parse_level(console_level)
        file_level = parse_level(file_level)
        if console_level is not None:
            self.console.setLevel(console_level)
            for handler in self.console.handlers:
                handler.setLevel(console_level)
        if file_level is not None:
            self.file.setLevel(file_level)
            for handler in self.file.handlers:
                handler.setLevel(file_level)

    def close(self):
        for handler in list(self.file.handlers):
            handler.close()
            self.file.removeHandler(handler)

    def _log(self, level:int, msg):
        loggers = [
            logger for logger in [self.console,self.file]
            if not logger.disabled and logger.isEnabledFor(level)
        ]
        if len(loggers) == 0:
            return
        # Name the module that emitted the message, not this one
        frame = inspect.currentframe().f_back.f_back
        module = frame.f_code.co_filename.split('.py')[0].split('/')[-1]
        for logger in loggers:
            logger.log(level, msg, extra = dict(modulename = module))

    def debug(self, msg):
        self._log(logging.DEBUG, msg)

    def info(self, msg):
        self._log(logging.INFO, msg)

    def warning(self, msg):
        self._log(logging.WARNING, msg)

    def error(self, msg):
        self._log(logging.ERROR, msg)

    def critical(self, msg):
        self._log(logging.CRITICAL, msg)

    def trace(self, msg):
        self._log(TRACE, msg)

    def remark(self, msg):
        self._log(REMARK, msg)

    def note(self, msg):
        self._log(NOTE, msg)

    def iteration(self, msg):
        self._log(ITERATION, msg)

    def progress(self, msg):
        self._log(PROGRESS, msg)

    def caution(self, msg):
        self._log(CAUTION, msg)

    def hilight(self, msg):
        self._log(HILIGHT, msg)

    def success(self, msg):
        self._log(SUCCESS, msg)

    def empty(self, msg):
        self._log(EMPTY, msg)
