# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import logging
import datetime
import sys
import pathlib
import os
import platform
from typing import Optional, TYPE_CHECKING
import copy

if TYPE_CHECKING:
    from .simple_config import SimpleConfig


class LogFormatterForFiles(logging.Formatter):

    def formatTime(self, record, datefmt=None):
        # timestamps follow ISO 8601 UTC
        date = datetime.datetime.fromtimestamp(record.created).astimezone(datetime.timezone.utc)
        if not datefmt:
            datefmt = "%Y%m%dT%H%M%S.%fZ"
        return date.strftime(datefmt)

    def format(self, record):
        return super().format(_shorten_name_of_logrecord(record))


class LogFormatterForConsole(logging.Formatter):

    def format(self, record):
        return super().format(_shorten_name_of_logrecord(record))


file_formatter = LogFormatterForFiles(fmt="%(asctime)22s | %(levelname)8s | %(name)s | %(message)s")
# console lines: no timestamp, one-letter level, no "sigsim." prefix
console_formatter = LogFormatterForConsole(fmt="%(levelname).1s | %(name)s | %(message)s")


def _shorten_name_of_logrecord(record: logging.LogRecord) -> logging.LogRecord:
    record = copy.copy(record)
    if record.name.startswith("sigsim."):
        record.name = record.name[len("sigsim."):]
    record.name = record.name.replace("bsgs.GiantStepWorker", "bsgs.worker", 1)
    record.name = record.name.replace("ec.Curve", "curve", 1)
    return record


def _delete_old_logs(path, keep=10):
    files = sorted(pathlib.Path(path).glob("sigsim_log_*.log"), reverse=True)
    for f in files[keep:]:
        try:
            os.remove(str(f))
        except OSError as e:
            _logger.warning(f"cannot delete old logfile: {e}")


_logfile_path = None
def _configure_file_logging(log_directory: pathlib.Path):
    global _logfile_path
    assert _logfile_path is None, 'file logging already initialized'
    log_directory.mkdir(parents=True, exist_ok=True)
    _delete_old_logs(log_directory)

    timestamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    _logfile_path = log_directory / f"sigsim_log_{timestamp}_{os.getpid()}.log"

    file_handler = logging.FileHandler(_logfile_path, encoding='utf-8')
    file_handler.setFormatter(file_formatter)
    file_handler.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)


console_stderr_handler = None
def _configure_stderr_logging(*, verbosity=None):
    # WARNING and up on stderr unless a verbosity is given
    global console_stderr_handler
    if console_stderr_handler is not None:
        _logger.warning("stderr handler already exists")
        return
    console_stderr_handler = logging.StreamHandler(sys.stderr)
    console_stderr_handler.setFormatter(console_formatter)
    if not verbosity:
        console_stderr_handler.setLevel(logging.WARNING)
    else:
        console_stderr_handler.setLevel(logging.DEBUG)
        _process_verbosity_log_levels(verbosity)
    root_logger.addHandler(console_stderr_handler)


def _process_verbosity_log_levels(verbosity):
    if verbosity == '*' or not isinstance(verbosity, str):
        return
    # examples:
    #   debug,bsgs=info     everything at debug, except the order search engine
    #   warning,ec=debug    only the curve layer at debug
    for filt in verbosity.split(','):
        if not filt:
            continue
        items = filt.split('=')
        if len(items) == 1:
            sigsim_logger.setLevel(items[0].upper())
        elif len(items) == 2:
            logger_name, level = items
            get_logger(logger_name).setLevel(level.upper())
        else:
            raise ValueError(f"invalid log filter: {filt}")


root_logger = logging.getLogger()
root_logger.setLevel(logging.WARNING)

sigsim_logger = logging.getLogger("sigsim")
sigsim_logger.setLevel(logging.DEBUG)


def get_logger(name: str) -> logging.Logger:
    if name.startswith("sigsim."):
        name = name[len("sigsim."):]
    return sigsim_logger.getChild(name)


_logger = get_logger(__name__)
_logger.setLevel(logging.INFO)


class Logger:
    """Gives instances a `self.logger` named after their class,
    suffixed with diagnostic_name() if there is one.
    """

    def __init__(self):
        self.logger = self.__get_logger_for_obj()

    def __get_logger_for_obj(self) -> logging.Logger:
        cls = self.__class__
        name = f"{cls.__module__}.{cls.__name__}" if cls.__module__ else cls.__name__
        try:
            diag_name = self.diagnostic_name()
        except Exception as e:
            raise Exception("diagnostic name not yet available?") from e
        if diag_name:
            name += f".[{diag_name}]"
        return get_logger(name)

    def diagnostic_name(self):
        return ''


def configure_logging(config: 'SimpleConfig', *, log_to_file: Optional[bool] = None) -> None:
    verbosity = config.get('verbosity')
    _configure_stderr_logging(verbosity=verbosity)

    if log_to_file is None:
        log_to_file = config.LOG_TO_FILE
    if log_to_file:
        _configure_file_logging(pathlib.Path(config.path) / "logs")

    from .version import SIGSIM_VERSION
    _logger.info(f"sigsim version: {SIGSIM_VERSION}")
    _logger.info(f"Python version: {sys.version}. On platform: {platform.platform()}")
    _logger.info(f"Logging to file: {_logfile_path}")
    _logger.info(f"Log filters: verbosity {verbosity!r}")
