# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import json
import threading
import os
import stat
from typing import Union, Optional, Dict, Sequence, Any, Callable
from copy import deepcopy

from .util import user_dir, make_dir, os_chmod
from .logging import get_logger, Logger


_logger = get_logger(__name__)


_config_var_from_key = {}  # type: Dict[str, 'ConfigVar']


class ConfigVar(property):

    def __init__(
        self,
        key: str,
        *,
        default: Union[Any, Callable[['SimpleConfig'], Any]],  # typically a literal, but can also be a callable
        type_=None,
        convert_getter: Callable[[Any], Any] = None,
        short_desc: Callable[[], str] = None,
    ):
        self._key = key
        self._default = default
        self._type = type_
        self._convert_getter = convert_getter
        assert short_desc is None or callable(short_desc)
        self._short_desc = short_desc
        property.__init__(self, self._get_config_value, self._set_config_value)
        assert key not in _config_var_from_key, f"duplicate config key str: {key!r}"
        _config_var_from_key[key] = self

    def _get_config_value(self, config: 'SimpleConfig'):
        with config.lock:
            if config.is_set(self._key):
                value = config.get(self._key)
                # run converter
                if self._convert_getter is not None:
                    value = self._convert_getter(value)
                # type-check
                if self._type is not None and value is not None:
                    try:
                        value = self._type(value)
                    except Exception as e:
                        raise ValueError(
                            f"ConfigVar.get type-check and auto-conversion failed. "
                            f"key={self._key!r}. type={self._type}. value={value!r}") from e
            else:
                d = self._default
                value = d(config) if callable(d) else d
            return value

    def _set_config_value(self, config: 'SimpleConfig', value, *, save=True):
        if self._type is not None and value is not None:
            if not isinstance(value, self._type):
                raise ValueError(
                    f"ConfigVar.set type-check failed. "
                    f"key={self._key!r}. type={self._type}. value={value!r}")
        config.set_key(self._key, value, save=save)

    def key(self) -> str:
        return self._key

    def get_short_desc(self) -> Optional[str]:
        desc = self._short_desc
        return desc() if desc else None

    def __repr__(self):
        return f"<ConfigVar key={self._key!r}>"


class SimpleConfig(Logger):
    """
    The SimpleConfig class is responsible for handling operations involving
    configuration files.

    There are two different sources of possible configuration values:
        1. Command line options.
        2. User configuration (in the user's config directory)
    They are taken in order (1. overrides config options set in 2.)
    """

    def __init__(self, options=None, read_user_config_function=None,
                 read_user_dir_function=None):
        if options is None:
            options = {}
        for config_key in options:
            assert isinstance(config_key, str), f"{config_key=!r} has type={type(config_key)}, expected str"

        Logger.__init__(self)

        # This lock needs to be acquired for updating and reading the config in
        # a thread-safe way.
        self.lock = threading.RLock()

        # The following two functions are there for dependency injection when
        # testing.
        if read_user_config_function is None:
            read_user_config_function = read_user_config
        if read_user_dir_function is None:
            self.user_dir = user_dir
        else:
            self.user_dir = read_user_dir_function

        # The command line options; unset flags arrive as None and must not
        # shadow the user config
        self.cmdline_options = {k: v for k, v in deepcopy(options).items() if v is not None}

        # Set self.path and read the user config
        self.user_config = {}  # for self.get in sigsim_path()
        self.path = self.sigsim_path()
        self.user_config = read_user_config_function(self.path)

    def list_config_vars(self) -> Sequence[str]:
        return list(sorted(_config_var_from_key.keys()))

    def sigsim_path(self):
        # Read sigsim_path from command line
        # Otherwise use the user's default data directory.
        path = self.get('sigsim_path') or self.user_dir()
        if path:
            make_dir(path, allow_symlink=False)
        self.logger.info(f"sigsim directory {path}")
        return path

    def set_key(self, key: Union[str, ConfigVar], value, *, save=True) -> None:
        """Set the value for an arbitrary string config key.
        note: try to use explicit predefined ConfigVars instead of this method, whenever possible.
        """
        if isinstance(key, ConfigVar):
            key = key.key()
        assert isinstance(key, str), key
        if not self.is_modifiable(key):
            self.logger.warning(f"not changing config key '{key}' set on the command line")
            return
        try:
            json.dumps(key)
            json.dumps(value)
        except Exception:
            self.logger.info(f"json error: cannot save {repr(key)} ({repr(value)})")
            return
        with self.lock:
            if value is not None:
                self.user_config[key] = value
            else:
                self.user_config.pop(key, None)
            if save:
                self.save_user_config()

    def get(self, key: str, default=None) -> Any:
        """Get the value for an arbitrary string config key.
        note: try to use explicit predefined ConfigVars instead of this method, whenever possible.
        """
        assert isinstance(key, str), key
        with self.lock:
            out = self.cmdline_options.get(key)
            if out is None:
                out = self.user_config.get(key, default)
        return out

    def is_set(self, key: Union[str, ConfigVar]) -> bool:
        """Returns whether the config key has any explicit value set/defined."""
        if isinstance(key, ConfigVar):
            key = key.key()
        assert isinstance(key, str), key
        return self.get(key, default=...) is not ...

    def is_modifiable(self, key: Union[str, ConfigVar]) -> bool:
        if isinstance(key, ConfigVar):
            key = key.key()
        return key not in self.cmdline_options

    def save_user_config(self):
        if not self.path:
            return
        path = os.path.join(self.path, "config")
        s = json.dumps(self.user_config, indent=4, sort_keys=True)
        try:
            with open(path, "w", encoding='utf-8') as f:
                os_chmod(path, stat.S_IREAD | stat.S_IWRITE)  # set restrictive perms *before* we write data
                f.write(s)
        except OSError:
            # datadir probably deleted while running
            if os.path.exists(self.path):
                raise

    # config variables ->
    BSGS_PARALLELISM = ConfigVar(
        'bsgs_parallelism', default=2, type_=int,
        short_desc=lambda: "Number of worker threads for the baby-step giant-step order search",
    )
    BSGS_CANCEL_CHECK_INTERVAL = ConfigVar(
        'bsgs_cancel_check_interval', default=10_000, type_=int,
        short_desc=lambda: "Giant steps between two checks of the cancellation flag",
    )
    ORDER_PROGRESS_INTERVAL = ConfigVar(
        'order_progress_interval', default=1_000_000, type_=int,
        short_desc=lambda: "Additions between two progress reports of the naive order search",
    )
    COUNT_POINTS_MAX_ATTEMPTS = ConfigVar(
        'count_points_max_attempts', default=None, type_=int,
        short_desc=lambda: "Random points to try when counting curve points (unset: no limit)",
    )
    LOG_TO_FILE = ConfigVar('log_to_file', default=False, type_=bool)


def read_user_config(path: Optional[str]) -> Dict[str, Any]:
    """Parse and store the user config settings in the config file into user_config[]."""
    if not path:
        return {}
    config_path = os.path.join(path, "config")
    if not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding='utf-8') as f:
            data = f.read()
        result = json.loads(data)
        assert isinstance(result, dict), "config file is not a dict"
    except Exception as e:
        raise ValueError(f"Invalid config file at {config_path}: {str(e)}")
    return result
