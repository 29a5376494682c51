# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import os
import sys
import json
import stat
import time
import secrets
from functools import partial
from typing import Union, Optional, Any

from .logging import get_logger


_logger = get_logger(__name__)


def user_dir():
    if "SIGSIMDIR" in os.environ:
        return os.environ["SIGSIMDIR"]
    elif os.name == 'posix':
        return os.path.join(os.environ["HOME"], ".sigsim")
    elif "APPDATA" in os.environ:
        return os.path.join(os.environ["APPDATA"], "Sigsim")
    elif "LOCALAPPDATA" in os.environ:
        return os.path.join(os.environ["LOCALAPPDATA"], "Sigsim")
    else:
        return


def os_chmod(path, mode):
    """os.chmod aware of tmpfs"""
    try:
        os.chmod(path, mode)
    except OSError as e:
        xdg_runtime_dir = os.environ.get("XDG_RUNTIME_DIR", None)
        if xdg_runtime_dir and is_subpath(path, xdg_runtime_dir):
            _logger.info(f"Tried to chmod in tmpfs. Skipping... {e!r}")
        else:
            raise


def make_dir(path, allow_symlink=True):
    """Make directory if it does not yet exist."""
    if not os.path.exists(path):
        if not allow_symlink and os.path.islink(path):
            raise Exception('Dangling link: ' + path)
        os.makedirs(path)
        os_chmod(path, stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR)


def is_subpath(long_path: str, short_path: str) -> bool:
    """Returns whether long_path is a sub-path of short_path."""
    try:
        common = os.path.commonpath([long_path, short_path])
    except ValueError:
        return False
    short_path = os.path.abspath(short_path)
    common = os.path.abspath(common)
    return short_path == common


def print_stderr(*args):
    args = [str(item) for item in args]
    sys.stderr.write(" ".join(args) + "\n")
    sys.stderr.flush()


def print_msg(*args):
    # Stringify args
    args = [str(item) for item in args]
    sys.stdout.write(" ".join(args) + "\n")
    sys.stdout.flush()


class MyEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, set):
            return sorted(obj, key=str)
        if isinstance(obj, bytes):
            return obj.hex()
        if hasattr(obj, 'to_json') and callable(obj.to_json):
            return obj.to_json()
        return super(MyEncoder, self).default(obj)


def json_encode(obj):
    try:
        s = json.dumps(obj, sort_keys=True, indent=4, cls=MyEncoder)
    except TypeError:
        s = repr(obj)
    return s


_profiler_logger = _logger.getChild('profiler')
def profiler(func=None, *, min_threshold: Union[int, float, None] = None):
    """Function decorator that logs execution time.

    min_threshold: if set, only log if time taken is higher than threshold
    """
    if func is None:  # to make "@profiler(...)" work. (in addition to bare "@profiler")
        return partial(profiler, min_threshold=min_threshold)
    def do_profile(*args, **kw_args):
        name = func.__qualname__
        t0 = time.time()
        o = func(*args, **kw_args)
        t = time.time() - t0
        if min_threshold is None or t > min_threshold:
            _profiler_logger.debug(f"{name} {t:,.4f} sec")
        return o
    return do_profile


_system_random = secrets.SystemRandom()


def get_rng(rng: Optional[Any] = None):
    """Returns the random source to use.

    Anything with a randrange(stop) method works, e.g. random.Random(seed)
    for reproducible runs. Defaults to the OS CSPRNG.
    """
    if rng is None:
        return _system_random
    if not callable(getattr(rng, 'randrange', None)):
        raise TypeError(f"random source must provide randrange(), got {type(rng)}")
    return rng


def randrange(bound: int, *, rng=None) -> int:
    """Return a random integer k such that 1 <= k < bound, uniformly
    distributed across that range.
    """
    rng = get_rng(rng)
    while True:
        k = rng.randrange(bound)
        if k > 0:
            return k
