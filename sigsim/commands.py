# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import sys
import time
import argparse
from typing import Optional, Sequence

from .version import SIGSIM_VERSION
from .field import FiniteField, FieldError
from .prime import generate_prime, is_probable_prime
from .ec import Curve, Point, CurveError
from .simple_config import SimpleConfig
from .logging import get_logger, configure_logging
from .util import print_msg, print_stderr, json_encode


_logger = get_logger(__name__)


class CommandError(Exception):
    pass


def _field_element(p: int, value: int) -> int:
    # allow negative coefficients, e.g. -a 3 for a = p - 3
    return value + p if value < 0 else value


def _curve_from_args(args) -> Curve:
    if args.p % 4 != 3:
        _logger.warning(f"{args.p} is not congruent 3 mod 4, square roots are not available")
    return Curve(FiniteField(args.p), _field_element(args.p, args.a), _field_element(args.p, args.b))


def genp(config: SimpleConfig, args) -> None:
    """Generate a random prime congruent to 3 mod 4."""
    p = generate_prime(args.bits)
    if args.verify:
        t0 = time.monotonic()
        ok = is_probable_prime(p)
        print_msg(f"Verified prime in {time.monotonic() - t0:.6f} sec")
        if not ok:
            raise CommandError("generated number was not prime, try again")
    print_msg(f"Generated prime: {p}")


def genc(config: SimpleConfig, args) -> None:
    """Search for a curve with a prime number of points, bumping b by 2 on each miss."""
    p = args.p
    a = _field_element(p, args.a)
    b = _field_element(p, args.b)
    tries = 0
    while args.max_tries is None or tries < args.max_tries:
        tries += 1
        curve = Curve(FiniteField(p), a, b)
        print_msg(f"Test curve {curve}")
        # this call takes a long time
        n = curve.count_points(
            parallelism=config.BSGS_PARALLELISM,
            max_attempts=config.COUNT_POINTS_MAX_ATTEMPTS,
        )
        print_msg(f"curve has order {n}")
        if is_probable_prime(n):
            print_msg("Curve order IS prime")
            return
        print_msg("Curve order is NOT prime")
        b += 2
    raise CommandError(f"no curve with a prime number of points found in {tries} tries")


def order(config: SimpleConfig, args) -> None:
    """Order of a point."""
    curve = _curve_from_args(args)
    point = Point(args.x, args.y)
    if not curve.valid(point):
        raise CommandError(f"{point} is not on the curve")
    if args.naive:
        n = curve.order_naive(point, progress_interval=config.ORDER_PROGRESS_INTERVAL)
    else:
        n = curve.order_bsgs(
            point,
            parallelism=config.BSGS_PARALLELISM,
            cancel_check_interval=config.BSGS_CANCEL_CHECK_INTERVAL,
        )
    print_msg(n)


def points(config: SimpleConfig, args) -> None:
    """All points of a (small) curve."""
    curve = _curve_from_args(args)
    print_msg(json_encode(curve.points()))


def add_global_options(parser):
    group = parser.add_argument_group('global options')
    group.add_argument(
        "-v", dest="verbosity", default='',
        help="Set verbosity (log levels)")
    group.add_argument(
        "-D", "--dir", dest="sigsim_path",
        help="sigsim directory")
    group.add_argument(
        "--parallelism", dest=SimpleConfig.BSGS_PARALLELISM.key(), type=int, default=None,
        help=SimpleConfig.BSGS_PARALLELISM.get_short_desc())


def _add_curve_options(parser):
    parser.add_argument("-p", dest="p", type=int, default=33489583, help="order of the finite field")
    parser.add_argument("-a", dest="a", type=int, default=-3, help="a parameter of the curve")
    parser.add_argument("-b", dest="b", type=int, default=3411011, help="b parameter of the curve")


def get_parser():
    parser = argparse.ArgumentParser(
        prog='sigsim',
        epilog="Run 'sigsim <command> -h' to see the help for a command")
    parser.add_argument("--version", action='version', version=SIGSIM_VERSION)
    add_global_options(parser)
    subparsers = parser.add_subparsers(dest='cmd', metavar='<command>')
    subparsers.required = True
    # genp
    parser_genp = subparsers.add_parser('genp', help="Generate a random prime congruent to 3 mod 4")
    parser_genp.add_argument("-b", dest="bits", type=int, default=25, help="number of bits")
    parser_genp.add_argument("-v", "--verify", action="store_true", dest="verify", default=False, help="verify number is prime")
    parser_genp.set_defaults(func=genp)
    # genc
    parser_genc = subparsers.add_parser('genc', help="Search for a curve with a prime number of points")
    _add_curve_options(parser_genc)
    parser_genc.add_argument("--max-tries", dest="max_tries", type=int, default=None, help="give up after this many curves")
    parser_genc.set_defaults(func=genc)
    # order
    parser_order = subparsers.add_parser('order', help="Compute the order of a point")
    _add_curve_options(parser_order)
    parser_order.add_argument("x", type=int)
    parser_order.add_argument("y", type=int)
    parser_order.add_argument("--naive", action="store_true", dest="naive", default=False, help="add the point to itself instead of baby-step giant-step")
    parser_order.set_defaults(func=order)
    # points
    parser_points = subparsers.add_parser('points', help="List all points of a small curve")
    _add_curve_options(parser_points)
    parser_points.set_defaults(func=points)
    return parser


# options that only steer a single command and do not belong in the config
_COMMAND_ARGS = ('cmd', 'func', 'bits', 'verify', 'p', 'a', 'b', 'x', 'y', 'naive', 'max_tries')


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = get_parser()
    args = parser.parse_args(argv)
    config_options = {k: v for k, v in vars(args).items() if k not in _COMMAND_ARGS}
    config = SimpleConfig(config_options)
    configure_logging(config)
    try:
        args.func(config, args)
    except (CommandError, CurveError, FieldError, ValueError) as e:
        _logger.debug("command failed", exc_info=True)
        print_stderr(f"error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
