# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""Point order by baby-step giant-step, over a pool of worker threads.

For a point P on a curve over F_p, Hasse's theorem puts the number of
points N within 2*sqrt(p) of p+1, and N*P is the identity. With
m = ceil(p**(1/4) + 1/2) + 1 baby steps j*P (0 <= j < m), a giant step
Q + k*(2m*P), with anchor Q = (p+1)*P, that has the same x coordinate as
some j*P gives (p + 1 + 2mk -/+ j)*P = identity. That multiple of the
order of P is then reduced to the order itself with its prime factors.

The giant steps k in [0, p) that can still give the first match (see
giant_step_limit) are split into contiguous chunks, one per worker. The
first match wins; the other workers are stopped.
"""

import math
import queue
import threading
from typing import Optional, Dict, List, TYPE_CHECKING

import attr

from .ec import INFINITY, Point, CurveError
from .prime import prime_factors
from .version import WORD_BIT_LENGTH
from .logging import get_logger, Logger

if TYPE_CHECKING:
    from .ec import Curve


_logger = get_logger(__name__)


# how long the dispatcher blocks on the result queue between cancellation checks
RESULT_POLL_INTERVAL = 0.05


class OrderSearchCancelled(CurveError):
    pass


class OrderSearchFailed(CurveError):
    pass


@attr.s(frozen=True, slots=True)
class GiantStepMatch:
    mp = attr.ib(type=int)  # p + 1 + 2mk
    j = attr.ib(type=int)
    k = attr.ib(type=int)


def baby_step_count(p: int) -> int:
    return math.ceil(math.sqrt(math.sqrt(p)) + 0.5) + 1


class BabyStepTable:
    """j*P for 0 <= j < m, indexed by x coordinate.

    The point at infinity (j = 0) is keyed by None, so it only matches
    giant steps that land on infinity themselves. When two baby steps
    share an x coordinate (j*P and -j'*P) the smaller j is kept.
    """

    def __init__(self, curve: 'Curve', point: Point, m: int):
        self.m = m
        self._by_x = {}  # type: Dict[Optional[int], int]
        acc = INFINITY
        for j in range(m):
            self._by_x.setdefault(self._key(acc), j)
            acc = curve.add(acc, point)

    @classmethod
    def _key(cls, point: Point) -> Optional[int]:
        return None if point.inf else point.x

    def lookup(self, point: Point) -> Optional[int]:
        return self._by_x.get(self._key(point))

    def __len__(self):
        return self.m


def giant_step_limit(p: int, m: int) -> int:
    """Giant steps k at or above this are never the first match.

    The order of a point divides the number of points, at most
    n_max = p + 1 + 2*ceil(sqrt(p)). A giant step covers p+1+2mk-j .. p+1+2mk+j
    for j < m, so only p+1+2mk+m is left out per step. Of two consecutive
    multiples of the order one lies in a covered window unless the order
    is a multiple of 2m, so the first match is at most p + 2 + 2*n_max.
    Larger multiples would also not fit scalar_multiply.
    """
    sq = math.isqrt(p)
    if sq * sq < p:
        sq += 1
    n_max = p + 1 + 2 * sq
    first_match_bound = p + 2 + 2 * n_max
    # windows starting at or below the bound, p + 1 + 2mk - (m - 1) <= first_match_bound,
    # and ending within the word, p + 1 + 2mk + (m - 1) < 2**WORD_BIT_LENGTH
    k_max = min(
        (first_match_bound - p + m - 2) // (2 * m),
        ((1 << WORD_BIT_LENGTH) - p - m - 1) // (2 * m),
    )
    return max(0, min(p, k_max + 1))


def split_range(stop: int, parts: int) -> List[range]:
    """Splits [0, stop) into `parts` contiguous chunks; the last one takes the remainder."""
    chunk = stop // parts
    ranges = []
    for i in range(parts):
        end = stop if i == parts - 1 else (i + 1) * chunk
        ranges.append(range(i * chunk, end))
    return ranges


class GiantStepWorker(threading.Thread, Logger):
    """Walks giant steps k in its range until a baby step matches or it is stopped."""

    def __init__(
            self,
            *,
            curve: 'Curve',
            point: Point,
            table: BabyStepTable,
            anchor: Point,
            ks: range,
            results: 'queue.Queue[GiantStepMatch]',
            stop_event: threading.Event,
            cancel_check_interval: int,
            index: int = 0,
    ):
        threading.Thread.__init__(self, daemon=True)
        self.index = index
        Logger.__init__(self)
        self.curve = curve
        self.point = point
        self.table = table
        self.anchor = anchor
        self.ks = ks
        self.results = results
        self.stop_event = stop_event
        self.cancel_check_interval = cancel_check_interval
        self.error = None  # type: Optional[BaseException]

    def diagnostic_name(self):
        return str(self.index)

    def run(self):
        try:
            self._search()
        except BaseException as e:
            self.logger.exception("giant-step worker failed")
            self.error = e

    def _search(self):
        curve = self.curve
        m = self.table.m
        p = curve.p
        # advance by 2m*P per giant step instead of recomputing k*2m*P
        step = curve.scalar_multiply(2 * m, self.point)
        # matches past the limit are multiples of the order too, but too large to reduce
        ks = range(self.ks.start, min(self.ks.stop, giant_step_limit(p, m)))
        if not ks:
            self.logger.debug(f"giant steps {self.ks.start} -> {self.ks.stop} are all past the first match")
            return
        cand = curve.add(self.anchor, curve.scalar_multiply(ks.start, step))
        self.logger.debug(f"start giant steps {ks.start} -> {ks.stop}")
        cnt = 0
        for k in ks:
            j = self.table.lookup(cand)
            if j is not None:
                mp = p + 1 + 2 * m * k
                self.logger.info(f"done({k}): found {mp} {j}")
                try:
                    self.results.put_nowait(GiantStepMatch(mp=mp, j=j, k=k))
                except queue.Full:
                    pass  # another worker was first
                return
            cand = curve.add(cand, step)
            cnt += 1
            if cnt % self.cancel_check_interval == 0:
                if self.stop_event.is_set():
                    self.logger.debug(f"stopped after {cnt} giant steps")
                    return
                self.logger.debug(f"tried {cnt} points")
        self.logger.debug(f"exhausted giant steps {ks.start} -> {ks.stop} without a match")


def multiple_of_order(curve: 'Curve', point: Point, match: GiantStepMatch) -> int:
    """The match says (mp -/+ j)*P is the identity; find out which one."""
    for n in (match.mp + match.j, match.mp - match.j):
        if n > 0 and curve.scalar_multiply(n, point).inf:
            return n
    raise OrderSearchFailed(
        f"neither {match.mp}+{match.j} nor {match.mp}-{match.j} is a multiple of the order of {point}")


def reduce_order(curve: 'Curve', point: Point, n: int) -> int:
    """Smallest divisor of n that still takes point to the identity.

    n must be a multiple of the order of point.
    """
    pfs = prime_factors(n)
    i = 0
    while i < len(pfs):
        f = pfs[i]
        if n % f != 0:
            # all copies of f already divided out
            i += 1
            continue
        s = n // f
        if curve.scalar_multiply(s, point).inf:
            n = s
        else:
            i += 1
    return n


def find_order(
        curve: 'Curve',
        point: Point,
        *,
        parallelism: int,
        cancel: Optional[threading.Event] = None,
        cancel_check_interval: int,
) -> int:
    if parallelism < 1:
        raise ValueError(f"parallelism must be at least 1, got {parallelism}")
    if cancel_check_interval < 1:
        raise ValueError(f"cancel_check_interval must be at least 1, got {cancel_check_interval}")
    if not curve.valid(point):
        raise ValueError(f"{point} is not on the curve")
    if point.inf:
        return 1
    p = curve.p
    m = baby_step_count(p)
    table = BabyStepTable(curve, point, m)
    anchor = curve.scalar_multiply(p + 1, point)

    results = queue.Queue(maxsize=1)  # type: queue.Queue[GiantStepMatch]
    stop_event = threading.Event()
    workers = []
    for i, ks in enumerate(split_range(giant_step_limit(p, m), parallelism)):
        workers.append(GiantStepWorker(
            curve=curve,
            point=point,
            table=table,
            anchor=anchor,
            ks=ks,
            results=results,
            stop_event=stop_event,
            cancel_check_interval=cancel_check_interval,
            index=i,
        ))
    _logger.debug(f"dispatching {len(workers)} jobs for {point}, m={m}")
    try:
        for w in workers:
            w.start()
        match = _wait_for_match(workers, results, cancel)
    finally:
        stop_event.set()
        for w in workers:
            w.join()

    n = multiple_of_order(curve, point, match)
    return reduce_order(curve, point, n)


def _wait_for_match(
        workers: List[GiantStepWorker],
        results: 'queue.Queue[GiantStepMatch]',
        cancel: Optional[threading.Event],
) -> GiantStepMatch:
    while True:
        if cancel is not None and cancel.is_set():
            _logger.debug("order search cancelled")
            raise OrderSearchCancelled("order search cancelled")
        try:
            return results.get(timeout=RESULT_POLL_INTERVAL)
        except queue.Empty:
            pass
        if not any(w.is_alive() for w in workers):
            # a worker may have posted its match right before exiting
            try:
                return results.get_nowait()
            except queue.Empty:
                pass
            errors = [w.error for w in workers if w.error is not None]
            if errors:
                raise OrderSearchFailed("giant-step worker failed") from errors[0]
            raise OrderSearchFailed("all giant steps tried without a match")
