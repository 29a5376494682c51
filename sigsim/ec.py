# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""Short Weierstrass curves y^2 = x^3 + a*x + b over a prime field.

Notes:
  - The point at infinity is the group identity. It is a Point with the
    inf flag set; its coordinates carry no meaning.
  - Only small demonstration fields are intended. Point enumeration is
    O(p) (or O(p^2) without square roots) and the naive order is O(n).
"""

import math
import time
import threading
from typing import Optional, Callable, List, Union, Tuple

import attr

from .field import FiniteField, NotInvertible, NotQuadraticResidue, UnsupportedField
from .prime import is_probable_prime
from .util import get_rng, profiler
from .version import WORD_BIT_LENGTH
from .logging import Logger


DEFAULT_BSGS_PARALLELISM = 2
DEFAULT_CANCEL_CHECK_INTERVAL = 10_000
DEFAULT_ORDER_PROGRESS_INTERVAL = 1_000_000


class CurveError(Exception):
    pass


class InvalidCoefficient(CurveError, ValueError):

    def __init__(self, name: str, value: int, p: int):
        self.name = name
        self.value = value
        self.p = p
        super().__init__(f"{name}: {value} is not an element of the field of order {p}")


class PointNotOnCurve(CurveError, ValueError):

    def __init__(self, x: int, y: Optional[int] = None):
        self.x = x
        self.y = y
        if y is None:
            super().__init__(f"x: {x} does not appear to be on the curve")
        else:
            super().__init__(f"({x},{y}) is not on the curve")


class OrderBoundExceeded(CurveError):
    """The naive order search went past 4p additions.

    By Hasse's theorem this cannot happen for a point on a valid curve,
    so the input point or curve is bad.
    """

    def __init__(self, point: 'Point', count: int, p: int):
        self.point = point
        self.count = count
        self.p = p
        super().__init__(f"order of {point} exceeds {count} > 4*{p}, point not on a valid curve?")


class PointCountAmbiguous(CurveError):

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"could not single out the number of points after {attempts} random points")


class CurveVerificationFailed(CurveError):
    pass


class FieldNotPrime(CurveVerificationFailed):
    pass


class SingularCurve(CurveVerificationFailed, ValueError):
    """Raised on construction, and by verify() for the same condition."""

    def __init__(self, a: int, b: int):
        self.a = a
        self.b = b
        super().__init__(f"discriminant is zero, curve is singular: a={a} b={b}")


class GeneratorNotOnCurve(CurveVerificationFailed):
    pass


class GeneratorOrderMismatch(CurveVerificationFailed):
    pass


class OrderNotPrime(CurveVerificationFailed):
    pass


class BitSizeMismatch(CurveVerificationFailed):
    pass


@attr.s(frozen=True, slots=True, eq=False, repr=False)
class Point:
    """A point on a curve. If inf is set, this is the identity element."""
    x = attr.ib(type=int, default=0)
    y = attr.ib(type=int, default=0)
    inf = attr.ib(type=bool, default=False, kw_only=True)

    @classmethod
    def infinity(cls) -> 'Point':
        return INFINITY

    def __eq__(self, other):
        if not isinstance(other, Point):
            return NotImplemented
        if self.inf or other.inf:
            return self.inf == other.inf
        return self.x == other.x and self.y == other.y

    def __ne__(self, other):
        eq = self.__eq__(other)
        if eq is NotImplemented:
            return eq
        return not eq

    def __hash__(self):
        if self.inf:
            return hash((None, None))
        return hash((self.x, self.y))

    def __str__(self):
        if self.inf:
            return "infinity"
        return f"({self.x},{self.y})"

    def __repr__(self):
        return f"<Point {self}>"

    def to_json(self):
        if self.inf:
            return None
        return [self.x, self.y]


# This one point is the Point At Infinity for all purposes:
INFINITY = Point(inf=True)


def _to_point(p: Union[Point, Tuple[int, int], None]) -> Optional[Point]:
    if p is None or isinstance(p, Point):
        return p
    x, y = p
    return Point(x, y)


class Curve(Logger):
    """Elliptic curve over a prime field satisfying y^2 = x^3 + a*x + b.

    generator and order are optional at construction; they are needed by
    verify() and by the signature scheme. bit_size defaults to the bit
    length of p and sets how many digest bits a signature consumes.

    Instances are never mutated after construction, so a curve can be
    shared between threads.
    """

    def __init__(
            self,
            field: FiniteField,
            a: int,
            b: int,
            *,
            generator: Union[Point, Tuple[int, int], None] = None,
            order: Optional[int] = None,
            bit_size: Optional[int] = None,
    ):
        Logger.__init__(self)
        if not field.element(a):
            raise InvalidCoefficient('a', a, field.p)
        if not field.element(b):
            raise InvalidCoefficient('b', b, field.p)
        self._field = field
        self._a = a
        self._b = b
        self._generator = _to_point(generator)
        self._order = order
        self._bit_size = bit_size if bit_size is not None else field.p.bit_length()
        if self.discriminant() == 0:
            raise SingularCurve(a, b)

    @property
    def field(self) -> FiniteField:
        return self._field

    @property
    def p(self) -> int:
        return self._field.p

    @property
    def a(self) -> int:
        return self._a

    @property
    def b(self) -> int:
        return self._b

    @property
    def generator(self) -> Optional[Point]:
        return self._generator

    @property
    def order(self) -> Optional[int]:
        return self._order

    @property
    def bit_size(self) -> int:
        return self._bit_size

    def __str__(self):
        return f"{self.p} {self._a} {self._b} {self._generator} {self._order} {self._bit_size}"

    def __repr__(self):
        return f"<Curve p={self.p} a={self._a} b={self._b} G={self._generator} n={self._order}>"

    def discriminant(self) -> int:
        """4a^3 + 27b^2, over the integers (not reduced mod p)."""
        return 4 * self._a ** 3 + 27 * self._b ** 2

    def verify(self) -> None:
        """Checks all the domain parameters. Raises on the first failed check."""
        if not is_probable_prime(self.p):
            raise FieldNotPrime(f"field order {self.p} is not prime")
        if self.discriminant() == 0:
            raise SingularCurve(self._a, self._b)
        if self._generator is None or self._order is None:
            raise GeneratorOrderMismatch("curve has no generator point or order")
        if not self.valid(self._generator):
            raise GeneratorNotOnCurve(f"generator point {self._generator} is not on curve")
        order = self.order_naive(self._generator)
        if order != self._order:
            raise GeneratorOrderMismatch(
                f"invalid order for generator point {order}, expected {self._order}")
        if not is_probable_prime(self._order):
            raise OrderNotPrime(f"curve order {self._order} is not prime")
        if self._order.bit_length() != self._bit_size:
            raise BitSizeMismatch(
                f"bit length {self._order.bit_length()} of curve order does not match {self._bit_size}")

    def rhs(self, x: int) -> int:
        """x^3 + a*x + b"""
        f = self._field
        rhs = f.multiply(f.multiply(x, x), x)
        rhs = f.add(rhs, f.multiply(self._a, x))
        return f.add(rhs, self._b)

    def y_for(self, x: int) -> int:
        """Returns a y coordinate for x (the other one is p - y)."""
        try:
            return self._field.sqrt(self.rhs(x))
        except NotQuadraticResidue as e:
            raise PointNotOnCurve(x) from e

    def valid(self, point: Point) -> bool:
        """Is the point on this curve?"""
        if point.inf:
            return True
        f = self._field
        if not (f.element(point.x) and f.element(point.y)):
            return False
        return f.multiply(point.y, point.y) == self.rhs(point.x)

    def add(self, p: Point, q: Point) -> Point:
        """Group law. If p and q are the same point, p is doubled.

        A vertical chord or tangent (non-invertible slope denominator)
        gives the point at infinity.
        """
        if p.inf:
            return q
        if q.inf:
            return p
        f = self._field
        if p == q:
            m = f.add(f.multiply(3, f.multiply(p.x, p.x)), self._a)
            denominator = f.multiply(2, p.y)
        else:
            m = f.add(q.y, -p.y)
            denominator = f.add(q.x, -p.x)
        try:
            inv = f.inverse(denominator)
        except NotInvertible:
            # infinite slope
            return INFINITY
        m = f.multiply(m, inv)

        x = f.add(f.add(f.multiply(m, m), -p.x), -q.x)
        y = f.add(f.multiply(f.add(p.x, -x), m), -p.y)
        return Point(x, y)

    def negate(self, point: Point) -> Point:
        if point.inf:
            return point
        return Point(point.x, self._field.canonicalize(-point.y))

    def scalar_multiply(self, k: int, point: Point) -> Point:
        """k * point, double-and-add over the full word width.

        Solving k from k * P for known P is the discrete logarithm problem
        this whole exercise revolves around.
        """
        if k < 0 or k.bit_length() > WORD_BIT_LENGTH:
            raise ValueError(f"scalar must be in [0, 2**{WORD_BIT_LENGTH}), got {k}")
        r = INFINITY
        for b in range(WORD_BIT_LENGTH):
            if (k >> b) & 1:
                r = self.add(r, point)
            point = self.add(point, point)
        return r

    def random_point(self, *, rng=None) -> Point:
        """Returns a uniformly chosen x with a matching y. Needs p = 3 (mod 4)."""
        if self.p % 4 != 3:
            raise UnsupportedField(self.p)
        rng = get_rng(rng)
        while True:
            x = rng.randrange(self.p)
            try:
                y = self.y_for(x)
            except PointNotOnCurve:
                continue
            point = Point(x, y)
            if self.valid(point):
                return point

    def points(self) -> List[Point]:
        """All points on the curve, the point at infinity first.

        This can take a long time, only use it with small fields.
        """
        points = {INFINITY}
        can_square_root = self.p % 4 == 3
        for x in range(self.p):
            if can_square_root:
                try:
                    y = self.y_for(x)
                except PointNotOnCurve:
                    continue
                point = Point(x, y)
                if self.valid(point):
                    # both (x, y) and (x, -y) are on the curve
                    points.add(point)
                    if y > 0:
                        points.add(Point(x, self.p - y))
                continue
            for y in range(self.p):
                point = Point(x, y)
                if self.valid(point):
                    points.add(point)
        return sorted(points, key=lambda pt: (not pt.inf, pt.x, pt.y))

    @profiler
    def order_naive(
            self,
            point: Point,
            *,
            progress_callback: Optional[Callable[[int, float], None]] = None,
            progress_interval: int = DEFAULT_ORDER_PROGRESS_INTERVAL,
    ) -> int:
        """Order of point, by adding it to itself until we are back at the start.

        progress_callback(additions, fraction_of_p) is called every
        progress_interval additions.
        """
        if progress_interval < 1:
            raise ValueError(f"progress_interval must be at least 1, got {progress_interval}")
        bound = 4 * self.p
        order = 0
        acc = point
        t0 = time.monotonic()
        while True:
            order += 1
            acc = self.add(acc, point)
            if acc == point:
                return order
            if order > bound:
                raise OrderBoundExceeded(point, order, self.p)
            if order % progress_interval == 0:
                searched = order / self.p
                t1 = time.monotonic()
                self.logger.info(f"order of {point}: finished {searched:f} in {t1 - t0:.2f} sec")
                t0 = t1
                if progress_callback is not None:
                    progress_callback(order, searched)

    @profiler
    def order_bsgs(
            self,
            point: Point,
            *,
            parallelism: int = DEFAULT_BSGS_PARALLELISM,
            cancel: Optional[threading.Event] = None,
            cancel_check_interval: int = DEFAULT_CANCEL_CHECK_INTERVAL,
    ) -> int:
        """Order of point, using baby-step giant-step over `parallelism` threads.

        Setting the `cancel` event aborts the search with OrderSearchCancelled.
        """
        from .bsgs import find_order
        return find_order(
            self, point,
            parallelism=parallelism,
            cancel=cancel,
            cancel_check_interval=cancel_check_interval,
        )

    def hasse_interval(self) -> Tuple[int, int]:
        """Bounds on the number of points: p + 1 -/+ 2*ceil(sqrt(p))."""
        sq = math.isqrt(self.p)
        if sq * sq < self.p:
            sq += 1
        return self.p + 1 - 2 * sq, self.p + 1 + 2 * sq

    @profiler
    def count_points(
            self,
            *,
            rng=None,
            parallelism: int = DEFAULT_BSGS_PARALLELISM,
            max_attempts: Optional[int] = None,
            cancel: Optional[threading.Event] = None,
    ) -> int:
        """Number of points on the curve (the point at infinity included).

        Probabilistic: the order of a random point is computed, and if
        exactly one multiple of it lies in the Hasse interval that is the
        answer. Otherwise another point is tried, up to max_attempts times
        (forever if None). Slow, and not meant for production use.
        """
        n_min, n_max = self.hasse_interval()
        attempts = 0
        while max_attempts is None or attempts < max_attempts:
            attempts += 1
            point = self.random_point(rng=rng)
            mp = self.order_bsgs(point, parallelism=parallelism, cancel=cancel)
            first = -(-n_min // mp) * mp
            candidates = range(first, n_max + 1, mp)
            self.logger.info(
                f"point #{attempts} {point} has order {mp}, {len(candidates)} candidates in [{n_min}, {n_max}]")
            if len(candidates) == 1:
                return candidates[0]
        raise PointCountAmbiguous(attempts)


# A simple curve over a field of bit length 25.
DEMO_CURVE_25 = Curve(
    FiniteField(33489583),
    33489583 - 3,
    3411011,
    generator=Point(12272011, 8490180),
    order=33480829,
    bit_size=25,
)
