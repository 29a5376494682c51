# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""Exposes a sigsim curve through the python-ecdsa library.

Only meant to cross-check sigsim's arithmetic and signatures against an
independent implementation. Coordinates cross the boundary as plain
ints; the point at infinity is (None, None) on the python-ecdsa side,
as python-ecdsa's own INFINITY reports it.
"""

from typing import Optional, Tuple

import attr
from ecdsa import ellipticcurve
from ecdsa import ecdsa as ecdsa_lib

from .ec import Curve, Point, INFINITY
from .ecdsa import PublicKey, PrivateKey, Signature, truncate


Coords = Tuple[Optional[int], Optional[int]]


@attr.s(frozen=True, slots=True, kw_only=True)
class CurveParams:
    p = attr.ib(type=int)
    n = attr.ib(type=int)
    a = attr.ib(type=int)
    b = attr.ib(type=int)
    gx = attr.ib(type=int)
    gy = attr.ib(type=int)
    bit_size = attr.ib(type=int)
    name = attr.ib(type=str, default="CompatCurve")


class CompatCurve(object):

    def __init__(self, curve: Curve):
        if curve.generator is None or curve.order is None:
            raise ValueError(f"curve has no generator and order: {curve!r}")
        self.curve = curve
        self.curve_fp = ellipticcurve.CurveFp(curve.p, curve.a, curve.b)
        self.generator = ellipticcurve.Point(
            self.curve_fp, curve.generator.x, curve.generator.y, curve.order)
        self._params = CurveParams(
            p=curve.p,
            n=curve.order,
            a=curve.a,
            b=curve.b,
            gx=curve.generator.x,
            gy=curve.generator.y,
            bit_size=curve.bit_size,
        )

    def params(self) -> CurveParams:
        return self._params

    def _to_lib_point(self, x: Optional[int], y: Optional[int]):
        if x is None and y is None:
            return ellipticcurve.INFINITY
        return ellipticcurve.Point(self.curve_fp, x, y)

    @classmethod
    def _from_lib_point(cls, point) -> Coords:
        if point == ellipticcurve.INFINITY:
            return None, None
        return point.x(), point.y()

    def is_on_curve(self, x: int, y: int) -> bool:
        return self.curve_fp.contains_point(x, y)

    def add(self, x1: Optional[int], y1: Optional[int], x2: Optional[int], y2: Optional[int]) -> Coords:
        return self._from_lib_point(self._to_lib_point(x1, y1) + self._to_lib_point(x2, y2))

    def double(self, x: Optional[int], y: Optional[int]) -> Coords:
        point = self._to_lib_point(x, y)
        if point == ellipticcurve.INFINITY:
            return None, None
        return self._from_lib_point(point.double())

    def scalar_mult(self, x: Optional[int], y: Optional[int], k: bytes) -> Coords:
        """k is a big-endian scalar."""
        return self._from_lib_point(self._to_lib_point(x, y) * int.from_bytes(k, byteorder='big'))

    def scalar_base_mult(self, k: bytes) -> Coords:
        return self._from_lib_point(self.generator * int.from_bytes(k, byteorder='big'))

    def to_sigsim_point(self, x: Optional[int], y: Optional[int]) -> Point:
        if x is None and y is None:
            return INFINITY
        return Point(x, y)

    def hash_int(self, digest: bytes) -> int:
        """The integer python-ecdsa signs, so both sides sign the same value."""
        return truncate(digest, self.curve.bit_size)

    def to_public_key(self, public_key: PublicKey) -> ecdsa_lib.Public_key:
        point = self._to_lib_point(public_key.point.x, public_key.point.y)
        return ecdsa_lib.Public_key(self.generator, point)

    def to_private_key(self, private_key: PrivateKey) -> ecdsa_lib.Private_key:
        return ecdsa_lib.Private_key(self.to_public_key(private_key.public_key), private_key.d)

    def from_public_key(self, public_key: ecdsa_lib.Public_key) -> PublicKey:
        point = public_key.point
        return PublicKey(self.curve, self.to_sigsim_point(point.x(), point.y()))

    def sign(self, private_key: PrivateKey, digest: bytes, k: int) -> Signature:
        """Signs with python-ecdsa, using nonce k."""
        sig = self.to_private_key(private_key).sign(self.hash_int(digest), k)
        return Signature(sig.r, sig.s)

    def verify(self, public_key: PublicKey, signature: Signature, digest: bytes) -> bool:
        """Verifies with python-ecdsa."""
        lib_sig = ecdsa_lib.Signature(signature.r, signature.s)
        return self.to_public_key(public_key).verifies(self.hash_int(digest), lib_sig)
