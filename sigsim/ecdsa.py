# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""ECDSA over the small curves of sigsim.ec.

All signature arithmetic is done in a second field, modulo the order n
of the curve's generator. Digests are truncated to the curve's bit size,
which must stay below 32 bits.

Reusing a nonce k for two messages leaks the private key, see
recover_private_key().
"""

from typing import NamedTuple, Optional

from .ec import Curve, Point
from .field import FiniteField, NotInvertible
from .util import randrange
from .logging import get_logger


_logger = get_logger(__name__)


# widest digest truncation whose result still fits the arithmetic layer
MAX_TRUNCATE_BITS = 31


class ECDSAError(Exception):
    pass


class InvalidNonce(ECDSAError):
    """k gives r = 0 or s = 0, or is not invertible mod n. Pick another one."""


class InvalidPublicKey(ECDSAError):
    pass


class SubgroupCheckFailed(InvalidPublicKey):
    pass


class BadSignature(ECDSAError):
    pass


class InvalidSignatureRange(BadSignature):
    pass


class KeyRecoveryError(ECDSAError):
    pass


class InconsistentRecovery(KeyRecoveryError):

    def __init__(self, d1: int, d2: int):
        self.d1 = d1
        self.d2 = d2
        super().__init__(f"could not compute d: {d1} != {d2}")


class Signature(NamedTuple):
    r: int
    s: int


def _signature_field(curve: Curve) -> FiniteField:
    if curve.generator is None or curve.order is None:
        raise ValueError(f"curve has no generator and order: {curve!r}")
    return FiniteField(curve.order)


def truncate(digest: bytes, bit_width: int) -> int:
    """Treats digest as a big-endian integer and returns its bit_width
    most significant bits.
    """
    if not (0 < bit_width <= MAX_TRUNCATE_BITS):
        raise ValueError(f"bit width must be in [1, {MAX_TRUNCATE_BITS}], got {bit_width}")
    nb = (bit_width + 7) // 8
    if len(digest) < nb:
        raise ValueError(f"digest too short: {len(digest)} bytes, need {nb}")
    rem = (8 - (bit_width % 8)) % 8
    return int.from_bytes(digest[:nb], byteorder='big') >> rem


class PublicKey(object):

    def __init__(self, curve: Curve, point: Point):
        self.curve = curve
        self.point = point

    def __repr__(self):
        return f"<PublicKey {self.point} on {self.curve!r}>"

    def __eq__(self, other):
        if not isinstance(other, PublicKey):
            return False
        return self.curve is other.curve and self.point == other.point

    def __hash__(self):
        return hash(self.point)

    def check(self) -> None:
        """Raises InvalidPublicKey unless this is a usable key for the curve."""
        if self.point.inf:
            raise InvalidPublicKey("public key is the point at infinity")
        if not self.curve.valid(self.point):
            raise InvalidPublicKey(f"public key {self.point} is not on the curve")
        if not self.curve.scalar_multiply(self.curve.order, self.point).inf:
            raise SubgroupCheckFailed(f"order * {self.point} is not the identity")

    def check_signature(self, r: int, s: int, digest: bytes) -> None:
        check_signature(self, r, s, digest)

    def verify(self, r: int, s: int, digest: bytes) -> bool:
        return verify(self, r, s, digest)


class PrivateKey(object):

    def __init__(self, public_key: PublicKey, d: int):
        self.public_key = public_key
        self.d = d

    @classmethod
    def from_secret_scalar(cls, curve: Curve, d: int) -> 'PrivateKey':
        n = curve.order
        if n is None or curve.generator is None:
            raise ValueError(f"curve has no generator and order: {curve!r}")
        if not (1 <= d < n):
            raise ValueError(f"secret scalar must be in [1, {n}), got {d}")
        pub = PublicKey(curve, curve.scalar_multiply(d, curve.generator))
        return cls(pub, d)

    @property
    def curve(self) -> Curve:
        return self.public_key.curve

    def __repr__(self):
        return f"<PrivateKey for {self.public_key.point}>"

    def sign(self, digest: bytes, *, rng=None) -> Signature:
        return sign(self, digest, rng=rng)


def generate_key(curve: Curve, *, rng=None) -> PrivateKey:
    """Private key with d uniformly chosen from [1, n)."""
    d = randrange(_signature_field(curve).p, rng=rng)
    return PrivateKey.from_secret_scalar(curve, d)


def raw_sign(key: PrivateKey, k: int, digest: bytes) -> Signature:
    """Signs digest with the given nonce:

        z = digest truncated to the curve's bit size
        P = k*G
        r = P.x mod n
        s = (z + r*d)/k mod n

    Raises InvalidNonce if r or s is zero, or k is not invertible mod n.
    """
    curve = key.curve
    sf = _signature_field(curve)
    z = truncate(digest, curve.bit_size)
    point = curve.scalar_multiply(k, curve.generator)
    if point.inf:
        raise InvalidNonce(f"k={k} is a multiple of the generator order")
    r = sf.canonicalize(point.x)
    if r == 0:
        raise InvalidNonce(f"k={k} gives r = 0")
    try:
        # only fails if n is not prime
        inv = sf.inverse(k)
    except NotInvertible as e:
        raise InvalidNonce(f"k={k} is not invertible mod {sf.p}") from e
    s = sf.multiply(inv, sf.add(z, sf.multiply(r, key.d)))
    if s == 0:
        raise InvalidNonce(f"k={k} gives s = 0")
    return Signature(r, s)


def sign(key: PrivateKey, digest: bytes, *, rng=None) -> Signature:
    """Signs digest with a fresh random nonce, retrying on degenerate ones."""
    n = _signature_field(key.curve).p
    while True:
        k = randrange(n, rng=rng)
        try:
            return raw_sign(key, k, digest)
        except InvalidNonce as e:
            _logger.debug(f"retrying signature: {e}")


def check_signature(public_key: PublicKey, r: int, s: int, digest: bytes) -> None:
    """Raises if (r, s) is not a valid signature of digest under public_key."""
    curve = public_key.curve
    sf = _signature_field(curve)
    public_key.check()
    n = sf.p
    if not (1 <= r < n):
        raise InvalidSignatureRange(f"r={r} not in [1, {n})")
    if not (1 <= s < n):
        raise InvalidSignatureRange(f"s={s} not in [1, {n})")
    z = truncate(digest, curve.bit_size)
    try:
        inv = sf.inverse(s)
    except NotInvertible as e:
        raise BadSignature(f"s={s} is not invertible mod {n}") from e
    u1 = sf.multiply(z, inv)
    u2 = sf.multiply(r, inv)
    point = curve.add(
        curve.scalar_multiply(u1, curve.generator),
        curve.scalar_multiply(u2, public_key.point),
    )
    if point.inf:
        raise BadSignature("u1*G + u2*Q is the point at infinity")
    # point.x lives in the field of order p, which may be larger than n
    if sf.canonicalize(point.x) != r:
        raise BadSignature(f"x coordinate of {point} does not match r={r}")


def verify(public_key: PublicKey, r: int, s: int, digest: bytes) -> bool:
    try:
        check_signature(public_key, r, s, digest)
    except ECDSAError as e:
        _logger.debug(f"signature not valid: {e}")
        return False
    return True


def recover_private_key(
        curve: Curve,
        r: int,
        s1: int,
        s2: int,
        digest1: bytes,
        digest2: bytes,
) -> int:
    """Recovers d from two signatures made with the same nonce (and so the same r).

        k = (z2 - z1) / (s2 - s1)
        d = (s*k - z) / r

    d is computed from both signatures; if they disagree, the inputs did
    not come from a reused nonce and InconsistentRecovery is raised.
    """
    sf = _signature_field(curve)
    z1 = truncate(digest1, curve.bit_size)
    z2 = truncate(digest2, curve.bit_size)
    try:
        inv = sf.inverse(sf.add(s2, -s1))
    except NotInvertible as e:
        raise KeyRecoveryError("could not invert s2 - s1") from e
    k = sf.multiply(sf.add(z2, -z1), inv)
    try:
        inv = sf.inverse(r)
    except NotInvertible as e:
        raise KeyRecoveryError("could not invert r") from e
    d1 = sf.multiply(sf.add(sf.multiply(s1, k), -z1), inv)
    d2 = sf.multiply(sf.add(sf.multiply(s2, k), -z2), inv)
    if d1 != d2:
        raise InconsistentRecovery(d1, d2)
    return d1
