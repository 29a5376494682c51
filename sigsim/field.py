# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""Arithmetic in a prime field Z/pZ.

The modulus must fit in a signed machine word (see WORD_BIT_LENGTH).
Python integers never overflow, so products of two elements (which can
need twice the word width) are reduced directly.
"""

from .version import WORD_BIT_LENGTH


MAX_MODULUS = (1 << (WORD_BIT_LENGTH - 1)) - 1


class FieldError(Exception):
    pass


class NotAFieldElement(FieldError, ValueError):
    """Operand outside of the range an operation accepts."""

    def __init__(self, i: int, p: int):
        self.i = i
        self.p = p
        super().__init__(f"{i} is not an element of the field of order {p}")


class NotInvertible(FieldError, ZeroDivisionError):

    def __init__(self, i: int, p: int):
        self.i = i
        self.p = p
        super().__init__(f"{i} is not invertible mod {p}")


class NotQuadraticResidue(FieldError, ValueError):

    def __init__(self, i: int, p: int):
        self.i = i
        self.p = p
        super().__init__(f"{i} is not a square mod {p}")


class UnsupportedField(FieldError):
    """Square roots are only implemented for p = 3 (mod 4)."""

    def __init__(self, p: int):
        self.p = p
        super().__init__(f"sqrt not implemented for the field of order {p} (p mod 4 = {p % 4})")


class FiniteField(object):
    """A finite prime field.

    The caller asserts that p is prime; this is not checked here (see
    Curve.verify). All operations return canonical representatives in
    [0, p), inputs that are negative or >= p are reduced first.
    """

    __slots__ = ('_p',)

    def __init__(self, p: int):
        p = int(p)
        if not (2 <= p <= MAX_MODULUS):
            raise ValueError(f"field order must be in [2, {MAX_MODULUS}], got {p}")
        self._p = p

    @property
    def p(self) -> int:
        return self._p

    def __repr__(self):
        return f"<FiniteField p={self._p}>"

    def __eq__(self, other):
        return isinstance(other, FiniteField) and self._p == other._p

    def __hash__(self):
        return hash(self._p)

    def element(self, i: int) -> bool:
        """Is i a canonical member of the field?"""
        return 0 <= i < self._p

    def canonicalize(self, i: int) -> int:
        return i % self._p

    def add(self, i: int, j: int) -> int:
        return (i + j) % self._p

    def multiply(self, i: int, j: int) -> int:
        return (i * j) % self._p

    def inverse(self, i: int) -> int:
        """Multiplicative inverse of i, via the extended Euclidean algorithm.

        Raises NotInvertible if gcd(i, p) != 1.
        """
        t, new_t = 0, 1
        r, new_r = self._p, i % self._p
        while new_r != 0:
            q = r // new_r
            t, new_t = new_t, t - q * new_t
            r, new_r = new_r, r - q * new_r
        if r > 1:
            raise NotInvertible(i, self._p)
        return self.canonicalize(t)

    def exponentiate(self, i: int, j: int) -> int:
        """i**j mod p, square-and-multiply over the full word width."""
        if i >= self._p:
            raise NotAFieldElement(i, self._p)
        if not (0 <= j < self._p):
            raise NotAFieldElement(j, self._p)
        r = 1
        for b in range(WORD_BIT_LENGTH):
            if (j >> b) & 1:
                r = self.multiply(r, i)
            i = self.multiply(i, i)
        return self.canonicalize(r)

    def sqrt(self, i: int) -> int:
        """Returns one square root x of i; the other one is p - x.

        Only works if p = 3 (mod 4). Then x = i**((p+1)/4), since
        x**4 = i**(p+1) = i**2 * i**(p-1) = i**2 (Fermat), hence
        (x**2 - i)(x**2 + i) = 0. Whether x**2 == i is checked.
        """
        if i >= self._p:
            raise NotAFieldElement(i, self._p)
        if self._p % 4 != 3:
            raise UnsupportedField(self._p)
        i = self.canonicalize(i)
        if i == 0:
            return 0
        x = self.exponentiate(i, (self._p + 1) // 4)
        if self.multiply(x, x) != i:
            raise NotQuadraticResidue(i, self._p)
        return x
