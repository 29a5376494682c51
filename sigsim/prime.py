# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

from typing import List

from Cryptodome.Util.number import isPrime, getPrime

from .version import WORD_BIT_LENGTH


# false positive probability accepted by the Miller-Rabin rounds
PRIMALITY_FALSE_POSITIVE_PROB = 1e-12


def prime_factors(n: int) -> List[int]:
    """Returns the prime factors of n in ascending order, repeated
    according to their multiplicity. Plain trial division.
    """
    if n < 1:
        raise ValueError(f"can only factor positive integers, got {n}")
    pfs = []
    while n % 2 == 0:
        pfs.append(2)
        n //= 2
    # n is odd now, skip even candidates
    i = 3
    while i * i <= n:
        while n % i == 0:
            pfs.append(i)
            n //= i
        i += 2
    # what is left is prime
    if n > 2:
        pfs.append(n)
    return pfs


def is_probable_prime(n: int) -> bool:
    if n < 2:
        return False
    return bool(isPrime(n, false_positive_prob=PRIMALITY_FALSE_POSITIVE_PROB))


def generate_prime(bits: int, *, congruent_3_mod_4: bool = True, randfunc=None) -> int:
    """Random prime of exactly `bits` bits.

    With congruent_3_mod_4 set (the default), only primes with p = 3 (mod 4)
    are returned, as square roots in the field are only implemented for those.
    """
    if not (2 <= bits < WORD_BIT_LENGTH):
        raise ValueError(f"bits must be in [2, {WORD_BIT_LENGTH - 1}], got {bits}")
    while True:
        p = getPrime(bits, randfunc=randfunc)
        if not congruent_3_mod_4 or p % 4 == 3:
            return p
