import random

from sigsim.prime import prime_factors, is_probable_prime, generate_prime

from . import SigsimTestCase


class TestPrimeFactors(SigsimTestCase):

    def test_prime_factors(self):
        self.assertEqual([], prime_factors(1))
        self.assertEqual([2], prime_factors(2))
        self.assertEqual([2, 3, 3, 3, 5], prime_factors(270))
        self.assertEqual([3, 3], prime_factors(9))
        self.assertEqual([2, 2, 2, 2], prime_factors(16))
        self.assertEqual([47, 59], prime_factors(2773))
        self.assertEqual([7919], prime_factors(7919))
        self.assertEqual([2**31 - 1], prime_factors(2**31 - 1))

    def test_product_is_n(self):
        rng = random.Random(42)
        for _ in range(50):
            n = rng.randrange(1, 10**6)
            product = 1
            for f in prime_factors(n):
                product *= f
            self.assertEqual(n, product)

    def test_non_positive(self):
        with self.assertRaises(ValueError):
            prime_factors(0)
        with self.assertRaises(ValueError):
            prime_factors(-12)


class TestPrimality(SigsimTestCase):

    def test_is_probable_prime(self):
        for p in (2, 3, 5, 233, 479, 2003, 7919, 2**31 - 1):
            with self.subTest(p=p):
                self.assertTrue(is_probable_prime(p))
        for n in (-7, 0, 1, 4, 9, 270, 2773, 561):
            with self.subTest(n=n):
                self.assertFalse(is_probable_prime(n))

    def test_generate_prime(self):
        for bits in (8, 16, 25):
            with self.subTest(bits=bits):
                p = generate_prime(bits)
                self.assertEqual(bits, p.bit_length())
                self.assertEqual(3, p % 4)
                self.assertTrue(is_probable_prime(p))

    def test_generate_prime_any_residue(self):
        p = generate_prime(20, congruent_3_mod_4=False)
        self.assertEqual(20, p.bit_length())
        self.assertTrue(is_probable_prime(p))

    def test_generate_prime_bits_out_of_range(self):
        with self.assertRaises(ValueError):
            generate_prime(1)
        with self.assertRaises(ValueError):
            generate_prime(64)
