import queue
import random
import threading
from unittest import mock

from sigsim.field import FiniteField
from sigsim.ec import Curve, Point, INFINITY
from sigsim import bsgs
from sigsim.bsgs import (BabyStepTable, GiantStepMatch, GiantStepWorker, OrderSearchCancelled,
                         OrderSearchFailed, baby_step_count, split_range, multiple_of_order,
                         reduce_order, find_order, giant_step_limit)
from sigsim.prime import is_probable_prime

from . import SigsimTestCase


CURVE_263 = Curve(FiniteField(263), 2, 3)


class TestBabySteps(SigsimTestCase):

    def test_baby_step_count(self):
        self.assertEqual(4, baby_step_count(17))
        self.assertEqual(6, baby_step_count(263))
        self.assertEqual(3, baby_step_count(3))

    def test_table(self):
        g = Point(60, 48)
        table = BabyStepTable(CURVE_263, g, 6)
        self.assertEqual(6, len(table))
        self.assertEqual(0, table.lookup(INFINITY))
        self.assertEqual(1, table.lookup(g))
        # same x, other y
        self.assertEqual(1, table.lookup(CURVE_263.negate(g)))
        self.assertEqual(4, table.lookup(Point(102, 90)))
        self.assertIsNone(table.lookup(Point(200, 39)))

    def test_infinity_only_matches_infinity(self):
        # (0, ...) must not be mistaken for the point at infinity
        c = Curve(FiniteField(71), 70, 0)
        table = BabyStepTable(c, Point(0, 0), 3)
        self.assertEqual(0, table.lookup(INFINITY))
        self.assertEqual(1, table.lookup(Point(0, 0)))


class TestSplitRange(SigsimTestCase):

    def test_even(self):
        self.assertEqual([range(0, 5), range(5, 10)], split_range(10, 2))

    def test_last_takes_remainder(self):
        self.assertEqual([range(0, 87), range(87, 174), range(174, 263)], split_range(263, 3))

    def test_more_parts_than_items(self):
        ranges = split_range(3, 5)
        self.assertEqual(5, len(ranges))
        self.assertEqual([0, 1, 2], [k for r in ranges for k in r])


class TestReduction(SigsimTestCase):

    def test_multiple_of_order(self):
        g = Point(60, 48)  # order 9
        self.assertEqual(270, multiple_of_order(CURVE_263, g, GiantStepMatch(mp=272, j=2, k=0)))
        self.assertEqual(270, multiple_of_order(CURVE_263, g, GiantStepMatch(mp=268, j=2, k=0)))
        with self.assertRaises(OrderSearchFailed):
            multiple_of_order(CURVE_263, g, GiantStepMatch(mp=272, j=1, k=0))

    def test_reduce_order(self):
        self.assertEqual(9, reduce_order(CURVE_263, Point(60, 48), 270))
        self.assertEqual(270, reduce_order(CURVE_263, Point(200, 39), 270))
        self.assertEqual(270, reduce_order(CURVE_263, Point(200, 39), 540))
        self.assertEqual(1, reduce_order(CURVE_263, INFINITY, 270))

    def test_reduce_order_skips_used_up_factors(self):
        # once 2 is divided out, 3, 5 and 7 must still be tried
        c = Curve(FiniteField(3), 2, 1)  # 7 points, every point has order 7
        g = c.points()[1]
        self.assertEqual(7, reduce_order(c, g, 7 * 2 * 3 * 5))


def run_worker(curve, point, ks):
    """Runs one giant-step worker in the calling thread, returns its match or None."""
    m = baby_step_count(curve.p)
    results = queue.Queue(maxsize=1)
    worker = GiantStepWorker(
        curve=curve,
        point=point,
        table=BabyStepTable(curve, point, m),
        anchor=curve.scalar_multiply(curve.p + 1, point),
        ks=ks,
        results=results,
        stop_event=threading.Event(),
        cancel_check_interval=1000,
    )
    worker.run()
    assert worker.error is None, worker.error
    return None if results.empty() else results.get_nowait()


class TestGiantStepLimit(SigsimTestCase):

    def test_small_fields(self):
        self.assertEqual(3, giant_step_limit(3, 3))
        self.assertEqual(51, giant_step_limit(263, 6))

    def test_large_field(self):
        p = 2**56 + 3
        m = baby_step_count(p)
        limit = giant_step_limit(p, m)
        self.assertLess(limit, p // 2)
        # the last allowed window still fits the word
        self.assertLess(p + 1 + 2 * m * (limit - 1) + m, 2**64)

    def test_word_bound(self):
        p = 2**63 - 25
        m = baby_step_count(p)
        self.assertLess(p + 1 + 2 * m * (giant_step_limit(p, m) - 1) + m - 1, 2**64)


class TestWorkerRanges(SigsimTestCase):

    def test_match_from_second_worker(self):
        c = Curve(FiniteField(3), 2, 1)  # 7 points
        g = c.points()[1]
        match = run_worker(c, g, split_range(3, 2)[1])
        self.assertEqual(GiantStepMatch(mp=16, j=2, k=2), match)
        self.assertEqual(7, reduce_order(c, g, multiple_of_order(c, g, match)))

    def test_second_worker_over_large_field(self):
        p = 2**56 + 3
        while not is_probable_prime(p):
            p += 4
        # y^2 = x^3 + x, (0, 0) has order 2
        c = Curve(FiniteField(p), 1, 0)
        pt = Point(0, 0)
        # everything in the upper half is past the first match
        self.assertIsNone(run_worker(c, pt, split_range(p, 2)[1]))
        match = run_worker(c, pt, split_range(p, 2)[0])
        self.assertEqual(GiantStepMatch(mp=p + 1, j=0, k=0), match)
        n = multiple_of_order(c, pt, match)
        self.assertEqual(p + 1, n)
        self.assertTrue(c.scalar_multiply(n // 2, pt).inf)

    def test_any_worker_gives_the_same_order(self):
        limit = giant_step_limit(263, baby_step_count(263))
        # every giant step of (60,48) matches, only one of (200,39)
        for pt, order, matching in ((Point(60, 48), 9, 4), (Point(200, 39), 270, 1)):
            with self.subTest(pt=pt):
                orders = []
                for ks in split_range(limit, 4):
                    match = run_worker(CURVE_263, pt, ks)
                    if match is not None:
                        orders.append(reduce_order(CURVE_263, pt, multiple_of_order(CURVE_263, pt, match)))
                self.assertEqual([order] * matching, orders)


class TestFindOrder(SigsimTestCase):

    def test_orders(self):
        self.assertEqual(270, find_order(CURVE_263, Point(200, 39), parallelism=2, cancel_check_interval=10))
        self.assertEqual(9, find_order(CURVE_263, Point(60, 48), parallelism=1, cancel_check_interval=10))
        self.assertEqual(1, find_order(CURVE_263, INFINITY, parallelism=2, cancel_check_interval=10))

    def test_tiny_field(self):
        c = Curve(FiniteField(3), 2, 1)
        for pt in c.points()[1:]:
            self.assertEqual(7, c.order_bsgs(pt, parallelism=2))

    def test_parallelism_does_not_change_result(self):
        rng = random.Random(11)
        pt = CURVE_263.random_point(rng=rng)
        expected = CURVE_263.order_naive(pt)
        for parallelism in (1, 2, 3, 8):
            with self.subTest(parallelism=parallelism):
                self.assertEqual(expected, CURVE_263.order_bsgs(pt, parallelism=parallelism))

    def test_concurrent_searches(self):
        results = {}
        pts = [Point(200, 39), Point(60, 48)]

        def run(pt, parallelism):
            results[pt] = CURVE_263.order_bsgs(pt, parallelism=parallelism)

        threads = [threading.Thread(target=run, args=(pt, i + 1)) for i, pt in enumerate(pts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual({Point(200, 39): 270, Point(60, 48): 9}, results)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            CURVE_263.order_bsgs(Point(200, 39), parallelism=0)
        with self.assertRaises(ValueError):
            CURVE_263.order_bsgs(Point(200, 39), cancel_check_interval=0)
        with self.assertRaises(ValueError):
            CURVE_263.order_bsgs(Point(200, 40))

    def test_cancelled(self):
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(OrderSearchCancelled):
            CURVE_263.order_bsgs(Point(200, 39), cancel=cancel)

    def test_worker_error(self):
        with mock.patch.object(GiantStepWorker, "_search", side_effect=RuntimeError("boom")):
            with self.assertRaises(OrderSearchFailed) as ctx:
                CURVE_263.order_bsgs(Point(200, 39))
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)

    def test_no_match(self):
        with mock.patch.object(GiantStepWorker, "_search", return_value=None):
            with self.assertRaises(OrderSearchFailed):
                CURVE_263.order_bsgs(Point(200, 39))

    def test_polls_until_match(self):
        with mock.patch.object(bsgs, "RESULT_POLL_INTERVAL", 0.001):
            self.assertEqual(270, CURVE_263.order_bsgs(Point(200, 39), cancel_check_interval=1))
