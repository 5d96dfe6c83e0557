import random
import unittest

from stochastic_eval.config import EvalConfig
from stochastic_eval.imputation import ImputationEngine, clamp_score, cohort_mean, cross_section_stats, tail_lines
from stochastic_eval.mock_data import generate_mock_cohort
from stochastic_eval.model import (
    ALGORITHMS,
    ALGO_NEAREST,
    ALGO_NORMAL,
    ALGO_REGRESSION,
    GAP_CONTINUOUS,
    GAP_DISCRETE,
    ScoreMatrix,
    StudentRecord,
    Subject,
    TimeSlot,
)
from stochastic_eval.scoring import score


class FixedSampler:
    def __init__(self, value):
        self.value = value
        self.calls = []

    def sample(self, mean, std):
        self.calls.append((mean, std))
        return self.value


def build_cohort(ts, subs, rows):
    """rows: lista de {subject_id: [valor por periodo]}; ids s1..sN."""
    cohort = []
    for i, series in enumerate(rows, start=1):
        m = ScoreMatrix([t.id for t in ts], [s.id for s in subs])
        for s_id, vals in series.items():
            for t, v in zip(ts, vals):
                m.set(t.id, s_id, v)
        cohort.append(StudentRecord(id=f"s{i}", name=f"S{i}", matrix=m))
    return cohort


class ImputationExampleTests(unittest.TestCase):
    def test_normal_single_cell(self):
        ts = [TimeSlot("t1", "T1", 1.0)]
        subs = [Subject("a", "A", 1.0, 100)]
        cohort = build_cohort(ts, subs, [{"a": [90]}, {"a": [None]}, {"a": [70]}])
        sampler = FixedSampler(80)
        engine = ImputationEngine(ALGO_NORMAL, rng=random.Random(0), sampler=sampler)

        result = engine.run(cohort, ts, subs)
        ranked = score(result.cohort, ts, subs)

        self.assertEqual([s.final_score for s in ranked], [90.0, 80.0, 70.0])
        self.assertEqual([s.id for s in ranked], ["s1", "s2", "s3"])
        self.assertEqual(sampler.calls, [(80.0, 10.0)])
        detail = result.cohort[1].imputation_details[("t1", "a")]
        self.assertEqual(detail.method, "normal-sample")
        self.assertEqual(detail.gap_type, GAP_CONTINUOUS)
        self.assertEqual(result.filled, 1)

    def test_discrete_midpoint_without_jitter(self):
        ts = [TimeSlot(f"t{i}", f"T{i}", 1.0) for i in range(1, 4)]
        subs = [Subject("a", "A", 1.0, 100)]
        cohort = build_cohort(ts, subs, [{"a": [80, None, 90]}])
        engine = ImputationEngine(ALGO_NORMAL, rng=random.Random(0), jitter_amplitude=0.0)

        result = engine.run(cohort, ts, subs)

        st = result.cohort[0]
        self.assertEqual(st.matrix.get("t2", "a"), 85.0)
        detail = st.imputation_details[("t2", "a")]
        self.assertEqual(detail.gap_type, GAP_DISCRETE)
        self.assertEqual(detail.method, "temporal-interpolation")

    def test_jitter_stays_within_amplitude(self):
        ts = [TimeSlot(f"t{i}", f"T{i}", 1.0) for i in range(1, 4)]
        subs = [Subject("a", "A", 1.0, 100)]
        for seed in range(20):
            cohort = build_cohort(ts, subs, [{"a": [80, None, 90]}])
            result = ImputationEngine(ALGO_NORMAL, rng=random.Random(seed)).run(cohort, ts, subs)
            self.assertTrue(82 <= result.cohort[0].matrix.get("t2", "a") <= 88)

    def test_discrete_without_next_neighbor_degrades(self):
        ts = [TimeSlot(f"t{i}", f"T{i}", 1.0) for i in range(1, 6)]
        subs = [Subject("a", "A", 1.0, 100)]
        cohort = build_cohort(ts, subs, [{"a": [80, None, 90, None, None]}])
        engine = ImputationEngine(ALGO_NORMAL, rng=random.Random(0), sampler=FixedSampler(50), jitter_amplitude=0.0)

        details = engine.run(cohort, ts, subs).cohort[0].imputation_details

        self.assertEqual(details[("t2", "a")].method, "temporal-interpolation")
        self.assertEqual(details[("t4", "a")].gap_type, GAP_CONTINUOUS)
        self.assertEqual(details[("t4", "a")].method, "normal-sample")
        self.assertEqual(details[("t5", "a")].gap_type, GAP_CONTINUOUS)

    def test_interpolation_reads_earlier_imputations(self):
        ts = [TimeSlot(f"t{i}", f"T{i}", 1.0) for i in range(1, 5)]
        subs = [Subject("a", "A", 1.0, 100)]
        # t2 y t3 forman un hueco de 2: t2 no tiene vecino siguiente, t3 sí usa el valor recién imputado en t2
        cohort = build_cohort(ts, subs, [{"a": [60, None, None, 90]}])
        engine = ImputationEngine(ALGO_NORMAL, rng=random.Random(0), sampler=FixedSampler(70), jitter_amplitude=0.0)

        st = engine.run(cohort, ts, subs).cohort[0]

        self.assertEqual(st.imputation_details[("t2", "a")].method, "normal-sample")
        self.assertEqual(st.matrix.get("t2", "a"), 70.0)
        self.assertEqual(st.imputation_details[("t3", "a")].method, "temporal-interpolation")
        self.assertEqual(st.matrix.get("t3", "a"), 80.0)


class RegressionTests(unittest.TestCase):
    def setUp(self):
        self.ts = [TimeSlot("t1", "T1", 1.0)]
        self.subs = [Subject("a", "A", 1.0, 100), Subject("b", "B", 1.0, 100)]
        self.cohort = build_cohort(self.ts, self.subs, [
            {"a": [60], "b": [50]},
            {"a": [80], "b": [None]},
            {"a": [None], "b": [None]},
        ])

    def test_reference_and_mean_fill(self):
        result = ImputationEngine(ALGO_REGRESSION, rng=random.Random(0)).run(self.cohort, self.ts, self.subs)
        s2, s3 = result.cohort[1], result.cohort[2]

        # media de referencia sobre toda la cohorte: 140 / 3; 80 * 50 / 46.67 = 85.71
        self.assertEqual(s2.matrix.get("t1", "b"), 86.0)
        self.assertEqual(s2.imputation_details[("t1", "b")].method, "regression-via-a")

        # sin referencia: media de a sobre los presentes = 70
        self.assertEqual(s3.imputation_details[("t1", "a")].method, "mean-fill")
        self.assertEqual(s3.matrix.get("t1", "a"), 70.0)
        # b usa el valor de a imputado en la misma pasada: 70 * 50 / 46.67 = 75
        self.assertEqual(s3.imputation_details[("t1", "b")].method, "regression-via-a")
        self.assertEqual(s3.matrix.get("t1", "b"), 75.0)

    def test_reference_mean_counts_students_without_reference(self):
        cohort = build_cohort(self.ts, self.subs, [
            {"a": [60], "b": [50]},
            {"a": [80], "b": [None]},
            {"a": [None], "b": [40]},
        ])
        result = ImputationEngine(ALGO_REGRESSION, rng=random.Random(0)).run(cohort, self.ts, self.subs)
        # media de b = 45; media de a = 140 / 3 -> 80 * 45 / 46.67 = 77.14
        self.assertEqual(result.cohort[1].matrix.get("t1", "b"), 77.0)
        self.assertAlmostEqual(cohort_mean(cohort, "t1", "a"), 140 / 3)

    def test_zero_reference_mean_is_guarded(self):
        cohort = build_cohort(self.ts, self.subs, [
            {"a": [0], "b": [40]},
            {"a": [0], "b": [None]},
        ])
        result = ImputationEngine(ALGO_REGRESSION, rng=random.Random(0)).run(cohort, self.ts, self.subs)
        self.assertEqual(result.cohort[1].matrix.get("t1", "b"), 0.0)

    def test_log_lines(self):
        result = ImputationEngine(ALGO_REGRESSION, rng=random.Random(0)).run(self.cohort, self.ts, self.subs)
        self.assertIn("REGRESSION", result.log[0])
        self.assertIn("[S2] B: regression-via-a -> 86", result.log)
        self.assertEqual(len(result.log), result.filled + 2)


class NearestNeighborTests(unittest.TestCase):
    def setUp(self):
        self.ts = [TimeSlot("t1", "T1", 1.0)]
        self.subs = [Subject(s, s.upper(), 1.0, 100) for s in ("a", "b", "c")]

    def test_closest_student_value(self):
        cohort = build_cohort(self.ts, self.subs, [
            {"a": [None], "b": [50], "c": [50]},
            {"a": [90], "b": [80], "c": [80]},
            {"a": [60], "b": [55], "c": [45]},
            {"a": [30], "b": [None], "c": [None]},
        ])
        result = ImputationEngine(ALGO_NEAREST, rng=random.Random(0)).run(cohort, self.ts, self.subs)
        detail = result.cohort[0].imputation_details[("t1", "a")]
        self.assertEqual(detail.value, 60.0)
        self.assertEqual(detail.method, "nearest-neighbor")

    def test_tie_goes_to_first(self):
        cohort = build_cohort(self.ts, self.subs, [
            {"a": [None], "b": [50], "c": [50]},
            {"a": [70], "b": [52], "c": [50]},
            {"a": [40], "b": [48], "c": [50]},
        ])
        result = ImputationEngine(ALGO_NEAREST, rng=random.Random(0)).run(cohort, self.ts, self.subs)
        self.assertEqual(result.cohort[0].matrix.get("t1", "a"), 70.0)

    def test_no_shared_dimensions_falls_back_to_mean(self):
        cohort = build_cohort(self.ts, self.subs, [
            {"a": [None], "b": [None], "c": [None]},
            {"a": [80], "b": [70], "c": [None]},
        ])
        result = ImputationEngine(ALGO_NEAREST, rng=random.Random(0)).run(cohort, self.ts, self.subs)
        d = result.cohort[0].imputation_details
        self.assertEqual(d[("t1", "a")].method, "mean-fill")
        self.assertEqual(d[("t1", "a")].value, 80.0)
        # b ya tiene a (imputado) como dimensión compartida
        self.assertEqual(d[("t1", "b")].method, "nearest-neighbor")
        self.assertEqual(d[("t1", "b")].value, 70.0)

    def test_empty_cross_section_yields_zero(self):
        cohort = build_cohort(self.ts, self.subs, [
            {"a": [None], "b": [60], "c": [60]},
            {"a": [None], "b": [70], "c": [70]},
        ])
        result = ImputationEngine(ALGO_NEAREST, rng=random.Random(0)).run(cohort, self.ts, self.subs)
        for st in result.cohort:
            self.assertEqual(st.matrix.get("t1", "a"), 0.0)
            self.assertEqual(st.imputation_details[("t1", "a")].method, "mean-fill")


class EngineInvariantTests(unittest.TestCase):
    def setUp(self):
        cfg = EvalConfig()
        self.ts = cfg.time_slot_objects()
        self.subs = cfg.subject_objects()
        self.cohort = generate_mock_cohort(12, self.ts, self.subs, random.Random(11), missing_rate=0.3)

    def test_every_cell_filled_and_in_range(self):
        full = {s.id: s.full_marks for s in self.subs}
        for algo in ALGORITHMS:
            result = ImputationEngine(algo, rng=random.Random(5)).run(self.cohort, self.ts, self.subs)
            for st in result.cohort:
                self.assertEqual(st.matrix.absent_cells(), [])
                for (t_id, s_id), val in st.matrix:
                    self.assertTrue(0 <= val <= full[s_id])

    def test_input_cohort_untouched(self):
        before = [st.matrix.copy() for st in self.cohort]
        ImputationEngine(ALGO_REGRESSION, rng=random.Random(5)).run(self.cohort, self.ts, self.subs)
        self.assertEqual([st.matrix for st in self.cohort], before)
        self.assertTrue(all(not st.imputation_details for st in self.cohort))

    def test_seeded_runs_are_reproducible(self):
        r1 = ImputationEngine(ALGO_NORMAL, rng=random.Random(9)).run(self.cohort, self.ts, self.subs)
        r2 = ImputationEngine(ALGO_NORMAL, rng=random.Random(9)).run(self.cohort, self.ts, self.subs)
        self.assertEqual(r1.log, r2.log)
        self.assertEqual([st.matrix for st in r1.cohort], [st.matrix for st in r2.cohort])

    def test_unknown_algorithm(self):
        with self.assertRaises(ValueError):
            ImputationEngine("mice")


class HelperTests(unittest.TestCase):
    def test_clamp_and_round(self):
        self.assertEqual(clamp_score(150.4, 100), 100.0)
        self.assertEqual(clamp_score(-3.0, 100), 0.0)
        self.assertEqual(clamp_score(84.5, 100), 85.0)
        self.assertEqual(clamp_score(84.49, 100), 84.0)

    def test_cross_section_stats(self):
        ts = [TimeSlot("t1", "T1", 1.0)]
        subs = [Subject("a", "A", 1.0, 100)]
        cohort = build_cohort(ts, subs, [{"a": [90]}, {"a": [None]}, {"a": [70]}])
        self.assertEqual(cross_section_stats(cohort, "t1", "a"), (80.0, 10.0))
        empty = build_cohort(ts, subs, [{"a": [None]}])
        self.assertEqual(cross_section_stats(empty, "t1", "a"), (0.0, 0.0))

    def test_cohort_mean_divides_by_cohort_size(self):
        ts = [TimeSlot("t1", "T1", 1.0)]
        subs = [Subject("a", "A", 1.0, 100)]
        cohort = build_cohort(ts, subs, [{"a": [60]}, {"a": [80]}, {"a": [None]}])
        self.assertAlmostEqual(cohort_mean(cohort, "t1", "a"), 140 / 3)
        self.assertEqual(cohort_mean([], "t1", "a"), 0.0)

    def test_tail_lines(self):
        log = ["h", "x", "y"]
        self.assertEqual(tail_lines(log, 2), ["x", "y"])
        self.assertEqual(tail_lines(log, 10), log)
        self.assertEqual(tail_lines(log, 0), [])


if __name__ == "__main__":
    unittest.main()
