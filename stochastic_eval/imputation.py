# stochastic_eval/imputation.py
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .gaps import classify
from .model import (
    ALGO_NEAREST,
    ALGO_NORMAL,
    ALGO_REGRESSION,
    ALGORITHMS,
    GAP_CONTINUOUS,
    GAP_DISCRETE,
    GAP_NONE,
    METHOD_INTERPOLATION,
    METHOD_MEAN_FILL,
    METHOD_NEAREST,
    METHOD_NORMAL,
    METHOD_REGRESSION_PREFIX,
    Cohort,
    ImputationDetail,
    ScoreMatrix,
    StudentRecord,
    Subject,
    SubjectId,
    TimeId,
    TimeSlot,
)
from .sampling import RandomNormalSampler

logger = logging.getLogger(__name__)


@dataclass
class ImputationResult:
    cohort: Cohort
    log: List[str] = field(default_factory=list)
    filled: int = 0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_score(value: float, full_marks: float) -> float:
    """Redondea al entero más cercano y acota a [0, full_marks]."""
    return float(max(0, min(full_marks, round_half_up(value))))


def cross_section_stats(cohort: Cohort, time_id: TimeId, subject_id: SubjectId) -> Tuple[float, float]:
    """Media y desviación poblacional de los valores presentes; (0, 0) si no hay ninguno."""
    vals = [st.matrix.get(time_id, subject_id) for st in cohort]
    vals = [v for v in vals if v is not None]
    if not vals:
        return 0.0, 0.0
    arr = np.asarray(vals, dtype=float)
    return float(arr.mean()), float(arr.std())


def cohort_mean(cohort: Cohort, time_id: TimeId, subject_id: SubjectId) -> float:
    """Suma de los valores presentes dividida entre el tamaño total de la cohorte."""
    if not cohort:
        return 0.0
    vals = [st.matrix.get(time_id, subject_id) for st in cohort]
    return sum(v for v in vals if v is not None) / len(cohort)


def tail_lines(log: List[str], n: int) -> List[str]:
    # log[-0:] devolvería todo el log
    return log[-n:] if n > 0 else []


class ImputationEngine:
    """
    Completa las celdas ausentes de una cohorte en una sola pasada.

    Orden fijo: por estudiante, periodos (externo) y materias (interno) en
    el orden declarado. La clasificación y las estadísticas transversales se
    calculan sobre los datos previos a la pasada; la interpolación, la materia
    de referencia de la regresión y el vector propio del vecino más cercano
    leen la copia de trabajo, que ya incluye lo imputado antes en la pasada.
    """

    def __init__(
        self,
        algorithm: str = ALGO_NORMAL,
        rng: Optional[random.Random] = None,
        sampler: Optional[RandomNormalSampler] = None,
        jitter_amplitude: float = 5.0,
    ):
        if algorithm not in ALGORITHMS:
            raise ValueError(f"Algoritmo desconocido: {algorithm!r}")
        self.algorithm = algorithm
        self.rng = rng if rng is not None else random.Random()
        self.sampler = sampler if sampler is not None else RandomNormalSampler(self.rng)
        self.jitter_amplitude = jitter_amplitude
        self._stats: Dict[Tuple[TimeId, SubjectId], Tuple[float, float]] = {}

    def run(self, cohort: Cohort, time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> ImputationResult:
        self._stats = {}
        log: List[str] = [f"Inicio del motor de imputación: modo {self.algorithm.upper()}"]
        logger.info("Imputación %s sobre %d estudiantes", self.algorithm, len(cohort))

        updated: Cohort = []
        filled = 0
        for student in cohort:
            new_student, n = self._impute_student(student, cohort, time_slots, subjects, log)
            updated.append(new_student)
            filled += n

        log.append(f"Imputación completada: {filled} celdas completadas")
        logger.info("Imputación completada: %d celdas", filled)
        return ImputationResult(cohort=updated, log=log, filled=filled)

    def _impute_student(
        self,
        student: StudentRecord,
        cohort: Cohort,
        time_slots: Sequence[TimeSlot],
        subjects: Sequence[Subject],
        log: List[str],
    ) -> Tuple[StudentRecord, int]:
        snapshot = student.matrix
        work = snapshot.copy()
        details: Dict[Tuple[TimeId, SubjectId], ImputationDetail] = {}

        for t_idx, slot in enumerate(time_slots):
            for sub in subjects:
                gap_type = classify(snapshot, t_idx, sub.id, time_slots)
                if gap_type == GAP_NONE:
                    continue

                value: Optional[float] = None
                method = ""
                if gap_type == GAP_DISCRETE:
                    value = self._interpolate(work, t_idx, sub.id, time_slots)
                    if value is None:
                        gap_type = GAP_CONTINUOUS
                    else:
                        method = METHOD_INTERPOLATION

                if value is None:
                    value, method = self._estimate(student, work, cohort, slot.id, sub, subjects)

                value = clamp_score(value, sub.full_marks)
                work.set(slot.id, sub.id, value)
                details[(slot.id, sub.id)] = ImputationDetail(value=value, gap_type=gap_type, method=method)
                line = f"[{student.name}] {sub.name}: {method} -> {int(value)}"
                log.append(line)
                logger.debug(line)

        new_student = StudentRecord(
            id=student.id,
            name=student.name,
            matrix=work,
            final_score=student.final_score,
            imputation_details=details,
        )
        return new_student, len(details)

    def _interpolate(self, work: ScoreMatrix, t_idx: int, subject_id: SubjectId, time_slots: Sequence[TimeSlot]) -> Optional[float]:
        prev_v = work.get(time_slots[t_idx - 1].id, subject_id) if t_idx > 0 else None
        next_v = work.get(time_slots[t_idx + 1].id, subject_id) if t_idx < len(time_slots) - 1 else None
        if prev_v is None or next_v is None:
            return None
        jitter = (self.rng.random() - 0.5) * self.jitter_amplitude
        return (prev_v + next_v) / 2 + jitter

    def _cross_section(self, cohort: Cohort, time_id: TimeId, subject_id: SubjectId) -> Tuple[float, float]:
        key = (time_id, subject_id)
        if key not in self._stats:
            self._stats[key] = cross_section_stats(cohort, time_id, subject_id)
        return self._stats[key]

    def _estimate(
        self,
        student: StudentRecord,
        work: ScoreMatrix,
        cohort: Cohort,
        time_id: TimeId,
        sub: Subject,
        subjects: Sequence[Subject],
    ) -> Tuple[float, str]:
        mean, std = self._cross_section(cohort, time_id, sub.id)

        if self.algorithm == ALGO_REGRESSION:
            return self._regression(work, cohort, time_id, sub, subjects, mean)
        if self.algorithm == ALGO_NEAREST:
            return self._nearest_neighbor(student, work, cohort, time_id, sub, subjects, mean)
        return self.sampler.sample(mean, std), METHOD_NORMAL

    def _regression(
        self,
        work: ScoreMatrix,
        cohort: Cohort,
        time_id: TimeId,
        sub: Subject,
        subjects: Sequence[Subject],
        mean: float,
    ) -> Tuple[float, str]:
        ref = next((s for s in subjects if s.id != sub.id and work.get(time_id, s.id) is not None), None)
        if ref is None:
            return mean, METHOD_MEAN_FILL
        ref_value = work.get(time_id, ref.id)
        ref_mean = cohort_mean(cohort, time_id, ref.id)
        # Regresión proporcional: objetivo = ref * (media_objetivo / media_ref)
        return ref_value * (mean / (ref_mean or 1)), METHOD_REGRESSION_PREFIX + ref.id

    def _nearest_neighbor(
        self,
        student: StudentRecord,
        work: ScoreMatrix,
        cohort: Cohort,
        time_id: TimeId,
        sub: Subject,
        subjects: Sequence[Subject],
        mean: float,
    ) -> Tuple[float, str]:
        best_dist = math.inf
        best_val: Optional[float] = None
        for other in cohort:
            if other.id == student.id:
                continue
            target = other.matrix.get(time_id, sub.id)
            if target is None:
                continue
            sq = 0.0
            dims = 0
            for s in subjects:
                if s.id == sub.id:
                    continue
                v1 = work.get(time_id, s.id)
                v2 = other.matrix.get(time_id, s.id)
                if v1 is not None and v2 is not None:
                    sq += (v1 - v2) ** 2
                    dims += 1
            if dims == 0:
                continue
            dist = math.sqrt(sq)
            if dist < best_dist:
                best_dist = dist
                best_val = target

        if best_val is None:
            return mean, METHOD_MEAN_FILL
        return best_val, METHOD_NEAREST
