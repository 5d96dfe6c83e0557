# stochastic_eval/mock_data.py
import random
from typing import Sequence

from .model import Cohort, ScoreMatrix, StudentRecord, Subject, TimeSlot
from .sampling import RandomNormalSampler

BASE_RATIO = 0.75
BASE_STD = 15.0


def random_matrix(
    time_slots: Sequence[TimeSlot],
    subjects: Sequence[Subject],
    sampler: RandomNormalSampler,
    rng: random.Random,
    missing_rate: float,
) -> ScoreMatrix:
    m = ScoreMatrix([t.id for t in time_slots], [s.id for s in subjects])
    for t in time_slots:
        for s in subjects:
            raw = round(sampler.sample(s.full_marks * BASE_RATIO, BASE_STD))
            score = min(s.full_marks, max(0, raw))
            # se sortea el hueco después de la nota para no alterar la secuencia aleatoria
            if rng.random() < missing_rate:
                score = None
            m.set(t.id, s.id, score)
    return m


def generate_mock_cohort(
    count: int,
    time_slots: Sequence[TimeSlot],
    subjects: Sequence[Subject],
    rng: random.Random,
    missing_rate: float = 0.2,
) -> Cohort:
    """Cohorte simulada o1..oN con notas normales alrededor del 75% y huecos aleatorios."""
    sampler = RandomNormalSampler(rng)
    cohort: Cohort = []
    for i in range(1, count + 1):
        sid = f"o{i}"
        m = random_matrix(time_slots, subjects, sampler, rng, missing_rate)
        cohort.append(StudentRecord(id=sid, name=f"Estudiante {sid.upper()}", matrix=m))

    # Hueco fijo en o1: tercer periodo, cuarta y quinta materia
    if cohort and len(time_slots) >= 3 and len(subjects) >= 5:
        t3 = time_slots[2].id
        cohort[0].matrix.set(t3, subjects[3].id, None)
        cohort[0].matrix.set(t3, subjects[4].id, None)
    return cohort
