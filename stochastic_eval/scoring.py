# stochastic_eval/scoring.py
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .model import Cohort, StudentRecord, Subject, TimeId, TimeSlot


def composite_score(student: StudentRecord, time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> float:
    """Suma ponderada por materia y periodo; una celda ausente cuenta como 0."""
    total = 0.0
    for t in time_slots:
        t_score = 0.0
        for sub in subjects:
            val = student.matrix.get(t.id, sub.id) or 0.0
            t_score += val * sub.weight
        total += t_score * t.weight
    return total


def score(cohort: Cohort, time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> Cohort:
    """Recalcula final_score y devuelve la cohorte ordenada de mayor a menor (orden estable)."""
    for st in cohort:
        st.final_score = composite_score(st, time_slots, subjects)
    return sorted(cohort, key=lambda s: s.final_score, reverse=True)


def slot_trend(student: StudentRecord, time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> Dict[TimeId, Optional[float]]:
    # Promedio ponderado solo sobre materias con dato
    trend: Dict[TimeId, Optional[float]] = {}
    for t in time_slots:
        valid = [s for s in subjects if student.matrix.get(t.id, s.id) is not None]
        weight_sum = sum(s.weight for s in valid)
        if not valid or weight_sum == 0:
            trend[t.id] = None
            continue
        trend[t.id] = sum(student.matrix.get(t.id, s.id) * s.weight for s in valid) / weight_sum
    return trend


def missing_slots(student: StudentRecord, time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> Dict[TimeId, bool]:
    return {t.id: any(student.matrix.is_absent(t.id, s.id) for s in subjects) for t in time_slots}


def ranking_frame(cohort: Cohort, time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> pd.DataFrame:
    rows: List[Dict] = []
    for rank, st in enumerate(cohort, start=1):
        row = {"Rank": rank, "ID": st.id, "Name": st.name, "FinalScore": round(st.final_score, 4)}
        for t in time_slots:
            for sub in subjects:
                row[f"{t.id}_{sub.id}"] = st.matrix.get(t.id, sub.id)
        rows.append(row)
    return pd.DataFrame(rows)
