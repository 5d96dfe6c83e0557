# stochastic_eval/correlation.py
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from .model import Cohort, Subject, SubjectId, TimeId

MIN_PAIRS = 3


def _valid_pairs(cohort: Cohort, subject_a: SubjectId, subject_b: SubjectId, time_id: TimeId) -> List[Tuple[float, float]]:
    pairs = []
    for st in cohort:
        a = st.matrix.get(time_id, subject_a)
        b = st.matrix.get(time_id, subject_b)
        if a is not None and b is not None:
            pairs.append((a, b))
    return pairs


def correlation(cohort: Cohort, subject_a: SubjectId, subject_b: SubjectId, time_id: TimeId) -> float:
    """
    Coeficiente de Pearson entre dos materias en un periodo.

    Devuelve 0 con menos de 3 pares válidos o si alguna varianza es nula.
    """
    pairs = _valid_pairs(cohort, subject_a, subject_b, time_id)
    if len(pairs) < MIN_PAIRS:
        return 0.0

    arr = np.asarray(pairs, dtype=float)
    da = arr[:, 0] - arr[:, 0].mean()
    db = arr[:, 1] - arr[:, 1].mean()
    den_a = float(np.sum(da ** 2))
    den_b = float(np.sum(db ** 2))
    if den_a == 0 or den_b == 0:
        return 0.0
    r = float(np.sum(da * db)) / float(np.sqrt(den_a * den_b))
    # errores de redondeo pueden sacar r de [-1, 1]
    return max(-1.0, min(1.0, r))


def correlation_matrix(cohort: Cohort, subjects: Sequence[Subject], time_id: TimeId) -> pd.DataFrame:
    ids = [s.id for s in subjects]
    mat = pd.DataFrame(0.0, index=ids, columns=ids)
    for i, a in enumerate(ids):
        mat.loc[a, a] = 1.0
        for b in ids[i + 1:]:
            r = correlation(cohort, a, b, time_id)
            mat.loc[a, b] = r
            mat.loc[b, a] = r
    return mat


def most_correlated(
    cohort: Cohort,
    subject_id: SubjectId,
    candidates: Sequence[SubjectId],
    time_id: TimeId,
) -> List[Tuple[SubjectId, float]]:
    """Candidatos ordenados por |r| descendente (orden declarado en empates)."""
    scored = [(c, correlation(cohort, subject_id, c, time_id)) for c in candidates if c != subject_id]
    return sorted(scored, key=lambda x: abs(x[1]), reverse=True)
