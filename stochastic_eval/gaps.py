# stochastic_eval/gaps.py
from typing import Sequence

from .model import GAP_CONTINUOUS, GAP_DISCRETE, GAP_NONE, ScoreMatrix, SubjectId, TimeSlot

# Un hueco interior de hasta 2 periodos se puede interpolar
MAX_DISCRETE_RUN = 2


def gap_run_length(matrix: ScoreMatrix, time_index: int, subject_id: SubjectId, time_slots: Sequence[TimeSlot]) -> int:
    """Largo del tramo máximo de celdas ausentes que contiene time_index (0 si está presente)."""
    if not matrix.is_absent(time_slots[time_index].id, subject_id):
        return 0
    run = 1
    i = time_index - 1
    while i >= 0 and matrix.is_absent(time_slots[i].id, subject_id):
        run += 1
        i -= 1
    j = time_index + 1
    while j < len(time_slots) and matrix.is_absent(time_slots[j].id, subject_id):
        run += 1
        j += 1
    return run


def classify(matrix: ScoreMatrix, time_index: int, subject_id: SubjectId, time_slots: Sequence[TimeSlot]) -> str:
    """
    Clasifica la celda (time_index, subject_id) como none / discrete / continuous.

    Solo depende de la serie de la propia materia. Debe evaluarse sobre la
    matriz previa a la pasada de imputación.
    """
    run = gap_run_length(matrix, time_index, subject_id, time_slots)
    if run == 0:
        return GAP_NONE
    is_edge = time_index == 0 or time_index == len(time_slots) - 1
    if run > MAX_DISCRETE_RUN or is_edge:
        return GAP_CONTINUOUS
    return GAP_DISCRETE
