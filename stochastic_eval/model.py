# stochastic_eval/model.py
import copy
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

TimeId = str
SubjectId = str
CellKey = Tuple[TimeId, SubjectId]
Score = Optional[float]   # None = ausente (nunca 0)

# Tipos de hueco
GAP_NONE = "none"
GAP_DISCRETE = "discrete"
GAP_CONTINUOUS = "continuous"

# Algoritmos de imputación
ALGO_NORMAL = "normal"
ALGO_REGRESSION = "regression"
ALGO_NEAREST = "nearest-neighbor"
ALGORITHMS = (ALGO_NORMAL, ALGO_REGRESSION, ALGO_NEAREST)

# Etiquetas de método (procedencia de cada celda imputada)
METHOD_INTERPOLATION = "temporal-interpolation"
METHOD_NORMAL = "normal-sample"
METHOD_REGRESSION_PREFIX = "regression-via-"
METHOD_MEAN_FILL = "mean-fill"
METHOD_NEAREST = "nearest-neighbor"

@dataclass(frozen=True)
class TimeSlot:
    id: TimeId
    label: str
    weight: float

@dataclass(frozen=True)
class Subject:
    id: SubjectId
    name: str
    weight: float
    full_marks: float
    category: str = "main"   # "main" | "sub"

@dataclass(frozen=True)
class ImputationDetail:
    value: float
    gap_type: str
    method: str

class ScoreMatrix:
    """
    Tabla tiempo x materia de un estudiante.

    Las claves se fijan al construir la matriz con los periodos y materias
    declarados; leer o escribir una clave fuera de ese conjunto lanza KeyError.
    """

    def __init__(self, time_ids: Iterable[TimeId], subject_ids: Iterable[SubjectId]):
        self.time_ids: List[TimeId] = list(time_ids)
        self.subject_ids: List[SubjectId] = list(subject_ids)
        self._cells: Dict[CellKey, Score] = {
            (t, s): None for t in self.time_ids for s in self.subject_ids
        }

    def _check(self, key: CellKey) -> None:
        if key not in self._cells:
            raise KeyError(f"Celda no declarada: {key[0]}_{key[1]}")

    def get(self, time_id: TimeId, subject_id: SubjectId) -> Score:
        key = (time_id, subject_id)
        self._check(key)
        return self._cells[key]

    def set(self, time_id: TimeId, subject_id: SubjectId, value: Score) -> None:
        key = (time_id, subject_id)
        self._check(key)
        self._cells[key] = None if value is None else float(value)

    def is_absent(self, time_id: TimeId, subject_id: SubjectId) -> bool:
        return self.get(time_id, subject_id) is None

    def absent_cells(self) -> List[CellKey]:
        return [k for k, v in self._cells.items() if v is None]

    def copy(self) -> "ScoreMatrix":
        return copy.deepcopy(self)

    def __iter__(self) -> Iterator[Tuple[CellKey, Score]]:
        return iter(self._cells.items())

    def __eq__(self, other) -> bool:
        if not isinstance(other, ScoreMatrix):
            return NotImplemented
        return self._cells == other._cells


@dataclass
class StudentRecord:
    id: str
    name: str
    matrix: ScoreMatrix
    final_score: float = 0.0
    imputation_details: Dict[CellKey, ImputationDetail] = field(default_factory=dict)


Cohort = List[StudentRecord]
