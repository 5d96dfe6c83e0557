"""
Configuración del sistema de evaluación.

Incluye un cargador desde YAML para dejar periodos, materias, pesos y la
semilla reproducibles y configurables.
"""
from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from .model import ALGORITHMS, ALGO_NEAREST, ALGO_NORMAL, Subject, TimeSlot


DEFAULT_TIME_SLOTS: List[Dict[str, Any]] = [
    {"id": "t1", "label": "Mensual 1", "weight": 0.1},
    {"id": "t2", "label": "Mensual 2", "weight": 0.15},
    {"id": "t3", "label": "Parcial", "weight": 0.2},
    {"id": "t4", "label": "Mensual 3", "weight": 0.15},
    {"id": "t5", "label": "Mensual 4", "weight": 0.2},
    {"id": "t6", "label": "Final", "weight": 0.2},
]

DEFAULT_SUBJECTS: List[Dict[str, Any]] = [
    {"id": "x1", "name": "Lengua", "weight": 0.14, "full_marks": 150, "category": "main"},
    {"id": "x2", "name": "Matemática", "weight": 0.13, "full_marks": 150, "category": "main"},
    {"id": "x3", "name": "Inglés", "weight": 0.13, "full_marks": 150, "category": "main"},
    {"id": "x4", "name": "Física", "weight": 0.1, "full_marks": 100, "category": "sub"},
    {"id": "x5", "name": "Química", "weight": 0.1, "full_marks": 100, "category": "sub"},
    {"id": "x6", "name": "Biología", "weight": 0.1, "full_marks": 100, "category": "sub"},
    {"id": "x7", "name": "Historia", "weight": 0.1, "full_marks": 100, "category": "sub"},
    {"id": "x8", "name": "Cívica", "weight": 0.1, "full_marks": 100, "category": "sub"},
    {"id": "x9", "name": "Geografía", "weight": 0.1, "full_marks": 100, "category": "sub"},
]

# Nombres heredados de la versión web
ALGORITHM_ALIASES: Dict[str, str] = {
    "box-muller": ALGO_NORMAL,
    "knn": ALGO_NEAREST,
}


@dataclass
class EvalConfig:
    # Estructura de la matriz
    time_slots: List[Dict[str, Any]] = field(default_factory=lambda: [dict(t) for t in DEFAULT_TIME_SLOTS])
    subjects: List[Dict[str, Any]] = field(default_factory=lambda: [dict(s) for s in DEFAULT_SUBJECTS])

    # Imputación
    algorithm: str = ALGO_NORMAL
    seed: int = 42
    jitter_amplitude: float = 5.0   # ruido uniforme en (-2.5, 2.5)

    # Datos simulados
    cohort_size: int = 15
    missing_rate: float = 0.2

    # Presentación del log
    log_tail: int = 8

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EvalConfig":
        merged = asdict(cls())
        for k, v in data.items():
            if k in merged:
                merged[k] = v
        return cls(**merged)

    def __post_init__(self):
        self.algorithm = normalize_algorithm(self.algorithm)

    def time_slot_objects(self) -> List[TimeSlot]:
        return [TimeSlot(id=str(t["id"]), label=str(t.get("label", t["id"])), weight=float(t["weight"]))
                for t in self.time_slots]

    def subject_objects(self) -> List[Subject]:
        return [
            Subject(
                id=str(s["id"]),
                name=str(s.get("name", s["id"])),
                weight=float(s["weight"]),
                full_marks=float(s.get("full_marks", s.get("full", 100))),
                category=str(s.get("category", s.get("type", "main"))),
            )
            for s in self.subjects
        ]

    def with_time_weights(self, weights: Mapping[str, float]) -> "EvalConfig":
        """Copia con pesos temporales actualizados (ids no listados se conservan)."""
        slots = [dict(t, weight=float(weights.get(t["id"], t["weight"]))) for t in self.time_slots]
        return replace(self, time_slots=slots)

    def with_subject_weights(self, weights: Mapping[str, float]) -> "EvalConfig":
        subs = [dict(s, weight=float(weights.get(s["id"], s["weight"]))) for s in self.subjects]
        return replace(self, subjects=subs)


def normalize_algorithm(name: str) -> str:
    key = str(name).strip().lower()
    key = ALGORITHM_ALIASES.get(key, key)
    if key not in ALGORITHMS:
        raise ValueError(f"Algoritmo desconocido: {name!r} (opciones: {', '.join(ALGORITHMS)})")
    return key


def _load_yaml(path: Path) -> Any:
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def load_config(path: str = "config.yaml") -> EvalConfig:
    cfg_path = Path(path)
    data = _load_yaml(cfg_path)
    if not isinstance(data, dict):
        raise ValueError("config.yaml debe contener un objeto mapeo")
    return EvalConfig.from_dict(data)
