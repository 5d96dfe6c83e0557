# stochastic_eval/data_loader.py
import io
import logging
from pathlib import Path
from typing import Dict, List, Sequence, Tuple, Union

import pandas as pd

from .imputation import ImputationResult
from .model import Cohort, ScoreMatrix, StudentRecord, Subject, TimeSlot
from .scoring import ranking_frame

logger = logging.getLogger(__name__)

ID_COLUMN = "ID"
NAME_COLUMN = "Name"
TEMPLATE_ID = "o001"

CsvSource = Union[str, Path, io.StringIO]


def csv_header(time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> List[str]:
    """Cabecera de la tabla ancha: ID, <periodo>_<materia>, ... (periodo externo)."""
    headers = [ID_COLUMN]
    for t in time_slots:
        for s in subjects:
            headers.append(f"{t.id}_{s.id}")
    return headers


def template_csv(time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> str:
    headers = csv_header(time_slots, subjects)
    blank = ",".join([TEMPLATE_ID] + [""] * (len(headers) - 1))
    return ",".join(headers) + "\n" + blank


def _column_keys(time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> Dict[str, Tuple[str, str]]:
    return {f"{t.id}_{s.id}": (t.id, s.id) for t in time_slots for s in subjects}


def _parse_cell(raw: str, column: str, student_id: str, full_marks: float):
    text = raw.strip()
    if text == "":
        return None
    value = pd.to_numeric(text, errors="coerce")
    if pd.isna(value):
        raise ValueError(f"Valor no numérico {raw!r} en {column} para {student_id}")
    value = float(value)
    if value < 0 or value > full_marks:
        raise ValueError(f"Valor {value} fuera de [0, {full_marks}] en {column} para {student_id}")
    return value


def load_cohort_csv(source: CsvSource, time_slots: Sequence[TimeSlot], subjects: Sequence[Subject]) -> Cohort:
    """
    Lee una tabla ancha (ID, t1_x1, ...) y la valida contra la configuración.

    Las celdas vacías quedan ausentes. Una columna que no corresponde a un
    par (periodo, materia) declarado, un valor no numérico o fuera de rango,
    o un ID repetido lanzan ValueError. Las columnas declaradas que faltan en
    el archivo se cargan como ausentes.
    """
    df = pd.read_csv(source, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip() for c in df.columns]
    if ID_COLUMN not in df.columns:
        raise ValueError(f"Falta la columna obligatoria {ID_COLUMN!r}")

    keys = _column_keys(time_slots, subjects)
    unknown = [c for c in df.columns if c not in keys and c not in (ID_COLUMN, NAME_COLUMN)]
    if unknown:
        raise ValueError(f"Columnas no declaradas en la configuración: {', '.join(unknown)}")
    missing = [c for c in keys if c not in df.columns]
    if missing:
        logger.warning("Columnas declaradas ausentes en el archivo (se cargan vacías): %s", ", ".join(missing))

    full_by_subject = {s.id: s.full_marks for s in subjects}
    time_ids = [t.id for t in time_slots]
    subject_ids = [s.id for s in subjects]

    cohort: Cohort = []
    seen = set()
    for _, r in df.iterrows():
        sid = str(r[ID_COLUMN]).strip()
        if not sid:
            raise ValueError("Fila sin ID")
        if sid in seen:
            raise ValueError(f"ID repetido: {sid}")
        seen.add(sid)

        m = ScoreMatrix(time_ids, subject_ids)
        for col, (t_id, s_id) in keys.items():
            if col in df.columns:
                m.set(t_id, s_id, _parse_cell(r[col], col, sid, full_by_subject[s_id]))
        name = str(r[NAME_COLUMN]).strip() if NAME_COLUMN in df.columns else ""
        cohort.append(StudentRecord(id=sid, name=name or f"Estudiante {sid.upper()}", matrix=m))
    return cohort


def imputation_frame(cohort: Cohort) -> pd.DataFrame:
    rows = []
    for st in cohort:
        for (t_id, s_id), d in st.imputation_details.items():
            rows.append(
                {
                    "ID": st.id,
                    "Periodo": t_id,
                    "Materia": s_id,
                    "Valor": d.value,
                    "Tipo": d.gap_type,
                    "Metodo": d.method,
                }
            )
    return pd.DataFrame(rows, columns=["ID", "Periodo", "Materia", "Valor", "Tipo", "Metodo"])


def export_outputs(
    ranked: Cohort,
    result: ImputationResult,
    time_slots: Sequence[TimeSlot],
    subjects: Sequence[Subject],
    out_dir: Path,
) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    ranking_frame(ranked, time_slots, subjects).to_csv(out_dir / "ranking.csv", index=False)
    imputation_frame(ranked).to_csv(out_dir / "imputations.csv", index=False)
    (out_dir / "imputation_log.txt").write_text("\n".join(result.log) + "\n", encoding="utf-8")
