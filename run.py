import argparse
import logging
import random
import time
from pathlib import Path
from typing import Sequence

from stochastic_eval.config import load_config, normalize_algorithm
from stochastic_eval.correlation import correlation_matrix
from stochastic_eval.data_loader import export_outputs, load_cohort_csv, template_csv
from stochastic_eval.imputation import ImputationEngine, tail_lines
from stochastic_eval.mock_data import generate_mock_cohort
from stochastic_eval.model import Cohort, Subject, TimeSlot
from stochastic_eval.scoring import score


def print_ranking(ranked: Cohort, limit: int = 10):
    print("\n" + "=" * 60)
    print(f"{'#':>3}  {'ID':<8} {'Nombre':<22} {'Puntaje':>10}  Imputadas")
    print("=" * 60)
    for i, st in enumerate(ranked[:limit], start=1):
        print(f"{i:>3}  {st.id:<8} {st.name:<22} {st.final_score:>10.2f}  {len(st.imputation_details)}")
    print("=" * 60 + "\n")


def print_correlations(cohort: Cohort, subjects: Sequence[Subject], slot: TimeSlot):
    print(f"Correlaciones en {slot.label} ({slot.id}):")
    print(correlation_matrix(cohort, subjects, slot.id).round(2).to_string())


def main():
    parser = argparse.ArgumentParser(description="Imputación de notas y ranking ponderado")
    parser.add_argument("--config", default="config.yaml", help="Ruta al archivo de configuración")
    parser.add_argument("--data", default=None, help="CSV ancho (ID, t1_x1, ...); si falta se simula una cohorte")
    parser.add_argument("--algorithm", default=None, help="normal | regression | nearest-neighbor")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--out_dir", default="outputs")
    parser.add_argument("--template", action="store_true", help="Solo escribe la plantilla CSV y termina")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    cfg = load_config(args.config)
    if args.algorithm:
        cfg.algorithm = normalize_algorithm(args.algorithm)
    if args.seed is not None:
        cfg.seed = args.seed
    rng = random.Random(cfg.seed)

    time_slots = cfg.time_slot_objects()
    subjects = cfg.subject_objects()
    out_dir = Path(args.out_dir)

    if args.template:
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / "data_template.csv").write_text(template_csv(time_slots, subjects) + "\n", encoding="utf-8")
        print(f"Plantilla guardada en {out_dir / 'data_template.csv'}")
        return

    print("Cargando datos...")
    if args.data:
        cohort = load_cohort_csv(args.data, time_slots, subjects)
    else:
        cohort = generate_mock_cohort(cfg.cohort_size, time_slots, subjects, rng, cfg.missing_rate)

    provisional = score(cohort, time_slots, subjects)
    n_missing = sum(len(st.matrix.absent_cells()) for st in cohort)
    print(f"Estudiantes: {len(cohort)} | Celdas ausentes: {n_missing} | Algoritmo: {cfg.algorithm}")
    print(f"Líder provisional: {provisional[0].name if provisional else '-'}")

    engine = ImputationEngine(cfg.algorithm, rng=rng, jitter_amplitude=cfg.jitter_amplitude)
    start = time.perf_counter()
    result = engine.run(cohort, time_slots, subjects)
    elapsed = time.perf_counter() - start

    ranked = score(result.cohort, time_slots, subjects)
    print(f"Celdas imputadas: {result.filled} | Tiempo: {elapsed:.3f}s")
    for line in tail_lines(result.log, cfg.log_tail):
        print("  " + line)
    print_ranking(ranked)
    if time_slots:
        print_correlations(cohort, subjects, time_slots[-1])

    export_outputs(ranked, result, time_slots, subjects, out_dir)
    print(f"Se guardaron resultados en {out_dir}/ranking.csv e {out_dir}/imputations.csv")


if __name__ == "__main__":
    main()
