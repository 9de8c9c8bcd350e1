from __future__ import annotations

import argparse
import json
import sys
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

# Ensure src/ is importable
ROOT_DIR = Path(__file__).resolve().parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from chaves import fmt_milhares
from config import ConferenciaConfig
from efd import extract_efd_keys
from errors import ConferenciaError, ConfigurationError
from gaps import build_model_summary, export_missing_keys, find_missing_keys, write_model_summary
from graph import KeyContext, build_key_context
from matcher import MatchSummary, match_documents
from merger import MergeStats, merge_staging

T = TypeVar("T")

DEFAULT_CTE_NFES = "cte_nfes.txt"
DEFAULT_COMPLEMENTAR = "transporte_subcontratado-chaves_complementares_dos_CTes.txt"
DEFAULT_TARGET = "Info da Receita sobre o Contribuinte.csv"
DEFAULT_MISSING_BASE = "chaves_faltantes"
SUMMARY_NAME = "resumo_modelos.csv"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Confere as chaves da EFD Contribuições nos Documentos Fiscais (references → efd → matcher → merger → gaps)."
    )
    parser.add_argument("--efd", type=Path, required=True, help="Arquivo da EFD Contribuições (delimitado por '|').")
    parser.add_argument("--docs", type=Path, nargs="+", required=True, help="Arquivos CSV de Documentos Fiscais (delimitados por ';').")
    parser.add_argument(
        "--cte-nfes",
        type=Path,
        default=None,
        help=f"Arquivo com as NFes transportadas por CTe (defaults to ./{DEFAULT_CTE_NFES} when present).",
    )
    parser.add_argument(
        "--complementar",
        type=Path,
        default=None,
        help=f"Arquivo com as chaves complementares dos CTes (defaults to ./{DEFAULT_COMPLEMENTAR} when present).",
    )
    parser.add_argument("--cfg-dir", type=Path, default=Path("cfg"), help="Directory containing configuration files.")
    parser.add_argument(
        "--config", type=Path, default=None, help="Override path to conferencia.yml (defaults to <cfg-dir>/conferencia.yml)."
    )
    parser.add_argument("--out-dir", type=Path, default=Path("out"), help="Directory to write pipeline outputs.")
    parser.add_argument("--target", default=DEFAULT_TARGET, help="Nome do arquivo final com as linhas encontradas.")
    parser.add_argument(
        "--missing-base", default=DEFAULT_MISSING_BASE, help="Prefixo dos arquivos de chaves não encontradas."
    )
    parser.add_argument("--workers", type=int, default=None, help="Número de threads (default: configuração ou nº de CPUs).")
    parser.add_argument("--max-lines", type=int, default=None, help="Máximo de chaves por arquivo de chaves faltantes.")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Encerra com erro se algum arquivo de Documentos Fiscais falhar (os demais ainda são processados).",
    )
    parser.add_argument("--verbose", action="store_true", help="Lista as colunas de cada arquivo validado.")
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory to store step logs (defaults to <out-dir>).")
    return parser


def require_files(description: str, files: Sequence[Path]) -> None:
    missing = [str(path) for path in files if not path.exists()]
    if missing:
        sys.stderr.write(f"[pipeline] Missing {description}: {json.dumps(missing, ensure_ascii=False)}\n")
        sys.exit(2)


def resolve_reference(override: Optional[Path], default_name: str) -> Optional[Path]:
    if override is not None:
        require_files("reference file", [override])
        return override.resolve()
    candidate = Path(default_name)
    if candidate.exists():
        return candidate.resolve()
    sys.stdout.write(f"[pipeline] Arquivo de referência <{default_name}> não encontrado; relação ignorada.\n")
    return None


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def append_jsonl(path: Path, record: Dict[str, Any]) -> None:
    ensure_dir(path.parent)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, ensure_ascii=False) + "\n")


@dataclass
class StepMetrics:
    rows_processed: Optional[int] = None
    inconsistencies: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def as_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        if self.rows_processed is not None:
            record["rows_processed"] = self.rows_processed
        record["inconsistencies"] = self.inconsistencies
        if self.details:
            record["details"] = self.details
        return record


# ---------------------------------------------------------------------------
# Metrics collectors
# ---------------------------------------------------------------------------


def references_metrics(context: KeyContext) -> StepMetrics:
    return StepMetrics(details=context.stats())


def efd_metrics(keys: frozenset) -> StepMetrics:
    metrics = StepMetrics(rows_processed=len(keys), details={"chaves_efd": len(keys)})
    if not keys:
        metrics.inconsistencies.append("Nenhuma chave de 44 dígitos encontrada na EFD.")
    return metrics


def matcher_metrics(summary: MatchSummary) -> StepMetrics:
    metrics = StepMetrics(
        rows_processed=summary.total,
        details={"files": len(summary.files), "chaves_encontradas": len(summary.found)},
    )
    for path, error in summary.failures.items():
        metrics.inconsistencies.append(f"{Path(path).name}: {error.splitlines()[0]}")
    return metrics


def merger_metrics(stats: MergeStats) -> StepMetrics:
    return StepMetrics(rows_processed=stats.lines_written, details=stats.as_record())


def gaps_metrics(result: Dict[str, Any]) -> StepMetrics:
    metrics = StepMetrics(
        rows_processed=result["missing"],
        details={"files": [str(path) for path in result["files"]], "summary": str(result["summary"])},
    )
    if result["missing"]:
        metrics.inconsistencies.append(f"Chaves não encontradas: {result['missing']}")
    return metrics


# ---------------------------------------------------------------------------
# Step runner
# ---------------------------------------------------------------------------


def call_step(
    name: str,
    pipeline_log: Path,
    func: Callable[[], T],
    metrics_collector: Optional[Callable[[T], StepMetrics]] = None,
) -> T:
    sys.stdout.write(f"[pipeline] Running {name}...\n")
    start_time = datetime.now(timezone.utc)
    start_perf = time.perf_counter()
    append_jsonl(pipeline_log, {"step": name, "event": "start", "timestamp": start_time.isoformat()})

    try:
        result = func()
    except ConferenciaError as exc:
        append_jsonl(
            pipeline_log,
            {
                "step": name,
                "event": "end",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "duration_seconds": time.perf_counter() - start_perf,
                "status": "failed",
                "error": str(exc),
            },
        )
        raise

    duration = time.perf_counter() - start_perf
    metrics = metrics_collector(result) if metrics_collector is not None else StepMetrics()
    append_jsonl(
        pipeline_log,
        {
            "step": name,
            "event": "end",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_seconds": duration,
            "status": "ok",
            **metrics.as_record(),
        },
    )

    rows_text = "?" if metrics.rows_processed is None else fmt_milhares(metrics.rows_processed)
    sys.stdout.write(
        f"[pipeline] Step '{name}' completed in {duration:.2f}s | linhas={rows_text} | inconsistências={len(metrics.inconsistencies)}.\n"
    )
    for item in metrics.inconsistencies:
        sys.stdout.write(f"[pipeline]   - {item}\n")
    return result


def load_config(args: argparse.Namespace) -> ConferenciaConfig:
    config_path = (args.config or args.cfg_dir / "conferencia.yml").resolve()
    require_files("configuration files", [config_path])
    config = ConferenciaConfig.load(config_path)
    config = replace(
        config,
        workers=args.workers if args.workers is not None else config.workers,
        max_linhas_export=args.max_lines if args.max_lines is not None else config.max_linhas_export,
        verbose=args.verbose or config.verbose,
    )
    config.validate(source="linha de comando")
    return config


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    efd_path = args.efd.resolve()
    doc_paths = [path.resolve() for path in args.docs]
    require_files("EFD Contribuições", [efd_path])
    require_files("Documentos Fiscais", doc_paths)

    try:
        config = load_config(args)
    except ConfigurationError as exc:
        sys.stderr.write(f"[pipeline] {exc}\n")
        return 2

    cte_nfes_path = resolve_reference(args.cte_nfes, DEFAULT_CTE_NFES)
    complementar_path = resolve_reference(args.complementar, DEFAULT_COMPLEMENTAR)

    out_dir = args.out_dir.resolve()
    log_dir = (args.log_dir or out_dir).resolve()
    ensure_dir(out_dir)
    ensure_dir(log_dir)

    target = out_dir / args.target
    missing_base = out_dir / args.missing_base
    summary_path = out_dir / SUMMARY_NAME

    pipeline_log_path = log_dir / "pipeline.jsonl"
    matcher_log_path = log_dir / "matcher.jsonl"
    for stale in (pipeline_log_path, matcher_log_path):
        if stale.exists():
            stale.unlink()

    started = time.perf_counter()
    try:
        context = call_step(
            "references",
            pipeline_log_path,
            lambda: build_key_context(
                cte_nfes_path, complementar_path, workers=config.workers, encoding=config.encoding
            ),
            references_metrics,
        )
        efd_keys = call_step(
            "efd",
            pipeline_log_path,
            lambda: frozenset(extract_efd_keys(efd_path, config, context)),
            efd_metrics,
        )
        summary = call_step(
            "matcher",
            pipeline_log_path,
            lambda: match_documents(doc_paths, efd_keys, config, target, log_path=matcher_log_path),
            matcher_metrics,
        )
        call_step(
            "merger",
            pipeline_log_path,
            lambda: merge_staging(summary.staging_paths(), target, encoding=config.encoding),
            merger_metrics,
        )

        def _gaps() -> Dict[str, Any]:
            report = find_missing_keys(efd_keys, summary.found)
            files = export_missing_keys(report.missing, missing_base, config.max_linhas_export)
            write_model_summary(build_model_summary(efd_keys, summary.found), summary_path)
            return {"missing": len(report.missing), "files": files, "summary": summary_path}

        call_step("gaps", pipeline_log_path, _gaps, gaps_metrics)
    except ConferenciaError as exc:
        append_jsonl(
            pipeline_log_path,
            {"event": "pipeline", "status": "failed", "timestamp": datetime.now(timezone.utc).isoformat()},
        )
        sys.stderr.write(f"\n[pipeline] ERRO CRÍTICO: {exc}\n")
        return 1

    elapsed = time.perf_counter() - started
    status = "ok"
    exit_code = 0
    if summary.failures and args.strict:
        status = "failed"
        exit_code = 1
        sys.stderr.write(f"[pipeline] {len(summary.failures)} arquivo(s) de Documentos Fiscais falharam (--strict).\n")

    append_jsonl(
        pipeline_log_path,
        {
            "event": "pipeline",
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_seconds": elapsed,
        },
    )
    if exit_code == 0:
        sys.stdout.write(f"[pipeline] Auditoria concluída com sucesso em {elapsed:.2f}s.\n")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
