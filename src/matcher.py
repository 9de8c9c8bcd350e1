from __future__ import annotations

import csv
import hashlib
import json
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import AbstractSet, Dict, Iterable, List, Optional, Set

from chaves import clean_key, collapse_multispace, fmt_milhares
from config import TIPO_DOC, ConferenciaConfig
from errors import ArquivoError, ConferenciaError
from schema import DelimitedReader, find_column, validate_header

# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class FileMatch:
    path: Path
    found: Set[str] = field(default_factory=set)
    count: int = 0
    staging: Optional[Path] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_record(self) -> Dict[str, object]:
        return {
            "input": str(self.path),
            "status": "ok" if self.ok else "failed",
            "rows": self.count,
            "matched_keys": len(self.found),
            "staging": str(self.staging) if self.staging else None,
            "error": self.error,
        }


@dataclass
class MatchSummary:
    found: Set[str]
    total: int
    files: List[FileMatch]

    @property
    def failures(self) -> Dict[str, str]:
        return {str(item.path): item.error for item in self.files if item.error is not None}

    def staging_paths(self) -> List[Path]:
        return [item.staging for item in self.files if item.ok and item.staging is not None]


class ScanCounter:
    """Running total of scanned records shared by the matcher workers."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def add(self, amount: int) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def order_documents(paths: Iterable[Path | str]) -> List[Path]:
    unique = {str(path): Path(path) for path in paths}
    return [unique[name] for name in sorted(unique)]


def staging_path_for(target: Path, source: Path) -> Path:
    digest = hashlib.sha256(str(source).encode("utf-8")).hexdigest()
    return target.with_name(f"{target.name}.tmp.{digest}")


def write_match_log(path: Path, records: List[Dict[str, object]]) -> None:
    ensure_dir(path.parent)
    with path.open("a", encoding="utf-8") as handle:
        for row in records:
            handle.write(json.dumps(row, ensure_ascii=False) + "\n")


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def process_document_file(
    path: Path,
    efd_keys: AbstractSet[str],
    config: ConferenciaConfig,
    staging: Path,
    *,
    write_header: bool = False,
) -> FileMatch:
    found: Set[str] = set()
    count = 0
    with DelimitedReader(path, config.delimitador_doc, config.encoding) as reader:
        validate_header(reader.header, config.essenciais(TIPO_DOC), path, TIPO_DOC, verbose=config.verbose)
        idx_chave = find_column(reader.header, config.coluna_chave_doc(), path, TIPO_DOC)

        ensure_dir(staging.parent)
        try:
            out = staging.open("w", encoding=config.encoding, newline="")
        except (OSError, LookupError) as exc:
            raise ArquivoError(staging, exc) from exc
        with out:
            writer = csv.writer(out, delimiter=config.delimitador_doc, lineterminator="\n")
            if write_header:
                writer.writerow(reader.header)
            for _, fields in reader.rows():
                count += 1
                chave = clean_key(fields[idx_chave])
                if chave is None or chave not in efd_keys:
                    continue
                found.add(chave)
                writer.writerow([collapse_multispace(value) for value in fields])

    return FileMatch(path=path, found=found, count=count, staging=staging)


def match_documents(
    paths: Iterable[Path | str],
    efd_keys: AbstractSet[str],
    config: ConferenciaConfig,
    target: Path,
    *,
    workers: Optional[int] = None,
    log_path: Optional[Path] = None,
) -> MatchSummary:
    """Search the EFD keys in every fiscal-document CSV, one file per worker.

    Files are ordered lexicographically once; only the first one writes the
    header to its staging output. A failing file is reported and contributes
    nothing, the others carry on.
    """
    ordered = order_documents(paths)
    first = ordered[0] if ordered else None
    counter = ScanCounter()

    def _run(path: Path) -> FileMatch:
        staging = staging_path_for(target, path)
        try:
            result = process_document_file(path, efd_keys, config, staging, write_header=path == first)
        except (ConferenciaError, OSError) as exc:
            staging.unlink(missing_ok=True)
            sys.stderr.write(f"[matcher] [ERRO] Arquivo <{path}>: {exc}\n")
            result = FileMatch(path=path, error=str(exc))
        counter.add(result.count)
        return result

    with ThreadPoolExecutor(max_workers=workers or config.workers) as pool:
        results = list(pool.map(_run, ordered))

    found: Set[str] = set()
    for item in results:
        found.update(item.found)

    if log_path is not None:
        write_match_log(log_path, [item.as_record() for item in results])

    sys.stdout.write(
        f"[matcher] Total de itens analisados nos documentos fiscais: {fmt_milhares(counter.value)}\n"
    )
    return MatchSummary(found=found, total=counter.value, files=results)
