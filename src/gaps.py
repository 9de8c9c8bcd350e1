from __future__ import annotations

import sys
from dataclasses import dataclass, field
from itertools import groupby
from pathlib import Path
from typing import AbstractSet, Dict, List, Set

import pandas as pd

from chaves import MODELO_SLICE, describe_model, modelo_da_chave
from errors import ArquivoError, ConfigurationError

MAX_LINHAS = 900

SUMMARY_COLUMNS = ["modelo", "descricao", "chaves_efd", "encontradas", "faltantes"]


def segregate_by_model(keys: AbstractSet[str]) -> Dict[str, Set[str]]:
    grouped: Dict[str, Set[str]] = {}
    for key in keys:
        modelo = modelo_da_chave(key)
        if modelo is None:
            continue
        grouped.setdefault(modelo, set()).add(key)
    return grouped


@dataclass
class GapReport:
    efd_by_model: Dict[str, Set[str]] = field(default_factory=dict)
    missing_by_model: Dict[str, Set[str]] = field(default_factory=dict)
    missing: Set[str] = field(default_factory=set)


def find_missing_keys(efd_keys: AbstractSet[str], doc_keys: AbstractSet[str]) -> GapReport:
    report = GapReport(efd_by_model=segregate_by_model(efd_keys))
    for modelo, chaves in sorted(report.efd_by_model.items()):
        faltantes = chaves.difference(doc_keys)
        report.missing_by_model[modelo] = faltantes
        report.missing.update(faltantes)
    return report


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def safe_model_name(codigo: str) -> str:
    return describe_model(codigo).replace("/", "-").replace(":", "-")


def export_missing_keys(keys: AbstractSet[str], target_base: Path, max_lines: int = MAX_LINHAS) -> List[Path]:
    """Write the missing keys into ``{base}-{modelo}-{offset:06}.txt`` files.

    Keys are sorted by model code and then by key; each model is split in
    files of at most *max_lines* lines and *offset* is the index of the first
    key of the chunk inside its model (0, 900, 1800, ...).
    """
    if max_lines < 1:
        raise ConfigurationError(f"max_lines deve ser um inteiro positivo (recebido {max_lines!r}).")
    if not keys:
        return []

    ordered = sorted((key for key in keys if len(key) >= MODELO_SLICE.stop), key=lambda k: (k[MODELO_SLICE], k))
    written: List[Path] = []
    target_base.parent.mkdir(parents=True, exist_ok=True)

    for codigo, group in groupby(ordered, key=lambda k: k[MODELO_SLICE]):
        chaves = list(group)
        nome = safe_model_name(codigo)
        for offset in range(0, len(chaves), max_lines):
            file_path = target_base.with_name(f"{target_base.name}-{nome}-{offset:06}.txt")
            sys.stdout.write(f"[gaps] ---> Novo arquivo de chaves faltantes: <{file_path}>\n")
            try:
                with file_path.open("w", encoding="utf-8", newline="") as handle:
                    handle.writelines(f"{chave}\n" for chave in chaves[offset : offset + max_lines])
            except OSError as exc:
                raise ArquivoError(file_path, exc) from exc
            written.append(file_path)
    return written


# ---------------------------------------------------------------------------
# Summary table
# ---------------------------------------------------------------------------


def build_model_summary(efd_keys: AbstractSet[str], doc_keys: AbstractSet[str]) -> pd.DataFrame:
    report = find_missing_keys(efd_keys, doc_keys)
    rows = []
    for modelo in sorted(report.efd_by_model):
        total = len(report.efd_by_model[modelo])
        faltantes = len(report.missing_by_model.get(modelo, ()))
        rows.append(
            {
                "modelo": modelo,
                "descricao": describe_model(modelo),
                "chaves_efd": total,
                "encontradas": total - faltantes,
                "faltantes": faltantes,
            }
        )
    if not rows:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def write_model_summary(df: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8")
