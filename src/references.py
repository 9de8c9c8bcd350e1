from __future__ import annotations

import os
import sys
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Deque, Dict, Iterator, List, Optional, Set

from chaves import MODELO_CTE, MODELO_NFE, count_members, extract_chaves, fmt_milhares, is_modelo
from errors import ArquivoError

KeyMap = Dict[str, Set[str]]

CHUNK_LINES = 10_000

# ---------------------------------------------------------------------------
# Line folding
# ---------------------------------------------------------------------------


def fold_cte_nfes(lines: List[str]) -> KeyMap:
    """First token of a line is the CT-e, the remaining NF-e tokens are its cargo."""
    acc: KeyMap = {}
    for line in lines:
        chaves = extract_chaves(line)
        if not chaves or not is_modelo(chaves[0], MODELO_CTE):
            continue
        nfes = {chave for chave in chaves[1:] if is_modelo(chave, MODELO_NFE)}
        if nfes:
            acc.setdefault(chaves[0], set()).update(nfes)
    return acc


def fold_cte_complementar(lines: List[str]) -> KeyMap:
    acc: KeyMap = {}
    for line in lines:
        chaves = extract_chaves(line)
        if len(chaves) < 2:
            continue
        cte, comp = chaves[0], chaves[1]
        if is_modelo(cte, MODELO_CTE) and is_modelo(comp, MODELO_CTE) and cte != comp:
            acc.setdefault(cte, set()).add(comp)
            acc.setdefault(comp, set()).add(cte)
    return acc


def merge_key_maps(target: KeyMap, other: KeyMap) -> KeyMap:
    for key, values in other.items():
        target.setdefault(key, set()).update(values)
    return target


def invert_key_map(mapping: KeyMap) -> KeyMap:
    inverted: KeyMap = {}
    for key, values in mapping.items():
        for value in values:
            inverted.setdefault(value, set()).add(key)
    return inverted


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


def iter_line_chunks(path: Path, encoding: str = "utf-8", size: int = CHUNK_LINES) -> Iterator[List[str]]:
    try:
        handle = path.open("r", encoding=encoding, newline="")
    except (OSError, LookupError) as exc:
        raise ArquivoError(path, exc) from exc
    with handle:
        chunk: List[str] = []
        try:
            for line in handle:
                chunk.append(line)
                if len(chunk) >= size:
                    yield chunk
                    chunk = []
        except (OSError, UnicodeDecodeError) as exc:
            raise ArquivoError(path, exc) from exc
        if chunk:
            yield chunk


def fold_file(
    path: Path,
    fold: Callable[[List[str]], KeyMap],
    *,
    workers: Optional[int] = None,
    encoding: str = "utf-8",
    chunk_lines: int = CHUNK_LINES,
) -> KeyMap:
    """Fold *path* in chunks of lines on a thread pool and union the partial maps.

    At most ``2 * workers`` chunks are in flight so large files are never
    fully materialised.
    """
    result: KeyMap = {}
    max_workers = workers or os.cpu_count() or 1
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        limit = 2 * max_workers
        pending: Deque[Future] = deque()
        for chunk in iter_line_chunks(path, encoding=encoding, size=chunk_lines):
            pending.append(pool.submit(fold, chunk))
            if len(pending) >= limit:
                merge_key_maps(result, pending.popleft().result())
        while pending:
            merge_key_maps(result, pending.popleft().result())
    return result


def read_cte_nfes(path: Path, *, workers: Optional[int] = None, encoding: str = "utf-8") -> KeyMap:
    mapping = fold_file(Path(path), fold_cte_nfes, workers=workers, encoding=encoding)
    sys.stdout.write(
        f"[references] Encontrado {fmt_milhares(len(mapping)):>6} CTes contendo no total "
        f"{fmt_milhares(count_members(mapping)):>6} NFes no arquivo <{path}>.\n"
    )
    return mapping


def read_cte_complementar(path: Path, *, workers: Optional[int] = None, encoding: str = "utf-8") -> KeyMap:
    mapping = fold_file(Path(path), fold_cte_complementar, workers=workers, encoding=encoding)
    sys.stdout.write(
        f"[references] Encontrado {fmt_milhares(len(mapping)):>6} CTes contendo no total "
        f"{fmt_milhares(count_members(mapping)):>6} CTes Complementares no arquivo <{path}>.\n"
    )
    return mapping
