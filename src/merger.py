from __future__ import annotations

import hashlib
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Set

from chaves import collapse_multispace
from errors import ArquivoError


@dataclass
class MergeStats:
    files: int = 0
    lines_read: int = 0
    lines_written: int = 0
    duplicates: int = 0

    def as_record(self) -> dict:
        return {
            "files": self.files,
            "lines_read": self.lines_read,
            "lines_written": self.lines_written,
            "duplicates": self.duplicates,
        }


def line_digest(line: str) -> str:
    return hashlib.sha256(line.encode("utf-8")).hexdigest()


def merge_staging(staging_paths: Iterable[Path], target: Path, *, encoding: str = "utf-8") -> MergeStats:
    """Concatenate staging outputs into *target* without repeated lines.

    Lines are compared after collapsing runs of whitespace, so the first
    occurrence wins and the order of *staging_paths* decides which one that
    is. Each staging file is removed once merged.
    """
    stats = MergeStats()
    seen: Set[str] = set()
    target.parent.mkdir(parents=True, exist_ok=True)
    sys.stdout.write(f"[merger] Mesclar arquivos temporários em <{target}>...\n")

    try:
        final = target.open("w", encoding=encoding, newline="")
    except (OSError, LookupError) as exc:
        raise ArquivoError(target, exc) from exc

    with final:
        for staging in staging_paths:
            if not staging.exists():
                sys.stderr.write(f"[merger] Arquivo temporário ausente, ignorado: <{staging}>\n")
                continue
            stats.files += 1
            try:
                with staging.open("r", encoding=encoding, newline="") as handle:
                    for line in handle:
                        stats.lines_read += 1
                        normalized = collapse_multispace(line.rstrip("\r\n"))
                        digest = line_digest(normalized)
                        if digest in seen:
                            stats.duplicates += 1
                            continue
                        seen.add(digest)
                        final.write(normalized + "\n")
                        stats.lines_written += 1
            except (OSError, LookupError, UnicodeDecodeError) as exc:
                raise ArquivoError(staging, exc) from exc
            staging.unlink()

    return stats
