from __future__ import annotations

import csv
import sys
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Optional, Set, Tuple

from errors import (
    ArquivoError,
    ColumnCountError,
    DuplicateColumnNameError,
    EmptyColumnNameError,
    MissingEssentialColumnError,
)

# large CSV exports from ReceitaNet-BX carry long free-text fields
csv.field_size_limit(2**31 - 1)

BOM = "\ufeff"


def validate_header(
    columns: List[str],
    essenciais: Iterable[str],
    arquivo: Path,
    tipo: str,
    *,
    verbose: bool = False,
) -> None:
    if any(not name.strip() for name in columns):
        raise EmptyColumnNameError(arquivo)

    vistas: Set[str] = set()
    for name in columns:
        if name in vistas:
            raise DuplicateColumnNameError(arquivo, name)
        vistas.add(name)

    for essencial in essenciais:
        if essencial not in vistas:
            raise MissingEssentialColumnError(arquivo, essencial, tipo)

    if verbose:
        lines = [f"\nArquivo validado: <{arquivo}>", f"Tipo: {tipo}"]
        lines.extend(f"  coluna [{idx:02}]: '{name}'" for idx, name in enumerate(columns, 1))
        sys.stdout.write("\n".join(lines) + "\n\n")


def find_column(columns: List[str], name: str, arquivo: Path, tipo: str) -> int:
    try:
        return columns.index(name)
    except ValueError:
        raise MissingEssentialColumnError(arquivo, name, tipo) from None


class DelimitedReader:
    """Streaming reader for header-first delimited files.

    Every field (header included) is stripped. Rows whose field count differs
    from the header raise :class:`ColumnCountError`; the header is row 1 and
    blank lines are not counted.
    """

    def __init__(self, path: Path, delimiter: str, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.delimiter = delimiter
        self.encoding = encoding
        self.header: List[str] = []
        self._handle: Optional[IO[str]] = None
        self._reader: Iterator[List[str]] = iter(())

    def __enter__(self) -> "DelimitedReader":
        try:
            self._handle = self.path.open("r", encoding=self.encoding, newline="")
        except (OSError, LookupError) as exc:
            raise ArquivoError(self.path, exc) from exc
        self._reader = csv.reader(self._handle, delimiter=self.delimiter)
        first = self._next_fields()
        self.header = [] if first is None else [field.strip() for field in first]
        if self.header:
            # drop a UTF-8 byte-order mark
            self.header[0] = self.header[0].lstrip(BOM).strip()
        return self

    def __exit__(self, *exc_info) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _next_fields(self) -> Optional[List[str]]:
        try:
            while True:
                fields = next(self._reader)
                if fields:
                    return fields
        except StopIteration:
            return None
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise ArquivoError(self.path, exc) from exc

    def rows(self) -> Iterator[Tuple[int, List[str]]]:
        expected = len(self.header)
        linha = 1
        while True:
            fields = self._next_fields()
            if fields is None:
                return
            linha += 1
            if len(fields) != expected:
                raise ColumnCountError(self.path, linha, expected, len(fields))
            yield linha, [field.strip() for field in fields]
