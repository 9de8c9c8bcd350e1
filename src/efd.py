from __future__ import annotations

from pathlib import Path
from typing import Set

from chaves import clean_key
from config import TIPO_EFD, ConferenciaConfig
from graph import KeyContext
from schema import DelimitedReader, find_column, validate_header


def extract_efd_keys(path: Path, config: ConferenciaConfig, context: KeyContext) -> Set[str]:
    """Collect the 44-digit keys of the EFD Contribuições file.

    Each valid key also brings its related keys: NF-es carried by a CT-e,
    CT-es carrying an NF-e and complementary CT-es. Malformed keys are
    ignored; schema problems abort the whole run.
    """
    path = Path(path)
    keys: Set[str] = set()
    with DelimitedReader(path, config.delimitador_efd, config.encoding) as reader:
        validate_header(reader.header, config.essenciais(TIPO_EFD), path, TIPO_EFD, verbose=config.verbose)
        idx_chave = find_column(reader.header, config.coluna_chave_efd(), path, TIPO_EFD)
        for _, fields in reader.rows():
            chave = clean_key(fields[idx_chave])
            if chave is None:
                continue
            keys.update(context.related(chave))
            keys.add(chave)
    return keys
