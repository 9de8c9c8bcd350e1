from __future__ import annotations

import codecs
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from errors import ConfigurationError

# logical names that must be present in each column table
CHAVE_EFD = "chave_documento"
CHAVE_DOC = "chave44_digitos"

TIPO_EFD = "EFDContrib"
TIPO_DOC = "DocFiscais"


@dataclass(frozen=True)
class ConferenciaConfig:
    colunas_efd: Dict[str, str]
    colunas_doc: Dict[str, str]
    delimitador_efd: str = "|"
    delimitador_doc: str = ";"
    encoding: str = "utf-8"
    max_linhas_export: int = 900
    workers: Optional[int] = None
    verbose: bool = False

    @classmethod
    def load(cls, path: Path) -> "ConferenciaConfig":
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except OSError as exc:
            raise ConfigurationError(f"Não foi possível ler a configuração {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"YAML inválido em {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuração inválida em {path}: documento deve ser um mapeamento.")

        csv_opts = data.get("csv") or {}
        export_opts = data.get("export") or {}
        cfg = cls(
            colunas_efd=data.get("colunas_efd") or {},
            colunas_doc=data.get("colunas_doc") or {},
            delimitador_efd=csv_opts.get("delimitador_efd", "|"),
            delimitador_doc=csv_opts.get("delimitador_doc", ";"),
            encoding=csv_opts.get("encoding", "utf-8"),
            max_linhas_export=export_opts.get("max_linhas", 900),
            workers=data.get("workers"),
            verbose=bool(data.get("verbose", False)),
        )
        cfg.validate(source=path)
        return cfg

    def validate(self, *, source: Optional[Path | str] = None) -> None:
        problems: List[str] = []
        label = f" ({source})" if source else ""

        def _check_columns(obj: Any, name: str, required: str) -> None:
            if not isinstance(obj, dict):
                problems.append(f"{name} deve ser um objeto mapeável (dict).")
                return
            for key, value in obj.items():
                if not isinstance(value, str) or not value.strip():
                    problems.append(f"{name}.{key} deve ser um nome de coluna não vazio (recebido {value!r}).")
            if required not in obj:
                problems.append(f"{name} deve conter a coluna '{required}'.")

        def _check_delimiter(value: Any, name: str) -> None:
            if not isinstance(value, str) or len(value) != 1:
                problems.append(f"{name} deve ser um único caractere (recebido {value!r}).")

        def _check_encoding(value: Any, name: str) -> None:
            try:
                codecs.lookup(value)
            except (LookupError, TypeError):
                problems.append(f"{name} não é uma codificação conhecida (recebido {value!r}).")

        def _check_positive(value: Any, name: str, *, allow_none: bool = False) -> None:
            if value is None and allow_none:
                return
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                problems.append(f"{name} deve ser um inteiro positivo (recebido {value!r}).")

        _check_columns(self.colunas_efd, "colunas_efd", CHAVE_EFD)
        _check_columns(self.colunas_doc, "colunas_doc", CHAVE_DOC)
        _check_delimiter(self.delimitador_efd, "csv.delimitador_efd")
        _check_delimiter(self.delimitador_doc, "csv.delimitador_doc")
        _check_encoding(self.encoding, "csv.encoding")
        _check_positive(self.max_linhas_export, "export.max_linhas")
        _check_positive(self.workers, "workers", allow_none=True)

        if problems:
            raise ConfigurationError(f"Configuração inválida{label}: " + "; ".join(problems))

    def coluna_chave_efd(self) -> str:
        return self.colunas_efd[CHAVE_EFD]

    def coluna_chave_doc(self) -> str:
        return self.colunas_doc[CHAVE_DOC]

    def essenciais(self, tipo: str) -> List[str]:
        if tipo == TIPO_EFD:
            return list(self.colunas_efd.values())
        if tipo == TIPO_DOC:
            return list(self.colunas_doc.values())
        raise ValueError(f"tipo de arquivo desconhecido: {tipo}")
