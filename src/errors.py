from __future__ import annotations

from pathlib import Path
from typing import Optional


class ConferenciaError(Exception):
    """Base class for every fatal error raised by the conferência pipeline."""


class ConfigurationError(ConferenciaError):
    """Raised when configuration files or parameters are invalid."""


class ArquivoError(ConferenciaError):
    def __init__(self, arquivo: Path | str, detalhe: object) -> None:
        self.arquivo = Path(arquivo)
        self.detalhe = detalhe
        super().__init__(f"Falha de leitura/escrita no arquivo <{self.arquivo}>: {detalhe}")


# ---------------------------------------------------------------------------
# Schema errors
# ---------------------------------------------------------------------------


class SchemaError(ConferenciaError):
    def __init__(self, arquivo: Path | str, message: str) -> None:
        self.arquivo = Path(arquivo)
        super().__init__(message)


class EmptyColumnNameError(SchemaError):
    def __init__(self, arquivo: Path | str) -> None:
        super().__init__(arquivo, f"Arquivo <{arquivo}> contém colunas com nome em branco!")


class DuplicateColumnNameError(SchemaError):
    def __init__(self, arquivo: Path | str, coluna: str) -> None:
        self.coluna = coluna
        super().__init__(arquivo, f"Arquivo <{arquivo}> contém colunas repetidas: <{coluna}>")


class MissingEssentialColumnError(SchemaError):
    def __init__(self, arquivo: Path | str, coluna: str, tipo: Optional[str] = None) -> None:
        self.coluna = coluna
        self.tipo = tipo
        label = f" (Tipo: {tipo})" if tipo else ""
        super().__init__(arquivo, f"Coluna essencial ausente no arquivo <{arquivo}>: {coluna}{label}")


class ColumnCountError(SchemaError):
    def __init__(self, arquivo: Path | str, linha: int, esperado: int, encontrado: int) -> None:
        self.linha = linha
        self.esperado = esperado
        self.encontrado = encontrado
        super().__init__(
            arquivo,
            "Erro no número de colunas!\n"
            f"Arquivo: <{arquivo}>\n"
            f"Linha nº: {linha}\n"
            f"Esperado: {esperado} colunas\n"
            f"Encontrado: {encontrado} colunas",
        )
