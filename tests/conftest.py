from __future__ import annotations

from pathlib import Path

import pytest

from config import ConferenciaConfig


def chave(modelo: str, n: int) -> str:
    # cUF + AAMM + CNPJ, modelo, série, número, tpEmis, código, DV
    return f"35240112345678000190{modelo}001{n:09d}1{n:08d}{n % 10}"


@pytest.fixture
def make_key():
    return chave


@pytest.fixture
def small_config() -> ConferenciaConfig:
    return ConferenciaConfig(
        colunas_efd={"num_linha": "Linhas", "chave_documento": "Chave do Documento"},
        colunas_doc={"chave44_digitos": "Chave da Nota", "descricao": "Descrição"},
        workers=2,
    )


@pytest.fixture
def write_lines(tmp_path: Path):
    def _write(name: str, lines) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
