from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Set

__all__ = [
    "RE_CHAVE_44",
    "RE_MULTISPACE",
    "MODELOS_DOCUMENTOS_FISCAIS",
    "digits",
    "clean_key",
    "extract_chaves",
    "modelo_da_chave",
    "is_modelo",
    "collapse_multispace",
    "describe_model",
    "fmt_milhares",
]

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# exactly 44 digits, not glued to other digits
RE_CHAVE_44 = re.compile(r"(?<!\d)\d{44}(?!\d)", re.ASCII)
RE_MULTISPACE = re.compile(r"\s{2,}")
RE_NON_DIGITS = re.compile(r"\D", re.ASCII)

CHAVE_LEN = 44
MODELO_SLICE = slice(20, 22)

# Modelos de Documentos Fiscais - Tabela 4.1.1
MODELOS_DOCUMENTOS_FISCAIS: Dict[str, str] = {
    "01": "Nota Fiscal",
    "1B": "Nota Fiscal Avulsa",
    "02": "Nota Fiscal de Venda a Consumidor",
    "2D": "Cupom Fiscal emitido por ECF",
    "2E": "Bilhete de Passagem emitido por ECF",
    "04": "Nota Fiscal de Produtor",
    "06": "Nota Fiscal / Conta de Energia Elétrica",
    "07": "Nota Fiscal de Serviço de Transporte",
    "08": "Conhecimento de Transporte Rodoviário de Cargas",
    "8B": "Conhecimento de Transporte de Cargas Avulso",
    "09": "Conhecimento de Transporte Aquaviário de Cargas",
    "10": "Conhecimento Aéreo",
    "11": "Conhecimento de Transporte Ferroviário de Cargas",
    "13": "Bilhete de Passagem Rodoviário",
    "14": "Bilhete de Passagem Aquaviário",
    "15": "Bilhete de Passagem e Nota de Bagagem",
    "16": "Bilhete de Passagem Ferroviário",
    "17": "Despacho de Transporte",
    "18": "Resumo de Movimento Diário",
    "20": "Ordem de Coleta de Cargas",
    "21": "Nota Fiscal de Serviço de Comunicação",
    "22": "Nota Fiscal de Serviço de Telecomunicação",
    "23": "GNRE",
    "24": "Autorização de Carregamento e Transporte",
    "25": "Manifesto de Carga",
    "26": "Conhecimento de Transporte Multimodal de Cargas",
    "27": "Nota Fiscal de Transporte Ferroviário de Cargas",
    "28": "Nota Fiscal / Conta de Fornecimento de Gás Canalizado",
    "29": "Nota Fiscal / Conta de Fornecimento de Água Canalizada",
    "30": "Bilhete / Recibo do Passageiro",
    "55": "Nota Fiscal Eletrônica: NF-e",
    "57": "Conhecimento de Transporte Eletrônico: CT-e",
    "59": "Cupom Fiscal Eletrônico: CF-e (CF-e-SAT)",
    "60": "Cupom Fiscal Eletrônico: CF-e-ECF",
    "63": "Bilhete de Passagem Eletrônico: BP-e",
    "65": "Nota Fiscal Eletrônica ao Consumidor Final: NFC-e",
    "66": "Nota Fiscal de Energia Elétrica Eletrônica: NF3e",
    "67": "Conhecimento de Transporte Eletrônico para Outros Serviços: CT-e OS",
}

MODELO_DESCONHECIDO = "Modelo Desconhecido"

MODELO_NFE = "55"
MODELO_CTE = "57"


# ---------------------------------------------------------------------------
# Utils
# ---------------------------------------------------------------------------

def digits(s: Any) -> str:
    if s is None:
        return ""
    return RE_NON_DIGITS.sub("", str(s))


def clean_key(value: Any) -> Optional[str]:
    """Return the 44-digit key hidden in *value*, or ``None`` when malformed.

    Every non-digit character is dropped first, so ``"3524 0112-..."`` style
    values from spreadsheets still qualify.
    """
    key = digits(value)
    if len(key) != CHAVE_LEN:
        return None
    return key


def modelo_da_chave(key: str) -> Optional[str]:
    if len(key) < MODELO_SLICE.stop:
        return None
    return key[MODELO_SLICE]


def is_modelo(key: str, modelo: str) -> bool:
    return len(key) == CHAVE_LEN and key[MODELO_SLICE] == modelo


def extract_chaves(line: str) -> List[str]:
    return RE_CHAVE_44.findall(line)


def collapse_multispace(text: str) -> str:
    return RE_MULTISPACE.sub(" ", text)


def describe_model(codigo: str) -> str:
    return MODELOS_DOCUMENTOS_FISCAIS.get(codigo, MODELO_DESCONHECIDO)


def fmt_milhares(n: int) -> str:
    return f"{n:,}".replace(",", ".")


def count_members(mapping: Dict[str, Set[str]]) -> int:
    return sum(len(values) for values in mapping.values())
