import pandas as pd
import pytest

from errors import ConfigurationError
from gaps import (
    SUMMARY_COLUMNS,
    build_model_summary,
    export_missing_keys,
    find_missing_keys,
    safe_model_name,
    segregate_by_model,
    write_model_summary,
)


def test_missing_keys_per_model(make_key):
    nfes = {make_key("55", n) for n in range(1, 4)}
    ctes = {make_key("57", n) for n in range(1, 3)}
    found = {make_key("55", 1), make_key("57", 2), make_key("65", 9)}

    report = find_missing_keys(nfes | ctes, found)

    assert report.missing_by_model == {
        "55": {make_key("55", 2), make_key("55", 3)},
        "57": {make_key("57", 1)},
    }
    assert report.missing == report.missing_by_model["55"] | report.missing_by_model["57"]
    assert segregate_by_model(nfes | ctes) == {"55": nfes, "57": ctes}


def test_safe_model_name_removes_separators():
    assert safe_model_name("55") == "Nota Fiscal Eletrônica- NF-e"
    assert "/" not in safe_model_name("06")
    assert safe_model_name("00") == "Modelo Desconhecido"


def test_export_chunks_per_model(tmp_path, make_key):
    keys = {make_key("55", n) for n in range(1, 4)} | {make_key("57", 7)}
    base = tmp_path / "out" / "chaves_faltantes"

    written = export_missing_keys(keys, base, max_lines=2)

    nfe, cte = safe_model_name("55"), safe_model_name("57")
    assert [path.name for path in written] == [
        f"chaves_faltantes-{nfe}-000000.txt",
        f"chaves_faltantes-{nfe}-000002.txt",
        f"chaves_faltantes-{cte}-000000.txt",
    ]
    assert written[0].read_text(encoding="utf-8") == f"{make_key('55', 1)}\n{make_key('55', 2)}\n"
    assert written[1].read_text(encoding="utf-8") == f"{make_key('55', 3)}\n"
    assert written[2].read_text(encoding="utf-8") == f"{make_key('57', 7)}\n"


def test_export_without_keys_writes_nothing(tmp_path):
    assert export_missing_keys(set(), tmp_path / "base") == []
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("max_lines", [0, -5])
def test_export_rejects_non_positive_chunk(tmp_path, make_key, max_lines):
    with pytest.raises(ConfigurationError):
        export_missing_keys({make_key("55", 1)}, tmp_path / "base", max_lines=max_lines)


def test_model_summary_table(tmp_path, make_key):
    efd = {make_key("55", 1), make_key("55", 2), make_key("57", 3)}
    found = {make_key("55", 1)}

    df = build_model_summary(efd, found)

    assert list(df.columns) == SUMMARY_COLUMNS
    assert df["modelo"].tolist() == ["55", "57"]
    assert df["chaves_efd"].tolist() == [2, 1]
    assert df["encontradas"].tolist() == [1, 0]
    assert df["faltantes"].tolist() == [1, 1]

    path = tmp_path / "resumo.csv"
    write_model_summary(df, path)
    loaded = pd.read_csv(path, dtype={"modelo": str})
    assert loaded["modelo"].tolist() == ["55", "57"]


def test_model_summary_empty():
    df = build_model_summary(set(), set())
    assert df.empty
    assert list(df.columns) == SUMMARY_COLUMNS
