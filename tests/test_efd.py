from dataclasses import replace

import pytest

from efd import extract_efd_keys
from errors import ArquivoError, ColumnCountError, DuplicateColumnNameError, EmptyColumnNameError, MissingEssentialColumnError
from graph import KeyContext, expand_context


def test_key_without_references_is_kept_alone(write_lines, make_key, small_config):
    key = make_key("55", 1)
    path = write_lines("efd.txt", ["Linhas|Chave do Documento", f"1|{key}"])

    assert extract_efd_keys(path, small_config, KeyContext()) == {key}


def test_keys_are_expanded_with_related_documents(write_lines, make_key, small_config):
    cte, comp = make_key("57", 1), make_key("57", 2)
    nfe = make_key("55", 3)
    context = expand_context({cte: {nfe}}, {cte: {comp}})
    path = write_lines("efd.txt", ["Linhas|Chave do Documento", f"1|{nfe}"])

    assert extract_efd_keys(path, small_config, context) == {nfe, cte, comp}


def test_formatted_and_malformed_keys(write_lines, make_key, small_config):
    key = make_key("57", 4)
    spaced = " ".join(key[i : i + 4] for i in range(0, 44, 4))
    path = write_lines(
        "efd.txt",
        ["Linhas|Chave do Documento", f"1|{spaced}", "2|123", "3|", "", f"4|  {make_key('55', 5)}  "],
    )

    assert extract_efd_keys(path, small_config, KeyContext()) == {key, make_key("55", 5)}


def test_blank_column_name_rejected(write_lines, small_config):
    path = write_lines("efd.txt", ["Linhas| |Chave do Documento", "1|x|y"])
    with pytest.raises(EmptyColumnNameError):
        extract_efd_keys(path, small_config, KeyContext())


def test_duplicate_column_name_rejected(write_lines, small_config):
    path = write_lines("efd.txt", ["Linhas|Chave do Documento|Linhas", "1|x|2"])
    with pytest.raises(DuplicateColumnNameError) as excinfo:
        extract_efd_keys(path, small_config, KeyContext())
    assert excinfo.value.coluna == "Linhas"


def test_missing_essential_column_rejected(write_lines, small_config):
    path = write_lines("efd.txt", ["Linhas|Outra Coluna", "1|x"])
    with pytest.raises(MissingEssentialColumnError) as excinfo:
        extract_efd_keys(path, small_config, KeyContext())
    assert excinfo.value.coluna == "Chave do Documento"
    assert excinfo.value.tipo == "EFDContrib"


def test_column_count_mismatch_reports_line(write_lines, make_key, small_config):
    path = write_lines(
        "efd.txt",
        ["Linhas|Chave do Documento", f"1|{make_key('55', 1)}", f"2|{make_key('55', 2)}|extra"],
    )
    with pytest.raises(ColumnCountError) as excinfo:
        extract_efd_keys(path, small_config, KeyContext())

    err = excinfo.value
    assert (err.linha, err.esperado, err.encontrado) == (3, 2, 3)
    assert "Linha nº: 3" in str(err)


def test_byte_order_mark_on_header_is_ignored(tmp_path, make_key, small_config):
    key = make_key("55", 1)
    path = tmp_path / "efd.txt"
    path.write_text(f"\ufeffChave do Documento|Linhas\n{key}|1\n", encoding="utf-8")

    assert extract_efd_keys(path, small_config, KeyContext()) == {key}


def test_unknown_encoding_is_reported_as_file_error(write_lines, make_key, small_config):
    path = write_lines("efd.txt", ["Linhas|Chave do Documento", f"1|{make_key('55', 1)}"])
    config = replace(small_config, encoding="utf-9")

    with pytest.raises(ArquivoError):
        extract_efd_keys(path, config, KeyContext())
