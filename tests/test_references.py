import pytest

from errors import ArquivoError
from references import (
    fold_cte_complementar,
    fold_cte_nfes,
    fold_file,
    invert_key_map,
    read_cte_complementar,
    read_cte_nfes,
)


def test_cargo_note_line_builds_map(write_lines, make_key):
    cte, nfe_b, nfe_c = make_key("57", 1), make_key("55", 2), make_key("55", 3)
    path = write_lines("cte_nfes.txt", [f"CTe {cte} carrega {nfe_b} e {nfe_c}"])

    assert read_cte_nfes(path, workers=2) == {cte: {nfe_b, nfe_c}}


def test_cargo_note_lines_are_filtered(make_key):
    cte = make_key("57", 1)
    nfe = make_key("55", 2)
    other_cte = make_key("57", 9)
    lines = [
        f"{nfe} {cte}",  # first token is not a CT-e
        f"{cte}",  # no notes
        f"{cte} {other_cte}",  # member is not an NF-e
        "",
    ]
    assert fold_cte_nfes(lines) == {}


def test_cargo_notes_of_repeated_cte_are_unioned(make_key):
    cte = make_key("57", 1)
    lines = [f"{cte} {make_key('55', 2)}", f"{cte} {make_key('55', 3)}"]
    assert fold_cte_nfes(lines) == {cte: {make_key("55", 2), make_key("55", 3)}}


def test_complementary_edges_are_symmetric(write_lines, make_key):
    a, b, c = make_key("57", 1), make_key("57", 2), make_key("57", 3)
    path = write_lines("compl.txt", [f"{a},{b}", f"{b},{c}"])

    result = read_cte_complementar(path, workers=2)

    assert result == {a: {b}, b: {a, c}, c: {b}}


def test_complementary_malformed_lines_skipped(make_key):
    a, nfe = make_key("57", 1), make_key("55", 2)
    lines = [f"{a}", f"{a};{a}", f"{a};{nfe}", "sem chaves"]
    assert fold_cte_complementar(lines) == {}


def test_fold_file_is_order_independent(write_lines, make_key):
    lines = []
    for idx in range(1, 60):
        lines.append(f"{make_key('57', idx % 7)} {make_key('55', idx)}")
    path = write_lines("many.txt", lines)

    chunked = fold_file(path, fold_cte_nfes, workers=4, chunk_lines=3)
    sequential = fold_cte_nfes(lines)
    assert chunked == sequential


def test_missing_reference_file_raises(tmp_path):
    with pytest.raises(ArquivoError) as excinfo:
        read_cte_nfes(tmp_path / "nao_existe.txt")
    assert "nao_existe.txt" in str(excinfo.value)


def test_invert_key_map(make_key):
    cte1, cte2, nfe = make_key("57", 1), make_key("57", 2), make_key("55", 3)
    assert invert_key_map({cte1: {nfe}, cte2: {nfe}}) == {nfe: {cte1, cte2}}
