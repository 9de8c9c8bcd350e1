from chaves import clean_key, collapse_multispace, describe_model, extract_chaves, fmt_milhares, modelo_da_chave


def test_clean_key_strips_formatting(make_key):
    key = make_key("55", 1)
    formatted = " ".join(key[i : i + 4] for i in range(0, 44, 4))
    assert clean_key(formatted) == key
    assert clean_key(f"NFe{key}") == key


def test_clean_key_rejects_wrong_length(make_key):
    key = make_key("55", 1)
    assert clean_key(key[:-1]) is None
    assert clean_key(key + "9") is None
    assert clean_key("") is None
    assert clean_key(None) is None
    assert clean_key("chave inválida") is None


def test_clean_key_ignores_non_ascii_digits(make_key):
    key = make_key("55", 1)
    # arabic-indic digit is not an ASCII digit and must be dropped
    assert clean_key(key[:-1] + "٣") is None


def test_extract_chaves_requires_isolated_runs(make_key):
    nfe = make_key("55", 7)
    cte = make_key("57", 3)
    line = f"{cte};{nfe}9;xx{nfe}|"
    assert extract_chaves(line) == [cte, nfe]


def test_modelo_and_description(make_key):
    assert modelo_da_chave(make_key("57", 1)) == "57"
    assert modelo_da_chave("123") is None
    assert describe_model("55") == "Nota Fiscal Eletrônica: NF-e"
    assert describe_model("99") == "Modelo Desconhecido"


def test_collapse_multispace_and_thousands():
    assert collapse_multispace("a  b\t\tc d") == "a b c d"
    assert fmt_milhares(1234567) == "1.234.567"
    assert fmt_milhares(12) == "12"
