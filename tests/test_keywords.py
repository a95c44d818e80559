from docgallery.services.keywords import (
    GENERIC_TERMS,
    KEYWORD_RULES,
    MAX_KEYWORDS,
    MIN_KEYWORDS,
    category_terms,
    count_valid,
    expand,
)

PASSPORT_TERMS = KEYWORD_RULES[0][1]


def test_expand_keeps_lists_that_already_reach_the_minimum():
    keywords = [f"kw{i}" for i in range(25)]

    assert expand(keywords, "passaporte") == keywords


def test_expand_caps_at_maximum():
    keywords = [f"kw{i}" for i in range(40)]

    result = expand(keywords, "passaporte")

    assert len(result) == MAX_KEYWORDS
    assert result == keywords[:MAX_KEYWORDS]


def test_expand_pads_passport_from_rule_then_generic_terms():
    result = expand([], "Passaporte")

    assert len(result) == MIN_KEYWORDS
    assert result[: len(PASSPORT_TERMS)] == list(PASSPORT_TERMS)
    assert result[len(PASSPORT_TERMS):] == list(GENERIC_TERMS[: MIN_KEYWORDS - len(PASSPORT_TERMS)])


def test_expand_is_deterministic_and_does_not_mutate_input():
    keywords = ["passaporte brasileiro", "foto"]

    first = expand(keywords, "passaporte")
    second = expand(keywords, "passaporte")

    assert first == second
    assert keywords == ["passaporte brasileiro", "foto"]


def test_expand_skips_terms_already_contained_in_existing_keywords():
    result = expand(["documento de viagem internacional"], "passaporte")

    assert "Documento de Viagem" not in result
    assert "Viagem Internacional" not in result
    assert "Passaporte" in result


def test_english_passport_type_uses_passport_rule():
    assert category_terms("Passport") == PASSPORT_TERMS


def test_generic_image_only_gets_generic_terms():
    result = expand([], "imagem geral")

    assert result == list(GENERIC_TERMS)
    assert count_valid(result) < MIN_KEYWORDS


def test_first_matching_rule_wins():
    # "comprovante" precedes the residence rule
    assert category_terms("Comprovante de residência")[0] == "Comprovante"


def test_count_valid_ignores_blank_entries():
    assert count_valid(["a", " ", "", "b"]) == 2
