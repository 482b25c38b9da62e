import pytest
from ice.config import Settings
from ice.matching import (
    DEFAULT_THRESHOLDS,
    MatchingThresholds,
    first_token,
    levenshtein_distance,
    normalize_for_display,
    normalize_name,
    similarity,
    split_name,
)

NAMES = [
    "David Cohen",
    "  david   COHEN ",
    "O'Brien",
    "ג׳ונסון",
    "צה״ל",
    "דוד כהן",
    "שלום  אברהם",
    "Yossi\tKohen",
    "",
]


@pytest.mark.parametrize("name", NAMES)
def test_normalize_idempotent(name):
    once = normalize_name(name)
    assert normalize_name(once) == once


def test_normalize_basic():
    assert normalize_name("  David   COHEN ") == "david cohen"
    assert normalize_name("O'Brien") == "obrien"
    assert normalize_name("O’Brien") == "obrien"
    assert normalize_name("") == ""
    assert normalize_name("   ") == ""


def test_normalize_hebrew_final_letters():
    # final mem / nun fold to regular forms
    assert normalize_name("שלום") == "שלומ"
    assert normalize_name("כהן") == "כהנ"
    assert normalize_name("דוד כהן") == normalize_name("דוד כהנ")


def test_normalize_geresh_and_gershayim():
    assert normalize_name("ג׳ונסון") == normalize_name("גונסון")
    assert normalize_name("צה״ל") == "צהל"
    assert normalize_name('צה"ל') == "צהל"


def test_display_keeps_characters():
    assert normalize_for_display("  O'Brien   Jr ") == "O'Brien Jr"
    assert split_name("David  Ben Ami") == ("David", "Ben Ami")
    assert split_name("Madonna") == ("Madonna", "")
    assert first_token("david cohen") == "david"


def test_levenshtein():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


@pytest.mark.parametrize("a,b", [
    ("david cohen", "david cohn"),
    ("yossi", "yosef"),
    ("", "abc"),
    ("דוד", "דויד"),
])
def test_similarity_symmetric_and_bounded(a, b):
    s = similarity(a, b)
    assert s == similarity(b, a)
    assert 0.0 <= s <= 1.0


def test_similarity_values():
    assert similarity("", "") == 1.0
    assert similarity("abc", "") == 0.0
    assert similarity("david cohen", "david cohen") == 1.0
    assert similarity("david cohen", "david cohn") == pytest.approx(1 - 1 / 11)
    # shared surname does not make first names similar
    assert similarity("yossi", "yosef") == pytest.approx(0.6)


def test_confidence_levels():
    t = DEFAULT_THRESHOLDS
    assert t.confidence_level(1.0) == "exact"
    assert t.confidence_level(0.9) == "high"
    assert t.confidence_level(0.85) == "high"
    assert t.confidence_level(0.8) == "medium"
    assert t.confidence_level(0.5) == "low"


def test_thresholds_from_settings():
    s = Settings(AUTO_MATCH_THRESHOLD=0.9, MAX_CANDIDATES_PER_CONFLICT=3)
    t = MatchingThresholds.from_settings(s)
    assert t.auto_match == 0.9
    assert t.max_candidates == 3
    assert t.manual_resolution == 0.75
