from types import SimpleNamespace

from grabarr.core.matcher import TitleMatcher, fuzzy_match_title, title_matches_filename


def test_fuzzy_exact_match_wins_over_containment():
    assert fuzzy_match_title("Office", ["The Office", "Office"]) == "Office"


def test_fuzzy_containment_either_direction():
    assert fuzzy_match_title("The Office US", ["Parks and Recreation", "The Office"]) == "The Office"
    assert fuzzy_match_title("Office", ["The Office (US)"]) == "The Office (US)"


def test_fuzzy_first_in_input_order():
    known = ["Star Trek Discovery", "Star Trek Picard"]
    assert fuzzy_match_title("Star Trek", known) == "Star Trek Discovery"
    assert fuzzy_match_title("Star Trek", list(reversed(known))) == "Star Trek Picard"


def test_fuzzy_empty_candidate_never_matches():
    assert fuzzy_match_title("", ["Anything"]) is None
    assert fuzzy_match_title("...", ["Anything"]) is None


def test_fuzzy_no_match():
    assert fuzzy_match_title("Better Call Saul", ["Breaking Bad"]) is None


def test_fuzzy_with_key():
    shows = [SimpleNamespace(id=1, title="Breaking Bad"), SimpleNamespace(id=2, title="Better Call Saul")]
    match = TitleMatcher.fuzzy_match_title("better.call.saul", shows, key=lambda s: s.title)
    assert match.id == 2


def test_filename_match_all_words():
    assert title_matches_filename("The Matrix", "The.Matrix.1999.1080p.BluRay.mkv")
    assert not title_matches_filename("The Matrix", "Matrix.Reloaded.2003.mkv")


def test_filename_match_sequel_number_must_follow_title():
    assert title_matches_filename("Shrek 2", "Shrek.2.2004.1080p.mkv")
    assert not title_matches_filename("Shrek 2", "Shrek.2001.1080p.mkv")
    assert not title_matches_filename("Shrek 2", "Shrek.the.Third.2.mkv")


def test_filename_match_empty_title():
    assert not title_matches_filename("", "anything.mkv")


def test_path_mentions_title_in_folder():
    assert TitleMatcher.path_mentions_title("Breaking Bad", "Breaking Bad/Season 01/S01E01.mkv")
    assert TitleMatcher.path_mentions_title("Breaking Bad", "Breaking.Bad.S01E01.mkv")
    assert not TitleMatcher.path_mentions_title("Better Call Saul", "Breaking Bad/S01E01.mkv")
