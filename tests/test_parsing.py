import pytest

from grabarr.core.models import Quality
from grabarr.core.parsing import (
    detect_quality,
    episode_key,
    extract_quality_metadata,
    extract_release_group,
    extract_season_episode,
    extract_series_title_guess,
    is_video_file,
    normalize_title,
    parse_episode_key,
    strip_video_extension,
)


@pytest.mark.parametrize("filename", [
    "Show.Name.S01E02.720p.mkv",
    "Show Name 1x02.mkv",
    "Show Name Season 1 Episode 2.mkv",
])
def test_season_episode_patterns(filename):
    assert extract_season_episode(filename) == (1, 2)


def test_season_episode_absent():
    assert extract_season_episode("Some.Movie.2020.1080p.mkv") == (None, None)


def test_season_episode_three_digit_episode():
    assert extract_season_episode("Anime.S02E105.mkv") == (2, 105)


def test_quality_metadata_uhd_release():
    metadata = extract_quality_metadata("Movie.Title.2021.2160p.UHD.BluRay.x265-GROUP")
    assert metadata.quality == Quality.UHD_2160P
    assert metadata.source == "BluRay"
    assert metadata.codec == "x265"
    assert metadata.release_group == "GROUP"
    assert metadata.audio == ""
    assert metadata.edition == ""


def test_quality_metadata_web_release():
    metadata = extract_quality_metadata("Some.Movie.2019.1080p.WEB-DL.DD5.1.H264-FGT.mkv")
    assert metadata.quality == Quality.FHD_1080P
    assert metadata.source == "WEB-DL"
    assert metadata.audio == "AC3"
    assert metadata.codec == "x264"
    assert metadata.release_group == "FGT"


def test_quality_metadata_edition():
    metadata = extract_quality_metadata("Aliens.1986.Directors.Cut.720p.BluRay.mkv")
    assert metadata.edition == "Directors Cut"
    assert metadata.quality == Quality.HD_720P


def test_release_group_ignores_source_suffix():
    assert extract_release_group("Movie.2020.WEB-DL.mkv") == ""


def test_release_group_known_group_token():
    assert extract_release_group("Movie.2020.1080p.YIFY.mp4") == "YIFY"


def test_detect_quality_keywords():
    assert detect_quality("Movie 4K HDR") == Quality.UHD_2160P
    assert detect_quality("movie.480p.avi") == Quality.SD_480P
    assert detect_quality("movie.avi") == Quality.UNKNOWN


def test_quality_labels():
    assert Quality.UNKNOWN.label == "SD"
    assert Quality.SD_480P.label == "SD"
    assert Quality.FHD_1080P.label == "1080p"


def test_series_title_guess():
    assert extract_series_title_guess("Breaking.Bad.S01E01.720p.mkv") == "Breaking Bad"
    assert extract_series_title_guess("The_Office_1x03.mkv") == "The Office"
    assert extract_series_title_guess("S01E01.mkv") == ""


def test_normalize_title():
    assert normalize_title("The Office (US)") == "theofficeus"
    assert normalize_title("Marvel's Agents of S.H.I.E.L.D.") == "marvelsagentsofshield"
    assert normalize_title(None) == ""


def test_video_extensions():
    assert is_video_file("movie.MKV")
    assert is_video_file("clip.m2ts")
    assert not is_video_file("movie.nfo")
    assert not is_video_file("movie.srt")


def test_strip_video_extension_only_strips_video():
    assert strip_video_extension("Movie.2020.mkv") == "Movie.2020"
    assert strip_video_extension("Mr. Robot") == "Mr. Robot"


def test_episode_keys():
    assert episode_key(1, 2) == "1-2"
    assert parse_episode_key("10-3") == (10, 3)
    assert parse_episode_key("garbage") is None
