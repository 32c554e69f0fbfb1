import pytest

from grabarr.core.models import MediaKind, RenameProposal
from grabarr.core.renamer import RenameEngine

from conftest import OWNER, write_file


@pytest.fixture
def renamer(store, settings_provider):
    return RenameEngine(store, settings_provider)


@pytest.fixture
def movie_file(tmp_path, store):
    movies = tmp_path / "movies"
    path = write_file(movies / "The.Matrix.1999.1080p.BluRay.x264-GROUP.mkv")
    store.save_settings(OWNER, movie_directory=str(movies))
    movie = store.add_movie(OWNER, 603, "The Matrix", release_date="1999-03-31")
    store.update_movie(OWNER, movie.id, file_exists=True, file_path=str(path), file_name=path.name)
    return movie, path


async def test_movie_preview_does_not_touch_files(renamer, movie_file):
    movie, path = movie_file

    first = await renamer.preview_renames(OWNER, MediaKind.MOVIE)
    second = await renamer.preview_renames(OWNER, MediaKind.MOVIE)

    assert first == second
    assert len(first) == 1
    assert first[0].entity_id == movie.id
    assert first[0].new_path == str(path.parent / "The Matrix (1999).mkv")
    assert path.exists()


async def test_movie_preview_with_custom_format(renamer, movie_file):
    _, path = movie_file
    proposals = await renamer.preview_renames(OWNER, MediaKind.MOVIE, "{Movie Title} ({Release Year}) [{Quality}]")
    assert proposals[0].new_name == "The Matrix (1999) [1080p].mkv"


async def test_apply_movie_rename_updates_record(renamer, store, movie_file):
    movie, path = movie_file
    proposals = await renamer.preview_renames(OWNER, MediaKind.MOVIE)

    result = await renamer.apply_renames(OWNER, proposals)

    assert (result.succeeded, result.failed) == (1, 0)
    renamed = path.parent / "The Matrix (1999).mkv"
    assert renamed.exists()
    assert not path.exists()
    stored = store.get_movie(OWNER, movie.id)
    assert stored.file_path == str(renamed)
    assert stored.file_name == "The Matrix (1999).mkv"
    # already conforming: nothing left to propose
    assert await renamer.preview_renames(OWNER, MediaKind.MOVIE) == []


async def test_apply_collision_is_reported_per_item(renamer, movie_file):
    _, path = movie_file
    taken = write_file(path.parent / "The Matrix (1999).mkv", b"other")
    proposals = await renamer.preview_renames(OWNER, MediaKind.MOVIE)
    missing = RenameProposal(MediaKind.MOVIE, 999, str(path.parent / "gone.mkv"), str(path.parent / "x.mkv"))

    result = await renamer.apply_renames(OWNER, proposals + [missing])

    assert (result.succeeded, result.failed) == (0, 2)
    assert "already exists" in result.errors[0]["error"]
    assert path.exists()
    assert taken.read_bytes() == b"other"


async def test_apply_unknown_movie_leaves_file_in_place(renamer, movie_file):
    _, path = movie_file
    target = path.parent / "The Matrix (1999).mkv"
    unknown = RenameProposal(MediaKind.MOVIE, 999, str(path), str(target))

    result = await renamer.apply_renames(OWNER, [unknown])

    assert (result.succeeded, result.failed) == (0, 1)
    assert "not found" in result.errors[0]["error"]
    assert path.exists()
    assert not target.exists()


async def test_apply_rejects_files_not_owned_by_the_movie(renamer, store, movie_file, tmp_path):
    movie, path = movie_file
    elsewhere = write_file(tmp_path / "private" / "secret.mkv", b"private")
    foreign = RenameProposal(MediaKind.MOVIE, movie.id, str(elsewhere), str(path.parent / "secret.mkv"))
    escape = RenameProposal(MediaKind.MOVIE, movie.id, str(path), str(tmp_path / "outside" / "The Matrix.mkv"))

    result = await renamer.apply_renames(OWNER, [foreign, escape])

    assert (result.succeeded, result.failed) == (0, 2)
    assert elsewhere.read_bytes() == b"private"
    assert path.exists()
    assert not (tmp_path / "outside").exists()
    assert store.get_movie(OWNER, movie.id).file_path == str(path)

    # another user cannot reach this movie
    stolen = RenameProposal(MediaKind.MOVIE, movie.id, str(path), str(path.parent / "x.mkv"))
    result = await renamer.apply_renames("mallory", [stolen])
    assert result.failed == 1
    assert path.exists()


async def test_apply_series_outside_root_is_rejected(renamer, store, tmp_path):
    tv = tmp_path / "tv"
    tv.mkdir()
    outside = write_file(tmp_path / "downloads" / "Breaking.Bad.S01E02.mkv")
    store.save_settings(OWNER, series_directory=str(tv))
    series = store.add_series(OWNER, 1396, "Breaking Bad", selected_episodes=["1-2"])
    proposal = RenameProposal(MediaKind.SERIES, series.id, str(outside), str(tv / "Breaking Bad - S01E02.mkv"), 1, 2)

    result = await renamer.apply_renames(OWNER, [proposal])

    assert result.failed == 1
    assert outside.exists()
    assert not (tv / "Breaking Bad - S01E02.mkv").exists()
    assert store.get_series(OWNER, series.id).episode_files == {}


async def test_series_preview_and_apply(renamer, store, tmp_path):
    tv = tmp_path / "tv"
    source = write_file(tv / "downloads" / "Breaking.Bad.S01E02.720p.HDTV.x264.mkv")
    write_file(tv / "Unknown.Show.S01E01.mkv")
    store.save_settings(OWNER, series_directory=str(tv))
    series = store.add_series(OWNER, 1396, "Breaking Bad", selected_episodes=["1-2"])

    proposals = await renamer.preview_renames(OWNER, MediaKind.SERIES)

    expected = tv / "Breaking Bad" / "Season 01" / "Breaking Bad - S01E02.mkv"
    assert [(p.entity_id, p.season, p.episode, p.new_path) for p in proposals] == [
        (series.id, 1, 2, str(expected))
    ]

    result = await renamer.apply_renames(OWNER, proposals)

    assert result.succeeded == 1
    assert expected.exists()
    assert not source.exists()
    assert store.get_series(OWNER, series.id).episode_files == {"1-2": str(expected)}


async def test_series_title_from_folder(renamer, store, tmp_path):
    tv = tmp_path / "tv"
    write_file(tv / "Breaking Bad" / "S01E03.mkv")
    store.save_settings(OWNER, series_directory=str(tv), series_file_format="{Series Title} S{season:00}E{episode:00}")
    store.add_series(OWNER, 1396, "Breaking Bad")

    proposals = await renamer.preview_renames(OWNER, MediaKind.SERIES)

    assert [p.new_name for p in proposals] == ["Breaking Bad S01E03.mkv"]


async def test_auto_rename_records_run(renamer, store, movie_file):
    results = await renamer.run_auto_rename(OWNER)

    assert results["movie"].succeeded == 1
    assert results["series"].succeeded == 0
    status = renamer.status(OWNER)
    assert status["last_movie_rename_at"] is not None
    assert status["last_series_rename_at"] is not None
