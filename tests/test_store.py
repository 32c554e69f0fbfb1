import asyncio
from datetime import timedelta

import pytest

from grabarr.core.errors import RecordNotFoundError
from grabarr.core.models import EntityStatus
from grabarr.db.models import utcnow

from conftest import OWNER


def test_add_movie_is_an_upsert(store):
    first = store.add_movie(OWNER, 603, "The Matrix", release_date="1999-03-31")
    second = store.add_movie(OWNER, 603, "The Matrix", quality_profile="hd-1080p")
    assert first.id == second.id
    assert second.quality_profile == "hd-1080p"
    assert second.release_date == "1999-03-31"
    assert len(store.list_movies(OWNER)) == 1


def test_readd_never_resets_downloaded(store):
    movie = store.add_movie(OWNER, 603, "The Matrix")
    store.update_movie(OWNER, movie.id, status=EntityStatus.DOWNLOADED.value)
    again = store.add_movie(OWNER, 603, "The Matrix")
    assert again.status == EntityStatus.DOWNLOADED.value


def test_readd_resets_error_to_monitoring(store):
    movie = store.add_movie(OWNER, 603, "The Matrix")
    store.update_movie(OWNER, movie.id, status=EntityStatus.ERROR.value, last_error="boom")
    again = store.add_movie(OWNER, 603, "The Matrix")
    assert again.status == EntityStatus.MONITORING.value
    assert again.last_error is None


def test_records_are_owner_scoped(store):
    movie = store.add_movie(OWNER, 603, "The Matrix")
    store.add_movie("bob", 603, "The Matrix")
    assert len(store.list_movies("bob")) == 1
    with pytest.raises(RecordNotFoundError):
        store.get_movie("bob", movie.id)
    with pytest.raises(RecordNotFoundError):
        store.delete_movie("bob", movie.id)
    assert store.list_owner_ids() == [OWNER, "bob"]


def test_movie_year_from_release_date(store):
    movie = store.add_movie(OWNER, 1, "Heat", release_date="1995-12-15")
    assert movie.year == 1995
    assert store.add_movie(OWNER, 2, "Untitled").year is None


def test_select_and_unselect_all_episodes(store):
    series = store.add_series(OWNER, 1396, "Breaking Bad")
    updated = store.select_all_episodes(OWNER, series.id, {2: 2, 1: 3})
    assert updated.selected_seasons == [1, 2]
    assert set(updated.selected_episodes) == {"1-1", "1-2", "1-3", "2-1", "2-2"}

    cleared = store.unselect_all_episodes(OWNER, series.id)
    assert cleared.selected_seasons == []
    assert cleared.selected_episodes == []


def test_new_selection_reopens_downloaded_series(store):
    series = store.add_series(OWNER, 1396, "Breaking Bad", selected_episodes=["1-1"])
    store.set_episode_files(OWNER, series.id, {"1-1": "/tv/bb/s01e01.mkv"})
    store.update_series(OWNER, series.id, status=EntityStatus.DOWNLOADED.value)

    same = store.add_series(OWNER, 1396, "Breaking Bad", selected_episodes=["1-1"])
    assert same.status == EntityStatus.DOWNLOADED.value

    widened = store.add_series(OWNER, 1396, "Breaking Bad", selected_episodes=["1-1", "1-2"])
    assert widened.status == EntityStatus.MONITORING.value


def test_set_episode_files_merges(store):
    series = store.add_series(OWNER, 1, "Show")
    store.set_episode_files(OWNER, series.id, {"1-1": "/a"})
    merged = store.set_episode_files(OWNER, series.id, {"1-2": "/b"})
    assert merged.episode_files == {"1-1": "/a", "1-2": "/b"}


def test_pending_files(store):
    pending = store.add_pending(OWNER, "/dl/a.mkv", "/lib/a.mkv", "movie", 10)
    assert len(pending.id) == 16
    assert store.pending_sources(OWNER) == {"/dl/a.mkv"}
    assert store.get_pending(OWNER, pending.id).destination_path == "/lib/a.mkv"
    store.delete_pending(OWNER, pending.id)
    assert store.list_pending(OWNER) == []
    with pytest.raises(RecordNotFoundError):
        store.get_pending(OWNER, pending.id)


def _history(store, **overrides):
    fields = dict(media_type="movie", media_title="Heat", tmdb_id=949, release_name="Heat.1995.1080p", status="grabbed")
    fields.update(overrides)
    return store.add_history(OWNER, **fields)


def test_history_update_only_status_and_client_id(store):
    entry = _history(store)
    updated = store.update_history(OWNER, entry.id, status="completed", download_client_id="abc")
    assert updated.status == "completed"
    assert updated.download_client_id == "abc"
    assert updated.release_name == "Heat.1995.1080p"
    with pytest.raises(ValueError):
        store.update_history(OWNER, entry.id, status="exploded")
    with pytest.raises(RecordNotFoundError):
        store.update_history("bob", entry.id, status="failed")


def test_history_stats(store):
    _history(store)
    _history(store, status="failed")
    _history(store, media_type="tv", season=1, episode=1, status="completed")
    stats = store.history_stats(OWNER)
    assert stats["total"] == 3
    assert stats["grabbed"] == 1
    assert stats["failed"] == 1
    assert stats["completed"] == 1
    assert stats["downloading"] == 0
    assert stats["movies"] == 2
    assert stats["tv"] == 1


def test_history_filters(store):
    _history(store)
    _history(store, media_type="tv", season=1, episode=1)
    assert len(store.list_history(OWNER, media_type="tv")) == 1
    assert len(store.list_history(OWNER, status="grabbed")) == 2
    assert len(store.list_history(OWNER, limit=1)) == 1


def test_has_recent_grab_ignores_failed_and_old(store):
    since = utcnow() - timedelta(hours=1)
    _history(store, media_type="tv", tmdb_id=5, season=1, episode=1, status="failed")
    assert not store.has_recent_grab(OWNER, 5, since, 1, 1)
    _history(store, media_type="tv", tmdb_id=5, season=1, episode=1)
    assert store.has_recent_grab(OWNER, 5, since, 1, 1)
    assert not store.has_recent_grab(OWNER, 5, since, 1, 2)
    assert not store.has_recent_grab(OWNER, 5, utcnow() + timedelta(minutes=1), 1, 1)


def test_unknown_settings_rejected(store):
    with pytest.raises(AttributeError):
        store.save_settings(OWNER, favourite_colour="blue")


async def test_store_is_usable_from_worker_threads(store):
    async def add_and_list(tmdb_id):
        await asyncio.to_thread(store.add_movie, OWNER, tmdb_id, f"Movie {tmdb_id}")
        return await asyncio.to_thread(store.list_movies, OWNER)

    await asyncio.gather(*(add_and_list(tmdb_id) for tmdb_id in range(1, 21)))

    assert sorted(m.tmdb_id for m in store.list_movies(OWNER)) == list(range(1, 21))
