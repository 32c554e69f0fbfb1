"""API routes."""
from fastapi import APIRouter, Depends, Header, Request
from typing import List, Optional
import asyncio
import logging

from grabarr.api.models import (
    SettingsUpdate, SettingsResponse, MovieCreate, MovieUpdate, MovieResponse, SeriesCreate,
    SeriesUpdate, SeriesResponse, SelectAllRequest, CheckResultResponse, PendingFileResponse,
    RenamePreviewRequest, RenameProposalModel, RenameApplyRequest, RenameBatchResponse,
    HistoryResponse, HistoryUpdate, DiagnosticsResponse,
)
from grabarr.core.models import CheckResult, RenameProposal
from grabarr.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_owner_id(x_user_id: str = Header(...)) -> str:
    """L'utilisateur courant (pas d'authentification)."""
    return x_user_id


def _check_response(result: CheckResult) -> CheckResultResponse:
    return CheckResultResponse(
        entity_id=result.entity_id,
        title=result.title,
        kind=result.kind,
        status=result.status,
        message=result.message,
        file_path=result.file.path if result.file else None,
        release_title=result.release_title,
        episodes_queued=result.episodes_queued,
        episodes_failed=result.episodes_failed,
    )


def _proposal_model(proposal: RenameProposal) -> RenameProposalModel:
    return RenameProposalModel(
        kind=proposal.kind,
        entity_id=proposal.entity_id,
        current_path=proposal.current_path,
        new_path=proposal.new_path,
        season=proposal.season,
        episode=proposal.episode,
        current_name=proposal.current_name,
        new_name=proposal.new_name,
    )


# Settings

@router.get("/settings", response_model=SettingsResponse)
async def get_settings(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    """Récupère les réglages (valeurs par défaut incluses)."""
    return services.settings.get(owner_id)


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    request: SettingsUpdate,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Met à jour les réglages et replanifie les jobs de l'utilisateur."""
    changes = request.model_dump(exclude_unset=True)
    services.settings.validate_directories(
        movie_directory=changes.get("movie_directory"),
        series_directory=changes.get("series_directory"),
        movie_download_directory=changes.get("movie_download_directory"),
        series_download_directory=changes.get("series_download_directory"),
    )
    services.store.save_settings(owner_id, **changes)
    services.scheduler.apply_settings(owner_id)
    logger.info(f"Settings updated for user {owner_id}: {', '.join(sorted(changes)) or 'nothing'}")
    return services.settings.get(owner_id)


# Monitored movies

@router.get("/monitored/movies", response_model=List[MovieResponse])
async def list_movies(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    return services.store.list_movies(owner_id)


@router.post("/monitored/movies", response_model=MovieResponse)
async def add_movie(request: MovieCreate, owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    """Ajoute un film à surveiller (ou met à jour s'il existe)."""
    fields = request.model_dump(exclude={"tmdb_id", "title"})
    if not fields.get("quality_profile"):
        fields["quality_profile"] = services.settings.get(owner_id).quality_profile
    return services.store.add_movie(owner_id, request.tmdb_id, request.title, **fields)


@router.patch("/monitored/movies/{movie_id}", response_model=MovieResponse)
async def update_movie(
    movie_id: int,
    request: MovieUpdate,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    return services.store.update_movie(owner_id, movie_id, **request.model_dump(exclude_none=True))


@router.delete("/monitored/movies/{movie_id}")
async def delete_movie(movie_id: int, owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    services.store.delete_movie(owner_id, movie_id)
    return {"message": "Movie removed"}


# Monitored series

@router.get("/monitored/series", response_model=List[SeriesResponse])
async def list_series(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    return services.store.list_series(owner_id)


@router.post("/monitored/series", response_model=SeriesResponse)
async def add_series(request: SeriesCreate, owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    """Ajoute une série à surveiller (ou met à jour sa sélection)."""
    fields = request.model_dump(exclude={"tmdb_id", "title", "selected_seasons", "selected_episodes"})
    if not fields.get("quality_profile"):
        fields["quality_profile"] = services.settings.get(owner_id).quality_profile
    return services.store.add_series(
        owner_id,
        request.tmdb_id,
        request.title,
        selected_seasons=request.selected_seasons,
        selected_episodes=request.selected_episodes,
        **fields,
    )


@router.patch("/monitored/series/{series_id}", response_model=SeriesResponse)
async def update_series(
    series_id: int,
    request: SeriesUpdate,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    return services.store.update_series(owner_id, series_id, **request.model_dump(exclude_none=True))


@router.delete("/monitored/series/{series_id}")
async def delete_series(series_id: int, owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    services.store.delete_series(owner_id, series_id)
    return {"message": "Series removed"}


@router.post("/monitored/series/{series_id}/select-all", response_model=SeriesResponse)
async def select_all_episodes(
    series_id: int,
    request: SelectAllRequest,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Sélectionne tous les épisodes des saisons fournies."""
    return services.store.select_all_episodes(owner_id, series_id, request.seasons)


@router.post("/monitored/series/{series_id}/unselect-all", response_model=SeriesResponse)
async def unselect_all_episodes(series_id: int, owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    return services.store.unselect_all_episodes(owner_id, series_id)


# Monitoring

@router.post("/monitoring/check", response_model=List[CheckResultResponse])
async def trigger_monitoring(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    """Lance une vérification immédiate pour l'utilisateur."""
    results = await services.scheduler.trigger_monitoring(owner_id)
    return [_check_response(r) for r in results]


# Watcher

@router.get("/watcher/status")
async def watcher_status(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    return services.watcher.status(owner_id)


@router.get("/watcher/pending", response_model=List[PendingFileResponse])
async def list_pending(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    return services.store.list_pending(owner_id)


@router.post("/watcher/scan")
async def trigger_watcher_scan(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    """Scan manuel de toutes les paires source/destination."""
    return {"results": await services.watcher.trigger_scan(owner_id)}


@router.post("/watcher/start")
async def start_watcher(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    services.store.save_settings(owner_id, download_watcher_enabled=True)
    services.scheduler.apply_settings(owner_id)
    return services.watcher.status(owner_id)


@router.post("/watcher/stop")
async def stop_watcher(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    services.store.save_settings(owner_id, download_watcher_enabled=False)
    services.scheduler.stop_watcher(owner_id)
    return services.watcher.status(owner_id)


@router.post("/watcher/pending/{pending_id}/approve")
async def approve_pending(pending_id: str, owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    """Approuve un fichier en attente (409 si la destination existe)."""
    destination = await services.watcher.approve(owner_id, pending_id)
    return {"message": "File moved", "destination": destination}


@router.post("/watcher/pending/{pending_id}/reject")
async def reject_pending(pending_id: str, owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    services.watcher.reject(owner_id, pending_id)
    return {"message": "File rejected"}


# Renames

@router.post("/renames/preview", response_model=List[RenameProposalModel])
async def preview_renames(
    request: RenamePreviewRequest,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Prévisualise les renommages sans toucher aux fichiers."""
    proposals = await services.renamer.preview_renames(owner_id, request.kind, request.format)
    return [_proposal_model(p) for p in proposals]


@router.post("/renames/apply", response_model=RenameBatchResponse)
async def apply_renames(
    request: RenameApplyRequest,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    proposals = [
        RenameProposal(p.kind, p.entity_id, p.current_path, p.new_path, p.season, p.episode)
        for p in request.proposals
    ]
    result = await services.renamer.apply_renames(owner_id, proposals)
    return RenameBatchResponse(succeeded=result.succeeded, failed=result.failed, errors=result.errors)


@router.get("/renames/status")
async def rename_status(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    return services.renamer.status(owner_id)


@router.post("/renames/run")
async def run_auto_rename(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    """Lance le renommage automatique maintenant (films puis séries)."""
    results = await services.renamer.run_auto_rename(owner_id)
    return {
        kind: {"succeeded": r.succeeded, "failed": r.failed, "errors": r.errors}
        for kind, r in results.items()
    }


# History

@router.get("/history", response_model=List[HistoryResponse])
async def list_history(
    limit: int = 50,
    offset: int = 0,
    media_type: Optional[str] = None,
    status: Optional[str] = None,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    return services.store.list_history(owner_id, limit=limit, offset=offset, media_type=media_type, status=status)


@router.get("/history/stats")
async def history_stats(owner_id: str = Depends(get_owner_id), services: Services = Depends(get_services)):
    return services.store.history_stats(owner_id)


@router.patch("/history/{entry_id}", response_model=HistoryResponse)
async def update_history(
    entry_id: int,
    request: HistoryUpdate,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Met à jour le statut d'une entrée (seuls champs modifiables)."""
    return services.store.update_history(
        owner_id,
        entry_id,
        status=request.status.value if request.status else None,
        download_client_id=request.download_client_id,
    )


# Diagnostics

@router.get("/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(services: Services = Depends(get_services)):
    """Vérifie les connexions à Prowlarr et qBittorrent."""
    results = {
        "prowlarr": {"configured": services.search is not None, "connected": False, "error": None},
        "qbittorrent": {"configured": services.downloader is not None, "connected": False, "error": None},
    }

    if services.search is not None:
        try:
            results["prowlarr"].update(await services.search.test_connection())
            results["prowlarr"]["connected"] = True
        except Exception as e:
            results["prowlarr"]["error"] = str(e)

    if services.downloader is not None:
        try:
            results["qbittorrent"].update(await asyncio.to_thread(services.downloader.test_connection))
            results["qbittorrent"]["connected"] = True
        except Exception as e:
            results["qbittorrent"]["error"] = str(e)

    return DiagnosticsResponse(**results)
