from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_user
from .config import FILM_NAME_MAX_LENGTH, SEARCH_RATE_LIMIT
from .database import get_db
from .film_service import FilmListService
from .models import Film, FilmCatalog, User
from .ratelimit import limiter
from .uploads import photo_url, remove_photo, save_photo

router = APIRouter(prefix="/api/films", tags=["films"])


class AddFilmRequest(BaseModel):
    name: str = Field(max_length=500)


class ReorderFilmsRequest(BaseModel):
    film_ids: list[UUID] = Field(max_length=2000)


def get_film_service(db: AsyncSession = Depends(get_db)) -> FilmListService:
    return FilmListService(db)


def _serialize_film(film: Film) -> dict:
    return {
        "id": str(film.id),
        "name": film.name,
        "rank": int(film.rank),
        "photo_path": film.photo_path,
        "photo_url": photo_url(film.photo_path),
        "created_at": film.created_at.isoformat() if film.created_at else None,
    }


def _serialize_catalog_entry(entry: FilmCatalog) -> dict:
    return {
        "id": str(entry.id),
        "name": entry.name,
    }


@router.get("")
async def list_films(
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    films = await service.list_for_owner(user.id)
    return {"results": [_serialize_film(film) for film in films]}


@router.post("")
async def add_film(
    body: AddFilmRequest,
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    result = await service.add_item(user.id, body.name)
    return {
        "ok": True,
        "added": result.film is not None,
        "message": result.message,
        "film": _serialize_film(result.film) if result.film else None,
        "results": [_serialize_film(film) for film in result.films],
    }


@router.get("/search")
@limiter.limit(SEARCH_RATE_LIMIT)
async def search_catalog(
    request: Request,
    q: str = Query("", max_length=FILM_NAME_MAX_LENGTH),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    result = await service.search_catalog(user.id, q, limit=limit)
    return {
        "results": [_serialize_catalog_entry(entry) for entry in result.results],
        "search": result.term,
    }


@router.put("/reorder")
@router.post("/reorder")
async def reorder_films(
    body: ReorderFilmsRequest,
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    films = await service.reorder_items(user.id, body.film_ids)
    return {"ok": True, "results": [_serialize_film(film) for film in films]}


@router.get("/{film_id}")
async def get_film(
    film_id: UUID,
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    film = await service.item_detail(user.id, film_id)
    return {"film": _serialize_film(film)}


@router.delete("/{film_id}")
async def delete_film(
    film_id: UUID,
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    result = await service.delete_item(user.id, film_id)
    return {
        "ok": True,
        "removed": result.removed,
        "results": [_serialize_film(film) for film in result.films],
    }


@router.post("/{film_id}/photo")
async def upload_film_photo(
    film_id: UUID,
    photo: UploadFile = File(...),
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    # Ownership is checked before any bytes are written.
    await service.item_detail(user.id, film_id)
    photo_ref = await save_photo(film_id, photo)
    try:
        film, previous_ref = await service.attach_photo(user.id, film_id, photo_ref)
    except Exception:
        await remove_photo(photo_ref)
        raise
    if previous_ref and previous_ref != photo_ref:
        await remove_photo(previous_ref)
    return {"ok": True, "film": _serialize_film(film)}


@router.delete("/{film_id}/photo")
async def delete_film_photo(
    film_id: UUID,
    user: User = Depends(get_current_user),
    service: FilmListService = Depends(get_film_service),
):
    previous_ref = await service.detach_photo(user.id, film_id)
    await remove_photo(previous_ref)
    film = await service.item_detail(user.id, film_id)
    return {"ok": True, "removed": previous_ref is not None, "film": _serialize_film(film)}
