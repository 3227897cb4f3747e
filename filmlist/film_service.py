import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import search_catalog
from .errors import STORAGE_ERRORS, StorageUnavailable, ValidationFailed
from .film_store import FilmStore, normalize_film_name
from .locks import owner_lock
from .models import Film, FilmCatalog

logger = logging.getLogger(__name__)


@dataclass
class FilmListResult:
    films: list[Film]
    message: str | None = None
    film: Film | None = None
    removed: bool = False


@dataclass
class SearchResult:
    results: list[FilmCatalog]
    term: str | None = None


class FilmListService:
    """Use-cases over one owner's film list.

    Each mutating call is a single transaction, run under the owner's
    in-process lock and the owner's row lock, and committed once.
    Reads go straight to the store.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _reading(self, owner_id: uuid.UUID) -> AsyncIterator[FilmStore]:
        try:
            yield FilmStore(self.db, owner_id)
        except STORAGE_ERRORS as exc:
            await self._rollback_after_storage_error()
            logger.warning("Film storage unavailable during read (owner=%s): %s", owner_id, exc)
            raise StorageUnavailable("Film storage is unavailable") from exc

    @asynccontextmanager
    async def _writing(self, owner_id: uuid.UUID) -> AsyncIterator[FilmStore]:
        async with owner_lock(owner_id):
            store = FilmStore(self.db, owner_id)
            try:
                await store.lock()
                yield store
                await self.db.commit()
            except STORAGE_ERRORS as exc:
                await self._rollback_after_storage_error()
                logger.warning("Film storage unavailable during write (owner=%s): %s", owner_id, exc)
                raise StorageUnavailable("Film storage is unavailable") from exc
            except BaseException:
                await self.db.rollback()
                raise

    async def _rollback_after_storage_error(self) -> None:
        try:
            await self.db.rollback()
        except STORAGE_ERRORS:
            logger.warning("Rollback failed after storage error", exc_info=True)

    async def list_for_owner(self, owner_id: uuid.UUID) -> list[Film]:
        async with self._reading(owner_id) as store:
            return await store.list_films()

    async def item_detail(self, owner_id: uuid.UUID, film_id: uuid.UUID) -> Film:
        async with self._reading(owner_id) as store:
            return await store.find_detail(film_id)

    async def add_item(self, owner_id: uuid.UUID, raw_name: str | None) -> FilmListResult:
        name = normalize_film_name(raw_name)
        if not name:
            return FilmListResult(films=await self.list_for_owner(owner_id))

        async with self._writing(owner_id) as store:
            film = await store.add(name)
            films = await store.list_films()
        logger.info("Film added (owner=%s, film=%s, rank=%s)", owner_id, film.id, film.rank)
        return FilmListResult(
            films=films,
            message=f'Added "{film.name}" to your films.',
            film=film,
        )

    async def delete_item(self, owner_id: uuid.UUID, film_id: uuid.UUID) -> FilmListResult:
        async with self._writing(owner_id) as store:
            removed = await store.delete_by_id(film_id)
            films = await store.list_films()
        if removed:
            logger.info("Film removed (owner=%s, film=%s, remaining=%s)", owner_id, film_id, len(films))
        return FilmListResult(films=films, removed=removed)

    async def reorder_items(self, owner_id: uuid.UUID, film_ids: Sequence[uuid.UUID]) -> list[Film]:
        try:
            async with self._writing(owner_id) as store:
                films = await store.reorder(film_ids)
        except ValidationFailed as exc:
            logger.warning("Reorder rejected (owner=%s, ids=%s): %s", owner_id, len(film_ids), exc)
            raise
        logger.info("Films reordered (owner=%s, count=%s)", owner_id, len(films))
        return films

    async def search_catalog(
        self,
        owner_id: uuid.UUID,
        raw_term: str | None,
        limit: int | None = None,
    ) -> SearchResult:
        term = (raw_term or "").strip()
        if not term:
            return SearchResult(results=[])

        async with self._reading(owner_id) as store:
            owned_names = await store.names()
            results = await search_catalog(self.db, term, owned_names, limit=limit)
        return SearchResult(results=results, term=term)

    async def attach_photo(
        self, owner_id: uuid.UUID, film_id: uuid.UUID, photo_ref: str
    ) -> tuple[Film, str | None]:
        async with self._writing(owner_id) as store:
            film, previous = await store.attach_photo(film_id, photo_ref)
        logger.info("Photo attached (owner=%s, film=%s, replaced=%s)", owner_id, film_id, previous is not None)
        return film, previous

    async def detach_photo(self, owner_id: uuid.UUID, film_id: uuid.UUID) -> str | None:
        async with self._writing(owner_id) as store:
            previous = await store.detach_photo(film_id)
        if previous:
            logger.info("Photo detached (owner=%s, film=%s)", owner_id, film_id)
        return previous
