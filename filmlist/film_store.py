import uuid
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import FILM_NAME_MAX_LENGTH
from .errors import NotFound, ValidationFailed
from .models import Film, User


def normalize_film_name(name: str | None) -> str:
    return (name or "").strip()


class FilmStore:
    """Ordered films of a single owner.

    Every statement issued here is filtered by ``owner_id``; there is no way to
    read or write another owner's rows through a store instance. Ranks are kept
    dense (``1..N``) by the mutating methods. Nothing is committed here: the
    caller owns the transaction, so a mutation and its re-rank are applied
    together or not at all.
    """

    def __init__(self, db: AsyncSession, owner_id: uuid.UUID):
        self.db = db
        self.owner_id = owner_id

    def _owned(self):
        return (
            select(Film)
            .where(Film.user_id == self.owner_id)
            .execution_options(populate_existing=True)
        )

    async def lock(self) -> None:
        """Serialize this owner's mutations across connections.

        Row lock on the owner's ``users`` row for the rest of the current
        transaction. Backends without ``FOR UPDATE`` (SQLite) skip the clause.
        """
        await self.db.execute(
            select(User.id).where(User.id == self.owner_id).with_for_update()
        )

    async def list_films(self) -> list[Film]:
        rows = (
            await self.db.execute(
                self._owned().order_by(Film.rank.asc(), Film.created_at.asc(), Film.id.asc())
            )
        ).scalars().all()
        return list(rows)

    async def names(self) -> list[str]:
        rows = (
            await self.db.execute(select(Film.name).where(Film.user_id == self.owner_id))
        ).scalars().all()
        return list(rows)

    async def max_rank(self) -> int:
        value = await self.db.scalar(
            select(func.max(Film.rank)).where(Film.user_id == self.owner_id)
        )
        return int(value or 0)

    async def add(self, name: str) -> Film | None:
        normalized = normalize_film_name(name)
        if not normalized:
            return None
        if len(normalized) > FILM_NAME_MAX_LENGTH:
            raise ValidationFailed(f"Film name must be at most {FILM_NAME_MAX_LENGTH} characters")
        film = Film(
            user_id=self.owner_id,
            name=normalized,
            rank=await self.max_rank() + 1,
        )
        self.db.add(film)
        await self.db.flush()
        return film

    async def find_detail(self, film_id: uuid.UUID) -> Film:
        film = (
            await self.db.execute(self._owned().where(Film.id == film_id))
        ).scalar_one_or_none()
        if film is None:
            raise NotFound(film_id)
        return film

    async def delete_by_id(self, film_id: uuid.UUID) -> bool:
        film = (
            await self.db.execute(self._owned().where(Film.id == film_id))
        ).scalar_one_or_none()
        removed = film is not None
        if removed:
            await self.db.delete(film)
            await self.db.flush()
        await self.rerank()
        return removed

    async def rerank(self) -> list[Film]:
        films = await self.list_films()
        for idx, film in enumerate(films, start=1):
            if film.rank != idx:
                film.rank = idx
        await self.db.flush()
        return films

    async def reorder(self, film_ids: Sequence[uuid.UUID]) -> list[Film]:
        unique_ids = list(dict.fromkeys(film_ids))
        if len(unique_ids) != len(film_ids):
            raise ValidationFailed("Duplicate film ids are not allowed")

        films = await self.list_films()
        film_by_id = {film.id: film for film in films}
        if set(unique_ids) != set(film_by_id):
            raise ValidationFailed("Reorder payload must include every film exactly once")

        for idx, film_id in enumerate(unique_ids, start=1):
            film_by_id[film_id].rank = idx
        await self.db.flush()
        return [film_by_id[film_id] for film_id in unique_ids]

    async def attach_photo(self, film_id: uuid.UUID, photo_ref: str) -> tuple[Film, str | None]:
        """Set the photo reference and return the film with the replaced reference."""
        film = await self.find_detail(film_id)
        previous = film.photo_path
        film.photo_path = photo_ref
        await self.db.flush()
        return film, previous

    async def detach_photo(self, film_id: uuid.UUID) -> str | None:
        film = await self.find_detail(film_id)
        previous = film.photo_path
        film.photo_path = None
        await self.db.flush()
        return previous
