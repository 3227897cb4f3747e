from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import FilmCatalog


async def search_catalog(
    db: AsyncSession,
    term: str,
    exclude_names: Iterable[str] = (),
    limit: int | None = None,
) -> list[FilmCatalog]:
    """Case-insensitive substring search over catalog names.

    ``exclude_names`` is compared verbatim (after trimming), without case
    folding. An empty exclusion set applies no exclusion filter at all.
    Callers are expected to pass a non-blank, trimmed ``term``.
    """
    query = select(FilmCatalog).where(
        FilmCatalog.name.icontains(term, autoescape=True)
    )
    excluded = sorted({name.strip() for name in exclude_names if name and name.strip()})
    if excluded:
        query = query.where(FilmCatalog.name.not_in(excluded))
    query = query.order_by(FilmCatalog.name.asc())
    if limit is not None:
        query = query.limit(limit)
    return list((await db.execute(query)).scalars().all())


async def seed_catalog(db: AsyncSession, names: Iterable[str]) -> int:
    wanted: list[str] = []
    for raw in names:
        name = (raw or "").strip()
        if name and name not in wanted:
            wanted.append(name)
    if not wanted:
        return 0

    existing = set(
        (await db.execute(select(FilmCatalog.name).where(FilmCatalog.name.in_(wanted)))).scalars().all()
    )
    inserted = 0
    for name in wanted:
        if name in existing:
            continue
        db.add(FilmCatalog(name=name))
        inserted += 1
    await db.flush()
    return inserted
