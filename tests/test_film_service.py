import asyncio
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from filmlist import film_service as film_service_module
from filmlist.errors import NotFound, StorageUnavailable, ValidationFailed
from filmlist.film_service import FilmListService
from filmlist.film_store import FilmStore
from filmlist.locks import owner_lock
from tests.helpers import assert_dense, names


async def _seed(session_factory, owner, *film_names):
    async with session_factory() as session:
        service = FilmListService(session)
        films = []
        for name in film_names:
            result = await service.add_item(owner.id, name)
            films.append(result.film)
        return films


async def _list(session_factory, owner):
    async with session_factory() as session:
        return await FilmListService(session).list_for_owner(owner.id)


def _storage_down(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))


# =============================================================================
# Add / list
# =============================================================================


async def test_add_item_returns_refreshed_list_and_message(db, alice):
    service = FilmListService(db)

    result = await service.add_item(alice.id, "  Heat ")

    assert result.message == 'Added "Heat" to your films.'
    assert result.film.name == "Heat"
    assert names(result.films) == ["Heat"]
    assert_dense(result.films)


async def test_add_blank_item_leaves_list_unchanged(session_factory, alice):
    await _seed(session_factory, alice, "Alpha")

    async with session_factory() as session:
        result = await FilmListService(session).add_item(alice.id, "   ")

    assert result.message is None
    assert result.film is None
    assert names(result.films) == ["Alpha"]
    assert names(await _list(session_factory, alice)) == ["Alpha"]


async def test_add_item_commits(session_factory, alice):
    await _seed(session_factory, alice, "Alpha", "Beta")

    films = await _list(session_factory, alice)
    assert names(films) == ["Alpha", "Beta"]
    assert_dense(films)


async def test_add_overlong_name_is_rejected(session_factory, alice):
    async with session_factory() as session:
        with pytest.raises(ValidationFailed):
            await FilmListService(session).add_item(alice.id, "x" * 200)
    assert await _list(session_factory, alice) == []


# =============================================================================
# Delete
# =============================================================================


async def test_delete_item_reranks(session_factory, alice):
    alpha, _, _ = await _seed(session_factory, alice, "Alpha", "Beta", "Gamma")

    async with session_factory() as session:
        result = await FilmListService(session).delete_item(alice.id, alpha.id)

    assert result.removed is True
    assert [(f.name, f.rank) for f in result.films] == [("Beta", 1), ("Gamma", 2)]
    assert [(f.name, f.rank) for f in await _list(session_factory, alice)] == [("Beta", 1), ("Gamma", 2)]


async def test_delete_foreign_item_changes_nothing(session_factory, alice, bob):
    await _seed(session_factory, alice, "Alpha", "Beta")
    (gamma,) = await _seed(session_factory, bob, "Gamma")

    async with session_factory() as session:
        result = await FilmListService(session).delete_item(alice.id, gamma.id)

    assert result.removed is False
    assert names(result.films) == ["Alpha", "Beta"]
    assert names(await _list(session_factory, bob)) == ["Gamma"]


async def test_concurrent_deletes_keep_ranks_dense(session_factory, alice):
    films = await _seed(session_factory, alice, "A", "B", "C", "D", "E")

    async def _delete(film_id):
        async with session_factory() as session:
            return await FilmListService(session).delete_item(alice.id, film_id)

    await asyncio.gather(_delete(films[0].id), _delete(films[2].id), _delete(films[3].id))

    remaining = await _list(session_factory, alice)
    assert names(remaining) == ["B", "E"]
    assert_dense(remaining)


async def test_concurrent_adds_keep_ranks_dense(session_factory, alice):
    async def _add(name):
        async with session_factory() as session:
            return await FilmListService(session).add_item(alice.id, name)

    await asyncio.gather(*(_add(f"Film {i}") for i in range(6)))

    films = await _list(session_factory, alice)
    assert len(films) == 6
    assert_dense(films)


# =============================================================================
# Reorder
# =============================================================================


async def test_reorder_items(session_factory, alice):
    alpha, beta, gamma = await _seed(session_factory, alice, "Alpha", "Beta", "Gamma")

    async with session_factory() as session:
        films = await FilmListService(session).reorder_items(alice.id, [gamma.id, alpha.id, beta.id])

    assert [(f.name, f.rank) for f in films] == [("Gamma", 1), ("Alpha", 2), ("Beta", 3)]
    assert [(f.name, f.rank) for f in await _list(session_factory, alice)] == [
        ("Gamma", 1),
        ("Alpha", 2),
        ("Beta", 3),
    ]


async def test_reorder_rejection_does_not_mutate(session_factory, alice, bob):
    alpha, beta = await _seed(session_factory, alice, "Alpha", "Beta")
    (gamma,) = await _seed(session_factory, bob, "Gamma")

    async with session_factory() as session:
        service = FilmListService(session)
        with pytest.raises(ValidationFailed):
            await service.reorder_items(alice.id, [beta.id])
        with pytest.raises(ValidationFailed):
            await service.reorder_items(alice.id, [gamma.id, beta.id, alpha.id])

    assert names(await _list(session_factory, alice)) == ["Alpha", "Beta"]
    assert names(await _list(session_factory, bob)) == ["Gamma"]


# =============================================================================
# Search
# =============================================================================


async def test_blank_search_short_circuits(db, alice, monkeypatch):
    async def _unexpected(*args, **kwargs):
        raise AssertionError("catalog should not be queried")

    monkeypatch.setattr(film_service_module, "search_catalog", _unexpected)

    result = await FilmListService(db).search_catalog(alice.id, "   ")

    assert result.results == []
    assert result.term is None


async def test_search_excludes_owned_names(session_factory, alice, bob, catalog):
    await _seed(session_factory, alice, "Abacus", "Babe")
    await _seed(session_factory, bob, "Casablanca")

    async with session_factory() as session:
        result = await FilmListService(session).search_catalog(alice.id, "  AB ")

    assert result.term == "AB"
    found = [entry.name for entry in result.results]
    assert "Abacus" not in found
    assert "Babe" not in found
    assert "Casablanca" in found


async def test_search_with_empty_list_excludes_nothing(db, alice, catalog):
    result = await FilmListService(db).search_catalog(alice.id, "ab", limit=3)
    assert [entry.name for entry in result.results] == ["Abacus", "Alphabet City", "Babe"]


# =============================================================================
# Detail / photos
# =============================================================================


async def test_item_detail_of_foreign_film_is_not_found(session_factory, alice, bob):
    (gamma,) = await _seed(session_factory, bob, "Gamma")

    async with session_factory() as session:
        with pytest.raises(NotFound):
            await FilmListService(session).item_detail(alice.id, gamma.id)


async def test_attach_and_detach_photo(session_factory, alice):
    (alpha,) = await _seed(session_factory, alice, "Alpha")

    async with session_factory() as session:
        service = FilmListService(session)
        film, previous = await service.attach_photo(alice.id, alpha.id, "alpha.png")
        assert film.photo_path == "alpha.png"
        assert previous is None

    async with session_factory() as session:
        service = FilmListService(session)
        assert (await service.item_detail(alice.id, alpha.id)).photo_path == "alpha.png"
        assert await service.detach_photo(alice.id, alpha.id) == "alpha.png"
        assert (await service.item_detail(alice.id, alpha.id)).photo_path is None


async def test_attach_photo_unknown_film_propagates_not_found(db, alice):
    with pytest.raises(NotFound):
        await FilmListService(db).attach_photo(alice.id, uuid.uuid4(), "x.png")


# =============================================================================
# Storage failures
# =============================================================================


async def test_read_storage_failure_is_reported(db, alice, monkeypatch):
    monkeypatch.setattr(FilmStore, "list_films", _storage_down)

    with pytest.raises(StorageUnavailable):
        await FilmListService(db).list_for_owner(alice.id)


async def test_failed_rerank_rolls_back_delete(session_factory, alice, monkeypatch):
    alpha, _, _ = await _seed(session_factory, alice, "Alpha", "Beta", "Gamma")

    async def _rerank_down(self):
        _storage_down()

    monkeypatch.setattr(FilmStore, "rerank", _rerank_down)
    async with session_factory() as session:
        with pytest.raises(StorageUnavailable):
            await FilmListService(session).delete_item(alice.id, alpha.id)
    monkeypatch.undo()

    films = await _list(session_factory, alice)
    assert names(films) == ["Alpha", "Beta", "Gamma"]
    assert_dense(films)


# =============================================================================
# Locks
# =============================================================================


def test_owner_locks_are_per_owner():
    first, second = uuid.uuid4(), uuid.uuid4()
    lock = owner_lock(first)

    assert owner_lock(first) is lock
    assert owner_lock(second) is not lock
