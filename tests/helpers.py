def ranks(films) -> list[int]:
    return [film.rank for film in films]


def names(films) -> list[str]:
    return [film.name for film in films]


def assert_dense(films) -> None:
    assert ranks(films) == list(range(1, len(films) + 1))
