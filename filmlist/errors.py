from sqlalchemy.exc import InterfaceError, OperationalError


class FilmListError(Exception):
    pass


class NotFound(FilmListError):
    """The film does not exist or belongs to another owner.

    Both cases are reported the same way so callers cannot probe for
    other users' data.
    """

    def __init__(self, film_id=None):
        self.film_id = film_id
        super().__init__("Film not found")


class ValidationFailed(FilmListError):
    pass


class StorageUnavailable(FilmListError):
    pass


STORAGE_ERRORS = (OperationalError, InterfaceError, OSError)
