import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime, Integer, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .config import FILM_NAME_MAX_LENGTH


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    films: Mapped[list["Film"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class Film(Base):
    __tablename__ = "films"
    __table_args__ = (Index("ix_films_user_id_rank", "user_id", "rank"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(FILM_NAME_MAX_LENGTH), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # Dense 1..N per owner. Not unique: a reorder rewrites several rows per transaction.
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    photo_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    user: Mapped["User"] = relationship(back_populates="films")


class FilmCatalog(Base):
    __tablename__ = "film_catalog"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(FILM_NAME_MAX_LENGTH), unique=True, nullable=False)


Index("ix_film_catalog_lower_name", func.lower(FilmCatalog.name))
