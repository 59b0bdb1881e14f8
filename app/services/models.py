"""Shared dataclasses for service layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Person:
    """A cast or crew member. Scoring keys on ``id``; ``name`` is display only."""

    id: int
    name: str = ""


@dataclass(slots=True, frozen=True, eq=False)
class Movie:
    """Movie metadata as used by search, details and recommendations.

    Abbreviated movies (search hits, discovery results) only carry id, title,
    poster and overview; the list fields stay empty. Two movies are equal when
    their ids match, whatever the other fields hold.
    """

    id: int
    title: str = ""
    poster_url: str = ""
    overview: str = ""
    genres: tuple[str, ...] = ()
    cast: tuple[Person, ...] = ()
    directors: tuple[Person, ...] = ()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Movie):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)
