from typing import Iterable, Optional, Protocol, TypeVar


class SeriesMember(Protocol):
    category: object
    subcategory: str
    recurring: bool
    amount_cents: int
    frequency: object
    due_day_of_month: Optional[int]
    month: int
    year: int


T = TypeVar("T", bound=SeriesMember)

SERIES_FIELDS = (
    "category",
    "subcategory",
    "amount_cents",
    "frequency",
    "due_day_of_month",
)


def _field(entry: SeriesMember, name: str) -> object:
    value = getattr(entry, name)
    # Enum members and their raw values compare equal.
    return getattr(value, "value", value)


def is_same_series(entry: SeriesMember, representative: SeriesMember) -> bool:
    if entry.recurring is not True:
        return False
    return all(
        _field(entry, name) == _field(representative, name) for name in SERIES_FIELDS
    )


def find_series(representative: SeriesMember, corpus: Iterable[T]) -> list[T]:
    """Entries of the same recurring series, oldest month first."""
    matches = [entry for entry in corpus if is_same_series(entry, representative)]
    matches.sort(key=lambda entry: (entry.year, entry.month))
    return matches


def partition(
    matches: Iterable[T],
    delete_all: bool,
    cutoff_month: Optional[int] = None,
    cutoff_year: Optional[int] = None,
) -> list[T]:
    if delete_all:
        return list(matches)
    from_month = cutoff_month or 0
    from_year = cutoff_year or 0
    return [
        entry
        for entry in matches
        if entry.year > from_year
        or (entry.year == from_year and entry.month >= from_month)
    ]
