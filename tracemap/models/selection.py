"""
selection.py — What the operator is currently looking at.

A Selection is a tagged value: either one user's trace or the aggregate
trace for a demographic filter set. Exactly one is active at a time.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from tracemap.models.location import FilterCriteria


class Mode(str, Enum):
    USER = "user"
    FILTER = "filter"


@dataclass(frozen=True)
class UserSelection:
    user_id: Optional[str] = None    # None = nothing picked yet

    mode = Mode.USER

    def is_empty(self) -> bool:
        return not self.user_id


@dataclass(frozen=True)
class FilterSelection:
    criteria: FilterCriteria = field(default_factory=FilterCriteria)

    mode = Mode.FILTER

    def is_empty(self) -> bool:
        return self.criteria.is_empty()


Selection = Union[UserSelection, FilterSelection]


def empty_selection(mode: Mode) -> Selection:
    return UserSelection() if mode is Mode.USER else FilterSelection()
