"""Bounded council selection.

Selections are immutable values: ``toggle`` and ``clear`` return a new
selection and leave the original untouched. Adding past ``max_selections``
is silently ignored, which is a normal UI state and not an error.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_MAX_SELECTIONS = 3


class CouncilSelectionSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    members: tuple[str, ...] = ()
    max_selections: int = Field(default=DEFAULT_MAX_SELECTIONS, ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> CouncilSelectionSet:
        if len(set(self.members)) != len(self.members):
            raise ValueError("council selection contains duplicate members")
        if len(self.members) > self.max_selections:
            raise ValueError(
                f"council selection has {len(self.members)} members, max is {self.max_selections}"
            )
        return self

    def __contains__(self, member_id: object) -> bool:
        return member_id in self.members

    def __len__(self) -> int:
        return len(self.members)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.max_selections

    @property
    def is_empty(self) -> bool:
        return not self.members

    def can_select(self, member_id: str) -> bool:
        return member_id in self.members or not self.is_full

    def toggle(self, member_id: str) -> CouncilSelectionSet:
        """Remove ``member_id`` if selected, else add it when there is room."""
        if member_id in self.members:
            kept = tuple(m for m in self.members if m != member_id)
            return self.model_copy(update={"members": kept})
        if self.is_full:
            return self
        return self.model_copy(update={"members": (*self.members, member_id)})

    def clear(self) -> CouncilSelectionSet:
        return self.model_copy(update={"members": ()})

    def as_list(self) -> list[str]:
        return list(self.members)
