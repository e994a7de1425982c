from __future__ import annotations

from dataclasses import dataclass

from eventro_chat.domain.value_objects.enums import ProfileVisibility


@dataclass(frozen=True, slots=True)
class User:
    """Read-only identity owned by the platform's user service."""

    id: int
    display_name: str
    avatar_ref: str | None
    profile_visibility: ProfileVisibility

    @property
    def is_public(self) -> bool:
        return self.profile_visibility == ProfileVisibility.PUBLIC
