from __future__ import annotations

from eventro_chat.domain.entities.user import User
from eventro_chat.domain.value_objects.enums import ProfileVisibility
from eventro_chat.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    try:
        visibility = ProfileVisibility(model.profile_visibility)
    except ValueError:
        visibility = ProfileVisibility.PRIVATE
    return User(
        id=model.id,
        display_name=model.fullname,
        avatar_ref=model.profile_picture,
        profile_visibility=visibility,
    )
