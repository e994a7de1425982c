"""Authorization gate: participant and profile-visibility checks."""
from __future__ import annotations

from eventro_chat.application.exceptions import ForbiddenError, NotAParticipantError
from eventro_chat.application.repositories.participant import ParticipantReader
from eventro_chat.domain.entities.user import User
from eventro_chat.domain.value_objects.enums import VisibilityPolicy


async def authorize_participant(
    participants: ParticipantReader,
    user_id: int,
    conversation_id: int,
) -> bool:
    return await participants.is_active_participant(conversation_id, user_id)


async def assert_participant(
    participants: ParticipantReader,
    user_id: int,
    conversation_id: int,
) -> None:
    if not await authorize_participant(participants, user_id, conversation_id):
        raise NotAParticipantError()


def authorize_visibility(user: User, policy: VisibilityPolicy) -> bool:
    if policy == VisibilityPolicy.PUBLIC_ONLY:
        return user.is_public
    return True


def assert_can_send(user: User, policy: VisibilityPolicy) -> None:
    if not authorize_visibility(user, policy):
        raise ForbiddenError("A public profile is required to send messages")


def public_senders_only(policy: VisibilityPolicy) -> bool:
    """Whether listings hide messages from non-public senders."""
    return policy == VisibilityPolicy.PUBLIC_ONLY


def assert_same_user(authenticated_id: int, claimed_id: int) -> None:
    if authenticated_id != claimed_id:
        raise ForbiddenError("user_id does not match the authenticated user")
