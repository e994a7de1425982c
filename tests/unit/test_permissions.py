from __future__ import annotations

import pytest

from eventro_chat.application.exceptions import ForbiddenError, NotAParticipantError
from eventro_chat.application.policies.permissions import (
    assert_participant,
    assert_same_user,
    authorize_participant,
    authorize_visibility,
    public_senders_only,
)
from eventro_chat.domain.value_objects.enums import ProfileVisibility, VisibilityPolicy
from tests.conftest import FakeStore, FakeUoW, make_user


@pytest.mark.asyncio
async def test_authorize_participant_is_false_for_inactive(store: FakeStore, uow: FakeUoW):
    conv = store.add_conversation(1, inactive=(2,))

    assert await authorize_participant(uow.participants, 1, conv.id) is True
    assert await authorize_participant(uow.participants, 2, conv.id) is False
    assert await authorize_participant(uow.participants, 3, conv.id) is False
    with pytest.raises(NotAParticipantError):
        await assert_participant(uow.participants, 2, conv.id)


@pytest.mark.asyncio
async def test_unknown_conversation_is_not_a_participant(uow: FakeUoW):
    with pytest.raises(NotAParticipantError):
        await assert_participant(uow.participants, 1, 12345)


def test_visibility_policy():
    private = make_user(1, visibility=ProfileVisibility.PRIVATE)
    public = make_user(2)

    assert authorize_visibility(private, VisibilityPolicy.ANY) is True
    assert authorize_visibility(private, VisibilityPolicy.PUBLIC_ONLY) is False
    assert authorize_visibility(public, VisibilityPolicy.PUBLIC_ONLY) is True
    assert public_senders_only(VisibilityPolicy.PUBLIC_ONLY) is True
    assert public_senders_only(VisibilityPolicy.ANY) is False


def test_assert_same_user():
    assert_same_user(5, 5)
    with pytest.raises(ForbiddenError):
        assert_same_user(5, 6)
