"""Tests for record helpers and Mattermost payload parsing."""

from datetime import UTC, datetime

from mattermost_relay.models import (
    DirectConversation,
    PostList,
    RemotePost,
    RemoteStatus,
    RemoteUser,
    from_epoch_ms,
)


def test_from_epoch_ms_is_aware_utc():
    assert from_epoch_ms(1_500) == datetime(1970, 1, 1, 0, 0, 1, 500_000, tzinfo=UTC)


class TestDirectConversation:
    def test_pair_is_unordered(self):
        conv = DirectConversation(id="c", channel_id="ch", user_id_1="a", user_id_2="b")
        assert conv.is_between("a", "b")
        assert conv.is_between("b", "a")
        assert not conv.is_between("a", "c")

    def test_other_participant(self):
        conv = DirectConversation(id="c", channel_id="ch", user_id_1="a", user_id_2="b")
        assert conv.other_participant("a") == "b"
        assert conv.other_participant("b") == "a"
        assert conv.involves("b")
        assert not conv.involves("z")


class TestRemotePayloads:
    def test_user_tolerates_missing_fields(self):
        user = RemoteUser.from_api({"id": "u1", "username": "alice"})
        assert user.email == ""
        assert user.first_name == ""

    def test_post_updated_falls_back_to_created(self):
        post = RemotePost.from_api(
            {
                "id": "p",
                "channel_id": "c",
                "user_id": "u",
                "message": "m",
                "create_at": 2_000,
                "update_at": 0,
                "props": None,
            }
        )
        assert post.updated == post.created
        assert post.props == {}

    def test_post_list_keeps_order_as_given(self):
        posts = PostList.from_api(
            {
                "order": ["b", "a", "ghost"],
                "posts": {
                    "a": {"id": "a", "create_at": 1},
                    "b": {"id": "b", "create_at": 2},
                },
            }
        )
        assert posts.order == ["b", "a", "ghost"]
        assert set(posts.posts) == {"a", "b"}
        assert posts.posts["a"].created.timestamp() == 0.001

    def test_post_list_empty_payload(self):
        posts = PostList.from_api({})
        assert posts.posts == {}
        assert posts.order == []

    def test_status(self):
        status = RemoteStatus.from_api({"user_id": "u", "status": "away"})
        assert status.status == "away"
        assert status.manual is False
