"""Tests for row mapping, identity maps and join fan-out deduplication."""

from __future__ import annotations

import pytest

from relata.errors import ResolutionError
from relata.mapper import EntityMapper, ResultMapper, SelectItem
from tests.models import Post, Topic, User


def user_mapper(with_posts=True):
    mapper = EntityMapper(User.schema(), {"id": "id", "name": "name", "email": "email"})
    if with_posts:
        mapper.add_component(
            "posts",
            EntityMapper(
                Post.schema(),
                {"id": "post_id", "title": "post_title", "user_fk": "post_user_fk", "topic_fk": "post_topic_fk"},
            ),
        )
    return mapper


class TestFanOut:
    def test_one_to_many_rows_collapse_to_one_result(self):
        rows = [
            {"id": 1, "name": "Alice", "post_id": 10},
            {"id": 1, "name": "Alice", "post_id": 11},
            {"id": 2, "name": "Bob", "post_id": None},
        ]
        result = ResultMapper([SelectItem("User", "")], {None: user_mapper()}, True).map(rows)

        assert len(result) == 2
        alice, bob = result[0]["User"], result[1]["User"]
        assert (alice.pk(), alice.name) == (1, "Alice")
        assert alice.posts.pks() == [10, 11]
        assert bob.pk() == 2
        assert bob.posts.pks() == []

    def test_members_follow_row_order(self):
        rows = [{"id": 1, "post_id": pid} for pid in (30, 10, 20)]
        result = ResultMapper([SelectItem("User", "")], {None: user_mapper()}, True).map(rows)
        assert result[0]["User"].posts.pks() == [30, 10, 20]

    def test_mapped_entities_are_persistent(self):
        rows = [{"id": 1, "name": "Alice", "post_id": 10, "post_title": "Hi"}]
        user = ResultMapper([SelectItem("User", "")], {None: user_mapper()}, True).map(rows)[0]["User"]
        assert user.is_persistent()
        assert user.posts[0].is_persistent()
        assert user.posts[0].title == "Hi"

    def test_identity_map_returns_same_object(self):
        mapper = user_mapper(with_posts=False)
        first, new_first = mapper.map_row({"id": 1, "name": "Alice"})
        mapper.map_row({"id": 2, "name": "Bob"})
        again, new_again = mapper.map_row({"id": 1, "name": "Alice"})
        assert first is again
        assert new_first and new_again

    def test_shared_identity_spans_join_paths(self):
        identity = {}
        root = EntityMapper(Post.schema(), {"id": "id", "title": "title", "user_fk": "user_fk"}, identity=identity)
        author = EntityMapper(User.schema(), {"id": "u_id", "name": "u_name"}, identity=identity)
        author.add_component(
            "posts", EntityMapper(Post.schema(), {"id": "p_id", "title": "p_title"}, identity=identity)
        )
        root.add_component("author", author)
        rows = [{"id": 10, "title": "Hi", "user_fk": 1, "u_id": 1, "u_name": "Alice", "p_id": 10, "p_title": "Hi"}]

        post = ResultMapper([SelectItem("Post", "")], {None: root}, True).map(rows)[0]["Post"]
        assert post.author.posts[0] is post
        assert set(identity) == {(Post, 10), (User, 1)}

    def test_null_primary_key_maps_to_none(self):
        entity, is_new = user_mapper(with_posts=False).map_row({"id": None})
        assert entity is None
        assert not is_new

    def test_values_are_coerced_by_column_type(self):
        entity, _ = user_mapper(with_posts=False).map_row({"id": "4", "name": 12})
        assert entity.pk() == 4
        assert entity.name == "12"


class TestSelection:
    def test_result_keys_follow_selection_order(self):
        root = user_mapper()
        items = [SelectItem("title", "posts.title"), SelectItem("User", ""), SelectItem("n", None)]
        rows = [{"id": 1, "post_id": 10, "post_title": "First", "n": 5}]
        result = ResultMapper(items, {None: root}, True).map(rows)
        assert list(result[0]) == ["title", "User", "n"]
        assert result[0]["title"] == "First"
        assert result[0]["n"] == 5

    def test_to_one_component(self):
        root = EntityMapper(Post.schema(), {"id": "id", "title": "title", "topic_fk": "topic_fk"})
        root.add_component("topic", EntityMapper(Topic.schema(), {"id": "t_id", "name": "t_name"}))
        rows = [
            {"id": 1, "title": "a", "topic_fk": 7, "t_id": 7, "t_name": "News"},
            {"id": 2, "title": "b", "topic_fk": None, "t_id": None},
        ]
        items = [SelectItem("Post", ""), SelectItem("topic", "topic"), SelectItem("tn", "topic.name")]
        result = ResultMapper(items, {None: root}, True).map(rows)
        assert result[0]["topic"] is result[0]["Post"].topic
        assert result[0]["tn"] == "News"
        assert result[1]["topic"] is None
        assert result[1]["tn"] is None

    def test_explicit_roots(self):
        users = EntityMapper(User.schema(), {"id": "u_id", "name": "u_name"})
        posts = EntityMapper(Post.schema(), {"id": "p_id", "title": "p_title"})
        rows = [
            {"u_id": 1, "u_name": "Alice", "p_id": 10, "p_title": "x"},
            {"u_id": 1, "u_name": "Alice", "p_id": 11, "p_title": "y"},
        ]
        items = [SelectItem("u", "u"), SelectItem("title", "p.title")]
        result = ResultMapper(items, {"u": users, "p": posts}, False).map(rows)
        assert [r["title"] for r in result] == ["x", "y"]
        assert result[0]["u"] is result[1]["u"]

    def test_unselected_chain(self):
        with pytest.raises(ResolutionError):
            ResultMapper([SelectItem("t", "profile.bio")], {None: user_mapper()}, True)

    def test_unknown_root_alias(self):
        with pytest.raises(ResolutionError):
            ResultMapper([SelectItem("x", "q.name")], {"u": user_mapper()}, False)
