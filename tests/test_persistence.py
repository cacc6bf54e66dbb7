"""Tests for the persistence engine against a recording adapter."""

from __future__ import annotations

import pytest

from relata import Column, Component, Entity, SchemaRegistry
from relata.errors import PersistenceError, SchemaError
from tests.conftest import RecordingAdapter
from tests.models import Address, Post, Profile, User


def loaded(cls, **atomics):
    return cls._load(atomics)


class TestInsert:
    def test_insert_routes_columns_to_their_tables(self, recorder):
        user = User(name="Alice", email="alice@example.com")
        user.save()
        assert recorder.statements == [
            "INSERT INTO `t_users` (`name`) VALUES ('Alice')",
            "INSERT INTO `user_contact_info` (`id`, `email`) VALUES ('1', 'alice@example.com')",
        ]
        assert user.pk() == 1
        assert user.is_persistent()

    def test_secondary_row_is_written_even_without_values(self, recorder):
        User(name="Bob").save()
        assert recorder.statements[1] == "INSERT INTO `user_contact_info` (`id`) VALUES ('1')"

    def test_embedded_values_are_inlined(self, recorder):
        user = User(name="Alice")
        user.address = Address(city="Paris")
        user.save()
        assert recorder.statements[0] == (
            "INSERT INTO `t_users` (`name`, `address_city`, `address_street`) "
            "VALUES ('Alice', 'Paris', NULL)"
        )

    def test_manual_primary_key(self, recorder):
        reg = SchemaRegistry()
        reg.bind(recorder)

        class Country(Entity, registry=reg):
            @classmethod
            def setup(cls, schema):
                schema.table = "countries"
                schema.columns = {"code": Column("string", primary=True), "name": Column("string")}

        country = Country(code="FR", name="France")
        country.insert()
        assert recorder.statements == [
            "INSERT INTO `countries` (`code`, `name`) VALUES ('FR', 'France')"
        ]
        assert country.pk() == "FR"

    def test_missing_manual_primary_key(self, recorder):
        reg = SchemaRegistry()
        reg.bind(recorder)

        class Country(Entity, registry=reg):
            @classmethod
            def setup(cls, schema):
                schema.table = "countries"
                schema.columns = {"code": Column("string", primary=True)}

        with pytest.raises(PersistenceError, match="primary key 'code' is not set"):
            Country().save()

    def test_pk_listeners_are_notified(self, recorder):
        seen = []

        class Listener:
            def notify_pk_creation(self, entity):
                seen.append(entity.pk())

        user = User(name="A")
        user.add_pk_change_listener(Listener())
        user.save()
        assert seen == [1]


class TestUpdate:
    def test_only_dirty_columns_are_written(self, recorder):
        user = loaded(User, id=7, name="Alice", email="a@x")
        user.email = "alice@example.com"
        user.save()
        assert recorder.statements == [
            "UPDATE `user_contact_info` SET `email` = 'alice@example.com' WHERE `id` = '7'"
        ]

    def test_one_update_per_table(self, recorder):
        user = loaded(User, id=7, name="Alice")
        user.name = "Alicia"
        user.email = "a@x"
        user.save()
        assert recorder.statements == [
            "UPDATE `t_users` SET `name` = 'Alicia' WHERE `id` = '7'",
            "UPDATE `user_contact_info` SET `email` = 'a@x' WHERE `id` = '7'",
        ]

    def test_persistent_entity_issues_no_statements(self, recorder):
        loaded(User, id=7, name="Alice").save()
        assert recorder.statements == []

    def test_second_save_is_a_no_op(self, recorder):
        user = User(name="Alice")
        user.save()
        count = len(recorder.statements)
        user.save()
        assert len(recorder.statements) == count

    def test_update_without_primary_key(self, recorder):
        with pytest.raises(PersistenceError):
            User(name="x").update()


class TestForeignKeys:
    def test_unsaved_target_is_inserted_first(self, recorder):
        post = Post(title="x")
        post.author = User(name="A")
        post.save()
        assert recorder.statements == [
            "INSERT INTO `t_users` (`name`) VALUES ('A')",
            "INSERT INTO `user_contact_info` (`id`) VALUES ('1')",
            "INSERT INTO `t_posts` (`title`, `user_fk`) VALUES ('x', '1')",
        ]
        assert post.user_fk == 1

    def test_saving_owner_writes_members(self, recorder):
        user = User(name="A")
        user.posts.append(Post(title="p1"))
        user.posts.append(Post(title="p2"))
        user.save()
        assert recorder.statements[2:] == [
            "INSERT INTO `t_posts` (`title`, `user_fk`) VALUES ('p1', '1')",
            "INSERT INTO `t_posts` (`title`, `user_fk`) VALUES ('p2', '1')",
        ]
        assert user.posts.pks() == [2, 3]

    def test_saving_member_saves_owner_first(self, recorder):
        user = User(name="A")
        post = Post(title="p1")
        user.posts.append(post)
        post.save()
        assert recorder.statements[0] == "INSERT INTO `t_users` (`name`) VALUES ('A')"
        assert recorder.statements[-1] == "INSERT INTO `t_posts` (`title`, `user_fk`) VALUES ('p1', '1')"
        assert len(recorder.statements) == 3

    def test_reverse_one_to_one_is_written_after_owner(self, recorder):
        user = User(name="A")
        user.profile = Profile(bio="hi")
        user.save()
        assert recorder.statements[-1] == (
            "INSERT INTO `t_profiles` (`bio`, `user_id`) VALUES ('hi', '1')"
        )

    def test_detached_reverse_one_to_one_is_cleared(self, recorder):
        user = loaded(User, id=4)
        old = loaded(Profile, id=8, user_id=4)
        user._set_loaded_component("profile", old)
        user.profile = None
        user.save()
        assert recorder.statements == ["UPDATE `t_profiles` SET `user_id` = NULL WHERE `id` = '8'"]

    def test_removed_member_is_unlinked_on_save(self, recorder):
        user = loaded(User, id=4)
        post = loaded(Post, id=9, user_fk=4)
        user.posts._add_loaded(post)
        user.posts.remove(post)
        user.save()
        assert recorder.statements == ["UPDATE `t_posts` SET `user_fk` = NULL WHERE `id` = '9'"]

    def test_circular_pending_keys_fail_explicitly(self, recorder):
        reg = SchemaRegistry()
        reg.bind(recorder)

        class Left(Entity, registry=reg):
            @classmethod
            def setup(cls, schema):
                schema.table = "lefts"
                schema.columns = {
                    "id": Column("int", primary=True, generation_strategy="auto"),
                    "right_id": Column("int"),
                }
                schema.components = {"right": Component("Right", "one-to-one", join_column="right_id")}

        class Right(Entity, registry=reg):
            @classmethod
            def setup(cls, schema):
                schema.table = "rights"
                schema.columns = {
                    "id": Column("int", primary=True, generation_strategy="auto"),
                    "left_id": Column("int"),
                }
                schema.components = {"left": Component("Left", "one-to-one", join_column="left_id")}

        left, right = Left(), Right()
        left.right = right
        right.left = left
        with pytest.raises(PersistenceError, match="unsaved"):
            left.save()


class TestDelete:
    def test_delete_applies_policies_before_rows(self, recorder):
        loaded(User, id=1, name="A").delete()
        assert recorder.statements[0] == "UPDATE `t_posts` SET `user_fk` = NULL WHERE `user_fk` = '1'"
        assert recorder.statements[1].startswith("SELECT ")
        assert "WHERE `t_profiles_0`.`user_id` = '1'" in recorder.statements[1]
        assert recorder.statements[2:] == [
            "DELETE FROM `user_contact_info` WHERE `id` = '1'",
            "DELETE FROM `t_users` WHERE `id` = '1'",
        ]

    def test_delete_by_pk(self, recorder):
        Post().delete_by_pk(5)
        assert recorder.statements == ["DELETE FROM `t_posts` WHERE `id` = '5'"]

    def test_delete_without_pk_is_a_no_op(self, recorder):
        Post().delete()
        assert recorder.statements == []

    def test_deleted_entity_becomes_transient(self, recorder):
        post = loaded(Post, id=5, title="x")
        post.delete()
        assert post.pk() is None
        assert not post.is_persistent()

    def test_loaded_collection_members_are_nulled(self, recorder):
        user = loaded(User, id=1)
        post = loaded(Post, id=10, user_fk=1)
        user.posts._add_loaded(post)
        user.delete()
        assert post.user_fk is None
        assert post.is_persistent()
        assert len(user.posts) == 0

    def test_loaded_cascade_member_is_deleted(self, recorder):
        user = loaded(User, id=1)
        profile = loaded(Profile, id=3, user_id=1)
        user._set_loaded_component("profile", profile)
        user.delete()
        assert "DELETE FROM `t_profiles` WHERE `id` = '3'" in recorder.statements
        assert profile.pk() is None


class TestSetNullThroughNonPrimaryKey:
    def _models(self, unique):
        reg = SchemaRegistry()
        adapter = RecordingAdapter()
        reg.bind(adapter)

        class Team(Entity, registry=reg):
            @classmethod
            def setup(cls, schema):
                schema.table = "teams"
                schema.columns = {
                    "id": Column("int", primary=True),
                    "code": Column("string", constraints={"unique": unique}),
                }
                schema.components = {
                    "members": Component(
                        "Member",
                        "one-to-many",
                        join_column="team_code",
                        inverse_join_column="code",
                        on_delete="set-null",
                    )
                }

        class Member(Entity, registry=reg):
            @classmethod
            def setup(cls, schema):
                schema.table = "members"
                schema.columns = {"id": Column("int", primary=True), "team_code": Column("string")}

        return Team, adapter

    def test_loaded_key_is_used(self):
        Team, adapter = self._models(unique=False)
        Team._load({"id": 1, "code": "red"}).delete()
        assert adapter.statements[0] == (
            "UPDATE `members` SET `team_code` = NULL WHERE `team_code` = 'red'"
        )

    def test_unique_key_uses_subselect(self):
        Team, adapter = self._models(unique=True)
        Team._load({"id": 1}).delete_by_pk(2)
        assert adapter.statements[0] == (
            "UPDATE `members` SET `team_code` = NULL WHERE `team_code` = "
            "(SELECT `code` FROM `teams` WHERE `id` = '2')"
        )

    def test_non_unique_key_is_rejected(self):
        Team, adapter = self._models(unique=False)
        with pytest.raises(SchemaError, match="requires it to be unique"):
            Team._load({"id": 1}).delete()
        assert adapter.statements == []
