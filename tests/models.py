"""Entity types shared by the test suite."""

from __future__ import annotations

from relata import Column, Component, Embeddable, Embedded, Entity


class Address(Embeddable):
    @classmethod
    def setup(cls, schema):
        schema.columns = {
            "city": Column("string"),
            "street": Column("string"),
        }


class User(Entity):
    @classmethod
    def setup(cls, schema):
        schema.table = "t_users"
        schema.secondary_tables = ["user_contact_info"]
        schema.columns = {
            "id": Column("int", primary=True, generation_strategy="auto"),
            "name": Column("string", constraints={"max_length": 64, "not null": True}),
            "email": Column("string", table="user_contact_info"),
        }
        schema.components = {
            "posts": Component("Post", "one-to-many", join_column="user_fk", on_delete="set-null"),
            "profile": Component("Profile", "one-to-one", mapped_by="user", on_delete="cascade"),
            "address": Embedded(Address),
        }


class Post(Entity):
    @classmethod
    def setup(cls, schema):
        schema.table = "t_posts"
        schema.columns = {
            "id": Column("int", primary=True, generation_strategy="auto"),
            "title": Column("string"),
            "user_fk": Column("int"),
            "topic_fk": Column("int"),
        }
        schema.components = {
            "author": Component("User", "many-to-one", mapped_by="posts"),
            "topic": Component("Topic", "many-to-one", join_column="topic_fk"),
        }


class Topic(Entity):
    @classmethod
    def setup(cls, schema):
        schema.table = "t_topics"
        schema.columns = {
            "id": Column("int", primary=True, generation_strategy="auto"),
            "name": Column("string"),
            "category_fk": Column("int"),
        }
        schema.components = {
            "category": Component("Category", "many-to-one", join_column="category_fk"),
        }


class Category(Entity):
    @classmethod
    def setup(cls, schema):
        schema.table = "t_categories"
        schema.columns = {
            "id": Column("int", primary=True, generation_strategy="auto"),
            "name": Column("string"),
        }
        schema.components = {
            "topics": Component("Topic", "one-to-many", mapped_by="category", on_delete="cascade"),
        }


class Profile(Entity):
    @classmethod
    def setup(cls, schema):
        schema.table = "t_profiles"
        schema.columns = {
            "id": Column("int", primary=True, generation_strategy="auto"),
            "bio": Column("string"),
            "user_id": Column("int", constraints={"unique": True}),
        }
        schema.components = {
            "user": Component("User", "one-to-one", join_column="user_id"),
        }


ALL_TYPES = [User, Post, Topic, Category, Profile]
