"""Tests for property-chain resolution."""

from __future__ import annotations

import pytest

from relata import default_registry
from relata.errors import ResolutionError
from relata.naming import NamingService
from relata.schema import AtomicType, EmbeddedSchema
from tests.models import Category, Post, Topic, User


class TestImplicitRoot:
    @pytest.fixture
    def naming(self):
        return NamingService(default_registry, User)

    def test_atomic(self, naming):
        assert naming.resolve("name") is AtomicType.STRING

    def test_component(self, naming):
        assert naming.resolve("posts") is Post.schema()

    def test_chain(self, naming):
        assert naming.resolve("posts.topic.category") is Category.schema()
        assert naming.resolve("posts.topic.name") is AtomicType.STRING

    def test_prefixes_are_memoized(self, naming):
        naming.resolve("posts.topic.name")
        assert naming.is_cached("posts")
        assert naming.is_cached("posts.topic")
        assert naming.is_cached("posts.topic.name")
        assert not naming.is_cached("profile")

    def test_second_resolution_uses_cache(self, naming, monkeypatch):
        first = naming.resolve("posts.topic")

        def fail(name):
            raise AssertionError("resolved twice")

        monkeypatch.setattr(naming, "_search", fail)
        assert naming.resolve("posts.topic") is first

    def test_embedded(self, naming):
        assert isinstance(naming.resolve("address"), EmbeddedSchema)
        assert naming.resolve("address.city") is AtomicType.STRING

    def test_atomic_followed_by_segment(self, naming):
        with pytest.raises(ResolutionError, match="invalid identifier: name.length"):
            naming.resolve("name.length")

    def test_unknown_segment(self, naming):
        with pytest.raises(ResolutionError, match="unknown property 'nope'"):
            naming.resolve("posts.nope")

    def test_empty_segment(self, naming):
        with pytest.raises(ResolutionError):
            naming.resolve("posts..title")

    def test_resolve_schema_rejects_atomics(self, naming):
        with pytest.raises(ResolutionError, match="does not refer to an entity"):
            naming.resolve_schema("name")

    def test_registry_shares_services(self):
        assert default_registry.naming(User) is default_registry.naming(User)
        assert default_registry.naming(User) is not default_registry.naming(Post)


class TestExplicitRoots:
    def test_entity_name_root(self):
        naming = NamingService(default_registry)
        assert naming.resolve("Post") is Post.schema()
        assert naming.resolve("Post.topic") is Topic.schema()

    def test_alias_root(self):
        naming = NamingService(default_registry)
        naming.set_alias(User, "u")
        assert naming.resolve("u") is User.schema()
        assert naming.resolve("u.posts.title") is AtomicType.STRING

    def test_unknown_root(self):
        naming = NamingService(default_registry)
        with pytest.raises(ResolutionError, match="unknown root 'x'"):
            naming.resolve("x.name")
