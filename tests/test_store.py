"""
Behaviour tests for RegistryStore, run against every backend.
"""

from datetime import datetime, timedelta, timezone

import pytest

from zepplin.domain.errors import (
    DuplicateIdentityError,
    NotFoundError,
    RecordValidationError,
    StoreClosedError,
    UnauthorizedError,
)
from zepplin.domain.models import Alias, Package
from zepplin.storage.memory_store import InMemoryRegistryStore


class TestLifecycle:
    """Test open/close handling"""

    def test_closed_store_rejects_operations(self, clap):
        store = InMemoryRegistryStore()
        with pytest.raises(StoreClosedError):
            store.add_package(clap)

    def test_context_manager_opens_and_closes(self, clap):
        store = InMemoryRegistryStore()
        with store as opened:
            assert opened.is_open
            opened.add_package(clap)
        assert not store.is_open
        with pytest.raises(StoreClosedError):
            store.get_package("Hejsil", "zig-clap")


class TestPackages:
    """Test package CRUD and search"""

    def test_add_then_get_returns_same_record(self, store, clap):
        store.add_package(clap)
        assert store.get_package("Hejsil", "zig-clap") == clap

    def test_remove_then_get_returns_none(self, store, clap):
        store.add_package(clap)
        store.remove_package("Hejsil", "zig-clap")
        assert store.get_package("Hejsil", "zig-clap") is None
        assert store.get_total_packages() == 0

    def test_duplicate_rejected_and_store_unchanged(self, store, clap):
        store.add_package(clap)
        with pytest.raises(DuplicateIdentityError):
            store.add_package(clap.model_copy(update={"description": "changed"}))
        assert store.get_package("Hejsil", "zig-clap").description == clap.description
        assert store.get_total_packages() == 1

    def test_identity_is_case_sensitive(self, store, clap):
        store.add_package(clap)
        store.add_package(clap.model_copy(update={"owner": "hejsil"}))
        assert store.get_total_packages() == 2

    def test_removed_identity_is_not_reused(self, store, clap):
        store.add_package(clap)
        store.remove_package("Hejsil", "zig-clap")
        with pytest.raises(DuplicateIdentityError):
            store.add_package(clap)

    def test_reserved_names_rejected(self, store, clap):
        for owner, repo in [("..", "zig-clap"), ("Hejsil", "."), ("", "zig-clap")]:
            with pytest.raises(RecordValidationError):
                store.add_package(clap.model_copy(update={"owner": owner, "repo": repo}))
        assert store.get_total_packages() == 0

    def test_naive_timestamps_stored_as_utc(self, store, clap):
        store.add_package(clap.model_copy(update={"created_at": datetime(2024, 1, 1)}))
        assert store.get_package("Hejsil", "zig-clap").created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_remove_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.remove_package("nobody", "nothing")

    def test_get_missing_returns_none(self, store):
        assert store.get_package("nobody", "nothing") is None

    def test_returned_copies_are_detached(self, store, clap):
        store.add_package(clap)
        fetched = store.get_package("Hejsil", "zig-clap")
        fetched.topics.append("mutated")
        assert store.get_package("Hejsil", "zig-clap").topics == ["cli", "parser"]

    def test_list_packages(self, store, clap, xev):
        store.add_package(clap)
        store.add_package(xev)
        assert {p.full_name for p in store.list_packages()} == {"Hejsil/zig-clap", "mitchellh/xev"}

    def test_update_package_keeps_created_at(self, store, clap):
        store.add_package(clap)
        updated = store.update_package(clap.model_copy(update={
            "description": "Argument parser",
            "created_at": datetime(2000, 1, 1, tzinfo=timezone.utc),
        }))
        assert updated.description == "Argument parser"
        assert updated.created_at == clap.created_at
        assert updated.updated_at >= clap.updated_at
        assert store.get_package("Hejsil", "zig-clap").description == "Argument parser"

    def test_update_missing_raises(self, store, clap):
        with pytest.raises(NotFoundError):
            store.update_package(clap)


class TestSearch:
    """Test substring search over name and description"""

    def test_matches_name_or_description(self, store, clap, xev):
        store.add_package(clap)
        store.add_package(xev)
        assert [p.repo for p in store.search_packages("clap")] == ["zig-clap"]
        assert [p.repo for p in store.search_packages("event loop")] == ["xev"]

    def test_is_case_sensitive(self, store, xev):
        store.add_package(xev)
        assert store.search_packages("Cross") != []
        assert store.search_packages("cross") == []

    def test_empty_query_matches_all(self, store, clap, xev):
        store.add_package(clap)
        store.add_package(xev)
        assert len(store.search_packages("")) == 2

    def test_package_without_description(self, store):
        store.add_package(Package(owner="o", repo="bare"))
        assert [p.repo for p in store.search_packages("bare")] == ["bare"]
        assert store.search_packages("anything") == []

    def test_search_results_enriched(self, store, clap, make_release):
        store.add_package(clap)
        store.add_release(make_release("Hejsil", "zig-clap", "v0.7.0", published_days_ago=1))
        store.increment_download_count("Hejsil", "zig-clap", amount=3)

        [result] = store.search_results("clap")
        assert result.download_count == 3
        assert result.latest_version == "0.7.0"
        assert result.stars == 1200

    def test_search_results_limit(self, store, clap, xev):
        store.add_package(clap)
        store.add_package(xev)
        assert len(store.search_results("", limit=1)) == 1


class TestResolve:
    """Test resolution by full name or alias"""

    def test_full_name(self, store, clap):
        store.add_package(clap)
        assert store.resolve("Hejsil/zig-clap").repo == "zig-clap"

    def test_alias(self, store, clap):
        store.add_package(clap)
        store.add_alias(Alias(short_name="clap", owner="Hejsil", repo="zig-clap"))
        assert store.resolve("clap").full_name == "Hejsil/zig-clap"

    def test_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.resolve("nobody/nothing")
        with pytest.raises(NotFoundError):
            store.resolve("nothing")


class TestAliases:
    """Test alias creation and lazy resolution"""

    def test_resolve_alias(self, store, clap):
        store.add_package(clap)
        store.add_alias(Alias(short_name="clap", owner="Hejsil", repo="zig-clap", created_by="alice"))
        assert store.resolve_alias("clap") == clap
        assert store.get_alias("clap").created_by == "alice"

    def test_duplicate_alias(self, store, clap):
        store.add_package(clap)
        store.add_alias(Alias(short_name="clap", owner="Hejsil", repo="zig-clap"))
        with pytest.raises(DuplicateIdentityError):
            store.add_alias(Alias(short_name="clap", owner="Hejsil", repo="zig-clap"))

    def test_alias_to_missing_package(self, store):
        with pytest.raises(NotFoundError):
            store.add_alias(Alias(short_name="ghost", owner="no", repo="pkg"))
        assert store.get_alias("ghost") is None

    def test_alias_with_slash_rejected(self, store, clap):
        store.add_package(clap)
        with pytest.raises(RecordValidationError):
            store.add_alias(Alias(short_name="a/b", owner="Hejsil", repo="zig-clap"))

    def test_alias_dangles_after_remove(self, store, clap):
        store.add_package(clap)
        store.add_alias(Alias(short_name="clap", owner="Hejsil", repo="zig-clap"))
        store.remove_package("Hejsil", "zig-clap")
        assert store.get_alias("clap") is not None
        with pytest.raises(NotFoundError):
            store.resolve_alias("clap")

    def test_unknown_alias(self, store):
        with pytest.raises(NotFoundError):
            store.resolve_alias("nothing")


class TestReleases:
    """Test release publication and queries"""

    def test_ids_are_assigned(self, store, clap, xev, make_release):
        store.add_package(clap)
        store.add_package(xev)
        first = store.add_release(make_release("Hejsil", "zig-clap", "v0.5.0", id=99))
        second = store.add_release(make_release("mitchellh", "xev", "v0.2.0"))
        assert first.id == 1
        assert second.id == 2

    def test_requires_package(self, store, make_release):
        with pytest.raises(NotFoundError):
            store.add_release(make_release("no", "pkg", "v1.0.0"))

    def test_duplicate_tag(self, store, clap, make_release):
        store.add_package(clap)
        store.add_release(make_release("Hejsil", "zig-clap", "v0.6.0"))
        with pytest.raises(DuplicateIdentityError):
            store.add_release(make_release("Hejsil", "zig-clap", "v0.6.0"))
        assert len(store.get_releases("Hejsil", "zig-clap")) == 1

    def test_ordering(self, store, clap, make_release):
        store.add_package(clap)
        store.add_release(make_release("Hejsil", "zig-clap", "draft"))
        store.add_release(make_release("Hejsil", "zig-clap", "v0.5.0", published_days_ago=10))
        store.add_release(make_release("Hejsil", "zig-clap", "v0.6.0", published_days_ago=1))
        tags = [r.tag_name for r in store.get_releases("Hejsil", "zig-clap")]
        assert tags == ["v0.6.0", "v0.5.0", "draft"]

    def test_releases_kept_after_package_removed(self, store, clap, make_release):
        store.add_package(clap)
        store.add_release(make_release("Hejsil", "zig-clap", "v0.5.0", published_days_ago=10))
        store.add_release(make_release("Hejsil", "zig-clap", "v0.6.0", published_days_ago=1))
        store.remove_package("Hejsil", "zig-clap")

        assert [r.tag_name for r in store.get_releases("Hejsil", "zig-clap")] == ["v0.6.0", "v0.5.0"]
        assert store.get_release("Hejsil", "zig-clap", "v0.5.0") is not None
        with pytest.raises(NotFoundError):
            store.add_release(make_release("Hejsil", "zig-clap", "v0.7.0"))

    def test_get_release(self, store, clap, make_release):
        store.add_package(clap)
        store.add_release(make_release("Hejsil", "zig-clap", "v0.6.0", body="notes"))
        assert store.get_release("Hejsil", "zig-clap", "v0.6.0").body == "notes"
        assert store.get_release("Hejsil", "zig-clap", "v9.9.9") is None

    def test_update_release(self, store, clap, make_release):
        store.add_package(clap)
        store.add_release(make_release("Hejsil", "zig-clap", "v0.6.0", name="old"))
        updated = store.update_release("Hejsil", "zig-clap", "v0.6.0", name="new", prerelease=True)
        assert updated.name == "new"
        assert updated.prerelease is True
        assert store.get_release("Hejsil", "zig-clap", "v0.6.0").name == "new"

    def test_update_missing_release(self, store, clap):
        store.add_package(clap)
        with pytest.raises(NotFoundError):
            store.update_release("Hejsil", "zig-clap", "v1.0.0", name="x")

    def test_latest_release_skips_drafts_and_prereleases(self, store, clap, make_release):
        store.add_package(clap)
        store.add_release(make_release("Hejsil", "zig-clap", "v0.5.0", published_days_ago=5))
        store.add_release(make_release("Hejsil", "zig-clap", "v0.10.0", published_days_ago=9))
        store.add_release(make_release("Hejsil", "zig-clap", "v0.11.0", prerelease=True))
        store.add_release(make_release("Hejsil", "zig-clap", "v1.0.0", draft=True))
        store.add_release(make_release("Hejsil", "zig-clap", "nightly"))
        assert store.get_latest_release("Hejsil", "zig-clap").tag_name == "v0.10.0"

    def test_latest_release_none(self, store, clap):
        store.add_package(clap)
        assert store.get_latest_release("Hejsil", "zig-clap") is None


class TestUsers:
    """Test user accounts and token lookup"""

    def test_token_lookup(self, store):
        store.create_user("alice", "a@x.com", "hash1", "tok1")
        assert store.get_user_by_token("tok1") == "alice"
        assert store.get_user_by_username("alice") == "hash1"

    def test_deactivated_user_is_invisible(self, store):
        store.create_user("alice", "a@x.com", "hash1", "tok1")
        store.deactivate_user("alice")
        assert store.get_user_by_token("tok1") is None
        assert store.get_user_by_username("alice") is None
        assert store.get_user("alice").is_active is False

    def test_duplicate_username(self, store):
        store.create_user("alice", "a@x.com", "hash1", "tok1")
        with pytest.raises(DuplicateIdentityError):
            store.create_user("alice", "b@x.com", "hash2", "tok2")

    def test_duplicate_token(self, store):
        store.create_user("alice", "a@x.com", "hash1", "tok1")
        with pytest.raises(DuplicateIdentityError):
            store.create_user("bob", "b@x.com", "hash2", "tok1")
        assert store.get_user("bob") is None

    def test_invalid_user(self, store):
        with pytest.raises(RecordValidationError):
            store.create_user("", "a@x.com", "hash", "tok")

    def test_unknown(self, store):
        assert store.get_user_by_token("nope") is None
        assert store.get_user_by_username("nope") is None
        with pytest.raises(NotFoundError):
            store.deactivate_user("nope")


class TestDownloads:
    """Test download counters and totals"""

    def test_increments(self, store):
        for _ in range(5):
            store.increment_download_count("Hejsil", "zig-clap")
        assert store.get_download_count("Hejsil", "zig-clap") == 5

    def test_unknown_is_zero(self, store):
        assert store.get_download_count("no", "pkg") == 0
        assert store.get_download_stats("no", "pkg") is None

    def test_release_counters_are_separate(self, store):
        store.increment_download_count("Hejsil", "zig-clap")
        store.increment_download_count("Hejsil", "zig-clap", "v0.6.0")
        store.increment_download_count("Hejsil", "zig-clap", "v0.6.0")
        assert store.get_download_count("Hejsil", "zig-clap") == 1
        assert store.get_download_count("Hejsil", "zig-clap", "v0.6.0") == 2

    def test_amount(self, store):
        store.increment_download_count("o", "r", amount=10)
        assert store.get_download_count("o", "r") == 10
        with pytest.raises(RecordValidationError):
            store.increment_download_count("o", "r", amount=0)

    def test_totals(self, store, clap, xev):
        store.add_package(clap)
        store.add_package(xev)
        store.increment_download_count("Hejsil", "zig-clap", amount=2)
        store.increment_download_count("mitchellh", "xev")

        assert store.get_total_packages() == 2
        assert store.get_total_downloads() == 3
        stats = store.get_registry_stats()
        assert (stats.total_packages, stats.total_downloads, stats.downloads_today) == (2, 3, 3)

    def test_stats_record_last_download(self, store):
        store.increment_download_count("o", "r")
        stats = store.get_download_stats("o", "r")
        assert stats.download_count == 1
        assert datetime.now(timezone.utc) - stats.last_downloaded < timedelta(minutes=1)


class TestComments:
    """Test threaded comments"""

    @pytest.fixture
    def ready(self, store, clap):
        store.add_package(clap)
        store.create_user("alice", "a@x.com", "hash1", "tok1")
        store.create_user("bob", "b@x.com", "hash2", "tok2")
        return store

    def test_add_and_list(self, ready):
        first = ready.add_comment("Hejsil", "zig-clap", "alice", "Nice library")
        reply = ready.add_comment("Hejsil", "zig-clap", "bob", "Agreed", parent_id=first.id)
        assert reply.parent_id == first.id
        assert [c.content for c in ready.get_comments("Hejsil", "zig-clap")] == ["Nice library", "Agreed"]

    def test_requires_package(self, ready):
        with pytest.raises(NotFoundError):
            ready.add_comment("no", "pkg", "alice", "hi")

    def test_requires_active_author(self, ready):
        with pytest.raises(UnauthorizedError):
            ready.add_comment("Hejsil", "zig-clap", "mallory", "hi")
        ready.deactivate_user("bob")
        with pytest.raises(UnauthorizedError):
            ready.add_comment("Hejsil", "zig-clap", "bob", "hi")

    def test_rejects_empty_content(self, ready):
        with pytest.raises(RecordValidationError):
            ready.add_comment("Hejsil", "zig-clap", "alice", "   ")

    def test_parent_must_exist_on_same_package(self, ready, xev):
        ready.add_package(xev)
        other = ready.add_comment("mitchellh", "xev", "alice", "elsewhere")
        with pytest.raises(NotFoundError):
            ready.add_comment("Hejsil", "zig-clap", "alice", "reply", parent_id=other.id)
        with pytest.raises(NotFoundError):
            ready.add_comment("Hejsil", "zig-clap", "alice", "reply", parent_id=999)

    def test_update_by_author_only(self, ready):
        comment = ready.add_comment("Hejsil", "zig-clap", "alice", "first")
        with pytest.raises(UnauthorizedError):
            ready.update_comment(comment.id, "bob", "hijack")
        updated = ready.update_comment(comment.id, "alice", "edited")
        assert updated.content == "edited"
        assert ready.get_comments("Hejsil", "zig-clap")[0].content == "edited"

    def test_delete_tombstones(self, ready):
        comment = ready.add_comment("Hejsil", "zig-clap", "alice", "first")
        with pytest.raises(UnauthorizedError):
            ready.delete_comment(comment.id, "bob")
        ready.delete_comment(comment.id, "alice")

        assert ready.get_comments("Hejsil", "zig-clap") == []
        [tombstone] = ready.get_comments("Hejsil", "zig-clap", include_deleted=True)
        assert tombstone.is_deleted
        with pytest.raises(NotFoundError):
            ready.update_comment(comment.id, "alice", "again")
        with pytest.raises(NotFoundError):
            ready.delete_comment(comment.id, "alice")
