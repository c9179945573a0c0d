"""
Property-based tests for metadata mutations and batch tag reconciliation.

Verifies that the cache only changes after the backend confirms, that it
then mirrors the backend's answer, that favorited_at is never overwritten,
that invalid input never reaches the network, and that batch outcomes are
partitioned exactly along the reported failures.
"""

import asyncio
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from dns_sync.batch import BatchTagReconciler, apply_tag_operation
from dns_sync.domain_cache import DomainCache
from dns_sync.enums import SelectionState, TagOperation
from dns_sync.exceptions import RemoteError, ValidationError
from dns_sync.filters import TagFilter
from dns_sync.models import (
    BatchTagFailure,
    BatchTagRequest,
    BatchTagResult,
    Domain,
    DomainMetadata,
    DomainMetadataUpdate,
    Page,
)
from dns_sync.mutations import MetadataMutationPipeline
from dns_sync.selection import SelectionSet, make_domain_key
from dns_sync.storage import MemoryStorage, StorageKey
from dns_sync.validation import MAX_NOTE_LENGTH, MAX_TAG_LENGTH, MAX_TAGS


# Test doubles


class FakeMetadataBackend:
    """Keeps server-side metadata per (account, domain) and records calls."""

    def __init__(self) -> None:
        self.metadata: dict[tuple[str, str], DomainMetadata] = {}
        self.calls: list[str] = []
        self.fail_with: Optional[Exception] = None
        self.batch_failures: set[tuple[str, str]] = set()
        self.batch_requests: list[BatchTagRequest] = []

    def _check(self, command: str) -> None:
        self.calls.append(command)
        if self.fail_with is not None:
            raise self.fail_with

    def _get(self, account_id: str, domain_id: str) -> DomainMetadata:
        return self.metadata.setdefault((account_id, domain_id), DomainMetadata(updated_at="server"))

    async def update_metadata(self, account_id, domain_id, update: DomainMetadataUpdate) -> DomainMetadata:
        self._check("update_metadata")
        current = self._get(account_id, domain_id)
        result = DomainMetadata(
            is_favorite=current.is_favorite if update.is_favorite is None else update.is_favorite,
            tags=current.tags if update.tags is None else list(update.tags),
            color=current.color if update.color is None else update.color,
            note=current.note if "note" not in update.to_dict() else update.note,
            favorited_at=current.favorited_at,
            updated_at="server-updated",
        )
        self.metadata[(account_id, domain_id)] = result
        return result

    async def toggle_favorite(self, account_id, domain_id) -> bool:
        self._check("toggle_favorite")
        current = self._get(account_id, domain_id)
        current.is_favorite = not current.is_favorite
        return current.is_favorite

    async def add_tag(self, account_id, domain_id, tag) -> list[str]:
        self._check("add_tag")
        current = self._get(account_id, domain_id)
        current.tags = sorted(set(current.tags) | {tag})
        return list(current.tags)

    async def remove_tag(self, account_id, domain_id, tag) -> list[str]:
        self._check("remove_tag")
        current = self._get(account_id, domain_id)
        current.tags = [t for t in current.tags if t != tag]
        return list(current.tags)

    async def set_tags(self, account_id, domain_id, tags) -> list[str]:
        self._check("set_tags")
        self._get(account_id, domain_id).tags = list(tags)
        return list(tags)

    async def batch_tags(self, mode: TagOperation, requests: list[BatchTagRequest]) -> BatchTagResult:
        self._check(f"batch_{mode.value}")
        self.batch_requests = list(requests)
        failures = [
            BatchTagFailure(account_id=r.account_id, domain_id=r.domain_id, reason="provider refused")
            for r in requests
            if (r.account_id, r.domain_id) in self.batch_failures
        ]
        return BatchTagResult(
            success_count=len(requests) - len(failures),
            failed_count=len(failures),
            failures=failures,
        )


def make_cache(domains: dict[str, list[Domain]]) -> tuple[DomainCache, MemoryStorage]:
    storage = MemoryStorage()
    cache = DomainCache(storage)
    for account_id, items in domains.items():
        cache.replace(account_id, Page(items=items, page=1, page_size=20, total_count=len(items), has_more=False))
    return cache, storage


def domain(account_id: str, domain_id: str, tags: Optional[list[str]] = None) -> Domain:
    metadata = DomainMetadata(tags=list(tags), updated_at="old") if tags is not None else None
    return Domain(id=domain_id, name=f"{domain_id}.com", account_id=account_id, provider="cloudflare", metadata=metadata)


tag_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz-", min_size=1, max_size=12)


class TestPatchFidelityProperty:
    """After a confirmed mutation the cached domain mirrors the server."""

    @given(
        tags=st.lists(tag_strategy, max_size=MAX_TAGS, unique=True),
        color=st.sampled_from(["red", "blue", "none"]),
        note=st.one_of(st.none(), st.text(alphabet="abc ", max_size=50)),
    )
    @settings(max_examples=50, deadline=None)
    def test_update_metadata_mirrors_server(self, tags: list[str], color: str, note: Optional[str]) -> None:
        backend = FakeMetadataBackend()
        cache, storage = make_cache({"acct-1": [domain("acct-1", "d1"), domain("acct-1", "d2", ["keep"])]})
        pipeline = MetadataMutationPipeline(backend, cache)

        result = asyncio.run(pipeline.update_metadata(
            "acct-1", "d1", DomainMetadataUpdate(tags=tags, color=color, note=note)
        ))

        assert cache.find_domain("acct-1", "d1").metadata == result
        assert result == backend.metadata[("acct-1", "d1")]
        assert result.tags == sorted(tags)
        assert cache.find_domain("acct-1", "d2").tags == ["keep"]
        persisted = storage.get(StorageKey.DOMAINS_CACHE)["domainsByAccount"]["acct-1"]["domains"][0]
        assert persisted["metadata"]["updatedAt"] == "server-updated"

    @given(tag=tag_strategy)
    @settings(max_examples=30, deadline=None)
    def test_failed_call_leaves_cache_untouched(self, tag: str) -> None:
        backend = FakeMetadataBackend()
        backend.fail_with = RemoteError(code="Provider", message="refused")
        cache, storage = make_cache({"acct-1": [domain("acct-1", "d1", ["a"])]})
        blob_before = cache.to_blob()
        writes_before = storage.write_count
        pipeline = MetadataMutationPipeline(backend, cache)

        try:
            asyncio.run(pipeline.add_tag("acct-1", "d1", tag))
            assert False, "Expected RemoteError"
        except RemoteError:
            pass

        assert cache.to_blob() == blob_before
        assert storage.write_count == writes_before

    def test_tag_change_on_domain_without_metadata(self) -> None:
        backend = FakeMetadataBackend()
        cache, _ = make_cache({"acct-1": [domain("acct-1", "d1")]})
        pipeline = MetadataMutationPipeline(backend, cache, now=lambda: "t1")

        tags = asyncio.run(pipeline.add_tag("acct-1", "d1", "  prod  "))

        assert tags == ["prod"]
        metadata = cache.find_domain("acct-1", "d1").metadata
        assert metadata.tags == ["prod"]
        assert metadata.updated_at == "t1"
        assert backend.calls == ["add_tag"]


class TestFavoritedAtProperty:
    """favorited_at is set on the first favorite and never changed after."""

    @given(toggles=st.integers(min_value=1, max_value=8))
    @settings(max_examples=30, deadline=None)
    def test_favorited_at_is_sticky(self, toggles: int) -> None:
        backend = FakeMetadataBackend()
        cache, _ = make_cache({"acct-1": [domain("acct-1", "d1")]})
        clock = iter(f"t{i}" for i in range(1, 100))
        pipeline = MetadataMutationPipeline(backend, cache, now=lambda: next(clock))

        async def run() -> list[bool]:
            return [await pipeline.toggle_favorite("acct-1", "d1") for _ in range(toggles)]

        states = asyncio.run(run())

        metadata = cache.find_domain("acct-1", "d1").metadata
        assert states == [i % 2 == 0 for i in range(toggles)]
        assert metadata.is_favorite == (toggles % 2 == 1)
        assert metadata.favorited_at == "t1"
        assert metadata.updated_at == f"t{toggles}"


class TestValidationBeforeNetworkProperty:
    """Invalid input is rejected without any backend call."""

    @given(
        bad=st.sampled_from([
            DomainMetadataUpdate(color="magenta"),
            DomainMetadataUpdate(note="x" * (MAX_NOTE_LENGTH + 1)),
            DomainMetadataUpdate(tags=["ok", "  "]),
            DomainMetadataUpdate(tags=["t" * (MAX_TAG_LENGTH + 1)]),
            DomainMetadataUpdate(tags=[f"tag{i}" for i in range(MAX_TAGS + 1)]),
        ])
    )
    @settings(max_examples=20, deadline=None)
    def test_invalid_update_rejected(self, bad: DomainMetadataUpdate) -> None:
        backend = FakeMetadataBackend()
        cache, storage = make_cache({"acct-1": [domain("acct-1", "d1", ["a"])]})
        pipeline = MetadataMutationPipeline(backend, cache)

        try:
            asyncio.run(pipeline.update_metadata("acct-1", "d1", bad))
            assert False, "Expected ValidationError"
        except ValidationError:
            pass

        assert backend.calls == []
        assert cache.find_domain("acct-1", "d1").tags == ["a"]

    def test_empty_update_rejected(self) -> None:
        backend = FakeMetadataBackend()
        cache, storage = make_cache({"acct-1": [domain("acct-1", "d1", ["a"])]})
        writes_before = storage.write_count
        pipeline = MetadataMutationPipeline(backend, cache)

        try:
            asyncio.run(pipeline.update_metadata("acct-1", "d1", DomainMetadataUpdate()))
            assert False, "Expected ValidationError"
        except ValidationError as e:
            assert e.code == "empty_update"
        assert backend.calls == []
        assert storage.write_count == writes_before

    def test_empty_tag_rejected(self) -> None:
        backend = FakeMetadataBackend()
        cache, _ = make_cache({"acct-1": [domain("acct-1", "d1")]})
        pipeline = MetadataMutationPipeline(backend, cache)

        try:
            asyncio.run(pipeline.add_tag("acct-1", "d1", "   "))
            assert False, "Expected ValidationError"
        except ValidationError as e:
            assert e.code == "empty_tag"
        assert backend.calls == []

    def test_exactly_max_tags_accepted(self) -> None:
        backend = FakeMetadataBackend()
        cache, _ = make_cache({"acct-1": [domain("acct-1", "d1")]})
        pipeline = MetadataMutationPipeline(backend, cache)

        tags = [f"tag{i}" for i in range(MAX_TAGS)]
        result = asyncio.run(pipeline.set_tags("acct-1", "d1", tags + ["tag0"]))

        assert result == sorted(tags)


def make_reconciler(
    domains: dict[str, list[Domain]],
    backend: FakeMetadataBackend,
    filter_tags=(),
) -> tuple[BatchTagReconciler, DomainCache, MemoryStorage, SelectionSet, TagFilter]:
    cache, storage = make_cache(domains)
    selection = SelectionSet()
    tag_filter = TagFilter(filter_tags)
    reconciler = BatchTagReconciler(backend, cache, selection, tag_filter, now=lambda: "now")
    return reconciler, cache, storage, selection, tag_filter


class TestBatchPartitionProperty:
    """Exactly the targets not reported as failed get the change."""

    @given(
        initial=st.lists(st.lists(tag_strategy, max_size=3, unique=True), min_size=1, max_size=6),
        failing=st.sets(st.integers(min_value=0, max_value=5)),
        tags=st.lists(tag_strategy, min_size=1, max_size=3, unique=True),
        mode=st.sampled_from(list(TagOperation)),
    )
    @settings(max_examples=100, deadline=None)
    def test_partition(self, initial, failing, tags, mode) -> None:
        items = [domain("acct-1", f"d{i}", t) for i, t in enumerate(initial)]
        backend = FakeMetadataBackend()
        backend.batch_failures = {("acct-1", f"d{i}") for i in failing}
        reconciler, cache, storage, selection, _ = make_reconciler({"acct-1": items}, backend)
        selection.toggle_batch_mode()
        selection.select_all(make_domain_key("acct-1", d.id) for d in items)
        writes_before = storage.write_count

        result = asyncio.run(reconciler.batch_apply_tags(tags, mode))

        assert result.success_count + result.failed_count == len(items)
        for i, original in enumerate(initial):
            cached = cache.find_domain("acct-1", f"d{i}")
            if i in failing:
                assert cached.tags == original
                assert cached.metadata.updated_at == "old"
            else:
                assert cached.tags == apply_tag_operation(original, tags, mode)
                assert cached.metadata.updated_at == "now"
        assert selection.state is SelectionState.INACTIVE
        assert storage.write_count == writes_before + 1
        assert backend.calls == [f"batch_{mode.value}"]

    def test_batch_add_to_two_domains(self) -> None:
        backend = FakeMetadataBackend()
        reconciler, cache, _, selection, _ = make_reconciler(
            {
                "acct-1": [domain("acct-1", "d1", ["web"]), domain("acct-1", "d2")],
                "acct-2": [domain("acct-2", "d9", ["prod"])],
            },
            backend,
        )
        selection.toggle_batch_mode()
        selection.toggle_item("acct-1::d1")
        selection.toggle_item("acct-2::d9")

        result = asyncio.run(reconciler.batch_add_tags([" prod ", "prod"]))

        assert result.success_count == 2
        assert [r.tags for r in backend.batch_requests] == [["prod"], ["prod"]]
        assert cache.find_domain("acct-1", "d1").tags == ["prod", "web"]
        assert cache.find_domain("acct-2", "d9").tags == ["prod"]
        assert cache.find_domain("acct-1", "d2").metadata is None
        assert not selection.batch_mode

    def test_whole_call_failure_changes_nothing(self) -> None:
        backend = FakeMetadataBackend()
        backend.fail_with = RemoteError(code="Provider", message="down")
        reconciler, cache, storage, selection, _ = make_reconciler(
            {"acct-1": [domain("acct-1", "d1", ["a"])]}, backend
        )
        selection.toggle_batch_mode()
        selection.toggle_item("acct-1::d1")
        writes_before = storage.write_count

        try:
            asyncio.run(reconciler.batch_remove_tags(["a"]))
            assert False, "Expected RemoteError"
        except RemoteError:
            pass

        assert cache.find_domain("acct-1", "d1").tags == ["a"]
        assert selection.keys == frozenset({"acct-1::d1"})
        assert storage.write_count == writes_before

    def test_empty_selection_and_empty_tags_rejected(self) -> None:
        backend = FakeMetadataBackend()
        reconciler, _, _, selection, _ = make_reconciler({"acct-1": [domain("acct-1", "d1")]}, backend)

        try:
            asyncio.run(reconciler.batch_add_tags(["x"]))
            assert False, "Expected ValidationError"
        except ValidationError as e:
            assert e.code == "empty_selection"

        selection.toggle_batch_mode()
        selection.toggle_item("acct-1::d1")
        try:
            asyncio.run(reconciler.batch_add_tags([]))
            assert False, "Expected ValidationError"
        except ValidationError as e:
            assert e.code == "no_tags"

        try:
            asyncio.run(reconciler.batch_add_tags(["x"], keys=["malformed", "a::b::c"]))
            assert False, "Expected ValidationError"
        except ValidationError as e:
            assert e.code == "empty_selection"

        assert backend.calls == []

    def test_replace_with_no_tags_clears(self) -> None:
        backend = FakeMetadataBackend()
        reconciler, cache, _, _, _ = make_reconciler({"acct-1": [domain("acct-1", "d1", ["a", "b"])]}, backend)

        asyncio.run(reconciler.batch_set_tags([], keys=["acct-1::d1"]))

        assert cache.find_domain("acct-1", "d1").tags == []


class TestTagFilterPruningProperty:
    """The active tag filter never keeps a tag no cached domain carries."""

    @given(
        initial=st.lists(st.lists(tag_strategy, max_size=3, unique=True), min_size=1, max_size=5),
        filter_tags=st.sets(tag_strategy, max_size=4),
        removed=st.lists(tag_strategy, min_size=1, max_size=3, unique=True),
    )
    @settings(max_examples=100, deadline=None)
    def test_filter_subset_of_index_after_batch_remove(self, initial, filter_tags, removed) -> None:
        items = [domain("acct-1", f"d{i}", t) for i, t in enumerate(initial)]
        backend = FakeMetadataBackend()
        reconciler, cache, _, _, tag_filter = make_reconciler({"acct-1": items}, backend, filter_tags)
        all_before = {t for tags in initial for t in tags}

        asyncio.run(reconciler.batch_remove_tags(removed, keys=[f"acct-1::d{i}" for i in range(len(items))]))

        index = {t for d in cache.iter_domains() for t in d.tags}
        assert index == all_before - set(removed)
        assert tag_filter.tags <= index
        assert tag_filter.tags == frozenset(filter_tags) & index
