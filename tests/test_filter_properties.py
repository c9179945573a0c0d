"""
Property-based tests for local filtering, selection sets, the debouncer
and the request guards.
"""

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from dns_sync.debounce import Debouncer
from dns_sync.domain_cache import DomainCache
from dns_sync.enums import DomainSortKey, SelectionState
from dns_sync.filters import SessionFavorites, TagFilter, filter_domains, name_matches, sort_domains
from dns_sync.models import Domain, DomainMetadata, Page
from dns_sync.recent_domains import MAX_RECENT_DOMAINS, RecentDomains
from dns_sync.request_guard import InFlightSet, RequestGuard
from dns_sync.selection import SelectionSet, make_domain_key, parse_domain_key
from dns_sync.storage import MemoryStorage


@st.composite
def domain_list_strategy(draw) -> list[Domain]:
    names = draw(st.lists(
        st.text(alphabet="abcdefghijkLMNOP-", min_size=1, max_size=12),
        max_size=15,
    ))
    tag_pool = ["prod", "dev", "web", "mail"]
    domains = []
    for i, name in enumerate(names):
        tags = draw(st.lists(st.sampled_from(tag_pool), max_size=3, unique=True))
        metadata = DomainMetadata(tags=tags) if tags or draw(st.booleans()) else None
        domains.append(Domain(id=f"d{i}", name=f"{name}.com", account_id="acct-1", provider="cloudflare", metadata=metadata))
    return domains


class TestFilterPurityProperty:
    """Filtering keeps input order and never modifies its input."""

    @given(
        domains=domain_list_strategy(),
        query=st.text(alphabet="abcLMN", max_size=3),
        tags=st.sets(st.sampled_from(["prod", "dev", "web", "mail", "none"]), max_size=2),
    )
    @settings(max_examples=100, deadline=None)
    def test_filter_is_ordered_subsequence(self, domains, query, tags) -> None:
        snapshot = [d.to_dict() for d in domains]

        result = filter_domains(domains, query, tags)

        assert [d.to_dict() for d in domains] == snapshot
        positions = [domains.index(d) for d in result]
        assert positions == sorted(positions)
        for d in domains:
            expected = query.lower() in d.name.lower() and (not tags or bool(tags & set(d.tags)))
            assert (d in result) == expected

    @given(domains=domain_list_strategy())
    @settings(max_examples=50, deadline=None)
    def test_empty_filter_is_identity(self, domains) -> None:
        assert filter_domains(domains) == domains

    def test_punycode_and_unicode_match(self) -> None:
        assert name_matches("xn--mnchen-3ya.de", "münchen")
        assert name_matches("münchen.de", "xn--mnchen")
        assert name_matches("Example.COM", "example.c")
        assert not name_matches("example.com", "other")

    def test_sort_by_name_and_favorited_at(self) -> None:
        a = Domain(id="a", name="b.com", account_id="x", provider="p",
                   metadata=DomainMetadata(is_favorite=True, favorited_at="2024-01-01T00:00:00+00:00"))
        b = Domain(id="b", name="A.com", account_id="x", provider="p",
                   metadata=DomainMetadata(is_favorite=True, favorited_at="2025-01-01T00:00:00+00:00"))
        c = Domain(id="c", name="c.com", account_id="x", provider="p",
                   metadata=DomainMetadata(is_favorite=False, favorited_at="2026-01-01T00:00:00+00:00"))
        assert [d.id for d in sort_domains([a, b, c])] == ["b", "a", "c"]

        cache = DomainCache()
        cache.replace("x", Page(items=[a, b, c], page=1, page_size=20, total_count=3, has_more=False))
        favorites = SessionFavorites().favorites(cache)
        assert [f.domain.id for f in favorites] == ["b", "a"]
        assert all(f.currently_favorited for f in favorites)
        assert [d.id for d in sort_domains([a, b], DomainSortKey.FAVORITED_AT)] == ["b", "a"]

    def test_unfavorited_domain_stays_listed_for_session(self) -> None:
        a = Domain(id="a", name="a.com", account_id="x", provider="p",
                   metadata=DomainMetadata(is_favorite=True, favorited_at="2024-01-01T00:00:00+00:00"))
        b = Domain(id="b", name="b.com", account_id="y", provider="p",
                   metadata=DomainMetadata(is_favorite=True, favorited_at="2025-01-01T00:00:00+00:00"))
        cache = DomainCache()
        cache.replace("x", Page(items=[a], page=1, page_size=20, total_count=1, has_more=False))
        cache.replace("y", Page(items=[b], page=1, page_size=20, total_count=1, has_more=False))
        session = SessionFavorites()
        assert session.observe(cache) == 2
        assert session.observe(cache) == 0

        cache.patch_metadata("x", "a", lambda m: setattr(m, "is_favorite", False))
        favorites = session.favorites(cache)

        assert [(f.domain.id, f.currently_favorited) for f in favorites] == [("b", True), ("a", False)]
        session.forget_account("y")
        assert "y::b" not in session
        assert [f.domain.id for f in session.favorites(cache)] == ["a"]
        session.clear()
        assert session.favorites(cache) == []


class TestTagFilter:
    def test_toggle_and_prune(self) -> None:
        tag_filter = TagFilter()
        assert tag_filter.toggle("prod")
        assert tag_filter.toggle("dev")
        assert not tag_filter.toggle("dev")
        tag_filter.replace(["prod", "web"])

        removed = tag_filter.prune(["prod", "mail"])

        assert removed == {"web"}
        assert tag_filter.tags == frozenset({"prod"})
        tag_filter.clear()
        assert not tag_filter


class TestSelectionInvariantProperty:
    """A selection can only be non-empty while batch mode is on."""

    @given(ops=st.lists(
        st.one_of(
            st.tuples(st.just("toggle_mode")),
            st.tuples(st.just("toggle_item"), st.sampled_from(["a::1", "a::2", "b::1"])),
            st.tuples(st.just("select_all")),
            st.tuples(st.just("clear")),
            st.tuples(st.just("exit")),
        ),
        max_size=30,
    ))
    @settings(max_examples=200, deadline=None)
    def test_invariant_holds_after_any_sequence(self, ops) -> None:
        selection = SelectionSet()
        for op in ops:
            if op[0] == "toggle_mode":
                selection.toggle_batch_mode()
                assert len(selection) == 0
            elif op[0] == "toggle_item":
                selection.toggle_item(op[1])
            elif op[0] == "select_all":
                selection.select_all(["a::1", "a::2", "b::1"])
            elif op[0] == "clear":
                selection.clear_selection()
            else:
                selection.exit_batch_mode()

            assert selection.batch_mode or len(selection) == 0
            if not selection.batch_mode:
                assert selection.state is SelectionState.INACTIVE
            elif len(selection):
                assert selection.state is SelectionState.ACTIVE_NONEMPTY
            else:
                assert selection.state is SelectionState.ACTIVE_EMPTY

    @given(
        account_id=st.text(alphabet="abc-1", min_size=1, max_size=8),
        domain_id=st.text(alphabet="xyz-2", min_size=1, max_size=8),
    )
    @settings(max_examples=50, deadline=None)
    def test_domain_keys_parse_back(self, account_id: str, domain_id: str) -> None:
        assert parse_domain_key(make_domain_key(account_id, domain_id)) == (account_id, domain_id)

    def test_malformed_keys(self) -> None:
        for key in ["", "abc", "::x", "x::", "a::b::c"]:
            assert parse_domain_key(key) is None


class TestDebounceProperty:
    """Rapid schedules collapse into one trailing call; flush runs it now."""

    @given(count=st.integers(min_value=1, max_value=10))
    @settings(max_examples=10, deadline=None)
    def test_burst_runs_only_last_callback(self, count: int) -> None:
        debouncer = Debouncer(0.01)
        calls = []

        async def run() -> None:
            for i in range(count):
                debouncer.schedule("scroll", lambda i=i: calls.append(i))
            assert debouncer.is_pending("scroll")
            await asyncio.sleep(0.05)

        asyncio.run(run())

        assert calls == [count - 1]
        assert not debouncer.is_pending("scroll")

    def test_flush_and_cancel(self) -> None:
        debouncer = Debouncer(10.0)
        calls = []

        async def run() -> int:
            debouncer.schedule("a", lambda: calls.append("a"))
            debouncer.schedule("b", lambda: calls.append("b"))
            assert debouncer.cancel("b")
            return debouncer.flush()

        assert asyncio.run(run()) == 1
        assert calls == ["a"]

    def test_pending_outside_event_loop(self) -> None:
        debouncer = Debouncer(0.3)
        calls = []
        debouncer.schedule("k", lambda: calls.append(1))
        assert calls == []
        assert debouncer.flush("k") == 1
        assert calls == [1]
        assert debouncer.flush() == 0

    def test_negative_delay_rejected(self) -> None:
        try:
            Debouncer(-1)
            assert False, "Expected ValueError"
        except ValueError:
            pass


class TestRequestGuards:
    def test_in_flight_set(self) -> None:
        in_flight = InFlightSet()
        assert in_flight.try_acquire("a")
        assert not in_flight.try_acquire("a")

        async def hold(key: str) -> bool:
            async with in_flight.hold(key) as acquired:
                return acquired

        assert not asyncio.run(hold("a"))
        assert "a" in in_flight
        in_flight.release("a")
        assert asyncio.run(hold("a"))
        assert "a" not in in_flight

    @given(issues=st.integers(min_value=1, max_value=10))
    @settings(max_examples=20, deadline=None)
    def test_only_latest_token_current(self, issues: int) -> None:
        guard = RequestGuard()
        tokens = [guard.issue("records") for _ in range(issues)]
        assert [guard.is_current(t) for t in tokens] == [False] * (issues - 1) + [True]
        guard.invalidate("records")
        assert not any(guard.is_current(t) for t in tokens)
        other = guard.issue("other")
        assert guard.is_current(other)
        guard.invalidate_all()
        assert not guard.is_current(other)
        assert guard.is_current(guard.issue("records"))


class TestRecentDomainsProperty:
    """Most recent first, unique per domain, bounded length."""

    @given(opened=st.lists(st.integers(min_value=0, max_value=9), max_size=30))
    @settings(max_examples=50, deadline=None)
    def test_recent_list(self, opened: list[int]) -> None:
        clock = iter(range(1, 1000))
        recent = RecentDomains(MemoryStorage(), clock=lambda: float(next(clock)))
        for i in opened:
            recent.add(f"acct-{i % 2}", f"d{i}", f"d{i}.com")

        expected = []
        for i in reversed(opened):
            if f"d{i}" not in expected:
                expected.append(f"d{i}")
        assert [e.domain_id for e in recent.entries()] == expected[:MAX_RECENT_DOMAINS]

    def test_cleanup_and_remove_account(self) -> None:
        storage = MemoryStorage()
        recent = RecentDomains(storage)
        recent.add("acct-1", "d1", "one.com")
        recent.add("acct-2", "d2", "two.com")
        recent.add("acct-3", "d3", "three.com")

        recent.cleanup(["acct-1", "acct-2"])
        assert [e.domain_id for e in recent.entries()] == ["d2", "d1"]
        recent.remove_account("acct-2")
        assert [e.domain_id for e in recent.entries()] == ["d1"]
