"""
Tests for the package surface: importing dns_sync alone loads every module
and every exported name resolves.
"""

import importlib

import dns_sync


class TestPackageImport:
    def test_exports_resolve(self) -> None:
        assert dns_sync.__version__
        missing = [name for name in dns_sync.__all__ if not hasattr(dns_sync, name)]
        assert missing == []

    def test_every_module_imports(self) -> None:
        for module in (
            "audit_logger", "batch", "cli", "config", "debounce", "domain_cache",
            "enums", "exceptions", "filters", "models", "mutations", "pagination",
            "providers", "record_list", "recent_domains", "refresh", "remote",
            "request_guard", "selection", "storage", "sync_service", "validation",
        ):
            assert importlib.import_module(f"dns_sync.{module}")

    def test_methods_do_not_shadow_builtins_in_annotations(self) -> None:
        tag_filter = dns_sync.TagFilter(["a"])
        tag_filter.replace(["b", "c"])
        assert tag_filter.prune(["b"]) == {"c"}
        assert dns_sync.RecentDomains(dns_sync.MemoryStorage()).entries() == []
