"""Tests for lazy import system in nostrlivery.__init__."""

from __future__ import annotations

import importlib
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in nostrlivery.__init__."""

    def test_lazy_import_does_not_eagerly_load(self) -> None:
        """Verify that importing nostrlivery does not eagerly load subpackages."""
        cached = {name: mod for name, mod in sys.modules.items() if name.startswith("nostrlivery")}
        for name in cached:
            del sys.modules[name]
        try:
            importlib.import_module("nostrlivery")

            assert "nostrlivery.core" not in sys.modules
            assert "nostrlivery.models" not in sys.modules
            assert "nostrlivery.services" not in sys.modules
            assert "nostrlivery.utils" not in sys.modules
        finally:
            # Restore the original modules so classes imported by other tests stay identical
            for name in [n for n in sys.modules if n.startswith("nostrlivery")]:
                del sys.modules[name]
            sys.modules.update(cached)

    def test_lazy_import_resolves_on_access(self) -> None:
        """Verify that lazy attributes resolve correctly."""
        from nostrlivery import SubscriptionManager
        from nostrlivery.utils.subscriptions import SubscriptionManager as DirectSubscriptionManager

        assert SubscriptionManager is DirectSubscriptionManager

    def test_lazy_import_caches_after_first_access(self) -> None:
        """Verify that resolved attributes are cached in globals."""
        import nostrlivery

        _ = nostrlivery.Filter

        assert "Filter" in vars(nostrlivery)

    def test_lazy_import_invalid_attribute(self) -> None:
        """Verify that invalid attributes raise AttributeError."""
        import nostrlivery

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(nostrlivery, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        """Verify that __all__ and _LAZY_IMPORTS are in sync."""
        import nostrlivery

        assert set(nostrlivery.__all__) == set(nostrlivery._LAZY_IMPORTS)

    def test_version(self) -> None:
        import nostrlivery

        assert nostrlivery.__version__
