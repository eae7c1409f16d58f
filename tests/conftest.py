"""Shared test fixtures."""

from __future__ import annotations

import logging

import pytest

from stealthvault.config import Settings
from stealthvault.models import AllMetaKeys, MetaKeySet
from stealthvault.storage.backend import MemoryBackend, StorageArea
from stealthvault.tab import Tab
from stealthvault.util.rate_limit import RateLimiter
from stealthvault.vault.manager import SharedVault


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo setup_secure_logging between tests so caplog keeps working."""
    yield
    pkg_logger = logging.getLogger("stealthvault")
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
        handler.close()
    pkg_logger.propagate = True
    pkg_logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def meta_keys():
    return AllMetaKeys(
        APTOS=MetaKeySet(
            address="0x9f3c1d0a7be54e2c8d1f00aa42b7c9e1d3f5a6b7c8d9e0f1a2b3c4d5e6f70812",
            metaSpendPriv="6b1f0c4e2d9a8b7c6d5e4f3a2b1c0d9e8f7a6b5c4d3e2f1a0b9c8d7e6f5a4b3c",
            metaSpendPub="pQz3hJ8Wm1kTfR7vYc2NbX5aLdE9uG4sV6oKiP0qHjM",
            metaViewPriv="1a2b3c4d5e6f708192a3b4c5d6e7f8091a2b3c4d5e6f708192a3b4c5d6e7f809",
            metaViewPub="mN4bV7cX1zL9kJ3hG6fD2sA8pO5iU0yT4rE7wQ1aS3d",
        )
    )


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def storage(backend):
    return StorageArea(backend)


@pytest.fixture
def vault(storage, settings):
    return SharedVault(storage, settings)


@pytest.fixture
def fast_limiter():
    """A limiter that never sleeps."""
    return RateLimiter(max_attempts=3, delay_base=0)


@pytest.fixture
def make_tab(backend, settings):
    """Open tabs on the shared backend; all are closed at teardown."""
    tabs = []

    def _make(**kwargs):
        tab = Tab(backend, settings, **kwargs)
        tabs.append(tab)
        return tab

    yield _make
    for tab in tabs:
        tab.close()
