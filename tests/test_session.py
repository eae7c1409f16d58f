"""Tests for MetaKeysSession and the Tab wiring across several tabs."""

from __future__ import annotations

from stealthvault.models import AllMetaKeys

PIN = "482913"


class TestMetaKeysSession:
    def test_save_marks_loaded(self, make_tab, meta_keys):
        tab = make_tab()
        assert tab.session.save(meta_keys, PIN)
        assert tab.session.is_loaded
        assert tab.session.meta_keys == meta_keys
        assert not tab.session.operation_in_progress

    def test_save_requires_pin(self, make_tab, meta_keys):
        tab = make_tab()
        assert not tab.session.save(meta_keys, "")
        assert not tab.vault.has_encrypted_vault()

    def test_save_drops_empty_chains(self, make_tab, meta_keys):
        tab = make_tab()
        assert tab.session.save({"APTOS": None}, PIN)
        assert tab.session.meta_keys == AllMetaKeys()

    def test_save_rejects_malformed(self, make_tab):
        tab = make_tab()
        assert not tab.session.save({"BITCOIN": {"address": "x"}}, PIN)
        assert not tab.session.is_loaded

    def test_unlock(self, make_tab, meta_keys):
        writer = make_tab()
        writer.session.save(meta_keys, PIN)
        writer.vault.lock()
        reader = make_tab()
        assert not reader.session.unlock("000000")
        assert reader.session.unlock(PIN)
        assert reader.session.meta_keys == meta_keys

    def test_load_from_session(self, make_tab, meta_keys):
        make_tab().session.save(meta_keys, PIN)
        later = make_tab()
        assert later.session.load_from_session()
        assert later.session.meta_keys == meta_keys
        assert later.session.session_loading_complete

    def test_load_without_vault(self, make_tab):
        tab = make_tab()
        assert not tab.session.load_from_session()
        assert tab.session.session_loading_complete

    def test_load_after_lock_needs_pin(self, make_tab, meta_keys):
        tab = make_tab()
        tab.session.save(meta_keys, PIN)
        tab.vault.lock()
        assert not make_tab().session.load_from_session()

    def test_clear(self, make_tab, meta_keys):
        tab = make_tab()
        tab.session.save(meta_keys, PIN)
        tab.session.clear()
        assert tab.session.meta_keys is None
        assert not tab.session.is_loaded
        assert not tab.vault.has_encrypted_vault()


class TestCrossTab:
    def test_unlock_in_one_tab_loads_the_other(self, make_tab, meta_keys):
        first = make_tab()
        second = make_tab()
        first.session.save(meta_keys, PIN)
        assert second.session.is_loaded
        assert second.session.meta_keys == meta_keys

    def test_pin_unlock_propagates(self, make_tab, meta_keys):
        first = make_tab()
        first.session.save(meta_keys, PIN)
        first.vault.lock()
        second = make_tab()
        third = make_tab()
        assert second.session.unlock(PIN)
        assert third.session.is_loaded

    def test_loaded_tab_not_replaced(self, make_tab, meta_keys):
        first = make_tab()
        second = make_tab()
        first.session.save(meta_keys, PIN)
        first.session.save(AllMetaKeys(), PIN)
        assert second.session.meta_keys == meta_keys

    def test_closed_tab_stops_following(self, make_tab, meta_keys):
        first = make_tab()
        second = make_tab()
        second.close()
        first.session.save(meta_keys, PIN)
        assert not second.session.is_loaded

    def test_close_releases_locks(self, make_tab):
        first = make_tab()
        second = make_tab()
        assert first.locks.acquire("vault-store", 10_000)
        first.close()
        assert second.locks.acquire("vault-store", 10_000)

    def test_tab_ids_distinct(self, make_tab):
        assert make_tab().tab_id != make_tab().tab_id

    def test_rate_limiter_passed_through(self, make_tab, fast_limiter):
        tab = make_tab(rate_limiter=fast_limiter)
        assert tab.vault.rate_limiter is fast_limiter
