"""
Tests for the formula store — registration, conflicts, aliases, lookup.
"""

import threading

import pytest

from formulary.core.errors import FormulaNotFound, IntegrityConflict, NameConflict
from formulary.core.services.formula_store import FormulaStore
from tests.helpers import CONFLICTING_SHA, ZIPCMT_SHA, make_record, source_url

OLDER_SHA = "0" * 63 + "1"


class TestRegister:
    def test_register_and_resolve(self):
        store = FormulaStore()
        record = make_record()
        assert store.register(record) is record
        assert store.resolve("zipcmt") is record
        assert "zipcmt" in store
        assert len(store) == 1

    def test_constructor_registers(self):
        store = FormulaStore([make_record(), make_record("namzd")])
        assert store.names() == ["namzd", "zipcmt"]

    def test_identical_registration_is_idempotent(self):
        store = FormulaStore()
        first = store.register(make_record())
        again = store.register(make_record())
        assert again is first
        assert len(store) == 1

    def test_checksum_conflict_rejected(self):
        store = FormulaStore()
        store.register(make_record())

        with pytest.raises(IntegrityConflict) as exc_info:
            store.register(make_record(checksum=CONFLICTING_SHA))

        e = exc_info.value
        assert e.name == "zipcmt"
        assert e.version == "1.4.6"
        assert e.existing_checksum == ZIPCMT_SHA
        assert e.incoming_checksum == CONFLICTING_SHA

    def test_conflict_leaves_store_unchanged(self):
        store = FormulaStore()
        store.register(make_record())
        with pytest.raises(IntegrityConflict):
            store.register(make_record(checksum=CONFLICTING_SHA))

        assert store.resolve("zipcmt").checksum == ZIPCMT_SHA
        assert len(store) == 1

    def test_conflict_order_decides_winner(self):
        store = FormulaStore()
        store.register(make_record(checksum=CONFLICTING_SHA))
        with pytest.raises(IntegrityConflict):
            store.register(make_record())
        assert store.resolve("zipcmt").checksum == CONFLICTING_SHA

    def test_same_source_different_checksum_rejected(self):
        store = FormulaStore()
        store.register(make_record())
        mirror = make_record(
            "namzd",
            source_url=source_url("zipcmt", "1.4.6"),
            checksum=CONFLICTING_SHA,
        )

        with pytest.raises(IntegrityConflict) as exc_info:
            store.register(mirror)

        assert exc_info.value.source_url == source_url("zipcmt", "1.4.6")
        assert "namzd" not in store

    def test_case_only_name_conflict(self):
        store = FormulaStore()
        store.register(make_record())
        with pytest.raises(NameConflict) as exc_info:
            store.register(make_record("ZipCmt", source_url=source_url("ZipCmt", "1.4.6")))
        assert exc_info.value.existing_name == "zipcmt"
        assert store.names() == ["zipcmt"]

    def test_new_version_same_name(self):
        store = FormulaStore()
        store.register(make_record(version="1.4.5", checksum=OLDER_SHA))
        store.register(make_record())
        assert len(store) == 2
        assert store.versions("zipcmt") == ["1.4.5", "1.4.6"]


class TestAliases:
    def test_shared_checksum_makes_aliases(self):
        store = FormulaStore([make_record(), make_record("namzd")])
        assert store.aliases_of("zipcmt") == {"namzd"}
        assert store.aliases_of("namzd") == {"zipcmt"}

    def test_both_aliases_kept_as_records(self):
        store = FormulaStore([make_record(), make_record("namzd")])
        assert store.resolve("zipcmt").name == "zipcmt"
        assert store.resolve("namzd").name == "namzd"
        assert len(store) == 2

    def test_shared_source_url_makes_aliases(self):
        store = FormulaStore([
            make_record(),
            make_record("zipcomment", source_url=source_url("zipcmt", "1.4.6")),
        ])
        assert store.aliases_of("zipcomment") == {"zipcmt"}

    def test_no_aliases(self):
        store = FormulaStore([make_record(), make_record("namzd", checksum=OLDER_SHA)])
        assert store.aliases_of("zipcmt") == set()

    def test_never_contains_self(self):
        store = FormulaStore([make_record(), make_record("namzd")])
        for name in store.names():
            assert name not in store.aliases_of(name)

    def test_unknown_name(self):
        with pytest.raises(FormulaNotFound):
            FormulaStore().aliases_of("zipcmt")


class TestResolve:
    def _store(self) -> FormulaStore:
        return FormulaStore([
            make_record(version="1.4.5", checksum=OLDER_SHA),
            make_record(),
            make_record("namzd"),
        ])

    def test_latest_is_highest_version(self):
        assert self._store().resolve("zipcmt").version == "1.4.6"

    def test_exact_version(self):
        assert self._store().resolve("zipcmt", "1.4.5").checksum == OLDER_SHA

    def test_version_spelling(self):
        assert self._store().resolve("zipcmt", "v1.4.5").version == "1.4.5"

    def test_unknown_name(self):
        with pytest.raises(FormulaNotFound):
            self._store().resolve("unzip")

    def test_unknown_version(self):
        with pytest.raises(FormulaNotFound) as exc_info:
            self._store().resolve("zipcmt", "2.0.0")
        assert exc_info.value.version == "2.0.0"

    def test_resolve_is_case_sensitive(self):
        with pytest.raises(FormulaNotFound):
            self._store().resolve("ZIPCMT")

    def test_latest_per_name(self):
        latest = self._store().latest()
        assert [(r.name, r.version) for r in latest] == [("namzd", "1.4.6"), ("zipcmt", "1.4.6")]

    def test_records_sorted(self):
        assert [r.key for r in self._store()] == [
            ("namzd", "1.4.6"),
            ("zipcmt", "1.4.5"),
            ("zipcmt", "1.4.6"),
        ]


class TestConcurrentRegistration:
    def test_conflicting_registrations_one_winner(self):
        store = FormulaStore()
        checksums = [ZIPCMT_SHA, CONFLICTING_SHA] * 8
        barrier = threading.Barrier(len(checksums))
        accepted: list[str] = []
        rejected: list[str] = []
        lock = threading.Lock()

        def worker(checksum: str) -> None:
            record = make_record(checksum=checksum)
            barrier.wait()
            try:
                store.register(record)
            except IntegrityConflict:
                with lock:
                    rejected.append(checksum)
            else:
                with lock:
                    accepted.append(checksum)

        threads = [threading.Thread(target=worker, args=(c,)) for c in checksums]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winner = store.resolve("zipcmt").checksum
        assert len(store) == 1
        assert set(accepted) == {winner}
        assert len(accepted) == 8
        assert len(rejected) == 8
        assert winner not in rejected

    def test_distinct_names_all_registered(self):
        store = FormulaStore()
        names = [f"tool-{i:02d}" for i in range(32)]
        barrier = threading.Barrier(len(names))

        def worker(name: str) -> None:
            record = make_record(name, homepage=f"https://github.com/example/{name}")
            barrier.wait()
            store.register(record)

        threads = [threading.Thread(target=worker, args=(n,)) for n in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.names() == names
        assert len(store.aliases_of("tool-00")) == 31
