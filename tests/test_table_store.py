"""Tests for the table store implementations."""

import pytest

from cycle_kernel.table_store.store import (
    InMemoryTableStore,
    SqliteTableStore,
    TableStore,
    TableStoreError,
)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        yield InMemoryTableStore()
    else:
        s = SqliteTableStore(db_path=":memory:")
        yield s
        s.close()


class TestTableStoreContract:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, TableStore)

    def test_missing_collection(self, store):
        assert not store.exists("Nope")
        assert store.read_all("Nope") == ([], [])
        assert store.last_row("Nope") == 0

    def test_append_preserves_order(self, store):
        store.append("Ledger", [["Id", "Phase"]])
        store.append("Ledger", [["A1", "early"], ["A1", "rising"]])
        header, rows = store.read_all("Ledger")
        assert header == ["Id", "Phase"]
        assert rows == [["A1", "early"], ["A1", "rising"]]
        assert store.last_row("Ledger") == 3

    def test_write_cell_extends(self, store):
        store.append("Deck", [["HookId", "HookAge"]])
        store.write_cell("Deck", 3, 2, 4)
        header, rows = store.read_all("Deck")
        assert store.last_row("Deck") == 3
        assert rows[-1] == ["", 4]

    def test_write_range(self, store):
        store.append("Deck", [["A", "B", "C"], [1, 2, 3]])
        store.write_range("Deck", 2, 2, [[20, 30]])
        _, rows = store.read_all("Deck")
        assert rows == [[1, 20, 30]]

    def test_replace(self, store):
        store.append("Cooldowns", [["Domain"], ["CIVIC"], ["SPORTS"]])
        store.replace("Cooldowns", [["Domain", "CyclesRemaining"], ["ARTS", 2]])
        header, rows = store.read_all("Cooldowns")
        assert header == ["Domain", "CyclesRemaining"]
        assert rows == [["ARTS", 2]]
        assert store.last_row("Cooldowns") == 2

    def test_invalid_address(self, store):
        with pytest.raises(TableStoreError):
            store.write_cell("Deck", 0, 1, "x")

    def test_collections_listed(self, store):
        store.append("A", [["x"]])
        store.replace("B", [["y"]])
        assert set(store.collections()) == {"A", "B"}


class TestSqliteDurability:
    def test_rows_survive_reopen(self, tmp_path):
        path = str(tmp_path / "city.db")
        first = SqliteTableStore(db_path=path)
        first.append("Ledger", [["Id", "Phase"], ["A1", "early"], ["A1", "peak"]])
        first.close()

        second = SqliteTableStore(db_path=path)
        header, rows = second.read_all("Ledger")
        assert header == ["Id", "Phase"]
        assert rows == [["A1", "early"], ["A1", "peak"]]
        second.close()

    def test_bool_and_float_round_trip(self):
        s = SqliteTableStore()
        s.append("T", [["Flag", "Tension"], [True, 4.25]])
        _, rows = s.read_all("T")
        assert rows == [[True, 4.25]]
        s.close()
