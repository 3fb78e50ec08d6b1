import concurrent.futures
import threading

import pytest

from ctphantom.exceptions import NotFoundError
from ctphantom.material import MaterialDefinition, MaterialTable


def test_default_table_order():
    table = MaterialTable.default()
    assert table.names() == [
        "AIR700ICRU",
        "LUNG700ICRU",
        "ICRUTISSUE700ICRU",
        "ICRPBONE700ICRU",
        "H2O700ICRU",
    ]
    assert [m.index for m in table] == [1, 2, 3, 4, 5]
    assert table.size() == len(table) == 5


def test_default_table_is_shared():
    assert MaterialTable.default() is MaterialTable.default()


def test_default_table_built_once_across_threads(monkeypatch):
    monkeypatch.setattr(MaterialTable, "_default", None)
    n_workers = 16
    start = threading.Barrier(n_workers)

    def get_default():
        start.wait()
        return MaterialTable.default()

    with concurrent.futures.ThreadPoolExecutor(max_workers=n_workers) as executor:
        tables = list(executor.map(lambda _: get_default(), range(n_workers)))

    assert all(t is tables[0] for t in tables)
    assert tables[0] is MaterialTable.default()
    assert tables[0].names()[0] == "AIR700ICRU"


def test_documented_brackets():
    table = MaterialTable.default()
    assert table["AIR700ICRU"].hu_range == (0, 50)
    assert table["ICRPBONE700ICRU"].hu_range == (1125, 3000)
    assert table["ICRPBONE700ICRU"].density_range == (1.101, 2.088)
    assert table["H2O700ICRU"].hu_range is None
    assert table["H2O700ICRU"].density_range is None


def test_lookup():
    table = MaterialTable.default()
    assert table.lookup("LUNG700ICRU") == 2
    assert table.lookup("icrutissue700icru") == 3
    assert table.by_index(4).name == "ICRPBONE700ICRU"
    assert "H2O700ICRU" in table
    assert "PMMA700ICRU" not in table


def test_lookup_unknown():
    table = MaterialTable.default()
    with pytest.raises(NotFoundError):
        table.lookup("PMMA700ICRU")

    # also a KeyError, for mapping-style callers
    with pytest.raises(KeyError):
        table["PMMA700ICRU"]

    with pytest.raises(NotFoundError):
        table.by_index(0)


def test_indices_follow_declaration_order():
    table = MaterialTable(
        [MaterialDefinition("water"), MaterialDefinition("AIR700ICRU", (0, 50), (0.001, 0.044))]
    )
    assert table.names() == ["water", "AIR700ICRU"]
    assert table.lookup("WATER") == 1
    assert table.lookup("water") == 1
    assert table.lookup("AIR700ICRU") == 2


def test_invalid_tables():
    with pytest.raises(ValueError):
        MaterialTable([])

    with pytest.raises(ValueError):
        MaterialTable([MaterialDefinition("WATER"), MaterialDefinition("water")])

    with pytest.raises(ValueError):
        MaterialDefinition("SOFT TISSUE")


def test_config_round_trip():
    table = MaterialTable.default()
    assert MaterialTable.from_config(table.get_config()) == table


def test_names_keep_their_case():
    table = MaterialTable([MaterialDefinition("Pmma521icru"), MaterialDefinition("AIR700ICRU")])
    assert table.names() == ["Pmma521icru", "AIR700ICRU"]
    assert table.lookup("PMMA521ICRU") == 1
    assert MaterialTable.from_config(table.get_config()).names() == table.names()
