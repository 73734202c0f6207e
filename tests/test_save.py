"""Tests for save module."""
import dataclasses

import pytest

from idleeconomy.building import BuildingDef
from idleeconomy.catalog import Catalog
from idleeconomy.errors import CorruptionError, SaveError, UnrecoverableSaveError
from idleeconomy.resource import ResourceDef
from idleeconomy.save import (
    FileSaveStore,
    MemorySaveStore,
    MigrationRegistry,
    SaveData,
    SaveManager,
    canonical_json,
    deserialize,
    generate_checksum,
    serialize,
)
from idleeconomy.state import GameState


def _make_catalog() -> Catalog:
    return Catalog(
        name="Test",
        resources=[ResourceDef("rice", initial_amount=10), ResourceDef("water")],
        buildings=[BuildingDef("paddy"), BuildingDef("well")],
    )


def _make_state(catalog: Catalog, rice: float = 123.5) -> GameState:
    state = GameState(catalog)
    state.change_resource("rice", rice)
    state.unlock_building("paddy")
    state.add_buildings("paddy", 4)
    state.purchase_upgrade("iron_sickle")
    state.statistics.total_clicks = 17
    state.last_played_at = 1_700_000_000_000.0
    return state


def _flip_bit(text: str, index: int) -> str:
    return text[:index] + chr(ord(text[index]) ^ 1) + text[index + 1:]


# ── Checksum & snapshot ──────────────────────────────────────────────


def test_checksum_is_length_and_char_sum():
    data = {"b": 1, "a": [1, 2]}
    text = canonical_json(data)
    assert text == '{"a":[1,2],"b":1}'
    assert generate_checksum(data) == f"{len(text)}:{sum(map(ord, text))}"


def test_round_trip():
    catalog = _make_catalog()
    state = _make_state(catalog)
    snapshot = serialize(state, 1000.0)
    restored = deserialize(snapshot.to_json(), catalog)
    assert restored.to_dict() == state.to_dict()


def test_round_trip_preserves_unlocks():
    catalog = _make_catalog()
    state = _make_state(catalog)
    restored = deserialize(serialize(state, 0.0), catalog)
    assert restored.is_building_unlocked("paddy")
    assert not restored.is_building_unlocked("well")


def test_single_bit_flip_detected():
    catalog = _make_catalog()
    text = serialize(_make_state(catalog), 0.0).to_json()
    marker = '"total_clicks":'
    index = text.index(marker) + len(marker)
    with pytest.raises(CorruptionError):
        deserialize(_flip_bit(text, index), catalog)


def test_any_bit_flip_in_payload_detected():
    catalog = _make_catalog()
    text = serialize(_make_state(catalog), 0.0).to_json()
    start = text.index('"data":') + len('"data":')
    end = text.index(',"timestamp":')
    for index in range(start, end, 7):
        with pytest.raises(CorruptionError):
            deserialize(_flip_bit(text, index), catalog)


def test_tampered_payload_detected():
    catalog = _make_catalog()
    snapshot = serialize(_make_state(catalog), 0.0)
    data = dict(snapshot.data, prestige_level=99)
    assert not dataclasses.replace(snapshot, data=data).is_valid()
    with pytest.raises(CorruptionError):
        deserialize(dataclasses.replace(snapshot, data=data), catalog)


def test_malformed_json():
    catalog = _make_catalog()
    with pytest.raises(CorruptionError):
        deserialize("{not json", catalog)
    with pytest.raises(CorruptionError):
        deserialize("[1, 2]", catalog)
    with pytest.raises(CorruptionError):
        deserialize('{"version": "1.0.0"}', catalog)


def test_valid_checksum_bad_shape():
    catalog = _make_catalog()
    data = {"statistics": {"favourite_colour": "green"}}
    snapshot = SaveData("1.0.0", 0.0, data, generate_checksum(data))
    with pytest.raises(CorruptionError):
        deserialize(snapshot, catalog)


# ── Migrations ───────────────────────────────────────────────────────


def _legacy_snapshot(catalog: Catalog, version: str) -> SaveData:
    data = _make_state(catalog).to_dict()
    del data["era"]
    return SaveData(version, 0.0, data, generate_checksum(data))


def test_migration_applied():
    catalog = _make_catalog()
    registry = MigrationRegistry()
    registry.register("0.9.0", "1.0.0", lambda d: dict(d, era=3))
    state = deserialize(_legacy_snapshot(catalog, "0.9.0"), catalog, migrations=registry)
    assert state.era == 3


def test_migration_chain():
    catalog = _make_catalog()
    registry = MigrationRegistry()
    registry.register("0.8.0", "0.9.0", lambda d: dict(d, era=2))
    registry.register("0.9.0", "1.0.0", lambda d: dict(d, prestige_level=d["era"] + 1))
    state = deserialize(_legacy_snapshot(catalog, "0.8.0"), catalog, migrations=registry)
    assert state.era == 2
    assert state.prestige_level == 3


def test_missing_migration_passes_through():
    catalog = _make_catalog()
    state = deserialize(
        _legacy_snapshot(catalog, "0.1.0"), catalog, migrations=MigrationRegistry()
    )
    assert state.era == 1
    assert state.building_owned("paddy") == 4


# ── Manager ──────────────────────────────────────────────────────────


def _make_manager(store=None) -> SaveManager:
    return SaveManager(store or MemorySaveStore(), _make_catalog())


def test_load_without_save():
    manager = _make_manager()
    assert manager.load() is None
    assert not manager.has_save()


def test_save_and_load():
    manager = _make_manager()
    state = _make_state(manager.catalog)
    manager.save(state, 5000.0)
    assert manager.has_save()
    assert manager.load().to_dict() == state.to_dict()
    assert manager.load_snapshot().timestamp == 5000.0


def test_backups_rotate():
    store = MemorySaveStore()
    manager = _make_manager(store)
    for i in range(5):
        manager.save(_make_state(manager.catalog, rice=i), float(i))

    timestamps = [
        SaveData.from_json(store.items[manager.backup_key(i)]).timestamp for i in range(3)
    ]
    assert timestamps == [3.0, 2.0, 1.0]
    assert manager.backup_key(3) not in store.items


def test_corrupt_save_falls_back_to_backup():
    store = MemorySaveStore()
    manager = _make_manager(store)
    manager.save(_make_state(manager.catalog, rice=1), 1.0)
    manager.save(_make_state(manager.catalog, rice=2), 2.0)
    store.items[manager.save_key] = "garbage"

    state = manager.load()
    assert state.resource_amount("rice") == 11
    # The good backup is promoted to the main slot
    assert manager.load_snapshot().timestamp == 1.0


def test_fallback_skips_corrupt_backups():
    store = MemorySaveStore()
    manager = _make_manager(store)
    for i in range(3):
        manager.save(_make_state(manager.catalog, rice=i), float(i))
    store.items[manager.save_key] = "garbage"
    store.items[manager.backup_key(0)] = _flip_bit(store.items[manager.backup_key(0)], 40)

    state = manager.load()
    assert state.resource_amount("rice") == 10


def test_all_corrupt_is_unrecoverable():
    store = MemorySaveStore()
    manager = _make_manager(store)
    for i in range(4):
        manager.save(_make_state(manager.catalog), float(i))
    for key in list(store.items):
        store.items[key] = "garbage"

    with pytest.raises(UnrecoverableSaveError) as exc_info:
        manager.load()
    assert len(exc_info.value.attempts) == 4
    assert isinstance(exc_info.value, SaveError)


def test_delete_save():
    store = MemorySaveStore()
    manager = _make_manager(store)
    manager.save(_make_state(manager.catalog), 0.0)
    manager.save(_make_state(manager.catalog), 1.0)
    manager.delete_save()
    assert store.items == {}


def test_export_and_import():
    source = _make_manager()
    assert source.export_save() == ""
    state = _make_state(source.catalog)
    source.save(state, 0.0)
    encoded = source.export_save()

    target = _make_manager()
    imported = target.import_save(encoded)
    assert imported.to_dict() == state.to_dict()
    assert target.load().to_dict() == state.to_dict()


def test_import_rejects_garbage():
    manager = _make_manager()
    with pytest.raises(CorruptionError):
        manager.import_save("!!! not base64 !!!")
    assert not manager.has_save()


class _BrokenStore(MemorySaveStore):
    def write(self, key, text):
        raise OSError("disk full")


def test_write_failure_raises_save_error():
    manager = _make_manager(_BrokenStore())
    with pytest.raises(SaveError, match="disk full"):
        manager.save(_make_state(manager.catalog), 0.0)


def test_file_store(tmp_path):
    store = FileSaveStore(tmp_path / "saves")
    manager = _make_manager(store)
    state = _make_state(manager.catalog)
    manager.save(state, 0.0)
    manager.save(state, 1.0)

    assert (tmp_path / "saves" / "idleeconomy_save.json").exists()
    assert (tmp_path / "saves" / "idleeconomy_save_backup_0.json").exists()
    assert manager.load().to_dict() == state.to_dict()

    manager.delete_save()
    assert store.read("idleeconomy_save") is None


def test_non_finite_number_rejected():
    catalog = _make_catalog()
    text = '{"checksum":"0:0","data":{"prestige_level":NaN},"timestamp":0,"version":"1.0.0"}'
    with pytest.raises(CorruptionError):
        deserialize(text, catalog)
    assert not SaveData("1.0.0", 0.0, {"x": float("inf")}, "0:0").is_valid()


def test_non_finite_save_falls_back_to_backup():
    store = MemorySaveStore()
    manager = _make_manager(store)
    manager.save(_make_state(manager.catalog, rice=1), 1.0)
    manager.save(_make_state(manager.catalog, rice=2), 2.0)
    store.items[manager.save_key] = store.items[manager.save_key].replace(
        '"total_clicks":17', '"total_clicks":Infinity'
    )

    state = manager.load()
    assert state.resource_amount("rice") == 11


def test_file_store_invalid_utf8_falls_back_to_backup(tmp_path):
    store = FileSaveStore(tmp_path)
    manager = _make_manager(store)
    manager.save(_make_state(manager.catalog, rice=1), 1.0)
    manager.save(_make_state(manager.catalog, rice=2), 2.0)
    path = tmp_path / "idleeconomy_save.json"
    raw = bytearray(path.read_bytes())
    raw[20] ^= 0x80
    path.write_bytes(bytes(raw))

    with pytest.raises(CorruptionError):
        store.read("idleeconomy_save")
    assert manager.has_save()
    state = manager.load()
    assert state.resource_amount("rice") == 11
    # The recovered backup replaced the unreadable main file
    assert store.read("idleeconomy_save") is not None


def test_save_over_unreadable_file(tmp_path):
    store = FileSaveStore(tmp_path)
    manager = _make_manager(store)
    manager.save(_make_state(manager.catalog, rice=1), 1.0)
    (tmp_path / "idleeconomy_save.json").write_bytes(b"\xff\xfe garbage")

    manager.save(_make_state(manager.catalog, rice=2), 2.0)
    assert manager.load().resource_amount("rice") == 12
