"""Versioned wallet file: persistence, corruption, encryption, backups."""

import json

import pytest
from nacl.utils import random as nacl_random

from shieldnet.crypto_core.notes import Note
from shieldnet.database.store import WalletState, WalletStore
from shieldnet.errors import StorageCorrupt

from conftest import ASSET


def _state(keypair) -> WalletState:
    n1 = Note.create(1000, ASSET, keypair, blinding=1, leaf_index=0)
    n2 = Note.create(250, ASSET, keypair, blinding=2, leaf_index=1)
    n2.spent = True
    return WalletState(keypair.private_key, [n1, n2], [n1.commitment, n2.commitment])


class TestRoundTrip:
    def test_missing_file_loads_none(self, store) -> None:
        assert not store.exists()
        assert store.load() is None

    def test_save_then_load(self, store, keypair) -> None:
        state = _state(keypair)
        store.save(state)
        assert store.path.name == "wallet_v4.json"
        loaded = store.load()
        assert loaded.private_key == keypair.private_key
        assert loaded.leaves == state.leaves
        assert [n.commitment for n in loaded.notes] == [n.commitment for n in state.notes]
        assert [n.spent for n in loaded.notes] == [False, True]

    def test_big_integers_stored_as_decimal_strings(self, store, keypair) -> None:
        store.save(_state(keypair))
        doc = json.loads(store.path.read_text())
        assert doc["version"] == "v4"
        assert doc["private_key"] == str(keypair.private_key)
        assert all(isinstance(x, str) for x in doc["leaves"])
        assert doc["notes"][0]["commitment"].isdigit()

    def test_no_temp_file_left(self, store, keypair) -> None:
        store.save(_state(keypair))
        assert [p.name for p in store.data_dir.iterdir()] == ["wallet_v4.json"]


class TestVersioning:
    def test_other_version_is_invisible(self, tmp_path, keypair) -> None:
        WalletStore(str(tmp_path), "v3").save(_state(keypair))
        assert WalletStore(str(tmp_path), "v4").load() is None

    def test_mismatched_version_inside_file(self, tmp_path, keypair) -> None:
        WalletStore(str(tmp_path), "v3").save(_state(keypair))
        (tmp_path / "wallet_v3.json").rename(tmp_path / "wallet_v4.json")
        with pytest.raises(StorageCorrupt):
            WalletStore(str(tmp_path), "v4").load()


class TestCorruption:
    @pytest.mark.parametrize("content", [
        "{not json",
        "[]",
        '{"version": "v4"}',
        '{"version": "v4", "private_key": "abc"}',
        '{"version": "v4", "private_key": "1", "notes": [{"amount": "x"}]}',
    ])
    def test_unparseable_raises_and_file_untouched(self, store, content) -> None:
        store.data_dir.mkdir(parents=True, exist_ok=True)
        store.path.write_text(content)
        with pytest.raises(StorageCorrupt):
            store.load()
        assert store.path.read_text() == content


class TestEncryption:
    def test_encrypted_round_trip(self, tmp_path, keypair) -> None:
        key = nacl_random(32)
        store = WalletStore(str(tmp_path), "v4", key=key)
        assert store.encrypted
        store.save(_state(keypair))
        assert b"private_key" not in store.path.read_bytes()
        assert store.load().private_key == keypair.private_key

    def test_wrong_key(self, tmp_path, keypair) -> None:
        WalletStore(str(tmp_path), "v4", key=nacl_random(32)).save(_state(keypair))
        with pytest.raises(StorageCorrupt):
            WalletStore(str(tmp_path), "v4", key=nacl_random(32)).load()

    def test_bad_key_size(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            WalletStore(str(tmp_path), "v4", key=b"short")


class TestBackup:
    def test_nothing_to_back_up(self, store) -> None:
        assert store.backup() is None

    def test_rotation_keeps_newest(self, store, keypair) -> None:
        store.save(_state(keypair))
        made = [store.backup(max_backups=2) for _ in range(4)]
        kept = sorted((store.data_dir / "backups").iterdir())
        assert len(kept) == 2
        assert kept[-1] == made[-1]
        assert kept[-1].read_bytes() == store.path.read_bytes()
