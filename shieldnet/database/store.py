"""
Versioned on-disk wallet state: private key, notes and the mirrored leaf list.

One JSON document per storage-version tag (wallet_<version>.json). A file
written under another tag is never opened, so a change in format or in the
hash masking rule only needs a new tag. Unparseable files raise
StorageCorrupt and are left exactly as found.
"""
from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from nacl.exceptions import CryptoError
from nacl.secret import SecretBox
from nacl.utils import random as nacl_random

from shieldnet import config
from shieldnet.api.logging_config import get_logger
from shieldnet.api.schemas_api import SerializedNote
from shieldnet.crypto_core.field import check_field
from shieldnet.crypto_core.notes import Note
from shieldnet.errors import InvalidFieldValue, StorageCorrupt

logger = get_logger("database.store")


@dataclass
class WalletState:
    private_key: int
    notes: List[Note] = field(default_factory=list)
    leaves: List[int] = field(default_factory=list)

    def to_dict(self, version: str) -> Dict[str, Any]:
        return {
            "version": version,
            "private_key": str(self.private_key),
            "notes": [SerializedNote(**n.to_dict()).model_dump() for n in self.notes],
            "leaves": [str(x) for x in self.leaves],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WalletState":
        return cls(
            private_key=check_field(d["private_key"], name="private_key"),
            notes=[Note.from_dict(SerializedNote.model_validate(n).model_dump()) for n in d.get("notes", [])],
            leaves=[check_field(x, name="leaf") for x in d.get("leaves", [])],
        )


class WalletStore:
    """
    File-backed wallet state.

    Args:
        data_dir: Directory holding wallet files (default: DATA_DIR)
        version: Storage-format tag (default: STORAGE_VERSION)
        key: Optional 32-byte SecretBox key; the file is encrypted when set
    """

    def __init__(
        self,
        data_dir: Optional[str] = None,
        version: Optional[str] = None,
        key: Optional[bytes] = None,
    ):
        self.data_dir = Path(data_dir or config.DATA_DIR)
        self.version = version or config.STORAGE_VERSION
        if key is None and config.STORE_KEY_HEX:
            key = bytes.fromhex(config.STORE_KEY_HEX)
        if key is not None and len(key) != SecretBox.KEY_SIZE:
            raise ValueError(f"store key must be {SecretBox.KEY_SIZE} bytes")
        self._box = SecretBox(key) if key is not None else None

    @property
    def path(self) -> Path:
        return self.data_dir / f"wallet_{self.version}.json"

    @property
    def encrypted(self) -> bool:
        return self._box is not None

    def exists(self) -> bool:
        return self.path.exists()

    def _encode(self, state: WalletState) -> bytes:
        raw = json.dumps(state.to_dict(self.version), indent=2).encode("utf-8")
        if self._box is None:
            return raw
        return bytes(self._box.encrypt(raw, nacl_random(SecretBox.NONCE_SIZE)))

    def _decode(self, blob: bytes) -> WalletState:
        if self._box is not None:
            try:
                blob = self._box.decrypt(blob)
            except CryptoError as e:
                raise StorageCorrupt(f"{self.path}: cannot decrypt wallet file") from e
        try:
            doc = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageCorrupt(f"{self.path}: not valid JSON ({e})") from e
        if not isinstance(doc, dict):
            raise StorageCorrupt(f"{self.path}: expected a JSON object")
        if doc.get("version") != self.version:
            raise StorageCorrupt(
                f"{self.path}: version {doc.get('version')!r} does not match {self.version!r}"
            )
        try:
            return WalletState.from_dict(doc)
        except (KeyError, TypeError, ValueError, InvalidFieldValue) as e:
            raise StorageCorrupt(f"{self.path}: malformed wallet state ({e!r})") from e

    def load(self) -> Optional[WalletState]:
        """Returns None when no wallet exists for this version tag."""
        if not self.path.exists():
            return None
        state = self._decode(self.path.read_bytes())
        logger.debug(f"Loaded wallet: notes={len(state.notes)} leaves={len(state.leaves)}")
        return state

    def save(self, state: WalletState) -> None:
        """Write to a temp file, then rename over the old one."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_bytes(self._encode(state))
        os.replace(tmp, self.path)
        logger.debug(f"Saved wallet: notes={len(state.notes)} leaves={len(state.leaves)}")

    def backup(self, max_backups: int = 7) -> Optional[Path]:
        """
        Copy the current wallet file aside and keep the newest `max_backups` copies.

        Returns:
            Path of the new backup, or None when there is nothing to back up
        """
        if not self.path.exists():
            return None
        backup_dir = self.data_dir / "backups"
        backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        dest = backup_dir / f"wallet_{self.version}_{stamp}.json"
        shutil.copy2(self.path, dest)

        backups = sorted(backup_dir.glob(f"wallet_{self.version}_*.json"))
        for old in backups[:-max_backups]:
            old.unlink()
            logger.info(f"Deleted old backup: {old.name}")
        logger.info(f"Backup created: {dest}")
        return dest


__all__ = ["WalletState", "WalletStore"]
