# shieldnet/crypto_core/messages.py
from __future__ import annotations

from typing import List, Sequence, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox

from shieldnet.crypto_core.field import to_int
from shieldnet.errors import InvalidFieldValue

# 31 bytes always fit below the Starknet prime
FELT_BYTES = 31
NOTE_PLAINTEXT_BYTES = 96


def derive_viewing_key(private_key: int) -> PrivateKey:
    """Curve25519 key for reading incoming notes, derived from the spending key."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=b"shieldnet-view-v1",
    )
    return PrivateKey(hkdf.derive(private_key.to_bytes(32, "big")))


def viewing_public_key(private_key: int) -> bytes:
    return bytes(derive_viewing_key(private_key).public_key)


def bytes_to_felts(data: bytes) -> List[int]:
    """[byte_length, chunk_0, chunk_1, ...] with big-endian 31-byte chunks."""
    chunks = [data[i:i + FELT_BYTES] for i in range(0, len(data), FELT_BYTES)]
    return [len(data)] + [int.from_bytes(c, "big") for c in chunks]


def felts_to_bytes(felts: Sequence[int]) -> bytes:
    if not felts:
        raise InvalidFieldValue("empty encrypted payload")
    n = to_int(felts[0])
    out = bytearray()
    remaining = n
    for f in felts[1:]:
        size = min(FELT_BYTES, remaining)
        if size <= 0:
            raise InvalidFieldValue("encrypted payload longer than its declared size")
        try:
            out += to_int(f).to_bytes(size, "big")
        except OverflowError:
            raise InvalidFieldValue(f"payload chunk does not fit {size} byte(s)") from None
        remaining -= size
    if remaining:
        raise InvalidFieldValue(f"encrypted payload truncated: {remaining} byte(s) missing")
    return bytes(out)


def seal_note(recipient_view_pub32: bytes, amount: int, asset_id: int, blinding: int) -> List[int]:
    """Encrypt (amount, asset_id, blinding) to the recipient's viewing key."""
    plaintext = amount.to_bytes(32, "big") + asset_id.to_bytes(32, "big") + blinding.to_bytes(32, "big")
    ct = SealedBox(PublicKey(recipient_view_pub32)).encrypt(plaintext)
    return bytes_to_felts(ct)


def open_note(felts: Sequence[int], private_key: int) -> Tuple[int, int, int]:
    """Inverse of seal_note. Raises InvalidFieldValue if the payload is not for this key."""
    ct = felts_to_bytes(felts)
    try:
        pt = SealedBox(derive_viewing_key(private_key)).decrypt(ct)
    except CryptoError as e:
        raise InvalidFieldValue("encrypted note cannot be opened with this key") from e
    if len(pt) != NOTE_PLAINTEXT_BYTES:
        raise InvalidFieldValue(f"note plaintext has {len(pt)} bytes, expected {NOTE_PLAINTEXT_BYTES}")
    return (
        int.from_bytes(pt[0:32], "big"),
        int.from_bytes(pt[32:64], "big"),
        int.from_bytes(pt[64:96], "big"),
    )


__all__ = [
    "derive_viewing_key",
    "viewing_public_key",
    "bytes_to_felts",
    "felts_to_bytes",
    "seal_note",
    "open_note",
]
