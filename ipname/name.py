"""
ipname Names

A name is the content identifier of its owner's public key:

    CIDv1 = 0x01 || 0x72 (libp2p-key) || multihash(marshalled public key)

The multihash is the identity hash (the key itself) when the marshalled key
is at most 42 bytes, otherwise SHA2-256. Names are written in multibase
base36 lowercase, which starts with "k"; Ed25519 names start "k51qzi5uqu5d".
"""

import hashlib
from dataclasses import dataclass
from typing import Union

from .envelope import encode_varint, read_varint
from .errors import DecodeError, InvalidNameError, KeyMaterialError
from .signing import PublicKey, Signer

CID_VERSION = 0x01
LIBP2P_KEY_CODEC = 0x72
IDENTITY_HASH = 0x00
SHA2_256_HASH = 0x12
MAX_INLINE_KEY_LENGTH = 42

BASE36_PREFIX = "k"
BASE36_UPPER_PREFIX = "K"
BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

IPNS_PATH_PREFIX = "/ipns/"


def base36_encode(data: bytes) -> str:
    """Encode bytes as lowercase base36; each leading zero byte becomes "0"."""
    zeros = len(data) - len(data.lstrip(b"\x00"))
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "0" * zeros + "".join(reversed(digits))


def base36_decode(text: str) -> bytes:
    """Decode lowercase base36."""
    zeros = len(text) - len(text.lstrip("0"))
    number = 0
    for char in text[zeros:]:
        index = BASE36_ALPHABET.find(char)
        if index < 0:
            raise InvalidNameError(f"Invalid base36 character: {char!r}")
        number = number * 36 + index
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * zeros + body


@dataclass(frozen=True)
class Name:
    """Name derived from a public key. Holds the binary CID."""
    cid: bytes

    @classmethod
    def from_public_key(cls, public_key: Union[PublicKey, bytes]) -> "Name":
        """Derive the name of a public key (a PublicKey or its marshalled bytes)."""
        key_bytes = public_key.marshal() if isinstance(public_key, PublicKey) else bytes(public_key)
        if len(key_bytes) <= MAX_INLINE_KEY_LENGTH:
            multihash = bytes([IDENTITY_HASH]) + encode_varint(len(key_bytes)) + key_bytes
        else:
            digest = hashlib.sha256(key_bytes).digest()
            multihash = bytes([SHA2_256_HASH]) + encode_varint(len(digest)) + digest
        return cls(bytes([CID_VERSION, LIBP2P_KEY_CODEC]) + multihash)

    @classmethod
    def from_signer(cls, signer: Signer) -> "Name":
        return cls.from_public_key(signer.public_key())

    @classmethod
    def parse(cls, text: str) -> "Name":
        """
        Parse a base36 name string, optionally prefixed with /ipns/.

        Both base36 multibase prefixes are accepted: "k" with a lowercase
        body and "K" with an uppercase body. Mixed case is rejected.

        Raises:
            InvalidNameError: if the text is not a libp2p-key CIDv1
        """
        text = text.strip()
        if text.startswith(IPNS_PATH_PREFIX):
            text = text[len(IPNS_PATH_PREFIX):]
        prefix, body = text[:1], text[1:]
        if prefix not in (BASE36_PREFIX, BASE36_UPPER_PREFIX) or not body:
            raise InvalidNameError(f"Name must be base36 multibase (prefix 'k' or 'K'): {text!r}")
        if prefix == BASE36_UPPER_PREFIX:
            if body != body.upper():
                raise InvalidNameError(f"Name with prefix 'K' must be uppercase: {text!r}")
            body = body.lower()
        name = cls(base36_decode(body))
        name._multihash_digest()
        return name

    def _multihash_digest(self):
        """Split the CID into (hash code, digest). Raises InvalidNameError."""
        cid = self.cid
        if len(cid) < 4 or cid[0] != CID_VERSION or cid[1] != LIBP2P_KEY_CODEC:
            raise InvalidNameError("Name is not a CIDv1 with the libp2p-key codec")
        try:
            code, offset = read_varint(cid, 2)
            length, offset = read_varint(cid, offset)
        except DecodeError as e:
            raise InvalidNameError(f"Name multihash is malformed: {e}") from e
        digest = cid[offset:]
        if len(digest) != length:
            raise InvalidNameError("Name multihash length does not match its digest")
        if code not in (IDENTITY_HASH, SHA2_256_HASH):
            raise InvalidNameError(f"Unsupported multihash code: {code:#x}")
        return code, digest

    def public_key(self) -> PublicKey:
        """
        Recover the public key inlined in the name.

        Raises:
            InvalidNameError: if the name hashes its key instead of inlining it
                or the inlined key is unusable
        """
        code, digest = self._multihash_digest()
        if code != IDENTITY_HASH:
            raise InvalidNameError("Name does not inline its public key")
        try:
            return PublicKey.unmarshal(digest)
        except KeyMaterialError as e:
            raise InvalidNameError(f"Name carries an unusable public key: {e}") from e

    def matches(self, public_key: PublicKey) -> bool:
        return Name.from_public_key(public_key) == self

    def __str__(self) -> str:
        return BASE36_PREFIX + base36_encode(self.cid)
