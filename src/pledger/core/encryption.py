"""
Streaming authenticated encryption for ledger files.

A file is sealed as a sequence of ChaCha20-Poly1305 chunks under a key
derived from the password with scrypt. Layout on disk:

    [magic: 4][salt: 16][header: 12][chunk]*

Each chunk is ``[tag: 1][ciphertext + 16 byte MAC]`` holding at most
CHUNK_SIZE bytes of plaintext. The last chunk is tagged TAG_FINAL, all others
TAG_MESSAGE; the nonce of chunk ``i`` is the header XOR ``i`` and the tag byte
is authenticated as associated data, so reordered or truncated streams fail
to decrypt.
"""

import io
import logging
import os
from pathlib import Path
from typing import BinaryIO, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from pledger.core.exceptions import (
    DecryptionError,
    EncryptionError,
    IncorrectPasswordError,
    KeyDerivationError,
    NotEncryptedError,
    StorageError,
)

logger = logging.getLogger(__name__)


# Constants
MAGIC = bytes([0xC1, 0x0A, 0x4B, 0xED])
SALT_LENGTH = 16
HEADER_LENGTH = 12
KEY_LENGTH = 32  # 256 bits
MAC_LENGTH = 16
CHUNK_SIZE = 4096

TAG_MESSAGE = b"\x00"
TAG_FINAL = b"\x03"

# Interactive cost profile, fixed so a password+salt always yields the same key
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

PathLike = Union[str, Path]


def derive_key(password: str, salt: bytes) -> bytes:
    """
    Derive the stream key from a password using scrypt.

    Args:
        password: User password
        salt: Random salt stored in the file

    Returns:
        32-byte key for ChaCha20-Poly1305

    Raises:
        KeyDerivationError: If the KDF cannot run (e.g. out of memory)
    """
    try:
        kdf = Scrypt(
            salt=salt,
            length=KEY_LENGTH,
            n=SCRYPT_N,
            r=SCRYPT_R,
            p=SCRYPT_P,
            backend=default_backend(),
        )
        return kdf.derive(password.encode("utf-8"))
    except (ValueError, MemoryError) as e:
        raise KeyDerivationError(f"Deriving key failed: {e}") from e


def _nonce(header: bytes, counter: int) -> bytes:
    value = int.from_bytes(header, "big") ^ counter
    return value.to_bytes(HEADER_LENGTH, "big")


def _read_exactly(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, only returning less at end of stream."""
    data = bytearray()
    while len(data) < size:
        part = stream.read(size - len(data))
        if not part:
            break
        data += part
    return bytes(data)


def _remaining(stream: BinaryIO) -> int:
    position = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(position)
    return end - position


def _write(stream: BinaryIO, data: bytes) -> None:
    try:
        stream.write(data)
    except OSError as e:
        raise StorageError(f"Writing failed: {e}") from e


def encrypt(plain: BinaryIO, cipher: BinaryIO, password: str) -> None:
    """
    Encrypt the whole of ``plain`` into ``cipher``.

    Args:
        plain: Binary stream with the plaintext
        cipher: Binary stream receiving the wire format
        password: Password used for key derivation

    Raises:
        EncryptionError: If sealing a chunk fails
        StorageError: If writing the output fails
    """
    salt = os.urandom(SALT_LENGTH)
    header = os.urandom(HEADER_LENGTH)
    aead = ChaCha20Poly1305(derive_key(password, salt))

    _write(cipher, MAGIC + salt + header)

    counter = 0
    chunk = _read_exactly(plain, CHUNK_SIZE)
    while True:
        following = _read_exactly(plain, CHUNK_SIZE) if len(chunk) == CHUNK_SIZE else b""
        tag = TAG_MESSAGE if following else TAG_FINAL

        try:
            sealed = aead.encrypt(_nonce(header, counter), chunk, tag)
        except (ValueError, OverflowError) as e:
            raise EncryptionError(f"Encrypting file failed: {e}") from e
        _write(cipher, tag + sealed)

        if tag == TAG_FINAL:
            break
        chunk = following
        counter += 1

    logger.debug("Encrypted %d chunk(s)", counter + 1)


def decrypt(cipher: BinaryIO, plain: BinaryIO, password: str) -> None:
    """
    Decrypt a stream written by :func:`encrypt` into ``plain``.

    Files written before the magic existed start directly with the salt; in
    that case the four bytes already read are used as the start of the salt.

    Raises:
        NotEncryptedError: If the input is too small to be encrypted
        IncorrectPasswordError: If any chunk fails authentication
        DecryptionError: If the stream ends before its final chunk
        StorageError: If writing the output fails
    """
    if _remaining(cipher) < len(MAGIC) + SALT_LENGTH + HEADER_LENGTH:
        raise NotEncryptedError()

    signature = _read_exactly(cipher, len(MAGIC))
    if signature == MAGIC:
        salt = _read_exactly(cipher, SALT_LENGTH)
    else:
        salt = signature + _read_exactly(cipher, SALT_LENGTH - len(MAGIC))
    header = _read_exactly(cipher, HEADER_LENGTH)

    aead = ChaCha20Poly1305(derive_key(password, salt))

    counter = 0
    while True:
        data = _read_exactly(cipher, 1 + CHUNK_SIZE + MAC_LENGTH)
        if not data:
            raise DecryptionError("Decrypting file failed: stream ended before the final chunk")

        tag, sealed = data[:1], data[1:]
        try:
            chunk = aead.decrypt(_nonce(header, counter), sealed, tag)
        except InvalidTag as e:
            raise IncorrectPasswordError() from e

        _write(plain, chunk)

        if tag == TAG_FINAL:
            break
        if len(chunk) != CHUNK_SIZE:
            raise DecryptionError("Decrypting file failed: short chunk before the final one")
        counter += 1

    if cipher.read(1):
        raise DecryptionError("Decrypting file failed: data after the final chunk")


def encrypt_file(plain_path: PathLike, cipher_path: PathLike, password: str) -> None:
    """Encrypt ``plain_path`` into ``cipher_path`` (created or truncated)."""
    try:
        with open(plain_path, "rb") as plain, open(cipher_path, "wb") as cipher:
            encrypt(plain, cipher, password)
    except OSError as e:
        raise StorageError(f"Encrypting {plain_path} failed: {e}") from e


def decrypt_file(cipher_path: PathLike, plain_path: PathLike, password: str) -> None:
    """Decrypt ``cipher_path`` into ``plain_path`` (created or truncated)."""
    try:
        with open(cipher_path, "rb") as cipher, open(plain_path, "wb") as plain:
            decrypt(cipher, plain, password)
    except OSError as e:
        raise StorageError(f"Decrypting {cipher_path} failed: {e}") from e
