import hashlib
import hmac
import secrets

from errors import CryptoError

SALT_BYTES = 16
KEY_LENGTH = 64
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1


def _derive(plaintext: str, salt: str) -> bytes:
    try:
        return hashlib.scrypt(
            plaintext.encode("utf-8"),
            salt=salt.encode("utf-8"),
            n=SCRYPT_N,
            r=SCRYPT_R,
            p=SCRYPT_P,
            dklen=KEY_LENGTH,
        )
    except (ValueError, MemoryError) as exc:
        raise CryptoError("Password hashing failed") from exc


def hash_password(plaintext: str) -> str:
    """Return ``hex(key).hex(salt)``; the salt is hashed in its hex form."""
    salt = secrets.token_hex(SALT_BYTES)
    return f"{_derive(plaintext, salt).hex()}.{salt}"


def verify_password(plaintext: str, stored: str) -> bool:
    hashed, sep, salt = stored.rpartition(".")
    if not sep or not hashed or not salt:
        return False
    try:
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False
    if len(expected) != KEY_LENGTH:
        return False
    return hmac.compare_digest(expected, _derive(plaintext, salt))
