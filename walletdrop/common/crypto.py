"""Key generation and at-rest protection for wallet secrets."""

import hashlib
import secrets
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt


@dataclass(frozen=True)
class GeneratedKeypair:
    private_key: str
    public_key: str
    public_key_der: str

    @property
    def account_alias(self) -> str:
        # Ledger alias form: shard.realm.<DER-encoded public key>
        return f"0.0.{self.public_key_der}"


def generate_keypair() -> GeneratedKeypair:
    """Create a fresh Ed25519 keypair, hex encoded."""

    private = Ed25519PrivateKey.generate()
    raw_private = private.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public = private.public_key()
    raw_public = public.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)
    der_public = public.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return GeneratedKeypair(private_key=raw_private.hex(), public_key=raw_public.hex(), public_key_der=der_public.hex())


def generate_password(length: int = 12) -> str:
    return secrets.token_hex(length)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _derive_key(password: str, salt: bytes) -> bytes:
    return Scrypt(salt=salt, length=32, n=2**14, r=8, p=1).derive(password.encode("utf-8"))


def encrypt_secret(secret: str, password: str) -> str:
    """Encrypt `secret` under a password-derived key.

    Output format is `salt:nonce:ciphertext`, each hex encoded. The GCM tag is
    appended to the ciphertext.
    """

    salt = secrets.token_bytes(16)
    nonce = secrets.token_bytes(12)
    ciphertext = AESGCM(_derive_key(password, salt)).encrypt(nonce, secret.encode("utf-8"), None)
    return f"{salt.hex()}:{nonce.hex()}:{ciphertext.hex()}"


def decrypt_secret(encrypted: str, password: str) -> str:
    """Inverse of `encrypt_secret`; raises `cryptography.exceptions.InvalidTag` on a wrong password."""

    salt_hex, nonce_hex, ciphertext_hex = encrypted.split(":")
    key = _derive_key(password, bytes.fromhex(salt_hex))
    return AESGCM(key).decrypt(bytes.fromhex(nonce_hex), bytes.fromhex(ciphertext_hex), None).decode("utf-8")
