"""
Wallet management for Sire.

A wallet wraps a secp256k1 key-pair and provides:
  - Ethereum-style address derivation (Keccak-256 of the public key)
  - Signing of ledger calls so the API can authenticate the caller
  - Serialisable import / export (encrypted with passphrase)

Signed call format
──────────────────
A write submitted over HTTP carries

    {"params": {...}, "nonce": "<ms>.<hex>", "public_key": "<hex>", "signature": "<hex>"}

The signature covers the canonical JSON encoding of
``{"method", "params", "nonce"}``.  The authenticated caller is the
address derived from ``public_key``; the request never names its own
sender.  The nonce is the signing time in unix milliseconds (hex), a dot,
then random hex; the API refuses nonces far from its own clock.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import time
from pathlib import Path
from typing import Any

from Crypto.Hash import keccak
from ecdsa import SECP256k1, BadSignatureError, MalformedPointError, SigningKey, VerifyingKey


class SignatureError(ValueError):
    """A signed call could not be authenticated."""


_ADDRESS = re.compile(r"0x[0-9a-fA-F]{40}")


# ── address helpers ─────────────────────────────────────────────────────

def keccak256(data: bytes) -> bytes:
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def derive_address(public_key: bytes) -> str:
    """``0x`` + last 20 bytes of Keccak-256 over the 64-byte raw public key."""
    raw = public_key[1:] if len(public_key) == 65 and public_key[0] == 4 else public_key
    if len(raw) != 64:
        raise ValueError(f"Expected a 64/65-byte uncompressed public key, got {len(public_key)} bytes")
    return "0x" + keccak256(raw)[-20:].hex()


def is_address(value: Any) -> bool:
    """True for a ``0x``-prefixed, 40-hex-digit string."""
    return isinstance(value, str) and _ADDRESS.fullmatch(value) is not None


def make_nonce() -> str:
    """Fresh call nonce: ``"<unix-ms hex>.<random hex>"``."""
    return f"{int(time.time() * 1000):x}.{os.urandom(8).hex()}"


def canonical_call(method: str, params: dict[str, Any], nonce: str) -> bytes:
    """Bytes that a call signature covers."""
    return json.dumps(
        {"method": method, "params": params, "nonce": nonce},
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")


def verify_call(method: str, body: dict[str, Any]) -> str:
    """
    Check a signed call body and return the authenticated address.

    Raises ``SignatureError`` if any field is missing or the signature
    does not verify.
    """
    try:
        params = body["params"]
        nonce = body["nonce"]
        public_key = bytes.fromhex(body["public_key"])
        signature = bytes.fromhex(body["signature"])
    except (KeyError, TypeError, ValueError) as exc:
        raise SignatureError("Malformed signed call") from exc
    if not isinstance(params, dict) or not isinstance(nonce, str) or not nonce:
        raise SignatureError("Malformed signed call")

    try:
        vk = VerifyingKey.from_string(public_key, curve=SECP256k1)
        vk.verify(signature, canonical_call(method, params, nonce), hashfunc=hashlib.sha256)
    except (BadSignatureError, MalformedPointError, ValueError) as exc:
        raise SignatureError("Signature verification failed") from exc
    return derive_address(vk.to_string())


# ── Wallet ──────────────────────────────────────────────────────────────

class Wallet:
    """A secp256k1 key-pair that can sign ledger calls."""

    def __init__(self, private_key: bytes, public_key: bytes | None = None):
        self.private_key = private_key
        if public_key is None:
            sk = SigningKey.from_string(private_key, curve=SECP256k1)
            public_key = b"\x04" + sk.get_verifying_key().to_string()
        self.public_key = public_key
        self.address = derive_address(public_key)

    # ---- factory methods ----

    @classmethod
    def create(cls) -> Wallet:
        """Generate a brand-new wallet."""
        sk = SigningKey.generate(curve=SECP256k1)
        return cls(sk.to_string(), b"\x04" + sk.get_verifying_key().to_string())

    @classmethod
    def from_seed(cls, seed: str) -> Wallet:
        """
        Derive a wallet deterministically from a seed phrase.

        Uses PBKDF2-HMAC-SHA256 with 600 000 iterations.
        """
        priv = hashlib.pbkdf2_hmac("sha256", seed.encode("utf-8"), b"Sire/seed/v1", 600_000)
        return cls(priv)

    # ---- signing ----

    def sign_call(self, method: str, params: dict[str, Any], nonce: str | None = None) -> dict:
        """Return a signed call body ready to POST."""
        if nonce is None:
            nonce = make_nonce()
        sk = SigningKey.from_string(self.private_key, curve=SECP256k1)
        sig = sk.sign_deterministic(
            canonical_call(method, params, nonce), hashfunc=hashlib.sha256,
        )
        return {
            "params": params,
            "nonce": nonce,
            "public_key": self.public_key.hex(),
            "signature": sig.hex(),
        }

    # ---- serialisation ----

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "public_key": self.public_key.hex(),
            "private_key": self.private_key.hex(),
        }

    def export_encrypted(self, passphrase: str) -> dict:
        """
        Export wallet as an encrypted JSON-compatible dict.

        AES-256-GCM authenticated encryption, PBKDF2-HMAC-SHA256 with
        600 000 iterations.
        """
        salt = os.urandom(16)
        iterations = 600_000
        key = hashlib.pbkdf2_hmac("sha256", passphrase.encode("utf-8"), salt, iterations)
        enc_priv, nonce, tag = self._aes_gcm_encrypt(key, self.private_key)
        return {
            "version": 1,
            "address": self.address,
            "public_key": self.public_key.hex(),
            "encrypted_private_key": enc_priv.hex(),
            "nonce": nonce.hex(),
            "tag": tag.hex(),
            "salt": salt.hex(),
            "kdf": "pbkdf2-hmac-sha256",
            "kdf_iterations": iterations,
        }

    @classmethod
    def import_encrypted(cls, data: dict, passphrase: str) -> Wallet:
        """Import from ``export_encrypted`` output.  Raises ValueError on a wrong passphrase."""
        salt = bytes.fromhex(data["salt"])
        iterations = data.get("kdf_iterations", 600_000)
        key = hashlib.pbkdf2_hmac("sha256", passphrase.encode("utf-8"), salt, iterations)
        priv = cls._aes_gcm_decrypt(
            key,
            bytes.fromhex(data["nonce"]),
            bytes.fromhex(data["encrypted_private_key"]),
            bytes.fromhex(data["tag"]),
        )
        return cls(priv, bytes.fromhex(data["public_key"]))

    def save(self, path: str, passphrase: str) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.export_encrypted(passphrase), indent=2))

    @classmethod
    def load(cls, path: str, passphrase: str) -> Wallet:
        return cls.import_encrypted(json.loads(Path(path).read_text()), passphrase)

    # ---- AES-256-GCM authenticated encryption ----

    @staticmethod
    def _aes_gcm_encrypt(key: bytes, data: bytes) -> tuple[bytes, bytes, bytes]:
        """Encrypt *data* with AES-256-GCM. Returns (ciphertext, nonce, tag)."""
        from Crypto.Cipher import AES
        nonce = os.urandom(12)
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
        ciphertext, tag = cipher.encrypt_and_digest(data)
        return ciphertext, nonce, tag

    @staticmethod
    def _aes_gcm_decrypt(key: bytes, nonce: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        """Decrypt and verify AES-256-GCM ciphertext. Raises ValueError on tamper."""
        from Crypto.Cipher import AES
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
        return cipher.decrypt_and_verify(ciphertext, tag)

    def __repr__(self) -> str:
        return f"Wallet({self.address})"
