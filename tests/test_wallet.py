"""
Tests for wallet keys, Ethereum-style addresses and signed calls.
"""

import time

import pytest

from sire_core.wallet import (
    SignatureError,
    Wallet,
    canonical_call,
    derive_address,
    is_address,
    keccak256,
    make_nonce,
    verify_call,
)


# ═══════════════════════════════════════════════════════════════════
#  Address helpers
# ═══════════════════════════════════════════════════════════════════

class TestKeccak:
    def test_empty_input_vector(self):
        # Keccak-256 (not SHA3-256) of the empty string
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )


class TestAddress:
    def test_known_key(self):
        # secp256k1 private key 1 -> generator point G
        w = Wallet((1).to_bytes(32, "big"))
        assert w.address == "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf"

    def test_prefix_optional(self, wallet):
        raw = wallet.public_key[1:]
        assert derive_address(raw) == derive_address(wallet.public_key) == wallet.address

    def test_bad_length(self):
        with pytest.raises(ValueError):
            derive_address(b"\x04" + b"\x00" * 10)

    def test_is_address(self, wallet):
        assert is_address(wallet.address)
        assert not is_address("0x1234")
        assert not is_address("a1" * 21)
        assert not is_address("0x" + "zz" * 20)
        assert not is_address(None)

    @pytest.mark.parametrize("value", [
        "0x" + "1_" * 19 + "11",
        "0x" + "a1" * 19 + " a",
        "0x" + "a1" * 20 + "\n",
        "0x+" + "a1" * 19 + "a",
    ])
    def test_is_address_rejects_int_literal_forms(self, value):
        assert not is_address(value)


# ═══════════════════════════════════════════════════════════════════
#  Signed calls
# ═══════════════════════════════════════════════════════════════════

class TestSignedCalls:
    def test_roundtrip_recovers_address(self, wallet):
        body = wallet.sign_call("deposit", {"value": "1000"})
        assert verify_call("deposit", body) == wallet.address

    def test_nonce_generated(self, wallet):
        a = wallet.sign_call("mint", {})
        b = wallet.sign_call("mint", {})
        assert a["nonce"] != b["nonce"]

    def test_nonce_carries_signing_time(self):
        before = int(time.time() * 1000)
        head, sep, tail = make_nonce().partition(".")
        assert sep == "."
        assert before <= int(head, 16) <= int(time.time() * 1000)
        assert len(tail) == 16

    def test_explicit_nonce_is_deterministic(self, wallet):
        a = wallet.sign_call("mint", {"target": wallet.address}, nonce="n1")
        b = wallet.sign_call("mint", {"target": wallet.address}, nonce="n1")
        assert a["signature"] == b["signature"]

    def test_method_is_bound(self, wallet):
        body = wallet.sign_call("deposit", {"value": "1"})
        with pytest.raises(SignatureError):
            verify_call("mint", body)

    def test_tampered_params(self, wallet):
        body = wallet.sign_call("deposit", {"value": "1"})
        body["params"]["value"] = "1000000"
        with pytest.raises(SignatureError):
            verify_call("deposit", body)

    def test_swapped_public_key(self, wallet):
        other = Wallet.create()
        body = wallet.sign_call("deposit", {"value": "1"})
        body["public_key"] = other.public_key.hex()
        with pytest.raises(SignatureError):
            verify_call("deposit", body)

    @pytest.mark.parametrize("missing", ["params", "nonce", "public_key", "signature"])
    def test_missing_field(self, wallet, missing):
        body = wallet.sign_call("deposit", {"value": "1"})
        del body[missing]
        with pytest.raises(SignatureError):
            verify_call("deposit", body)

    def test_garbage_hex(self, wallet):
        body = wallet.sign_call("deposit", {"value": "1"})
        body["public_key"] = "not-hex"
        with pytest.raises(SignatureError):
            verify_call("deposit", body)

    def test_canonical_encoding_sorted(self):
        a = canonical_call("transfer", {"b": 1, "a": 2}, "n")
        b = canonical_call("transfer", {"a": 2, "b": 1}, "n")
        assert a == b
        assert b" " not in a


# ═══════════════════════════════════════════════════════════════════
#  Persistence
# ═══════════════════════════════════════════════════════════════════

class TestWalletPersistence:
    def test_from_seed_deterministic(self):
        a = Wallet.from_seed("sire-test-seed")
        b = Wallet.from_seed("sire-test-seed")
        assert a.address == b.address

    def test_encrypted_roundtrip(self, wallet):
        data = wallet.export_encrypted("correct horse")
        assert "private_key" not in data
        restored = Wallet.import_encrypted(data, "correct horse")
        assert restored.address == wallet.address
        assert restored.private_key == wallet.private_key

    def test_wrong_passphrase(self, wallet):
        data = wallet.export_encrypted("right")
        with pytest.raises(ValueError):
            Wallet.import_encrypted(data, "wrong")

    def test_save_and_load(self, wallet, tmp_path):
        path = str(tmp_path / "keys" / "wallet.json")
        wallet.save(path, "pw")
        assert Wallet.load(path, "pw").address == wallet.address

    def test_to_dict_and_repr(self, wallet):
        d = wallet.to_dict()
        assert d["address"] == wallet.address
        assert wallet.address in repr(wallet)
