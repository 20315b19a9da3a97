# Tests for vault key derivation and whole-vault AEAD
#
# Coverage:
#   - PBKDF2 derivation: determinism, salt separation, malformed input
#   - MasterKey: no serialization, masked repr, zeroization
#   - VaultCipher: round-trip, fresh nonces, tamper detection, wrong key
#   - VaultBlob base64 encoding for the remote record

import pickle

import pytest

from lychee_lock.vault.encryption import (
    KEY_LENGTH,
    NONCE_LENGTH,
    MasterKey,
    VaultBlob,
    VaultCipher,
    decode_from_storage,
    derive_key,
    derive_key_async,
    encode_for_storage,
    generate_salt,
)
from lychee_lock.vault.errors import (
    DecryptionFailedError,
    KeyDerivationError,
    NotAuthenticatedError,
)

TEST_ITERATIONS = 100_000


# ── Key Derivation ──────────────────────────────────────────────────


class TestDeriveKey:
    def test_deterministic(self, master_key, zero_salt):
        again = derive_key("correct horse battery staple", zero_salt, TEST_ITERATIONS)
        assert again == master_key

    def test_different_salts_give_different_keys(self):
        salt1, salt2 = generate_salt(), generate_salt()
        assert salt1 != salt2
        k1 = derive_key("same password", salt1, TEST_ITERATIONS)
        k2 = derive_key("same password", salt2, TEST_ITERATIONS)
        assert k1 != k2

    def test_different_passwords_give_different_keys(self, master_key, other_key):
        assert master_key != other_key

    def test_iterations_change_the_key(self, master_key, zero_salt):
        stronger = derive_key("correct horse battery staple", zero_salt, TEST_ITERATIONS + 1)
        assert stronger != master_key

    def test_empty_salt_rejected(self):
        with pytest.raises(KeyDerivationError):
            derive_key("password", b"", TEST_ITERATIONS)

    def test_short_salt_rejected(self):
        with pytest.raises(KeyDerivationError):
            derive_key("password", b"\x00" * 15, TEST_ITERATIONS)

    def test_empty_password_rejected(self, zero_salt):
        with pytest.raises(KeyDerivationError):
            derive_key("", zero_salt, TEST_ITERATIONS)

    def test_weak_iteration_count_rejected(self, zero_salt):
        with pytest.raises(KeyDerivationError):
            derive_key("password", zero_salt, 1_000)

    def test_non_string_password_rejected(self, zero_salt):
        with pytest.raises(KeyDerivationError):
            derive_key(12345, zero_salt, TEST_ITERATIONS)

    def test_generate_salt_length(self):
        assert len(generate_salt()) == 16

    @pytest.mark.asyncio
    async def test_async_matches_sync(self, master_key, zero_salt):
        key = await derive_key_async("correct horse battery staple", zero_salt, TEST_ITERATIONS)
        assert key == master_key


# ── MasterKey ───────────────────────────────────────────────────────


class TestMasterKey:
    def test_wrong_length_rejected(self):
        with pytest.raises(KeyDerivationError):
            MasterKey(b"\x01" * 16)

    def test_repr_hides_material(self):
        key = MasterKey(b"\xab" * KEY_LENGTH)
        assert repr(key) == "<MasterKey active>"

    def test_cannot_be_pickled(self):
        key = MasterKey(b"\x01" * KEY_LENGTH)
        with pytest.raises(TypeError):
            pickle.dumps(key)

    def test_destroy_zeroizes_and_blocks_use(self):
        key = MasterKey(b"\x01" * KEY_LENGTH)
        key.destroy()
        assert key.destroyed
        assert repr(key) == "<MasterKey destroyed>"
        with pytest.raises(NotAuthenticatedError):
            key.aead()

    def test_aead_built_once_and_dropped_on_destroy(self):
        key = MasterKey(b"\x03" * KEY_LENGTH)
        assert key.aead() is key.aead()
        key.destroy()
        assert key._aead is None

    def test_destroyed_key_no_longer_equals_original(self):
        a = MasterKey(b"\x07" * KEY_LENGTH)
        b = MasterKey(b"\x07" * KEY_LENGTH)
        assert a == b
        a.destroy()
        assert a != b


# ── VaultCipher ─────────────────────────────────────────────────────


class TestVaultCipher:
    def test_empty_vault_round_trip(self, master_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        assert VaultCipher.decrypt(blob.ciphertext, blob.nonce, master_key) == {"entries": []}

    def test_nested_payload_round_trip(self, master_key):
        payload = {
            "entries": [
                {"id": "1", "name": "Gmail", "password": "pä$$wörd", "notes": "línea\nnueva"},
                {"id": "2", "name": "Bank", "password": "🔑", "notes": ""},
            ],
            "meta": {"count": 2, "flag": True, "none": None},
        }
        blob = VaultCipher.encrypt(payload, master_key)
        assert VaultCipher.decrypt_blob(blob, master_key) == payload

    def test_nonce_is_96_bits_and_fresh(self, master_key):
        nonces = {VaultCipher.encrypt({"entries": []}, master_key).nonce for _ in range(50)}
        assert len(nonces) == 50
        assert all(len(n) == NONCE_LENGTH for n in nonces)

    def test_same_payload_encrypts_differently(self, master_key):
        a = VaultCipher.encrypt({"entries": []}, master_key)
        b = VaultCipher.encrypt({"entries": []}, master_key)
        assert a.ciphertext != b.ciphertext

    def test_serialization_is_canonical(self):
        assert VaultCipher.serialize({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'
        assert VaultCipher.serialize({"a": 1, "b": 2}) == VaultCipher.serialize({"b": 2, "a": 1})

    def test_ciphertext_includes_tag(self, master_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        plaintext = VaultCipher.serialize({"entries": []})
        assert len(blob.ciphertext) == len(plaintext) + 16

    def test_wrong_key_fails(self, master_key, other_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        with pytest.raises(DecryptionFailedError):
            VaultCipher.decrypt(blob.ciphertext, blob.nonce, other_key)

    def test_every_ciphertext_byte_is_authenticated(self, master_key):
        blob = VaultCipher.encrypt({"entries": [{"id": "x"}]}, master_key)
        for i in range(len(blob.ciphertext)):
            tampered = bytearray(blob.ciphertext)
            tampered[i] ^= 0x01
            with pytest.raises(DecryptionFailedError):
                VaultCipher.decrypt(bytes(tampered), blob.nonce, master_key)

    def test_every_nonce_byte_is_authenticated(self, master_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        for i in range(NONCE_LENGTH):
            tampered = bytearray(blob.nonce)
            tampered[i] ^= 0x80
            with pytest.raises(DecryptionFailedError):
                VaultCipher.decrypt(blob.ciphertext, bytes(tampered), master_key)

    def test_truncated_ciphertext_fails(self, master_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        for cut in (0, 1, 15, len(blob.ciphertext) - 1):
            with pytest.raises(DecryptionFailedError):
                VaultCipher.decrypt(blob.ciphertext[:cut], blob.nonce, master_key)

    def test_wrong_nonce_length_fails(self, master_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        with pytest.raises(DecryptionFailedError):
            VaultCipher.decrypt(blob.ciphertext, blob.nonce + b"\x00", master_key)

    def test_failure_message_is_generic(self, master_key, other_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        with pytest.raises(DecryptionFailedError) as wrong_key:
            VaultCipher.decrypt(blob.ciphertext, blob.nonce, other_key)
        with pytest.raises(DecryptionFailedError) as truncated:
            VaultCipher.decrypt(blob.ciphertext[:4], blob.nonce, master_key)
        assert str(wrong_key.value) == str(truncated.value)
        assert wrong_key.value.__cause__ is None

    def test_destroyed_key_cannot_encrypt(self):
        key = MasterKey(b"\x02" * KEY_LENGTH)
        key.destroy()
        with pytest.raises(NotAuthenticatedError):
            VaultCipher.encrypt({"entries": []}, key)


# ── Storage Encoding ────────────────────────────────────────────────


class TestVaultBlobEncoding:
    def test_encode_decode(self, master_key):
        blob = VaultCipher.encrypt({"entries": []}, master_key)
        encrypted_data, iv = blob.encode()
        assert isinstance(encrypted_data, str) and isinstance(iv, str)
        assert VaultBlob.decode(encrypted_data, iv) == blob

    def test_storage_helpers(self):
        assert encode_for_storage(b"\x00\xff") == "AP8="
        assert decode_from_storage("AP8=") == b"\x00\xff"

    def test_invalid_base64_fails_closed(self):
        with pytest.raises(DecryptionFailedError):
            VaultBlob.decode("not base64!!", "AAAA")

    def test_non_ascii_fails_closed(self):
        with pytest.raises(DecryptionFailedError):
            VaultBlob.decode("ÿÿÿÿ", "AAAA")
