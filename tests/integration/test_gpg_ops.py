from __future__ import annotations

from pathlib import Path

import pytest

from gpg_driver import SecureString
from gpg_driver.errors import GPGError, GPGErrorType
from gpg_driver.gpg_ops import GPGOperations
from gpg_driver.options import DecryptOption, EncryptOption

pytestmark = [pytest.mark.gpg, pytest.mark.slow]

EMAIL = "test@example.org"
KEY_PARAMS = {
    "Key-Type": "EDDSA",
    "Key-Curve": "ed25519",
    "Subkey-Type": "ECDH",
    "Subkey-Curve": "cv25519",
    "Name-Real": "Test User",
    "Name-Email": EMAIL,
}


@pytest.fixture
def ops(gpg_home: Path, output_dir: Path) -> GPGOperations:
    result = GPGOperations.init(homedir=gpg_home, output_dir=output_dir, timeout=60)
    assert result.is_ok(), f"init failed: {result.unwrap_err()}"
    return result.unwrap()


def _error_type(result) -> GPGErrorType:
    error = result.unwrap_err()
    assert isinstance(error, GPGError)
    return error.error_type


class TestKeyGeneration:
    def test_generate_and_list(self, ops: GPGOperations) -> None:
        result = ops.gen_key(params=KEY_PARAMS)
        assert result.is_ok(), f"Key generation failed: {result.unwrap_err()}"

        keys = ops.list_keys().unwrap()
        assert len(keys) == 1
        key = keys[0]
        assert key.record_type == "pub"
        assert len(key.fingerprint) == 40
        assert key.fingerprint.endswith(key.key_id)
        assert any(EMAIL in uid for uid in key.uids)
        assert len(key.subkeys) == 1
        assert "e" in key.subkeys[0].capabilities

    def test_secret_listing(self, ops: GPGOperations) -> None:
        assert ops.gen_key(params=KEY_PARAMS).is_ok()
        keys = ops.list_keys(secret=True).unwrap()
        assert [k.record_type for k in keys] == ["sec"]
        assert keys[0].is_secret

    def test_list_by_unknown_id(self, ops: GPGOperations) -> None:
        result = ops.list_keys(keys=["nobody@example.org"])
        assert result.is_err()

    def test_empty_keyring(self, ops: GPGOperations) -> None:
        assert ops.list_keys().unwrap() == []


class TestPublicKeyRoundTrip:
    def test_encrypt_decrypt(self, ops: GPGOperations, tmp_path: Path) -> None:
        assert ops.gen_key(params=KEY_PARAMS).is_ok()
        encrypted = tmp_path / "message.gpg"
        decrypted = tmp_path / "message.txt"

        result = ops.encrypt(
            EncryptOption.default(data=b"attack at dawn", recipients=[EMAIL], output=encrypted)
        )
        assert result.is_ok(), f"Encryption failed: {result.unwrap_err()}"
        assert encrypted.exists()
        assert b"attack at dawn" not in encrypted.read_bytes()

        result = ops.decrypt(DecryptOption.default(file_path=encrypted, output=decrypted))
        assert result.is_ok(), f"Decryption failed: {result.unwrap_err()}"
        assert decrypted.read_bytes() == b"attack at dawn"

    def test_armored_output_in_output_dir(self, gpg_home: Path, output_dir: Path) -> None:
        ops = GPGOperations.init(homedir=gpg_home, output_dir=output_dir, armor=True).unwrap()
        assert ops.gen_key(params=KEY_PARAMS).is_ok()

        assert ops.encrypt(EncryptOption.default(data=b"hello", recipients=[EMAIL])).is_ok()
        produced = list(output_dir.iterdir())
        assert len(produced) == 1
        assert produced[0].name.startswith("keys__encrypted_file_")
        assert produced[0].read_text().startswith("-----BEGIN PGP MESSAGE-----")

    def test_protected_key(self, ops: GPGOperations, tmp_path: Path) -> None:
        assert ops.gen_key(key_passphrase="key-passphrase-123", params=KEY_PARAMS).is_ok()
        encrypted = tmp_path / "message.gpg"
        decrypted = tmp_path / "message.txt"
        assert ops.encrypt(
            EncryptOption.default(data=b"protected", recipients=[EMAIL], output=encrypted)
        ).is_ok()

        result = ops.decrypt(
            DecryptOption.default(
                file_path=encrypted,
                key_passphrase=SecureString("key-passphrase-123"),
                output=decrypted,
            )
        )
        assert result.is_ok(), f"Decryption failed: {result.unwrap_err()}"
        assert decrypted.read_bytes() == b"protected"

    def test_unknown_recipient(self, ops: GPGOperations, tmp_path: Path) -> None:
        result = ops.encrypt(
            EncryptOption.default(
                data=b"x", recipients=["nobody@example.org"], output=tmp_path / "x.gpg"
            )
        )
        assert _error_type(result) is GPGErrorType.INVALID_RECIPIENT_ERROR


class TestSymmetricRoundTrip:
    def test_encrypt_decrypt(self, ops: GPGOperations, tmp_path: Path) -> None:
        encrypted = tmp_path / "sym.gpg"
        decrypted = tmp_path / "sym.txt"

        result = ops.encrypt(
            EncryptOption.with_symmetric(
                data=b"symmetric secret",
                passphrase="sym-passphrase-123",
                symmetric_algo="AES256",
                output=encrypted,
            )
        )
        assert result.is_ok(), f"Encryption failed: {result.unwrap_err()}"

        result = ops.decrypt(
            DecryptOption.with_symmetric(
                file_path=encrypted, passphrase="sym-passphrase-123", output=decrypted
            )
        )
        assert result.is_ok(), f"Decryption failed: {result.unwrap_err()}"
        assert decrypted.read_bytes() == b"symmetric secret"

    def test_wrong_passphrase(self, ops: GPGOperations, tmp_path: Path) -> None:
        encrypted = tmp_path / "sym.gpg"
        assert ops.encrypt(
            EncryptOption.with_symmetric(data=b"x", passphrase="right-one", output=encrypted)
        ).is_ok()

        with encrypted.open("rb") as fh:
            result = ops.decrypt(
                DecryptOption.with_symmetric(
                    file=fh, passphrase="wrong-one", output=tmp_path / "x.txt"
                )
            )
        assert _error_type(result) in (
            GPGErrorType.PASSPHRASE_ERROR,
            GPGErrorType.DECRYPTION_FAILED_ERROR,
        )


def test_decrypt_garbage(ops: GPGOperations, tmp_path: Path) -> None:
    result = ops.decrypt(DecryptOption(data=b"this is not openpgp data", output=tmp_path / "x"))
    assert _error_type(result) in (
        GPGErrorType.NO_DATA_ERROR,
        GPGErrorType.DECRYPTION_FAILED_ERROR,
    )
