"""
Tests for SessionCrypto.

Tests cover:
- Lazy key derivation and salt rebinding
- Round trips in both token formats
- Tamper detection (bit flips in MAC, ciphertext, nonce)
- Malformed tokens
- Legacy wire layout and zero-byte padding
"""
import base64
import pytest

from hybrid_session.crypto import (
    SessionCrypto,
    derive_key,
    zero_pad,
    zero_unpad,
    KEY_SIZE,
    IV_SIZE,
    MAC_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    BLOCK_SIZE,
)
from hybrid_session.exceptions import AuthenticationFailure


def _flip(token: str, index: int) -> str:
    raw = bytearray(base64.b64decode(token))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


@pytest.fixture(params=["aead", "legacy"])
def crypto(request):
    return SessionCrypto(b"s3cr3t", b"abc123", token_format=request.param)


class TestKeyDerivation:

    def test_key_size(self):
        assert len(derive_key(b"s3cr3t", b"abc123")) == KEY_SIZE

    def test_key_depends_on_salt(self):
        assert derive_key(b"s3cr3t", b"abc123") != derive_key(b"s3cr3t", b"abc124")

    def test_key_is_deterministic(self):
        assert derive_key(b"s3cr3t", b"abc123") == derive_key(b"s3cr3t", b"abc123")

    def test_key_is_lazy_and_cached(self):
        crypto = SessionCrypto("s3cr3t", "abc123")
        assert crypto._key is None
        key = crypto.key
        assert crypto.key is key

    def test_salt_change_invalidates_key(self):
        crypto = SessionCrypto("s3cr3t", "abc123")
        old = crypto.key
        crypto.salt = "other"
        assert crypto._key is None
        assert crypto.key != old
        assert crypto.salt == b"other"

    def test_matches(self):
        crypto = SessionCrypto("s3cr3t", "abc123")
        assert crypto.matches("abc123")
        assert crypto.matches(b"abc123")
        assert not crypto.matches("abc124")

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            SessionCrypto("s3cr3t", "abc123", token_format="rot13")


class TestRoundTrip:

    @pytest.mark.parametrize("payload", [
        b"hello",
        b"",
        b"x" * BLOCK_SIZE,
        b"\x01\x02binary\xff" * 40,
    ])
    def test_round_trip(self, crypto, payload):
        assert crypto.decrypt(crypto.encrypt(payload)) == payload

    def test_fresh_randomness_per_token(self, crypto):
        assert crypto.encrypt(b"hello") != crypto.encrypt(b"hello")

    def test_token_is_ascii(self, crypto):
        token = crypto.encrypt(b"hello")
        assert isinstance(token, str)
        token.encode("ascii")

    def test_other_session_cannot_decrypt(self, crypto):
        token = crypto.encrypt(b"hello")
        other = SessionCrypto(b"s3cr3t", b"xyz789", token_format=crypto.token_format)
        with pytest.raises(AuthenticationFailure):
            other.decrypt(token)

    def test_other_secret_cannot_decrypt(self, crypto):
        token = crypto.encrypt(b"hello")
        other = SessionCrypto(b"wrong", b"abc123", token_format=crypto.token_format)
        with pytest.raises(AuthenticationFailure):
            other.decrypt(token)

    def test_chacha20_backend(self):
        crypto = SessionCrypto(b"s3cr3t", b"abc123", cipher_backend="chacha20")
        assert crypto.decrypt(crypto.encrypt(b"hello")) == b"hello"


class TestTamperDetection:

    def test_every_bit_flip_after_iv_fails_legacy(self):
        crypto = SessionCrypto(b"s3cr3t", b"abc123", token_format="legacy")
        token = crypto.encrypt(b"hello world")
        size = len(base64.b64decode(token))
        for index in range(IV_SIZE, size):
            with pytest.raises(AuthenticationFailure):
                crypto.decrypt(_flip(token, index))

    def test_every_bit_flip_fails_aead(self):
        crypto = SessionCrypto(b"s3cr3t", b"abc123")
        token = crypto.encrypt(b"hello world")
        size = len(base64.b64decode(token))
        for index in range(size):
            with pytest.raises(AuthenticationFailure):
                crypto.decrypt(_flip(token, index))

    def test_legacy_iv_is_not_authenticated(self):
        # the legacy format only MACs the ciphertext
        crypto = SessionCrypto(b"s3cr3t", b"abc123", token_format="legacy")
        token = crypto.encrypt(b"A" * 32)
        recovered = crypto.decrypt(_flip(token, 0))
        assert recovered != b"A" * 32
        assert recovered[BLOCK_SIZE:] == b"A" * 16

    @pytest.mark.parametrize("token", [
        "",
        "not base64!!",
        base64.b64encode(b"short").decode(),
        "é",
    ])
    def test_malformed_tokens(self, crypto, token):
        with pytest.raises(AuthenticationFailure):
            crypto.decrypt(token)

    def test_unaligned_ciphertext_fails(self):
        crypto = SessionCrypto(b"s3cr3t", b"abc123", token_format="legacy")
        raw = base64.b64decode(crypto.encrypt(b"hello"))
        token = base64.b64encode(raw + b"\x00").decode()
        with pytest.raises(AuthenticationFailure):
            crypto.decrypt(token)


class TestLegacyLayout:

    def test_layout(self):
        crypto = SessionCrypto(b"s3cr3t", b"abc123", token_format="legacy")
        raw = base64.b64decode(crypto.encrypt(b"hello"))
        assert len(raw) == IV_SIZE + MAC_SIZE + BLOCK_SIZE

    def test_aead_layout(self):
        crypto = SessionCrypto(b"s3cr3t", b"abc123")
        raw = base64.b64decode(crypto.encrypt(b"hello"))
        assert len(raw) == NONCE_SIZE + len(b"hello") + TAG_SIZE

    def test_zero_padding(self):
        assert zero_pad(b"") == b"\x00" * BLOCK_SIZE
        assert zero_pad(b"abc") == b"abc" + b"\x00" * 13
        assert zero_pad(b"x" * BLOCK_SIZE) == b"x" * BLOCK_SIZE
        assert zero_unpad(b"abc\x00\x00") == b"abc"

    def test_trailing_nul_is_trimmed_in_legacy(self):
        crypto = SessionCrypto(b"s3cr3t", b"abc123", token_format="legacy")
        assert crypto.decrypt(crypto.encrypt(b"data\x00")) == b"data"


class TestRejectionCost:
    """Malformed, short and forged tokens all pay for a key derivation."""

    @pytest.fixture
    def derivations(self, monkeypatch):
        calls = []

        def counting(secret, salt):
            calls.append(salt)
            return derive_key(secret, salt)

        monkeypatch.setattr("hybrid_session.crypto.derive_key", counting)
        return calls

    @staticmethod
    def _forged(token_format: str) -> str:
        good = SessionCrypto(b"s3cr3t", b"abc123", token_format=token_format)
        return _flip(good.encrypt(b"hello world"), -1)

    @pytest.mark.parametrize("token_format", ["aead", "legacy"])
    @pytest.mark.parametrize("kind", ["bad-base64", "short", "forged"])
    def test_key_is_derived_before_rejecting(self, derivations, token_format, kind):
        if kind == "bad-base64":
            token = "not base64!!"
        elif kind == "short":
            token = base64.b64encode(b"short").decode()
        else:
            token = self._forged(token_format)
        derivations.clear()
        crypto = SessionCrypto(b"s3cr3t", b"abc123", token_format=token_format)
        with pytest.raises(AuthenticationFailure):
            crypto.decrypt(token)
        assert derivations == [b"abc123"]
