"""Tests for base64url helpers and the content encryption profiles."""

import pytest

from webkms.ciphers import (
    FipsProfile,
    RecommendedProfile,
    assert_version,
    get_profile,
    get_profile_for_enc,
)
from webkms.encoding import canonical_json, from_base64url, to_base64url, to_bytes
from webkms.errors import DecryptionError, InvalidArgument, UnsupportedVersion


class TestBase64Url:
    """Tests for unpadded URL-safe base64."""

    def test_no_padding_and_url_alphabet(self):
        encoded = to_base64url(b"\xfb\xff\xfe")

        assert encoded == "-__-"
        assert "=" not in to_base64url(b"a")

    def test_decode_accepts_padding(self):
        assert from_base64url("YQ") == b"a"
        assert from_base64url("YQ==") == b"a"

    @pytest.mark.parametrize("bad", ["+//+", "a b", "é", "YQ!"])
    def test_decode_rejects_invalid(self, bad):
        with pytest.raises(ValueError):
            from_base64url(bad)


class TestToBytes:
    def test_text_is_utf8(self):
        assert to_bytes("é", "data") == b"\xc3\xa9"

    def test_buffers_are_copied_to_bytes(self):
        assert to_bytes(bytearray(b"ab"), "data") == b"ab"
        assert to_bytes(memoryview(b"ab"), "data") == b"ab"

    def test_other_types_name_the_parameter(self):
        with pytest.raises(InvalidArgument, match='"secret"'):
            to_bytes(123, "secret")


class TestCanonicalJson:
    def test_sorted_and_compact(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_same_object_same_bytes(self):
        assert canonical_json({"x": 1, "y": 2}) == canonical_json({"y": 2, "x": 1})

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_rejects_non_finite_floats(self, value):
        with pytest.raises(ValueError):
            canonical_json({"x": value})


class TestProfiles:
    """Tests for the recommended and fips AEAD profiles."""

    def test_profile_lookup(self):
        assert isinstance(get_profile("recommended"), RecommendedProfile)
        assert isinstance(get_profile("fips"), FipsProfile)
        assert get_profile_for_enc("C20P") is get_profile("recommended")
        assert get_profile_for_enc("A256GCM") is get_profile("fips")
        assert get_profile_for_enc("XS20P") is None

    def test_assert_version(self):
        assert_version("fips")
        with pytest.raises(UnsupportedVersion) as exc_info:
            assert_version("legacy")
        assert exc_info.value.version == "legacy"
        with pytest.raises(InvalidArgument):
            assert_version(None)

    @pytest.mark.parametrize("version", ["recommended", "fips"])
    def test_encrypt_decrypt(self, version):
        profile = get_profile(version)
        key = profile.generate_key()

        result = profile.encrypt(b"hello", b"aad", key)

        assert result.enc == profile.ENC
        assert len(result.iv) == 12
        assert len(result.tag) == 16
        assert len(result.ciphertext) == len(b"hello")
        assert profile.decrypt(result.enc, result.ciphertext, result.iv, result.tag, b"aad", key) == b"hello"

    @pytest.mark.parametrize("version", ["recommended", "fips"])
    def test_fresh_iv_per_call(self, version):
        profile = get_profile(version)
        key = profile.generate_key()

        first = profile.encrypt(b"same", None, key)
        second = profile.encrypt(b"same", None, key)

        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_wrong_additional_data(self):
        profile = get_profile("recommended")
        key = profile.generate_key()
        result = profile.encrypt(b"hello", b"aad", key)

        with pytest.raises(DecryptionError):
            profile.decrypt(result.enc, result.ciphertext, result.iv, result.tag, b"other", key)

    def test_wrong_key(self):
        profile = get_profile("fips")
        result = profile.encrypt(b"hello", None, profile.generate_key())

        with pytest.raises(DecryptionError):
            profile.decrypt(result.enc, result.ciphertext, result.iv, result.tag, None, profile.generate_key())

    def test_enc_mismatch(self):
        profile = get_profile("fips")
        key = profile.generate_key()
        result = profile.encrypt(b"hello", None, key)

        with pytest.raises(InvalidArgument):
            profile.decrypt("C20P", result.ciphertext, result.iv, result.tag, None, key)

    def test_bad_iv_and_tag_lengths(self):
        profile = get_profile("recommended")
        key = profile.generate_key()
        result = profile.encrypt(b"hello", None, key)

        with pytest.raises(DecryptionError):
            profile.decrypt(result.enc, result.ciphertext, result.iv[:8], result.tag, None, key)
        with pytest.raises(DecryptionError):
            profile.decrypt(result.enc, result.ciphertext, result.iv, result.tag[:8], None, key)

    def test_rejects_bad_inputs(self):
        profile = get_profile("recommended")

        with pytest.raises(InvalidArgument):
            profile.encrypt("text", None, profile.generate_key())
        with pytest.raises(InvalidArgument):
            profile.encrypt(b"data", None, b"short")
