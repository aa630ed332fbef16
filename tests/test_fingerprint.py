"""
Tests for device fingerprinting.
"""
import hashlib

from tp_location.api.location import DeviceInfo
from tp_location.services.fingerprint import generate_device_hash, hash_auth_credential

UA = "Mozilla/5.0 (Linux; Android 14; Pixel 7)"
DEVICE = {"device_id": "abc-123", "model": "Pixel 7", "os": "Android 14"}


class TestGenerateDeviceHash:
    """Tests for generate_device_hash."""

    def test_deterministic(self):
        assert generate_device_hash(DEVICE, UA) == generate_device_hash(dict(DEVICE), UA)

    def test_is_32_hex_chars(self):
        device_hash = generate_device_hash(DEVICE, UA)

        assert len(device_hash) == 32
        int(device_hash, 16)

    def test_matches_pipe_joined_sha256_prefix(self):
        expected = hashlib.sha256(f"abc-123|Pixel 7|Android 14|{UA}".encode()).hexdigest()[:32]

        assert generate_device_hash(DEVICE, UA) == expected

    def test_missing_everything_hashes_empty_fields(self):
        expected = hashlib.sha256(b"|||").hexdigest()[:32]

        assert generate_device_hash(None, None) == expected
        assert generate_device_hash({}, "") == expected

    def test_partial_device_info(self):
        expected = hashlib.sha256(f"||iOS 17|{UA}".encode()).hexdigest()[:32]

        assert generate_device_hash({"os": "iOS 17"}, UA) == expected

    def test_browser_is_not_part_of_fingerprint(self):
        with_browser = dict(DEVICE, browser="Chrome 120")

        assert generate_device_hash(with_browser, UA) == generate_device_hash(DEVICE, UA)

    def test_pydantic_model_and_dict_agree(self):
        assert generate_device_hash(DeviceInfo(**DEVICE), UA) == generate_device_hash(DEVICE, UA)

    def test_user_agent_changes_hash(self):
        assert generate_device_hash(DEVICE, UA) != generate_device_hash(DEVICE, UA + " Edge")


class TestHashAuthCredential:
    """Tests for hash_auth_credential."""

    def test_full_sha256(self):
        value = hash_auth_credential("Bearer abc")

        assert value == hashlib.sha256(b"Bearer abc").hexdigest()
        assert len(value) == 64

    def test_missing_header(self):
        assert hash_auth_credential(None) == hashlib.sha256(b"").hexdigest()
