"""
Tests for storage and migration configuration.
"""

import pytest

from vaultshift.core.config import (
    SETTING_KEYS,
    LocalStorageConfig,
    MigrationOptions,
    S3StorageConfig,
    StorageType,
    is_masked,
    mask_secret,
    parse_bool,
)
from vaultshift.core.env import EnvManager
from vaultshift.storage.core import IncompleteConfigError


class TestBooleans:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("1", True), ("TRUE", True), ("false", False), ("0", False), ("yes", False)],
    )
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected

    def test_parse_bool_default(self):
        assert parse_bool("", default=True) is True
        assert parse_bool(None) is False
        assert parse_bool(True) is True


class TestSecretMasking:
    def test_mask_keeps_last_four(self):
        masked = mask_secret("minio-secret-1234")
        assert masked.endswith("1234")
        assert "minio" not in masked
        assert is_masked(masked)

    def test_empty_secret(self):
        assert mask_secret("") == ""
        assert is_masked("")
        assert is_masked(None)

    def test_real_secret_is_not_masked(self):
        assert not is_masked("minio-secret-1234")


class TestLocalStorageConfig:
    def test_type_and_settings(self):
        config = LocalStorageConfig(root="/srv/vault")
        assert config.type == StorageType.LOCAL
        assert config.to_settings() == {
            SETTING_KEYS.STORAGE_TYPE: "local",
            SETTING_KEYS.LOCAL_ROOT: "/srv/vault",
        }

    def test_empty_root_is_incomplete(self):
        with pytest.raises(IncompleteConfigError):
            LocalStorageConfig(root="").validate()


class TestS3StorageConfig:
    def test_endpoint_url_scheme(self):
        assert S3StorageConfig(endpoint="minio:9000", use_ssl=False).endpoint_url == "http://minio:9000"
        assert S3StorageConfig(endpoint="s3.amazonaws.com").endpoint_url == "https://s3.amazonaws.com"
        assert S3StorageConfig(endpoint="http://minio:9000").endpoint_url == "http://minio:9000"

    def test_missing_fields(self):
        config = S3StorageConfig(endpoint="minio:9000", bucket="vault")
        assert config.missing_fields() == ["access_key", "secret_key"]
        assert not config.is_complete()
        with pytest.raises(IncompleteConfigError) as exc_info:
            config.validate()
        assert exc_info.value.backend == "s3"

    def test_complete(self, s3_config):
        assert s3_config.is_complete()
        s3_config.validate()

    def test_secret_not_in_repr(self, s3_config):
        assert "minio-secret-1234" not in repr(s3_config)

    def test_to_dict_masks_secret(self, s3_config):
        assert s3_config.to_dict()["secret_key"] == mask_secret("minio-secret-1234")
        assert s3_config.to_dict(mask_secrets=False)["secret_key"] == "minio-secret-1234"

    def test_to_settings_serializes_booleans(self, s3_config):
        values = s3_config.to_settings()
        assert values[SETTING_KEYS.STORAGE_TYPE] == "s3"
        assert values[SETTING_KEYS.S3_PATH_STYLE] == "true"
        assert values[SETTING_KEYS.S3_USE_SSL] == "false"

    def test_masked_secret_resolved_from_saved(self, s3_config):
        form = S3StorageConfig(
            endpoint="minio.test:9000",
            bucket="vault",
            access_key="minio",
            secret_key=mask_secret(s3_config.secret_key),
            use_ssl=False,
        )
        resolved = form.with_secret_from(s3_config)
        assert resolved.secret_key == "minio-secret-1234"

    def test_new_secret_wins_over_saved(self, s3_config):
        form = S3StorageConfig(endpoint="other:9000", secret_key="brand-new-secret")
        resolved = form.with_secret_from(s3_config)
        assert resolved.secret_key == "brand-new-secret"
        assert resolved.endpoint == "other:9000"
        # Blank fields are filled from the saved settings
        assert resolved.bucket == "vault"
        assert resolved.access_key == "minio"

    def test_with_secret_from_none(self, s3_config):
        assert s3_config.with_secret_from(None) is s3_config


class TestMigrationOptions:
    def test_defaults(self):
        options = MigrationOptions()
        assert options.concurrency == 1
        assert options.verify is True
        assert options.log_capacity == 1000

    @pytest.mark.parametrize("field", ["concurrency", "log_capacity", "progress_log_interval"])
    def test_rejects_values_below_one(self, field):
        with pytest.raises(ValueError, match=field):
            MigrationOptions(**{field: 0})

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("VAULTSHIFT_MIGRATION_CONCURRENCY", "8")
        monkeypatch.setenv("VAULTSHIFT_VERIFY", "false")
        monkeypatch.setenv("VAULTSHIFT_LOG_CAPACITY", "50")

        options = MigrationOptions.from_env(EnvManager(project_root=tmp_path))

        assert options.concurrency == 8
        assert options.verify is False
        assert options.log_capacity == 50

    def test_from_env_clamps_invalid_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("VAULTSHIFT_MIGRATION_CONCURRENCY", "0")
        monkeypatch.setenv("VAULTSHIFT_LOG_CAPACITY", "not-a-number")

        options = MigrationOptions.from_env(EnvManager(project_root=tmp_path))

        assert options.concurrency == 1
        assert options.log_capacity == 1000
