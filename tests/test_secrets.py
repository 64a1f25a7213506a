"""
Tests for SecretRefs, the secret resolver and secret materialization.
"""

import pytest

from stackplan.core.errors import ConfigError, SecretResolutionError
from stackplan.core.models.secrets import DeferredSecret, LiteralSecret
from stackplan.core.services.secrets import (
    SecretResolver,
    build_secret,
    env_from_secret,
    generate_password,
    materialize_secret,
    secret_env,
    validate_handle,
)


class TestSecretRef:
    """LiteralSecret and DeferredSecret never print their value."""

    def test_literal_is_masked(self):
        s = LiteralSecret(value="hunter2")
        assert "hunter2" not in str(s)
        assert "hunter2" not in repr(s)
        assert s.describe() == "literal(***)"

    def test_literal_reveal(self):
        assert LiteralSecret(value="hunter2").reveal() == "hunter2"

    def test_deferred_describe(self):
        assert DeferredSecret(handle="env:DB_PASS").describe() == "deferred(env:DB_PASS)"

    def test_deferred_reveal_through_resolver(self):
        resolver = SecretResolver({"DB_PASS": "s3cret"})
        assert DeferredSecret(handle="env:DB_PASS").reveal(resolver) == "s3cret"


class TestValidateHandle:
    """validate_handle()"""

    @pytest.mark.parametrize("handle", ["env:NAME", "generate", "generate:48"])
    def test_valid(self, handle):
        validate_handle(handle)

    def test_unknown_scheme(self):
        with pytest.raises(ConfigError, match="unknown secret handle"):
            validate_handle("vault:secret/db", "database.password")

    def test_env_without_name(self):
        with pytest.raises(ConfigError, match="variable name"):
            validate_handle("env:")

    def test_generate_non_numeric(self):
        with pytest.raises(ConfigError, match="numeric"):
            validate_handle("generate:long")


class TestSecretResolver:
    """SecretResolver.resolve()"""

    def test_env_handle(self):
        assert SecretResolver({"X": "1"}).resolve("env:X") == "1"

    def test_missing_env_raises(self):
        with pytest.raises(SecretResolutionError, match="MISSING"):
            SecretResolver({}).resolve("env:MISSING")

    def test_generate_default_length(self):
        value = SecretResolver({}).resolve("generate")
        assert len(value) == 32
        assert value.isalnum()

    def test_generate_custom_length(self):
        assert len(SecretResolver({}).resolve("generate:12")) == 12

    def test_unknown_handle(self):
        with pytest.raises(SecretResolutionError):
            SecretResolver({}).resolve("vault:x")

    def test_generated_passwords_differ(self):
        assert generate_password() != generate_password()


class TestSecretManifests:
    """build_secret / secret_env / materialize_secret."""

    def test_build_secret_keeps_refs_and_drops_none(self):
        ref = LiteralSecret(value="pw")
        manifest = build_secret("db", "ns", {"password": ref, "user": "app", "x": None}, {})
        assert manifest["kind"] == "Secret"
        assert manifest["stringData"] == {"password": ref, "user": "app"}

    def test_secret_env_shape(self):
        env = secret_env("DB_PASSWORD", "postgres-credentials", "postgres-password")
        assert env == {
            "name": "DB_PASSWORD",
            "valueFrom": {"secretKeyRef": {
                "name": "postgres-credentials", "key": "postgres-password",
            }},
        }

    def test_env_from_secret_names(self):
        env = env_from_secret("minio-credentials", ["root-user", "root-password"])
        assert [e["name"] for e in env] == ["ROOT_USER", "ROOT_PASSWORD"]

    def test_materialize_reveals_every_ref(self):
        manifest = build_secret("db", "ns", {
            "password": DeferredSecret(handle="env:PW"),
            "user": "app",
        }, {})
        resolved = materialize_secret(manifest, SecretResolver({"PW": "from-env"}))
        assert resolved["stringData"] == {"password": "from-env", "user": "app"}
        # The original manifest still holds the ref
        assert isinstance(manifest["stringData"]["password"], DeferredSecret)
