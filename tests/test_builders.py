"""
Tests for the backend resource builders.
"""

import pytest

from stackplan.core.config.resolver import resolve
from stackplan.core.errors import BuilderInvariantError
from stackplan.core.models.engines import SERVICE_NAMES, Capability
from stackplan.core.models.secrets import LiteralSecret, SecretRef
from stackplan.core.services import builders
from stackplan.core.services.builders import kafka, mailpit, postgres, redis
from stackplan.core.services.labels import NAME_LABEL, Identity

NS = "laravel-local"

IN_CLUSTER = [
    (Capability.DATABASE, "postgresql"),
    (Capability.DATABASE, "mysql"),
    (Capability.DATABASE, "mariadb"),
    (Capability.CACHE, "redis"),
    (Capability.CACHE, "valkey"),
    (Capability.CACHE, "memcached"),
    (Capability.QUEUE, "rabbitmq"),
    (Capability.QUEUE, "kafka"),
    (Capability.QUEUE, "beanstalkd"),
    (Capability.QUEUE, "redis"),
    (Capability.STORAGE, "minio"),
    (Capability.SEARCH, "meilisearch"),
]

# Engines that run a metrics exporter next to the server
WITH_EXPORTER = [
    (Capability.DATABASE, "postgresql"),
    (Capability.CACHE, "redis"),
    (Capability.CACHE, "memcached"),
    (Capability.QUEUE, "rabbitmq"),
    (Capability.QUEUE, "kafka"),
]


def _backend(capability, engine, extra=None, environment="local"):
    overrides = {capability.value: {"engine": engine}}
    overrides.update(extra or {})
    config = resolve(environment, overrides)
    backend = config.backend(capability)
    identity = Identity(
        name=SERVICE_NAMES.get(engine, engine),
        component=capability.value,
        environment=environment,
        version=backend.version,
    )
    return backend, identity


def _build(capability, engine, extra=None):
    backend, identity = _backend(capability, engine, extra)
    return builders.build(backend, identity, NS)


def _containers(resources):
    return resources.workload["spec"]["template"]["spec"]["containers"]


class TestRegistry:
    """Dispatch through BUILDERS."""

    def test_unknown_engine(self):
        with pytest.raises(BuilderInvariantError, match="No builder"):
            builders.builder_for("cassandra")

    def test_valkey_shares_redis_builder(self):
        assert builders.BUILDERS["valkey"] is builders.BUILDERS["redis"]

    def test_wrong_engine_for_builder(self):
        backend, identity = _backend(Capability.DATABASE, "mysql")
        with pytest.raises(BuilderInvariantError, match="postgres builder"):
            postgres.build(backend, identity, NS)

    def test_redis_builder_rejects_memcached(self):
        backend, identity = _backend(Capability.CACHE, "memcached")
        with pytest.raises(BuilderInvariantError):
            redis.build(backend, identity, NS)


class TestInClusterShape:
    """Every in-cluster builder returns a workload reachable through a service."""

    @pytest.mark.parametrize("capability,engine", IN_CLUSTER)
    def test_materialized(self, capability, engine):
        rs = _build(capability, engine)
        assert rs.materialized
        assert rs.role == capability.value
        assert rs.engine == engine
        assert rs.service is not None or rs.headless_service is not None
        assert rs.endpoint

    @pytest.mark.parametrize("capability,engine", IN_CLUSTER)
    def test_selector_subset_of_template_labels(self, capability, engine):
        rs = _build(capability, engine)
        selector = rs.workload["spec"]["selector"]["matchLabels"]
        template_labels = rs.workload["spec"]["template"]["metadata"]["labels"]
        assert selector.items() <= template_labels.items()
        for svc in (rs.service, rs.headless_service):
            if svc is not None:
                assert svc["spec"]["selector"] == selector

    @pytest.mark.parametrize("capability,engine", IN_CLUSTER)
    def test_no_sibling_engine_labels(self, capability, engine):
        rs = _build(capability, engine)
        expected = SERVICE_NAMES[engine]
        for manifest in rs.manifests():
            assert manifest["metadata"]["labels"][NAME_LABEL] == expected

    @pytest.mark.parametrize("capability,engine", IN_CLUSTER)
    def test_credentials_stay_refs(self, capability, engine):
        rs = _build(capability, engine)
        if rs.secret is None:
            return
        for purpose, key in rs.credential_keys.items():
            assert key in rs.secret["stringData"], purpose

    @pytest.mark.parametrize("capability,engine", WITH_EXPORTER)
    def test_exporter_port_distinct_and_scraped(self, capability, engine):
        rs = _build(capability, engine)
        containers = _containers(rs)
        assert len(containers) == 2
        primary = {p["containerPort"] for p in containers[0]["ports"]}
        metrics = {p["containerPort"] for p in containers[1]["ports"]}
        assert not primary & metrics
        annotations = rs.workload["spec"]["template"]["metadata"]["annotations"]
        assert annotations["prometheus.io/scrape"] == "true"
        assert int(annotations["prometheus.io/port"]) in metrics


class TestDisabledBackends:
    """A disabled backend yields at most its credential secret."""

    @pytest.mark.parametrize("capability,engine", IN_CLUSTER)
    def test_only_secret(self, capability, engine):
        rs = _build(capability, engine, {capability.value: {"engine": engine, "enabled": False}})
        assert rs.workload is None
        assert rs.service is None
        assert rs.headless_service is None
        assert not rs.extras
        assert rs.manifests() in ([], [rs.secret])
        assert rs.endpoint  # still published for the runtime tier

    def test_external_postgres_keeps_secret(self):
        rs = _build(Capability.DATABASE, "postgresql", {"database": {
            "engine": "postgresql", "enabled": False, "host": "db.example.com",
        }})
        assert rs.secret_name == "postgres-credentials"
        assert rs.endpoint == "db.example.com:5432"


class TestVolumes:
    """Durable engines claim volumes; caches stay ephemeral."""

    @pytest.mark.parametrize("capability,engine,size", [
        (Capability.DATABASE, "postgresql", "10Gi"),
        (Capability.DATABASE, "mysql", "10Gi"),
        (Capability.QUEUE, "rabbitmq", "10Gi"),
        (Capability.QUEUE, "kafka", "10Gi"),
        (Capability.QUEUE, "beanstalkd", "10Gi"),
        (Capability.STORAGE, "minio", "20Gi"),
    ])
    def test_claim_size(self, capability, engine, size):
        rs = _build(capability, engine)
        assert rs.workload["kind"] == "StatefulSet"
        claim = rs.workload["spec"]["volumeClaimTemplates"][0]
        assert claim["spec"]["resources"]["requests"]["storage"] == size

    def test_claim_size_override(self):
        rs = _build(Capability.DATABASE, "postgresql", {"postgresql": {"storage_size": "50Gi"}})
        claim = rs.workload["spec"]["volumeClaimTemplates"][0]
        assert claim["spec"]["resources"]["requests"]["storage"] == "50Gi"

    @pytest.mark.parametrize("engine", ["redis", "memcached"])
    def test_cache_is_deployment(self, engine):
        rs = _build(Capability.CACHE, engine)
        assert rs.workload["kind"] == "Deployment"
        assert "volumeClaimTemplates" not in rs.workload["spec"]


class TestPostgres:
    """PostgreSQL specifics."""

    def test_image_and_secret(self):
        rs = _build(Capability.DATABASE, "postgresql")
        assert _containers(rs)[0]["image"] == "postgres:16-alpine"
        assert rs.secret_name == "postgres-credentials"
        assert rs.endpoint == "postgres:5432"
        assert set(rs.secret["stringData"]) == {"postgres-password", "postgres-user", "postgres-db"}

    def test_password_is_a_ref(self):
        rs = _build(Capability.DATABASE, "postgresql")
        password = rs.secret["stringData"]["postgres-password"]
        assert not isinstance(password, str)

    def test_extensions_env(self):
        rs = _build(Capability.DATABASE, "postgresql", {"postgresql": {"extensions": ["pg_trgm"]}})
        env = {e["name"]: e.get("value") for e in _containers(rs)[0]["env"]}
        assert env["POSTGRES_EXTENSIONS"] == "pg_trgm"


class TestMySQLFamily:
    """MySQL and MariaDB share a builder."""

    @pytest.mark.parametrize("engine,prefix", [("mysql", "MYSQL"), ("mariadb", "MARIADB")])
    def test_env_prefix(self, engine, prefix):
        rs = _build(Capability.DATABASE, engine)
        names = {e["name"] for e in _containers(rs)[0]["env"]}
        assert f"{prefix}_ROOT_PASSWORD" in names
        assert rs.secret_name == f"{engine}-credentials"

    def test_mariadb_image(self):
        rs = _build(Capability.DATABASE, "mariadb")
        assert _containers(rs)[0]["image"] == "mariadb:11.4"


class TestRedisFamily:
    """Redis, Valkey."""

    def test_valkey_identity(self):
        rs = _build(Capability.CACHE, "valkey")
        assert rs.workload["metadata"]["name"] == "valkey"
        assert _containers(rs)[0]["image"] == "valkey/valkey:8.0-alpine"
        assert _containers(rs)[0]["command"][0] == "valkey-server"

    def test_password_adds_requirepass(self):
        rs = _build(Capability.CACHE, "redis", {"redis": {"password": "pw"}})
        command = _containers(rs)[0]["command"]
        assert "--requirepass" in command
        assert rs.secret_name == "redis-password"

    def test_no_password_no_secret(self):
        rs = _build(Capability.CACHE, "redis")
        assert rs.secret is None
        assert "--requirepass" not in _containers(rs)[0]["command"]

    def test_persistence_off(self):
        rs = _build(Capability.CACHE, "redis", {"redis": {"persistence": False}})
        command = _containers(rs)[0]["command"]
        assert command[command.index("--appendonly") + 1] == "no"

    def test_eviction_policy(self):
        rs = _build(Capability.CACHE, "redis", {"redis": {"maxmemoryPolicy": "allkeys-lru"}})
        command = _containers(rs)[0]["command"]
        assert command[command.index("--maxmemory-policy") + 1] == "allkeys-lru"


class TestKafka:
    """Broker identity derives from the pod ordinal."""

    def test_ordinals(self):
        ids = kafka.broker_identities(3, NS)
        assert [b.ordinal for b in ids] == [0, 1, 2]
        assert [b.node_id for b in ids] == [0, 1, 2]

    def test_scale_out_keeps_existing_identities(self):
        three = kafka.broker_identities(3, NS)
        five = kafka.broker_identities(5, NS)
        assert five[:3] == three
        assert [b.ordinal for b in five[3:]] == [3, 4]

    def test_advertised_listener(self):
        broker = kafka.broker_identity(1, NS)
        assert broker.advertised_listener == (
            f"PLAINTEXT://kafka-1.kafka-headless.{NS}.svc.cluster.local:9092"
        )

    def test_template_independent_of_replicas(self):
        three = _build(Capability.QUEUE, "kafka", {"kafka": {"replicas": 3}})
        five = _build(Capability.QUEUE, "kafka", {"kafka": {"replicas": 5}})
        assert three.workload["spec"]["replicas"] == 3
        assert five.workload["spec"]["replicas"] == 5
        assert three.workload["spec"]["template"] == five.workload["spec"]["template"]

    def test_node_id_from_pod_index(self):
        rs = _build(Capability.QUEUE, "kafka")
        env = {e["name"]: e for e in _containers(rs)[0]["env"]}
        field_path = env["KAFKA_NODE_ID"]["valueFrom"]["fieldRef"]["fieldPath"]
        assert kafka.POD_INDEX_LABEL in field_path

    def test_headless_service(self):
        rs = _build(Capability.QUEUE, "kafka")
        assert rs.headless_service["metadata"]["name"] == "kafka-headless"
        assert rs.headless_service["spec"]["clusterIP"] == "None"
        assert rs.workload["spec"]["serviceName"] == "kafka-headless"

    def test_sasl_secret(self):
        rs = _build(Capability.QUEUE, "kafka", {"kafka": {"sasl_mechanism": "PLAIN", "username": "app"}})
        assert rs.secret_name == "kafka-credentials"
        assert rs.credential_keys == kafka.CREDENTIAL_KEYS

    def test_plaintext_without_sasl(self):
        env = {e["name"]: e for e in _containers(_build(Capability.QUEUE, "kafka"))[0]["env"]}
        assert env["KAFKA_LISTENER_SECURITY_PROTOCOL_MAP"]["value"] == (
            "CONTROLLER:PLAINTEXT,PLAINTEXT:PLAINTEXT"
        )
        assert "KAFKA_SASL_ENABLED_MECHANISMS" not in env

    def test_sasl_enforced_on_client_listener(self):
        rs = _build(Capability.QUEUE, "kafka", {"kafka": {"sasl_mechanism": "plain", "username": "app"}})
        container_env = _containers(rs)[0]["env"]
        env = {e["name"]: e for e in container_env}
        assert env["KAFKA_LISTENERS"]["value"].startswith("SASL_PLAINTEXT://:9092,")
        assert env["KAFKA_ADVERTISED_LISTENERS"]["value"].startswith("SASL_PLAINTEXT://")
        assert env["KAFKA_LISTENER_SECURITY_PROTOCOL_MAP"]["value"] == (
            "CONTROLLER:PLAINTEXT,SASL_PLAINTEXT:SASL_PLAINTEXT"
        )
        assert env["KAFKA_INTER_BROKER_LISTENER_NAME"]["value"] == "SASL_PLAINTEXT"
        assert env["KAFKA_SASL_MECHANISM_INTER_BROKER_PROTOCOL"]["value"] == "PLAIN"
        assert "PlainLoginModule" in env[kafka.JAAS_ENV]["value"]

        # $(VAR) expansion only sees variables declared earlier.
        names = [e["name"] for e in container_env]
        assert names.index("SASL_PASSWORD") < names.index(kafka.JAAS_ENV)
        assert env["SASL_PASSWORD"]["valueFrom"]["secretKeyRef"] == {
            "name": "kafka-credentials", "key": "kafka-password",
        }

    def test_scram_rejected_in_cluster(self):
        backend, identity = _backend(Capability.QUEUE, "kafka")
        scram = backend.model_copy(update={
            "sasl_mechanism": "SCRAM-SHA-512",
            "username": "app",
            "password": LiteralSecret(value="pw"),
        })
        with pytest.raises(BuilderInvariantError, match="PLAIN"):
            kafka.build(scram, identity, NS)


class TestExternal:
    """Externally managed engines publish credentials, never workloads."""

    def test_s3(self):
        rs = _build(Capability.STORAGE, "s3", {"s3": {"bucket": "assets"}})
        assert not rs.materialized
        assert rs.secret_name == "s3-credentials"
        assert rs.endpoint == "s3.us-east-1.amazonaws.com:443"

    def test_sqs(self):
        rs = _build(Capability.QUEUE, "sqs", {"sqs": {"prefix": "https://sqs/1"}})
        assert rs.is_empty
        assert rs.endpoint == "sqs.us-east-1.amazonaws.com:443"

    def test_elasticsearch_without_password(self):
        rs = _build(Capability.SEARCH, "elasticsearch", {"elasticsearch": {"host": "es"}})
        assert rs.is_empty
        assert rs.endpoint == "es:9200"

    def test_elasticsearch_with_password(self):
        rs = _build(Capability.SEARCH, "elasticsearch", {
            "elasticsearch": {"host": "es", "username": "elastic", "password": "pw"},
        })
        assert rs.secret_name == "elasticsearch-credentials"


class TestMailpit:
    """Mail catcher."""

    def test_disabled(self, local_config):
        config = local_config.mail.model_copy(update={"enabled": False})
        identity = Identity(name="mailpit", component="mail", environment="local")
        assert mailpit.build(config, identity, NS).is_empty

    def test_enabled(self, local_config):
        identity = Identity(name="mailpit", component="mail", environment="local")
        rs = mailpit.build(local_config.mail, identity, NS)
        assert rs.materialized
        assert rs.endpoint == "mailpit:1025"
