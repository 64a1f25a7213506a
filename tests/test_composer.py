"""
Tests for topology composition — the single compose() entry point.
"""

import pytest

from stackplan.core.errors import BuilderInvariantError, InvalidEngineError, MissingConfigError
from stackplan.core.models.topology import NamedOutputs
from stackplan.core.services.composer import compose
from stackplan.core.services.labels import NAME_LABEL

BUCKET = {"s3": {"bucket": "laravel-assets"}}


def _env(topology, role):
    """Env of the first container of a component's workload, keyed by name."""
    container = topology.components[role].workload["spec"]["template"]["spec"]["containers"][0]
    return {e["name"]: e for e in container["env"]}


def _kinds(topology, kind):
    return [m for m in topology.manifests() if m["kind"] == kind]


def _restricted_violations(topology):
    """(workload, container, field) triples a restricted namespace would reject."""
    violations = []
    for manifest in topology.manifests():
        if manifest["kind"] not in ("Deployment", "StatefulSet"):
            continue
        pod = manifest["spec"]["template"]["spec"]
        pod_ctx = pod.get("securityContext", {})
        for container in pod.get("initContainers", []) + pod["containers"]:
            ctx = {**pod_ctx, **container.get("securityContext", {})}
            where = (manifest["metadata"]["name"], container["name"])
            if ctx.get("runAsNonRoot") is not True:
                violations.append((*where, "runAsNonRoot"))
            if ctx.get("runAsUser") == 0:
                violations.append((*where, "runAsUser"))
            if ctx.get("seccompProfile", {}).get("type") != "RuntimeDefault":
                violations.append((*where, "seccompProfile"))
            if ctx.get("allowPrivilegeEscalation") is not False:
                violations.append((*where, "allowPrivilegeEscalation"))
            if "ALL" not in ctx.get("capabilities", {}).get("drop", []):
                violations.append((*where, "capabilities"))
    return violations


class TestNamedOutputs:
    """Write-once output map."""

    def test_publish_and_read(self):
        outputs = NamedOutputs()
        outputs.publish("database", "postgres:5432")
        assert outputs["database"] == "postgres:5432"
        assert "database" in outputs
        assert outputs.as_dict() == {"database": "postgres:5432"}

    def test_second_write_rejected(self):
        outputs = NamedOutputs()
        outputs.publish("cache", "redis:6379")
        with pytest.raises(BuilderInvariantError, match="already published"):
            outputs.publish("cache", "valkey:6379")


class TestLocalTopology:
    """classification=local, no overrides."""

    def test_all_backends_in_cluster(self, local_topology):
        assert local_topology.summary.in_cluster["database"] == "postgresql"
        assert local_topology.summary.in_cluster["cache"] == "redis"
        assert local_topology.summary.in_cluster["queue"] == "rabbitmq"
        assert local_topology.summary.in_cluster["storage"] == "minio"
        assert local_topology.summary.in_cluster["search"] == "meilisearch"
        assert local_topology.summary.external == {}

    def test_runtime_tiers(self, local_topology):
        for role in ("web", "worker", "reverb"):
            assert local_topology.components[role].materialized

    def test_no_autoscaling_objects(self, local_topology):
        assert _kinds(local_topology, "HorizontalPodAutoscaler") == []
        assert _kinds(local_topology, "PodDisruptionBudget") == []
        web = local_topology.components["web"].workload
        assert web["spec"]["replicas"] == 1

    def test_no_policies(self, local_topology):
        assert local_topology.policies == []

    def test_outputs(self, local_topology):
        outputs = local_topology.outputs
        assert outputs["database"] == "postgres:5432"
        assert outputs["database.secret"] == "postgres-credentials"
        assert outputs["database.secret.password"] == "postgres-password"
        assert outputs["cache"] == "redis:6379"
        assert outputs["queue"] == "rabbitmq:5672"
        assert outputs["mail"] == "mailpit:1025"

    def test_namespace_manifest(self, local_topology):
        assert local_topology.namespace_manifest["kind"] == "Namespace"
        assert local_topology.namespace_manifest["metadata"]["name"] == "laravel-local"
        assert local_topology.manifests()[0] is local_topology.namespace_manifest

    def test_every_manifest_in_namespace(self, local_topology):
        for manifest in local_topology.manifests()[1:]:
            assert manifest["metadata"]["namespace"] == "laravel-local"

    def test_idempotent(self, local_topology):
        again = compose("local")
        assert again.outputs == local_topology.outputs
        assert again.summary == local_topology.summary
        first = [m["metadata"]["labels"] for m in local_topology.manifests()]
        second = [m["metadata"]["labels"] for m in again.manifests()]
        assert first == second


class TestEngineSelection:
    """Only the selected engine is materialized."""

    def test_mysql_has_no_postgres(self):
        topology = compose("local", {"database": {"engine": "mysql"}})
        names = {m["metadata"]["labels"].get(NAME_LABEL) for m in topology.manifests()}
        assert "mysql" in names
        assert "postgres" not in names
        assert "mariadb" not in names

    def test_invalid_engine_aborts(self):
        with pytest.raises(InvalidEngineError):
            compose("local", {"database": {"engine": "oracle"}})

    def test_missing_required_aborts(self):
        with pytest.raises(MissingConfigError):
            compose("local", {"storage": {"engine": "s3"}})


class TestRuntimeWiring:
    """The runtime tier reads backend coordinates from named outputs."""

    def test_postgres_env(self, local_topology):
        env = _env(local_topology, "web")
        assert env["DB_CONNECTION"]["value"] == "pgsql"
        assert env["DB_HOST"]["value"] == "postgres"
        assert env["DB_PORT"]["value"] == "5432"
        ref = env["DB_PASSWORD"]["valueFrom"]["secretKeyRef"]
        assert ref == {"name": "postgres-credentials", "key": "postgres-password"}

    def test_kafka_sasl_env(self):
        topology = compose("local", {
            "queue": {"engine": "kafka"},
            "kafka": {"sasl_mechanism": "PLAIN", "username": "app"},
        })
        env = _env(topology, "worker")
        assert env["KAFKA_SECURITY_PROTOCOL"]["value"] == "SASL_PLAINTEXT"
        assert env["KAFKA_SASL_MECHANISM"]["value"] == "PLAIN"
        ref = env["KAFKA_SASL_PASSWORD"]["valueFrom"]["secretKeyRef"]
        assert ref == {"name": "kafka-credentials", "key": "kafka-password"}

    def test_mysql_env(self):
        topology = compose("local", {"database": {"engine": "mysql"}})
        env = _env(topology, "worker")
        assert env["DB_CONNECTION"]["value"] == "mysql"
        assert env["DB_HOST"]["value"] == "mysql"
        ref = env["DB_PASSWORD"]["valueFrom"]["secretKeyRef"]
        assert ref == {"name": "mysql-credentials", "key": "mysql-password"}

    def test_external_database_env(self):
        topology = compose("staging", {**BUCKET, "database": {"host": "db.internal"}})
        env = _env(topology, "web")
        assert env["DB_HOST"]["value"] == "db.internal"
        assert "database" in topology.summary.external
        assert not any(m["kind"] == "StatefulSet" and m["metadata"]["name"] == "postgres"
                       for m in topology.manifests())

    def test_rabbitmq_env(self, local_topology):
        env = _env(local_topology, "worker")
        assert env["QUEUE_CONNECTION"]["value"] == "rabbitmq"
        assert env["RABBITMQ_HOST"]["value"] == "rabbitmq"
        assert env["RABBITMQ_PASSWORD"]["valueFrom"]["secretKeyRef"]["name"] == "rabbitmq-credentials"

    def test_kafka_env(self):
        topology = compose("local", {"queue": {"engine": "kafka"}})
        env = _env(topology, "worker")
        assert env["KAFKA_BROKERS"]["value"] == "kafka:9092"

    def test_minio_env(self, local_topology):
        env = _env(local_topology, "web")
        assert env["AWS_ENDPOINT"]["value"] == "http://minio:9000"
        assert env["AWS_BUCKET"]["value"] == "laravel"
        assert env["AWS_ACCESS_KEY_ID"]["valueFrom"]["secretKeyRef"]["key"] == "root-user"

    def test_memcached_env(self):
        topology = compose("local", {"cache": {"engine": "memcached"}})
        env = _env(topology, "web")
        assert env["CACHE_STORE"]["value"] == "memcached"
        assert env["MEMCACHED_HOST"]["value"] == "memcached"
        assert env["SESSION_DRIVER"]["value"] == "database"

    def test_mail_env(self, local_topology):
        assert _env(local_topology, "web")["MAIL_MAILER"]["value"] == "smtp"

    def test_mail_off_in_production(self):
        topology = compose("production", BUCKET)
        assert "mail" not in topology.components
        assert _env(topology, "web")["MAIL_MAILER"]["value"] == "log"

    def test_app_secret(self, local_topology):
        web = local_topology.components["web"]
        assert web.secret_name == "laravel-app"
        env = _env(local_topology, "web")
        assert env["APP_KEY"]["valueFrom"]["secretKeyRef"]["name"] == "laravel-app"


class TestSharedQueue:
    """queue=redis reuses a redis-family cache."""

    def test_shares_cache_instance(self):
        topology = compose("local", {"queue": {"engine": "redis"}})
        assert not topology.components["queue"].materialized
        assert topology.outputs["queue"] == topology.outputs["cache"]
        assert topology.summary.in_cluster["queue"] == "redis (shared with cache)"
        redis_workloads = [
            m for m in topology.manifests()
            if m["kind"] == "Deployment" and m["metadata"]["name"] == "redis"
        ]
        assert len(redis_workloads) == 1

    def test_shares_valkey(self):
        topology = compose("local", {"queue": {"engine": "redis"}, "cache": {"engine": "valkey"}})
        assert topology.outputs["queue"] == "valkey:6379"

    def test_separate_instance_with_memcached(self):
        topology = compose("local", {"queue": {"engine": "redis"}, "cache": {"engine": "memcached"}})
        queue = topology.components["queue"]
        assert queue.materialized
        assert queue.workload["metadata"]["name"] == "redis"
        env = _env(topology, "worker")
        assert env["REDIS_HOST"]["value"] == "redis"


class TestProductionTopology:
    """classification=production."""

    def test_backends_external(self):
        topology = compose("production", BUCKET)
        assert topology.summary.external["database"] == "postgresql"
        assert topology.summary.external["storage"] == "s3"
        assert "database" not in topology.summary.in_cluster

    def test_autoscaling_omits_replicas(self):
        topology = compose("production", BUCKET)
        web = topology.components["web"]
        assert "replicas" not in web.workload["spec"]
        hpa = [m for m in web.extras if m["kind"] == "HorizontalPodAutoscaler"]
        assert hpa[0]["spec"]["scaleTargetRef"]["name"] == "laravel-web"
        assert hpa[0]["spec"]["maxReplicas"] == 10

    def test_hpa_disabled(self):
        topology = compose("production", {**BUCKET, "features": {"hpa": False}})
        web = topology.components["web"]
        assert web.workload["spec"]["replicas"] == 3
        kinds = [m["kind"] for m in web.extras]
        assert "HorizontalPodAutoscaler" not in kinds
        pdb = [m for m in web.extras if m["kind"] == "PodDisruptionBudget"]
        assert pdb[0]["spec"]["minAvailable"] == 1

    def test_policies(self):
        topology = compose("production", BUCKET)
        kinds = [p["kind"] for p in topology.policies]
        assert "ResourceQuota" in kinds
        assert "LimitRange" in kinds
        assert kinds.count("NetworkPolicy") == 4

    def test_pod_security_labels(self):
        topology = compose("production", BUCKET)
        ns_labels = topology.namespace_manifest["metadata"]["labels"]
        assert ns_labels["pod-security.kubernetes.io/enforce"] == "restricted"

    def test_observability_tools(self):
        topology = compose("production", BUCKET)
        for tool in ("prometheus", "grafana", "loki", "alertmanager"):
            assert topology.summary.in_cluster[tool] == tool
        assert "tempo" not in topology.components


class TestIngressAndGitOps:
    """Fixed roles."""

    def test_ingress_paths(self, local_topology):
        ingress = local_topology.components["ingress"].extras[0]
        paths = ingress["spec"]["rules"][0]["http"]["paths"]
        routes = {p["path"]: p["backend"]["service"] for p in paths}
        assert routes["/"] == {"name": "laravel-web", "port": {"number": 80}}
        assert routes["/app"] == {"name": "laravel-reverb", "port": {"number": 8080}}
        assert "tls" not in ingress["spec"]

    def test_ingress_tls(self):
        topology = compose("local", {"ingress": {"tls": True, "tls_secret_name": "laravel-tls"}})
        ingress = topology.components["ingress"]
        assert ingress.extras[0]["spec"]["tls"][0]["secretName"] == "laravel-tls"
        assert topology.outputs["ingress"] == "https://laravel.local"

    def test_ingress_disabled(self):
        topology = compose("local", {"ingress": {"enabled": False}})
        assert "ingress" not in topology.components

    def test_gitops_disabled_by_default(self, local_topology):
        assert local_topology.gitops_release is None

    def test_gitops_enabled(self):
        topology = compose("local", {"argocd": {"enabled": True}})
        release = topology.gitops_release
        assert release["chart"] == "argo-cd"
        assert release["namespace"] == "argocd"
        assert topology.summary.in_cluster["gitops"] == "argocd"


class TestPodSecurity:
    """Workloads admitted by the namespace they are placed in."""

    def test_production_default_is_restricted_clean(self):
        topology = compose("production", BUCKET)
        assert topology.config.features.pod_security
        assert _restricted_violations(topology) == []

    @pytest.mark.parametrize("database,cache,queue", [
        ("postgresql", "redis", "rabbitmq"),
        ("mysql", "valkey", "kafka"),
        ("mariadb", "memcached", "beanstalkd"),
        ("postgresql", "memcached", "redis"),
    ])
    def test_every_in_cluster_engine_is_restricted_clean(self, database, cache, queue):
        topology = compose("production", {
            "backend": {"enabled": True},
            "database": {"engine": database},
            "cache": {"engine": cache},
            "queue": {"engine": queue},
            "storage": {"engine": "minio"},
            "mailpit": {"enabled": True},
            "observability": {"tempo": True},
        })
        assert topology.summary.in_cluster["database"] == database
        assert "mail" in topology.components
        assert "tempo" in topology.components
        assert _restricted_violations(topology) == []

    def test_staging_is_restricted_clean(self):
        topology = compose("staging", {**BUCKET, "backend": {"enabled": True}})
        ns_labels = topology.namespace_manifest["metadata"]["labels"]
        assert ns_labels["pod-security.kubernetes.io/enforce"] == "restricted"
        assert _restricted_violations(topology) == []
