"""
Capabilities and their closed engine enumerations.

A capability is an infrastructure role that needs exactly one backend.
Each capability owns a fixed tuple of engine identifiers; nothing
outside that tuple can be selected.
"""

from __future__ import annotations

from enum import StrEnum


class Capability(StrEnum):
    DATABASE = "database"
    CACHE = "cache"
    QUEUE = "queue"
    STORAGE = "storage"
    SEARCH = "search"


class DatabaseEngine(StrEnum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"


class CacheEngine(StrEnum):
    REDIS = "redis"
    MEMCACHED = "memcached"
    VALKEY = "valkey"


class QueueEngine(StrEnum):
    RABBITMQ = "rabbitmq"
    KAFKA = "kafka"
    BEANSTALKD = "beanstalkd"
    REDIS = "redis"
    SQS = "sqs"


class StorageEngine(StrEnum):
    MINIO = "minio"
    S3 = "s3"


class SearchEngine(StrEnum):
    MEILISEARCH = "meilisearch"
    ELASTICSEARCH = "elasticsearch"


ENGINE_CHOICES: dict[Capability, tuple[str, ...]] = {
    Capability.DATABASE: tuple(e.value for e in DatabaseEngine),
    Capability.CACHE: tuple(e.value for e in CacheEngine),
    Capability.QUEUE: tuple(e.value for e in QueueEngine),
    Capability.STORAGE: tuple(e.value for e in StorageEngine),
    Capability.SEARCH: tuple(e.value for e in SearchEngine),
}

# Engines that are always managed outside the cluster (no builder).
EXTERNAL_ENGINES: frozenset[str] = frozenset({"sqs", "s3", "elasticsearch"})

# Engines served by another engine's builder because they speak the same
# wire protocol. Recorded under their own name for labels and outputs.
# Protocol compatibility is an assumption, not verified here.
ENGINE_ALIASES: dict[str, str] = {
    "valkey": "redis",
}

# Well-known protocol ports per engine.
DEFAULT_PORTS: dict[str, int] = {
    "postgresql": 5432,
    "mysql": 3306,
    "mariadb": 3306,
    "redis": 6379,
    "valkey": 6379,
    "memcached": 11211,
    "rabbitmq": 5672,
    "kafka": 9092,
    "beanstalkd": 11300,
    "minio": 9000,
    "meilisearch": 7700,
    "elasticsearch": 9200,
    "s3": 443,
    "sqs": 443,
}

# Service name published for each in-cluster engine.
SERVICE_NAMES: dict[str, str] = {
    "postgresql": "postgres",
    "mysql": "mysql",
    "mariadb": "mariadb",
    "redis": "redis",
    "valkey": "valkey",
    "memcached": "memcached",
    "rabbitmq": "rabbitmq",
    "kafka": "kafka",
    "beanstalkd": "beanstalkd",
    "minio": "minio",
    "meilisearch": "meilisearch",
}
