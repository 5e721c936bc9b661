"""
Pytest configuration and fixtures for riskflow tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from pyspark.sql import SparkSession
from testcontainers.postgres import PostgresContainer

from riskflow.core.models import RawRecord, ReferenceValue
from riskflow.core.schema import SchemaBuilder, SchemaRegistry
from riskflow.features import (
    FeatureSetRegistry,
    ReferenceSnapshot,
    StaticReferenceSource,
    default_feature_set,
)
from riskflow.pipeline import BatchRequest, PipelineOrchestrator, RetryPolicy
from riskflow.scoring import LogisticScorecardModel, ModelRegistry, Scorer
from riskflow.store import InMemoryRejectionSink, InMemoryResultStore
from riskflow.warehouse.connection import DatabaseConnectionPool
from riskflow.warehouse.quarantine import PostgresRejectionSink
from riskflow.warehouse.result_store import PostgresResultStore

AS_OF = datetime(2024, 3, 31, tzinfo=timezone.utc)

TEST_MODEL_VERSION = "scorecard-test"


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers or Spark"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that run the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# SPARK FIXTURES
# =======================

@pytest.fixture(scope="session")
def spark_session() -> Generator[SparkSession, None, None]:
    """
    Create a Spark session for testing with local mode

    Yields:
        SparkSession configured for local testing
    """
    spark = (
        SparkSession.builder
        .appName("riskflow-test")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.sql.session.timeZone", "UTC")
        .config("spark.driver.memory", "1g")
        .config("spark.ui.enabled", "false")
        .config("spark.sql.warehouse.dir", "/tmp/spark-warehouse")
        .getOrCreate()
    )
    spark.sparkContext.setLogLevel("WARN")

    yield spark

    spark.stop()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_riskflow",
        password="test_password",
        dbname="test_riskflow",
    ) as postgres:
        postgres.get_connection_url()
        yield postgres


@pytest.fixture(scope="function")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Provide an open connection pool for a single test

    Args:
        postgres_container: PostgreSQL container fixture

    Yields:
        DatabaseConnectionPool connected to the test database
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_riskflow",
        user="test_riskflow",
        password="test_password",
    )
    pool.open()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a pool over empty result store and rejection tables

    Args:
        db_pool: Connection pool fixture

    Returns:
        DatabaseConnectionPool with all riskflow tables created and truncated
    """
    PostgresResultStore(db_pool).create_tables()
    PostgresRejectionSink(db_pool).create_tables()

    db_pool.execute_command(
        "TRUNCATE TABLE batch_event, risk_rejection, risk_score, risk_lineage CASCADE"
    )

    return db_pool


@pytest.fixture(scope="session")
def test_env_vars():
    """
    Load config/test.env into the environment
    """
    from dotenv import load_dotenv

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)


# =======================
# DOMAIN FIXTURES
# =======================

def _loan_fields() -> dict:
    return {
        "principal_balance": "185000.00",
        "credit_score": "720",
        "ltv": "0.75",
        "geography": "CA-06037",
        "loan_status": "current",
        "days_past_due": "0",
        "effective_date": "2021-06-01",
        "termination_date": "2051-06-01",
    }


@pytest.fixture
def make_record():
    """
    Factory for loan RawRecords.

    Keyword arguments override fields; ``drop`` removes fields entirely.
    """
    def _make(
        identifier: str = "L1",
        timestamp: datetime = AS_OF,
        source: str = "test_tape",
        drop: tuple[str, ...] = (),
        **overrides,
    ) -> RawRecord:
        fields = _loan_fields()
        fields.update(overrides)
        for name in drop:
            fields.pop(name, None)
        return RawRecord(identifier=identifier, timestamp=timestamp, fields=fields, source=source)

    return _make


@pytest.fixture
def loan_schema_fields():
    """Field definitions of the loan tape schema"""
    return (
        SchemaBuilder()
        .add_required("principal_balance", "double", min=0)
        .add_required("credit_score", "integer", min=300, max=850)
        .add_required("ltv", "double", min=0, max=2.5)
        .add_required("geography", "string", pattern=r"^[A-Z]{2}-\d{5}$")
        .add_field("loan_status", "string", allowed=["current", "delinquent", "default", "paid_off"])
        .add_field("days_past_due", "integer", min=0)
        .add_required("effective_date", "date", not_after_timestamp=True)
        .add_field("termination_date", "date", on_or_after="effective_date")
        .build()
    )


@pytest.fixture
def schema_registry(loan_schema_fields) -> SchemaRegistry:
    registry = SchemaRegistry()
    registry.publish(loan_schema_fields, "Loan servicing tape")
    return registry


@pytest.fixture
def loan_schema(schema_registry):
    return schema_registry.latest()


@pytest.fixture
def feature_set():
    return default_feature_set()


@pytest.fixture
def reference_values() -> list[ReferenceValue]:
    """
    Reference data for two geographies, including one future-dated value
    (2024-06-01) that must never be joined for an as-of of 2024-03-31.
    """
    return [
        ReferenceValue(
            geography="CA-06037",
            effective_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            values={"property_value": 250000.0, "unemployment_rate": 4.8},
        ),
        ReferenceValue(
            geography="CA-06037",
            effective_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
            values={"property_value": 260000.0},
        ),
        ReferenceValue(
            geography="CA-06037",
            effective_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
            values={"property_value": 400000.0, "unemployment_rate": 9.9},
        ),
        ReferenceValue(
            geography="TX-48201",
            effective_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
            values={"property_value": 180000.0, "unemployment_rate": 4.1},
        ),
    ]


@pytest.fixture
def reference_snapshot(reference_values) -> ReferenceSnapshot:
    return ReferenceSnapshot(reference_values, snapshot_id="ref-2024-03")


@pytest.fixture
def scorecard() -> LogisticScorecardModel:
    """Scorecard where a 0.75 LTV loan without delinquencies scores low"""
    return LogisticScorecardModel(
        version=TEST_MODEL_VERSION,
        intercept=-4.0,
        coefficients={"loan_to_value": 1.0, "delinquency_count_90d": 1.5},
    )


@pytest.fixture
def model_registry(scorecard) -> ModelRegistry:
    return ModelRegistry([scorecard])


@pytest.fixture
def scorer(model_registry) -> Generator[Scorer, None, None]:
    with Scorer(model_registry, timeout_seconds=2.0) as s:
        yield s


@pytest.fixture
def make_request():
    """Factory for BatchRequests against the test versions"""
    def _make(records, **overrides) -> BatchRequest:
        params = {
            "records": records,
            "schema_version": 1,
            "feature_set_version": "loan-risk-v1",
            "model_version": TEST_MODEL_VERSION,
        }
        params.update(overrides)
        return BatchRequest(**params)

    return _make


@pytest.fixture
def make_orchestrator(schema_registry, feature_set, reference_snapshot, scorer):
    """
    Factory for orchestrators wired with in-memory storage.

    Keyword arguments replace constructor arguments.
    """
    def _make(**overrides) -> PipelineOrchestrator:
        params = {
            "schemas": schema_registry,
            "feature_sets": FeatureSetRegistry([feature_set]),
            "scorer": scorer,
            "reference_source": StaticReferenceSource(reference_snapshot),
            "store": InMemoryResultStore(),
            "rejection_sink": InMemoryRejectionSink(),
            "retry_policy": RetryPolicy(max_attempts=3, backoff_seconds=0.01, timeout_seconds=2.0),
            "claim_timeout_seconds": 2.0,
            "sleep": lambda seconds: None,
        }
        params.update(overrides)
        return PipelineOrchestrator(**params)

    return _make
