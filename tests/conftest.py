"""
Pytest configuration and fixtures.

The reconcilers are exercised against in-memory stand-ins for the
Kubernetes API and for Icarus; only the HTTP and Kubernetes client
modules are tested against their libraries directly.
"""
import pytest

from backup_operator.models.resources import CassandraCluster
from backup_operator.reconcilers.backup import BackupReconciler
from backup_operator.reconcilers.restore import RestoreReconciler
from tests.factories import (
    NAMESPACE,
    RETRY_DELAY,
    S3_SECRET,
    SECRET,
    FakeEvents,
    FakeIcarus,
    FakeIcarusFactory,
    FakeKube,
    cluster_resource,
)


@pytest.fixture
def cluster() -> CassandraCluster:
    return cluster_resource()


@pytest.fixture
def kube(cluster) -> FakeKube:
    fake = FakeKube()
    fake.add(cluster)
    fake.secrets[(NAMESPACE, SECRET)] = dict(S3_SECRET)
    return fake


@pytest.fixture
def icarus() -> FakeIcarus:
    return FakeIcarus()


@pytest.fixture
def icarus_factory(icarus) -> FakeIcarusFactory:
    return FakeIcarusFactory(icarus)


@pytest.fixture
def events() -> FakeEvents:
    return FakeEvents()


@pytest.fixture
def backup_reconciler(kube, icarus_factory, events) -> BackupReconciler:
    return BackupReconciler(kube, icarus_factory, events, RETRY_DELAY)


@pytest.fixture
def restore_reconciler(kube, icarus_factory, events) -> RestoreReconciler:
    return RestoreReconciler(kube, icarus_factory, events, RETRY_DELAY)
