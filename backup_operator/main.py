"""
Main FastAPI application entry point.

The HTTP server only exposes probes and metrics; the actual work is done by
the CassandraBackup and CassandraRestore controllers started in the lifespan.
"""
import asyncio
import sys
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncGenerator

import sentry_sdk
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from backup_operator.api import health
from backup_operator.config.logging import configure_logging, get_logger
from backup_operator.config.settings import settings
from backup_operator.models.resources import CassandraBackup, CassandraRestore
from backup_operator.reconcilers.backup import BackupReconciler
from backup_operator.reconcilers.restore import RestoreReconciler
from backup_operator.services.events import EventRecorder
from backup_operator.services.icarus_client import IcarusClientFactory
from backup_operator.services.kube_client import KubeClient, create_api_client
from backup_operator.workers.controller import Controller

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Initialize Sentry for error tracking (production)
if settings.sentry_dsn and settings.is_production:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        environment=settings.environment,
        release=settings.app_version,
    )


def build_controller(name: str, plural: str, reconcile, kube: KubeClient) -> Controller:
    return Controller(
        name=name,
        reconcile=reconcile,
        list_keys=partial(kube.list_keys, plural, settings.namespace),
        watch_keys=partial(kube.watch_keys, plural, settings.namespace),
        workers=settings.reconcile_workers,
        reconcile_timeout=settings.reconcile_timeout,
        retry_delay=settings.retry_delay,
        resync_interval=settings.resync_interval,
        backoff_base=settings.backoff_base,
        backoff_max=settings.backoff_max,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Builds the Kubernetes and Icarus clients, starts one controller per
    custom resource kind and tears everything down on shutdown.
    """
    logger.info(
        "application_starting",
        version=settings.app_version,
        environment=settings.environment,
        namespace=settings.namespace,
    )

    api_client = await create_api_client(settings.kubeconfig_path)
    kube = KubeClient(api_client, settings.api_group, settings.api_version)
    events = EventRecorder(api_client, f"{settings.api_group}/{settings.api_version}")
    icarus = IcarusClientFactory(port=settings.icarus_port, timeout=settings.icarus_timeout)

    backups = BackupReconciler(kube, icarus, events, settings.retry_delay)
    restores = RestoreReconciler(kube, icarus, events, settings.retry_delay)
    controllers = [
        build_controller("cassandrabackup", CassandraBackup.PLURAL, backups.reconcile, kube),
        build_controller("cassandrarestore", CassandraRestore.PLURAL, restores.reconcile, kube),
    ]
    app.state.controllers = controllers

    for controller in controllers:
        await controller.start()
    logger.info("application_started", controllers=[c.name for c in controllers])

    try:
        yield
    finally:
        logger.info("application_shutting_down")
        try:
            await asyncio.wait_for(
                asyncio.gather(*(controller.stop() for controller in controllers)),
                timeout=30.0,
            )
            logger.info("controllers_stopped")
        except asyncio.TimeoutError:
            logger.warning("controllers_shutdown_timeout")

        await icarus.aclose()
        await kube.close()
        logger.info("application_shutdown_complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Reconciles CassandraBackup and CassandraRestore resources against Icarus",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Initialize Prometheus metrics
if settings.prometheus_enabled:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

app.include_router(health.router, prefix="/health", tags=["Health"])


if __name__ == "__main__":
    import uvicorn

    try:
        uvicorn.run(
            "backup_operator.main:app",
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    except (KeyboardInterrupt, SystemExit):
        logger.info("application_stopped")
    finally:
        sys.exit(0)
