"""Temporal worker service for compliance background jobs.

This worker:
- Discovers and registers all workflows and activities
- Registers the cron schedules that do not exist yet
- Runs one worker per task queue with configured concurrency limits
- Serves a health check endpoint for the hosting platform
"""

import asyncio
import os
from typing import Dict, List

import uvicorn
from fastapi import FastAPI
from temporalio.client import Client
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from compliance_jobs.core.config import settings
from compliance_jobs.temporal.core.activity_registry import ActivityRegistry
from compliance_jobs.temporal.core.constants import DEFAULT_TASK_QUEUE
from compliance_jobs.temporal.core.discovery import discover_all
from compliance_jobs.temporal.core.workflow_registry import WorkflowRegistry
from compliance_jobs.temporal.schedules import ensure_schedules
from compliance_jobs.utils.logging import configure_root_logging, get_logger

logger = get_logger(__name__)

app = FastAPI(title="Compliance Jobs Worker Health Check")


@app.get("/health")
async def health():
    return {"status": "ok", "service": "temporal-worker"}


@app.get("/")
async def root():
    return {"message": "Temporal Worker is running", "health": "/health"}


async def run_health_check_server():
    port = int(os.getenv("PORT", 8001))
    logger.info(f"Starting health check server on port {port}")
    config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


async def connect_with_retries(max_retries: int = 5, retry_delay: float = 5) -> Client:
    """Connect to Temporal, retrying while the server comes up."""
    for attempt in range(max_retries):
        try:
            logger.info(
                f"Connecting to Temporal server at {settings.temporal.target} (Attempt {attempt + 1}/{max_retries})"
            )
            return await Client.connect(settings.temporal.target, namespace=settings.temporal.namespace)
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to Temporal server after {max_retries} attempts: {e}")
                raise


def group_workflows_by_queue() -> Dict[str, List[type]]:
    queues: Dict[str, List[type]] = {}
    for wf_name, metadata in WorkflowRegistry.get_all_workflows().items():
        queue = metadata.task_queue or DEFAULT_TASK_QUEUE
        queues.setdefault(queue, []).append(metadata.workflow_class)
        logger.debug(f"Workflow '{wf_name}' assigned to queue '{queue}'")
    return queues


def build_workers(client: Client) -> List[Worker]:
    all_activities = ActivityRegistry.get_all_activities()
    workers = []
    for queue_name, workflows in group_workflows_by_queue().items():
        logger.debug(f"Creating worker for queue: {queue_name} (Workflows: {[w.__name__ for w in workflows]})")
        # Every queue gets every activity; workflows address activities by name
        workers.append(
            Worker(
                client,
                task_queue=queue_name,
                workflows=workflows,
                activities=list(all_activities.values()),
                max_concurrent_activities=settings.temporal.max_concurrent_activities,
                max_concurrent_workflow_tasks=settings.temporal.max_concurrent_workflow_tasks,
                workflow_runner=SandboxedWorkflowRunner(
                    restrictions=SandboxRestrictions.default.with_passthrough_all_modules()
                ),
            )
        )
    return workers


async def run_workers():
    discover_all()
    client = await connect_with_retries()
    logger.info("Successfully connected to Temporal server")

    created = await ensure_schedules(client)
    if created:
        logger.info(f"Registered schedules: {created}")

    workers = build_workers(client)
    logger.info("=" * 60)
    logger.info("Temporal Workers Initialized Successfully")
    logger.info(f"Connected to: {settings.temporal.target}")
    logger.info(f"Queues: {[w.task_queue for w in workers]}")
    logger.info(
        f"Registered {len(WorkflowRegistry.get_all_workflows())} workflows and "
        f"{len(ActivityRegistry.get_all_activities())} activities"
    )
    logger.info("=" * 60)

    await asyncio.gather(*(worker.run() for worker in workers))


async def main():
    """Start the health check server and the Temporal workers."""
    await asyncio.gather(run_health_check_server(), run_workers())


def run():
    configure_root_logging(settings.log_level)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("\nWorkers stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    run()
