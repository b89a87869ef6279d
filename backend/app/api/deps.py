from fastapi import Depends, Request

from app.services.container import ServiceContainer
from app.services.jobs.orchestrator import JobOrchestrator
from app.services.webhooks.reconciler import WebhookReconciler


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_orchestrator(container: ServiceContainer = Depends(get_container)) -> JobOrchestrator:
    return container.orchestrator


def get_reconciler(container: ServiceContainer = Depends(get_container)) -> WebhookReconciler:
    return container.reconciler
