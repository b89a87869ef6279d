"""
Inbound webhook handling for the remote processing worker
"""

from .reconciler import WebhookOutcome, WebhookReconciler, WebhookResult

__all__ = ["WebhookOutcome", "WebhookReconciler", "WebhookResult"]
