from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from app.api.deps import get_reconciler
from app.schemas.job import WebhookResponse
from app.services.webhooks.reconciler import WebhookReconciler

router = APIRouter()


@router.post("/webhook/processing-complete", response_model=WebhookResponse)
async def processing_complete(
    request: Request,
    x_signature: Optional[str] = Header(default=None),
    reconciler: WebhookReconciler = Depends(get_reconciler)
):
    """
    Receive job outcomes from the remote processing service.

    The optional X-Signature header carries sha256=<hex HMAC of the raw body>.
    """
    raw_body = await request.body()
    result = reconciler.handle(x_signature, raw_body)
    return WebhookResponse(**result.to_dict())
