"""GitHub App webhook intake.

Deliveries are attributed to an App by signature, reduced to a closed
set of event kinds and published onto the webhook event channel. Cache
mutation happens in the channel's consumer, not here.
"""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status

from gh_updater.api.deps import get_package_service, get_webhook_channel
from gh_updater.core.logging import correlation_id_ctx, delivery_id_ctx
from gh_updater.core.security import WebhookSignatureError, match_app_by_signature
from gh_updater.schemas.webhooks import WebhookResponse, parse_github_event
from gh_updater.services.package_service import PackageService
from gh_updater.services.webhook_handler import WebhookEventChannel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/github", response_model=WebhookResponse)
async def github_webhook(
    request: Request,
    response: Response,
    x_hub_signature_256: Annotated[str | None, Header()] = None,
    x_github_event: Annotated[str | None, Header()] = None,
    x_github_delivery: Annotated[str | None, Header()] = None,
    service: PackageService = Depends(get_package_service),
    channel: WebhookEventChannel = Depends(get_webhook_channel),
) -> WebhookResponse:
    """
    Returns:
        - 200: Event ignored (unsupported event or action)
        - 202: Event accepted and queued for invalidation
        - 400: Missing headers or invalid payload
        - 401: Signature does not match any configured app
    """
    if not x_github_event:
        logger.warning("Missing X-GitHub-Event header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-GitHub-Event header",
        )

    delivery_id = x_github_delivery or ""
    correlation_id_ctx.set(delivery_id or None)
    delivery_id_ctx.set(delivery_id or None)

    body = await request.body()

    try:
        app = match_app_by_signature(body, x_hub_signature_256, await service.list_apps())
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"event_type": x_github_event, "error": str(e)},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Signature verification failed: {e}",
        )

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON payload", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )

    event = parse_github_event(x_github_event, payload, app_id=app.id)
    if event is None:
        logger.debug(
            "Ignoring webhook event",
            extra={"event_type": x_github_event, "action": payload.get("action"), "app": app.id},
        )
        return WebhookResponse(
            status="ignored",
            message=f"Event '{x_github_event}' is not processed",
            correlation_id=delivery_id or None,
        )

    await channel.publish(event)
    logger.info(
        "Webhook event queued",
        extra={"kind": event.kind.value, "app": app.id, "repo": event.repo},
    )
    response.status_code = status.HTTP_202_ACCEPTED
    return WebhookResponse(
        status="accepted",
        message=f"Event '{event.kind.value}' queued",
        correlation_id=delivery_id or None,
    )
