"""
WhatsApp Webhook Service

FastAPI app that receives webhooks from the Evolution API (or the stub
provider in development).

Responsibilities:
- Validate the API key
- Resolve the tool from the instance name
- Parse the payload
- Publish messages and connection changes to Redis Streams
- Return 200 quickly
"""

import json
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request

from sevencore.db import get_db
from sevencore.logging import setup_logging
from sevencore.redis import get_redis_client
from sevencore.settings import get_settings

from seven_whatsapp.contracts.payloads import ConnectionUpdatePayload, InboundMessagePayload
from seven_whatsapp.persistence.models import Tool
from seven_whatsapp.persistence.repo import WhatsAppRepository
from seven_whatsapp.providers.evolution.webhook import (
    is_connection_webhook,
    parse_connection_state,
    validate_api_key,
)
from seven_whatsapp.routing.tool_resolver import ToolResolver
from seven_whatsapp.streams.groups import ensure_whatsapp_streams
from seven_whatsapp.streams.producer import WhatsAppStreamProducer

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SEVEN T WhatsApp Webhook",
    description="Receives WhatsApp webhooks and publishes to Redis Streams",
    version="1.0.0",
)


@app.on_event("startup")
async def startup():
    """Ensure Redis streams exist on startup."""
    try:
        ensure_whatsapp_streams(get_redis_client())
        logger.info("WhatsApp webhook service started")
    except Exception as e:
        logger.error(f"Failed to initialize streams: {e}")
        raise


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "whatsapp-webhook"}


def publish_connection_update(producer: WhatsAppStreamProducer, tool: Tool, payload: dict[str, Any]) -> dict[str, Any]:
    state = parse_connection_state(payload)
    if not state:
        return {"status": "ignored", "reason": "no_state"}

    producer.publish_connection_update(
        tenant_id=tool.user_id,
        payload=ConnectionUpdatePayload(tool_id=tool.id, instance_name=tool.instance_name, state=state),
    )
    logger.info(f"Published connection update: {state}", extra={"instance_name": tool.instance_name})
    return {"status": "accepted", "event": "connection.update", "state": state}


@app.post("/webhook")
async def receive_webhook(request: Request):
    """
    Receive a webhook from the Evolution API.

    Flow:
    1. Validate api key (when EVOLUTION_API_KEY is set)
    2. Resolve the tool by instance name
    3. Publish connection changes, or parse and publish messages
    4. Flag outbound messages reported as failed
    5. Return 200 immediately
    """
    body = await request.body()
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    expected_key = get_settings().EVOLUTION_API_KEY
    if expected_key and not validate_api_key(dict(request.headers), expected_key):
        logger.warning("Invalid Evolution API key")
        raise HTTPException(status_code=403, detail="Invalid API key")

    db = next(get_db())
    try:
        resolver = ToolResolver(db)
        tool = resolver.resolve_from_webhook_payload(payload)
        if not tool:
            return {"status": "ignored", "reason": "no_tool"}

        producer = WhatsAppStreamProducer(get_redis_client())

        if is_connection_webhook(payload):
            return publish_connection_update(producer, tool, payload)

        provider = resolver.build_provider(tool)
        try:
            messages, statuses = provider.parse_webhook(payload)
        finally:
            await provider.close()

        published = 0
        for message in messages:
            if message.is_group or message.is_broadcast:
                continue

            producer.publish_inbound(
                tenant_id=tool.user_id,
                payload=InboundMessagePayload.from_inbound_message(tool.id, message),
                correlation_id=message.message_id,
            )
            published += 1

            logger.info(
                "Published inbound message",
                extra={
                    "message_id": message.message_id,
                    "from": message.from_phone,
                    "type": message.message_type.value,
                },
            )

        if WhatsAppRepository(db).apply_delivery_statuses(statuses):
            db.commit()

        return {
            "status": "accepted",
            "messages": published,
            "statuses": len(statuses),
        }

    except Exception as e:
        db.rollback()
        logger.error(f"Error processing webhook: {e}", exc_info=True)
        # Still return 200 so the provider does not retry forever
        return {"status": "error", "message": str(e)}

    finally:
        db.close()


def main():
    """Entry point."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8090)


if __name__ == "__main__":
    main()
