"""
WhatsApp Worker Service

Consumes inbound WhatsApp events from Redis Streams and runs the inbound
pipeline (conversation, detection, reply).

Features:
- XREADGROUP consumer for horizontal scaling
- PEL reclaim for stuck messages
- Dead letter queue after repeated failures
- Strong idempotency (provider message ids)
- Graceful shutdown
"""

import asyncio
import logging
import os
import signal
import socket
import time

from sevencore.db import get_db
from sevencore.envelope import EventEnvelope
from sevencore.logging import setup_logging
from sevencore.redis import get_redis_client

from seven_whatsapp.service.inbound_handler import InboundHandler
from seven_whatsapp.streams.consumer import WhatsAppStreamConsumer
from seven_whatsapp.streams.groups import INBOUND_STREAM, ensure_whatsapp_streams
from seven_whatsapp.streams.producer import WhatsAppStreamProducer

setup_logging()
logger = logging.getLogger(__name__)

# Configuration
CONSUMER_NAME = os.getenv(
    "WHATSAPP_CONSUMER_NAME",
    f"whatsapp-worker-{socket.gethostname()}-{os.getpid()}",
)
BATCH_SIZE = int(os.getenv("WHATSAPP_BATCH_SIZE", "10"))
BLOCK_MS = int(os.getenv("WHATSAPP_BLOCK_MS", "5000"))
RECLAIM_INTERVAL_SEC = int(os.getenv("WHATSAPP_RECLAIM_INTERVAL", "60"))
RECLAIM_IDLE_MS = int(os.getenv("WHATSAPP_RECLAIM_IDLE_MS", "60000"))
MAX_DELIVERIES = int(os.getenv("WHATSAPP_MAX_DELIVERIES", "5"))

# Graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested = True


signal.signal(signal.SIGTERM, signal_handler)
signal.signal(signal.SIGINT, signal_handler)


async def handle(
    consumer: WhatsAppStreamConsumer,
    producer: WhatsAppStreamProducer,
    msg_id: str,
    envelope: EventEnvelope,
    deliveries: int = 1,
) -> bool:
    """
    Run one envelope through the inbound handler.

    Acks on success. A failed entry stays pending for the reclaim pass until
    it reaches MAX_DELIVERIES, then goes to the DLQ.

    Returns:
        True if the entry was acked
    """
    db = next(get_db())
    try:
        result = await InboundHandler(db).handle_envelope(envelope)
    except Exception as e:
        logger.error(f"Failed to process inbound message {msg_id}: {e}", exc_info=True)
        result = {"status": "failed", "error": str(e)}
    finally:
        db.close()

    if result.get("status") != "failed":
        consumer.ack(INBOUND_STREAM, msg_id)
        logger.debug("Processed inbound message", extra={"msg_id": msg_id, "result": result})
        return True

    if deliveries >= MAX_DELIVERIES:
        producer.publish_to_dlq(envelope, result.get("error", "unknown error"), deliveries)
        consumer.ack(INBOUND_STREAM, msg_id)
        logger.warning(
            f"Message {msg_id} sent to DLQ after {deliveries} deliveries",
            extra={"event_id": str(envelope.event_id)},
        )
        return True

    # Not acked: reclaimed later
    return False


async def process_inbound_messages(consumer: WhatsAppStreamConsumer, producer: WhatsAppStreamProducer) -> int:
    """Process new messages from the inbound stream."""
    messages = consumer.read_messages(INBOUND_STREAM, count=BATCH_SIZE, block_ms=BLOCK_MS)

    processed = 0
    for msg_id, envelope in messages:
        if await handle(consumer, producer, msg_id, envelope):
            processed += 1
    return processed


async def reclaim_pending(consumer: WhatsAppStreamConsumer, producer: WhatsAppStreamProducer) -> int:
    """Retry entries another consumer (or a failed attempt) left pending."""
    reclaimed = consumer.reclaim_pending(INBOUND_STREAM, min_idle_ms=RECLAIM_IDLE_MS, count=100)
    if reclaimed:
        logger.info(f"Reclaimed {len(reclaimed)} inbound messages")

    processed = 0
    for msg_id, envelope, deliveries in reclaimed:
        if await handle(consumer, producer, msg_id, envelope, deliveries):
            processed += 1
    return processed


async def main_loop():
    """Main worker loop."""
    redis_client = get_redis_client()
    ensure_whatsapp_streams(redis_client)

    consumer = WhatsAppStreamConsumer(redis_client, CONSUMER_NAME)
    producer = WhatsAppStreamProducer(redis_client)

    logger.info(f"Starting WhatsApp worker (consumer={CONSUMER_NAME}, batch={BATCH_SIZE})")

    last_reclaim = time.monotonic()
    while not shutdown_requested:
        try:
            inbound_count = await process_inbound_messages(consumer, producer)
            if inbound_count > 0:
                logger.info(f"Processed {inbound_count} inbound messages")

            if time.monotonic() - last_reclaim >= RECLAIM_INTERVAL_SEC:
                last_reclaim = time.monotonic()
                await reclaim_pending(consumer, producer)

            if inbound_count == 0:
                await asyncio.sleep(0.1)

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            await asyncio.sleep(1)

    logger.info("WhatsApp worker shutting down gracefully")


def main():
    """Entry point."""
    logger.info("WhatsApp worker starting...")
    asyncio.run(main_loop())


if __name__ == "__main__":
    main()
