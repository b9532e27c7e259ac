"""
Campaign Sender

Sends a campaign message to each pending recipient through the agent's
WhatsApp, with a random pause between two sends.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from sevencore.clock import utcnow
from sevencore.errors import InvalidStateError, NotFoundError
from sevencore.settings import get_settings
from seven_commerce.contracts.payloads import CampaignFinishedPayload
from seven_commerce.events import DomainEventPublisher, DomainEventType
from seven_whatsapp.persistence.models import (
    Campaign,
    CampaignRecipient,
    CampaignStatus,
    RecipientStatus,
    Tool,
)
from seven_whatsapp.persistence.repo import WhatsAppRepository
from seven_whatsapp.providers.base import ProviderError, WhatsAppProvider
from seven_whatsapp.routing.tool_resolver import ToolResolver

logger = logging.getLogger(__name__)

ALREADY_SENT_MESSAGE = "Campagne déjà envoyée ou en cours d'envoi"
NO_RECIPIENTS_MESSAGE = "Aucun destinataire en attente"


class CampaignNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("Campagne non trouvée", code="campaign_not_found")


class WhatsAppNotConnectedError(InvalidStateError):
    def __init__(self):
        super().__init__("WhatsApp non connecté pour cet agent", code="whatsapp_not_connected")


def render_message(template: str, recipient: CampaignRecipient) -> str:
    """Fill {{nom}}/{{name}} and {{telephone}}/{{phone}} for one recipient."""
    text = template
    if recipient.contact_name:
        text = text.replace("{{nom}}", recipient.contact_name).replace("{{name}}", recipient.contact_name)
    number = recipient.contact_number or ""
    return text.replace("{{telephone}}", number).replace("{{phone}}", number)


class CampaignSender:
    def __init__(
        self,
        db: Session,
        provider_factory: Callable[[Tool], WhatsAppProvider] | None = None,
        publisher: DomainEventPublisher | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        min_delay: float | None = None,
        max_delay: float | None = None,
    ):
        settings = get_settings()
        self.db = db
        self.repo = WhatsAppRepository(db)
        self.provider_factory = provider_factory or ToolResolver(db).build_provider
        self.publisher = publisher or DomainEventPublisher()
        self.sleep = sleep
        self.min_delay = settings.CAMPAIGN_MIN_DELAY if min_delay is None else min_delay
        self.max_delay = settings.CAMPAIGN_MAX_DELAY if max_delay is None else max_delay

    def _delay(self) -> float:
        return random.uniform(self.min_delay, self.max_delay)

    async def send_campaign(self, campaign_id: UUID) -> dict[str, Any]:
        """
        Send a campaign to its pending recipients.

        Can be called manually (CLI) or by the scheduler job.

        Raises:
            CampaignNotFoundError: Unknown campaign
            WhatsAppNotConnectedError: The campaign agent has no live WhatsApp
        """
        campaign = self.repo.get_campaign(campaign_id)
        if not campaign:
            raise CampaignNotFoundError()

        agent = campaign.agent
        if not agent or not agent.whatsapp_connected or not agent.tool:
            raise WhatsAppNotConnectedError()

        if campaign.status in (CampaignStatus.SENT.value, CampaignStatus.SENDING.value):
            return {"already_sent": True, "message": ALREADY_SENT_MESSAGE}

        recipients = self.repo.get_pending_recipients(campaign.id)
        if not recipients:
            campaign.status = CampaignStatus.SENT.value
            campaign.sent_at = utcnow()
            self.db.commit()
            return {"count": 0, "message": NO_RECIPIENTS_MESSAGE}

        # Guards against two runners sending the same campaign
        if not self.repo.claim_campaign_for_sending(campaign.id):
            logger.info(f"Campaign {campaign.id} already claimed by another runner")
            return {"already_sent": True, "message": ALREADY_SENT_MESSAGE}

        logger.info(
            f"Sending campaign {campaign.name} to {len(recipients)} recipients",
            extra={"campaign_id": str(campaign.id), "user_id": str(campaign.user_id)},
        )

        provider = self.provider_factory(agent.tool)
        sent = 0
        failed = 0
        try:
            for recipient in recipients:
                text = render_message(campaign.message, recipient)
                error = None
                try:
                    response = await provider.send_text(recipient.contact_number, text)
                    if not response.success:
                        error = response.error_message or response.error_code or "Envoi échoué"
                except ProviderError as e:
                    error = e.message

                if error:
                    logger.error(
                        f"Failed to send campaign message to {recipient.contact_number}: {error}",
                        extra={"campaign_id": str(campaign.id)},
                    )
                    recipient.status = RecipientStatus.FAILED.value
                    recipient.error_message = error
                    self.db.commit()
                    failed += 1
                    continue

                recipient.status = RecipientStatus.SENT.value
                recipient.sent_at = utcnow()
                self.db.commit()
                sent += 1
                await self.sleep(self._delay())
        finally:
            await provider.close()

        campaign.status = CampaignStatus.SENT.value
        campaign.sent_at = utcnow()
        campaign.sent_count = sent
        campaign.failed_count = failed
        self.db.commit()

        logger.info(f"Campaign {campaign.name} finished: {sent} sent, {failed} failed")
        self.publisher.publish(
            DomainEventType.CAMPAIGN_FINISHED,
            campaign.user_id,
            CampaignFinishedPayload(campaign_id=campaign.id, name=campaign.name, sent=sent, failed=failed),
        )
        return {"sent": sent, "failed": failed}
