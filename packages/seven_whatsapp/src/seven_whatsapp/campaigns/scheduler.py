"""
Campaign Scheduler Job

Finds scheduled campaigns that are due and sends them.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from sevencore.clock import utcnow
from seven_whatsapp.campaigns.sender import CampaignSender
from seven_whatsapp.persistence.models import Campaign, CampaignStatus
from seven_whatsapp.persistence.repo import WhatsAppRepository

logger = logging.getLogger(__name__)


def _mark_failed(db: Session, campaign_id) -> None:
    db.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id)
        .values(status=CampaignStatus.FAILED.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()


async def run_campaign_scheduler_job(
    db: Session,
    sender: CampaignSender | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """
    Send every scheduled campaign whose `scheduled_at` has passed.

    A campaign that raises is marked failed; the others still run.

    Returns:
        One result dict per campaign
    """
    sender = sender or CampaignSender(db)
    due = [(c.id, c.name) for c in WhatsAppRepository(db).get_due_campaigns(now)]
    if due:
        logger.info(f"Found {len(due)} campaign(s) to process")

    results = []
    for campaign_id, name in due:
        logger.info(f"Starting automatic send for: {name} ({campaign_id})")
        try:
            outcome = await sender.send_campaign(campaign_id)
            results.append({"campaign_id": str(campaign_id), "status": "ok", **outcome})
        except Exception as e:
            logger.error(f"Error processing campaign {campaign_id}: {e}", exc_info=True)
            db.rollback()
            _mark_failed(db, campaign_id)
            results.append({"campaign_id": str(campaign_id), "status": "failed", "error": str(e)})

    return results
