"""
Campaigns

Bulk WhatsApp sends and the job that runs scheduled campaigns.
"""

from seven_whatsapp.campaigns.scheduler import run_campaign_scheduler_job
from seven_whatsapp.campaigns.sender import (
    CampaignNotFoundError,
    CampaignSender,
    WhatsAppNotConnectedError,
    render_message,
)

__all__ = [
    "CampaignNotFoundError",
    "CampaignSender",
    "WhatsAppNotConnectedError",
    "render_message",
    "run_campaign_scheduler_job",
]
