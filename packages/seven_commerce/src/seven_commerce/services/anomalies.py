"""
Admin anomalies: platform events surfaced to SEVEN T administrators.
"""

import logging
from datetime import timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from sevencore.clock import utcnow
from sevencore.errors import NotFoundError
from seven_commerce.persistence.models import AdminAnomaly

logger = logging.getLogger(__name__)

DEDUP_WINDOW = timedelta(hours=1)


class AnomalyType(str, Enum):
    CREDITS_ZERO = "credits_zero"
    AI_ERROR = "ai_error"
    WHATSAPP_DISCONNECT = "whatsapp_disconnect"
    LOW_STOCK = "low_stock"
    SYSTEM_ERROR = "system_error"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_SEVERITY_RANK = {
    Severity.CRITICAL.value: 1,
    Severity.HIGH.value: 2,
    Severity.MEDIUM.value: 3,
    Severity.LOW.value: 4,
}


class AdminAnomalyService:
    """
    Logs anomalies. An unresolved anomaly of the same type for the same user
    within the last hour is refreshed instead of duplicated.
    """

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        type: str,
        severity: str,
        title: str,
        message: str | None = None,
        user_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AdminAnomaly:
        now = utcnow()
        query = self.db.query(AdminAnomaly).filter(
            AdminAnomaly.type == type,
            AdminAnomaly.is_resolved == False,  # noqa: E712
            AdminAnomaly.created_at >= now - DEDUP_WINDOW,
        )
        if user_id is None:
            query = query.filter(AdminAnomaly.user_id.is_(None))
        else:
            query = query.filter(AdminAnomaly.user_id == user_id)

        existing = query.first()
        if existing:
            existing.message = message
            existing.metadata_json = metadata
            existing.created_at = now
            self.db.flush()
            return existing

        anomaly = AdminAnomaly(
            type=type,
            severity=severity,
            title=title,
            message=message,
            user_id=user_id,
            metadata_json=metadata,
        )
        self.db.add(anomaly)
        self.db.flush()
        logger.warning(f"Admin anomaly: {type} - {title}", extra={"user_id": str(user_id) if user_id else None})
        return anomaly

    def log_credits_zero(self, user_id: UUID, user_name: str | None) -> AdminAnomaly:
        name = user_name or "Utilisateur"
        return self.log(
            AnomalyType.CREDITS_ZERO.value,
            Severity.MEDIUM.value,
            "Crédits épuisés",
            f"{name} n'a plus de crédits",
            user_id=user_id,
            metadata={"user_name": name},
        )

    def log_ai_error(self, user_id: UUID, error_message: str, model: str | None) -> AdminAnomaly:
        return self.log(
            AnomalyType.AI_ERROR.value,
            Severity.HIGH.value,
            "Erreur service IA",
            f"Échec de génération IA: {error_message[:100]}",
            user_id=user_id,
            metadata={"model": model},
        )

    def list_unresolved(self, severity: str | None = None, limit: int = 100) -> list[AdminAnomaly]:
        """Unresolved anomalies, most severe first."""
        query = self.db.query(AdminAnomaly).filter(AdminAnomaly.is_resolved == False)  # noqa: E712
        if severity:
            query = query.filter(AdminAnomaly.severity == severity)
        anomalies = query.order_by(AdminAnomaly.created_at.desc()).limit(limit).all()
        return sorted(anomalies, key=lambda a: _SEVERITY_RANK.get(a.severity, 5))

    def resolve(self, anomaly_id: UUID) -> AdminAnomaly:
        anomaly = self.db.query(AdminAnomaly).filter(AdminAnomaly.id == anomaly_id).first()
        if not anomaly:
            raise NotFoundError("Anomalie non trouvée")
        anomaly.is_resolved = True
        anomaly.resolved_at = utcnow()
        self.db.commit()
        return anomaly
