import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .. import models

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    client_id: str,
    user_id: Optional[str],
    action: models.AuditAction,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[models.AuditLog]:
    """Write an audit row; failures are logged and never propagate."""
    entry = models.AuditLog(
        client_id=client_id,
        user_id=user_id,
        action=action,
        metadata_json=metadata or {},
    )
    try:
        db.add(entry)
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("Audit write failed for %s client=%s", action.value, client_id, exc_info=True)
        return None
    return entry
