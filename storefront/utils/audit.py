import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.models.log import Log

logger = logging.getLogger(__name__)

def write_log(db: Session, *, user_id, action, resource, status="SUCCESS", ip=None, device_id=None, meta=None):
    entry = Log(user_id=user_id, device_id=device_id, action=action, resource=resource,
                status=status, ip=ip, meta=meta or {})
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError as e:
        # Audit failures never fail the request
        db.rollback()
        logger.exception("Failed to write audit log %s/%s: %s", resource, action, e)
