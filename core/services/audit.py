import logging

from core.models import AuditEvent

logger = logging.getLogger(__name__)


def log_event(*, business, actor, action: str, obj=None, message: str = "", **extra) -> AuditEvent:
    """Persist an audit event and mirror it to the application log."""
    object_type = obj.__class__.__name__ if obj is not None else ""
    object_id = str(obj.pk) if obj is not None and obj.pk is not None else ""
    event = AuditEvent.objects.create(
        business=business,
        actor=actor if getattr(actor, "pk", None) else None,
        action=action,
        object_type=object_type,
        object_id=object_id,
        message=message[:500],
        extra={key: str(value) for key, value in extra.items()},
    )
    logger.info(
        "%s %s#%s business=%s actor=%s %s",
        action,
        object_type,
        object_id,
        business.pk,
        getattr(actor, "pk", None) or "system",
        message,
    )
    return event
