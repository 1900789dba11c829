"""Per-user notifications tied to proposal events.

Expiry is evaluated lazily: reads exclude rows whose ``expires_at`` has
passed, and ``cleanup`` flips them to ``expired`` and later deletes them.
All writes are predicate-guarded updates, so ``cleanup`` can run alongside
itself and alongside reads and creates.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import select, update, delete, func, case, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_workflow.config import settings
from proposal_workflow.core.constants import (
    DEFAULT_NOTIFICATION_PREFERENCE,
    PRIORITY_RANK,
    UNREAD_NOTIFICATION_STATUSES,
    DeliveryChannel,
    NotificationFrequency,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from proposal_workflow.core.exceptions import NotFoundError, ValidationError, translate_db_error
from proposal_workflow.models import (
    Notification,
    NotificationDeliveryLog,
    NotificationPreference,
    User,
)

logger = logging.getLogger(__name__)

ALL_RECIPIENTS = "all"

_PREFERENCE_FIELDS = ("in_app", "email", "sms", "push", "frequency", "quiet_hours_start", "quiet_hours_end", "timezone")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_priority(value: Union[str, NotificationPriority, None]) -> NotificationPriority:
    """Missing or unknown priorities fall back to normal."""
    if value is None:
        return NotificationPriority.NORMAL
    try:
        return NotificationPriority(getattr(value, "value", value))
    except ValueError:
        logger.warning(f"Invalid notification priority '{value}', defaulting to normal")
        return NotificationPriority.NORMAL


def coerce_type(value: Union[str, NotificationType, None]) -> str:
    """Missing or unknown types fall back to system_update."""
    if value is None:
        return NotificationType.SYSTEM_UPDATE.value
    try:
        return NotificationType(getattr(value, "value", value)).value
    except ValueError:
        logger.warning(f"Unknown notification type '{value}', defaulting to system_update")
        return NotificationType.SYSTEM_UPDATE.value


def determine_channels(preference: dict, requested: Optional[Iterable[str]] = None) -> List[str]:
    """Requested channels allowed by the preference, never empty."""
    requested = list(requested or [DeliveryChannel.IN_APP.value])
    channels = [
        channel.value
        for channel in DeliveryChannel
        if channel.value in requested and preference.get(channel.value)
    ]
    return channels or [DeliveryChannel.IN_APP.value]


def _snapshot(proposal: Any) -> Dict[str, Any]:
    return {
        "id": getattr(proposal, "id", None),
        "uuid": getattr(proposal, "uuid", None),
        "event_name": getattr(proposal, "event_name", None) or "Untitled event",
        "contact_person": getattr(proposal, "contact_person", None) or "a submitter",
        "organization_name": getattr(proposal, "organization_name", None) or "an organization",
    }


class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # === Creation ===

    async def create(
        self,
        recipient_id: int,
        title: str,
        message: str,
        notification_type: Union[str, NotificationType, None] = NotificationType.SYSTEM_UPDATE,
        priority: Union[str, NotificationPriority, None] = NotificationPriority.NORMAL,
        sender_id: Optional[int] = None,
        related_proposal_id: Optional[int] = None,
        related_proposal_uuid: Optional[str] = None,
        metadata: Optional[dict] = None,
        tags: Optional[List[str]] = None,
        expires_at: Optional[datetime] = None,
        channels: Optional[Sequence[str]] = None,
    ) -> Notification:
        recipient = await self.db.get(User, recipient_id)
        if not recipient:
            raise NotFoundError("User", str(recipient_id))

        notification_type = coerce_type(notification_type)
        preference = await self.resolve_preference(recipient_id, notification_type)
        chosen = determine_channels(preference, channels)

        now = _utcnow()
        notification = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=coerce_priority(priority),
            status=NotificationStatus.PENDING,
            related_proposal_id=related_proposal_id,
            related_proposal_uuid=related_proposal_uuid,
            meta={**(metadata or {}), "channels": chosen},
            tags=list(tags or []),
            expires_at=expires_at,
            created_at=now,
        )

        try:
            self.db.add(notification)
            await self.db.flush()
            self._deliver(notification, chosen, now)
            await self.db.flush()
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise translate_db_error(exc) from exc

        return notification

    def _deliver(self, notification: Notification, channels: List[str], now: datetime) -> None:
        """In-app delivery is a local status flip; other channels have no transport here."""
        for channel in channels:
            if channel == DeliveryChannel.IN_APP.value:
                notification.status = NotificationStatus.DELIVERED
                notification.delivered_at = now
                self.db.add(NotificationDeliveryLog(
                    notification_id=notification.id,
                    delivery_channel=channel,
                    status="delivered",
                    delivered_at=now,
                ))
            else:
                self.db.add(NotificationDeliveryLog(
                    notification_id=notification.id,
                    delivery_channel=channel,
                    status="skipped",
                    error_message="No transport configured for channel",
                ))

    # === Queries ===

    def _visible(self, user_id: int, now: datetime):
        return and_(
            Notification.recipient_id == user_id,
            Notification.status != NotificationStatus.EXPIRED,
            or_(Notification.expires_at.is_(None), Notification.expires_at > now),
        )

    async def list(
        self,
        user_id: int,
        page: int = 1,
        limit: Optional[int] = None,
        unread_only: bool = False,
        priority: Union[str, NotificationPriority, None] = None,
        status: Union[str, NotificationStatus, None] = None,
        notification_type: Optional[str] = None,
        search: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        now = now or _utcnow()
        limit = limit or settings.NOTIFICATION_DEFAULT_PAGE_SIZE
        page = max(page, 1)

        query = select(Notification).where(self._visible(user_id, now))

        if unread_only:
            query = query.where(Notification.status.in_(UNREAD_NOTIFICATION_STATUSES))
        if priority:
            query = query.where(Notification.priority == self._parse(NotificationPriority, priority, "priority"))
        if status:
            query = query.where(Notification.status == self._parse(NotificationStatus, status, "status"))
        if notification_type:
            query = query.where(Notification.notification_type == notification_type)
        if search and search.strip():
            term = search.strip()
            query = query.where(or_(
                Notification.title.icontains(term, autoescape=True),
                Notification.message.icontains(term, autoescape=True),
            ))

        rank = case(
            *[(Notification.priority == p, weight) for p, weight in PRIORITY_RANK.items()],
            else_=0,
        )
        query = query.order_by(rank.desc(), Notification.created_at.desc(), Notification.id.desc())
        query = query.offset((page - 1) * limit).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def search(
        self,
        user_id: int,
        term: str,
        page: int = 1,
        limit: Optional[int] = None,
        notification_type: Optional[str] = None,
        priority: Union[str, NotificationPriority, None] = None,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """Case-insensitive match on title or message; expired rows never match."""
        if not term or not term.strip():
            raise ValidationError("Search term cannot be empty", field="search")
        return await self.list(
            user_id,
            page=page,
            limit=limit,
            priority=priority,
            notification_type=notification_type,
            search=term,
            now=now,
        )

    @staticmethod
    def _parse(enum_cls, value, field: str):
        try:
            return enum_cls(getattr(value, "value", value))
        except ValueError:
            raise ValidationError(f"Invalid {field}: {value}", field=field)

    async def unread_count(self, user_id: int, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                self._visible(user_id, now),
                Notification.status.in_(UNREAD_NOTIFICATION_STATUSES),
            )
        )
        return result.scalar() or 0

    async def stats(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or _utcnow()

        def _count(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        result = await self.db.execute(
            select(
                func.count(Notification.id),
                _count(Notification.status.in_(UNREAD_NOTIFICATION_STATUSES)),
                _count(Notification.status == NotificationStatus.READ),
                _count(Notification.status == NotificationStatus.ARCHIVED),
                _count(Notification.priority == NotificationPriority.URGENT),
                _count(Notification.priority == NotificationPriority.HIGH),
                _count(Notification.created_at >= now - timedelta(days=1)),
                _count(Notification.created_at >= now - timedelta(days=7)),
                _count(Notification.created_at >= now - timedelta(days=30)),
            ).where(self._visible(user_id, now))
        )
        row = result.one()
        keys = ("total", "unread", "read", "archived", "urgent", "high", "today", "week", "month")
        return {key: int(value or 0) for key, value in zip(keys, row)}

    # === Status changes ===

    async def mark_as_read(
        self,
        user_id: int,
        notification_ids: Optional[List[int]] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Mark the given (or all) unread notifications of ``user_id`` as read."""
        now = now or _utcnow()
        stmt = (
            update(Notification)
            .where(
                self._visible(user_id, now),
                Notification.status.in_(UNREAD_NOTIFICATION_STATUSES),
            )
            .values(status=NotificationStatus.READ, read_at=now)
            .execution_options(synchronize_session=False)
        )
        if notification_ids is not None:
            if not notification_ids:
                return 0
            stmt = stmt.where(Notification.id.in_(notification_ids))

        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0

    async def archive(self, user_id: int, notification_id: int, now: Optional[datetime] = None) -> Notification:
        now = now or _utcnow()
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                self._visible(user_id, now),
                Notification.status.in_([NotificationStatus.DELIVERED, NotificationStatus.READ]),
            )
            .values(
                status=NotificationStatus.ARCHIVED,
                read_at=func.coalesce(Notification.read_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise NotFoundError("Notification", str(notification_id))
        await self.db.commit()

        notification = await self.db.get(Notification, notification_id, populate_existing=True)
        return notification

    async def cleanup(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Expire rows past ``expires_at``, then delete rows expired beyond the retention window."""
        now = now or _utcnow()
        cutoff = now - timedelta(days=settings.NOTIFICATION_RETENTION_DAYS)

        expired = await self.db.execute(
            update(Notification)
            .where(
                Notification.expires_at.is_not(None),
                Notification.expires_at <= now,
                Notification.status != NotificationStatus.EXPIRED,
            )
            .values(status=NotificationStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        deleted = await self.db.execute(
            delete(Notification)
            .where(
                Notification.status == NotificationStatus.EXPIRED,
                Notification.expires_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        counts = {"expired": expired.rowcount or 0, "deleted": deleted.rowcount or 0}
        logger.info(f"Notification cleanup: {counts['expired']} expired, {counts['deleted']} deleted")
        return counts

    # === Preferences ===

    async def get_preferences(self, user_id: int) -> List[NotificationPreference]:
        result = await self.db.execute(
            select(NotificationPreference)
            .where(NotificationPreference.user_id == user_id)
            .order_by(NotificationPreference.notification_type)
        )
        return list(result.scalars().all())

    async def resolve_preference(self, user_id: int, notification_type: str) -> dict:
        result = await self.db.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id,
                NotificationPreference.notification_type == notification_type,
            )
        )
        preference = result.scalar_one_or_none()
        if not preference:
            return dict(DEFAULT_NOTIFICATION_PREFERENCE)
        return {field: getattr(preference, field) for field in _PREFERENCE_FIELDS}

    async def upsert_preferences(self, user_id: int, items: List[dict]) -> List[NotificationPreference]:
        for item in items:
            frequency = item.get("frequency")
            if frequency is not None:
                self._parse(NotificationFrequency, frequency, "frequency")

        try:
            for item in items:
                notification_type = item["notification_type"]
                result = await self.db.execute(
                    select(NotificationPreference).where(
                        NotificationPreference.user_id == user_id,
                        NotificationPreference.notification_type == notification_type,
                    )
                )
                preference = result.scalar_one_or_none()
                if not preference:
                    preference = NotificationPreference(user_id=user_id, notification_type=notification_type)
                    self.db.add(preference)

                for field in _PREFERENCE_FIELDS:
                    value = item.get(field)
                    if value is not None:
                        setattr(preference, field, getattr(value, "value", value))

            await self.db.flush()
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise translate_db_error(exc) from exc

        return await self.get_preferences(user_id)

    # === Fan-out ===

    async def _create_each(self, payloads: List[dict], label: str) -> List[Notification]:
        created = []
        failed = 0
        for payload in payloads:
            try:
                created.append(await self.create(**payload))
            except Exception:
                failed += 1
                logger.exception(f"Failed to create {label} notification for user {payload.get('recipient_id')}")

        # a rollback in between expires the rows created before it
        if failed:
            for notification in created:
                await self.db.refresh(notification)
        return created

    async def on_proposal_event(
        self,
        action: str,
        proposal: Any,
        admin_id: Optional[int] = None,
        student_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> List[Notification]:
        """Notify the reviewer or the submitter about a proposal event.

        ``submitted``/``resubmitted`` go to ``admin_id``; ``approved``,
        ``rejected``, ``revision_requested`` and ``commented`` go to
        ``student_id``. Failures are logged and skipped.
        """
        p = _snapshot(proposal)
        action = "rejected" if action == "denied" else action
        common = {
            "related_proposal_id": p["id"],
            "related_proposal_uuid": p["uuid"],
        }
        payloads = []

        if action in ("submitted", "resubmitted") and admin_id:
            if action == "submitted":
                title = "New Proposal Submitted"
                message = (
                    f'A new proposal "{p["event_name"]}" has been submitted by {p["contact_person"]} '
                    f'from {p["organization_name"]}. Please review it.'
                )
            else:
                title = "Proposal Resubmitted"
                message = (
                    f'The proposal "{p["event_name"]}" from {p["organization_name"]} has been revised '
                    f'and resubmitted. Please review it.'
                )
            payloads.append({
                **common,
                "recipient_id": admin_id,
                "sender_id": student_id,
                "notification_type": NotificationType.PROPOSAL_SUBMITTED,
                "title": title,
                "message": message,
                "priority": NotificationPriority.NORMAL,
                "metadata": {
                    "event_name": p["event_name"],
                    "submitter_name": p["contact_person"],
                    "organization_name": p["organization_name"],
                    "action": action,
                },
                "tags": ["proposal", action],
            })

        elif action in ("approved", "rejected", "revision_requested", "commented") and student_id:
            if action == "approved":
                notification_type = NotificationType.PROPOSAL_APPROVED
                title = "Proposal Approved"
                message = f'Your proposal "{p["event_name"]}" has been approved. Congratulations!'
                priority = NotificationPriority.NORMAL
            elif action == "rejected":
                notification_type = NotificationType.PROPOSAL_REJECTED
                title = "Proposal Not Approved"
                message = (
                    f'Your proposal "{p["event_name"]}" was not approved. '
                    f'Please review the feedback and resubmit.'
                )
                priority = NotificationPriority.HIGH
            elif action == "revision_requested":
                notification_type = NotificationType.PROPOSAL_REVISION_REQUESTED
                title = "Revision Requested"
                message = (
                    f'Your proposal "{p["event_name"]}" needs changes. '
                    f'Please review the feedback, update it and resubmit.'
                )
                priority = NotificationPriority.HIGH
            else:
                notification_type = NotificationType.PROPOSAL_COMMENT
                title = "New admin comment on your proposal"
                message = f'An administrator commented on "{p["event_name"]}"'
                priority = NotificationPriority.NORMAL

            if comment and action != "approved":
                message = f"{message} Feedback: {comment}"

            payloads.append({
                **common,
                "recipient_id": student_id,
                "sender_id": admin_id,
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "priority": priority,
                "metadata": {
                    "event_name": p["event_name"],
                    "action": action,
                    "admin_comment": comment,
                },
                "tags": ["proposal", action],
            })

        else:
            logger.warning(
                f"No notification for proposal {p['uuid']} action '{action}' "
                f"(admin_id={admin_id}, student_id={student_id})"
            )

        created = await self._create_each(payloads, f"proposal {action}")
        logger.info(f"Proposal {p['uuid']} {action}: {len(created)}/{len(payloads)} notifications created")
        return created

    async def broadcast(
        self,
        recipients: Union[str, int, List[int]],
        title: str,
        message: str,
        priority: Union[str, NotificationPriority, None] = NotificationPriority.NORMAL,
        expires_at: Optional[datetime] = None,
        notification_type: Union[str, NotificationType] = NotificationType.SYSTEM_UPDATE,
        sender_id: Optional[int] = None,
    ) -> List[Notification]:
        """One notification per recipient; a failed recipient does not stop the batch."""
        if recipients == ALL_RECIPIENTS:
            result = await self.db.execute(
                select(User.id).where(User.is_approved.is_(True)).order_by(User.id)
            )
            recipient_ids = list(result.scalars().all())
        elif isinstance(recipients, int):
            recipient_ids = [recipients]
        else:
            recipient_ids = list(recipients)

        payloads = [
            {
                "recipient_id": recipient_id,
                "sender_id": sender_id,
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "priority": priority,
                "expires_at": expires_at,
            }
            for recipient_id in recipient_ids
        ]
        created = await self._create_each(payloads, "broadcast")
        logger.info(f"Broadcast '{title}': {len(created)}/{len(recipient_ids)} recipients notified")
        return created
