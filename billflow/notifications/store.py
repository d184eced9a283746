# billflow/notifications/store.py
"""Read/write access to the household data the reminder worker depends on.

Tasks, bills and users belong to the main application; this module only
reads them, flips a task's paid status, and keeps the notification audit
rows that the delivery handler writes.
"""
from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime,
    Engine,
    ForeignKey,
    Numeric,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)


class TaskStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    READ = "READ"


class NotificationType(str, Enum):
    DUE_SOON = "DUE_SOON"
    DUE_TODAY = "DUE_TODAY"
    BILL_CREATED = "BILL_CREATED"


class BillType(str, Enum):
    ELECTRIC = "ELECTRIC"
    WATER = "WATER"
    INTERNET = "INTERNET"
    CAR = "CAR"
    HOME = "HOME"
    OTHER = "OTHER"


@dataclass(frozen=True)
class User:
    id: str
    name: str
    line_user_id: Optional[str]


@dataclass(frozen=True)
class Bill:
    id: str
    vendor: str
    amount: Decimal
    bill_type: str
    due_date: datetime


@dataclass(frozen=True)
class Task:
    id: str
    bill_id: str
    user_id: str
    status: TaskStatus
    due_date: datetime
    paid_at: Optional[datetime]
    bill: Bill
    user: User


@dataclass(frozen=True)
class Notification:
    id: str
    user_id: str
    task_id: Optional[str]
    type: NotificationType
    status: NotificationStatus
    message: str
    metadata: Dict[str, Any]
    created_at: datetime
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None


class BillStore(ABC):
    @abstractmethod
    def get_task(self, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    def list_unpaid_tasks(self, limit: int = 50) -> List[Task]: ...

    @abstractmethod
    def set_task_status(self, task_id: str, status: TaskStatus) -> Optional[Task]: ...

    @abstractmethod
    def create_notification(
        self,
        user_id: str,
        task_id: Optional[str],
        type: NotificationType,
        message: str,
        metadata: Dict[str, Any],
    ) -> Notification: ...

    @abstractmethod
    def mark_notification_sent(self, notification_id: str, sent_at: datetime) -> None: ...

    @abstractmethod
    def mark_notification_failed(self, notification_id: str) -> None: ...

    @abstractmethod
    def get_notifications(self, task_id: Optional[str] = None) -> List[Notification]: ...


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    line_user_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True)


class BillModel(Base):
    __tablename__ = "bills"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    vendor: Mapped[str] = mapped_column(String(255))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    bill_type: Mapped[str] = mapped_column(String(20), default=BillType.OTHER.value)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class TaskModel(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    bill_id: Mapped[str] = mapped_column(ForeignKey("bills.id"), index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), index=True, default=TaskStatus.UNPAID.value)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    bill: Mapped[BillModel] = relationship(lazy="joined")
    user: Mapped[UserModel] = relationship(lazy="joined")


class NotificationModel(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    task_id: Mapped[Optional[str]] = mapped_column(ForeignKey("tasks.id"), index=True)
    type: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), index=True)
    message: Mapped[str] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[str] = mapped_column("metadata", Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class SqlBillStore(BillStore):
    def __init__(
        self,
        connection_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        create_tables: bool = True,
    ) -> None:
        if engine is None and connection_url is None:
            raise ValueError("connection_url or engine is required")
        self.engine = engine or create_engine(connection_url)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        if create_tables:
            Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def _user_from_model(self, model: UserModel) -> User:
        return User(id=model.id, name=model.name, line_user_id=model.line_user_id)

    def _task_from_model(self, model: TaskModel) -> Task:
        bill = model.bill
        return Task(
            id=model.id,
            bill_id=model.bill_id,
            user_id=model.user_id,
            status=TaskStatus(model.status),
            due_date=_utc(model.due_date),
            paid_at=_utc(model.paid_at),
            bill=Bill(
                id=bill.id,
                vendor=bill.vendor,
                amount=Decimal(bill.amount),
                bill_type=bill.bill_type,
                due_date=_utc(bill.due_date),
            ),
            user=self._user_from_model(model.user),
        )

    def _notification_from_model(self, model: NotificationModel) -> Notification:
        try:
            metadata = json.loads(model.metadata_json or "{}")
        except (TypeError, json.JSONDecodeError):
            metadata = {}
        return Notification(
            id=model.id,
            user_id=model.user_id,
            task_id=model.task_id,
            type=NotificationType(model.type),
            status=NotificationStatus(model.status),
            message=model.message,
            metadata=metadata,
            created_at=_utc(model.created_at),
            sent_at=_utc(model.sent_at),
            read_at=_utc(model.read_at),
        )

    # --- Seeding helpers, used by demos and tests ---

    def add_user(self, name: str, line_user_id: Optional[str] = None) -> User:
        with self._session_factory.begin() as session:
            model = UserModel(id=_new_id(), name=name, line_user_id=line_user_id)
            session.add(model)
            return self._user_from_model(model)

    def add_bill_with_task(
        self,
        user_id: str,
        vendor: str,
        amount: Decimal | float | str,
        due_date: datetime,
        bill_type: BillType = BillType.OTHER,
    ) -> Task:
        due_date = _utc(due_date).astimezone(UTC)
        with self._session_factory.begin() as session:
            bill = BillModel(
                id=_new_id(),
                vendor=vendor,
                amount=Decimal(str(amount)),
                bill_type=BillType(bill_type).value,
                due_date=due_date,
            )
            session.add(bill)
            task = TaskModel(
                id=_new_id(),
                bill_id=bill.id,
                user_id=user_id,
                status=TaskStatus.UNPAID.value,
                due_date=due_date,
            )
            session.add(task)
            task_id = task.id
        return self.get_task(task_id)

    # --- BillStore ---

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._session_factory() as session:
            model = session.get(TaskModel, task_id)
            return self._task_from_model(model) if model else None

    def list_unpaid_tasks(self, limit: int = 50) -> List[Task]:
        with self._session_factory() as session:
            rows = (
                session.execute(
                    select(TaskModel)
                    .where(TaskModel.status == TaskStatus.UNPAID.value)
                    .order_by(TaskModel.due_date)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [self._task_from_model(row) for row in rows]

    def set_task_status(self, task_id: str, status: TaskStatus) -> Optional[Task]:
        with self._session_factory.begin() as session:
            model = session.get(TaskModel, task_id)
            if model is None:
                return None
            model.status = TaskStatus(status).value
            model.paid_at = datetime.now(UTC) if status == TaskStatus.PAID else None
        return self.get_task(task_id)

    def create_notification(
        self,
        user_id: str,
        task_id: Optional[str],
        type: NotificationType,
        message: str,
        metadata: Dict[str, Any],
    ) -> Notification:
        with self._session_factory.begin() as session:
            model = NotificationModel(
                id=_new_id(),
                user_id=user_id,
                task_id=task_id,
                type=NotificationType(type).value,
                status=NotificationStatus.PENDING.value,
                message=message,
                metadata_json=json.dumps(metadata, default=str),
                created_at=datetime.now(UTC),
            )
            session.add(model)
            return self._notification_from_model(model)

    def mark_notification_sent(self, notification_id: str, sent_at: datetime) -> None:
        with self._session_factory.begin() as session:
            model = session.get(NotificationModel, notification_id)
            if model is not None:
                model.status = NotificationStatus.SENT.value
                model.sent_at = sent_at

    def mark_notification_failed(self, notification_id: str) -> None:
        with self._session_factory.begin() as session:
            model = session.get(NotificationModel, notification_id)
            if model is not None:
                model.status = NotificationStatus.FAILED.value

    def get_notifications(self, task_id: Optional[str] = None) -> List[Notification]:
        with self._session_factory() as session:
            query = select(NotificationModel).order_by(NotificationModel.created_at)
            if task_id is not None:
                query = query.where(NotificationModel.task_id == task_id)
            rows = session.execute(query).scalars().all()
            return [self._notification_from_model(row) for row in rows]
