"""Task Normalizer -- 业务域记录到统一 Task 的纯投影

每个 TaskType 一个投影函数，经 NORMALIZERS 分派。
投影函数无副作用：相同 (record, now, settings) 产出相同 Task；
状态与优先级由 now 派生，OVERDUE 是叠加在 TODO/IN_PROGRESS 之上的视图。
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from .config import EngineSettings
from .exceptions import InvalidTaskReferenceError
from .models.enums import (
    DIRECTLY_COMPLETABLE,
    AppointmentPriority,
    AppointmentStatus,
    ClientKind,
    PaymentStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from .models.records import (
    AppointmentRecord,
    CnamBonRecord,
    DiagnosticRecord,
    DomainRecord,
    MaintenanceRecord,
    ManualTaskRecord,
    PaymentRecord,
    RentalRecord,
    SaleRecord,
    SourceItem,
)
from .models.task import ClientRef, RelatedData, Task
from .timeutil import add_years, ensure_utc

# 类型 -> 确定性 ID 前缀
ID_PREFIXES: dict[TaskType, str] = {
    TaskType.TASK: "task",
    TaskType.DIAGNOSTIC_PENDING: "diagnostic",
    TaskType.RENTAL_EXPIRING: "rental-expiring",
    TaskType.RENTAL_ALERT: "rental-alert",
    TaskType.RENTAL_TITRATION: "rental-titration",
    TaskType.RENTAL_APPOINTMENT: "rental-appointment",
    TaskType.PAYMENT_DUE: "payment",
    TaskType.PAYMENT_PERIOD_END: "payment-period",
    TaskType.APPOINTMENT_REMINDER: "appointment",
    TaskType.CNAM_RENEWAL: "cnam",
    TaskType.SALE_RAPPEL_2YEARS: "sale-2y",
    TaskType.SALE_RAPPEL_7YEARS: "sale-7y",
    TaskType.MAINTENANCE_DUE: "maintenance",
}

_APPOINTMENT_PRIORITY: dict[AppointmentPriority, TaskPriority] = {
    AppointmentPriority.LOW: TaskPriority.LOW,
    AppointmentPriority.NORMAL: TaskPriority.MEDIUM,
    AppointmentPriority.HIGH: TaskPriority.HIGH,
    AppointmentPriority.URGENT: TaskPriority.URGENT,
}

ADMIN_ROOT = "/roles/admin"


def make_task_id(task_type: TaskType, record_id: str) -> str:
    """生成确定性 Task ID"""
    return f"{ID_PREFIXES[task_type]}-{record_id}"


def parse_task_id(task_id: str, task_type: TaskType) -> str:
    """校验 Task ID 与类型匹配并返回源记录 ID

    按声明类型的前缀剥离，make_task_id 的任意输出都可还原，
    即使源记录 ID 本身以其他前缀的后缀开头（如 payment + "period-x"）。

    Raises:
        InvalidTaskReferenceError: 前缀与类型不符或源记录 ID 为空
    """
    head = f"{ID_PREFIXES[task_type]}-"
    record_id = task_id.removeprefix(head)
    if record_id == task_id or not record_id:
        raise InvalidTaskReferenceError(task_id, task_type.value)
    return record_id


def is_overdue(due_date: datetime | None, now: datetime) -> bool:
    """截止日期严格早于 now 即逾期"""
    return due_date is not None and ensure_utc(due_date) < ensure_utc(now)


def overlay_overdue(status: TaskStatus, due_date: datetime | None, now: datetime) -> TaskStatus:
    """已完成任务不叠加 OVERDUE"""
    if status != TaskStatus.COMPLETED and is_overdue(due_date, now):
        return TaskStatus.OVERDUE
    return status


def _client_url(client: ClientRef | None) -> str | None:
    if client is None:
        return None
    if client.type == ClientKind.PATIENT:
        return f"{ADMIN_ROOT}/renseignement/patient/{client.id}"
    return f"{ADMIN_ROOT}/companies/{client.id}"


def _client_label(client: ClientRef | None, fallback: str) -> str:
    if client is None:
        return fallback
    if client.type == ClientKind.PATIENT:
        return "Voir le patient"
    return "Voir la société"


def _client_name(record: DomainRecord) -> str:
    return record.client.name if record.client else "Client inconnu"


def _base(
    task_type: TaskType,
    record: DomainRecord,
    **fields: object,
) -> Task:
    return Task(
        id=make_task_id(task_type, record.id),
        type=task_type,
        assigned_to=record.assignee,
        client=record.client,
        can_complete=task_type in DIRECTLY_COMPLETABLE,
        version=record.version,
        **fields,
    )


def _overdue_bumped(due_date: datetime | None, now: datetime) -> TaskPriority:
    return TaskPriority.HIGH if is_overdue(due_date, now) else TaskPriority.MEDIUM


# ============================================================
# 投影函数
# ============================================================


def normalize_manual_task(
    record: ManualTaskRecord, now: datetime, settings: EngineSettings
) -> Task:
    return _base(
        TaskType.TASK,
        record,
        title=record.title,
        description=record.description,
        notes=record.notes,
        status=overlay_overdue(record.status, record.end_date, now),
        priority=record.priority,
        start_date=record.start_date,
        due_date=record.end_date,
        completed_at=record.completed_at,
        completed_by=record.completed_by,
        action_url=_client_url(record.client),
        action_label=_client_label(record.client, "Voir") if record.client else None,
    )


def normalize_diagnostic(
    record: DiagnosticRecord, now: datetime, settings: EngineSettings
) -> Task:
    due_date = record.follow_up_date
    return _base(
        TaskType.DIAGNOSTIC_PENDING,
        record,
        title=f"Diagnostic en attente - {_client_name(record)}",
        description=f"Diagnostic {record.diagnostic_code} en attente de résultats",
        status=overlay_overdue(TaskStatus.TODO, due_date, now),
        priority=_overdue_bumped(due_date, now),
        start_date=record.created_at,
        due_date=due_date,
        related_data=RelatedData(
            device_name=record.device_name,
            diagnostic_id=record.id,
            diagnostic_code=record.diagnostic_code,
        ),
        action_url=f"{ADMIN_ROOT}/diagnostics/{record.id}",
        action_label="Saisir les résultats",
    )


def normalize_rental_expiring(
    record: RentalRecord, now: datetime, settings: EngineSettings
) -> Task:
    due_date = record.end_date
    if is_overdue(due_date, now):
        priority = TaskPriority.URGENT
    elif due_date is not None and ensure_utc(due_date) - ensure_utc(now) <= timedelta(
        days=settings.rental_expiring_high_days
    ):
        priority = TaskPriority.HIGH
    else:
        priority = TaskPriority.MEDIUM
    return _base(
        TaskType.RENTAL_EXPIRING,
        record,
        title=f"Location expirante - {_client_name(record)}",
        description=f"La location {record.rental_code} arrive à échéance",
        status=overlay_overdue(TaskStatus.TODO, due_date, now),
        priority=priority,
        start_date=record.start_date,
        due_date=due_date,
        related_data=RelatedData(
            device_name=record.device_name,
            rental_id=record.id,
            rental_code=record.rental_code,
        ),
        action_url=_client_url(record.client) or f"{ADMIN_ROOT}/rentals/{record.id}",
        action_label=_client_label(record.client, "Voir la location"),
    )


# 提醒类型 -> (日期字段, 标题)
_RENTAL_REMINDERS: dict[TaskType, tuple[str, str]] = {
    TaskType.RENTAL_ALERT: ("alert_date", "Alerte location"),
    TaskType.RENTAL_TITRATION: ("titration_reminder_date", "Rappel titration"),
    TaskType.RENTAL_APPOINTMENT: ("appointment_date", "Rendez-vous location"),
}


def _rental_reminder(task_type: TaskType) -> Callable[[RentalRecord, datetime, EngineSettings], Task]:
    date_field, title = _RENTAL_REMINDERS[task_type]

    def normalize(record: RentalRecord, now: datetime, settings: EngineSettings) -> Task:
        due_date = getattr(record, date_field)
        return _base(
            task_type,
            record,
            title=f"{title} - {_client_name(record)}",
            description=f"{title} pour la location {record.rental_code}",
            status=overlay_overdue(TaskStatus.TODO, due_date, now),
            priority=_overdue_bumped(due_date, now),
            start_date=due_date or record.start_date,
            due_date=due_date,
            related_data=RelatedData(
                device_name=record.device_name,
                rental_id=record.id,
                rental_code=record.rental_code,
            ),
            action_url=_client_url(record.client) or f"{ADMIN_ROOT}/rentals/{record.id}",
            action_label=_client_label(record.client, "Voir la location"),
        )

    normalize.__name__ = f"normalize_{task_type.value.lower()}"
    return normalize


def _payment_status(record: PaymentRecord, due_date: datetime | None, now: datetime) -> TaskStatus:
    base = TaskStatus.IN_PROGRESS if record.status == PaymentStatus.PARTIAL else TaskStatus.TODO
    return overlay_overdue(base, due_date, now)


def _payment_related(record: PaymentRecord) -> RelatedData:
    return RelatedData(
        amount=record.amount,
        remaining_amount=record.remaining,
        payment_id=record.id,
        payment_code=record.payment_code,
        rental_id=record.rental_id,
    )


def normalize_payment_due(
    record: PaymentRecord, now: datetime, settings: EngineSettings
) -> Task:
    due_date = record.due_date
    if is_overdue(due_date, now):
        late = ensure_utc(now) - ensure_utc(due_date)
        if late > timedelta(days=settings.payment_urgent_grace_days):
            priority = TaskPriority.URGENT
        else:
            priority = TaskPriority.HIGH
    else:
        priority = TaskPriority.MEDIUM
    return _base(
        TaskType.PAYMENT_DUE,
        record,
        title=f"Paiement dû - {_client_name(record)}",
        description=f"Paiement {record.payment_code}: {record.remaining:.2f} restant",
        status=_payment_status(record, due_date, now),
        priority=priority,
        start_date=due_date or record.created_at,
        due_date=due_date,
        related_data=_payment_related(record),
        action_url=_client_url(record.client) or f"{ADMIN_ROOT}/location",
        action_label=_client_label(record.client, "Voir le paiement"),
    )


def normalize_payment_period_end(
    record: PaymentRecord, now: datetime, settings: EngineSettings
) -> Task:
    due_date = record.period_end_date
    return _base(
        TaskType.PAYMENT_PERIOD_END,
        record,
        title=f"Fin de période de paiement - {_client_name(record)}",
        description=f"La période couverte par le paiement {record.payment_code} se termine",
        status=_payment_status(record, due_date, now),
        priority=_overdue_bumped(due_date, now),
        start_date=due_date or record.created_at,
        due_date=due_date,
        related_data=_payment_related(record),
        action_url=_client_url(record.client) or f"{ADMIN_ROOT}/location",
        action_label=_client_label(record.client, "Voir le paiement"),
    )


def normalize_appointment(
    record: AppointmentRecord, now: datetime, settings: EngineSettings
) -> Task:
    if record.status == AppointmentStatus.COMPLETED:
        base = TaskStatus.COMPLETED
    elif record.status == AppointmentStatus.CONFIRMED:
        base = TaskStatus.IN_PROGRESS
    else:
        base = TaskStatus.TODO
    description = record.appointment_type
    if record.location:
        description = f"{description} - {record.location}" if description else record.location
    return _base(
        TaskType.APPOINTMENT_REMINDER,
        record,
        title=f"Rendez-vous - {_client_name(record)}",
        description=description or None,
        notes=record.notes,
        status=overlay_overdue(base, record.scheduled_date, now),
        priority=_APPOINTMENT_PRIORITY.get(record.priority, TaskPriority.MEDIUM),
        start_date=record.scheduled_date,
        due_date=record.scheduled_date,
        completed_at=record.completed_at,
        completed_by=record.completed_by,
        related_data=RelatedData(
            appointment_id=record.id,
            appointment_code=record.appointment_code,
        ),
        action_url=_client_url(record.client) or f"{ADMIN_ROOT}/appointments",
        action_label=_client_label(record.client, "Voir le rendez-vous"),
    )


def normalize_cnam(
    record: CnamBonRecord, now: datetime, settings: EngineSettings
) -> Task:
    due_date = record.end_date
    return _base(
        TaskType.CNAM_RENEWAL,
        record,
        title=f"Renouvellement CNAM requis - {_client_name(record)}",
        description=f"Le bon CNAM {record.bon_number} ({record.bon_type}) expire",
        status=overlay_overdue(TaskStatus.TODO, due_date, now),
        priority=_overdue_bumped(due_date, now),
        start_date=record.start_date,
        due_date=due_date,
        related_data=RelatedData(bon_number=record.bon_number, rental_id=record.rental_id),
        action_url=_client_url(record.client) or f"{ADMIN_ROOT}/cnam-management",
        action_label=_client_label(record.client, "Voir le bon CNAM"),
    )


def _sale_rappel(
    task_type: TaskType, years: int, title: str
) -> Callable[[SaleRecord, datetime, EngineSettings], Task]:
    def normalize(record: SaleRecord, now: datetime, settings: EngineSettings) -> Task:
        due_date = add_years(record.sale_date, years)
        return _base(
            task_type,
            record,
            title=f"{title} - {_client_name(record)}",
            description=f"Vente {record.sale_code} du {record.sale_date:%d/%m/%Y}",
            status=overlay_overdue(TaskStatus.TODO, due_date, now),
            priority=_overdue_bumped(due_date, now),
            start_date=due_date,
            due_date=due_date,
            related_data=RelatedData(device_name=record.device_name, sale_code=record.sale_code),
            action_url=f"{ADMIN_ROOT}/sales/{record.id}",
            action_label="Voir la vente",
        )

    normalize.__name__ = f"normalize_{task_type.value.lower()}"
    return normalize


def normalize_maintenance(
    record: MaintenanceRecord, now: datetime, settings: EngineSettings
) -> Task:
    due_date = record.due_date
    last = (
        f"dernière maintenance le {record.last_maintenance_date:%d/%m/%Y}"
        if record.last_maintenance_date
        else "aucune maintenance enregistrée"
    )
    return _base(
        TaskType.MAINTENANCE_DUE,
        record,
        title=f"Maintenance requise - {record.device_name}",
        description=f"Le dispositif {record.device_name} nécessite une maintenance ({last})",
        status=overlay_overdue(TaskStatus.TODO, due_date, now),
        priority=_overdue_bumped(due_date, now),
        start_date=due_date,
        due_date=due_date,
        related_data=RelatedData(
            device_name=record.device_name,
            rental_id=record.rental_id,
            rental_code=record.rental_code,
        ),
        action_url=f"{ADMIN_ROOT}/appareils/medical-device/{record.id}",
        action_label="Voir l'appareil",
    )


NORMALIZERS: dict[TaskType, Callable[..., Task]] = {
    TaskType.TASK: normalize_manual_task,
    TaskType.DIAGNOSTIC_PENDING: normalize_diagnostic,
    TaskType.RENTAL_EXPIRING: normalize_rental_expiring,
    TaskType.RENTAL_ALERT: _rental_reminder(TaskType.RENTAL_ALERT),
    TaskType.RENTAL_TITRATION: _rental_reminder(TaskType.RENTAL_TITRATION),
    TaskType.RENTAL_APPOINTMENT: _rental_reminder(TaskType.RENTAL_APPOINTMENT),
    TaskType.PAYMENT_DUE: normalize_payment_due,
    TaskType.PAYMENT_PERIOD_END: normalize_payment_period_end,
    TaskType.APPOINTMENT_REMINDER: normalize_appointment,
    TaskType.CNAM_RENEWAL: normalize_cnam,
    TaskType.SALE_RAPPEL_2YEARS: _sale_rappel(
        TaskType.SALE_RAPPEL_2YEARS, 2, "Rappel accessoires (2 ans)"
    ),
    TaskType.SALE_RAPPEL_7YEARS: _sale_rappel(
        TaskType.SALE_RAPPEL_7YEARS, 7, "Rappel renouvellement appareil (7 ans)"
    ),
    TaskType.MAINTENANCE_DUE: normalize_maintenance,
}


def normalize(item: SourceItem, now: datetime, settings: EngineSettings) -> Task:
    """按 TaskType 分派投影"""
    return NORMALIZERS[item.task_type](item.record, now, settings)
