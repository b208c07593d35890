"""Lifecycle Controller -- 完成状态机与备注更新

TASK / APPOINTMENT_REMINDER 可直接完成：版本校验写入 completed_at/completed_by。
其余派生类型不落盘完成状态，完成请求时回读源记录校验前置条件：
满足则视为成功（不写入），否则返回 REQUIRES_ACTION 与处理页面。
同一源记录的写入在进程内由 per-record 锁串行化，跨进程由 version 列兜底；
共享连接上的写事务由 StoreGroup.write_lock 串行化。
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import aiosqlite
import structlog
from ulid import ULID

from .config import TITLE_MAX_LENGTH, EngineSettings
from .exceptions import UnknownReferenceError, WriteConflictError
from .models.enums import (
    DIRECTLY_COMPLETABLE,
    NOTES_EDITABLE,
    AppointmentStatus,
    ClientKind,
    CnamStatus,
    DiagnosticStatus,
    PaymentStatus,
    RentalStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
    validate_transition,
)
from .models.records import AppointmentRecord, DomainRecord, ManualTaskRecord, SourceItem
from .models.results import LifecycleOutcome, LifecycleResult
from .models.task import AssigneeRef, ClientRef, Task
from .normalizer import make_task_id, normalize, parse_task_id
from .store import StoreGroup
from .store.sale_store import INACTIVE_SALE_STATUSES, RAPPEL_DONE_COLUMNS
from .store.transaction import RecordNotFoundError, run_in_transaction
from .timeutil import add_months, ensure_utc, utc_now

log = structlog.get_logger()

# 租赁终态（提醒不再需要处理）
TERMINAL_RENTAL_STATUSES = frozenset(
    {RentalStatus.COMPLETED, RentalStatus.CANCELLED, RentalStatus.EXPIRED}
)

_RENTAL_REMINDER_FIELDS: dict[TaskType, str] = {
    TaskType.RENTAL_ALERT: "alert_date",
    TaskType.RENTAL_TITRATION: "titration_reminder_date",
    TaskType.RENTAL_APPOINTMENT: "appointment_date",
}

# 前置条件未满足时的提示
REQUIRES_ACTION_MESSAGES: dict[TaskType, str] = {
    TaskType.DIAGNOSTIC_PENDING: (
        "Les diagnostics doivent être complétés via la page de saisie des résultats"
    ),
    TaskType.PAYMENT_DUE: "Les paiements doivent être traités via la page du patient",
    TaskType.PAYMENT_PERIOD_END: "Les paiements doivent être traités via la page du patient",
    TaskType.RENTAL_EXPIRING: (
        "Les locations arrivant à échéance doivent être prolongées ou clôturées "
        "via la page du patient"
    ),
    TaskType.RENTAL_ALERT: "Les rappels de location doivent être traités via la page du patient",
    TaskType.RENTAL_TITRATION: (
        "Les rappels de location doivent être traités via la page du patient"
    ),
    TaskType.RENTAL_APPOINTMENT: (
        "Les rappels de location doivent être traités via la page du patient"
    ),
    TaskType.CNAM_RENEWAL: "Les renouvellements CNAM doivent être traités via la page du patient",
    TaskType.SALE_RAPPEL_2YEARS: (
        "Les rappels de vente doivent être traités via la page de la vente"
    ),
    TaskType.SALE_RAPPEL_7YEARS: (
        "Les rappels de vente doivent être traités via la page de la vente"
    ),
    TaskType.MAINTENANCE_DUE: (
        "La maintenance doit être enregistrée comme réparation sur la fiche de l'appareil"
    ),
}

# 不可直接完成的预约状态
_UNCOMPLETABLE_APPOINTMENT_STATUSES = frozenset({AppointmentStatus.CANCELLED})


@dataclass(frozen=True)
class PreconditionCheck:
    """前置条件回读结果（record 为 None 表示源记录不存在）"""

    record: DomainRecord | None
    satisfied: bool = False


@dataclass(frozen=True)
class CompletionContext:
    """派生类型前置条件的评估上下文"""

    now: datetime
    settings: EngineSettings
    # 客户端在任务流中看到的到期日（可选）
    due_date: datetime | None = None


PreconditionFn = Callable[[StoreGroup, str, CompletionContext], Awaitable[PreconditionCheck]]


@dataclass
class _RecordLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


# ============================================================
# 派生类型前置条件
# ============================================================


async def _payment_settled(
    stores: StoreGroup, record_id: str, ctx: CompletionContext
) -> PreconditionCheck:
    payment = await stores.payment_store.get_payment(record_id)
    if payment is None:
        return PreconditionCheck(None)
    return PreconditionCheck(
        payment,
        payment.remaining == 0 or payment.status == PaymentStatus.CANCELLED,
    )


async def _diagnostic_closed(
    stores: StoreGroup, record_id: str, ctx: CompletionContext
) -> PreconditionCheck:
    diagnostic = await stores.diagnostic_store.get_diagnostic(record_id)
    if diagnostic is None:
        return PreconditionCheck(None)
    return PreconditionCheck(
        diagnostic,
        diagnostic.status in (DiagnosticStatus.COMPLETED, DiagnosticStatus.CANCELLED),
    )


async def _rental_handled(
    stores: StoreGroup, record_id: str, ctx: CompletionContext
) -> PreconditionCheck:
    rental = await stores.rental_store.get_rental(record_id)
    if rental is None:
        return PreconditionCheck(None)
    horizon = ensure_utc(ctx.now) + timedelta(days=ctx.settings.rental_expiring_horizon_days)
    extended = rental.end_date is None or ensure_utc(rental.end_date) > horizon
    return PreconditionCheck(rental, rental.status != RentalStatus.ACTIVE or extended)


def _rental_reminder_cleared(task_type: TaskType) -> PreconditionFn:
    date_field = _RENTAL_REMINDER_FIELDS[task_type]

    async def check(
        stores: StoreGroup, record_id: str, ctx: CompletionContext
    ) -> PreconditionCheck:
        rental = await stores.rental_store.get_rental(record_id)
        if rental is None:
            return PreconditionCheck(None)
        return PreconditionCheck(
            rental,
            rental.status in TERMINAL_RENTAL_STATUSES or getattr(rental, date_field) is None,
        )

    return check


async def _cnam_renewed(
    stores: StoreGroup, record_id: str, ctx: CompletionContext
) -> PreconditionCheck:
    bon = await stores.cnam_bon_store.get_bon(record_id)
    if bon is None:
        return PreconditionCheck(None)
    if bon.status != CnamStatus.APPROUVE:
        return PreconditionCheck(bon, True)
    return PreconditionCheck(bon, await stores.cnam_bon_store.has_successor(bon))


def _sale_rappel_done(years: int) -> PreconditionFn:
    done_field = RAPPEL_DONE_COLUMNS[years]

    async def check(
        stores: StoreGroup, record_id: str, ctx: CompletionContext
    ) -> PreconditionCheck:
        sale = await stores.sale_store.get_sale(record_id)
        if sale is None:
            return PreconditionCheck(None)
        return PreconditionCheck(
            sale,
            getattr(sale, done_field) is not None or sale.status in INACTIVE_SALE_STATUSES,
        )

    return check


async def _maintenance_logged(
    stores: StoreGroup, record_id: str, ctx: CompletionContext
) -> PreconditionCheck:
    """存在不早于目标到期日的维修记录

    目标到期日默认取当前一轮（与任务流相同的算法）。客户端提供的到期日
    仅在等于当前一轮或被最近一次维修关闭的上一轮时采用。
    """
    interval = ctx.settings.maintenance_interval_months
    device = await stores.device_store.get_maintenance(record_id, interval)
    if device is None:
        return PreconditionCheck(None)
    repairs = await stores.device_store.list_repair_dates(record_id)
    target = device.due_date
    if ctx.due_date is not None and repairs:
        previous_base = repairs[-2] if len(repairs) > 1 else device.device_created_at
        shown = ensure_utc(ctx.due_date)
        if shown == add_months(previous_base, interval):
            target = shown
    return PreconditionCheck(device, any(repair >= target for repair in repairs))


PRECONDITIONS: dict[TaskType, PreconditionFn] = {
    TaskType.PAYMENT_DUE: _payment_settled,
    TaskType.PAYMENT_PERIOD_END: _payment_settled,
    TaskType.DIAGNOSTIC_PENDING: _diagnostic_closed,
    TaskType.RENTAL_EXPIRING: _rental_handled,
    TaskType.RENTAL_ALERT: _rental_reminder_cleared(TaskType.RENTAL_ALERT),
    TaskType.RENTAL_TITRATION: _rental_reminder_cleared(TaskType.RENTAL_TITRATION),
    TaskType.RENTAL_APPOINTMENT: _rental_reminder_cleared(TaskType.RENTAL_APPOINTMENT),
    TaskType.CNAM_RENEWAL: _cnam_renewed,
    TaskType.SALE_RAPPEL_2YEARS: _sale_rappel_done(2),
    TaskType.SALE_RAPPEL_7YEARS: _sale_rappel_done(7),
    TaskType.MAINTENANCE_DUE: _maintenance_logged,
}


class LifecycleController:
    """任务完成 / 备注更新 / 手动任务创建"""

    def __init__(self, stores: StoreGroup, settings: EngineSettings) -> None:
        self._stores = stores
        self._settings = settings
        self._record_locks: dict[str, _RecordLock] = {}

    @asynccontextmanager
    async def _record_lock(self, key: str) -> AsyncIterator[None]:
        """持有源记录级别锁，序列化同一记录的写入

        最后一个持有/等待者释放后移除条目。
        """
        entry = self._record_locks.get(key)
        if entry is None:
            entry = _RecordLock()
            self._record_locks[key] = entry
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._record_locks[key]

    async def _load_writable(self, task_type: TaskType, record_id: str) -> DomainRecord | None:
        if task_type == TaskType.TASK:
            return await self._stores.manual_task_store.get_task(record_id)
        return await self._stores.appointment_store.get_appointment(record_id)

    def _project(self, task_type: TaskType, record: DomainRecord, now: datetime) -> Task:
        return normalize(SourceItem(task_type, record), now, self._settings)

    # ============================================================
    # 完成
    # ============================================================

    async def complete(
        self,
        task_id: str,
        task_type: TaskType,
        actor_id: str,
        expected_version: int | None = None,
        due_date: datetime | None = None,
        now: datetime | None = None,
    ) -> LifecycleResult:
        """完成任务

        Args:
            task_id: 确定性 Task ID
            task_type: 任务类型（须与 ID 前缀一致）
            actor_id: 操作人
            expected_version: 客户端读到的版本号，None 表示以当前版本为准
            due_date: 客户端在任务流中看到的到期日（仅周期性派生类型使用）
            now: 当前时间（测试注入）

        Raises:
            InvalidTaskReferenceError: ID 前缀与类型不符
        """
        record_id = parse_task_id(task_id, task_type)
        now = now or utc_now()
        if task_type in DIRECTLY_COMPLETABLE:
            return await self._complete_direct(
                task_id, task_type, record_id, actor_id, expected_version, now
            )
        return await self._complete_derived(
            task_id, task_type, record_id, CompletionContext(now, self._settings, due_date)
        )

    async def _complete_direct(
        self,
        task_id: str,
        task_type: TaskType,
        record_id: str,
        actor_id: str,
        expected_version: int | None,
        now: datetime,
    ) -> LifecycleResult:
        async with self._record_lock(f"{task_type}:{record_id}"):
            record = await self._load_writable(task_type, record_id)
            if record is None:
                return LifecycleResult(
                    outcome=LifecycleOutcome.NOT_FOUND, message=f"Tâche {task_id} introuvable"
                )
            if self._is_completed(record):
                return LifecycleResult(
                    outcome=LifecycleOutcome.ALREADY_COMPLETED,
                    message="Tâche déjà complétée",
                    task=self._project(task_type, record, now),
                )
            if (
                isinstance(record, ManualTaskRecord)
                and not validate_transition(record.status, TaskStatus.COMPLETED)
            ):
                return LifecycleResult(
                    outcome=LifecycleOutcome.CONFLICT,
                    message=f"Impossible de compléter une tâche au statut {record.status}",
                )
            if (
                isinstance(record, AppointmentRecord)
                and record.status in _UNCOMPLETABLE_APPOINTMENT_STATUSES
            ):
                return LifecycleResult(
                    outcome=LifecycleOutcome.CONFLICT,
                    message=f"Impossible de compléter un rendez-vous au statut {record.status}",
                )
            version = record.version if expected_version is None else expected_version

            async def work() -> None:
                if task_type == TaskType.TASK:
                    await self._stores.manual_task_store.mark_completed(
                        record_id, version, actor_id, now
                    )
                    await self._stores.notification_store.mark_follow_up_read(record_id, now)
                else:
                    await self._stores.appointment_store.mark_completed(
                        record_id, version, actor_id, now
                    )

            try:
                await run_in_transaction(self._stores.conn, work, self._stores.write_lock)
            except WriteConflictError as e:
                return self._conflict(task_id, e)
            except RecordNotFoundError:
                return LifecycleResult(
                    outcome=LifecycleOutcome.NOT_FOUND, message=f"Tâche {task_id} introuvable"
                )

            updated = await self._load_writable(task_type, record_id)
            log.info(
                "task_completed",
                task_id=task_id,
                task_type=task_type,
                actor_id=actor_id,
                version=updated.version if updated else None,
            )
            return LifecycleResult(
                outcome=LifecycleOutcome.COMPLETED,
                message="Tâche complétée avec succès",
                task=self._project(task_type, updated, now) if updated else None,
            )

    async def _complete_derived(
        self,
        task_id: str,
        task_type: TaskType,
        record_id: str,
        ctx: CompletionContext,
    ) -> LifecycleResult:
        check = await PRECONDITIONS[task_type](self._stores, record_id, ctx)
        if check.record is None:
            return LifecycleResult(
                outcome=LifecycleOutcome.NOT_FOUND, message=f"Tâche {task_id} introuvable"
            )
        task = self._project(task_type, check.record, ctx.now)
        if check.satisfied:
            log.info("task_completed", task_id=task_id, task_type=task_type, derived=True)
            return LifecycleResult(
                outcome=LifecycleOutcome.PRECONDITION_SATISFIED,
                message="L'élément source a déjà été traité",
                task=task,
            )
        log.info(
            "task_completion_requires_action",
            task_id=task_id,
            task_type=task_type,
            action_url=task.action_url,
        )
        return LifecycleResult(
            outcome=LifecycleOutcome.REQUIRES_ACTION,
            message=REQUIRES_ACTION_MESSAGES[task_type],
            requires_action=True,
            action_url=task.action_url,
            task=task,
        )

    @staticmethod
    def _is_completed(record: DomainRecord) -> bool:
        if isinstance(record, ManualTaskRecord):
            return record.status == TaskStatus.COMPLETED
        return getattr(record, "status", None) == AppointmentStatus.COMPLETED

    @staticmethod
    def _conflict(task_id: str, error: WriteConflictError) -> LifecycleResult:
        log.warning(
            "task_write_conflict",
            task_id=task_id,
            table=error.table,
            expected_version=error.expected_version,
        )
        return LifecycleResult(
            outcome=LifecycleOutcome.CONFLICT,
            message="La tâche a été modifiée entre-temps, rechargez puis réessayez",
            retryable=True,
        )

    # ============================================================
    # 备注
    # ============================================================

    async def update_notes(
        self,
        task_id: str,
        task_type: TaskType,
        notes: str | None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> LifecycleResult:
        """更新备注（仅 TASK / APPOINTMENT_REMINDER），空字符串清空

        Raises:
            InvalidTaskReferenceError: ID 前缀与类型不符
        """
        record_id = parse_task_id(task_id, task_type)
        if task_type not in NOTES_EDITABLE:
            return LifecycleResult(
                outcome=LifecycleOutcome.NOT_EDITABLE,
                message=f"Les notes ne sont pas modifiables pour les tâches {task_type}",
            )
        now = now or utc_now()
        value = notes or None

        async with self._record_lock(f"{task_type}:{record_id}"):
            record = await self._load_writable(task_type, record_id)
            if record is None:
                return LifecycleResult(
                    outcome=LifecycleOutcome.NOT_FOUND, message=f"Tâche {task_id} introuvable"
                )
            version = record.version if expected_version is None else expected_version

            async def work() -> None:
                if task_type == TaskType.TASK:
                    await self._stores.manual_task_store.update_notes(
                        record_id, version, value, now
                    )
                else:
                    await self._stores.appointment_store.update_notes(
                        record_id, version, value, now
                    )

            try:
                await run_in_transaction(self._stores.conn, work, self._stores.write_lock)
            except WriteConflictError as e:
                return self._conflict(task_id, e)
            except RecordNotFoundError:
                return LifecycleResult(
                    outcome=LifecycleOutcome.NOT_FOUND, message=f"Tâche {task_id} introuvable"
                )

            updated = await self._load_writable(task_type, record_id)
            log.info(
                "task_notes_updated",
                task_id=task_id,
                task_type=task_type,
                cleared=value is None,
            )
            return LifecycleResult(
                outcome=LifecycleOutcome.NOTES_UPDATED,
                message="Notes mises à jour",
                task=self._project(task_type, updated, now) if updated else None,
            )

    # ============================================================
    # 手动任务创建
    # ============================================================

    async def create_manual_task(
        self,
        title: str,
        start_date: datetime,
        end_date: datetime | None = None,
        description: str | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        assigned_user_id: str | None = None,
        patient_id: str | None = None,
        company_id: str | None = None,
        now: datetime | None = None,
    ) -> Task:
        """创建 TODO 手动任务并返回物化后的 Task

        Raises:
            UnknownReferenceError: 负责人/患者/公司不存在
        """
        now = now or utc_now()
        client = None
        if patient_id:
            client = ClientRef(id=patient_id, name="", type=ClientKind.PATIENT)
        elif company_id:
            client = ClientRef(id=company_id, name="", type=ClientKind.COMPANY)
        record = ManualTaskRecord(
            id=str(ULID()),
            title=title[:TITLE_MAX_LENGTH],
            description=description,
            status=TaskStatus.TODO,
            priority=priority,
            start_date=start_date,
            end_date=end_date,
            created_at=now,
            assignee=AssigneeRef(id=assigned_user_id) if assigned_user_id else None,
            client=client,
        )

        async def work() -> None:
            await self._stores.manual_task_store.add_task(record)

        try:
            await run_in_transaction(self._stores.conn, work, self._stores.write_lock)
        except aiosqlite.IntegrityError as e:
            raise UnknownReferenceError(f"Unknown user, patient or company: {e}") from e

        stored = await self._stores.manual_task_store.get_task(record.id)
        log.info(
            "manual_task_created",
            task_id=make_task_id(TaskType.TASK, record.id),
            assigned_user_id=assigned_user_id,
        )
        return self._project(TaskType.TASK, stored or record, now)
