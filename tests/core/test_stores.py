"""业务域 Store 测试 -- 窗口查询、引用解析、乐观锁写入"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from medconsole.core.exceptions import WriteConflictError
from medconsole.core.models import (
    CnamBonRecord,
    CnamStatus,
    DeviceStatus,
    ManualTaskRecord,
    PaymentRecord,
    PaymentStatus,
    RentalRecord,
    RentalStatus,
    SaleRecord,
    SaleStatus,
    TaskStatus,
)
from medconsole.core.store import RecordNotFoundError, compare_and_set, run_in_transaction
from medconsole.core.store.sqlite_init import verify_wal_mode


def _dt(day: int, month: int = 1, year: int = 2024) -> datetime:
    return datetime(year, month, day, tzinfo=UTC)


class TestInit:
    async def test_wal_mode(self, store_group):
        assert await verify_wal_mode(store_group.conn)


class TestManualTaskStore:
    async def test_round_trip_resolves_references(self, store_group, refs):
        store = store_group.manual_task_store
        await store.add_task(
            ManualTaskRecord(
                id="m-1",
                title="Livrer le concentrateur",
                start_date=_dt(10),
                end_date=_dt(12),
                created_at=_dt(9),
                assignee=refs.alice,
                client=refs.patient,
            )
        )
        await store_group.conn.commit()

        record = await store.get_task("m-1")
        assert record is not None
        assert record.assignee.id == "u-alice"
        assert record.assignee.first_name == "Alice"
        assert record.client == refs.patient
        assert record.end_date == _dt(12)
        assert record.version == 1

    async def test_unassigned_stays_none(self, store_group):
        store = store_group.manual_task_store
        await store.add_task(
            ManualTaskRecord(id="m-2", title="Inventaire", start_date=_dt(3), created_at=_dt(1))
        )
        record = await store.get_task("m-2")
        assert record.assignee is None
        assert record.client is None

    async def test_window_uses_end_date_then_start_date(self, store_group, january):
        store = store_group.manual_task_store
        await store.add_task(
            ManualTaskRecord(
                id="in-by-end",
                title="a",
                start_date=_dt(20, 12, 2023),
                end_date=_dt(5),
                created_at=_dt(1, 12, 2023),
            )
        )
        await store.add_task(
            ManualTaskRecord(id="in-by-start", title="b", start_date=_dt(7), created_at=_dt(1))
        )
        await store.add_task(
            ManualTaskRecord(
                id="out",
                title="c",
                start_date=_dt(20),
                end_date=_dt(3, 2),
                created_at=_dt(1),
            )
        )
        records = await store.list_relevant(*january)
        assert {r.id for r in records} == {"in-by-end", "in-by-start"}

    async def test_mark_completed_bumps_version(self, store_group, now):
        store = store_group.manual_task_store
        await store.add_task(
            ManualTaskRecord(id="m-3", title="x", start_date=_dt(3), created_at=_dt(1))
        )
        new_version = await store.mark_completed("m-3", 1, "u-bob", now)
        await store_group.conn.commit()

        record = await store.get_task("m-3")
        assert new_version == 2
        assert record.version == 2
        assert record.status == TaskStatus.COMPLETED
        assert record.completed_by == "u-bob"
        assert record.completed_at == now

    async def test_stale_version_conflicts(self, store_group, now):
        store = store_group.manual_task_store
        await store.add_task(
            ManualTaskRecord(id="m-4", title="x", start_date=_dt(3), created_at=_dt(1))
        )
        await store.update_notes("m-4", 1, "première", now)
        with pytest.raises(WriteConflictError):
            await store.update_notes("m-4", 1, "seconde", now)
        record = await store.get_task("m-4")
        assert record.notes == "première"

    async def test_missing_record(self, store_group, now):
        with pytest.raises(RecordNotFoundError):
            await store_group.manual_task_store.mark_completed("nope", 1, "u-bob", now)


class TestTransaction:
    async def test_rollback_on_failure(self, store_group, now):
        store = store_group.manual_task_store
        await store.add_task(
            ManualTaskRecord(id="m-5", title="x", start_date=_dt(3), created_at=_dt(1))
        )
        await store_group.conn.commit()

        async def work() -> None:
            await store.update_notes("m-5", 1, "perdu", now)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_in_transaction(store_group.conn, work)
        record = await store.get_task("m-5")
        assert record.notes is None
        assert record.version == 1

    async def test_conflicting_writer_does_not_roll_back_other_writer(self, store_group, now):
        store = store_group.manual_task_store
        for record_id in ("m-6", "m-7"):
            await store.add_task(
                ManualTaskRecord(id=record_id, title="x", start_date=_dt(3), created_at=_dt(1))
            )
        await store_group.conn.commit()
        first_in_transaction = asyncio.Event()

        async def first() -> None:
            await store.update_notes("m-6", 1, "gardé", now)
            first_in_transaction.set()
            await asyncio.sleep(0.05)

        async def second() -> None:
            await store.update_notes("m-7", 99, "conflit", now)

        async def run_second() -> None:
            await first_in_transaction.wait()
            await run_in_transaction(store_group.conn, second, store_group.write_lock)

        results = await asyncio.gather(
            run_in_transaction(store_group.conn, first, store_group.write_lock),
            run_second(),
            return_exceptions=True,
        )
        assert results[0] is None
        assert isinstance(results[1], WriteConflictError)
        kept = await store.get_task("m-6")
        assert kept.notes == "gardé"
        assert kept.version == 2

    async def test_unversioned_table_rejected(self, store_group, now):
        with pytest.raises(ValueError):
            await compare_and_set(store_group.conn, "users", "u-1", 1, {}, now)


class TestPaymentStore:
    async def test_list_due_filters(self, store_group, refs, january):
        store = store_group.payment_store
        base = {"created_at": _dt(1, 12, 2023), "client": refs.patient}
        await store.add_payment(PaymentRecord(id="due", amount=150.0, due_date=_dt(10), **base))
        await store.add_payment(
            PaymentRecord(
                id="paid",
                amount=150.0,
                paid_amount=150.0,
                status=PaymentStatus.PAID,
                due_date=_dt(10),
                **base,
            )
        )
        await store.add_payment(
            PaymentRecord(
                id="settled-partial",
                amount=100.0,
                paid_amount=100.0,
                status=PaymentStatus.PARTIAL,
                due_date=_dt(11),
                **base,
            )
        )
        await store.add_payment(
            PaymentRecord(id="later", amount=50.0, due_date=_dt(2, 3), **base)
        )
        records = await store.list_due(*january)
        assert [r.id for r in records] == ["due"]
        assert records[0].client.name == "Sami Ben Ali"

    async def test_period_end_requires_rental(self, store_group, refs, january):
        await store_group.rental_store.add_rental(
            RentalRecord(id="r-1", start_date=_dt(1, 6, 2023), client=refs.patient)
        )
        store = store_group.payment_store
        await store.add_payment(
            PaymentRecord(
                id="with-rental",
                amount=80.0,
                period_end_date=_dt(20),
                rental_id="r-1",
                created_at=_dt(1),
            )
        )
        await store.add_payment(
            PaymentRecord(
                id="no-rental", amount=80.0, period_end_date=_dt(20), created_at=_dt(1)
            )
        )
        records = await store.list_period_ends(*january)
        assert [r.id for r in records] == ["with-rental"]


class TestRentalStore:
    async def test_expiring_and_reminders(self, store_group, refs, january):
        store = store_group.rental_store
        await store.add_rental(
            RentalRecord(
                id="r-active",
                start_date=_dt(1, 6, 2023),
                end_date=_dt(25),
                titration_reminder_date=_dt(12),
                client=refs.company,
            )
        )
        await store.add_rental(
            RentalRecord(
                id="r-done",
                status=RentalStatus.COMPLETED,
                start_date=_dt(1, 6, 2023),
                end_date=_dt(25),
                titration_reminder_date=_dt(12),
            )
        )
        await store.add_rental(
            RentalRecord(
                id="r-pending",
                status=RentalStatus.PENDING,
                start_date=_dt(1, 2),
                end_date=_dt(20),
                alert_date=_dt(15),
            )
        )

        expiring = await store.list_expiring(*january)
        assert [r.id for r in expiring] == ["r-active"]
        assert expiring[0].client.name == "Clinique Nord"

        titration = await store.list_reminders("titration_reminder_date", *january)
        assert [r.id for r in titration] == ["r-active"]
        alerts = await store.list_reminders("alert_date", *january)
        assert [r.id for r in alerts] == ["r-pending"]

    async def test_unknown_reminder_column(self, store_group, january):
        with pytest.raises(ValueError):
            await store_group.rental_store.list_reminders("status", *january)


class TestCnamBonStore:
    async def test_successor_detection(self, store_group, refs):
        await store_group.rental_store.add_rental(
            RentalRecord(id="r-1", start_date=_dt(1, 6, 2023), client=refs.patient)
        )
        store = store_group.cnam_bon_store
        current = CnamBonRecord(
            id="b-1",
            bon_number="BON-1",
            start_date=_dt(1, 7, 2023),
            end_date=_dt(20),
            rental_id="r-1",
            client=refs.patient,
        )
        await store.add_bon(current)
        assert not await store.has_successor(current)

        await store.add_bon(
            CnamBonRecord(
                id="b-refused",
                status=CnamStatus.REFUSE,
                start_date=_dt(20),
                end_date=_dt(20, 7),
                rental_id="r-1",
            )
        )
        assert not await store.has_successor(current)

        await store.add_bon(
            CnamBonRecord(
                id="b-2",
                status=CnamStatus.EN_ATTENTE_APPROBATION,
                start_date=_dt(20),
                end_date=_dt(20, 7),
                rental_id="r-1",
            )
        )
        assert await store.has_successor(current)

    async def test_list_relevant_only_approved(self, store_group, refs, january):
        store = store_group.cnam_bon_store
        await store.add_bon(
            CnamBonRecord(id="b-ok", start_date=_dt(1, 7, 2023), end_date=_dt(18))
        )
        await store.add_bon(
            CnamBonRecord(
                id="b-wait",
                status=CnamStatus.EN_COURS,
                start_date=_dt(1, 7, 2023),
                end_date=_dt(18),
            )
        )
        records = await store.list_relevant(*january)
        assert [r.id for r in records] == ["b-ok"]


class TestSaleStore:
    async def test_rappel_window_shifted_by_years(self, store_group, january):
        store = store_group.sale_store
        await store.add_sale(SaleRecord(id="s-2y", sale_date=_dt(20, 1, 2022)))
        await store.add_sale(SaleRecord(id="s-7y", sale_date=_dt(5, 1, 2017)))
        await store.add_sale(
            SaleRecord(id="s-done", sale_date=_dt(21, 1, 2022), rappel_2y_done_at=_dt(2))
        )
        await store.add_sale(
            SaleRecord(id="s-returned", status=SaleStatus.RETURNED, sale_date=_dt(22, 1, 2022))
        )

        two_years = await store.list_rappels(2, *january)
        assert [s.id for s in two_years] == ["s-2y"]
        seven_years = await store.list_rappels(7, *january)
        assert [s.id for s in seven_years] == ["s-7y"]

    async def test_rappel_window_month_edges(self, store_group, january):
        store = store_group.sale_store
        await store.add_sale(
            SaleRecord(id="s-last", sale_date=datetime(2022, 1, 31, 23, 30, tzinfo=UTC))
        )
        await store.add_sale(SaleRecord(id="s-first-feb", sale_date=_dt(1, 2, 2022)))

        in_january = await store.list_rappels(2, *january)
        assert [s.id for s in in_january] == ["s-last"]
        in_february = await store.list_rappels(
            2, _dt(1, 2), datetime(2024, 2, 29, 23, 59, 59, tzinfo=UTC)
        )
        assert [s.id for s in in_february] == ["s-first-feb"]

    async def test_leap_day_sale_rappel_lands_on_february_28(self, store_group):
        store = store_group.sale_store
        await store.add_sale(
            SaleRecord(id="s-leap", sale_date=datetime(2024, 2, 29, 10, 0, tzinfo=UTC))
        )

        february = await store.list_rappels(
            2, _dt(1, 2, 2026), datetime(2026, 2, 28, 23, 59, 59, tzinfo=UTC)
        )
        march = await store.list_rappels(
            2, _dt(1, 3, 2026), datetime(2026, 3, 31, 23, 59, 59, tzinfo=UTC)
        )
        assert [s.id for s in february] == ["s-leap"]
        assert march == []


class TestDeviceStore:
    async def test_due_from_last_repair(self, store_group, refs, january):
        devices = store_group.device_store
        await devices.add_device("dev-1", "CPAP ResMed", created_at=_dt(1, 1, 2023))
        await devices.add_repair_log("log-1", "dev-1", _dt(10, 7, 2023))
        await store_group.rental_store.add_rental(
            RentalRecord(id="r-1", start_date=_dt(1, 6, 2023), client=refs.patient),
            medical_device_id="dev-1",
        )

        records = await devices.list_due(*january, interval_months=6)
        assert len(records) == 1
        record = records[0]
        assert record.due_date == _dt(10)
        assert record.last_maintenance_date == _dt(10, 7, 2023)
        assert record.rental_id == "r-1"
        assert record.client.id == "p-1"

    async def test_without_repairs_uses_creation_date(self, store_group, january):
        devices = store_group.device_store
        await devices.add_device("dev-2", "Concentrateur", created_at=_dt(15, 7, 2023))
        await store_group.rental_store.add_rental(
            RentalRecord(id="r-2", start_date=_dt(1, 8, 2023)), medical_device_id="dev-2"
        )
        records = await devices.list_due(*january, interval_months=6)
        assert [r.id for r in records] == ["dev-2"]
        assert records[0].due_date == _dt(15)

    async def test_idle_or_retired_devices_skipped(self, store_group, january):
        devices = store_group.device_store
        await devices.add_device("dev-idle", "Idle", created_at=_dt(15, 7, 2023))
        await devices.add_device(
            "dev-retired", "Retired", created_at=_dt(15, 7, 2023), status=DeviceStatus.RETIRED
        )
        await store_group.rental_store.add_rental(
            RentalRecord(id="r-3", start_date=_dt(1, 8, 2023)), medical_device_id="dev-retired"
        )
        assert await devices.list_due(*january, interval_months=6) == []
        record = await devices.get_maintenance("dev-idle", 6)
        assert record.rental_id is None
        assert record.due_date == _dt(15)

    async def test_repair_dates_ascending(self, store_group):
        devices = store_group.device_store
        await devices.add_device("dev-3", "x", created_at=_dt(1, 1, 2023))
        await devices.add_repair_log("b", "dev-3", _dt(1, 9, 2023))
        await devices.add_repair_log("a", "dev-3", _dt(1, 3, 2023))
        assert await devices.list_repair_dates("dev-3") == [_dt(1, 3, 2023), _dt(1, 9, 2023)]


class TestReferenceStore:
    async def test_list_users_sorted_by_name(self, store_group, refs):
        users = await store_group.reference_store.list_users()
        assert [u.id for u in users] == ["u-alice", "u-bob"]
        assert await store_group.reference_store.get_user("u-missing") is None


class TestNotificationStore:
    async def test_mark_follow_up_read(self, store_group, now):
        store = store_group.notification_store
        await store.add_notification("n-1", "FOLLOW_UP", "m-1", now - timedelta(days=1))
        await store.add_notification("n-2", "PAYMENT_DUE", "m-1", now - timedelta(hours=1))
        assert await store.mark_follow_up_read("m-1", now) == 1
        rows = {row["id"]: row for row in await store.list_for_related("m-1")}
        assert rows["n-1"]["status"] == "READ"
        assert rows["n-2"]["status"] == "PENDING"
