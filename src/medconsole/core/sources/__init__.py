"""Source Readers -- 每个业务域一个 Reader

build_readers() 基于 StoreGroup 组装默认 Reader 列表。
"""

from ..config import EngineSettings
from ..store import StoreGroup
from .appointments import AppointmentReader
from .base import SourceReader, store_errors
from .cnam import CnamBonReader
from .diagnostics import DiagnosticReader
from .maintenance import MaintenanceReader
from .manual_tasks import ManualTaskReader
from .payments import PaymentReader
from .rentals import RentalReader
from .sales import SaleReader


def build_readers(stores: StoreGroup, settings: EngineSettings) -> list[SourceReader]:
    """组装全部业务域 Reader

    Args:
        stores: Store 实例组
        settings: 引擎配置（维护周期）

    Returns:
        Reader 列表
    """
    return [
        ManualTaskReader(stores.manual_task_store),
        DiagnosticReader(stores.diagnostic_store),
        RentalReader(stores.rental_store),
        PaymentReader(stores.payment_store),
        AppointmentReader(stores.appointment_store),
        CnamBonReader(stores.cnam_bon_store),
        SaleReader(stores.sale_store),
        MaintenanceReader(stores.device_store, settings.maintenance_interval_months),
    ]


__all__ = [
    "SourceReader",
    "store_errors",
    "build_readers",
    "ManualTaskReader",
    "DiagnosticReader",
    "RentalReader",
    "PaymentReader",
    "AppointmentReader",
    "CnamBonReader",
    "SaleReader",
    "MaintenanceReader",
]
