from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workforce import models  # noqa: F401
from workforce.db import Base
from workforce.models import Employee, Site

SITE_ID = "6f1c1d4e-2b7a-4c39-9d0e-3f6a8b2c5e11"
IST = ZoneInfo("Asia/Kolkata")


def make_session_factory() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def seed_employee(
    db: Session,
    *,
    employee_id: int = 1,
    daily_wage: str = "500.00",
    is_active: bool = True,
    site_id: str = SITE_ID,
) -> Employee:
    if db.get(Site, site_id) is None:
        db.add(Site(id=site_id, name="North Yard", address=None, is_active=True))
    employee = Employee(
        id=employee_id,
        full_name=f"Worker {employee_id}",
        daily_wage=Decimal(daily_wage),
        site_id=site_id,
        is_active=is_active,
    )
    db.add(employee)
    db.commit()
    return employee


def local_dt(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=IST)
