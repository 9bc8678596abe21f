from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pms.models import ApprovalStatus, Base, BatchStatus, Item, StockBatch, User, UserRole
from pms.security.passwords import hash_password


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave.
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute('PRAGMA foreign_keys=ON')

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN')

    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def add_user(
    db: Session,
    *,
    email: str,
    role: UserRole = UserRole.STAFF,
    password: str = 'password123',
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
    active: bool = True,
) -> User:
    user = User(
        email=email,
        name=email.split('@')[0].title(),
        password_hash=hash_password(password),
        role=role,
        approval_status=approval_status,
        active=active,
    )
    db.add(user)
    db.flush()
    return user


def add_batch(
    db: Session,
    *,
    sku: str,
    base_price: str | Decimal,
    quantity: int,
    expiry_date: date,
    name: str | None = None,
    category: str | None = 'Dairy',
    status: BatchStatus = BatchStatus.ACTIVE,
    discount: int = 0,
) -> StockBatch:
    item = Item(sku=sku, name=name or sku.title(), category=category, base_price=Decimal(str(base_price)), unit='kg')
    db.add(item)
    db.flush()
    batch = StockBatch(
        item_id=item.id,
        quantity=quantity,
        delivery_date=expiry_date - timedelta(days=10),
        expiry_date=expiry_date,
        status=status,
        current_discount_percentage=discount,
    )
    db.add(batch)
    db.flush()
    return batch
