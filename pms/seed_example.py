from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from pms.config import settings
from pms.db import SessionLocal, engine
from pms.models import ApprovalStatus, Base, StockBatch, User, UserRole
from pms.security.passwords import hash_password
from pms.services.expiry_classifier import to_local_date
from pms.services.inventory_service import add_stock_batch

DEMO_USERS = [
    ('admin@pms.local', 'Admin', 'adminpass', UserRole.ADMIN),
    ('manager@pms.local', 'Store Manager', 'managerpass', UserRole.MANAGER),
    ('staff@pms.local', 'Floor Staff', 'staffpass', UserRole.STAFF),
]

# sku, name, category, base price, quantity, days until expiry
DEMO_STOCK = [
    ('MILK-1L', 'Whole Milk 1L', 'Dairy', Decimal('60.00'), 20, 0),
    ('BREAD-WW', 'Wholewheat Bread', 'Bakery', Decimal('45.00'), 30, 1),
    ('YOG-500', 'Greek Yogurt 500g', 'Dairy', Decimal('120.00'), 30, 2),
    ('SPIN-250', 'Baby Spinach 250g', 'Produce', Decimal('80.00'), 15, 5),
    ('CHKN-1KG', 'Chicken Breast 1kg', 'Meat', Decimal('320.00'), 10, 8),
]


def seed() -> None:
    Base.metadata.create_all(engine)
    today = to_local_date(datetime.now(tz=timezone.utc), settings.tz)

    with SessionLocal() as db:
        for email, name, password, role in DEMO_USERS:
            existing = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if existing:
                continue
            db.add(
                User(
                    email=email,
                    name=name,
                    password_hash=hash_password(password),
                    role=role,
                    approval_status=ApprovalStatus.APPROVED,
                    active=True,
                )
            )
        db.flush()

        if not db.execute(select(StockBatch.id)).first():
            for sku, name, category, price, quantity, days in DEMO_STOCK:
                add_stock_batch(
                    db,
                    sku=sku,
                    name=name,
                    category=category,
                    base_price=price,
                    quantity=quantity,
                    delivery_date=today - timedelta(days=2),
                    expiry_date=today + timedelta(days=days),
                )

        db.commit()


if __name__ == '__main__':
    seed()
