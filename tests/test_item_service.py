from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import select

from db_support import make_session_factory
from pms.models import AuditLog
from pms.services.item_service import create_item, delete_item, get_item, update_item


class ItemServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_create_normalizes_and_rejects_duplicates(self) -> None:
        item = create_item(self.db, sku='milk-1l', name=' Milk ', base_price=Decimal('60'))

        self.assertEqual((item.sku, item.name, item.unit), ('MILK-1L', 'Milk', 'kg'))
        with self.assertRaises(ValueError):
            create_item(self.db, sku='MILK-1L', name='Other', base_price=Decimal('1'))
        with self.assertRaises(ValueError):
            create_item(self.db, sku='FREE', name='Free', base_price=Decimal('0'))

    def test_update_audits_changed_fields(self) -> None:
        item = create_item(self.db, sku='BREAD', name='Bread', base_price=Decimal('45'))
        other = create_item(self.db, sku='BUN', name='Bun', base_price=Decimal('10'))

        update_item(self.db, item_id=item.id, changes={'base_price': Decimal('50.00'), 'category': 'Bakery'})
        self.db.flush()

        audit = self.db.execute(select(AuditLog).where(AuditLog.action == 'ITEM_UPDATED')).scalar_one()
        self.assertEqual(audit.new_values, {'base_price': '50.00', 'category': 'Bakery'})
        with self.assertRaises(ValueError):
            update_item(self.db, item_id=item.id, changes={'sku': other.sku})
        with self.assertRaises(ValueError):
            update_item(self.db, item_id=item.id, changes={'colour': 'red'})

    def test_delete_unreferenced_item(self) -> None:
        item = create_item(self.db, sku='TEMP', name='Temp', base_price=Decimal('1'))

        delete_item(self.db, item_id=item.id)

        with self.assertRaises(LookupError):
            get_item(self.db, item.id)


if __name__ == '__main__':
    unittest.main()
