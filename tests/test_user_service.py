from __future__ import annotations

import unittest

from db_support import add_user, make_session_factory
from pms.models import ApprovalStatus, UserRole
from pms.security.passwords import verify_password
from pms.services.user_service import (
    list_manager_recipients,
    register_user,
    set_approval_status,
    set_user_active,
    set_user_role,
)


class UserServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.admin = add_user(self.db, email='admin@example.com', role=UserRole.ADMIN)

    def tearDown(self) -> None:
        self.db.close()

    def test_staff_signup_is_approved_and_manager_waits(self) -> None:
        staff = register_user(self.db, email=' Staff@Example.com ', name='Staff', password='password123', role=UserRole.STAFF)
        manager = register_user(self.db, email='boss@example.com', name='Boss', password='password123', role=UserRole.MANAGER)

        self.assertEqual(staff.email, 'staff@example.com')
        self.assertEqual(staff.approval_status, ApprovalStatus.APPROVED)
        self.assertEqual(manager.approval_status, ApprovalStatus.PENDING)
        self.assertTrue(verify_password('password123', staff.password_hash))
        self.assertEqual(list_manager_recipients(self.db), [])

        set_approval_status(
            self.db,
            user_id=manager.id,
            approval_status=ApprovalStatus.APPROVED,
            actor_user_id=self.admin.id,
        )
        self.assertEqual([user.email for user in list_manager_recipients(self.db)], ['boss@example.com'])
        with self.assertRaises(ValueError):
            set_approval_status(
                self.db,
                user_id=manager.id,
                approval_status=ApprovalStatus.REJECTED,
                actor_user_id=self.admin.id,
            )

    def test_signup_rules(self) -> None:
        with self.assertRaises(ValueError):
            register_user(self.db, email='root@example.com', name='Root', password='password123', role=UserRole.ADMIN)
        with self.assertRaises(ValueError):
            register_user(self.db, email='admin@example.com', name='Dup', password='password123', role=UserRole.STAFF)
        with self.assertRaises(ValueError):
            register_user(self.db, email='short@example.com', name='Short', password='short', role=UserRole.STAFF)
        with self.assertRaises(ValueError):
            register_user(self.db, email='not-an-email', name='X', password='password123', role=UserRole.STAFF)

    def test_admin_cannot_demote_or_deactivate_self(self) -> None:
        with self.assertRaises(ValueError):
            set_user_role(self.db, user_id=self.admin.id, role=UserRole.STAFF, actor_user_id=self.admin.id)
        with self.assertRaises(ValueError):
            set_user_active(self.db, user_id=self.admin.id, active=False, actor_user_id=self.admin.id)

        other = add_user(self.db, email='staff@example.com')
        self.assertFalse(set_user_active(self.db, user_id=other.id, active=False, actor_user_id=self.admin.id).active)
        with self.assertRaises(LookupError):
            set_user_role(self.db, user_id=999, role=UserRole.STAFF, actor_user_id=self.admin.id)


if __name__ == '__main__':
    unittest.main()
