# Overview: Pytest coverage for repositories, tenant scoping and lifecycle stamping.

"""
Repository and lifecycle tests.

Verifies:
1. Soft-deleted rows disappear from normal reads but stay in the table
2. Audit columns and org_id are stamped inside the flush from request context
3. TenantRepository never returns or writes another tenant's rows
4. Paging metadata is computed from the filtered total
"""

from decimal import Decimal

import pytest
from flask import g

from tenantory.errors import TenantAccessError, TenantContextError
from tenantory.extensions import db
from tenantory.models import Membership, Product
from tenantory.repository import Repository, TenantRepository


def _product(org, sku, name=None, **kwargs):
    return Product(org_id=org.id, sku=sku, name=name or sku, price=10, stock_quantity=0, **kwargs)


# =============================================================================
# SOFT DELETE
# =============================================================================


class TestSoftDelete:
    def test_deleted_row_hidden_but_kept(self, db_session, org_a):
        repo = TenantRepository(Product, org_a.id)
        product = repo.add(_product(org_a, "SD-1"))
        db_session.commit()

        assert repo.delete(product.id) is True
        db_session.commit()

        assert repo.get_by_id(product.id) is None
        assert repo.count() == 0

        kept = TenantRepository(Product, org_a.id, include_deleted=True).get_by_id(product.id)
        assert kept is not None
        assert kept.is_deleted is True
        assert kept.deleted_at is not None

    def test_delete_missing_id_returns_false(self, db_session, org_a):
        import uuid
        assert TenantRepository(Product, org_a.id).delete(uuid.uuid4()) is False

    def test_membership_is_hard_deleted(self, db_session, org_a, owner_a):
        repo = TenantRepository(Membership, org_a.id)
        membership = repo.first_or_none(Membership.user_id == owner_a.id)
        repo.delete(membership)
        db_session.commit()
        assert db_session.query(Membership).filter_by(user_id=owner_a.id).count() == 0


# =============================================================================
# LIFECYCLE STAMPING
# =============================================================================


class TestLifecycleStamping:
    def test_audit_columns_from_request_actor(self, app, db_session, org_a):
        with app.test_request_context():
            g.actor_id = "user_auditor"
            product = _product(org_a, "AUD-1")
            db.session.add(product)
            db.session.commit()
            assert product.created_by == "user_auditor"
            assert product.created_at is not None
            assert product.updated_at is None

            g.actor_id = "user_editor"
            product.name = "Renamed"
            db.session.commit()
            assert product.updated_by == "user_editor"
            assert product.updated_at is not None

    def test_org_id_stamped_from_request_tenant(self, app, db_session, org_a):
        with app.test_request_context():
            g.org_id = org_a.id
            product = Product(sku="STAMP-1", name="Stamped", price=1, stock_quantity=0)
            db.session.add(product)
            db.session.commit()
            assert product.org_id == org_a.id

    def test_explicit_org_id_never_overwritten(self, app, db_session, org_a, org_b):
        with app.test_request_context():
            g.org_id = org_a.id
            product = _product(org_b, "KEEP-1")
            db.session.add(product)
            db.session.commit()
            assert product.org_id == org_b.id

    def test_tenant_row_without_tenant_is_rejected(self, db_session):
        db_session.add(Product(sku="ORPHAN", name="Orphan", price=1, stock_quantity=0))
        with pytest.raises(TenantContextError):
            db_session.flush()
        db_session.rollback()


# =============================================================================
# TENANT ISOLATION
# =============================================================================


class TestTenantRepository:
    def test_foreign_id_behaves_like_missing(self, db_session, org_a, org_b):
        product = TenantRepository(Product, org_a.id).add(_product(org_a, "ISO-1"))
        db_session.commit()

        assert TenantRepository(Product, org_b.id).get_by_id(product.id) is None
        assert TenantRepository(Product, org_b.id).exists(Product.sku == "ISO-1") is False

    def test_write_of_foreign_row_raises(self, db_session, org_a, org_b):
        product = TenantRepository(Product, org_a.id).add(_product(org_a, "ISO-2"))
        db_session.commit()

        with pytest.raises(TenantAccessError):
            TenantRepository(Product, org_b.id).update(product)
        with pytest.raises(TenantAccessError):
            TenantRepository(Product, org_b.id).delete(product)

    def test_same_sku_allowed_in_different_tenants(self, db_session, org_a, org_b):
        TenantRepository(Product, org_a.id).add(_product(org_a, "SHARED"))
        TenantRepository(Product, org_b.id).add(_product(org_b, "SHARED"))
        db_session.commit()
        assert Repository(Product).count(Product.sku == "SHARED") == 2

    def test_requires_org_id(self, db_session):
        with pytest.raises(TenantAccessError):
            TenantRepository(Product, None)

    def test_rejects_global_model(self, db_session, org_a):
        from tenantory.models import ApplicationUser
        with pytest.raises(TypeError):
            TenantRepository(ApplicationUser, org_a.id)

    def test_supporting_records_are_scoped(self, db_session, org_a, org_b):
        from tenantory.models import Customer, Expense, ExpenseCategory, Supplier

        category = TenantRepository(ExpenseCategory, org_a.id).add(ExpenseCategory(org_id=org_a.id, name="Rent"))
        db_session.flush()
        records = [
            Customer(org_id=org_a.id, name="Walk-in"),
            Supplier(org_id=org_a.id, name="Parts Ltd"),
            Expense(org_id=org_a.id, description="October rent", amount=Decimal("1200.00"), expense_category_id=category.id),
        ]
        for record in records:
            TenantRepository(type(record), org_a.id).add(record)
        db_session.commit()

        for record in records:
            assert TenantRepository(type(record), org_a.id).get_by_id(record.id) is not None
            assert TenantRepository(type(record), org_b.id).get_by_id(record.id) is None

        expense = records[2]
        assert expense.to_dict()["expense_category_id"] == str(category.id)
        assert TenantRepository(Expense, org_a.id).delete(expense) is True
        db_session.commit()
        assert TenantRepository(Expense, org_a.id).count() == 0


# =============================================================================
# PAGING
# =============================================================================


class TestPaging:
    @pytest.fixture
    def twenty_five_products(self, db_session, org_a):
        repo = TenantRepository(Product, org_a.id)
        repo.add_range(_product(org_a, f"PG-{i:02d}") for i in range(25))
        db_session.commit()
        return repo

    def test_middle_page(self, twenty_five_products):
        page = twenty_five_products.get_paged(2, 10, order_by=Product.sku)
        assert len(page.items) == 10
        assert page.items[0].sku == "PG-10"
        assert page.total_count == 25
        assert page.total_pages == 3
        assert page.has_next_page is True
        assert page.has_prev_page is True

    def test_last_page(self, twenty_five_products):
        page = twenty_five_products.get_paged(3, 10, order_by=Product.sku)
        assert len(page.items) == 5
        assert page.has_next_page is False

    def test_criteria_filter_total(self, twenty_five_products):
        page = twenty_five_products.get_paged(1, 10, Product.sku.like("PG-0%"))
        assert page.total_count == 10
        assert page.total_pages == 1

    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0)])
    def test_invalid_paging(self, twenty_five_products, page, page_size):
        with pytest.raises(ValueError):
            twenty_five_products.get_paged(page, page_size)
