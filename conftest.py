from __future__ import annotations

import os
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Configure the database before importing the application Base.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["CREATE_TABLES_ON_STARTUP"] = "0"

from retail_api.database import Base  # noqa: E402
from retail_api.core.security import get_password_hash  # noqa: E402
from retail_api.models import auth as auth_models  # noqa: E402
from retail_api.models import inventory as inventory_models  # noqa: E402
from retail_api.models import platform as platform_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def create_company(db, *, name: str = "Acme", slug: str = None) -> platform_models.Company:
    company = platform_models.Company(name=name, slug=slug or name.lower().replace(" ", "-"))
    db.add(company)
    db.commit()
    return company


def create_branch(db, company, *, name: str = "Centro", is_main: bool = False, status: str = "active"):
    branch = platform_models.Branch(company_id=company.id, name=name, is_main_branch=is_main, status=status)
    db.add(branch)
    db.commit()
    return branch


def create_item(db, branch, *, code: str = "SKU-1", name: str = "Tornillo", stock: int = 10, **extra):
    item = inventory_models.Item(
        company_id=branch.company_id,
        branch_id=branch.id,
        code=code,
        name=name,
        price=extra.pop("price", Decimal("12.50")),
        stock_quantity=stock,
        **extra,
    )
    db.add(item)
    db.commit()
    return item


def create_user(db, *, email: str, system_role: str = auth_models.STANDARD_USER, companies=(), password: str = "secret123"):
    user = auth_models.User(
        email=email,
        first_name="User",
        last_name="Test",
        password_hash=get_password_hash(password),
        system_role=system_role,
        is_active=True,
    )
    db.add(user)
    db.flush()
    for company in companies:
        db.add(auth_models.UserCompany(user_id=user.id, company_id=company.id, role=system_role))
    db.commit()
    return user


@pytest.fixture()
def company(db_session):
    return create_company(db_session)


@pytest.fixture()
def global_admin(db_session):
    return create_user(db_session, email="root@example.com", system_role=auth_models.GLOBAL_ADMIN)
