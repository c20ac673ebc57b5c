"""Tests for tenant scoping helpers."""

from types import SimpleNamespace

import pytest
from flask import Flask, g
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from werkzeug.exceptions import Forbidden, NotFound

from app.practice.errors import AuthenticationMissing, ScopeMissing
from app.practice.models import Base, Firm, FirmUser
from app.practice.modules.clients.models import Client
from app.practice.modules.tasks.models import Task
from app.practice.tenancy import (
    Principal,
    TenantScope,
    belongs_to_scope,
    client_column,
    current_scope,
    get_scoped_or_404,
    require_firm_wide_scope,
    scope_for,
    scoped,
    setup_tenant_scope,
)


@pytest.fixture()
def session():
    engine = create_engine("sqlite://", future=True)
    Base.metadata.create_all(bind=engine)
    with Session(engine, future=True) as s:
        s.add_all([Firm(id=7, name="Seven"), Firm(id=9, name="Nine")])
        s.add_all(
            [
                Client(id=1, firm_id=7, name="Seven Client A"),
                Client(id=2, firm_id=7, name="Seven Client B"),
                Client(id=3, firm_id=9, name="Nine Client"),
            ]
        )
        s.add_all(
            [
                Task(id=10, firm_id=7, client_id=1, title="Year end"),
                Task(id=11, firm_id=7, client_id=2, title="Payroll"),
                Task(id=12, firm_id=9, client_id=3, title="HST filing"),
            ]
        )
        s.commit()
        yield s


class TestPrincipal:
    def test_from_user_normalizes_role(self):
        p = Principal.from_user(SimpleNamespace(id=5, firm_id=3, role=" Firm_Admin ", client_id=None))
        assert p == Principal(id=5, firm_id=3, role="firm_admin", client_id=None)

    def test_missing_role_is_empty(self):
        assert Principal.from_user(SimpleNamespace(id=5, firm_id=None, role=None)).role == ""

    @pytest.mark.parametrize(
        "user",
        [
            SimpleNamespace(id="5", firm_id=3, role="staff"),
            SimpleNamespace(id=None, firm_id=3, role="staff"),
            SimpleNamespace(id=5, firm_id="3", role="staff"),
            SimpleNamespace(id=5, firm_id=3, role="client", client_id="1"),
        ],
    )
    def test_rejects_untyped_identity(self, user):
        with pytest.raises(ValueError):
            Principal.from_user(user)

    def test_immutable(self):
        p = Principal(id=1, firm_id=2, role="staff")
        with pytest.raises(AttributeError):
            p.firm_id = 3  # type: ignore[misc]


class TestScopeFor:
    def test_no_principal(self):
        assert scope_for(None) is None

    def test_no_firm(self):
        assert scope_for(Principal(id=1, firm_id=None, role="super_admin")) is None

    def test_staff_scope_is_firm_wide(self):
        assert scope_for(Principal(id=1, firm_id=7, role="staff", client_id=1)) == TenantScope(firm_id=7)

    def test_client_user_narrowed(self):
        assert scope_for(Principal(id=1, firm_id=7, role="client", client_id=2)) == TenantScope(firm_id=7, client_id=2)

    def test_client_user_without_client_has_no_scope(self):
        assert scope_for(Principal(id=1, firm_id=7, role="client", client_id=None)) is None


class TestRequestScope:
    def test_missing_scope_fails_closed(self):
        app = Flask(__name__)
        with app.test_request_context("/"):
            g.principal = None
            setup_tenant_scope()
            with pytest.raises(ScopeMissing) as exc:
                current_scope()
            assert isinstance(exc.value, AuthenticationMissing)
            assert exc.value.code == 401

    def test_scope_attached_from_principal(self):
        app = Flask(__name__)
        with app.test_request_context("/"):
            g.principal = Principal(id=1, firm_id=9, role="staff")
            setup_tenant_scope()
            assert current_scope() == TenantScope(firm_id=9)

    def test_unlinked_client_user_fails_closed(self):
        app = Flask(__name__)
        with app.test_request_context("/"):
            g.principal = Principal(id=1, firm_id=9, role="client")
            setup_tenant_scope()
            with pytest.raises(ScopeMissing):
                current_scope()

    def test_firm_wide_routes_reject_narrowed_scope(self):
        app = Flask(__name__)
        view = require_firm_wide_scope(lambda: "ok")
        with app.test_request_context("/"):
            g.principal = Principal(id=1, firm_id=9, role="client", client_id=3)
            setup_tenant_scope()
            with pytest.raises(Forbidden):
                view()
        with app.test_request_context("/"):
            g.principal = Principal(id=1, firm_id=9, role="staff", client_id=3)
            setup_tenant_scope()
            assert view() == "ok"


class TestScopedQueries:
    def test_filters_by_firm(self, session):
        ids = [t.id for t in scoped(session.query(Task), Task, TenantScope(firm_id=7)).order_by(Task.id)]
        assert ids == [10, 11]

    def test_filters_by_client_when_narrowed(self, session):
        scope = TenantScope(firm_id=7, client_id=2)
        assert [t.id for t in scoped(session.query(Task), Task, scope)] == [11]
        assert [c.id for c in scoped(session.query(Client), Client, scope)] == [2]

    def test_firm_level_rows_hidden_from_narrowed_scope(self, session):
        session.add(FirmUser(user_id=1, firm_id=7, role="staff", permissions=["tasks"]))
        session.commit()
        assert scoped(session.query(FirmUser), FirmUser, TenantScope(firm_id=7)).count() == 1
        assert scoped(session.query(FirmUser), FirmUser, TenantScope(firm_id=7, client_id=1)).count() == 0

    def test_models_declare_client_column(self):
        assert client_column(Client) == "id"
        assert client_column(Task) == "client_id"
        assert client_column(FirmUser) is None


class TestGetScopedOr404:
    def test_own_record(self, session):
        task = get_scoped_or_404(session, Task, 10, TenantScope(firm_id=7))
        assert task.title == "Year end"

    def test_foreign_record_same_as_missing(self, session):
        scope = TenantScope(firm_id=9)
        with pytest.raises(NotFound) as foreign:
            get_scoped_or_404(session, Task, 10, scope)
        with pytest.raises(NotFound) as missing:
            get_scoped_or_404(session, Task, 999, scope)
        assert type(foreign.value) is type(missing.value)
        assert foreign.value.code == missing.value.code == 404
        assert foreign.value.description == missing.value.description == "Not found"

    def test_client_narrowing_applies(self, session):
        scope = TenantScope(firm_id=7, client_id=1)
        assert get_scoped_or_404(session, Client, 1, scope).id == 1
        with pytest.raises(NotFound):
            get_scoped_or_404(session, Client, 2, scope)
        with pytest.raises(NotFound):
            get_scoped_or_404(session, Task, 11, scope)

    def test_belongs_to_scope_plain_records(self):
        record = SimpleNamespace(firm_id=7)
        assert belongs_to_scope(record, TenantScope(firm_id=7))
        assert not belongs_to_scope(record, TenantScope(firm_id=9))
        assert not belongs_to_scope(record, TenantScope(firm_id=7, client_id=1))
