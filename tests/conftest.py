"""
Shared pytest fixtures for quotation/order tests.

Provides:
- In-memory Supabase client (tables, query builder, rpc, auth)
- Failure injection for table operations
- Test data factories
"""

import copy
import os
import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

# Set test environment before importing services
os.environ["TESTING"] = "true"
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"


# ============================================================================
# MOCK FACTORIES
# ============================================================================

def make_uuid():
    """Generate a UUID string."""
    return str(uuid4())


def days_ago(days):
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def make_user(user_id=None, role="admin", email="admin@example.com"):
    """Create a users row."""
    return {
        "id": user_id or make_uuid(),
        "email": email,
        "role": role,
    }


def make_company(company_id=None, status="active", name="Hoja Verde SA de CV"):
    """Create a companies row."""
    return {
        "id": company_id or make_uuid(),
        "name": name,
        "status": status,
    }


def make_quotation(
    quotation_id=None,
    folio="COT-00000001",
    status="approved",
    company_id=None,
    issue_date=None,
    validity_days=30,
    subtotal=200.00,
    tax_amount=32.00,
    total=232.00
):
    """Create a documents row of type quotation."""
    return {
        "id": quotation_id or make_uuid(),
        "type": "quotation",
        "folio": folio,
        "quotation_status": status,
        "order_status": None,
        "quotation_id": None,
        "company_id": company_id or make_uuid(),
        "issue_date": issue_date or days_ago(1),
        "validity_days": validity_days,
        "contact_name": "Ana López",
        "contact_email": "ana@example.com",
        "contact_phone": "+52 55 1234 5678",
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "total": total,
        "notes": "Entrega en almacén",
        "created_by": None,
    }


def make_order(
    order_id=None,
    folio="ORD-00000001",
    status="pending",
    quotation_id=None,
    company_id=None,
    total=232.00
):
    """Create a documents row of type order."""
    return {
        "id": order_id or make_uuid(),
        "type": "order",
        "folio": folio,
        "quotation_status": None,
        "order_status": status,
        "quotation_id": quotation_id,
        "company_id": company_id or make_uuid(),
        "issue_date": days_ago(0),
        "validity_days": None,
        "subtotal": 200.00,
        "tax_amount": 32.00,
        "total": total,
    }


def make_item(
    document_id,
    description="Caja de cartón 40x30",
    quantity=2,
    unit_price=100.00,
    tax_rate=0.16,
    order_index=0
):
    """Create a document_items row with consistent amounts."""
    subtotal = round(quantity * unit_price, 2)
    tax_amount = round(subtotal * tax_rate, 2)
    return {
        "id": make_uuid(),
        "document_id": document_id,
        "product_id": make_uuid(),
        "description": description,
        "unit": "pza",
        "quantity": quantity,
        "unit_price": unit_price,
        "tax_rate": tax_rate,
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "total": round(subtotal + tax_amount, 2),
        "order_index": order_index,
    }


# ============================================================================
# SUPABASE MOCK
# ============================================================================

class MockAPIError(Exception):
    """Store error carrying a Postgres error code."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code


class MockSupabaseResponse:
    """Mock response from Supabase queries."""
    def __init__(self, data=None, count=None):
        self.data = data if data is not None else []
        self.count = count


def _like(pattern):
    parts = [re.escape(p) for p in pattern.split("%")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class MockSupabaseQuery:
    """Query builder over the in-memory tables."""

    def __init__(self, client, table_name):
        self._client = client
        self.table_name = table_name
        self._op = "select"
        self._columns = "*"
        self._count = None
        self._payload = None
        self._filters = []
        self._order = []
        self._range = None
        self._limit = None

    # -- operations --------------------------------------------------------

    def select(self, columns="*", count=None):
        self._op = "select"
        self._columns = columns
        self._count = count
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._op = "update"
        self._payload = data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # -- filters -----------------------------------------------------------

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def ilike(self, column, pattern):
        regex = _like(pattern)
        self._filters.append(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))
        return self

    def order(self, column, desc=False):
        self._order.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def single(self):
        self._limit = 1
        return self

    # -- execution ---------------------------------------------------------

    def _matches(self, row):
        return all(f(row) for f in self._filters)

    def _project(self, row):
        if self._columns.strip() == "*":
            return copy.deepcopy(row)
        columns = [c.strip() for c in self._columns.split(",")]
        return {c: copy.deepcopy(row.get(c)) for c in columns}

    def execute(self):
        self._client.calls.append((self.table_name, self._op))
        self._client.raise_if_failing(self.table_name, self._op)
        rows = self._client.tables.setdefault(self.table_name, [])

        if self._op == "insert":
            return MockSupabaseResponse(data=self._client.insert_rows(self.table_name, self._payload))

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return MockSupabaseResponse(data=updated)

        if self._op == "delete":
            deleted = [row for row in rows if self._matches(row)]
            self._client.tables[self.table_name] = [row for row in rows if not self._matches(row)]
            return MockSupabaseResponse(data=copy.deepcopy(deleted))

        result = [row for row in rows if self._matches(row)]
        for column, desc in reversed(self._order):
            present = [r for r in result if r.get(column) is not None]
            missing = [r for r in result if r.get(column) is None]
            result = sorted(present, key=lambda r: r[column], reverse=desc) + missing
        total = len(result)
        if self._range is not None:
            start, end = self._range
            result = result[start:end + 1]
        if self._limit is not None:
            result = result[:self._limit]

        count = total if self._count else None
        return MockSupabaseResponse(data=[self._project(r) for r in result], count=count)


class MockRpcCall:
    def __init__(self, client, name, params):
        self._client = client
        self._name = name
        self._params = params

    def execute(self):
        self._client.calls.append(("rpc", self._name))
        handler = self._client.rpc_handlers.get(self._name)
        if handler is None:
            raise MockAPIError(f"Could not find the function public.{self._name}", code="PGRST202")
        return MockSupabaseResponse(data=handler(self._params))


class MockAuth:
    """Auth namespace: get_user returns the signed-in user, if any."""

    def __init__(self):
        self.user_id = None
        self.tokens = {}

    def get_user(self, jwt=None):
        user_id = self.tokens.get(jwt) if jwt is not None else self.user_id
        if user_id is None:
            return None
        return SimpleNamespace(user=SimpleNamespace(id=user_id))


class MockSupabaseClient:
    """
    In-memory Supabase client for testing.

    Unique constraints: documents.folio, and documents.quotation_id for
    orders (raise MockAPIError with code 23505 like PostgREST).
    """

    def __init__(self):
        self.tables = {}
        self.calls = []
        self.rpc_handlers = {}
        self.auth = MockAuth()
        self._failures = {}

    def set_table_data(self, table_name, data):
        """Set mock data for a table."""
        self.tables[table_name] = copy.deepcopy(list(data))

    def rows(self, table_name):
        return self.tables.get(table_name, [])

    def table(self, name):
        return MockSupabaseQuery(self, name)

    def rpc(self, name, params=None):
        return MockRpcCall(self, name, params or {})

    def sign_in(self, user_id):
        self.auth.user_id = user_id

    def fail(self, table_name, op, error=None):
        """Make every `op` on `table_name` raise `error`."""
        self._failures[(table_name, op)] = error or MockAPIError(f"{op} on {table_name} failed")

    def raise_if_failing(self, table_name, op):
        error = self._failures.get((table_name, op))
        if error is not None:
            raise error

    def insert_rows(self, table_name, payload):
        rows = self.tables.setdefault(table_name, [])
        new_rows = payload if isinstance(payload, list) else [payload]
        inserted = []
        for data in new_rows:
            row = copy.deepcopy(data)
            row.setdefault("id", make_uuid())
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            if table_name == "documents":
                self._check_unique(rows, row)
            rows.append(row)
            inserted.append(copy.deepcopy(row))
        return inserted

    def _check_unique(self, rows, row):
        for existing in rows:
            if row.get("folio") and existing.get("folio") == row["folio"]:
                raise MockAPIError(
                    'duplicate key value violates unique constraint "documents_folio_key"', code="23505"
                )
            if (
                row.get("type") == "order" and existing.get("type") == "order"
                and row.get("quotation_id") and existing.get("quotation_id") == row["quotation_id"]
            ):
                raise MockAPIError(
                    'duplicate key value violates unique constraint "documents_order_quotation_id_key"',
                    code="23505",
                )


@pytest.fixture
def mock_supabase():
    """Create an empty mock Supabase client."""
    return MockSupabaseClient()


@pytest.fixture
def admin_user():
    return make_user(role="admin")


@pytest.fixture
def client_user():
    return make_user(role="client", email="cliente@example.com")


@pytest.fixture
def company():
    return make_company()


@pytest.fixture
def approved_quotation(company):
    return make_quotation(folio="COT-00000042", status="approved", company_id=company["id"])


@pytest.fixture
def seeded_supabase(mock_supabase, admin_user, client_user, company, approved_quotation):
    """
    Mock Supabase with an admin (signed in), a client, a company and an
    approved quotation with two items.
    """
    quotation_id = approved_quotation["id"]
    mock_supabase.set_table_data("users", [admin_user, client_user])
    mock_supabase.set_table_data("companies", [company])
    mock_supabase.set_table_data("documents", [approved_quotation])
    mock_supabase.set_table_data("document_items", [
        make_item(quotation_id, description="Caja de cartón 40x30", quantity=1, unit_price=100.00, order_index=0),
        make_item(quotation_id, description="Cinta adhesiva", quantity=4, unit_price=25.00, order_index=1),
    ])
    mock_supabase.set_table_data("status_history", [])
    mock_supabase.sign_in(admin_user["id"])
    return mock_supabase
