"""
Test support, not used by the running app: an in-process stand-in for the
supabase client covering the query-builder calls the hosted store makes, the
test configuration and an app builder on in-memory SQLite.
"""

from dataclasses import dataclass, field
from typing import Optional

from postgrest.exceptions import APIError

ID_COLUMNS = {"documentos": "id_documento", "usuarios": "id_usuario"}


@dataclass
class FakeResponse:
    data: list


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.action = "select"
        self.payload = None
        self.columns = None
        self.filters = []
        self.order_by = None
        self.descending = False
        self.max_rows = None

    def select(self, columns="*"):
        self.columns = None if columns == "*" else [c.strip() for c in columns.split(",")]
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.order_by, self.descending = column, desc
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _project(self, row):
        if self.columns is None:
            return dict(row)
        return {column: row.get(column) for column in self.columns}

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        error = self.client.errors.get(self.table)
        if error is not None:
            raise APIError(dict(error))

        rows = self.client.tables.setdefault(self.table, [])
        if self.action == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for payload in payloads:
                row = dict(payload)
                row[ID_COLUMNS[self.table]] = self.client.next_id(self.table)
                rows.append(row)
                inserted.append(dict(row))
            return FakeResponse(data=inserted)

        matched = [row for row in rows if self._matches(row)]
        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse(data=[dict(row) for row in matched])
        if self.action == "delete":
            self.client.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse(data=[dict(row) for row in matched])

        if self.order_by:
            matched = sorted(matched, key=lambda row: row.get(self.order_by), reverse=self.descending)
        if self.max_rows is not None:
            matched = matched[: self.max_rows]
        return FakeResponse(data=[self._project(row) for row in matched])


@dataclass
class FakeBucket:
    name: str
    files: dict

    def upload(self, path, file, file_options=None):
        self.files[path] = file
        return {"Key": f"{self.name}/{path}"}

    def get_public_url(self, path):
        return f"https://fake.supabase.test/storage/v1/object/public/{self.name}/{path}"


@dataclass
class FakeBucketInfo:
    name: str
    public: bool = False


@dataclass
class FakeStorage:
    files: dict = field(default_factory=dict)
    buckets: list = field(default_factory=list)

    def from_(self, bucket):
        return FakeBucket(bucket, self.files)

    def list_buckets(self):
        return list(self.buckets)

    def create_bucket(self, id, name=None, options=None):
        self.buckets.append(FakeBucketInfo(id, public=bool((options or {}).get("public"))))
        return {"name": id}


@dataclass
class FakeSupabaseClient:
    tables: dict = field(default_factory=dict)
    errors: dict = field(default_factory=dict)
    storage: FakeStorage = field(default_factory=FakeStorage)

    def table(self, name):
        return FakeQuery(self, name)

    def next_id(self, table):
        current = max([row[ID_COLUMNS[table]] for row in self.tables.get(table, [])] + [0])
        return current + 1

    def deny(self, table, message="permission denied for table", code: Optional[str] = "42501"):
        """Make every call on ``table`` fail the way row-level security does."""
        self.errors[table] = {"message": f"{message} {table}", "code": code}


TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "SQLALCHEMY_ENGINE_OPTIONS": {},
    "SUPABASE_URL": None,
    "SUPABASE_KEY": None,
    "SUPABASE_ANON_KEY": None,
    "PREPARAR_BD": False,
    "VERCEL": False,
    "PERSISTENCIA_PREFERIDA": "supabase",
    "COMPACTAR_IDS_USUARIOS": True,
    "HASH_CONTRASENAS": True,
    "BCRYPT_LOG_ROUNDS": 4,
}


def build_test_app(database=True, supabase_client=None, **overrides):
    """App on an in-memory SQLite database (tables created) and/or a fake Supabase."""
    from backend.main import create_app, init_database

    config = dict(TEST_CONFIG, **overrides)
    if not database:
        config["SQLALCHEMY_DATABASE_URI"] = None
    app = create_app(config, supabase_client=supabase_client)
    if database:
        init_database(app)
    return app
