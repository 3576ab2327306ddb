import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from postgrest.exceptions import APIError

from journalflow.core.config import WorkflowConfig
from journalflow.models.user import Role, UserProfile
from journalflow.schemas.workflow import SubmissionCreate
from journalflow.services.lifecycle_service import LifecycleService
from journalflow.services.review_service import ReviewService
from journalflow.services.submission_store import SubmissionStore
from journalflow.services.user_directory import UserDirectory
from journalflow.services.visibility_service import VisibilityService

# === 全局测试配置 ===
# 中文注释:
# 1. FakeSupabase 是 supabase-py 查询构造器的内存实现（select/eq/contains/in_/order/limit/insert/update/delete/execute），
#    行数据以 JSON 形式保存，行为与 PostgREST 返回“写入后的行”一致。
# 2. 固定时钟（FakeClock）让审稿期限、逾期判断可断言。


class _Resp:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.filters: list[Callable[[dict], bool]] = []
        self.order_by: Optional[tuple[str, bool]] = None
        self.max_rows: Optional[int] = None

    def select(self, *_columns, **_kwargs):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        wanted = set(values)
        self.filters.append(lambda row: row.get(column) in wanted)
        return self

    def contains(self, column, values):
        self.filters.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def _matching(self, rows: list[dict]) -> list[dict]:
        return [row for row in rows if all(f(row) for f in self.filters)]

    def execute(self):
        self.db.calls.append((self.table_name, self.op))
        if self.db.fail_with is not None:
            raise self.db.fail_with
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            for item in payload:
                if any(row.get("id") == item.get("id") for row in rows):
                    raise APIError({"message": "duplicate key value violates unique constraint", "code": "23505"})
            rows.extend(copy.deepcopy(payload))
            return _Resp(copy.deepcopy(payload))

        if self.op == "update":
            if self.db.before_update is not None:
                hook = self.db.before_update
                self.db.before_update = None
                hook(self.db)
            updated = []
            for row in self._matching(rows):
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return _Resp(updated)

        if self.op == "delete":
            removed = self._matching(rows)
            rows[:] = [row for row in rows if row not in removed]
            return _Resp(copy.deepcopy(removed))

        found = self._matching(rows)
        if self.order_by is not None:
            column, desc = self.order_by
            found = sorted(found, key=lambda row: str(row.get(column) or ""), reverse=desc)
        if self.max_rows is not None:
            found = found[: self.max_rows]
        return _Resp(copy.deepcopy(found))


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None
        # 在下一次 update 真正落库之前执行（用于模拟并发写入）
        self.before_update: Optional[Callable[["FakeSupabase"], None]] = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def row(self, table: str, row_id: str) -> dict:
        for row in self.tables.get(table, []):
            if row.get("id") == row_id:
                return row
        raise KeyError(row_id)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


USERS = {
    "A1": Role.AUTHOR,
    "A2": Role.AUTHOR,
    "E1": Role.EDITOR,
    "E2": Role.EDITOR,
    "ADM": Role.ADMIN,
    "R1": Role.REVIEWER,
    "R2": Role.REVIEWER,
    "R3": Role.REVIEWER,
    "C1": Role.COPYEDITOR,
    "P1": Role.PUBLISHER,
    "RD": Role.READER,
}


@pytest.fixture
def fake_db() -> FakeSupabase:
    db = FakeSupabase()
    db.tables["user_profiles"] = [
        {"id": uid, "email": f"{uid.lower()}@example.com", "full_name": f"User {uid}", "role": role.value}
        for uid, role in USERS.items()
    ]
    return db


@pytest.fixture
def users() -> dict[str, UserProfile]:
    return {
        uid: UserProfile(id=uid, email=f"{uid.lower()}@example.com", full_name=f"User {uid}", role=role)
        for uid, role in USERS.items()
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def workflow_config() -> WorkflowConfig:
    return WorkflowConfig(
        review_due_days=14,
        due_soon_days=7,
        require_complete_round=False,
        cache_ttl_sec=30.0,
    )


@pytest.fixture
def store(fake_db, workflow_config) -> SubmissionStore:
    return SubmissionStore(fake_db, config=workflow_config)


@pytest.fixture
def directory(fake_db) -> UserDirectory:
    return UserDirectory(fake_db)


@pytest.fixture
def lifecycle(store, directory, workflow_config, clock) -> LifecycleService:
    return LifecycleService(store, directory, config=workflow_config, clock=clock)


@pytest.fixture
def review_service(store, workflow_config, clock) -> ReviewService:
    return ReviewService(store, config=workflow_config, clock=clock)


@pytest.fixture
def visibility(store) -> VisibilityService:
    return VisibilityService(store)


@pytest.fixture
def draft(lifecycle, users):
    return lifecycle.create_draft(
        SubmissionCreate(
            title="Graph Neural Networks for Protein Folding",
            abstract="We study message passing on residue graphs.",
            authors=["Ada Author"],
            keywords=["gnn", "proteins"],
            category="Computational Biology",
            document="manuscripts/gnn-v1.pdf",
        ),
        users["A1"],
    )


@pytest.fixture
def submitted(lifecycle, users, draft):
    return lifecycle.submit(draft.id, users["A1"])


@pytest.fixture
def under_review(lifecycle, users, submitted):
    return lifecycle.assignments.assign_reviewers_and_open_review(submitted.id, ["R1", "R2"], users["E1"])


# === API 测试 ===


class ActingUser:
    """切换当前请求身份（替换 get_current_profile）"""

    def __init__(self, profiles: dict[str, UserProfile]):
        self.profiles = profiles
        self.current: Optional[UserProfile] = None

    def __call__(self, uid: str) -> UserProfile:
        self.current = self.profiles[uid]
        return self.current


@pytest.fixture
def act_as(users) -> ActingUser:
    return ActingUser(users)


@pytest_asyncio.fixture
async def api_client(store, directory, act_as):
    from journalflow.api.v1.deps import get_store
    from journalflow.core.roles import get_current_profile, get_user_directory
    from main import app

    def _current_profile() -> UserProfile:
        assert act_as.current is not None, "call act_as(<user id>) first"
        return act_as.current

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_user_directory] = lambda: directory
    app.dependency_overrides[get_current_profile] = _current_profile
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
