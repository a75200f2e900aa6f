from typing import Any, Dict, List

import pytest

from typemywordz.usage import InMemoryUsageGate, UsageLimitError
from typemywordz.usage.plans import current_billing_cycle, has_feature, is_paid
from typemywordz.usage.supabase_gate import SupabaseUsageGate


def test_free_plan_within_allowance(gate):
    assert gate.can_transcribe("user-1", 5) is True


def test_free_plan_over_monthly_allowance(gate):
    gate.profiles["user-1"]['monthly_minutes'] = 28

    assert gate.can_transcribe("user-1", 3) is False
    assert gate.can_transcribe("user-1", 2) is True


def test_previous_cycle_minutes_do_not_count(gate):
    gate.profiles["user-1"].update(monthly_minutes=30, billing_cycle="2000-01")

    assert gate.can_transcribe("user-1", 5) is True


def test_per_file_cap_applies_to_regular_users(gate):
    gate.upgrade_plan("user-1", "business")

    with pytest.raises(UsageLimitError) as ei:
        gate.can_transcribe("user-1", 6)
    assert "5 minutes" in str(ei.value)


def test_admin_is_unlimited(gate):
    gate.create_profile("admin-1", "Admin@TypeMyworDz.com")

    assert gate.can_transcribe("admin-1", 600) is True
    assert gate.get_plan_name("admin-1") == "business"


def test_unknown_user_is_denied(gate):
    assert gate.can_transcribe("nobody", 1) is False
    assert gate.get_plan_name("nobody") == "free"


def test_business_plan_ignores_monthly_total(gate):
    gate.upgrade_plan("user-1", "business")
    gate.profiles["user-1"]['monthly_minutes'] = 100000

    assert gate.can_transcribe("user-1", 5) is True


def test_record_usage_accumulates(gate):
    gate.record_usage("user-1", 3)
    result = gate.record_usage("user-1", 2)

    assert result == {'monthly_minutes': 5, 'total_minutes': 5, 'plan': 'free'}


def test_record_usage_starts_new_cycle(gate):
    gate.profiles["user-1"].update(monthly_minutes=25, total_minutes=40, billing_cycle="2000-01")

    result = gate.record_usage("user-1", 4)

    assert result['monthly_minutes'] == 4
    assert result['total_minutes'] == 44
    assert gate.get_profile("user-1")['billing_cycle'] == current_billing_cycle()


def test_persist_result_is_listed(gate):
    record_id = gate.persist_result("user-1", "memo.mp3", "hello", 2, "job-1")

    history = gate.list_transcriptions("user-1")
    assert len(history) == 1
    assert history[0]['id'] == record_id
    assert history[0]['transcription_text'] == "hello"
    assert history[0]['status'] == "completed"
    assert gate.list_transcriptions("someone-else") == []


def test_upgrade_to_unknown_plan_is_rejected(gate):
    with pytest.raises(ValueError):
        gate.upgrade_plan("user-1", "platinum")


def test_plan_helpers():
    assert has_feature("starter", "download_formats")
    assert not has_feature("free", "download_formats")
    assert has_feature("business", "priority_processing")
    assert is_paid("pro") and not is_paid(None)


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table: "FakeTable", action: str, payload=None):
        self.table = table
        self.action = action
        self.payload = payload
        self.filters: Dict[str, Any] = {}

    def select(self, *_):
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def limit(self, _):
        return self

    def order(self, *_, **__):
        return self

    def _matches(self, row):
        return all(row.get(k) == v for k, v in self.filters.items())

    def execute(self):
        if self.action == "insert":
            row = {"id": len(self.table.rows) + 1, **self.payload}
            self.table.rows.append(row)
            return FakeResult([row])
        if self.action == "update":
            for row in self.table.rows:
                if self._matches(row):
                    row.update(self.payload)
            return FakeResult([r for r in self.table.rows if self._matches(r)])
        return FakeResult([dict(r) for r in self.table.rows if self._matches(r)])


class FakeTable:
    def __init__(self):
        self.rows: List[Dict[str, Any]] = []

    def select(self, *_):
        return FakeQuery(self, "select")

    def insert(self, payload):
        return FakeQuery(self, "insert", payload)

    def update(self, payload):
        return FakeQuery(self, "update", payload)


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, FakeTable] = {}

    def table(self, name):
        return self.tables.setdefault(name, FakeTable())


def test_supabase_gate_round_trip():
    client = FakeSupabase()
    gate = SupabaseUsageGate(client=client, admin_emails=[])

    gate.create_profile("u1", "u1@example.com")
    assert gate.can_transcribe("u1", 3) is True

    gate.record_usage("u1", 3)
    record_id = gate.persist_result("u1", "memo.mp3", "text", 3, "job-7")

    assert client.tables["users"].rows[0]['monthly_minutes'] == 3
    assert record_id == "1"
    assert gate.list_transcriptions("u1")[0]['job_id'] == "job-7"
    assert gate.get_profile("missing") is None
