from datetime import date, datetime, timezone

import pytest

from campos.infra.store import (
    _affected,
    build_delete,
    build_insert,
    build_select,
    build_update,
    decode_row,
    encode_value,
)


def test_select_with_all_filters():
    sql, args = build_select(
        "visits",
        eq={"user_id": "u1", "place_id": "p1"},
        gte={"created_at": "2024-05-01T00:00:00+00:00"},
        order_by="created_at",
        descending=True,
        limit=1,
    )
    assert sql == (
        'SELECT "id", "user_id", "place_id", "created_at" FROM "visits"'
        ' WHERE "user_id" = $1 AND "place_id" = $2 AND "created_at" >= $3'
        ' ORDER BY "created_at" DESC LIMIT $4'
    )
    assert args == ["u1", "p1", datetime(2024, 5, 1, tzinfo=timezone.utc), 1]


def test_select_null_and_membership():
    sql, args = build_select("daily_access", eq={"last_claimed_reward": None}, in_={"id": ["a", "b"]})
    assert 'WHERE "last_claimed_reward" IS NULL AND "id" = ANY($1)' in sql
    assert args == [["a", "b"]]


def test_unknown_table_or_column_rejected():
    with pytest.raises(ValueError):
        build_select("users")
    with pytest.raises(ValueError):
        build_select("visits", eq={"user_id; DROP TABLE visits": "x"})


def test_insert_lets_store_generate_id():
    sql, args = build_insert("visits", {"id": None, "user_id": "u1", "place_id": "p1", "created_at": "2024-05-01T09:00:00Z"})
    assert sql.startswith('INSERT INTO "visits" ("user_id", "place_id", "created_at") VALUES ($1, $2, $3) RETURNING')
    assert args[2] == datetime(2024, 5, 1, 9, tzinfo=timezone.utc)


def test_update_and_delete_require_filters():
    sql, args = build_update("daily_access", {"last_claimed_reward": "2024-05-01", "reward_xp_total": 20}, {"id": "d1"})
    assert sql == 'UPDATE "daily_access" SET "last_claimed_reward" = $1, "reward_xp_total" = $2 WHERE "id" = $3'
    assert args == [date(2024, 5, 1), 20, "d1"]
    with pytest.raises(ValueError):
        build_update("daily_access", {"streak": 1}, {})
    with pytest.raises(ValueError):
        build_delete("visits")
    sql, args = build_delete("visits", eq={"user_id": "u1", "place_id": "p1"})
    assert sql == 'DELETE FROM "visits" WHERE "user_id" = $1 AND "place_id" = $2'


def test_wire_conversions():
    assert encode_value("text", "x") == "x"
    assert encode_value("date", None) is None
    row = decode_row({"created_at": datetime(2024, 5, 1, 9, tzinfo=timezone.utc), "day": date(2024, 5, 1), "n": 3})
    assert row == {"created_at": "2024-05-01T09:00:00+00:00", "day": "2024-05-01", "n": 3}
    assert _affected("DELETE 3") == 3
    assert _affected("UPDATE 0") == 0
    assert _affected(None) == 0
