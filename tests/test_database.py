"""Tests for typed relational tables on SQLite (aiosqlite)."""

from datetime import datetime, timezone

import pytest

from portastore.atom import Atom
from portastore.database import Table
from portastore.errors import (
    ConstraintError,
    DuplicateError,
    HookError,
    InvalidKeyError,
    InvalidQueryError,
    NoPrimaryKeyError,
    NotFoundError,
)
from portastore.interfaces import ProviderStatus
from portastore.providers import SQLAlchemyExecutor
from portastore.statements import (
    AggregateFunc,
    AggregateStatement,
    Condition,
    OrderBy,
    QueryStatement,
    SelectStatement,
    UpdateStatement,
)
from portastore.testing import (
    Account,
    Address,
    HookedRecord,
    Note,
    Profile,
    Status,
    User,
)

BY_MIN_AGE = QueryStatement(
    "by-min-age",
    where=(Condition("age", ">=", "min_age"),),
    order_by=(OrderBy("age", "desc"),),
)
PAGED = QueryStatement(
    "paged",
    order_by=(OrderBy("id"),),
    limit_param="limit",
    offset_param="offset",
)
BY_EMAIL = SelectStatement("by-email", where=(Condition("email", "=", "email"),))
RENAME = UpdateStatement(
    "rename",
    set={"name": "name"},
    where=(Condition("id", "=", "id"),),
)
TOTAL_BALANCE = AggregateStatement("total", AggregateFunc.SUM, field="balance")


@pytest.fixture
async def users(make_executor):
    return Table(await make_executor(User), User)


@pytest.fixture
async def accounts(make_executor):
    table = Table(await make_executor(Account), Account)
    for i, (owner, balance, region) in enumerate([
        ("ada", 100.0, "eu"),
        ("bob", 50.0, "us"),
        ("cy", 25.0, "eu"),
    ], start=1):
        await table.set(i, Account(id=i, owner=owner, balance=balance, region=region))
    return table


async def seed_users(users):
    for i, age in enumerate([20, 35, 50], start=1):
        await users.set(str(i), User(id=str(i), name=f"user{i}", email=f"u{i}@example.com", age=age))


class TestTableCrud:
    """Tests for get/set/delete/exists."""

    async def test_round_trip(self, users):
        created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        user = User(
            id="1", name="Ada", email="ada@example.com", age=36,
            status=Status.SUSPENDED, tags=["admin", "ops"], created=created,
        )
        await users.set("1", user)
        assert await users.get("1") == user

    async def test_set_replaces_every_column(self, users):
        await users.set("1", User(id="1", name="first", nickname="nick", age=30))
        await users.set("1", User(id="1", name="second"))

        user = await users.get("1")
        assert user.name == "second"
        assert user.nickname is None
        assert user.age == 0

    async def test_delete(self, users):
        await users.set("1", User(id="1"))
        await users.delete("1")
        assert not await users.exists("1")
        with pytest.raises(NotFoundError):
            await users.get("1")
        with pytest.raises(NotFoundError):
            await users.delete("1")

    async def test_key_must_match_record(self, users):
        with pytest.raises(InvalidKeyError):
            await users.set("2", User(id="1"))

    async def test_empty_key(self, users):
        with pytest.raises(InvalidKeyError):
            await users.get("")

    async def test_unique_violation(self, users):
        await users.set("1", User(id="1", email="same@example.com"))
        with pytest.raises(DuplicateError):
            await users.set("2", User(id="2", email="same@example.com"))

    async def test_not_null_violation(self, make_executor):
        table = Table(await make_executor(Account), Account)
        with pytest.raises(ConstraintError):
            await table.set(1, Account(id=1, owner=None))

    async def test_int_keys_from_strings(self, accounts):
        assert (await accounts.get("2")).owner == "bob"
        with pytest.raises(InvalidKeyError):
            await accounts.get("two")

    async def test_nested_and_skipped_columns(self, make_executor):
        profiles = Table(await make_executor(Profile), Profile)
        profile = Profile(
            user_id="p1",
            avatar=b"\x89PNG",
            scores=[0.5, 1.5],
            labels={"team": "core"},
            home=Address(street="1 Main", city="Oslo"),
            login_count=3,
            cache_key="transient",
        )
        await profiles.set("p1", profile)

        loaded = await profiles.get("p1")
        assert loaded.avatar == b"\x89PNG"
        assert loaded.scores == [0.5, 1.5]
        assert loaded.labels == {"team": "core"}
        assert loaded.home == Address(street="1 Main", city="Oslo")
        assert loaded.work is None
        assert loaded.login_count == 3
        assert loaded.cache_key == ""

    async def test_no_primary_key(self, make_executor):
        with pytest.raises(NoPrimaryKeyError):
            SQLAlchemyExecutor(None, Note)
        executor = await make_executor(User)
        with pytest.raises(NoPrimaryKeyError):
            Table(executor, Note)


class TestTableStatements:
    """Tests for query/select/update/aggregate."""

    async def test_query_with_params(self, users):
        await seed_users(users)
        found = await users.query(BY_MIN_AGE, {"min_age": 30})
        assert [u.age for u in found] == [50, 35]

    async def test_query_all(self, users):
        await seed_users(users)
        assert len(await users.query()) == 3

    async def test_limit_and_offset_params(self, users):
        await seed_users(users)
        page = await users.query(PAGED, {"limit": 2, "offset": 1})
        assert [u.id for u in page] == ["2", "3"]

    async def test_in_and_enum_params(self, users):
        await seed_users(users)
        await users.set("4", User(id="4", email="u4@example.com", status=Status.SUSPENDED))

        by_ids = QueryStatement("by-ids", where=(Condition("id", "in", "ids"),))
        assert {u.id for u in await users.query(by_ids, {"ids": ["1", "3"]})} == {"1", "3"}

        by_status = QueryStatement("by-status", where=(Condition("status", "=", "status"),))
        assert [u.id for u in await users.query(by_status, {"status": Status.SUSPENDED})] == ["4"]

    async def test_null_conditions(self, users):
        await users.set("1", User(id="1", email="a@x", nickname="n"))
        await users.set("2", User(id="2", email="b@x"))
        no_nick = QueryStatement("no-nick", where=(Condition("nickname", "is null"),))
        assert [u.id for u in await users.query(no_nick)] == ["2"]

    async def test_like(self, users):
        await seed_users(users)
        like = QueryStatement("like", where=(Condition("name", "like", "pattern"),))
        assert len(await users.query(like, {"pattern": "user%"})) == 3

    async def test_select(self, users):
        await seed_users(users)
        assert (await users.select(BY_EMAIL, {"email": "u2@example.com"})).id == "2"
        with pytest.raises(NotFoundError):
            await users.select(BY_EMAIL, {"email": "nobody@example.com"})

    async def test_update_returns_row(self, users):
        await seed_users(users)
        updated = await users.update(RENAME, {"name": "renamed", "id": "2"})
        assert updated.id == "2"
        assert updated.name == "renamed"
        assert (await users.get("2")).name == "renamed"

    @pytest.mark.parametrize("returning", [True, False])
    async def test_update_rewriting_where_column(self, users, returning):
        users.executor.engine.dialect.update_returning = returning
        await seed_users(users)
        change_email = UpdateStatement(
            "change-email",
            set={"email": "new"},
            where=(Condition("email", "=", "old"),),
        )

        updated = await users.update(change_email, {"old": "u2@example.com", "new": "two@example.com"})
        assert updated.id == "2"
        assert updated.email == "two@example.com"

        with pytest.raises(NotFoundError):
            await users.update(change_email, {"old": "u2@example.com", "new": "x@example.com"})

    async def test_update_without_match(self, users):
        with pytest.raises(NotFoundError):
            await users.update(RENAME, {"name": "x", "id": "missing"})

    async def test_update_requires_columns(self, users):
        with pytest.raises(InvalidQueryError):
            await users.update(UpdateStatement("empty", where=(Condition("id", "=", "id"),)), {"id": "1"})

    async def test_aggregates(self, accounts):
        assert await accounts.aggregate() == 3.0
        assert await accounts.aggregate(TOTAL_BALANCE) == 175.0

        eu_avg = AggregateStatement(
            "eu-avg", AggregateFunc.AVG, field="balance",
            where=(Condition("region", "=", "region"),),
        )
        assert await accounts.aggregate(eu_avg, {"region": "eu"}) == 62.5
        assert await accounts.aggregate(
            AggregateStatement("max", AggregateFunc.MAX, field="balance")
        ) == 100.0

    async def test_aggregate_over_no_rows(self, make_executor):
        table = Table(await make_executor(Account), Account)
        assert await table.aggregate(TOTAL_BALANCE) == 0.0

    @pytest.mark.parametrize("statement,params", [
        (QueryStatement("bad-col", where=(Condition("missing", "=", "v"),)), {"v": 1}),
        (QueryStatement("bad-op", where=(Condition("age", "~", "v"),)), {"v": 1}),
        (QueryStatement("no-param", where=(Condition("age", "=", "v"),)), {}),
        (QueryStatement("bad-in", where=(Condition("id", "in", "v"),)), {"v": "1"}),
        (QueryStatement("bad-dir", order_by=(OrderBy("age", "sideways"),)), {}),
        (QueryStatement("bad-limit", limit=-1), {}),
    ])
    async def test_invalid_statements(self, users, statement, params):
        with pytest.raises(InvalidQueryError):
            await users.query(statement, params)

    async def test_sum_requires_field(self, accounts):
        with pytest.raises(InvalidQueryError):
            await accounts.aggregate(AggregateStatement("sum", AggregateFunc.SUM))


class TestTableTransactions:
    """Tests for the caller-owned transaction variants."""

    async def test_commit(self, users):
        async with users.executor.engine.begin() as tx:
            await users.set_tx(tx, "1", User(id="1", email="a@x"))
            await users.set_tx(tx, "2", User(id="2", email="b@x"))
            assert await users.exists_tx(tx, "1")
            assert await users.aggregate_tx(tx) == 2.0
            assert (await users.get_tx(tx, "2")).id == "2"

        assert await users.aggregate() == 2.0

    async def test_rollback(self, users):
        await users.set("keep", User(id="keep", email="k@x"))

        with pytest.raises(RuntimeError):
            async with users.executor.engine.begin() as tx:
                await users.set_tx(tx, "1", User(id="1", email="a@x"))
                await users.delete_tx(tx, "keep")
                raise RuntimeError("abort")

        assert not await users.exists("1")
        assert await users.exists("keep")

    async def test_statements_in_transaction(self, users):
        await seed_users(users)
        async with users.executor.engine.begin() as tx:
            await users.update_tx(tx, RENAME, {"name": "tx", "id": "1"})
            assert (await users.select_tx(tx, BY_EMAIL, {"email": "u1@example.com"})).name == "tx"
            assert len(await users.query_tx(tx, BY_MIN_AGE, {"min_age": 0})) == 3

    async def test_error_inside_transaction_is_mapped(self, users):
        async with users.executor.engine.begin() as tx:
            with pytest.raises(NotFoundError):
                await users.get_tx(tx, "missing")


class TestTableHooks:
    """Tests for lifecycle hooks on tables."""

    async def test_hook_order(self, make_executor):
        table = Table(await make_executor(HookedRecord), HookedRecord)
        await table.set("h", HookedRecord(id="h", value=1))
        await table.get("h")
        await table.query()
        await table.delete("h")
        assert [p for p, _ in HookedRecord.calls] == [
            "before_save", "after_save", "after_load", "after_load",
            "before_delete", "after_delete",
        ]

    async def test_before_save_failure(self, make_executor):
        table = Table(await make_executor(HookedRecord), HookedRecord)
        HookedRecord.fail.add("before_save")
        with pytest.raises(HookError):
            await table.set("h", HookedRecord(id="h"))
        assert not await table.exists("h")


class TestAtomicTable:
    """Tests for the Atom bridge over tables."""

    async def test_shares_rows(self, users):
        await users.set("1", User(id="1", name="Ada", email="a@x"))
        bridge = users.atomic()

        atom = await bridge.get("1")
        assert atom.strings["name"] == "Ada"

        atom.strings["name"] = "Grace"
        await bridge.set("1", atom)
        assert (await users.get("1")).name == "Grace"

    async def test_query_select_delete(self, users):
        await seed_users(users)
        bridge = users.atomic()
        atoms = await bridge.query(BY_MIN_AGE, {"min_age": 30})
        assert [a.ints["age"] for a in atoms] == [50, 35]
        assert (await bridge.select(BY_EMAIL, {"email": "u3@example.com"})).strings["id"] == "3"

        await bridge.delete("3")
        assert not await bridge.exists("3")

    async def test_no_hooks(self, make_executor):
        table = Table(await make_executor(HookedRecord), HookedRecord)
        bridge = table.atomic()
        await bridge.set("h", Atom(strings={"id": "h"}, ints={"value": 1}))
        await bridge.get("h")
        await bridge.delete("h")
        assert HookedRecord.calls == []

    async def test_transaction_variants(self, users):
        bridge = users.atomic()
        atom = Atom(
            strings={"id": "9", "name": "tx", "email": "t@x", "status": "active"},
            ints={"age": 1},
            bools={"active": True},
            string_lists={"tags": []},
        )
        async with users.executor.engine.begin() as tx:
            await bridge.set_tx(tx, "9", atom)
            assert await bridge.exists_tx(tx, "9")
            assert (await bridge.get_tx(tx, "9")).strings["name"] == "tx"
        assert (await users.get("9")).name == "tx"


class TestExecutorLifecycle:
    """Tests for executor health and table management."""

    async def test_health(self, make_executor):
        executor = await make_executor(User)
        assert (await executor.health_check()).status == ProviderStatus.HEALTHY

    async def test_uninitialized_health(self, relational_config):
        executor = SQLAlchemyExecutor(relational_config, User)
        assert (await executor.health_check()).status == ProviderStatus.UNAVAILABLE

    async def test_custom_table_name(self, make_executor):
        executor = await make_executor(User, "people")
        assert executor.table_name == "people"
        assert Table(executor, User).table_name == "people"

    async def test_default_table_name(self, make_executor):
        executor = await make_executor(HookedRecord)
        assert executor.table_name == "hooked_record"
