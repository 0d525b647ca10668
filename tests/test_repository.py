"""Tests for the credential repository against an in-memory gateway."""

import asyncio
from dataclasses import replace

import pytest

from securepass.errors import FetchError, NotFoundError, PersistError, ValidationError
from securepass.repository import CredentialRepository


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_load_returns_newest_first(repo, gateway, session):
    a = gateway.seed(session.user_id, "A")
    b = gateway.seed(session.user_id, "B")

    result = await repo.load(session.user_id)

    assert result.ok
    assert [r.id for r in result.value] == [b.id, a.id]
    assert repo.records == result.value


@pytest.mark.asyncio
async def test_load_defaults_to_session_user(repo, gateway, session):
    gateway.seed(session.user_id, "A")
    gateway.seed("someone-else", "B")

    result = await repo.load()

    assert [r.site_name for r in result.value] == ["A"]


@pytest.mark.asyncio
async def test_load_other_user_is_rejected_without_gateway_call(repo, gateway):
    result = await repo.load("someone-else")

    assert isinstance(result.error, ValidationError)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_load_failure_keeps_previous_collection(repo, gateway, session):
    gateway.seed(session.user_id, "A")
    await repo.load()
    before = repo.records
    gateway.seed(session.user_id, "B")
    gateway.fail("list")

    result = await repo.load()

    assert isinstance(result.error, FetchError)
    assert "network unreachable" in result.message
    assert repo.records == before


@pytest.mark.asyncio
async def test_load_drops_records_of_other_owners(repo, gateway, session, monkeypatch):
    mine = gateway.seed(session.user_id, "A")
    theirs = gateway.seed("intruder", "B")

    async def leaky_list(owner_id):
        return [theirs, mine]

    monkeypatch.setattr(gateway, "list", leaky_list)
    result = await repo.load()

    assert [r.id for r in result.value] == [mine.id]


@pytest.mark.asyncio
async def test_create_refuses_record_echoed_for_another_owner(repo, gateway, session, make_draft, monkeypatch):
    insert = gateway.insert

    async def misattributed_insert(owner_id, draft):
        return replace(await insert(owner_id, draft), owner_id="intruder")

    monkeypatch.setattr(gateway, "insert", misattributed_insert)
    result = await repo.create(make_draft())

    assert isinstance(result.error, PersistError)
    assert repo.records == ()


@pytest.mark.asyncio
async def test_update_refuses_record_echoed_for_another_owner(repo, gateway, session, monkeypatch):
    gateway.seed(session.user_id, "A")
    await repo.load()
    before = repo.records
    update = gateway.update

    async def misattributed_update(record_id, fields):
        return replace(await update(record_id, fields), owner_id="intruder")

    monkeypatch.setattr(gateway, "update", misattributed_update)
    result = await repo.update(before[0].id, {"note": "x"})

    assert isinstance(result.error, PersistError)
    assert repo.records == before


@pytest.mark.asyncio
async def test_update_refuses_echo_of_a_different_record(repo, gateway, session, monkeypatch):
    target = gateway.seed(session.user_id, "A")
    other = gateway.seed(session.user_id, "B")
    await repo.load()
    before = repo.records

    async def wrong_row(record_id, fields):
        return other

    monkeypatch.setattr(gateway, "update", wrong_row)
    result = await repo.update(target.id, {"note": "x"})

    assert isinstance(result.error, PersistError)
    assert repo.records == before


@pytest.mark.asyncio
async def test_load_timeout_is_a_fetch_error(repo, gateway, session):
    gateway.seed(session.user_id, "A")
    gateway.delay = 0.2

    result = await repo.load(timeout=0.01)

    assert isinstance(result.error, FetchError)
    assert "timed out" in result.message
    assert repo.records == ()


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_then_load_round_trips_fields(repo, gateway, session, make_draft):
    draft = make_draft()

    created = (await repo.create(draft)).unwrap()
    fresh = CredentialRepository(gateway, session)
    loaded = (await fresh.load()).unwrap()

    assert len(loaded) == 1
    assert loaded[0] == created
    assert loaded[0].to_draft() == draft
    assert loaded[0].owner_id == session.user_id


@pytest.mark.asyncio
async def test_create_prepends_new_record(repo, gateway, session, make_draft):
    gateway.seed(session.user_id, "Old")
    await repo.load()

    result = await repo.create(make_draft(site_name="New"))

    assert [r.site_name for r in repo.records] == ["New", "Old"]
    assert repo.records[0] is result.value


@pytest.mark.asyncio
async def test_create_with_empty_site_name_names_the_field(repo, gateway, make_draft):
    result = await repo.create(make_draft(site_name="", login_name="bob", secret_value="x"))

    assert isinstance(result.error, ValidationError)
    assert result.error.fields == ["site_name"]
    assert "site_name" in result.message
    assert repo.records == ()
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_create_names_every_missing_field(repo, make_draft):
    result = await repo.create(make_draft(site_name="", login_name="", secret_value=""))

    assert result.error.fields == ["site_name", "login_name", "secret_value"]


@pytest.mark.asyncio
async def test_create_rejects_relative_url(repo, make_draft):
    result = await repo.create(make_draft(site_url="github.com"))

    assert result.error.fields == ["site_url"]


@pytest.mark.asyncio
async def test_create_gateway_failure_leaves_collection_unchanged(repo, gateway, session, make_draft):
    gateway.seed(session.user_id, "A")
    await repo.load()
    gateway.fail("insert")

    result = await repo.create(make_draft())

    assert isinstance(result.error, PersistError)
    assert len(repo.records) == 1
    assert len(gateway.rows) == 1


@pytest.mark.asyncio
async def test_concurrent_creates_are_serialized(repo, gateway, make_draft):
    gateway.delay = 0.01

    results = await asyncio.gather(
        repo.create(make_draft(site_name="one")),
        repo.create(make_draft(site_name="two")),
        repo.create(make_draft(site_name="three")),
    )

    assert all(r.ok for r in results)
    assert [r.site_name for r in repo.records] == ["three", "two", "one"]


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_changes_only_the_target(repo, gateway, session):
    a = gateway.seed(session.user_id, "A")
    b = gateway.seed(session.user_id, "B")
    await repo.load()

    result = await repo.update(a.id, {"secret_value": "rotated", "note": "changed"})

    assert result.ok
    updated = repo.get(a.id).unwrap()
    assert updated.secret_value == "rotated"
    assert updated.note == "changed"
    assert updated.updated_at > a.updated_at
    assert updated.created_at == a.created_at
    assert repo.get(b.id).unwrap() == b
    assert [r.id for r in repo.records] == [b.id, a.id]


@pytest.mark.asyncio
async def test_update_merges_locally_when_gateway_does_not_echo(repo, gateway, session):
    gateway.echo_updates = False
    a = gateway.seed(session.user_id, "A")
    await repo.load()

    result = await repo.update(a.id, {"login_name": "bob"})

    assert result.value.login_name == "bob"
    assert result.value.updated_at > a.updated_at
    assert repo.records[0] == result.value


@pytest.mark.asyncio
async def test_update_unknown_id_is_not_found(repo, gateway):
    result = await repo.update("missing", {"note": "x"})

    assert isinstance(result.error, NotFoundError)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_update_cannot_blank_required_field(repo, gateway, session):
    a = gateway.seed(session.user_id, "A")
    await repo.load()

    result = await repo.update(a.id, {"login_name": ""})

    assert result.error.fields == ["login_name"]
    assert repo.get(a.id).unwrap() == a


@pytest.mark.asyncio
async def test_update_cannot_touch_fixed_fields(repo, gateway, session):
    a = gateway.seed(session.user_id, "A")
    await repo.load()

    result = await repo.update(a.id, {"owner_id": "someone-else", "id": "x"})

    assert isinstance(result.error, ValidationError)
    assert sorted(result.error.fields) == ["id", "owner_id"]


@pytest.mark.asyncio
async def test_update_failure_leaves_record_unchanged(repo, gateway, session):
    a = gateway.seed(session.user_id, "A")
    await repo.load()
    gateway.fail("update", "permission denied", status_code=403)

    result = await repo.update(a.id, {"note": "x"})

    assert isinstance(result.error, PersistError)
    assert result.error.status_code == 403
    assert repo.get(a.id).unwrap() == a


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_removes_record(repo, gateway, session):
    a = gateway.seed(session.user_id, "A")
    b = gateway.seed(session.user_id, "B")
    await repo.load()

    result = await repo.delete(a.id)

    assert result.ok
    assert [r.id for r in repo.records] == [b.id]
    assert all(r.id != a.id for r in gateway.rows)


@pytest.mark.asyncio
async def test_delete_failure_keeps_record(repo, gateway, session):
    a = gateway.seed(session.user_id, "A")
    await repo.load()
    gateway.fail("delete")

    result = await repo.delete(a.id)

    assert isinstance(result.error, PersistError)
    assert repo.get(a.id).ok


@pytest.mark.asyncio
async def test_delete_unknown_id_is_not_found(repo, gateway):
    result = await repo.delete("missing")

    assert isinstance(result.error, NotFoundError)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_clear_forgets_records(repo, gateway, session):
    gateway.seed(session.user_id, "A")
    await repo.load()

    await repo.clear()

    assert repo.records == ()
    assert len(repo) == 0


@pytest.mark.asyncio
async def test_clear_during_pending_load_wins(repo, gateway, session):
    gateway.seed(session.user_id, "A")
    gateway.delay = 0.05

    pending = asyncio.ensure_future(repo.load())
    await asyncio.sleep(0.01)
    await repo.clear()
    await pending

    assert repo.records == ()


def test_result_unwrap_raises_the_error(repo):
    result = repo.get("missing")

    with pytest.raises(NotFoundError):
        result.unwrap()
