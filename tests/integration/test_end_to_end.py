"""
End-to-end flows against the in-memory column-family driver.

These exercise declaration, persistence, eager loading and wide-row paging
together through one gateway, with statements rendered and parsed for real.
"""

from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

import pytest

from widerow import Attribute, BelongsTo, BigInteger, HasMany, Model, ModelArray

pytestmark = pytest.mark.integration


@pytest.fixture
def app(memory_gateway):
    class User(Model, gateway=memory_gateway):
        userId = Attribute(str, primary=True)
        name = Attribute(str, not_null=True)
        is_admin = Attribute(bool, default=False)
        visits = Attribute(BigInteger)
        created_at = Attribute(datetime)
        updated_at = Attribute(datetime)

        pets = HasMany("Pet", on="userId")

    class Pet(Model, gateway=memory_gateway):
        petId = Attribute(str, primary=True)
        userId = Attribute(str)
        kind = Attribute(str)

        owner = BelongsTo("User")

    class Inbox(ModelArray, gateway=memory_gateway, primary="userId", reversed=True):
        pass

    return SimpleNamespace(User=User, Pet=Pet, Inbox=Inbox)


@pytest.mark.asyncio
async def test_entity_lifecycle(app):
    ada = await app.User({"name": "Ada"}).create()

    loaded = await app.User.get(ada.userId)
    assert loaded.name == "Ada"
    assert loaded.is_admin is False
    assert isinstance(loaded.created_at, datetime)
    assert loaded.loaded and loaded.dirty == set()

    loaded.is_admin = True
    loaded.set({"name": "Ada L."})
    await loaded.save()

    again = await app.User.get(ada.userId)
    assert again.name == "Ada L."
    assert again.is_admin is False

    assert await app.User.count() == 1
    await again.delete()
    assert await app.User.get(ada.userId) is None
    assert await app.User.count() == 0


@pytest.mark.asyncio
async def test_find_by_primary_and_projection(app):
    for user_id, name in (("u1", "Ann"), ("u2", "Bob"), ("u3", "Cy")):
        await app.User(userId=user_id, name=name).create()

    users = await app.User.find(where=["userId IN (:ids)", {"ids": ["u1", "u3"]}])
    assert sorted(u.name for u in users) == ["Ann", "Cy"]

    names = await app.User.find(columns=["name"], where=[["u2"]], as_=dict)
    assert [n["name"] for n in names] == ["Bob"]


@pytest.mark.asyncio
async def test_counters(app):
    await app.User(userId="u1", name="Ann").create()

    await app.User.incr("u1", "visits", 5)
    user = await app.User.get("u1")
    await user.decr("visits", 2)

    assert (await app.User.get("u1")).visits == 3


@pytest.mark.asyncio
async def test_eager_loading_across_types(app):
    await app.User(userId="u1", name="Ann").create()
    await app.Pet(petId="p1", userId="u1", kind="cat").create()
    await app.Pet(petId="p2", userId="u1", kind="dog").create()
    await app.Pet(petId="p3", userId="u2", kind="owl").create()

    user = await app.User.get("u1", eager=["pets"])
    assert sorted(p.kind for p in user.pets) == ["cat", "dog"]
    assert user.to_serializable(["name", "pets"])["pets"][0]["userId"] == "u1"

    pet = await app.Pet.get("p1", eager={"owner": {"pets": {}}})
    assert pet.owner.name == "Ann"
    assert len(pet.owner.pets) == 2


@pytest.mark.asyncio
async def test_wide_row_paging_on_reversed_family(app):
    inbox = app.Inbox("u1")
    inbox.set([{"name": f"m{i:02d}", "value": f"message {i}"} for i in range(7)])
    await inbox.create()

    reader = app.Inbox("u1")
    first = await reader.range(first=3)
    second = await reader.next(3)
    third = await reader.next(3)

    assert [c.name for c in first + second + third] == [f"m{i:02d}" for i in range(7)]
    assert reader.has_next() is False
    assert reader.row("m03").value == "message 3"

    latest = app.Inbox("u1")
    await latest.range(reversed=True, first=2)
    assert [c.name for c in latest] == ["m05", "m06"]
    await latest.prev(10)
    assert latest.row_count() == 7
    assert latest.has_prev() is False

    await reader.delete(["m00", "m01"])
    fresh = app.Inbox("u1")
    await fresh.range()
    assert fresh.row(0).name == "m02"
