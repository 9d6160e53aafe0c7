from __future__ import annotations

from types import SimpleNamespace

import pytest

from widerow import associations
from widerow.errors import AssociationError
from widerow.model import Model
from widerow.schema import Attribute, BelongsTo, HasMany, HasOne
from conftest import make_row

ROWS = {
    "SELECT * FROM Owner USING CONSISTENCY ONE WHERE KEY IN ('o1', 'o2')": [
        make_row("o1", ("KEY", "o1"), ("name", "Ann")),
        make_row("o2", ("KEY", "o2"), ("name", "Bob")),
    ],
    "SELECT * FROM Owner USING CONSISTENCY ONE WHERE KEY='o1'": [
        make_row("o1", ("KEY", "o1"), ("name", "Ann")),
    ],
    "SELECT * FROM Pet USING CONSISTENCY ONE WHERE KEY='p1'": [
        make_row("p1", ("KEY", "p1"), ("ownerId", "o1")),
    ],
    "SELECT * FROM Pet USING CONSISTENCY ONE WHERE ownerId='o1'": [
        make_row("p1", ("KEY", "p1"), ("ownerId", "o1")),
        make_row("p2", ("KEY", "p2"), ("ownerId", "o1")),
    ],
    "SELECT * FROM Profile USING CONSISTENCY ONE WHERE ownerId='o1'": [
        make_row("pr1", ("KEY", "pr1"), ("ownerId", "o1"), ("bio", "hi")),
    ],
}


@pytest.fixture
def zoo(gateway, driver):
    class Owner(Model, gateway=gateway):
        ownerId = Attribute(str, primary=True)
        name = Attribute(str)
        pets = HasMany("Pet", on="ownerId")
        profile = HasOne("Profile", on="ownerId")

    class Pet(Model, gateway=gateway):
        petId = Attribute(str, primary=True)
        ownerId = Attribute(str)
        owner = BelongsTo("Owner")

    class Profile(Model, gateway=gateway):
        profileId = Attribute(str, primary=True)
        ownerId = Attribute(str)
        bio = Attribute(str)

    driver.handler = lambda statement: ROWS.get(statement, [])
    return SimpleNamespace(Owner=Owner, Pet=Pet, Profile=Profile)


@pytest.mark.asyncio
async def test_find_attaches_every_requested_association(driver, zoo):
    ann, bob = await zoo.Owner.find(where=[["o1", "o2"]], eager=["pets", "profile"])

    assert [pet.petId for pet in ann.pets] == ["p1", "p2"]
    assert ann.profile.bio == "hi"
    assert bob.pets == []
    assert bob.profile is None
    # one query for the owners, then one per association per owner
    assert len(driver.statements) == 5


@pytest.mark.asyncio
async def test_unknown_association_names_are_ignored(driver, zoo):
    (ann,) = await zoo.Owner.find(where=["o1"], eager=["nope"])
    assert ann.name == "Ann"
    assert len(driver.statements) == 1


@pytest.mark.asyncio
async def test_belongs_to_resolves_through_foreign_key(driver, zoo):
    pet = await zoo.Pet.get("p1", eager=["owner"])

    assert pet.owner.name == "Ann"
    assert "SELECT * FROM Owner USING CONSISTENCY ONE WHERE KEY='o1'" in driver.statements


@pytest.mark.asyncio
async def test_nested_graph_loads_associations_of_associations(zoo):
    pet = await zoo.Pet.get("p1", eager={"owner": {"pets": {}}})

    assert [p.petId for p in pet.owner.pets] == ["p1", "p2"]


@pytest.mark.asyncio
async def test_missing_foreign_key_skips_the_query(driver, zoo):
    stray = zoo.Pet({"petId": "p9"})
    await associations.resolve([stray], {"eager": {"owner": {}}})

    assert stray.owner is None
    assert driver.statements == []


@pytest.mark.asyncio
async def test_one_failure_fails_the_plan_and_attaches_nothing(driver, zoo):
    def handler(statement):
        if "FROM Profile" in statement:
            raise ValueError("boom")
        return ROWS.get(statement, [])

    driver.handler = handler
    ann = zoo.Owner({"ownerId": "o1", "name": "Ann"})

    with pytest.raises(AssociationError) as info:
        await associations.resolve([ann], {"eager": {"pets": {}, "profile": {}}})

    assert info.value.association == "profile"
    assert info.value.cfname == "Owner"
    assert ann.pets == []


def test_plan_orders_tasks_by_model_then_request(zoo):
    a, b = zoo.Owner("o1"), zoo.Owner("o2")
    tasks = associations.plan([a, b], {"eager": {"profile": {}, "pets": {}, "nope": {}}})

    assert [(t.model, t.name) for t in tasks] == [
        (a, "profile"),
        (a, "pets"),
        (b, "profile"),
        (b, "pets"),
    ]
    assert {t.descriptor.kind for t in tasks} == {"has_one", "has_many"}


@pytest.mark.asyncio
async def test_failure_waits_for_sibling_fetches_to_settle(driver, zoo):
    def handler(statement):
        if "FROM Profile" in statement:
            raise ValueError("boom")
        return ROWS.get(statement, [])

    driver.handler = handler
    driver.delay = lambda statement: 0.05 if "FROM Pet" in statement else 0
    ann = zoo.Owner({"ownerId": "o1", "name": "Ann"})

    with pytest.raises(AssociationError) as info:
        await associations.resolve([ann], {"eager": {"profile": {}, "pets": {}}})

    assert info.value.association == "profile"
    assert "SELECT * FROM Pet USING CONSISTENCY ONE WHERE ownerId='o1'" in driver.completed
    assert ann.pets == []


@pytest.mark.asyncio
async def test_nested_graph_accepts_list_shorthand(zoo):
    pet = await zoo.Pet.get("p1", eager={"owner": ["pets"]})

    assert pet.owner.name == "Ann"
    assert [p.petId for p in pet.owner.pets] == ["p1", "p2"]


@pytest.mark.asyncio
async def test_inherited_association_resolves_against_the_subclass(gateway, zoo):
    class Keeper(Model, abstract=True):
        pets = HasMany("Pet", on="ownerId")

    class Shelter(Keeper, gateway=gateway):
        ownerId = Attribute(str, primary=True)

    shelter = Shelter("o1")
    await associations.resolve([shelter], {"eager": {"pets": {}}})

    assert [p.petId for p in shelter.pets] == ["p1", "p2"]
    assert Shelter.pets.target_for(Shelter) is zoo.Pet
    assert Shelter.pets.fk_for(Shelter) == "ownerId"
