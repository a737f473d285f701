import pytest

from domain.models import SENSORY_AXES
from domain.profile import blend_profile, target_profile

from fakes import catalog_of, ingredient, recipe


def test_target_profile_defaults_to_midpoint() -> None:
    assert target_profile({}) == {axis: 5 for axis in SENSORY_AXES}
    assert target_profile(None) == {axis: 5 for axis in SENSORY_AXES}


def test_target_profile_espresso_strong_milk_chocolate() -> None:
    got = target_profile(
        {
            "method": "Espresso",
            "strength": "strong",
            "milk": "yes",
            "flavor_direction": "chocolate & caramel",
        }
    )
    assert got == {
        "body": 10,
        "acidity": 2,
        "sweetness": 5,
        "bitterness": 7,
        "aroma": 5,
        "fruitiness": 4,
        "chocolate": 10,
        "nutty": 6,
    }


def test_target_profile_filter_fruity_with_acidity_override() -> None:
    got = target_profile({"brew_method": "V60", "flavor": "fruity", "acidity_level": 9})
    assert got["acidity"] == 9
    assert got["fruitiness"] == 10
    assert got["aroma"] == 7
    assert got["body"] == 4
    assert got["chocolate"] == 4
    assert got["nutty"] == 4


@pytest.mark.parametrize("acidity,expected", ((15, 10), (-3, 1), ("7", 7), ("lots", 5)))
def test_target_profile_clamps_acidity(acidity: object, expected: float) -> None:
    assert target_profile({"acidity": acidity})["acidity"] == expected


def test_target_profile_is_deterministic() -> None:
    prefs = {"method": "french press", "flavor_direction": "nutty", "strength": "mild"}
    assert target_profile(prefs) == target_profile(dict(prefs))


def test_blend_profile_is_quantity_weighted() -> None:
    catalog = catalog_of(ingredient("A", body=8, acidity=2), ingredient("B", body=2, acidity=9))
    got = blend_profile(recipe(A=75, B=25), catalog)
    assert got["body"] == 6.5
    assert got["acidity"] == 3.8
    assert got["sweetness"] == 5


def test_blend_profile_of_empty_recipe_is_zero() -> None:
    catalog = catalog_of(ingredient("A"))
    assert blend_profile([], catalog) == {axis: 0 for axis in SENSORY_AXES}
