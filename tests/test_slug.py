import pytest

from food_ordering.utils.slug import slugify


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Bob's Diner", "bob-s-diner"),
        ("  Pizza   Palace  ", "pizza-palace"),
        ("Café Nº 1!", "caf-n-1"),
        ("--Sushi--Bar--", "sushi-bar"),
        ("BURGER_HOUSE 2024", "burger-house-2024"),
    ],
)
def test_slugify(name, expected):
    assert slugify(name) == expected


def test_slugify_without_letters_or_digits_is_empty():
    assert slugify("!!! ???") == ""
