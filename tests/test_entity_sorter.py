import unittest
from dataclasses import dataclass
from itertools import permutations
from typing import Optional

from entity_queries.core.errors import ArgumentError, InvalidOperationError, PathResolutionError
from entity_queries.services.entity_sorter import (
    OrderByEntitySorter,
    SortDirection,
    ThenByEntitySorter,
    order_by,
    order_by_descending,
    then_by,
    then_by_descending,
    try_order_by,
    unsorted,
)


@dataclass
class _Address:
    city: str


class _Person:
    id: int
    name: Optional[str]
    address: Optional[_Address]

    def __init__(self, id, name=None, address=None):
        self.id = id
        self.name = name
        self.address = address

    def _set_only(self, value):
        self._set_only_value = value

    set_only_property = property(fset=_set_only)

    def __repr__(self):
        return f"Person(id={self.id}, name={self.name!r})"


def _pairs(people):
    return [(p.id, p.name) for p in people]


def _grid():
    return [
        _Person(6, "Bravo"),
        _Person(1, "Alpha"),
        _Person(6, "Alpha"),
        _Person(1, "Bravo"),
    ]


class SorterConstructionTests(unittest.TestCase):
    def test_unsorted_seed_cannot_sort(self):
        seed = unsorted(_Person)
        self.assertIsNotNone(seed)
        with self.assertRaises(InvalidOperationError):
            seed.sort([_Person(1)])
        with self.assertRaises(InvalidOperationError):
            seed.sort_descending([_Person(1)])

    def test_order_by_on_seed_gives_usable_sorter(self):
        sorter = unsorted(_Person).order_by("Id")
        self.assertEqual([p.id for p in sorter.sort([_Person(6), _Person(1)])], [1, 6])

    def test_then_by_on_seed_becomes_primary_ordering(self):
        sorter = unsorted(_Person).then_by_descending("Id")
        self.assertIsInstance(sorter, OrderByEntitySorter)
        self.assertEqual([p.id for p in sorter.sort([_Person(1), _Person(6)])], [6, 1])

    def test_none_keys_raise(self):
        with self.assertRaises(ArgumentError):
            order_by(None, entity_type=_Person)
        with self.assertRaises(ArgumentError):
            order_by_descending(None, entity_type=_Person)
        with self.assertRaises(ArgumentError):
            order_by("Id", entity_type=_Person).then_by(None)
        with self.assertRaises(ArgumentError):
            order_by(lambda p: p.id).then_by_descending(None)

    def test_none_base_sorter_raises(self):
        with self.assertRaises(ArgumentError):
            then_by(None, lambda p: p.id)
        with self.assertRaises(ArgumentError):
            then_by_descending(None, "Id")

    def test_string_key_requires_entity_type(self):
        with self.assertRaises(ArgumentError) as ctx:
            order_by("Id")
        self.assertEqual(ctx.exception.argument, "entity_type")

    def test_empty_and_invalid_paths_raise(self):
        with self.assertRaises(PathResolutionError):
            order_by("", entity_type=_Person)
        with self.assertRaises(PathResolutionError):
            order_by_descending("NonExisting", entity_type=_Person)
        with self.assertRaises(PathResolutionError):
            order_by("Address.NonExisting", entity_type=_Person)
        with self.assertRaises(PathResolutionError):
            order_by("Id", entity_type=_Person).then_by("Address.NonExisting")

    def test_set_only_property_raises(self):
        self.assertIsInstance(vars(_Person)["set_only_property"], property)
        with self.assertRaises(PathResolutionError):
            order_by("set_only_property", entity_type=_Person)

    def test_non_callable_key_raises(self):
        with self.assertRaises(ArgumentError):
            order_by(42)

    def test_valid_paths_return_sorters(self):
        self.assertIsNotNone(order_by("Id", entity_type=_Person))
        self.assertIsNotNone(order_by("Address.City", entity_type=_Person))
        self.assertIsNotNone(order_by_descending("address.city", entity_type=_Person))
        chained = order_by("Id", entity_type=_Person).then_by("Address.City")
        self.assertIsInstance(chained, ThenByEntitySorter)
        self.assertIs(chained.entity_type, _Person)
        self.assertIs(chained.direction, SortDirection.ASCENDING)

    def test_try_order_by(self):
        self.assertIsNotNone(try_order_by(_Person, "Name"))
        self.assertIsNone(try_order_by(_Person, "NonExisting"))
        self.assertIsNone(try_order_by(_Person, ""))
        descending = try_order_by(_Person, "Id", descending=True)
        self.assertIs(descending.direction, SortDirection.DESCENDING)
        with self.assertRaises(ArgumentError):
            try_order_by(_Person, None)

    def test_order_by_on_existing_sorter_discards_previous_ordering(self):
        sorter = order_by("Name", entity_type=_Person).order_by("Id")
        self.assertIsInstance(sorter, OrderByEntitySorter)
        self.assertEqual(_pairs(sorter.sort(_grid())), [(1, "Alpha"), (1, "Bravo"), (6, "Bravo"), (6, "Alpha")])

    def test_string_representation(self):
        self.assertEqual(str(unsorted()), "")
        self.assertEqual(str(order_by("Id", entity_type=_Person)), "id")
        self.assertEqual(
            str(order_by("Id", entity_type=_Person).then_by_descending("Name")),
            "id, name descending",
        )
        self.assertNotEqual(str(order_by(lambda p: p.id)), "")


class SorterSortTests(unittest.TestCase):
    def test_sort_with_none_collection_raises(self):
        with self.assertRaises(ArgumentError):
            order_by("Id", entity_type=_Person).sort(None)
        with self.assertRaises(ArgumentError):
            order_by("Id", entity_type=_Person).then_by("Name").sort(None)
        with self.assertRaises(ArgumentError):
            order_by("Id", entity_type=_Person).sort_descending(None)

    def test_order_by_path(self):
        sorted_people = list(order_by("Id", entity_type=_Person).sort([_Person(6), _Person(1)]))
        self.assertEqual([p.id for p in sorted_people], [1, 6])

    def test_order_by_descending_path(self):
        sorted_people = list(order_by_descending("Id", entity_type=_Person).sort([_Person(1), _Person(6)]))
        self.assertEqual([p.id for p in sorted_people], [6, 1])

    def test_order_by_chained_path(self):
        people = [_Person(1, address=_Address("Bravo")), _Person(2, address=_Address("Alpha"))]
        ascending = list(order_by("Address.City", entity_type=_Person).sort(people))
        descending = list(order_by_descending("Address.City", entity_type=_Person).sort(people))
        self.assertEqual([p.address.city for p in ascending], ["Alpha", "Bravo"])
        self.assertEqual([p.address.city for p in descending], ["Bravo", "Alpha"])

    def test_order_by_lambda(self):
        ascending = list(order_by(lambda p: p.id).sort([_Person(6), _Person(1)]))
        descending = list(order_by_descending(lambda p: p.id).sort([_Person(1), _Person(6)]))
        self.assertEqual([p.id for p in ascending], [1, 6])
        self.assertEqual([p.id for p in descending], [6, 1])

    def test_order_by_path_then_by_path(self):
        sorter = order_by("Id", entity_type=_Person).then_by("Name")
        self.assertEqual(_pairs(sorter.sort(_grid())), [(1, "Alpha"), (1, "Bravo"), (6, "Alpha"), (6, "Bravo")])

    def test_order_by_path_then_by_descending_path(self):
        sorter = order_by("Id", entity_type=_Person).then_by_descending("Name")
        self.assertEqual(_pairs(sorter.sort(_grid())), [(1, "Bravo"), (1, "Alpha"), (6, "Bravo"), (6, "Alpha")])

    def test_then_by_lambda(self):
        ascending = order_by(lambda p: p.id).then_by(lambda p: p.name)
        descending = order_by(lambda p: p.id).then_by_descending(lambda p: p.name)
        self.assertEqual(_pairs(ascending.sort(_grid())), [(1, "Alpha"), (1, "Bravo"), (6, "Alpha"), (6, "Bravo")])
        self.assertEqual(_pairs(descending.sort(_grid())), [(1, "Bravo"), (1, "Alpha"), (6, "Bravo"), (6, "Alpha")])

    def test_equal_keys_keep_input_order(self):
        people = [_Person(2, "x"), _Person(1, "x"), _Person(2, "x"), _Person(1, "x")]
        for person, tag in zip(people, "abcd"):
            person.address = _Address(tag)
        sorter = order_by("Id", entity_type=_Person).then_by("Name")
        first = [p.address.city for p in sorter.sort(people)]
        second = [p.address.city for p in sorter.sort(people)]
        self.assertEqual(first, ["b", "d", "a", "c"])
        self.assertEqual(first, second)

    def test_sort_descending_flips_every_key_without_reversing_ties(self):
        people = [_Person(1, "a"), _Person(2, "a"), _Person(1, "b"), _Person(1, "a")]
        for person, tag in zip(people, "wxyz"):
            person.address = _Address(tag)
        sorter = order_by("Id", entity_type=_Person).then_by_descending("Name")
        flipped = [p.address.city for p in sorter.sort_descending(people)]
        # Id descending, Name ascending; w and z tie on both keys and keep input order.
        self.assertEqual(flipped, ["x", "w", "z", "y"])
        reversed_sort = list(reversed([p.address.city for p in sorter.sort(people)]))
        self.assertNotEqual(flipped, reversed_sort)

    def test_sort_descending_equals_reversed_sort_without_ties(self):
        sorter = order_by("Id", entity_type=_Person).then_by("Name")
        for people in permutations(_grid()):
            people = list(people)
            self.assertEqual(
                _pairs(sorter.sort_descending(people)),
                list(reversed(_pairs(sorter.sort(people)))),
            )

    def test_sort_does_not_mutate_input(self):
        people = _grid()
        order_by("Id", entity_type=_Person).then_by("Name").sort(people).to_list()
        self.assertEqual(_pairs(people), [(6, "Bravo"), (1, "Alpha"), (6, "Alpha"), (1, "Bravo")])

    def test_shared_base_sorter(self):
        base = order_by("Id", entity_type=_Person)
        by_name = base.then_by("Name")
        by_name_desc = base.then_by_descending("Name")
        self.assertIs(by_name.base_sorter, base)
        self.assertEqual(_pairs(by_name.sort(_grid()))[0], (1, "Alpha"))
        self.assertEqual(_pairs(by_name_desc.sort(_grid()))[0], (1, "Bravo"))
        self.assertEqual([p.id for p in base.sort(_grid())], [1, 1, 6, 6])


if __name__ == "__main__":
    unittest.main()
