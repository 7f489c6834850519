import random

from lottery_machine.selector import RandomSelector, pick


def test_empty_sequence_returns_none():
    assert pick([]) is None
    assert pick([], excluding="a") is None


def test_pick_returns_member():
    rng = random.Random(3)
    items = ["a", "b", "c", "d"]
    for _ in range(200):
        assert pick(items, rng=rng) in items


def test_excluded_value_is_avoided():
    rng = random.Random(5)
    items = ["a", "b", "c"]
    for _ in range(200):
        assert pick(items, excluding="b", rng=rng) != "b"


def test_only_element_is_still_selectable_when_excluded():
    assert pick(["a"], excluding="a") == "a"
    assert pick(["a", "a"], excluding="a") == "a"


def test_excluding_unknown_value_picks_from_everything():
    rng = random.Random(11)
    seen = {pick(["a", "b"], excluding="z", rng=rng) for _ in range(100)}
    assert seen == {"a", "b"}


def test_seeded_selectors_agree():
    first = RandomSelector(random.Random(42))
    second = RandomSelector(random.Random(42))
    items = list(range(10))
    assert [first.pick(items) for _ in range(20)] == [second.pick(items) for _ in range(20)]
