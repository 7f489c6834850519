import pytest

from conftest import make_book, make_reward
from lottery_machine.models import Reward, RewardBook


def test_quota_must_be_positive():
    with pytest.raises(ValueError):
        Reward(name="Broken", quota=0)


def test_record_winner_moves_candidate_out_of_pool():
    reward = make_reward("Bonus", ["A", "B"])
    winner = reward.pool[1]

    reward.record_winner(winner)

    assert reward.winners == [winner]
    assert not reward.has_candidate(winner.id)


def test_reset_winners_returns_them_to_pool():
    reward = make_reward("Bonus", ["A", "B", "C"], quota=2)
    first, second = reward.pool[0], reward.pool[2]
    reward.record_winner(first)
    reward.record_winner(second)

    restored = reward.reset_winners()

    assert restored == [first, second]
    assert reward.winners == []
    assert [c.name for c in reward.pool] == ["B", "A", "C"]


def test_payload_keeps_order_and_ids():
    reward = make_reward("Bonus", ["A", "B", "C"], quota=2, category="Staff")
    reward.record_winner(reward.pool[2])
    reward.record_winner(reward.pool[0])

    restored = Reward.from_payload(reward.to_payload())

    assert restored == reward


def test_book_lookup_and_ordering():
    gadgets = make_reward("Gadget", ["A"], category="B-side")
    apple = make_reward("apple", ["A"], category="A-side")
    bonus = make_reward("Bonus", ["A"], category="B-side")
    book = make_book(gadgets, apple, bonus)

    assert [r.name for r in book.list_all()] == ["apple", "Bonus", "Gadget"]
    assert book.find_by_name("  GADGET ") is gadgets
    assert book.find_by_name("missing") is None
    assert book.categories() == ["A-side", "B-side"]
    assert len(book) == 3


def test_book_from_payload_skips_duplicate_ids():
    reward = make_reward("Bonus", ["A"])
    payload = {"rewards": [reward.to_payload(), reward.to_payload()]}

    book = RewardBook.from_payload(payload)

    assert len(book) == 1
    assert book.get(reward.id) == reward
