# shieldnet/crypto_core/splits.py
from __future__ import annotations

from typing import Callable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def greedy_coin_select(
    notes: Sequence[T],
    target: int,
    max_inputs: int,
    amount: Callable[[T], int] = lambda n: n.amount,
) -> Tuple[List[T], int]:
    """
    Take notes in the given order until the running total reaches `target`
    or `max_inputs` notes are taken. Returns ([], 0) when the window falls short.
    """
    chosen: List[T] = []
    total = 0
    for n in notes:
        if len(chosen) >= max_inputs:
            break
        chosen.append(n)
        total += amount(n)
        if total >= target:
            return chosen, total
    return [], 0


def largest_first(notes: Sequence[T], amount: Callable[[T], int] = lambda n: n.amount) -> List[T]:
    # sorted() is stable, so equal amounts keep insertion order
    return sorted(notes, key=amount, reverse=True)


__all__ = ["greedy_coin_select", "largest_first"]
