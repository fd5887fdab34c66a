"""
Database Module for Settlement - Seat Folding
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

The ``games`` table has four player/score slots. Results from 5- and
6-player games are folded into those four slots so the humans and the
winner are recorded ahead of robots.

:copyright: (c) 2024-present Settlement contributors
"""

from typing import List, Optional, Tuple

from .models import GameResult

LEGACY_SLOTS = 4


def fold_seats(game: GameResult) -> Tuple[List[Optional[str]], List[int]]:
    """
    Names and scores for the four ``games`` slots.

    Vacant slots have name ``None`` and score 0. A 4-seat game maps directly;
    a larger game with anyone sitting in seat 4 or 5 is folded.
    """
    names: List[Optional[str]] = [seat.name if seat else None for seat in game.seats]
    scores: List[int] = [seat.score if seat else 0 for seat in game.seats]
    while len(names) < LEGACY_SLOTS:
        names.append(None)
        scores.append(0)

    if game.max_players > LEGACY_SLOTS and not (game.is_seat_vacant(4) and game.is_seat_vacant(5)):
        _fit_high_seats(game, names, scores)

    return names[:LEGACY_SLOTS], scores[:LEGACY_SLOTS]


def _fit_high_seats(game: GameResult, names: List[Optional[str]], scores: List[int]) -> None:
    """Copy seat 4 and/or 5 into slots 0-3 of ``names`` and ``scores``, in place."""

    def is_robot(seat: int) -> bool:
        return not game.is_seat_vacant(seat) and game.seats[seat].is_robot

    winner = game.winner
    if winner is not None and game.is_seat_vacant(winner):
        winner = None

    # Tracked locally since slots 0-3 get rearranged below
    vacant = [game.is_seat_vacant(seat) for seat in range(LEGACY_SLOTS)]
    bot = [is_robot(seat) for seat in range(LEGACY_SLOTS)]
    n_vacant_low = sum(vacant)
    n_bot_low = sum(1 for seat in range(LEGACY_SLOTS) if bot[seat] and seat != winner)

    # Occupied high seats, in the order they get to claim a slot
    high_seats: List[int] = []
    if not game.is_seat_vacant(4):
        high_seats.append(4)
    if not game.is_seat_vacant(5):
        if not high_seats:
            high_seats.append(5)
        elif not is_robot(5) and (winner == 5 or (is_robot(4) and winner != 4)):
            high_seats.insert(0, 5)
        else:
            high_seats.append(5)
    # The winner claims a slot first
    if winner in high_seats and high_seats[0] != winner:
        high_seats.remove(winner)
        high_seats.insert(0, winner)

    if (winner is not None and winner >= LEGACY_SLOTS and not is_robot(winner)
            and n_vacant_low == 0 and n_bot_low == 0):
        # No open or robot slot: keep the human winner over the lowest score
        lowest = min(range(LEGACY_SLOTS), key=lambda seat: scores[seat])
        names[lowest] = names[winner]
        scores[lowest] = scores[winner]
        return

    for high in high_seats:
        if n_vacant_low > 0:
            slot = vacant.index(True)
            names[slot] = names[high]
            scores[slot] = scores[high]
            bot[slot] = is_robot(high)
            vacant[slot] = False
            if winner == high:
                winner = slot
            n_vacant_low -= 1

        elif n_bot_low > 0:
            candidates = [seat for seat in range(LEGACY_SLOTS) if bot[seat] and seat != winner]
            if not candidates:
                continue
            low_bot = min(candidates, key=lambda seat: scores[seat])

            high_is_robot = is_robot(high)
            # A robot only displaces another robot if it won or outscored it
            if (not high_is_robot) or winner == high or scores[high] > scores[low_bot]:
                names[low_bot] = names[high]
                scores[low_bot] = scores[high]
                bot[low_bot] = high_is_robot
                if winner == high:
                    winner = low_bot
                n_bot_low -= 1

        # else no slot is open and this seat isn't recorded
