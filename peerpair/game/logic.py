"""Snake rules run by the display.

States are immutable; [`tick()`][peerpair.game.logic.tick] returns the
state after one step of the game.
"""
from __future__ import annotations

import dataclasses
import random
from typing import NamedTuple
from typing import Sequence
from typing import Tuple

from peerpair.game.messages import Direction
from peerpair.game.messages import GameStatus

GRID_SIZE = 20
"""Width and height of the square grid."""
TICK_INTERVAL = 0.15
"""Seconds between game ticks."""

_OPPOSITES = {
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
    Direction.LEFT: Direction.RIGHT,
    Direction.RIGHT: Direction.LEFT,
}

_STEPS = {
    Direction.UP: (0, -1),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
}


class Position(NamedTuple):
    """Cell of the grid."""

    x: int
    y: int


@dataclasses.dataclass(frozen=True)
class GameState:
    """State of a snake game.

    Attributes:
        snake: Cells of the snake from head to tail.
        food: Cell of the food.
        direction: Current movement direction.
        score: Number of food eaten.
        status: Status of the game.
        grid_size: Width and height of the grid.
    """

    snake: Tuple[Position, ...]  # noqa: UP006
    food: Position
    direction: Direction = Direction.RIGHT
    score: int = 0
    status: GameStatus = GameStatus.WAITING
    grid_size: int = GRID_SIZE

    @property
    def head(self) -> Position:
        """Cell of the head of the snake."""
        return self.snake[0]


def opposite(direction: Direction) -> Direction:
    """Get the opposite direction."""
    return _OPPOSITES[direction]


def spawn_food(
    snake: Sequence[Position],
    grid_size: int = GRID_SIZE,
    rng: random.Random | None = None,
) -> Position:
    """Pick a random cell not occupied by the snake.

    Raises:
        ValueError: If the snake occupies the whole grid.
    """
    occupied = set(snake)
    if len(occupied) >= grid_size * grid_size:
        raise ValueError('No free cell left to place food.')
    rng = random.Random() if rng is None else rng
    while True:
        food = Position(rng.randrange(grid_size), rng.randrange(grid_size))
        if food not in occupied:
            return food


def initial_state(
    grid_size: int = GRID_SIZE,
    rng: random.Random | None = None,
) -> GameState:
    """Create a waiting game with a three cell snake heading right."""
    center = grid_size // 2
    snake = (
        Position(center, center),
        Position(center - 1, center),
        Position(center - 2, center),
    )
    return GameState(
        snake=snake,
        food=spawn_food(snake, grid_size, rng),
        grid_size=grid_size,
    )


def tick(
    state: GameState,
    direction: Direction | None = None,
    rng: random.Random | None = None,
) -> GameState:
    """Advance the game by one step.

    Args:
        state: Current state. Games which are not playing are returned
            unchanged.
        direction: Requested direction. Requests to reverse onto the snake
            are ignored.
        rng: Random number generator used to place new food.

    Returns:
        The next state. Hitting a wall or the snake's own body ends the
        game; eating food grows the snake and increments the score.
    """
    if state.status is not GameStatus.PLAYING:
        return state

    if direction is not None and direction is not opposite(state.direction):
        heading = direction
    else:
        heading = state.direction

    dx, dy = _STEPS[heading]
    head = Position(state.head.x + dx, state.head.y + dy)

    if not (0 <= head.x < state.grid_size and 0 <= head.y < state.grid_size):
        return dataclasses.replace(state, status=GameStatus.GAMEOVER)

    # The tail moves out of the way this tick
    if head in state.snake[:-1]:
        return dataclasses.replace(state, status=GameStatus.GAMEOVER)

    ate = head == state.food
    snake = (head, *state.snake) if ate else (head, *state.snake[:-1])
    if ate and len(snake) >= state.grid_size * state.grid_size:
        # Grid is full so there is nowhere left to place food
        return dataclasses.replace(
            state,
            snake=snake,
            direction=heading,
            score=state.score + 1,
            status=GameStatus.GAMEOVER,
        )
    return dataclasses.replace(
        state,
        snake=snake,
        direction=heading,
        food=spawn_food(snake, state.grid_size, rng) if ate else state.food,
        score=state.score + 1 if ate else state.score,
    )
