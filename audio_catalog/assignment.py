from __future__ import annotations

from collections.abc import Sequence
from typing import List

INF = float("inf")


def hungarian_min_cost(cost: Sequence[Sequence[float]]) -> List[int]:
    """
    Solve the square assignment problem (minimize total cost).

    Returns a list `assignment` where assignment[row] = col; every row and
    every column is used exactly once. Runs in O(n^3) using row and column
    potentials with shortest augmenting paths.

    Raises ValueError when the matrix is not square.
    """
    size = len(cost)
    if size == 0:
        return []
    for row in cost:
        if len(row) != size:
            raise ValueError(f"cost matrix must be square, got a row of {len(row)} for {size} rows")

    # Index 0 is a virtual column used as the root of each augmenting path.
    row_potential = [0.0] * (size + 1)
    col_potential = [0.0] * (size + 1)
    owner = [0] * (size + 1)  # owner[col] = 1-based row assigned to col
    parent = [0] * (size + 1)

    for start_row in range(1, size + 1):
        owner[0] = start_row
        col = 0
        slack = [INF] * (size + 1)
        visited = [False] * (size + 1)
        while owner[col] != 0:
            visited[col] = True
            row = owner[col]
            step, next_col = _relax(cost, row, col, row_potential, col_potential, slack, parent, visited)
            for other in range(size + 1):
                if visited[other]:
                    row_potential[owner[other]] += step
                    col_potential[other] -= step
                else:
                    slack[other] -= step
            col = next_col
        _augment(owner, parent, col)

    assignment = [0] * size
    for col in range(1, size + 1):
        assignment[owner[col] - 1] = col - 1
    return assignment


def _relax(
    cost: Sequence[Sequence[float]],
    row: int,
    from_col: int,
    row_potential: List[float],
    col_potential: List[float],
    slack: List[float],
    parent: List[int],
    visited: List[bool],
) -> tuple[float, int]:
    best = INF
    best_col = 0
    for col in range(1, len(slack)):
        if visited[col]:
            continue
        reduced = cost[row - 1][col - 1] - row_potential[row] - col_potential[col]
        if reduced < slack[col]:
            slack[col] = reduced
            parent[col] = from_col
        if slack[col] < best:
            best = slack[col]
            best_col = col
    return best, best_col


def _augment(owner: List[int], parent: List[int], col: int) -> None:
    while col:
        prev = parent[col]
        owner[col] = owner[prev]
        col = prev


def assignment_cost(cost: Sequence[Sequence[float]], assignment: Sequence[int]) -> float:
    return sum(cost[row][col] for row, col in enumerate(assignment))
