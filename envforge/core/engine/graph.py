"""
Task graph — dependency validation and execution ordering (pure).

Holds the tasks of one run and their ``depends_on`` edges. Validation
happens at construction time, so a TaskGraph that exists is always
free of duplicates and dangling references; cycles are reported by
``order()`` before any task runs.

Ordering is Kahn's algorithm with a stable tie-break: among tasks that
are ready at the same time, the one declared first goes first. Same
catalog, same order, every run.

No I/O, no subprocess.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Iterator

from envforge.core.errors import CyclicDependency, DuplicateTask, UnknownTaskReference
from envforge.core.models.task import Task


class TaskGraph:
    """Immutable set of tasks plus their dependency edges.

    Args:
        tasks: Tasks in declaration order.

    Raises:
        DuplicateTask: Two tasks share a name.
        UnknownTaskReference: A dependency names a task not in the graph.
    """

    def __init__(self, tasks: Iterable[Task]):
        by_name: dict[str, Task] = {}
        for task in tasks:
            if task.name in by_name:
                raise DuplicateTask(task.name)
            by_name[task.name] = task

        for task in by_name.values():
            for dep in task.depends_on:
                if dep not in by_name:
                    raise UnknownTaskReference(dep, referenced_by=task.name)

        self._tasks: tuple[Task, ...] = tuple(by_name.values())
        self._by_name = by_name
        self._index = {t.name: i for i, t in enumerate(self._tasks)}
        self._order: tuple[Task, ...] | None = None

    # ── Lookup ──────────────────────────────────────────────────

    @property
    def tasks(self) -> tuple[Task, ...]:
        """Tasks in declaration order."""
        return self._tasks

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._tasks]

    def get(self, name: str) -> Task:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownTaskReference(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __repr__(self) -> str:
        return f"<TaskGraph tasks={len(self._tasks)}>"

    # ── Ordering ────────────────────────────────────────────────

    def order(self) -> list[Task]:
        """Topological order, stable by declaration order.

        Raises:
            CyclicDependency: With the names of one cycle, in dependency order.
        """
        if self._order is None:
            self._order = tuple(self._compute_order())
        return list(self._order)

    def _compute_order(self) -> list[Task]:
        in_degree: dict[str, int] = {t.name: len(set(t.depends_on)) for t in self._tasks}
        # Build adjacency: dep → tasks that depend on it
        dependents: dict[str, list[str]] = {t.name: [] for t in self._tasks}
        for task in self._tasks:
            for dep in set(task.depends_on):
                dependents[dep].append(task.name)

        ready = [self._index[name] for name, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)

        ordered: list[Task] = []
        while ready:
            task = self._tasks[heapq.heappop(ready)]
            ordered.append(task)
            for successor in dependents[task.name]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    heapq.heappush(ready, self._index[successor])

        if len(ordered) < len(self._tasks):
            remaining = {name for name, deg in in_degree.items() if deg > 0}
            raise CyclicDependency(self._find_cycle(remaining))

        return ordered

    def _find_cycle(self, remaining: set[str]) -> list[str]:
        """Walk dependencies inside ``remaining`` until a name repeats.

        Every unordered task has at least one unordered dependency, so the
        walk always closes a loop.
        """
        start = min(remaining, key=self._index.__getitem__)
        path: list[str] = []
        seen: dict[str, int] = {}
        current = start
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            current = next(
                d for d in self._by_name[current].depends_on if d in remaining
            )
        return path[seen[current]:]

    # ── Subsets ─────────────────────────────────────────────────

    def dependencies_of(self, name: str) -> list[str]:
        """Transitive dependencies of ``name``, in declaration order."""
        needed = self._closure([name])
        needed.discard(name)
        return [t.name for t in self._tasks if t.name in needed]

    def restrict(self, names: Iterable[str]) -> TaskGraph:
        """Sub-graph of ``names`` plus everything they depend on.

        Raises:
            UnknownTaskReference: A requested name is not in the graph.
        """
        requested = list(names)
        for name in requested:
            if name not in self._by_name:
                raise UnknownTaskReference(name)
        keep = self._closure(requested)
        return TaskGraph(t for t in self._tasks if t.name in keep)

    def _closure(self, names: Iterable[str]) -> set[str]:
        keep: set[str] = set()
        stack = list(names)
        while stack:
            name = stack.pop()
            if name in keep:
                continue
            keep.add(name)
            stack.extend(self._by_name[name].depends_on)
        return keep
