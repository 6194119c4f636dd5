"""Dependency graph for workflow steps.

Step ids are the only references: the graph is a map of step id to the ids it
depends on, so no step object ever points at another. Every mutation is
checked before it is applied, which keeps the relation acyclic at all times.
"""

from collections.abc import Iterable

from core.errors import GraphError


class DependencyGraph:
    """Adjacency map of step id -> ordered dependency ids."""

    def __init__(self):
        # dict preserves insertion order for both nodes and edges
        self._deps: dict[str, dict[str, None]] = {}

    def __contains__(self, step_id: str) -> bool:
        return step_id in self._deps

    def __len__(self) -> int:
        return len(self._deps)

    @property
    def nodes(self) -> list[str]:
        """All step ids in insertion order."""
        return list(self._deps)

    def add_node(self, step_id: str) -> None:
        """Register a step id with no dependencies."""
        if step_id in self._deps:
            raise GraphError(f"Step with ID '{step_id}' already exists")
        self._deps[step_id] = {}

    def add_dependency(self, step_id: str, depends_on_id: str) -> None:
        """Make step_id depend on depends_on_id. Existing edges are a no-op."""
        self._check_edge(step_id, depends_on_id)
        if self.depends_on(depends_on_id, step_id):
            raise GraphError(
                f"Adding dependency '{step_id}' -> '{depends_on_id}' "
                "would create a circular reference"
            )
        self._deps[step_id][depends_on_id] = None

    def set_dependencies(self, step_id: str, depends_on_ids: Iterable[str]) -> None:
        """
        Replace all dependencies of step_id.

        The full replacement set is validated against the graph without the
        step's current edges; nothing is written unless every edge is valid.
        """
        self._require(step_id)
        new_deps = dict.fromkeys(depends_on_ids)
        for dep in new_deps:
            self._check_edge(step_id, dep)

        for dep in new_deps:
            if self._reaches(dep, step_id):
                raise GraphError(
                    f"Adding dependency '{step_id}' -> '{dep}' "
                    "would create a circular reference"
                )

        self._deps[step_id] = new_deps

    def get_dependencies(self, step_id: str) -> tuple[str, ...]:
        """Direct dependencies of a step, in insertion order."""
        self._require(step_id)
        return tuple(self._deps[step_id])

    def depends_on(self, step_id: str, other_id: str) -> bool:
        """True if step_id transitively depends on other_id."""
        if step_id not in self._deps:
            return False
        return self._reaches(step_id, other_id)

    def dependents(self, step_id: str) -> list[str]:
        """All steps that transitively depend on step_id, in insertion order."""
        self._require(step_id)
        found: set[str] = set()
        frontier = [step_id]
        while frontier:
            current = frontier.pop()
            for candidate, deps in self._deps.items():
                if current in deps and candidate not in found:
                    found.add(candidate)
                    frontier.append(candidate)
        return [s for s in self._deps if s in found]

    def roots(self) -> list[str]:
        """Steps without dependencies."""
        return [s for s, deps in self._deps.items() if not deps]

    def topological_order(self) -> list[str]:
        """Deterministic topological order (Kahn, insertion-order tie break)."""
        remaining = {s: set(deps) for s, deps in self._deps.items()}
        order: list[str] = []
        while remaining:
            ready = [s for s, deps in remaining.items() if not deps]
            if not ready:
                # unreachable while mutations go through this class
                raise GraphError(f"Dependency cycle among: {sorted(remaining)}")
            for s in ready:
                order.append(s)
                del remaining[s]
            for deps in remaining.values():
                deps.difference_update(ready)
        return order

    def to_dict(self) -> dict[str, list[str]]:
        return {s: list(deps) for s, deps in self._deps.items()}

    # ── helpers ────────────────────────────────────────────────────
    def _require(self, step_id: str) -> None:
        if step_id not in self._deps:
            raise GraphError(f"Step with ID '{step_id}' does not exist")

    def _check_edge(self, step_id: str, depends_on_id: str) -> None:
        self._require(step_id)
        self._require(depends_on_id)
        if step_id == depends_on_id:
            raise GraphError(f"Step '{step_id}' cannot depend on itself")

    def _reaches(self, start: str, target: str) -> bool:
        """Iterative DFS along dependency edges from start looking for target."""
        visited: set[str] = set()
        stack = [start]
        while stack:
            node = stack.pop()
            if node in visited:
                continue
            visited.add(node)
            for dep in self._deps.get(node, ()):
                if dep == target:
                    return True
                stack.append(dep)
        return False
