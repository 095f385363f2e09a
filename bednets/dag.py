from __future__ import annotations

import logging

from ._exceptions import GraphError, IdentificationError

logger = logging.getLogger(__name__)


class _Node:
    """
    A node proxy returned by ``DAG.assume()``. Use ``.causes()`` to assert edges::

        dag.assume("income").causes("net", "malaria_risk")
        dag.assume("net").causes("malaria_risk")
    """

    def __init__(self, name: str, dag: DAG) -> None:
        self._name = name
        self._dag = dag

    def causes(self, *effects: str) -> _Node:
        """
        Assert that this node causes one or more effects.
        Returns self so you can chain further ``.causes()`` calls.
        """
        for effect in effects:
            self._dag._assert_edge(self._name, effect)
        return self


class DAG:
    """
    A directed acyclic graph representing causal assumptions.

    Build the graph by calling ``assume().causes()`` for each causal relationship
    you believe holds. Nodes that are not columns of your data are treated as
    unobserved when the adjustment set is derived.

    Example::

        dag = DAG()
        dag.assume("income").causes("net", "malaria_risk")
        dag.assume("net").causes("malaria_risk")
        dag.adjustment_set("net", "malaria_risk")   # {"income"}
    """

    def __init__(self) -> None:
        self._edges: list[tuple[str, str]] = []

    # ── Building the graph ────────────────────────────────────────────────────

    def assume(self, node: str) -> _Node:
        """Name a node and return it so you can assert what it causes."""
        return _Node(node, self)

    def _assert_edge(self, cause: str, effect: str) -> None:
        """Add a directed edge after validating it keeps the graph acyclic."""
        if cause == effect:
            raise GraphError(f"Self-loops are not allowed: '{cause}'")
        if (cause, effect) in self._edges:
            raise GraphError(f"'{cause}' → '{effect}' already asserted")
        self._edges.append((cause, effect))
        if self._has_cycle():
            self._edges.pop()
            raise GraphError(
                f"Asserting '{cause}' → '{effect}' would create a cycle. "
                f"Causal graphs must be acyclic (DAGs)."
            )

    # ── Graph properties ──────────────────────────────────────────────────────

    @property
    def nodes(self) -> set[str]:
        """All nodes in the graph."""
        result: set[str] = set()
        for cause, effect in self._edges:
            result.add(cause)
            result.add(effect)
        return result

    @property
    def edges(self) -> list[tuple[str, str]]:
        """All directed edges as (cause, effect) pairs."""
        return list(self._edges)

    def parents(self, node: str) -> set[str]:
        """Direct causes of node."""
        return {cause for cause, effect in self._edges if effect == node}

    def children(self, node: str) -> set[str]:
        """Direct effects of node."""
        return {effect for cause, effect in self._edges if cause == node}

    def ancestors(self, node: str) -> set[str]:
        """All nodes with a directed path leading to node."""
        return _closure(node, self.parents)

    def descendants(self, node: str) -> set[str]:
        """All nodes reachable from node via directed paths."""
        return _closure(node, self.children)

    # ── Identification ────────────────────────────────────────────────────────

    def d_separated(self, x: str, y: str, given: set[str] | frozenset[str] = frozenset()) -> bool:
        """``True`` if x and y are d-separated by the set ``given``."""
        return _d_separated(self._edges, x, y, set(given))

    def satisfies_backdoor(self, treatment: str, outcome: str, adjustment: set[str]) -> bool:
        """
        Check the backdoor criterion: no member of ``adjustment`` descends from
        the treatment, and ``adjustment`` blocks every path between treatment
        and outcome that starts with an arrow into the treatment.
        """
        if adjustment & self.descendants(treatment):
            return False
        backdoor_edges = [(c, e) for c, e in self._edges if c != treatment]
        return _d_separated(backdoor_edges, treatment, outcome, set(adjustment))

    def adjustment_set(
        self,
        treatment: str,
        outcome: str,
        observed: set[str] | None = None,
    ) -> set[str]:
        """
        Derive a minimal set of covariates that satisfies the backdoor criterion.

        Candidates are all ancestors of treatment or outcome that are not
        descendants of the treatment (restricted to ``observed`` when given).
        Candidates are then dropped one at a time, in sorted name order, for
        as long as the remainder still blocks every backdoor path, so the
        result is deterministic.

        Raises
        ------
        ``IdentificationError``
            If no valid set can be built from the observed nodes.
        """
        for label, var in [("Treatment", treatment), ("Outcome", outcome)]:
            if var not in self.nodes:
                raise ValueError(
                    f"{label} '{var}' is not a node in the DAG. "
                    f"Known nodes: {sorted(self.nodes)}"
                )
        if treatment == outcome:
            raise ValueError("Treatment and outcome must be different variables.")

        candidates = (
            (self.ancestors(treatment) | self.ancestors(outcome))
            - self.descendants(treatment)
            - {treatment, outcome}
        )
        unobserved: set[str] = set()
        if observed is not None:
            unobserved = candidates - set(observed)
            candidates = candidates & set(observed)

        if not self.satisfies_backdoor(treatment, outcome, candidates):
            confounders = (self.ancestors(treatment) & self.ancestors(outcome)) - self.descendants(treatment)
            missing = sorted(confounders & unobserved) or sorted(unobserved)
            raise IdentificationError(
                f"\nUnobserved confounders detected: {missing}\n\n"
                f"No set of observed variables blocks every backdoor path between "
                f"'{treatment}' and '{outcome}'.\n\n"
                f"Consider:\n"
                f"  - Collecting data on {missing} and adding it to the dataframe\n"
                f"  - Revisiting the DAG if these variables are not true confounders"
            )

        result = set(candidates)
        for node in sorted(candidates):
            trial = result - {node}
            if self.satisfies_backdoor(treatment, outcome, trial):
                result = trial

        logger.debug("Adjustment set for %s → %s: %s", treatment, outcome, sorted(result))
        return result

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _has_cycle(self) -> bool:
        """Kahn's algorithm: returns True if the current edge list contains a cycle."""
        in_degree: dict[str, int] = {n: 0 for n in self.nodes}
        for _, effect in self._edges:
            in_degree[effect] += 1

        queue = [n for n, deg in in_degree.items() if deg == 0]
        visited = 0
        while queue:
            node = queue.pop()
            visited += 1
            for child in self.children(node):
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    queue.append(child)

        return visited != len(self.nodes)

    # ── Display ───────────────────────────────────────────────────────────────

    def __repr__(self) -> str:
        if not self._edges:
            return "DAG (empty)"
        lines = ["DAG:"]
        for cause, effect in self._edges:
            lines.append(f"  {cause} → {effect}")
        return "\n".join(lines)


def _closure(node: str, step) -> set[str]:
    result: set[str] = set()
    queue = list(step(node))
    while queue:
        current = queue.pop()
        if current not in result:
            result.add(current)
            queue.extend(step(current))
    return result


def _d_separated(edges: list[tuple[str, str]], x: str, y: str, given: set[str]) -> bool:
    """
    d-separation via the moralised ancestral graph (Lauritzen et al., 1990):
    keep only ancestors of {x, y} ∪ given, marry parents of common children,
    drop directions, delete ``given``, then test whether x still reaches y.
    """
    parents: dict[str, set[str]] = {}
    for cause, effect in edges:
        parents.setdefault(effect, set()).add(cause)

    relevant = {x, y} | given
    queue = list(relevant)
    while queue:
        node = queue.pop()
        for p in parents.get(node, ()):
            if p not in relevant:
                relevant.add(p)
                queue.append(p)

    adjacency: dict[str, set[str]] = {n: set() for n in relevant}
    for node in relevant:
        ps = sorted(parents.get(node, set()) & relevant)
        for p in ps:
            adjacency[node].add(p)
            adjacency[p].add(node)
        for i, a in enumerate(ps):
            for b in ps[i + 1:]:
                adjacency[a].add(b)
                adjacency[b].add(a)

    if x in given or y in given:
        return True

    seen = {x}
    queue = [x]
    while queue:
        node = queue.pop()
        if node == y:
            return False
        for nb in adjacency[node]:
            if nb not in seen and nb not in given:
                seen.add(nb)
                queue.append(nb)
    return True
