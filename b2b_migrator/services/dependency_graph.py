"""Reference graph and migration ordering over canonical records."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models.artifact import ArtifactType
from ..models.record import CanonicalRecord, EntityRef

logger = logging.getLogger(__name__)

RecordKey = Tuple[ArtifactType, str]


@dataclass
class DependencyGraph:
    """
    Directed reference graph for one batch.

    An edge ``A -> B`` in ``edges[A]`` means A references B, so B must be
    migrated before A.
    """
    nodes: List[int] = field(default_factory=list)
    edges: Dict[int, Set[int]] = field(default_factory=dict)
    unresolved: Dict[int, List[EntityRef]] = field(default_factory=dict)
    cycles: List[List[int]] = field(default_factory=list)
    waves: List[List[int]] = field(default_factory=list)

    @property
    def order(self) -> List[int]:
        """Flattened waves; the migration order."""
        return [node for wave in self.waves for node in wave]

    @property
    def cycle_members(self) -> Set[int]:
        return {member for cycle in self.cycles for member in cycle}

    def dependencies(self, node: int) -> Set[int]:
        """Batch members that must be migrated before ``node``."""
        return set(self.edges.get(node, set()))

    def cycle_of(self, node: int) -> Optional[List[int]]:
        for cycle in self.cycles:
            if node in cycle:
                return cycle
        return None


class DependencyGraphBuilder:
    """Builds a DependencyGraph from canonical records."""

    def build(
        self,
        records: Dict[int, CanonicalRecord],
        migrated: Optional[Iterable[RecordKey]] = None
    ) -> DependencyGraph:
        """
        Build the reference graph for a batch.

        Args:
            records: Canonical records keyed by artifact id
            migrated: (type, id) keys of artifacts already migrated outside
                the batch; references to them need no edge

        Returns:
            DependencyGraph with edges, unresolved references, cycles and
            migration waves
        """
        migrated_keys = set(migrated or [])
        nodes = sorted(records)
        graph = DependencyGraph(nodes=nodes, edges={node: set() for node in nodes})

        by_key: Dict[RecordKey, List[int]] = {}
        for node in nodes:
            record = records[node]
            if record.id is not None:
                by_key.setdefault((record.type, str(record.id)), []).append(node)

        for node in nodes:
            for ref in records[node].references:
                key = (ref.type, str(ref.id))
                if key in by_key:
                    graph.edges[node].update(by_key[key])
                elif key in migrated_keys:
                    continue
                else:
                    graph.unresolved.setdefault(node, []).append(ref)

        graph.cycles = self._find_cycles(nodes, graph.edges)

        blocked = graph.cycle_members | set(graph.unresolved)
        graph.waves = self._compute_waves(nodes, graph.edges, blocked)

        if graph.cycles:
            logger.warning(f"Found {len(graph.cycles)} reference cycle(s): {graph.cycles}")
        if graph.unresolved:
            logger.warning(f"{len(graph.unresolved)} record(s) have unresolved references")
        logger.debug(f"Migration waves: {graph.waves}")

        return graph

    def _find_cycles(self, nodes: List[int], edges: Dict[int, Set[int]]) -> List[List[int]]:
        """Strongly connected components of size > 1, or with a self-loop."""
        cycles = []
        for component in self._strongly_connected(nodes, edges):
            if len(component) > 1 or component[0] in edges[component[0]]:
                cycles.append(component)
        return sorted(cycles)

    @staticmethod
    def _strongly_connected(nodes: List[int], edges: Dict[int, Set[int]]) -> List[List[int]]:
        """Iterative Tarjan's algorithm."""
        index: Dict[int, int] = {}
        low: Dict[int, int] = {}
        stack: List[int] = []
        on_stack: Set[int] = set()
        components = []
        counter = 0

        for root in nodes:
            if root in index:
                continue

            index[root] = low[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            work = [(root, iter(sorted(edges[root])))]

            while work:
                node, successors = work[-1]
                descended = False

                for succ in successors:
                    if succ not in index:
                        index[succ] = low[succ] = counter
                        counter += 1
                        stack.append(succ)
                        on_stack.add(succ)
                        work.append((succ, iter(sorted(edges[succ]))))
                        descended = True
                        break
                    if succ in on_stack:
                        low[node] = min(low[node], index[succ])

                if descended:
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    low[parent] = min(low[parent], low[node])

                if low[node] == index[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    components.append(sorted(component))

        return components

    @staticmethod
    def _compute_waves(
        nodes: List[int],
        edges: Dict[int, Set[int]],
        blocked: Set[int]
    ) -> List[List[int]]:
        """
        Kahn's algorithm over the unblocked subgraph.

        Edges into blocked nodes are ignored here; the scheduler
        short-circuits their dependents when the prerequisite fails.
        """
        active = [node for node in nodes if node not in blocked]
        active_set = set(active)

        in_degree = {node: 0 for node in active}
        dependents: Dict[int, List[int]] = {node: [] for node in active}
        for node in active:
            for dep in edges[node]:
                if dep in active_set:
                    in_degree[node] += 1
                    dependents[dep].append(node)

        waves = []
        wave = sorted(node for node in active if in_degree[node] == 0)
        while wave:
            waves.append(wave)
            released = []
            for node in wave:
                for dependent in dependents[node]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        released.append(dependent)
            wave = sorted(released)

        return waves
