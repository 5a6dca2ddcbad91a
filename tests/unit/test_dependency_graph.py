"""Tests for reference graph construction and ordering."""

import pytest

from b2b_migrator.models.artifact import ArtifactType
from b2b_migrator.models.record import CanonicalRecord, EntityRef
from b2b_migrator.services.dependency_graph import DependencyGraphBuilder

P = ArtifactType.TRADING_PARTNER
E = ArtifactType.ENDPOINT
C = ArtifactType.CHANNEL
X = ArtifactType.CERTIFICATE


def rec(artifact_type, source_id, *refs):
    return CanonicalRecord(
        type=artifact_type,
        id=source_id,
        name=source_id,
        references=[EntityRef(t, i) for t, i in refs],
    )


@pytest.fixture()
def builder():
    return DependencyGraphBuilder()


class TestEdges:
    """Tests for reference resolution."""

    def test_reference_within_batch_creates_edge(self, builder):
        graph = builder.build({1: rec(E, "E1"), 2: rec(P, "P1", (E, "E1"))})

        assert graph.dependencies(2) == {1}
        assert graph.dependencies(1) == set()
        assert graph.unresolved == {}

    def test_reference_to_migrated_artifact_needs_no_edge(self, builder):
        graph = builder.build({2: rec(P, "P1", (E, "E1"))}, migrated=[(E, "E1")])

        assert graph.dependencies(2) == set()
        assert graph.unresolved == {}
        assert graph.order == [2]

    def test_missing_reference_is_unresolved(self, builder):
        graph = builder.build({1: rec(P, "P1", (E, "E9")), 2: rec(X, "X1")})

        assert graph.unresolved == {1: [EntityRef(E, "E9")]}
        assert graph.order == [2]

    def test_reference_type_must_match(self, builder):
        graph = builder.build({1: rec(C, "SAME"), 2: rec(P, "P1", (E, "SAME"))})
        assert 2 in graph.unresolved


class TestCycles:
    """Tests for cycle detection."""

    def test_two_node_cycle(self, builder):
        graph = builder.build({
            1: rec(P, "A", (E, "B")),
            2: rec(E, "B", (P, "A")),
            3: rec(X, "C"),
        })

        assert graph.cycles == [[1, 2]]
        assert graph.order == [3]

    def test_self_reference_is_a_cycle(self, builder):
        graph = builder.build({1: rec(P, "A", (P, "A"))})

        assert graph.cycles == [[1]]
        assert graph.order == []

    def test_three_node_cycle_and_separate_chain(self, builder):
        graph = builder.build({
            1: rec(P, "A", (E, "B")),
            2: rec(E, "B", (C, "C")),
            3: rec(C, "C", (P, "A")),
            4: rec(X, "X1"),
            5: rec(C, "C2", (X, "X1")),
        })

        assert graph.cycles == [[1, 2, 3]]
        assert graph.cycle_of(2) == [1, 2, 3]
        assert graph.cycle_of(4) is None
        assert graph.order == [4, 5]

    def test_dependent_of_cycle_is_still_ordered(self, builder):
        graph = builder.build({
            1: rec(P, "A", (E, "B")),
            2: rec(E, "B", (P, "A")),
            3: rec(C, "C", (P, "A")),
        })

        assert graph.cycle_members == {1, 2}
        # Kept in the order; the scheduler fails it when its prerequisite fails
        assert graph.order == [3]
        assert graph.dependencies(3) == {1}

    def test_long_chain_does_not_recurse(self, builder):
        size = 5000
        records = {1: rec(P, "N1")}
        for i in range(2, size + 1):
            records[i] = rec(P, f"N{i}", (P, f"N{i - 1}"))

        graph = builder.build(records)

        assert graph.cycles == []
        assert graph.order == list(range(1, size + 1))


class TestWaves:
    """Tests for Kahn ordering."""

    def test_dependencies_come_first(self, builder):
        graph = builder.build({
            1: rec(P, "P1", (E, "E1")),
            2: rec(E, "E1", (C, "C1")),
            3: rec(C, "C1", (X, "X1")),
            4: rec(X, "X1"),
        })

        assert graph.waves == [[4], [3], [2], [1]]

    def test_independent_records_share_a_wave_in_id_order(self, builder):
        graph = builder.build({
            9: rec(X, "X9"),
            3: rec(X, "X3"),
            5: rec(P, "P5", (X, "X3"), (X, "X9")),
        })

        assert graph.waves == [[3, 9], [5]]

    def test_every_edge_respects_order(self, builder):
        graph = builder.build({
            1: rec(P, "P1", (E, "E1"), (E, "E2")),
            2: rec(E, "E1", (C, "C1")),
            3: rec(E, "E2", (C, "C1")),
            4: rec(C, "C1"),
            5: rec(X, "X1"),
        })

        position = {node: i for i, node in enumerate(graph.order)}
        for node, deps in graph.edges.items():
            for dep in deps:
                assert position[dep] < position[node]
