# tests/test_graph.py
import pytest

from powertree_core import Edge, Project, compute
from powertree_core.analysis import build_project_graph, topological_order
from powertree_core.components import ConverterNode, LoadNode, SourceNode

from tests.conftest import edge, make_project


def _chain_project() -> Project:
    return Project(
        id="chain",
        nodes=(
            LoadNode(id="l", v_req=5.0, i_typ=1.0),
            ConverterNode(id="c", vin_min=10.0, vin_max=14.0, vout=5.0),
            SourceNode(id="s", v_nom=12.0),
        ),
        edges=(Edge(id="e2", from_id="c", to_id="l"), Edge(id="e1", from_id="s", to_id="c")),
    )


class TestProjectGraph:

    def test_adjacency_preserves_edge_order(self):
        graph = build_project_graph(_chain_project())
        assert list(graph.nodes) == ["l", "c", "s"]
        assert [e.id for e in graph.outgoing["c"]] == ["e2"]
        assert [e.id for e in graph.incoming["c"]] == ["e1"]
        assert graph.digraph.number_of_edges() == 2
        assert graph.issues == ()

    def test_missing_lists_are_substituted_with_issues(self):
        graph = build_project_graph(Project(id="empty", nodes=None, edges=None))
        assert graph.nodes == {}
        assert [issue.code for issue in graph.issues] == ["STRUCT_NODES_MISSING", "STRUCT_EDGES_MISSING"]

    def test_duplicate_node_keeps_first(self):
        project = Project(nodes=(SourceNode(id="s", v_nom=12.0), SourceNode(id="s", v_nom=48.0)))
        graph = build_project_graph(project)
        assert graph.nodes["s"].v_nom == 12.0
        assert graph.issues[0].code == "STRUCT_DUPLICATE_NODE"

    def test_dangling_edge_is_ignored(self):
        project = Project(nodes=(SourceNode(id="s", v_nom=12.0),), edges=(Edge(id="e1", from_id="s", to_id="ghost"),))
        graph = build_project_graph(project)
        assert graph.edges == {}
        assert graph.issues[0].code == "STRUCT_DANGLING_EDGE"
        assert "ghost" in graph.issues[0].message


class TestTopologicalOrder:

    def test_parents_come_before_children(self):
        ordering = topological_order(build_project_graph(_chain_project()))
        assert ordering.is_acyclic
        assert ordering.order.index("s") < ordering.order.index("c") < ordering.order.index("l")

    def test_isolated_nodes_are_emitted(self):
        project = Project(nodes=(SourceNode(id="a"), SourceNode(id="b")))
        ordering = topological_order(build_project_graph(project))
        assert ordering.order == ("a", "b")

    def test_cycle_is_detected(self):
        project = Project(
            nodes=(ConverterNode(id="a"), ConverterNode(id="b"), LoadNode(id="c")),
            edges=(
                Edge(id="e1", from_id="a", to_id="b"),
                Edge(id="e2", from_id="b", to_id="a"),
                Edge(id="e3", from_id="b", to_id="c"),
            ),
        )
        ordering = topological_order(build_project_graph(project))
        assert not ordering.is_acyclic
        assert set(ordering.cycle_nodes) == {"a", "b"}


class TestCycleBlocksComputation:

    def test_cycle_yields_global_warning_and_zeroed_results(self):
        document = make_project(
            nodes=[
                {"id": "a", "type": "Converter", "Vin_min": 10, "Vin_max": 14, "Vout": 12},
                {"id": "b", "type": "Converter", "Vin_min": 10, "Vin_max": 14, "Vout": 12},
                {"id": "l", "type": "Load", "Vreq": 12, "I_typ": 1, "I_max": 1},
            ],
            edges=[edge("e1", "a", "b", 10), edge("e2", "b", "a", 10), edge("e3", "b", "l")],
        )
        result = compute(document)

        assert len(result.global_warnings) > 0
        assert "Cycle detected: computation blocked." in result.global_warnings
        for computed in result.nodes.values():
            assert computed.p_in == 0.0
            assert computed.p_out == 0.0
            assert computed.loss == 0.0
        for computed_edge in result.edges.values():
            assert computed_edge.p_loss_edge == 0.0
        assert result.totals.source_input == 0.0
