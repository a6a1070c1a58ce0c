import pytest

from novah.core.exceptions import NodeNotFoundError
from novah.schemas.mindmap import MindMapEdge, MindMapGraph, NodeType
from novah.services.mindmap_builder import (
    CENTER_ID,
    apply_expansion,
    make_node,
    validate_graph,
)
from novah.services.node_expansion import expand_node
from tests.helpers.fake_llm import FailingLLM, ScriptedLLM


@pytest.fixture
def graph() -> MindMapGraph:
    nodes = [
        make_node(CENTER_ID, "Renewable energy", NodeType.center, 0, None, has_children=True),
        make_node("main1", "Solar", NodeType.main, 1, CENTER_ID),
        make_node("main2", "Wind", NodeType.main, 1, CENTER_ID),
    ]
    edges = [
        MindMapEdge(source=CENTER_ID, target="main1"),
        MindMapEdge(source=CENTER_ID, target="main2"),
    ]
    return MindMapGraph(nodes=nodes, edges=edges)


def _suggestions(*titles: str) -> dict:
    return {"new_nodes": [{"title": t, "keywords": [], "children": []} for t in titles]}


@pytest.mark.asyncio
async def test_unknown_node_fails_before_any_ai_call(graph):
    before = graph.model_dump()
    llm = FailingLLM()

    with pytest.raises(NodeNotFoundError) as excinfo:
        await expand_node("missing", graph, "query", llm)

    assert excinfo.value.node_id == "missing"
    assert llm.calls == []
    assert graph.model_dump() == before


@pytest.mark.asyncio
async def test_new_nodes_are_children_one_level_down(graph):
    llm = ScriptedLLM([_suggestions("Panel efficiency", "Rooftop growth", "Utility scale")])
    delta = await expand_node("main1", graph, "query", llm)

    assert [n.id for n in delta.nodes] == ["main1_detail_1", "main1_detail_2", "main1_detail_3"]
    assert all(n.parent_id == "main1" and n.level == 2 for n in delta.nodes)
    assert all(n.type is NodeType.sub and not n.expanded and n.has_children for n in delta.nodes)
    assert [(e.source, e.target) for e in delta.edges] == [("main1", n.id) for n in delta.nodes]
    assert not graph.node_ids() & {n.id for n in delta.nodes}
    validate_graph(apply_expansion(graph, delta))


@pytest.mark.asyncio
async def test_repeated_expansion_yields_disjoint_ids(graph):
    llm = ScriptedLLM([_suggestions("Panel efficiency", "Rooftop growth")])

    first = await expand_node("main1", graph, "query", llm)
    graph = apply_expansion(graph, first)
    second = await expand_node("main1", graph, "query", llm)

    assert 1 <= len(second.nodes) <= 5
    assert not {n.id for n in first.nodes} & {n.id for n in second.nodes}
    validate_graph(apply_expansion(graph, second))


@pytest.mark.asyncio
async def test_fan_out_is_capped(graph):
    llm = ScriptedLLM([_suggestions(*(f"Idea {i}" for i in range(12)))])
    delta = await expand_node("main1", graph, "query", llm)
    assert len(delta.nodes) == 5


@pytest.mark.asyncio
async def test_duplicate_suggestions_are_dropped(graph):
    llm = ScriptedLLM([_suggestions("Storage", "storage", "Grid", "STORAGE")])
    delta = await expand_node("main1", graph, "query", llm)
    assert [n.label for n in delta.nodes] == ["Storage", "Grid"]


@pytest.mark.asyncio
async def test_bare_list_output_is_accepted(graph):
    llm = ScriptedLLM([[{"title": "Offshore"}, {"title": "Onshore"}]])
    delta = await expand_node("main2", graph, "query", llm)
    assert [n.label for n in delta.nodes] == ["Offshore", "Onshore"]


@pytest.mark.asyncio
async def test_provider_failure_yields_placeholder_children(graph):
    delta = await expand_node("main2", graph, "turbine costs", FailingLLM())

    assert 1 <= len(delta.nodes) <= 3
    assert delta.nodes[0].label == "turbine costs"
    assert all(n.parent_id == "main2" for n in delta.nodes)


@pytest.mark.asyncio
async def test_placeholder_seed_falls_back_to_parent_label(graph):
    delta = await expand_node("main2", graph, "", ScriptedLLM(["garbage"]))
    assert delta.nodes[0].label == "Wind"


@pytest.mark.asyncio
async def test_depth_limit_returns_empty_delta(graph):
    llm = ScriptedLLM([_suggestions("Too deep")])
    delta = await expand_node("main1", graph, "query", llm, max_level=1)
    assert delta.nodes == [] and delta.edges == []
    assert llm.calls == []


@pytest.mark.asyncio
async def test_nodes_at_the_limit_do_not_advertise_children(graph):
    llm = ScriptedLLM([_suggestions("Last level")])
    delta = await expand_node("main1", graph, "query", llm, max_level=2)
    assert delta.nodes[0].level == 2
    assert not delta.nodes[0].has_children


def _sibling_labels(graph: MindMapGraph, parent_id: str) -> list[str]:
    return [n.label.lower() for n in graph.nodes if n.parent_id == parent_id]


@pytest.mark.asyncio
async def test_long_titles_are_deduplicated_as_stored(graph):
    llm = ScriptedLLM([_suggestions("Photovoltaic panel efficiency gains")])

    first = await expand_node("main1", graph, "query", llm)
    assert first.nodes[0].label.endswith("...")
    graph = apply_expansion(graph, first)
    second = await expand_node("main1", graph, "query", llm)
    graph = apply_expansion(graph, second)

    labels = _sibling_labels(graph, "main1")
    assert len(labels) == len(set(labels))


@pytest.mark.asyncio
async def test_repeated_placeholder_children_stay_distinct(graph):
    first = await expand_node("main2", graph, "storage", FailingLLM())
    graph = apply_expansion(graph, first)
    second = await expand_node("main2", graph, "storage", FailingLLM())
    graph = apply_expansion(graph, second)

    assert [n.label for n in second.nodes] == ["storage 2", "Supporting Evidence 2", "Further Analysis 2"]
    labels = _sibling_labels(graph, "main2")
    assert len(labels) == len(set(labels)) == 6
    validate_graph(graph)


@pytest.mark.asyncio
async def test_zero_max_children_adds_nothing(graph):
    llm = ScriptedLLM([_suggestions("Anything")])
    delta = await expand_node("main1", graph, "query", llm, max_children=0)
    assert delta.nodes == []
    assert llm.calls == []
