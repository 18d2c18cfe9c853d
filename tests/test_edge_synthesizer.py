import pytest

from flowforge.core.errors import EdgeCreationError
from flowforge.data.models import Handle
from flowforge.data.store import SqlGraphStore
from flowforge.services import EdgeSynthesizer
from flowforge.utils.categories import DATA_ENTITY, TECH_STACK


class FailingEdgeStore(SqlGraphStore):
    def create_edge(self, *args, **kwargs):
        raise EdgeCreationError("edge table unavailable")


class FailingEverythingStore(FailingEdgeStore):
    def delete_node(self, node_id):
        raise RuntimeError("delete refused")


def _entity(store, project, title="User"):
    anchor = store.get_anchor_node(project.id)
    node = store.create_node(project.id, DATA_ENTITY, anchor.id, title, 0, 0, {"entity_name": title})
    return anchor, node


def test_ensure_edge_uses_category_handles(store, project):
    anchor = store.get_anchor_node(project.id)
    node = store.create_node(project.id, TECH_STACK, anchor.id, "Tech Stack", 0, 0, {"techStack": []})

    created = EdgeSynthesizer(store).ensure_edge(project.id, anchor.id, node.id, "tech_stack", created=True)

    assert created is True
    (edge,) = store.list_edges(project.id)
    assert (edge.source_id, edge.target_id) == (anchor.id, node.id)
    assert (edge.source_handle, edge.target_handle) == (Handle.bottom, Handle.top)


def test_existing_edge_is_a_no_op(store, project):
    anchor, node = _entity(store, project)
    synthesizer = EdgeSynthesizer(store)

    assert synthesizer.ensure_edge(project.id, anchor.id, node.id, DATA_ENTITY) is True
    assert synthesizer.ensure_edge(project.id, anchor.id, node.id, DATA_ENTITY) is False
    assert len(store.list_edges(project.id)) == 1


def test_failed_edge_removes_node_created_for_it(engine, project):
    store = FailingEdgeStore(engine)
    anchor, node = _entity(store, project)

    with pytest.raises(EdgeCreationError) as excinfo:
        EdgeSynthesizer(store).ensure_edge(project.id, anchor.id, node.id, DATA_ENTITY, created=True)

    assert excinfo.value.rollback_failures == []
    assert store.get_node(node.id) is None
    assert store.get_anchor_node(project.id) is not None


def test_failed_edge_keeps_preexisting_node(engine, project):
    store = FailingEdgeStore(engine)
    anchor, node = _entity(store, project)

    with pytest.raises(EdgeCreationError):
        EdgeSynthesizer(store).ensure_edge(project.id, anchor.id, node.id, DATA_ENTITY, created=False)

    assert store.get_node(node.id) is not None


def test_rollback_failure_is_reported(engine, project):
    store = FailingEverythingStore(engine)
    anchor, node = _entity(store, project)

    with pytest.raises(EdgeCreationError) as excinfo:
        EdgeSynthesizer(store).ensure_edge(project.id, anchor.id, node.id, DATA_ENTITY, created=True)

    assert len(excinfo.value.rollback_failures) == 1
    assert "delete refused" in excinfo.value.rollback_failures[0]
    assert store.get_node(node.id) is not None
