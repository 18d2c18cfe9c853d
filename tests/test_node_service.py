import pytest

from flowforge.core.errors import (
    EdgeCreationError,
    MetadataValidationError,
    NodeCreationError,
    NodeNotFoundError,
    NodeUpdateError,
)
from flowforge.data.models import EdgeType, Handle
from flowforge.data.store import SqlGraphStore
from flowforge.llm.schemas import SuggestionGroup
from flowforge.services import NodeService, SuggestionService


class FailingEdgeStore(SqlGraphStore):
    def create_edge(self, *args, **kwargs):
        raise EdgeCreationError("edge table unavailable")


@pytest.fixture
def service(store, footprint):
    return NodeService(store, footprint)


def test_child_placed_in_direction_and_connected_opposite(store, project, service):
    anchor = store.get_anchor_node(project.id)

    node = service.create_child_node(project.id, anchor.id, "data-entity", Handle.bottom)

    assert node.title == "New Database"
    assert node.parent_id == anchor.id
    assert (node.position_x, node.position_y) == (0.0, 350.0)
    assert node.metadata == {"entity_name": "New Database"}
    (edge,) = store.list_edges(project.id)
    assert (edge.source_id, edge.target_id) == (anchor.id, node.id)
    assert (edge.source_handle, edge.target_handle) == (Handle.bottom, Handle.top)


def test_repeated_children_get_unique_titles(project, store, service):
    anchor = store.get_anchor_node(project.id)

    first = service.create_child_node(project.id, anchor.id, "user-flow", "left")
    second = service.create_child_node(project.id, anchor.id, "user-flow", "left")

    assert first.title == "New User Flows"
    assert second.title == "New User Flows 2"


def test_singleton_uses_default_title_once(project, store, service):
    anchor = store.get_anchor_node(project.id)

    node = service.create_child_node(project.id, anchor.id, "feature-set", "right")

    assert node.title == "Features"
    assert node.metadata == {"features": []}
    with pytest.raises(NodeCreationError):
        service.create_child_node(project.id, anchor.id, "features", "top")


def test_edge_failure_removes_new_node(engine, project, footprint):
    store = FailingEdgeStore(engine)
    anchor = store.get_anchor_node(project.id)

    with pytest.raises(EdgeCreationError):
        NodeService(store, footprint).create_child_node(project.id, anchor.id, "data-entity", "right")

    assert [node.id for node in store.list_nodes(project.id)] == [anchor.id]


def test_parent_must_belong_to_project(store, project, service):
    other = store.create_project("Other", None)
    foreign_anchor = store.get_anchor_node(other.id)

    with pytest.raises(NodeNotFoundError):
        service.create_child_node(project.id, foreign_anchor.id, "data-entity", "right")


def test_snapshot_position_and_delete(store, project, service):
    anchor = store.get_anchor_node(project.id)
    node = service.create_child_node(project.id, anchor.id, "data-entity", "right")

    service.update_node_position(node.id, 42.0, 7.0)
    snapshot = service.snapshot(project.id)
    assert snapshot.node(node.id).position_x == 42.0
    assert len(snapshot.edges) == 1

    with pytest.raises(ValueError):
        service.delete_node(anchor.id)
    service.delete_node(node.id)
    assert service.snapshot(project.id).edges == []


def test_connect_nodes_is_idempotent(store, project, service):
    anchor = store.get_anchor_node(project.id)
    user = service.create_child_node(project.id, anchor.id, "data-entity", "left")
    flow = service.create_child_node(project.id, anchor.id, "user-flow", "top")

    edge = service.connect_nodes(project.id, flow.id, user.id, EdgeType.depends_on)

    assert edge is not None and edge.edge_type == EdgeType.depends_on
    assert service.connect_nodes(project.id, flow.id, user.id, "depends_on") is None


def test_child_created_with_title_and_description(store, project, service):
    anchor = store.get_anchor_node(project.id)

    node = service.create_child_node(
        project.id,
        anchor.id,
        "data-entity",
        "left",
        title="  Invoice ",
        metadata={"description": "Billing record", "entity_name": "ignored"},
    )

    assert node.title == "Invoice"
    assert node.metadata == {"description": "Billing record", "entity_name": "Invoice"}
    with pytest.raises(NodeCreationError):
        service.create_child_node(project.id, anchor.id, "data-entity", "top", title="Invoice")


def test_singleton_child_seeded_with_entries(store, project, service):
    anchor = store.get_anchor_node(project.id)

    node = service.create_child_node(
        project.id,
        anchor.id,
        "tech-stack",
        "bottom",
        title="ignored",
        metadata={"techStack": [{"name": "Postgres"}, {"id": 5, "name": "Redis"}]},
    )

    assert node.title == "Tech Stack"
    assert node.metadata["techStack"] == [{"name": "Postgres", "id": 6}, {"id": 5, "name": "Redis"}]


def test_rename_mirrors_title_into_metadata(store, project, service):
    anchor = store.get_anchor_node(project.id)
    node = service.create_child_node(project.id, anchor.id, "user-flow", "top", title="Checkout")

    renamed = service.update_node_title(node.id, "Guest checkout")

    assert renamed.title == "Guest checkout"
    assert renamed.metadata["flow_name"] == "Guest checkout"
    assert store.find_node_by_category_and_title(project.id, "user-flow", "Guest checkout").id == node.id


@pytest.mark.parametrize("title", ["", "   ", "x" * 201])
def test_rename_rejects_invalid_titles(store, project, service, title):
    anchor = store.get_anchor_node(project.id)
    node = service.create_child_node(project.id, anchor.id, "data-entity", "left", title="User")

    with pytest.raises(NodeUpdateError):
        service.update_node_title(node.id, title)
    assert store.get_node(node.id).title == "User"


def test_rename_rejects_duplicate_title(store, project, service):
    anchor = store.get_anchor_node(project.id)
    service.create_child_node(project.id, anchor.id, "data-entity", "left", title="User")
    order = service.create_child_node(project.id, anchor.id, "data-entity", "top", title="Order")

    with pytest.raises(NodeUpdateError):
        service.update_node_title(order.id, "User")


def test_singletons_and_anchor_keep_their_titles(store, project, service):
    anchor = store.get_anchor_node(project.id)
    features = service.create_child_node(project.id, anchor.id, "feature-set", "right")

    with pytest.raises(NodeUpdateError):
        service.update_node_title(features.id, "Capabilities")
    with pytest.raises(NodeUpdateError):
        service.update_node_title(anchor.id, "Renamed")


def test_metadata_edit_validated_and_title_field_kept(store, project, service):
    anchor = store.get_anchor_node(project.id)
    node = service.create_child_node(project.id, anchor.id, "data-entity", "left", title="User")

    with pytest.raises(MetadataValidationError):
        service.update_node_metadata(node.id, {"security_model": ["owner", "admin"]})

    updated = service.update_node_metadata(node.id, {"security_model": "owner only"})
    assert updated.metadata == {"security_model": "owner only", "entity_name": "User"}


def test_update_entries_numbers_new_rows(store, project, service):
    anchor = store.get_anchor_node(project.id)
    node = service.create_child_node(project.id, anchor.id, "feature-set", "right")

    updated = service.update_entries(
        node.id,
        [{"id": 3.0, "title": "Search"}, {"title": "Export", "description": None}],
    )

    assert updated.metadata["features"] == [{"id": 3, "title": "Search"}, {"title": "Export", "id": 4}]
    entity = service.create_child_node(project.id, anchor.id, "data-entity", "left", title="User")
    with pytest.raises(NodeUpdateError):
        service.update_entries(entity.id, [])


def test_manual_edits_survive_later_suggestions(store, project, service, notifier, footprint):
    suggestions = SuggestionService(store, notifier=notifier, footprint=footprint)
    suggestions.process_suggestions(
        project.id,
        SuggestionGroup.model_validate({"type": "database", "items": [{"title": "User"}]}),
    )
    suggestions.process_suggestions(
        project.id,
        SuggestionGroup.model_validate({"type": "features", "items": [{"title": "Login"}]}),
    )
    entity = store.find_node_by_category_and_title(project.id, "data-entity", "User")
    features = store.find_node_by_category(project.id, "feature-set")

    service.update_node_title(entity.id, "Account")
    service.update_node_metadata(entity.id, {"security_model": "owner only", "notes": "GDPR"})
    service.update_entries(features.id, [{"id": 1, "title": "Sign in", "notes": "SSO later"}])

    report = suggestions.process_suggestions(
        project.id,
        SuggestionGroup.model_validate(
            {"type": "database", "items": [{"title": "Account", "description": "Login identity"}]}
        ),
    )
    suggestions.process_suggestions(
        project.id,
        SuggestionGroup.model_validate({"type": "features", "items": [{"title": "Search"}]}),
    )

    assert report.created_node_ids == []
    entity = store.get_node(entity.id)
    assert entity.metadata == {
        "entity_name": "Account",
        "security_model": "owner only",
        "notes": "GDPR",
        "description": "Login identity",
    }
    assert store.get_node(features.id).metadata["features"] == [
        {"id": 1, "title": "Sign in", "notes": "SSO later"},
        {"id": 2, "title": "Search", "description": ""},
    ]
