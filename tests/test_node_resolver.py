import pytest

from flowforge.core.errors import RootNodeMissingError
from flowforge.services import NodeResolver
from flowforge.utils.categories import DATA_ENTITY, FEATURE_SET


@pytest.fixture
def resolver(store, footprint):
    return NodeResolver(store, footprint)


def test_singleton_created_once_with_default_title(store, project, resolver):
    first = resolver.resolve_target_node(project.id, "features", "Meal Calendar")
    second = resolver.resolve_target_node(project.id, "features", "Something else")

    assert first.created is True
    assert second.created is False
    assert first.node_id == second.node_id

    node = store.get_node(first.node_id)
    anchor = store.get_anchor_node(project.id)
    assert node.title == "Features"
    assert node.category == FEATURE_SET
    assert node.parent_id == anchor.id
    assert node.metadata == {"features": []}
    assert (node.position_x, node.position_y) == (550.0, 0.0)


def test_multi_instance_matches_exact_trimmed_title(store, project, resolver):
    user = resolver.resolve_target_node(project.id, DATA_ENTITY, "User")
    again = resolver.resolve_target_node(project.id, DATA_ENTITY, "  User ")
    order = resolver.resolve_target_node(project.id, DATA_ENTITY, "Order")

    assert user.created and order.created
    assert not again.created
    assert again.node_id == user.node_id
    assert order.node_id != user.node_id
    assert store.get_node(order.node_id).metadata == {"entity_name": "Order"}


def test_titles_are_case_sensitive(project, resolver):
    lower = resolver.resolve_target_node(project.id, DATA_ENTITY, "user")
    upper = resolver.resolve_target_node(project.id, DATA_ENTITY, "User")

    assert lower.node_id != upper.node_id


def test_placement_counts_existing_children(store, project, resolver):
    resolver.resolve_target_node(project.id, "features", "a")
    second = resolver.resolve_target_node(project.id, "tech_stack", "b")

    node = store.get_node(second.node_id)
    assert node.position_x == pytest.approx(0.0, abs=1e-9)
    assert node.position_y == pytest.approx(350.0)


def test_missing_anchor_raises(store, project, resolver):
    store.delete_node(store.get_anchor_node(project.id).id)

    with pytest.raises(RootNodeMissingError):
        resolver.resolve_target_node(project.id, DATA_ENTITY, "User")
