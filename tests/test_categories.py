import pytest

from flowforge.core.errors import UnknownCategoryError
from flowforge.data.metadata import RootMetadata
from flowforge.data.models import ROOT_CATEGORY, Handle
from flowforge.utils.categories import (
    CATEGORY_REGISTRY,
    DATA_ENTITY,
    FEATURE_SET,
    TECH_STACK,
    DEFAULT_COLOR,
    ROOT_COLOR,
    USER_FLOW,
    classify,
    color_for,
    metadata_schema_for,
    normalize_category,
)


@pytest.mark.parametrize(
    "tag, expected",
    [
        ("features", FEATURE_SET),
        ("feature-set", FEATURE_SET),
        ("tech_stack", TECH_STACK),
        ("Tech Stack", TECH_STACK),
        ("database", DATA_ENTITY),
        ("data_entity", DATA_ENTITY),
        ("user_flows", USER_FLOW),
        (" user-flow ", USER_FLOW),
    ],
)
def test_protocol_tags_map_to_registry_entries(tag, expected):
    assert classify(tag).tag == expected


@pytest.mark.parametrize("tag", ["timeline", "", None, 42])
def test_unknown_tags_raise(tag):
    assert normalize_category(tag) is None
    with pytest.raises(UnknownCategoryError) as excinfo:
        classify(tag)
    assert excinfo.value.category == tag


def test_root_is_not_a_suggestion_category():
    with pytest.raises(UnknownCategoryError):
        classify(ROOT_CATEGORY)
    assert metadata_schema_for(ROOT_CATEGORY) is RootMetadata


def test_handles_per_category():
    handles = {tag: (d.source_handle, d.target_handle) for tag, d in CATEGORY_REGISTRY.items()}

    assert handles == {
        FEATURE_SET: (Handle.right, Handle.left),
        TECH_STACK: (Handle.bottom, Handle.top),
        DATA_ENTITY: (Handle.left, Handle.right),
        USER_FLOW: (Handle.top, Handle.bottom),
    }


def test_singleton_descriptors_start_with_empty_lists():
    features = CATEGORY_REGISTRY[FEATURE_SET]
    tech = CATEGORY_REGISTRY[TECH_STACK]

    assert features.is_singleton and tech.is_singleton
    assert features.empty_metadata("ignored") == {"features": []}
    assert tech.empty_metadata("ignored") == {"techStack": []}
    assert features.entry_title_field == "title"
    assert tech.entry_title_field == "name"


def test_multi_instance_descriptors_mirror_title():
    entity = CATEGORY_REGISTRY[DATA_ENTITY]
    flow = CATEGORY_REGISTRY[USER_FLOW]

    assert not entity.is_singleton and not flow.is_singleton
    assert entity.empty_metadata("User") == {"entity_name": "User"}
    assert flow.empty_metadata("Checkout") == {"flow_name": "Checkout"}


def test_each_category_declares_its_own_colour():
    colours = [descriptor.color for descriptor in CATEGORY_REGISTRY.values()]

    assert len(set(colours)) == len(colours)
    assert DEFAULT_COLOR not in colours and ROOT_COLOR not in colours
    assert color_for("data-entity") == CATEGORY_REGISTRY[DATA_ENTITY].color
    assert color_for("user_flows") == CATEGORY_REGISTRY[USER_FLOW].color
    assert color_for(ROOT_CATEGORY) == ROOT_COLOR
    assert color_for("timeline") == DEFAULT_COLOR
