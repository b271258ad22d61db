"""Tests for skin expansion and skeleton resolution"""

import pytest
from pyrr import Matrix44

from gltfrig.animation import SkinState, TopologyResolver
from gltfrig.core.errors import InvariantViolation, StructuralError
from gltfrig.core.node_graph import Node, NodeGraph


def make_graph(children_lists, names=None):
    """Build a graph from a list of children lists"""
    nodes = []
    for i, children in enumerate(children_lists):
        name = names[i] if names else f"n{i}"
        nodes.append(Node(name=name, children=list(children)))
    graph = NodeGraph(nodes)
    graph.build_parent_hierarchy()
    return graph


def test_separate_subtrees_make_separate_skeletons():
    """Skins [A, B] and [C] in different subtrees stay separate"""
    # root -> A -> B, and C as a second root
    graph = make_graph([[1], [2], [], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([1, 2])
    resolver.parse_skin([3])

    skeletons = resolver.resolve()

    assert len(skeletons) == 2
    assert sorted(skeletons[0].joints) == [1, 2]
    assert skeletons[0].roots == [1]
    assert skeletons[1].joints == [3]
    assert resolver.skins[0].skeleton == 0
    assert resolver.skins[1].skeleton == 1
    assert graph[0].skeleton == -1


def test_single_joint_skin():
    """A skin with one joint becomes a one bone skeleton"""
    graph = make_graph([[1], [2], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([2])

    skeletons = resolver.resolve()

    assert resolver.skins[0].roots == [2]
    assert len(skeletons) == 1
    assert [b.node_index for b in skeletons[0].bones] == [2]


def test_multirooted_skin_captures_connecting_nodes():
    """Joints in different branches pull their ancestors in until the roots share a parent"""
    # 0 -> (1 -> 3), 2
    graph = make_graph([[1, 2], [3], [], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([3, 2])
    skin = resolver.skins[0]

    resolver.expand_skin(skin)

    assert skin.non_joints == [1]
    assert skin.roots == [1, 2]
    assert skin.state == SkinState.EXPANDED

    resolver.verify_skin(skin)
    assert skin.state == SkinState.VERIFIED


def test_expansion_is_idempotent():
    """Expanding an already expanded skin changes nothing"""
    graph = make_graph([[1, 2], [3], [], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([3, 2])
    skin = resolver.skins[0]

    resolver.expand_skin(skin)
    resolver.verify_skin(skin)
    first = (list(skin.roots), list(skin.joints), list(skin.non_joints))

    resolver.expand_skin(skin)
    resolver.verify_skin(skin)
    assert (skin.roots, skin.joints, skin.non_joints) == first


def test_non_joints_promoted_in_skeleton():
    """Ordinary nodes between joints become joints of the skeleton"""
    graph = make_graph([[1, 2], [3], [], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([3, 2])

    skeletons = resolver.resolve()

    assert len(skeletons) == 1
    assert sorted(skeletons[0].joints) == [1, 2, 3]
    assert graph[1].joint
    assert skeletons[0].roots == [1, 2]
    assert [b.node_index for b in skeletons[0].bones] == [1, 3, 2]
    assert skeletons[0].bones[1].parent == 0
    assert skeletons[0].bones[2].parent == -1


def test_skeleton_purity():
    """Skeleton joints are all flagged joints and no node is in two skeletons"""
    graph = make_graph([[1, 4], [2], [3], [], [5], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([2, 3])
    resolver.parse_skin([5])

    skeletons = resolver.resolve()

    seen = set()
    for skel_i, skeleton in enumerate(skeletons):
        for node_i in skeleton.joints:
            assert graph[node_i].joint
            assert graph[node_i].skeleton == skel_i
            assert node_i not in seen
            seen.add(node_i)


def test_overlapping_skins_merge():
    """Skins sharing nodes collapse into one skeleton"""
    graph = make_graph([[1], [2], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([0, 1])
    resolver.parse_skin([1, 2])

    skeletons = resolver.resolve()

    assert len(skeletons) == 1
    assert resolver.skins[0].skeleton == resolver.skins[1].skeleton == 0


def test_sibling_skins_merge():
    """Skins whose top joints are siblings share a skeleton"""
    graph = make_graph([[1, 2], [], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([1])
    resolver.parse_skin([2])

    skeletons = resolver.resolve()

    assert len(skeletons) == 1
    assert skeletons[0].roots == [1, 2]


def test_skin_below_other_skin_merges():
    """A skin hanging below another skin's nodes joins its skeleton"""
    # 0 -> 1 -> 2 -> 3 with 2 left out of both skins
    graph = make_graph([[1], [2], [3], []])
    graph[2].mesh = 0
    resolver = TopologyResolver(graph)
    resolver.parse_skin([0, 1])
    resolver.parse_skin([3])

    skeletons = resolver.resolve()

    assert len(skeletons) == 1
    assert [b.node_index for b in skeletons[0].bones] == [0, 1, 2, 3]


def test_skinned_mesh_leaf_stays_out():
    """A skinned mesh under a joint is not pulled into the skeleton"""
    # 0 -> (1 -> 3), 2 where 2 is the skinned mesh
    graph = make_graph([[1, 2], [3], [], []])
    graph[2].skin = 0
    graph[2].mesh = 0
    resolver = TopologyResolver(graph)
    resolver.parse_skin([0, 1])

    skeletons = resolver.resolve()

    assert sorted(skeletons[0].joints) == [0, 1, 3]
    assert graph[2].skeleton == -1
    assert graph[3].joint


def test_bone_order_ignores_child_order():
    """Bone indices do not depend on the order children are listed in"""
    first = make_graph([[1, 2], [3], [], []])
    second = make_graph([[2, 1], [3], [], []])

    orders = []
    for graph in (first, second):
        resolver = TopologyResolver(graph)
        resolver.parse_skin([0, 1, 2, 3])
        skeleton = resolver.resolve()[0]
        orders.append([b.node_index for b in skeleton.bones])

    assert orders[0] == orders[1] == [0, 1, 3, 2]


def test_repeated_child_link_makes_one_bone():
    """A joint listed twice under its parent still gets a single bone"""
    graph = make_graph([[1, 1], []], names=["root", "j"])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([0, 1])

    skeleton = resolver.resolve()[0]

    assert [(b.name, b.node_index) for b in skeleton.bones] == [("root", 0), ("j", 1)]
    assert skeleton.node_to_bone == {0: 0, 1: 1}


def test_unique_bone_names():
    """Bone names are sanitized and made unique per skeleton"""
    graph = make_graph([[1, 2, 3], [], [], []], names=["root", "a:b", "a/b", ""])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([0, 1, 2, 3])

    skeleton = resolver.resolve()[0]

    assert [b.name for b in skeleton.bones] == ["root", "a_b", "a_b_2", "bone"]
    assert skeleton.find_bone("a_b_2") == 2
    assert skeleton.find_bone("missing") == -1
    assert graph[2].name == "a_b_2"


def test_skin_binds_map_to_bones():
    """Each original joint binds to its bone with its inverse bind matrix"""
    graph = make_graph([[1], []])
    inverse = [Matrix44.identity(), Matrix44.from_translation([0.0, -1.0, 0.0])]
    resolver = TopologyResolver(graph)
    resolver.parse_skin([1, 0], inverse_binds=inverse)

    resolver.resolve()
    skin = resolver.skins[0]

    assert skin.joint_i_to_bone_i == {0: 1, 1: 0}
    assert [b.bone for b in skin.binds] == [1, 0]
    assert skin.binds[1].inverse_bind is inverse[1]


def test_named_binds():
    """Named binds carry the bone name instead of the index"""
    graph = make_graph([[1], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([0, 1])

    resolver.resolve(use_named_binds=True)

    assert [(b.bone, b.name) for b in resolver.skins[0].binds] == [(-1, "n0"), (-1, "n1")]


def test_duplicate_skins_share_binds():
    """A later identical skin reuses the earlier binds and is reported"""
    graph = make_graph([[1], []])
    messages = []
    resolver = TopologyResolver(graph, on_warning=messages.append)
    resolver.parse_skin([0, 1])
    resolver.parse_skin([0, 1])

    resolver.resolve()

    assert resolver.skins[1].shared_with == 0
    assert resolver.skins[1].binds is resolver.skins[0].binds
    assert len(messages) == 1


def test_joint_out_of_range():
    """A skin citing a nonexistent joint is a structural error"""
    resolver = TopologyResolver(make_graph([[]]))
    with pytest.raises(StructuralError):
        resolver.parse_skin([0, 7])


def test_inverse_bind_count_mismatch():
    """Inverse bind matrices must match the joint count"""
    resolver = TopologyResolver(make_graph([[1], []]))
    with pytest.raises(StructuralError):
        resolver.parse_skin([0, 1], inverse_binds=[Matrix44.identity()])


def test_verify_detects_root_mismatch():
    """Verification fails when stored roots disagree with the node set"""
    graph = make_graph([[1], []])
    resolver = TopologyResolver(graph)
    resolver.parse_skin([0, 1])
    skin = resolver.skins[0]
    resolver.expand_skin(skin)

    skin.roots = [1]
    with pytest.raises(InvariantViolation):
        resolver.verify_skin(skin)


def test_default_skin_names():
    """Unnamed skins are named after their index"""
    resolver = TopologyResolver(make_graph([[1], []]))
    resolver.parse_skin([0])
    resolver.parse_skin([1], name="Body")

    assert [s.name for s in resolver.skins] == ["skin_0", "Body"]
