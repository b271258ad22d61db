"""Core data structures: node arena, union-find and the error taxonomy."""

from .errors import DataQualityWarning, GltfRigError, InvariantViolation, StructuralError
from .disjoint_set import DisjointSet
from .node_graph import Node, NodeGraph

__all__ = [
    'DataQualityWarning',
    'GltfRigError',
    'InvariantViolation',
    'StructuralError',
    'DisjointSet',
    'Node',
    'NodeGraph',
]
