# src/atlas_targets/core/graph/__init__.py

from .graph import DependencyGraph, Node, build_graph

__all__ = ["DependencyGraph", "Node", "build_graph"]
