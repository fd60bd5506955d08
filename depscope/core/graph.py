import logging
from typing import Dict, List

from depscope.core.model import DependencyGroups, Dependency, Edge

ROOT_INDEX = 0


def build_index_map(old_nodes: List[Dependency], kept_nodes: List[Dependency]) -> Dict[int, int]:
    """Maps each old node position onto the position of the kept node with the same identity."""
    new_positions: Dict[str, int] = {}
    for idx, node in enumerate(kept_nodes):
        new_positions.setdefault(node.key, idx)

    index_map = {}
    for old_idx, node in enumerate(old_nodes):
        if node.key in new_positions:
            index_map[old_idx] = new_positions[node.key]
    return index_map


def remap_edges(edges: List[Edge], index_map: Dict[int, int]) -> List[Edge]:
    """
    Rewrites edge endpoints through `index_map`.

    An endpoint that did not survive is redirected to the root (index 0). Root
    self-loops and repeated (source, target) pairs are dropped.
    """
    emitted = set()
    remapped = []
    for edge in edges:
        source = index_map.get(edge.source, ROOT_INDEX)
        target = index_map.get(edge.target, ROOT_INDEX)

        if source == ROOT_INDEX and target == ROOT_INDEX:
            continue
        if (source, target) in emitted:
            continue

        emitted.add((source, target))
        remapped.append(Edge(source=source, target=target, requirement=edge.requirement))
    return remapped


def filter_vulnerable_transitives(groups: DependencyGroups) -> DependencyGroups:
    """Keeps only vulnerable (or SELF) nodes in every transitive graph, in place."""
    for deps in groups.values():
        for dep in deps:
            graph = dep.transitive_dependencies
            if not graph:
                continue

            kept = [n for n in graph.nodes if n.vulnerable or n.dependency_type == "SELF"]
            index_map = build_index_map(graph.nodes, kept)

            graph.edges = remap_edges(graph.edges, index_map)
            graph.nodes = kept
    return groups


def _has_vulnerable_transitive(dep: Dependency) -> bool:
    graph = dep.transitive_dependencies
    return bool(graph) and any(node.vulnerable for node in graph.nodes)


def filter_main_dependencies(groups: DependencyGroups) -> DependencyGroups:
    filtered: DependencyGroups = {}
    for path, deps in groups.items():
        relevant = [d for d in deps if d.vulnerable or _has_vulnerable_transitive(d)]
        if relevant:
            filtered[path] = relevant

    logging.debug(f"Filtered main dependencies: {sum(len(d) for d in filtered.values())} in {len(filtered)} files")
    return filtered
