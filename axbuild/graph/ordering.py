"""
Dependency-first ordering of modules.

`topological_order` sorts the full module reference graph with Kahn's
algorithm; `order_modules` then narrows that global order down to the modules
that actually need a build.
"""

from __future__ import annotations

import heapq
import logging
from typing import Dict, Iterable, List, Mapping, NamedTuple, Sequence, Tuple

from axbuild.errors import CyclicDependencyError, UnknownModuleError
from axbuild.metadata.models import ModuleInfo, module_key

logger = logging.getLogger(__name__)


class OrderedModule(NamedTuple):
    """A module scheduled for build together with the models to build."""

    name: str
    models: Tuple[str, ...]


def topological_order(modules: Sequence[ModuleInfo]) -> List[ModuleInfo]:
    """
    Return `modules` ordered so that every module follows the modules it
    references.

    Among modules whose dependencies are satisfied, the one listed first in
    `modules` goes first, so unconstrained modules keep their input order.
    References to modules outside `modules` are ignored.

    Raises:
        CyclicDependencyError: the reference graph contains a cycle.
    """

    position: Dict[str, int] = {}
    for index, module in enumerate(modules):
        position.setdefault(module_key(module.name), index)

    indegree: Dict[str, int] = {key: 0 for key in position}
    dependents: Dict[str, List[str]] = {key: [] for key in position}
    dependencies: Dict[str, List[str]] = {key: [] for key in position}

    for module in modules:
        key = module_key(module.name)
        for reference in module.references:
            ref_key = module_key(reference)
            if ref_key not in position:
                logger.debug("Ignoring reference %s -> %s outside the graph", module.name, reference)
                continue
            if ref_key in dependencies[key]:
                continue
            dependencies[key].append(ref_key)
            dependents[ref_key].append(key)
            indegree[key] += 1

    ready = [position[key] for key, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)
    ordered: List[ModuleInfo] = []
    while ready:
        module = modules[heapq.heappop(ready)]
        ordered.append(module)
        for dependent in dependents[module_key(module.name)]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    if len(ordered) < len(position):
        remaining = {key: dependencies[key] for key, degree in indegree.items() if degree > 0}
        names = {module_key(module.name): module.name for module in modules}
        cycle = find_cycle(remaining)
        raise CyclicDependencyError([names[key] for key in cycle])

    return ordered


def find_cycle(graph: Mapping[str, Sequence[str]]) -> List[str]:
    """
    Return one cycle in `graph` as a closed path (`[a, b, a]`), or an empty
    list when the graph is acyclic.
    """

    visiting, done = 1, 2
    state: Dict[str, int] = {}

    for start in graph:
        if state.get(start):
            continue
        stack: List[Tuple[str, int]] = [(start, 0)]
        path: List[str] = [start]
        state[start] = visiting
        while stack:
            node, child_index = stack[-1]
            children = [child for child in graph.get(node, ()) if child in graph]
            if child_index >= len(children):
                stack.pop()
                path.pop()
                state[node] = done
                continue
            stack[-1] = (node, child_index + 1)
            child = children[child_index]
            if state.get(child) == visiting:
                return path[path.index(child):] + [child]
            if not state.get(child):
                state[child] = visiting
                stack.append((child, 0))
                path.append(child)
    return []


def order_modules(
    global_order: Sequence[ModuleInfo],
    required: Iterable[str],
) -> List[OrderedModule]:
    """
    Filter a global dependency order down to the `required` module names,
    preserving relative order.

    Raises:
        UnknownModuleError: a required name is absent from `global_order`.
    """

    wanted: Dict[str, str] = {}
    for name in required:
        if name and name.strip():
            wanted.setdefault(module_key(name), name.strip())

    known = {module_key(module.name) for module in global_order}
    missing = [name for key, name in wanted.items() if key not in known]
    if missing:
        raise UnknownModuleError(missing)

    return [
        OrderedModule(name=module.name, models=module.model_names)
        for module in global_order
        if module_key(module.name) in wanted
    ]


def compute_build_order(provider, required: Iterable[str]) -> List[OrderedModule]:
    """Order the `required` modules known to `provider`, dependencies first."""

    order = order_modules(provider.list_modules_in_dependency_order(), required)
    logger.info("Build order: %s", ", ".join(module.name for module in order) or "<empty>")
    return order
