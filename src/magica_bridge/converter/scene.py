"""
In-memory scene graph host.

Nodes keep world-space transforms, so re-parenting never moves a node.
Undo is snapshot based: each outermost undo group stores a copy of the whole
graph taken when the group was opened.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

from loguru import logger

from magica_bridge.converter.host import Component, HostOperationError, SceneHost
from magica_bridge.converter.types import (
    Quaternion,
    SourceBoneSpec,
    SourceColliderSpec,
    TargetClothSpec,
    TargetColliderSpec,
    Vector3,
)

ConfirmHandler = Callable[[str, str, str, str], bool]


class SceneDocumentError(ValueError):
    """Raised when a scene document is malformed or references unknown ids."""


@dataclass
class Node:
    id: str
    name: str
    parent: Optional[str] = None
    position: Vector3 = (0.0, 0.0, 0.0)
    rotation: Quaternion = (0.0, 0.0, 0.0, 1.0)
    scale: Vector3 = (1.0, 1.0, 1.0)
    children: List[str] = field(default_factory=list)
    components: List[Component] = field(default_factory=list)


def _always_confirm(title: str, message: str, ok: str, cancel: str) -> bool:
    return True


def _component_id(component: Component) -> str:
    if isinstance(component, dict):
        return component.get("id", "")
    return component.id


class SceneGraph(SceneHost):
    """A SceneHost backed by plain Python objects."""

    def __init__(self, confirm_handler: Optional[ConfirmHandler] = None):
        self.nodes: Dict[str, Node] = {}
        self.confirm_handler = confirm_handler or _always_confirm
        self._undo_stack: List[Tuple[str, Dict[str, Node]]] = []
        self._group: Optional[Tuple[str, Dict[str, Node]]] = None
        self._group_depth = 0

    # Reading ---------------------------------------------------------------

    def node(self, node_id: str) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise HostOperationError(f"Unknown node: {node_id}") from None

    def node_name(self, node_id: str) -> str:
        return self.node(node_id).name

    def parent_of(self, node_id: str) -> Optional[str]:
        return self.node(node_id).parent

    def root_of(self, node_id: str) -> str:
        current = self.node(node_id)
        while current.parent is not None:
            current = self.nodes[current.parent]
        return current.id

    def find_child(self, parent_id: str, name: str) -> Optional[str]:
        for child_id in self.node(parent_id).children:
            if self.nodes[child_id].name == name:
                return child_id
        return None

    def iter_subtree(self, root_id: str) -> Iterator[str]:
        stack = [root_id]
        while stack:
            node_id = stack.pop()
            yield node_id
            stack.extend(reversed(self.node(node_id).children))

    def components_of(self, node_id: str) -> List[Component]:
        return list(self.node(node_id).components)

    def find_component(self, component_id: str) -> Optional[Component]:
        for node in self.nodes.values():
            for component in node.components:
                if _component_id(component) == component_id:
                    return component
        return None

    def owner_of(self, component: Component) -> Optional[str]:
        for node in self.nodes.values():
            if any(existing is component for existing in node.components):
                return node.id
        return None

    # Writing ---------------------------------------------------------------

    def create_node(
        self,
        name: str,
        parent_id: Optional[str] = None,
        match_transform_of: Optional[str] = None,
    ) -> str:
        if parent_id is not None:
            self.node(parent_id)

        node = Node(id=uuid4().hex, name=name, parent=parent_id)
        if match_transform_of is not None:
            template = self.node(match_transform_of)
            node.position = template.position
            node.rotation = template.rotation
            node.scale = template.scale

        self._insert(node)
        logger.debug("Created node {} ({})", name, node.id)
        return node.id

    def delete_node(self, node_id: str) -> None:
        node = self.node(node_id)
        for descendant in list(self.iter_subtree(node_id)):
            del self.nodes[descendant]
        if node.parent is not None and node.parent in self.nodes:
            self.nodes[node.parent].children.remove(node_id)
        logger.debug("Deleted node {} ({})", node.name, node_id)

    def add_component(self, node_id: str, component: Component) -> Component:
        node = self.node(node_id)
        component_id = _component_id(component)
        if component_id and self.find_component(component_id) is not None:
            raise HostOperationError(f"Duplicate component id: {component_id}")
        if not isinstance(component, dict):
            component.node_id = node_id
        node.components.append(component)
        return component

    def remove_component(self, component: Component) -> None:
        owner = self.owner_of(component)
        if owner is None:
            raise HostOperationError(f"Component is not attached: {_component_id(component)}")
        components = self.nodes[owner].components
        components[:] = [existing for existing in components if existing is not component]

    # Undo and user interaction -------------------------------------------

    def begin_undo_group(self, name: str) -> None:
        if self._group_depth == 0:
            self._group = (name, deepcopy(self.nodes))
        self._group_depth += 1

    def end_undo_group(self) -> None:
        if self._group_depth == 0:
            raise HostOperationError("No undo group is open")
        self._group_depth -= 1
        if self._group_depth == 0:
            self._undo_stack.append(self._group)
            self._group = None

    def undo(self) -> bool:
        if not self._undo_stack:
            return False
        name, snapshot = self._undo_stack.pop()
        self.nodes = snapshot
        logger.info("Undo: {}", name)
        return True

    @property
    def undo_history(self) -> List[str]:
        return [name for name, _ in self._undo_stack]

    def confirm(self, title: str, message: str, ok: str = "OK", cancel: str = "Cancel") -> bool:
        return bool(self.confirm_handler(title, message, ok, cancel))

    # Serialization ---------------------------------------------------------

    def _insert(self, node: Node) -> None:
        if node.id in self.nodes:
            raise SceneDocumentError(f"Duplicate node id: {node.id}")
        self.nodes[node.id] = node
        if node.parent is not None:
            self.nodes[node.parent].children.append(node.id)

    @classmethod
    def from_dict(cls, data: dict, confirm_handler: Optional[ConfirmHandler] = None) -> "SceneGraph":
        """
        Build a graph from a scene document.

        Colliders are resolved before the components that reference them, so
        document order of components does not matter.
        """
        graph = cls(confirm_handler=confirm_handler)
        raw_nodes = data.get("nodes")
        if not isinstance(raw_nodes, list):
            raise SceneDocumentError("Scene document must contain a 'nodes' list")

        try:
            raw_by_id = {raw["id"]: raw for raw in raw_nodes}
            if len(raw_by_id) != len(raw_nodes):
                raise SceneDocumentError("Scene document contains duplicate node ids")
            for raw in _parents_first(raw_nodes, raw_by_id):
                graph._insert(
                    Node(
                        id=raw["id"],
                        name=raw.get("name", raw["id"]),
                        parent=raw.get("parent"),
                        position=tuple(raw.get("position", (0.0, 0.0, 0.0))),
                        rotation=tuple(raw.get("rotation", (0.0, 0.0, 0.0, 1.0))),
                        scale=tuple(raw.get("scale", (1.0, 1.0, 1.0))),
                    )
                )
            graph._load_components(raw_nodes)
        except SceneDocumentError:
            raise
        except (KeyError, TypeError, ValueError, HostOperationError) as exc:
            raise SceneDocumentError(f"Invalid scene document: {exc}") from exc

        return graph

    def _load_components(self, raw_nodes: List[dict]) -> None:
        loaded: Dict[int, List[Component]] = {}
        source_colliders: Dict[str, SourceColliderSpec] = {}
        target_colliders: Dict[str, TargetColliderSpec] = {}

        for index, raw in enumerate(raw_nodes):
            node = self.nodes[raw["id"]]
            components: List[Optional[Component]] = []
            for raw_component in raw.get("components", []):
                kind = raw_component.get("type")
                if kind in SourceColliderSpec.COMPONENT_TYPES:
                    collider = SourceColliderSpec.from_dict(raw_component, node.id, node.name)
                    source_colliders[collider.id] = collider
                    components.append(collider)
                elif kind in TargetColliderSpec.COMPONENT_TYPES.values():
                    collider = TargetColliderSpec.from_dict(raw_component, node.id)
                    target_colliders[collider.id] = collider
                    components.append(collider)
                else:
                    components.append(None)
            loaded[index] = components

        for index, raw in enumerate(raw_nodes):
            node = self.nodes[raw["id"]]
            for raw_component, component in zip(raw.get("components", []), loaded[index]):
                if component is None:
                    component = self._load_owner_component(
                        raw_component, node, source_colliders, target_colliders
                    )
                self.add_component(node.id, component)

    def _load_owner_component(
        self,
        raw: dict,
        node: Node,
        source_colliders: Dict[str, SourceColliderSpec],
        target_colliders: Dict[str, TargetColliderSpec],
    ) -> Component:
        kind = raw.get("type")
        if kind == SourceBoneSpec.COMPONENT_TYPE:
            colliders = [_resolve(source_colliders, ref) for ref in raw.get("colliders", [])]
            spec = SourceBoneSpec.from_dict(raw, node.id, node.name, colliders)
            for ref in spec.roots + spec.exclusions + [spec.root, spec.reference_object]:
                if ref is not None and ref not in self.nodes:
                    raise SceneDocumentError(f"DynamicBone {spec.id} references unknown node {ref}")
            return spec
        if kind == TargetClothSpec.COMPONENT_TYPE:
            colliders = [
                _resolve(target_colliders, ref)
                for ref in raw.get("collider_collision", {}).get("colliders", [])
            ]
            return TargetClothSpec.from_dict(raw, node.id, [c for c in colliders if c is not None])
        return dict(raw)

    def to_dict(self) -> dict:
        return {
            "nodes": [
                {
                    "id": node.id,
                    "name": node.name,
                    "parent": node.parent,
                    "position": list(node.position),
                    "rotation": list(node.rotation),
                    "scale": list(node.scale),
                    "components": [
                        dict(component) if isinstance(component, dict) else component.to_dict()
                        for component in node.components
                    ],
                }
                for node in self.nodes.values()
            ]
        }


def _resolve(registry: Dict[str, object], ref: Optional[str]):
    """Missing references load as None, like a destroyed object in the editor."""
    if ref is None:
        return None
    return registry.get(ref)


def _parents_first(raw_nodes: List[dict], raw_by_id: Dict[str, dict]) -> List[dict]:
    ordered: List[dict] = []
    placed: set = set()

    def place(raw: dict, trail: Tuple[str, ...]) -> None:
        node_id = raw["id"]
        if node_id in placed:
            return
        if node_id in trail:
            raise SceneDocumentError(f"Cycle in node hierarchy at {node_id}")
        parent = raw.get("parent")
        if parent is not None:
            if parent not in raw_by_id:
                raise SceneDocumentError(f"Node {node_id} has unknown parent {parent}")
            place(raw_by_id[parent], trail + (node_id,))
        placed.add(node_id)
        ordered.append(raw)

    for raw in raw_nodes:
        place(raw, ())
    return ordered
