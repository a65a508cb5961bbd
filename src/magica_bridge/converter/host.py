"""
Host collaborator interface.

The converter never reaches into an editor directly. Everything it needs from
the scene (reading nodes, creating and deleting objects, grouping undo and
asking the user) goes through a SceneHost.
"""

from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Union

from magica_bridge.converter.types import (
    SourceBoneSpec,
    SourceColliderSpec,
    TargetClothSpec,
    TargetColliderSpec,
)

Component = Union[SourceBoneSpec, SourceColliderSpec, TargetClothSpec, TargetColliderSpec, dict]


class HostOperationError(RuntimeError):
    """Raised when the host cannot create, attach or delete an object."""


class SceneHost(ABC):
    """Services the conversion runner expects from the host object graph."""

    # Reading ---------------------------------------------------------------

    @abstractmethod
    def node_name(self, node_id: str) -> str: ...

    @abstractmethod
    def parent_of(self, node_id: str) -> Optional[str]: ...

    @abstractmethod
    def root_of(self, node_id: str) -> str: ...

    @abstractmethod
    def find_child(self, parent_id: str, name: str) -> Optional[str]: ...

    @abstractmethod
    def iter_subtree(self, root_id: str) -> Iterator[str]:
        """Yield ``root_id`` and all of its descendants, depth first."""

    @abstractmethod
    def components_of(self, node_id: str) -> List[Component]: ...

    @abstractmethod
    def find_component(self, component_id: str) -> Optional[Component]: ...

    def find_sources(self, root_id: str) -> List[SourceBoneSpec]:
        """All DynamicBone components in the subtree, inactive ones included."""
        return [
            component
            for node_id in self.iter_subtree(root_id)
            for component in self.components_of(node_id)
            if isinstance(component, SourceBoneSpec)
        ]

    def target_collider_of(self, node_id: str) -> Optional[TargetColliderSpec]:
        for component in self.components_of(node_id):
            if isinstance(component, TargetColliderSpec):
                return component
        return None

    # Writing ---------------------------------------------------------------

    @abstractmethod
    def create_node(
        self,
        name: str,
        parent_id: Optional[str] = None,
        match_transform_of: Optional[str] = None,
    ) -> str:
        """
        Create a node and return its id.

        When ``match_transform_of`` is given the new node copies that node's
        world transform, which is kept when parenting under ``parent_id``.
        """

    @abstractmethod
    def delete_node(self, node_id: str) -> None: ...

    @abstractmethod
    def add_component(self, node_id: str, component: Component) -> Component: ...

    @abstractmethod
    def remove_component(self, component: Component) -> None: ...

    # Undo and user interaction -------------------------------------------

    @abstractmethod
    def begin_undo_group(self, name: str) -> None: ...

    @abstractmethod
    def end_undo_group(self) -> None: ...

    @abstractmethod
    def undo(self) -> bool:
        """Revert the most recent undo group. Returns False when there is none."""

    @abstractmethod
    def confirm(self, title: str, message: str, ok: str = "OK", cancel: str = "Cancel") -> bool: ...
