"""
Conversion Runner

Applies a conversion plan to a SceneHost.

Workflow:
1. Confirm with the user
2. Find or create the container node for new cloth nodes
3. Plan the conversion of every DynamicBone in scope
4. Create one cloth node per planned entry and attach its MagicaCloth
5. Write colliders back onto their anchors and remove the source colliders
6. Remove the converted DynamicBones
7. Offer to remove any DynamicBone left behind

Steps 2-6 form a single undo group; the cleanup in step 7 is undone separately.
"""

from typing import Dict, Iterable, List, Optional, Set

from loguru import logger

from magica_bridge.converter.host import HostOperationError, SceneHost
from magica_bridge.converter.planner import ConversionPlanner, log_notice
from magica_bridge.converter.types import (
    ConversionOptions,
    ConversionSummary,
    Notice,
    NoticeLevel,
    PlanEntry,
    PlannedCollider,
    SourceBoneSpec,
    TargetColliderSpec,
)

CONVERT_UNDO_GROUP = "Convert DB to MagicaCloth V2"
CLEANUP_UNDO_GROUP = "Cleanup of Remaining DynamicBones"


class ConversionRunner:
    """
    Drives a DynamicBone to MagicaCloth conversion pass against a host.

    Per-component failures are isolated: a cloth node that cannot be created
    is rolled back and the pass moves on to the next DynamicBone.
    """

    def __init__(
        self,
        host: SceneHost,
        options: Optional[ConversionOptions] = None,
        planner: Optional[ConversionPlanner] = None,
    ):
        self.host = host
        self.options = options or ConversionOptions()
        self.planner = planner or ConversionPlanner(self.options)

    # Entry points ----------------------------------------------------------

    def convert_hierarchy(
        self,
        root_id: str,
        skip_exclusions: Optional[bool] = None,
        cleanup: bool = True,
    ) -> Optional[ConversionSummary]:
        """
        Convert every DynamicBone below ``root_id``.

        Returns:
            The summary, or None when the user declined the confirmation
        """
        if skip_exclusions is None:
            skip_exclusions = self.options.skip_exclusions

        root_name = self.host.node_name(root_id)
        context_name = f"{root_name} (Hierarchy)"
        sources = self.host.find_sources(root_id)
        if not sources:
            logger.info("No DynamicBone components found in the hierarchy of '{}'", root_name)
            return ConversionSummary(context_name=context_name)

        action = (
            "convert all components EXCEPT those with exclusions"
            if skip_exclusions
            else "convert ALL components (and warn about those with exclusions)"
        )
        proceed = self.host.confirm(
            "Confirm Hierarchy Conversion",
            f"Found {len(sources)} DynamicBone component(s) in the hierarchy of '{root_name}'.\n\n"
            f"This will {action}.\n\nThis operation can be undone. Do you want to proceed?",
            "Yes, Convert",
            "Cancel",
        )
        if not proceed:
            logger.info("Conversion of '{}' cancelled by user", root_name)
            return None

        self.host.begin_undo_group(CONVERT_UNDO_GROUP)
        try:
            container_id = self._container(root_id)
            summary = self.convert(sources, context_name, skip_exclusions, container_id)
        finally:
            self.host.end_undo_group()

        if cleanup:
            summary.residual_removed = self.cleanup_residual([root_id])
        return summary

    def convert_component(self, component_id: str, cleanup: bool = True) -> Optional[ConversionSummary]:
        """Convert a single DynamicBone. Components with exclusions are never skipped here."""
        source = self.host.find_component(component_id)
        if not isinstance(source, SourceBoneSpec):
            raise ValueError(f"Component {component_id} is not a DynamicBone")

        owner_name = self.host.node_name(source.node_id)
        exclusion_warning = ""
        if source.has_exclusions:
            exclusion_warning = (
                "\n\nWARNING: This component uses exclusions. These will NOT be converted "
                "and require manual setup in MagicaCloth."
            )
        proceed = self.host.confirm(
            "Confirm Single Conversion",
            f"Convert the DynamicBone component on '{owner_name}' to MagicaCloth V2?{exclusion_warning}\n\n"
            "This will remove the DynamicBone component and its associated colliders, "
            "replacing them with MagicaCloth equivalents.\n\n"
            "Mapping is APPROXIMATE. Manual tuning WILL be required.\n\nProceed?",
            "Yes, Convert This Component",
            "Cancel",
        )
        if not proceed:
            logger.info("Conversion of '{}' cancelled by user", owner_name)
            return None

        self.host.begin_undo_group(CONVERT_UNDO_GROUP)
        try:
            container_id = self._container(self.host.root_of(source.node_id))
            summary = self.convert([source], f"{owner_name} (Single Component)", False, container_id)
        finally:
            self.host.end_undo_group()

        if cleanup:
            summary.residual_removed = self.cleanup_residual([source.node_id])
        return summary

    def convert(
        self,
        sources: List[SourceBoneSpec],
        context_name: str,
        skip_exclusions: Optional[bool] = None,
        container_id: Optional[str] = None,
    ) -> ConversionSummary:
        """
        Plan and apply a conversion pass as one undo group.

        New cloth nodes go under ``container_id`` when given, otherwise next
        to the node that held the DynamicBone.
        """
        summary = ConversionSummary(context_name=context_name, attempted=len(sources))

        self.host.begin_undo_group(CONVERT_UNDO_GROUP)
        try:
            plan = self.planner.plan(sources, skip_exclusions, self._existing_colliders(sources))
            summary.notices = plan.notices
            summary.skipped = len(plan.skipped)

            pending = self._pending_colliders(plan.entries)
            failed: Set[str] = set()
            for entry in plan.entries:
                if self._apply_entry(entry, container_id, pending, failed, summary.notices):
                    summary.converted += 1
                else:
                    summary.failed += 1
        finally:
            self.host.end_undo_group()

        logger.info(summary.message)
        return summary

    # Residual sweep --------------------------------------------------------

    def sweep_residual(self, root_ids: Iterable[str]) -> List[SourceBoneSpec]:
        """DynamicBones still present below ``root_ids``, e.g. skipped ones."""
        residual: List[SourceBoneSpec] = []
        for root_id in root_ids:
            try:
                residual.extend(self.host.find_sources(root_id))
            except HostOperationError:
                logger.debug("Root {} no longer exists, skipping sweep", root_id)
        return residual

    def cleanup_residual(self, root_ids: Iterable[str]) -> int:
        """Ask the user, then remove leftover DynamicBones in their own undo group."""
        residual = self.sweep_residual(root_ids)
        if not residual:
            return 0

        proceed = self.host.confirm(
            "Cleanup Remaining Dynamic Bones",
            f"Found {len(residual)} DynamicBone component(s) that were not converted "
            "(e.g., they were skipped due to having exclusions).\n\n"
            "Do you want to remove these remaining components?\n\n"
            "This operation can be undone separately.",
            "Yes, Remove Them",
            "No, Keep Them",
        )
        if not proceed:
            return 0

        self.host.begin_undo_group(CLEANUP_UNDO_GROUP)
        try:
            for source in residual:
                self.host.remove_component(source)
        finally:
            self.host.end_undo_group()

        logger.info("Cleanup complete: removed {} remaining DynamicBone component(s)", len(residual))
        return len(residual)

    # Internal helpers -------------------------------------------------

    def _container(self, parent_id: str) -> Optional[str]:
        if not self.options.use_container:
            return None
        name = self.options.container_name
        existing = self.host.find_child(parent_id, name)
        if existing is not None:
            return existing
        return self.host.create_node(name, parent_id=parent_id, match_transform_of=parent_id)

    def _existing_colliders(self, sources: List[SourceBoneSpec]) -> Dict[str, TargetColliderSpec]:
        existing: Dict[str, TargetColliderSpec] = {}
        for source in sources:
            for collider in source.colliders:
                if collider is None or collider.node_id in existing:
                    continue
                target = self.host.target_collider_of(collider.node_id)
                if target is not None:
                    existing[collider.node_id] = target
        return existing

    def _pending_colliders(self, entries: List[PlanEntry]) -> Dict[str, List[PlannedCollider]]:
        pending: Dict[str, List[PlannedCollider]] = {}
        for entry in entries:
            for planned in entry.colliders:
                pending.setdefault(planned.target.id, []).append(planned)
        return pending

    def _apply_entry(
        self,
        entry: PlanEntry,
        container_id: Optional[str],
        pending: Dict[str, List[PlannedCollider]],
        failed: Set[str],
        notices: List[Notice],
    ) -> bool:
        source, target = entry.source, entry.target
        owner_name = self.host.node_name(source.node_id)
        parent_id = container_id if container_id is not None else self.host.parent_of(source.node_id)

        try:
            node_id = self.host.create_node(
                f"MC_{owner_name}",
                parent_id=parent_id,
                match_transform_of=source.node_id,
            )
        except HostOperationError as exc:
            self._error(notices, source, f"Failed to create the MagicaCloth node: {exc}. Skipping.")
            return False

        try:
            self.host.add_component(node_id, target)
        except HostOperationError as exc:
            self.host.delete_node(node_id)
            self._error(
                notices,
                source,
                f"Failed to add MagicaCloth to 'MC_{owner_name}': {exc}. Skipping conversion.",
            )
            return False

        for planned in entry.colliders:
            if planned.superseded and self._take(pending, planned):
                self.host.remove_component(planned.source)

        collider_list = target.collider_collision.colliders
        for target_collider in list(collider_list):
            if target_collider.id not in failed:
                for planned in pending.pop(target_collider.id, []):
                    if not self._install_collider(planned, source, notices):
                        failed.add(target_collider.id)
                        break
            if target_collider.id in failed:
                collider_list.remove(target_collider)

        self.host.remove_component(source)
        return True

    def _take(self, pending: Dict[str, List[PlannedCollider]], planned: PlannedCollider) -> bool:
        waiting = pending.get(planned.target.id, [])
        if not any(item is planned for item in waiting):
            return False
        waiting[:] = [item for item in waiting if item is not planned]
        return True

    def _install_collider(
        self,
        planned: PlannedCollider,
        source: SourceBoneSpec,
        notices: List[Notice],
    ) -> bool:
        target_collider, replacement = planned.target, planned.replacement
        anchor = target_collider.node_id

        if self.host.target_collider_of(anchor) is not target_collider:
            if replacement is not None and self.host.target_collider_of(anchor) is replacement.old:
                self.host.remove_component(replacement.old)
            try:
                self.host.add_component(anchor, target_collider)
            except HostOperationError as exc:
                self._error(
                    notices,
                    source,
                    f"Failed to add {target_collider.component_type} to "
                    f"'{planned.source.node_name}': {exc}. Skipping collider.",
                )
                return False

        if planned.geometry is not target_collider:
            target_collider.copy_geometry_from(planned.geometry)
        self.host.remove_component(planned.source)
        return True

    def _error(self, notices: List[Notice], source: SourceBoneSpec, message: str) -> None:
        notice = Notice(
            level=NoticeLevel.ERROR,
            message=message,
            source_id=source.id,
            node_name=source.node_name,
        )
        notices.append(notice)
        log_notice(notice)
