"""
Conversion Planner Module

Maps DynamicBone specs onto MagicaCloth specs. Planning never touches host
objects: geometry meant for a collider that already exists on an anchor is
planned into a detached copy and written back by the runner.

Mapping is APPROXIMATE: the two systems model stiffness differently, and
several DynamicBone features (exclusions, force, freeze axis) have no
equivalent. Every lossy step is reported as a notice.
"""

import math
from typing import Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from loguru import logger

from magica_bridge.converter.curves import distributed_value, is_distributed, scale_curve
from magica_bridge.converter.types import (
    DOWN,
    ColliderKind,
    ColliderMode,
    ColliderReplacement,
    ClothType,
    ConversionOptions,
    ConversionPlan,
    CurveValue,
    FreezeAxis,
    Bound,
    Notice,
    NoticeLevel,
    PlanEntry,
    PlannedCollider,
    SourceBoneSpec,
    SourceColliderSpec,
    TargetClothSpec,
    TargetColliderSpec,
    Vector3,
)

_LOG_LEVELS = {
    NoticeLevel.INFO: "INFO",
    NoticeLevel.WARNING: "WARNING",
    NoticeLevel.ERROR: "ERROR",
}


def log_notice(notice: Notice) -> None:
    logger.log(
        _LOG_LEVELS[notice.level],
        "[{source}] {name}: {message}",
        source=notice.source_id,
        name=notice.node_name,
        message=notice.message,
    )


def _magnitude(vector: Vector3) -> float:
    return math.sqrt(sum(c * c for c in vector))


class ConversionPlanner:
    """
    Builds a ConversionPlan from DynamicBone specs.

    Collider state lives for one ``plan`` call: a source collider met by a
    second bone reuses the target produced for the first one.
    """

    def __init__(
        self,
        options: Optional[ConversionOptions] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.options = options or ConversionOptions()
        self._new_id = id_factory or (lambda: uuid4().hex)

    def plan(
        self,
        sources: List[SourceBoneSpec],
        skip_exclusions: Optional[bool] = None,
        existing_colliders: Optional[Mapping[str, TargetColliderSpec]] = None,
    ) -> ConversionPlan:
        """
        Plan the conversion of ``sources`` in order.

        Args:
            sources: DynamicBone specs read from the host
            skip_exclusions: Leave specs with exclusions untouched instead of
                converting them with a warning. Defaults to the options value.
            existing_colliders: Target colliders already attached to collider
                anchors, keyed by anchor node id

        Returns:
            ConversionPlan with one entry per converted source
        """
        if skip_exclusions is None:
            skip_exclusions = self.options.skip_exclusions

        plan = ConversionPlan()
        anchors: Dict[str, TargetColliderSpec] = dict(existing_colliders or {})
        converted: Dict[str, TargetColliderSpec] = {}

        for source in sources:
            if skip_exclusions and source.has_exclusions:
                self._notify(
                    plan,
                    NoticeLevel.INFO,
                    f"SKIPPING: DynamicBone uses exclusions [{self._exclusion_names(source)}]. "
                    "This component was not converted or removed.",
                    source,
                )
                plan.skipped.append(source)
                continue

            plan.entries.append(self._plan_entry(plan, source, anchors, converted))

        return plan

    # Per-spec mapping ----------------------------------------------------

    def _plan_entry(
        self,
        plan: ConversionPlan,
        source: SourceBoneSpec,
        anchors: Dict[str, TargetColliderSpec],
        converted: Dict[str, TargetColliderSpec],
    ) -> PlanEntry:
        target = TargetClothSpec(id=self._new_id(), source_id=source.id)
        entry = PlanEntry(source=source, target=target)

        target.cloth_type = self.cloth_type_for(source.node_name)
        target.root_bones = self._root_bones(plan, source)

        if source.has_exclusions:
            self._notify(
                plan,
                NoticeLevel.WARNING,
                f"DynamicBone uses exclusions [{self._exclusion_names(source)}]. "
                "The conversion proceeds, but the exclusion logic MUST be replicated manually "
                "(vertex paint, adjusted root bones or MagicaCloth exclusion features).",
                source,
            )

        target.gravity, target.gravity_direction = self.map_gravity(source.gravity)

        if any(c != 0.0 for c in source.force):
            self._notify(
                plan,
                NoticeLevel.INFO,
                f"DynamicBone uses force {source.force}. No direct mapping; consider wind or gravity.",
                source,
            )

        target.damping = distributed_value(source.damping, source.damping_curve)
        target.world_inertia = source.inertia

        target.angle_restoration.enabled = source.elasticity > 0.0
        target.angle_restoration.stiffness = distributed_value(source.elasticity, source.elasticity_curve)

        target.distance_restoration.stiffness = self.map_stiffness(source)
        self._notify(
            plan,
            NoticeLevel.INFO,
            "APPROXIMATE mapping for elasticity/stiffness. "
            f"Elasticity ({source.elasticity}) -> angle restoration stiffness. "
            f"Stiffness ({source.stiffness}) -> distance restoration stiffness "
            f"* ~{self.options.distance_stiffness_factor}. Manual tuning required.",
            source,
        )

        if source.freeze_axis != FreezeAxis.NONE:
            self._notify(
                plan,
                NoticeLevel.INFO,
                f"DynamicBone uses freeze axis ({source.freeze_axis.value}). "
                "No direct mapping; set up angle limits manually.",
                source,
            )

        target.radius = distributed_value(source.radius, source.radius_curve)

        collision = target.collider_collision
        collision.friction = source.friction
        has_colliders = len(source.colliders) > 0
        if source.radius > 0.0 or source.friction > 0.0 or has_colliders:
            collision.mode = ColliderMode.POINT
        else:
            collision.mode = ColliderMode.NONE

        collision.colliders = []
        if has_colliders:
            self._plan_colliders(plan, entry, anchors, converted)

        culling = target.culling
        if source.distant_disable:
            culling.distance_culling = True
            culling.distance_culling_length = source.distance_to_object
            culling.distance_culling_reference = source.reference_object
            culling.distance_culling_fade_ratio = 0.0
        else:
            culling.distance_culling = False

        target.update_mode = self.options.update_mode
        return entry

    def cloth_type_for(self, node_name: str) -> ClothType:
        """Spring mode for nodes whose name contains a spring keyword."""
        lowered = node_name.lower()
        for keyword in self.options.spring_keywords:
            if keyword.lower() in lowered:
                return ClothType.BONE_SPRING
        return ClothType.BONE_CLOTH

    def map_gravity(self, gravity: Vector3) -> tuple:
        """Split a gravity vector into magnitude and unit direction."""
        magnitude = _magnitude(gravity)
        if magnitude > self.options.gravity_epsilon:
            direction = tuple(c / magnitude for c in gravity)
        else:
            direction = DOWN
        return magnitude, direction

    def map_stiffness(self, source: SourceBoneSpec) -> CurveValue:
        factor = self.options.distance_stiffness_factor
        value = source.stiffness * factor
        if is_distributed(source.stiffness_curve):
            return CurveValue(value=value, curve=scale_curve(source.stiffness_curve, factor))
        return CurveValue(value=value)

    def _root_bones(self, plan: ConversionPlan, source: SourceBoneSpec) -> List[str]:
        if source.root is not None:
            return [source.root]

        roots = [root for root in source.roots if root is not None]
        if roots:
            return roots

        self._notify(
            plan,
            NoticeLevel.WARNING,
            "DynamicBone had no root specified. Defaulting the MagicaCloth root bone "
            "to the component's own transform. Verify this is correct.",
            source,
        )
        return [source.node_id]

    # Colliders -------------------------------------------------------------

    def _plan_colliders(
        self,
        plan: ConversionPlan,
        entry: PlanEntry,
        anchors: Dict[str, TargetColliderSpec],
        converted: Dict[str, TargetColliderSpec],
    ) -> None:
        source = entry.source
        collider_list = entry.target.collider_collision.colliders
        processed = False

        for source_collider in source.colliders:
            if source_collider is None:
                continue

            target_collider = converted.get(source_collider.id)
            if target_collider is None:
                kind = self.classify_collider(source_collider)
                if kind is None:
                    self._notify(
                        plan,
                        NoticeLevel.WARNING,
                        f"Skipping collider '{source_collider.id}' on '{source_collider.node_name}': "
                        f"'{source_collider.kind}' is not a supported collider type (plane, sphere, capsule).",
                        source,
                    )
                    continue

                planned = self._target_collider(plan, entry, source_collider, kind, anchors, converted)
                self._apply_geometry(plan, source, source_collider, planned.geometry)
                target_collider = planned.target
                converted[source_collider.id] = target_collider
                entry.colliders.append(planned)

            if not any(existing is target_collider for existing in collider_list):
                collider_list.append(target_collider)
            processed = True

        if processed:
            self._notify(
                plan,
                NoticeLevel.INFO,
                "Processed DynamicBone colliders. Basic sphere/capsule/plane mapped. Verify settings.",
                source,
            )

    def classify_collider(self, collider: SourceColliderSpec) -> Optional[ColliderKind]:
        """Plane colliders stay planes; sphere/capsule colliders are decided by height."""
        if collider.kind == ColliderKind.PLANE:
            return ColliderKind.PLANE
        if collider.kind in (ColliderKind.SPHERE, ColliderKind.CAPSULE):
            return ColliderKind.CAPSULE if collider.height > 0 else ColliderKind.SPHERE
        return None

    def _target_collider(
        self,
        plan: ConversionPlan,
        entry: PlanEntry,
        source_collider: SourceColliderSpec,
        kind: ColliderKind,
        anchors: Dict[str, TargetColliderSpec],
        converted: Dict[str, TargetColliderSpec],
    ) -> PlannedCollider:
        existing = anchors.get(source_collider.node_id)
        if existing is not None and existing.kind == kind:
            geometry = TargetColliderSpec(id=existing.id, node_id=existing.node_id, kind=kind)
            geometry.copy_geometry_from(existing)
            return PlannedCollider(source=source_collider, target=existing, geometry=geometry)

        created = TargetColliderSpec(id=self._new_id(), node_id=source_collider.node_id, kind=kind)
        replacement = None
        if existing is not None:
            self._notify(
                plan,
                NoticeLevel.WARNING,
                f"Replacing existing collider '{existing.component_type}' on "
                f"'{source_collider.node_name}' with {created.component_type}.",
                entry.source,
            )
            replacement = ColliderReplacement(node_id=source_collider.node_id, old=existing, new=created)
            entry.replacements.append(replacement)
            self._supersede(plan.entries + [entry], existing, created, converted)
        anchors[source_collider.node_id] = created
        return PlannedCollider(source=source_collider, target=created, geometry=created, replacement=replacement)

    def _supersede(
        self,
        entries: List[PlanEntry],
        old: TargetColliderSpec,
        new: TargetColliderSpec,
        converted: Dict[str, TargetColliderSpec],
    ) -> None:
        # A node holds one target collider; nothing may keep pointing at the replaced one.
        for entry in entries:
            colliders = entry.target.collider_collision.colliders
            colliders[:] = [collider for collider in colliders if collider is not old]
            for planned in entry.colliders:
                if planned.target is old:
                    planned.superseded = True
        for source_id, target_collider in converted.items():
            if target_collider is old:
                converted[source_id] = new

    def _apply_geometry(
        self,
        plan: ConversionPlan,
        source: SourceBoneSpec,
        source_collider: SourceColliderSpec,
        target_collider: TargetColliderSpec,
    ) -> None:
        target_collider.center = source_collider.center

        if target_collider.kind == ColliderKind.PLANE:
            if source_collider.bound == Bound.INSIDE:
                self._notify(
                    plan,
                    NoticeLevel.INFO,
                    f"Plane collider on '{source_collider.node_name}' used 'inside' bound. "
                    "No direct MagicaCloth equivalent; behavior may differ.",
                    source,
                )
            return

        if target_collider.kind == ColliderKind.CAPSULE:
            separated = (
                source_collider.radius2 > 0
                and abs(source_collider.radius - source_collider.radius2)
                >= self.options.radius_separation_threshold
            )
            target_collider.direction = source_collider.direction
            target_collider.radius_separation = separated
            target_collider.set_capsule(
                source_collider.radius,
                source_collider.radius2 if separated else source_collider.radius,
                source_collider.height,
            )
            return

        target_collider.set_sphere(source_collider.radius)

    # Helpers ---------------------------------------------------------------

    def _exclusion_names(self, source: SourceBoneSpec) -> str:
        return ", ".join(name for name in source.exclusions if name is not None)

    def _notify(
        self,
        plan: ConversionPlan,
        level: NoticeLevel,
        message: str,
        source: SourceBoneSpec,
    ) -> None:
        notice = Notice(level=level, message=message, source_id=source.id, node_name=source.node_name)
        plan.notices.append(notice)
        log_notice(notice)
