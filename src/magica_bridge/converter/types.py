"""
Data models and types for the DynamicBone to MagicaCloth converter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

Vector3 = Tuple[float, float, float]
Quaternion = Tuple[float, float, float, float]

DOWN: Vector3 = (0.0, -1.0, 0.0)
ZERO: Vector3 = (0.0, 0.0, 0.0)


class WrapMode(str, Enum):
    """Curve extrapolation outside the keyed range."""

    DEFAULT = "default"
    ONCE = "once"
    LOOP = "loop"
    PING_PONG = "ping_pong"
    CLAMP_FOREVER = "clamp_forever"


class FreezeAxis(str, Enum):
    NONE = "none"
    X = "x"
    Y = "y"
    Z = "z"


class Axis(str, Enum):
    X = "x"
    Y = "y"
    Z = "z"


class Bound(str, Enum):
    OUTSIDE = "outside"
    INSIDE = "inside"


class ColliderKind(str, Enum):
    """Collider geometry shared by the source and target schemas."""

    SPHERE = "sphere"
    CAPSULE = "capsule"
    PLANE = "plane"


class ClothType(str, Enum):
    """MagicaCloth bone modes. BONE_CLOTH is the simple chain."""

    BONE_CLOTH = "bone_cloth"
    BONE_SPRING = "bone_spring"


class ColliderMode(str, Enum):
    NONE = "none"
    POINT = "point"


class UpdateMode(str, Enum):
    NORMAL = "normal"
    UNITY_PHYSICS = "unity_physics"
    UNSCALED = "unscaled"


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def _vec(value, default: Vector3 = ZERO) -> Vector3:
    if value is None:
        return default
    x, y, z = value
    return (float(x), float(y), float(z))


@dataclass
class Keyframe:
    time: float
    value: float
    in_tangent: float = 0.0
    out_tangent: float = 0.0

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "value": self.value,
            "in_tangent": self.in_tangent,
            "out_tangent": self.out_tangent,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Keyframe":
        return cls(
            time=float(data["time"]),
            value=float(data["value"]),
            in_tangent=float(data.get("in_tangent", 0.0)),
            out_tangent=float(data.get("out_tangent", 0.0)),
        )


@dataclass
class Curve:
    """Distribution curve along a bone chain (0 at the root, 1 at the tip)."""

    keys: List[Keyframe] = field(default_factory=list)
    pre_wrap_mode: WrapMode = WrapMode.CLAMP_FOREVER
    post_wrap_mode: WrapMode = WrapMode.CLAMP_FOREVER

    def __len__(self) -> int:
        return len(self.keys)

    def values(self) -> List[float]:
        return [key.value for key in self.keys]

    def to_dict(self) -> dict:
        return {
            "keys": [key.to_dict() for key in self.keys],
            "pre_wrap_mode": self.pre_wrap_mode.value,
            "post_wrap_mode": self.post_wrap_mode.value,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Curve"]:
        if data is None:
            return None
        return cls(
            keys=[Keyframe.from_dict(key) for key in data.get("keys", [])],
            pre_wrap_mode=WrapMode(data.get("pre_wrap_mode", WrapMode.CLAMP_FOREVER)),
            post_wrap_mode=WrapMode(data.get("post_wrap_mode", WrapMode.CLAMP_FOREVER)),
        )


@dataclass
class CurveValue:
    """A scalar that is optionally distributed along the chain by a curve."""

    value: float = 0.0
    curve: Optional[Curve] = None

    @property
    def use_curve(self) -> bool:
        return self.curve is not None

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "use_curve": self.use_curve,
            "curve": self.curve.to_dict() if self.curve else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CurveValue":
        if data is None:
            return cls()
        return cls(value=float(data.get("value", 0.0)), curve=Curve.from_dict(data.get("curve")))


@dataclass(eq=False)
class SourceColliderSpec:
    """A DynamicBone collider (sphere/capsule collider or plane collider)."""

    id: str
    node_id: str
    node_name: str = ""
    kind: str = ColliderKind.SPHERE.value
    center: Vector3 = ZERO
    radius: float = 0.5
    radius2: float = 0.0
    height: float = 0.0
    direction: Axis = Axis.Y
    bound: Bound = Bound.OUTSIDE

    COMPONENT_TYPES = ("DynamicBoneCollider", "DynamicBonePlaneCollider")

    def to_dict(self) -> dict:
        is_plane = self.kind == ColliderKind.PLANE
        data = {
            "type": "DynamicBonePlaneCollider" if is_plane else "DynamicBoneCollider",
            "id": self.id,
            "center": list(self.center),
            "direction": self.direction.value,
            "bound": self.bound.value,
        }
        if not is_plane:
            data.update(
                kind=self.kind,
                radius=self.radius,
                radius2=self.radius2,
                height=self.height,
            )
        return data

    @classmethod
    def from_dict(cls, data: dict, node_id: str, node_name: str = "") -> "SourceColliderSpec":
        if data.get("type") == "DynamicBonePlaneCollider":
            kind = ColliderKind.PLANE.value
        else:
            kind = str(data.get("kind", ColliderKind.SPHERE.value))
        return cls(
            id=data["id"],
            node_id=node_id,
            node_name=node_name,
            kind=kind,
            center=_vec(data.get("center")),
            radius=float(data.get("radius", 0.5)),
            radius2=float(data.get("radius2", 0.0)),
            height=float(data.get("height", 0.0)),
            direction=Axis(data.get("direction", Axis.Y)),
            bound=Bound(data.get("bound", Bound.OUTSIDE)),
        )


@dataclass(eq=False)
class SourceBoneSpec:
    """A DynamicBone component as read from the host graph."""

    id: str
    node_id: str
    node_name: str = ""
    root: Optional[str] = None
    roots: List[Optional[str]] = field(default_factory=list)
    exclusions: List[Optional[str]] = field(default_factory=list)
    damping: float = 0.1
    damping_curve: Optional[Curve] = None
    elasticity: float = 0.1
    elasticity_curve: Optional[Curve] = None
    stiffness: float = 0.1
    stiffness_curve: Optional[Curve] = None
    inertia: float = 0.0
    radius: float = 0.0
    radius_curve: Optional[Curve] = None
    friction: float = 0.0
    gravity: Vector3 = ZERO
    force: Vector3 = ZERO
    freeze_axis: FreezeAxis = FreezeAxis.NONE
    distant_disable: bool = False
    distance_to_object: float = 20.0
    reference_object: Optional[str] = None
    colliders: List[Optional[SourceColliderSpec]] = field(default_factory=list)

    COMPONENT_TYPE = "DynamicBone"

    @property
    def has_exclusions(self) -> bool:
        return len(self.exclusions) > 0

    def to_dict(self) -> dict:
        return {
            "type": self.COMPONENT_TYPE,
            "id": self.id,
            "root": self.root,
            "roots": list(self.roots),
            "exclusions": list(self.exclusions),
            "damping": self.damping,
            "damping_curve": self.damping_curve.to_dict() if self.damping_curve else None,
            "elasticity": self.elasticity,
            "elasticity_curve": self.elasticity_curve.to_dict() if self.elasticity_curve else None,
            "stiffness": self.stiffness,
            "stiffness_curve": self.stiffness_curve.to_dict() if self.stiffness_curve else None,
            "inertia": self.inertia,
            "radius": self.radius,
            "radius_curve": self.radius_curve.to_dict() if self.radius_curve else None,
            "friction": self.friction,
            "gravity": list(self.gravity),
            "force": list(self.force),
            "freeze_axis": self.freeze_axis.value,
            "distant_disable": self.distant_disable,
            "distance_to_object": self.distance_to_object,
            "reference_object": self.reference_object,
            "colliders": [collider.id if collider else None for collider in self.colliders],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict,
        node_id: str,
        node_name: str = "",
        colliders: Optional[List[Optional[SourceColliderSpec]]] = None,
    ) -> "SourceBoneSpec":
        """Build a spec; collider ids must already be resolved by the caller."""
        return cls(
            id=data["id"],
            node_id=node_id,
            node_name=node_name,
            root=data.get("root"),
            roots=list(data.get("roots", [])),
            exclusions=list(data.get("exclusions", [])),
            damping=float(data.get("damping", 0.1)),
            damping_curve=Curve.from_dict(data.get("damping_curve")),
            elasticity=float(data.get("elasticity", 0.1)),
            elasticity_curve=Curve.from_dict(data.get("elasticity_curve")),
            stiffness=float(data.get("stiffness", 0.1)),
            stiffness_curve=Curve.from_dict(data.get("stiffness_curve")),
            inertia=float(data.get("inertia", 0.0)),
            radius=float(data.get("radius", 0.0)),
            radius_curve=Curve.from_dict(data.get("radius_curve")),
            friction=float(data.get("friction", 0.0)),
            gravity=_vec(data.get("gravity")),
            force=_vec(data.get("force")),
            freeze_axis=FreezeAxis(data.get("freeze_axis", FreezeAxis.NONE)),
            distant_disable=bool(data.get("distant_disable", False)),
            distance_to_object=float(data.get("distance_to_object", 20.0)),
            reference_object=data.get("reference_object"),
            colliders=list(colliders or []),
        )


@dataclass(eq=False)
class TargetColliderSpec:
    """A MagicaCloth collider component. Geometry fields depend on ``kind``."""

    id: str
    node_id: str
    kind: ColliderKind
    center: Vector3 = ZERO
    # sphere
    radius: float = 0.05
    # capsule
    direction: Axis = Axis.X
    radius_separation: bool = False
    start_radius: float = 0.05
    end_radius: float = 0.05
    length: float = 0.1

    COMPONENT_TYPES = {
        ColliderKind.SPHERE: "MagicaSphereCollider",
        ColliderKind.CAPSULE: "MagicaCapsuleCollider",
        ColliderKind.PLANE: "MagicaPlaneCollider",
    }

    @property
    def component_type(self) -> str:
        return self.COMPONENT_TYPES[self.kind]

    def set_sphere(self, radius: float) -> None:
        self.radius = radius

    def set_capsule(self, start_radius: float, end_radius: float, length: float) -> None:
        self.start_radius = start_radius
        self.end_radius = end_radius
        self.length = length

    def copy_geometry_from(self, other: "TargetColliderSpec") -> None:
        self.center = other.center
        self.radius = other.radius
        self.direction = other.direction
        self.radius_separation = other.radius_separation
        self.start_radius = other.start_radius
        self.end_radius = other.end_radius
        self.length = other.length

    def to_dict(self) -> dict:
        data = {"type": self.component_type, "id": self.id, "center": list(self.center)}
        if self.kind == ColliderKind.SPHERE:
            data["radius"] = self.radius
        elif self.kind == ColliderKind.CAPSULE:
            data.update(
                direction=self.direction.value,
                radius_separation=self.radius_separation,
                start_radius=self.start_radius,
                end_radius=self.end_radius,
                length=self.length,
            )
        return data

    @classmethod
    def from_dict(cls, data: dict, node_id: str) -> "TargetColliderSpec":
        kinds = {name: kind for kind, name in cls.COMPONENT_TYPES.items()}
        return cls(
            id=data["id"],
            node_id=node_id,
            kind=kinds[data["type"]],
            center=_vec(data.get("center")),
            radius=float(data.get("radius", 0.05)),
            direction=Axis(data.get("direction", Axis.X)),
            radius_separation=bool(data.get("radius_separation", False)),
            start_radius=float(data.get("start_radius", 0.05)),
            end_radius=float(data.get("end_radius", 0.05)),
            length=float(data.get("length", 0.1)),
        )


@dataclass
class AngleRestoration:
    enabled: bool = True
    stiffness: CurveValue = field(default_factory=lambda: CurveValue(0.2))


@dataclass
class DistanceRestoration:
    stiffness: CurveValue = field(default_factory=lambda: CurveValue(1.0))


@dataclass
class ColliderCollision:
    mode: ColliderMode = ColliderMode.POINT
    friction: float = 0.05
    colliders: List[TargetColliderSpec] = field(default_factory=list)


@dataclass
class CullingSettings:
    distance_culling: bool = False
    distance_culling_length: float = 50.0
    distance_culling_reference: Optional[str] = None
    distance_culling_fade_ratio: float = 0.2


@dataclass(eq=False)
class TargetClothSpec:
    """A MagicaCloth component produced from one DynamicBone."""

    id: str
    source_id: str
    node_id: Optional[str] = None
    cloth_type: ClothType = ClothType.BONE_CLOTH
    root_bones: List[str] = field(default_factory=list)
    gravity: float = 5.0
    gravity_direction: Vector3 = DOWN
    damping: CurveValue = field(default_factory=lambda: CurveValue(0.05))
    angle_restoration: AngleRestoration = field(default_factory=AngleRestoration)
    distance_restoration: DistanceRestoration = field(default_factory=DistanceRestoration)
    world_inertia: float = 1.0
    radius: CurveValue = field(default_factory=lambda: CurveValue(0.02))
    collider_collision: ColliderCollision = field(default_factory=ColliderCollision)
    culling: CullingSettings = field(default_factory=CullingSettings)
    update_mode: UpdateMode = UpdateMode.NORMAL

    COMPONENT_TYPE = "MagicaCloth"

    def to_dict(self) -> dict:
        return {
            "type": self.COMPONENT_TYPE,
            "id": self.id,
            "source_id": self.source_id,
            "cloth_type": self.cloth_type.value,
            "root_bones": list(self.root_bones),
            "gravity": self.gravity,
            "gravity_direction": list(self.gravity_direction),
            "damping": self.damping.to_dict(),
            "angle_restoration": {
                "enabled": self.angle_restoration.enabled,
                "stiffness": self.angle_restoration.stiffness.to_dict(),
            },
            "distance_restoration": {"stiffness": self.distance_restoration.stiffness.to_dict()},
            "world_inertia": self.world_inertia,
            "radius": self.radius.to_dict(),
            "collider_collision": {
                "mode": self.collider_collision.mode.value,
                "friction": self.collider_collision.friction,
                "colliders": [collider.id for collider in self.collider_collision.colliders],
            },
            "culling": {
                "distance_culling": self.culling.distance_culling,
                "distance_culling_length": self.culling.distance_culling_length,
                "distance_culling_reference": self.culling.distance_culling_reference,
                "distance_culling_fade_ratio": self.culling.distance_culling_fade_ratio,
            },
            "update_mode": self.update_mode.value,
        }

    @classmethod
    def from_dict(
        cls,
        data: dict,
        node_id: str,
        colliders: Optional[List[TargetColliderSpec]] = None,
    ) -> "TargetClothSpec":
        angle = data.get("angle_restoration", {})
        collision = data.get("collider_collision", {})
        culling = data.get("culling", {})
        return cls(
            id=data["id"],
            source_id=data.get("source_id", ""),
            node_id=node_id,
            cloth_type=ClothType(data.get("cloth_type", ClothType.BONE_CLOTH)),
            root_bones=list(data.get("root_bones", [])),
            gravity=float(data.get("gravity", 5.0)),
            gravity_direction=_vec(data.get("gravity_direction"), DOWN),
            damping=CurveValue.from_dict(data.get("damping")),
            angle_restoration=AngleRestoration(
                enabled=bool(angle.get("enabled", True)),
                stiffness=CurveValue.from_dict(angle.get("stiffness")),
            ),
            distance_restoration=DistanceRestoration(
                stiffness=CurveValue.from_dict(data.get("distance_restoration", {}).get("stiffness")),
            ),
            world_inertia=float(data.get("world_inertia", 1.0)),
            radius=CurveValue.from_dict(data.get("radius")),
            collider_collision=ColliderCollision(
                mode=ColliderMode(collision.get("mode", ColliderMode.POINT)),
                friction=float(collision.get("friction", 0.05)),
                colliders=list(colliders or []),
            ),
            culling=CullingSettings(
                distance_culling=bool(culling.get("distance_culling", False)),
                distance_culling_length=float(culling.get("distance_culling_length", 50.0)),
                distance_culling_reference=culling.get("distance_culling_reference"),
                distance_culling_fade_ratio=float(culling.get("distance_culling_fade_ratio", 0.2)),
            ),
            update_mode=UpdateMode(data.get("update_mode", UpdateMode.NORMAL)),
        )


@dataclass
class Notice:
    """One entry of the conversion log, tagged with the originating component."""

    level: NoticeLevel
    message: str
    source_id: Optional[str] = None
    node_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "message": self.message,
            "source_id": self.source_id,
            "node_name": self.node_name,
        }


@dataclass
class ColliderReplacement:
    """An existing target collider of the wrong kind that has to be discarded."""

    node_id: str
    old: TargetColliderSpec
    new: TargetColliderSpec


@dataclass
class PlannedCollider:
    """
    One source collider and the target collider it becomes.

    ``geometry`` holds the planned shape. It is the target itself for a newly
    created collider, and a detached copy when the target is already on the
    host, so the host collider only changes once the write-back happens.
    ``superseded`` is set when a later collider of another kind on the same
    node took the target's place; the source is then removed without
    installing anything.
    """

    source: SourceColliderSpec
    target: TargetColliderSpec
    geometry: TargetColliderSpec
    replacement: Optional[ColliderReplacement] = None
    superseded: bool = False


@dataclass
class PlanEntry:
    """Everything needed to write one converted DynamicBone back to the host."""

    source: SourceBoneSpec
    target: TargetClothSpec
    colliders: List[PlannedCollider] = field(default_factory=list)
    replacements: List[ColliderReplacement] = field(default_factory=list)


@dataclass
class ConversionPlan:
    """Result of planning: converted entries in source order, skipped sources and the notice log."""

    entries: List[PlanEntry] = field(default_factory=list)
    skipped: List[SourceBoneSpec] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)

    @property
    def targets(self) -> List[TargetClothSpec]:
        return [entry.target for entry in self.entries]

    @property
    def warnings(self) -> List[Notice]:
        return [n for n in self.notices if n.level != NoticeLevel.INFO]


@dataclass
class ConversionSummary:
    """End-of-run report."""

    context_name: str
    attempted: int = 0
    converted: int = 0
    skipped: int = 0
    failed: int = 0
    residual_removed: int = 0
    notices: List[Notice] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = (
            f"Conversion complete for '{self.context_name}': attempted {self.attempted} DynamicBone(s). "
            f"Converted: {self.converted}."
        )
        if self.skipped:
            text += f" Skipped (due to exclusions): {self.skipped}."
        if self.failed:
            text += f" Failed: {self.failed}."
        return text + " Please review results and undo if necessary."

    def to_dict(self) -> dict:
        return {
            "context_name": self.context_name,
            "attempted": self.attempted,
            "converted": self.converted,
            "skipped": self.skipped,
            "failed": self.failed,
            "residual_removed": self.residual_removed,
            "message": self.message,
            "notices": [notice.to_dict() for notice in self.notices],
        }


@dataclass
class ConversionOptions:
    """Policy constants and behavior switches for a conversion pass."""

    spring_keywords: List[str] = field(default_factory=lambda: ["breast", "boob", "bust"])
    distance_stiffness_factor: float = 0.1
    gravity_epsilon: float = 1e-6
    radius_separation_threshold: float = 0.01
    skip_exclusions: bool = False
    use_container: bool = True
    container_name: str = "MC2"
    update_mode: UpdateMode = UpdateMode.UNITY_PHYSICS

    @classmethod
    def from_settings(cls, settings) -> "ConversionOptions":
        return cls(
            spring_keywords=list(settings.spring_keywords),
            distance_stiffness_factor=settings.distance_stiffness_factor,
            gravity_epsilon=settings.gravity_epsilon,
            radius_separation_threshold=settings.radius_separation_threshold,
            skip_exclusions=settings.skip_exclusions,
            use_container=settings.use_container,
            container_name=settings.container_name,
        )
