from __future__ import annotations

import itertools

import pytest

from magica_bridge.converter import ConversionOptions, ConversionPlanner, NoticeLevel
from magica_bridge.converter.types import (
    Axis,
    Bound,
    ClothType,
    ColliderKind,
    ColliderMode,
    Curve,
    FreezeAxis,
    Keyframe,
    SourceBoneSpec,
    SourceColliderSpec,
    TargetColliderSpec,
    UpdateMode,
    WrapMode,
)


def bone(name: str = "Tail", **fields) -> SourceBoneSpec:
    fields.setdefault("root", f"{name.lower()}_root")
    return SourceBoneSpec(id=f"db_{name.lower()}", node_id=name.lower(), node_name=name, **fields)


def sphere(collider_id: str = "col", **fields) -> SourceColliderSpec:
    fields.setdefault("radius", 0.1)
    return SourceColliderSpec(id=collider_id, node_id=f"{collider_id}_node", node_name=collider_id, **fields)


def messages(plan, level: NoticeLevel) -> list[str]:
    return [n.message for n in plan.notices if n.level == level]


def fresh_planner(**options) -> ConversionPlanner:
    counter = itertools.count(1)
    return ConversionPlanner(ConversionOptions(**options), id_factory=lambda: f"id{next(counter)}")


def test_skip_flag_has_no_effect_without_exclusions():
    source = bone("Tail", damping=0.3, gravity=(0.0, -2.0, 0.0), colliders=[sphere()])

    skipped = fresh_planner().plan([source], skip_exclusions=True)
    converted = fresh_planner().plan([source], skip_exclusions=False)

    assert not skipped.skipped
    assert [t.to_dict() for t in skipped.targets] == [t.to_dict() for t in converted.targets]


def test_exclusions_are_skipped_when_requested(planner):
    source = bone("Hair", exclusions=["hair_tip"])

    plan = planner.plan([source], skip_exclusions=True)

    assert plan.targets == []
    assert plan.skipped == [source]
    assert any("SKIPPING" in m for m in messages(plan, NoticeLevel.INFO))


def test_exclusions_are_converted_with_warning(planner):
    source = bone("Hair", exclusions=["hair_tip"])

    plan = planner.plan([source], skip_exclusions=False)

    assert len(plan.targets) == 1
    assert plan.skipped == []
    warnings = messages(plan, NoticeLevel.WARNING)
    assert any("exclusion" in m and "hair_tip" in m for m in warnings)
    assert all(n.source_id == source.id and n.node_name == "Hair" for n in plan.notices)


def test_skip_exclusions_defaults_to_options():
    plan = fresh_planner(skip_exclusions=True).plan([bone("Hair", exclusions=["tip"])])

    assert len(plan.skipped) == 1


@pytest.mark.parametrize(
    ("gravity", "magnitude", "direction"),
    [
        ((0.0, -5.0, 0.0), 5.0, (0.0, -1.0, 0.0)),
        ((0.0, 0.0, 0.0), 0.0, (0.0, -1.0, 0.0)),
        ((3.0, 0.0, 4.0), 5.0, (0.6, 0.0, 0.8)),
    ],
)
def test_gravity_mapping(planner, gravity, magnitude, direction):
    target = planner.plan([bone(gravity=gravity)]).targets[0]

    assert target.gravity == pytest.approx(magnitude)
    assert target.gravity_direction == pytest.approx(direction)


def test_stiffness_scalar_is_scaled(planner):
    plan = planner.plan([bone(stiffness=8.0)])
    stiffness = plan.targets[0].distance_restoration.stiffness

    assert stiffness.value == pytest.approx(0.8)
    assert not stiffness.use_curve
    assert any("APPROXIMATE" in m for m in messages(plan, NoticeLevel.INFO))


def test_stiffness_curve_is_scaled(planner):
    curve = Curve(
        keys=[Keyframe(0.0, 2.0, 1.0, 1.0), Keyframe(1.0, 4.0, -1.0, -1.0)],
        pre_wrap_mode=WrapMode.ONCE,
        post_wrap_mode=WrapMode.LOOP,
    )

    stiffness = planner.plan([bone(stiffness=8.0, stiffness_curve=curve)]).targets[0].distance_restoration.stiffness

    assert stiffness.value == pytest.approx(0.8)
    assert stiffness.curve.values() == pytest.approx([0.2, 0.4])
    assert [k.time for k in stiffness.curve.keys] == [0.0, 1.0]
    assert stiffness.curve.pre_wrap_mode == WrapMode.ONCE
    assert stiffness.curve.post_wrap_mode == WrapMode.LOOP
    assert curve.values() == [2.0, 4.0]


def test_stiffness_factor_is_configurable():
    target = fresh_planner(distance_stiffness_factor=0.5).plan([bone(stiffness=8.0)]).targets[0]

    assert target.distance_restoration.stiffness.value == pytest.approx(4.0)


def test_damping_curve_needs_more_than_one_key(planner):
    single = Curve(keys=[Keyframe(0.0, 1.0)])
    double = Curve(keys=[Keyframe(0.0, 1.0), Keyframe(1.0, 0.2)])

    targets = planner.plan(
        [bone("A", damping=0.4, damping_curve=single), bone("B", damping=0.4, damping_curve=double)]
    ).targets

    assert targets[0].damping.value == 0.4 and not targets[0].damping.use_curve
    assert targets[1].damping.value == 0.4 and targets[1].damping.curve.values() == [1.0, 0.2]


def test_scalar_fields(planner):
    target = planner.plan(
        [bone(inertia=0.7, elasticity=0.25, radius=0.02, friction=0.3)]
    ).targets[0]

    assert target.world_inertia == 0.7
    assert target.angle_restoration.enabled
    assert target.angle_restoration.stiffness.value == 0.25
    assert target.radius.value == 0.02
    assert target.collider_collision.friction == 0.3
    assert target.collider_collision.mode == ColliderMode.POINT
    assert target.update_mode == UpdateMode.UNITY_PHYSICS


def test_zero_elasticity_disables_angle_restoration(planner):
    target = planner.plan([bone(elasticity=0.0)]).targets[0]

    assert not target.angle_restoration.enabled


def test_collider_mode_none_without_radius_friction_or_colliders(planner):
    target = planner.plan([bone(radius=0.0, friction=0.0)]).targets[0]

    assert target.collider_collision.mode == ColliderMode.NONE
    assert target.collider_collision.colliders == []


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Tail", ClothType.BONE_CLOTH),
        ("LeftBreast", ClothType.BONE_SPRING),
        ("J_Sec_BOOB_L", ClothType.BONE_SPRING),
        ("BustRoot", ClothType.BONE_SPRING),
    ],
)
def test_cloth_type_keywords(planner, name, expected):
    assert planner.plan([bone(name)]).targets[0].cloth_type == expected


def test_cloth_type_keywords_are_configurable():
    planner = fresh_planner(spring_keywords=["skirt"])

    assert planner.cloth_type_for("Skirt_Front") == ClothType.BONE_SPRING
    assert planner.cloth_type_for("LeftBreast") == ClothType.BONE_CLOTH


def test_root_bones_prefer_single_root(planner):
    target = planner.plan([bone(root="a", roots=["b", "c"])]).targets[0]

    assert target.root_bones == ["a"]


def test_root_bones_filter_null_entries(planner):
    target = planner.plan([bone(root=None, roots=[None, "b", None, "c"])]).targets[0]

    assert target.root_bones == ["b", "c"]


def test_root_bones_fall_back_to_owner(planner):
    plan = planner.plan([bone("Tail", root=None, roots=[])])

    assert plan.targets[0].root_bones == ["tail"]
    assert any("no root" in m for m in messages(plan, NoticeLevel.WARNING))


def test_force_and_freeze_axis_are_reported(planner):
    plan = planner.plan([bone(force=(0.0, 0.0, 1.0), freeze_axis=FreezeAxis.Z)])
    info = messages(plan, NoticeLevel.INFO)

    assert any("force" in m for m in info)
    assert any("freeze axis (z)" in m for m in info)


def test_no_force_notice_for_zero_force(planner):
    plan = planner.plan([bone()])

    assert not any("force" in m for m in messages(plan, NoticeLevel.INFO))


def test_distance_culling(planner):
    enabled, disabled = planner.plan(
        [
            bone("A", distant_disable=True, distance_to_object=12.0, reference_object="camera"),
            bone("B", distant_disable=False),
        ]
    ).targets

    assert enabled.culling.distance_culling
    assert enabled.culling.distance_culling_length == 12.0
    assert enabled.culling.distance_culling_reference == "camera"
    assert enabled.culling.distance_culling_fade_ratio == 0.0
    assert not disabled.culling.distance_culling


def test_sphere_collider(planner):
    collider = sphere(center=(0.0, 0.1, 0.0), radius=0.15, height=0.0)

    target = planner.plan([bone(colliders=[collider])]).targets[0]
    (mapped,) = target.collider_collision.colliders

    assert mapped.kind == ColliderKind.SPHERE
    assert mapped.radius == 0.15
    assert mapped.center == (0.0, 0.1, 0.0)
    assert mapped.node_id == collider.node_id


def test_capsule_collider_with_separate_radii(planner):
    collider = sphere(kind="capsule", radius=0.1, radius2=0.2, height=0.3, direction=Axis.Z)

    (mapped,) = planner.plan([bone(colliders=[collider])]).targets[0].collider_collision.colliders

    assert mapped.kind == ColliderKind.CAPSULE
    assert mapped.radius_separation
    assert (mapped.start_radius, mapped.end_radius, mapped.length) == (0.1, 0.2, 0.3)
    assert mapped.direction == Axis.Z


@pytest.mark.parametrize("radius2", [0.1, 0.105, 0.0])
def test_capsule_collider_without_radius_separation(planner, radius2):
    collider = sphere(radius=0.1, radius2=radius2, height=0.3)

    (mapped,) = planner.plan([bone(colliders=[collider])]).targets[0].collider_collision.colliders

    assert mapped.kind == ColliderKind.CAPSULE
    assert not mapped.radius_separation
    assert mapped.start_radius == mapped.end_radius == 0.1


def test_plane_collider_inside_bound(planner):
    collider = SourceColliderSpec(
        id="floor", node_id="floor", node_name="Floor", kind="plane", center=(0.0, 0.2, 0.0), bound=Bound.INSIDE
    )

    plan = planner.plan([bone(colliders=[collider])])
    (mapped,) = plan.targets[0].collider_collision.colliders

    assert mapped.kind == ColliderKind.PLANE
    assert mapped.center == (0.0, 0.2, 0.0)
    assert any("'inside' bound" in m for m in messages(plan, NoticeLevel.INFO))


def test_unsupported_collider_is_skipped(planner):
    plan = planner.plan([bone(colliders=[sphere(kind="mesh"), None])])

    assert plan.targets[0].collider_collision.colliders == []
    assert plan.targets[0].collider_collision.mode == ColliderMode.POINT
    assert any("not a supported collider type" in m for m in messages(plan, NoticeLevel.WARNING))


def test_duplicate_collider_is_listed_once(planner):
    collider = sphere()

    plan = planner.plan([bone(colliders=[collider, collider])])

    assert len(plan.targets[0].collider_collision.colliders) == 1
    assert len(plan.entries[0].colliders) == 1


def test_shared_collider_reuses_converted_target(planner):
    collider = sphere()

    plan = planner.plan([bone("A", colliders=[collider]), bone("B", colliders=[collider])])
    first, second = plan.targets

    assert first.collider_collision.colliders[0] is second.collider_collision.colliders[0]
    assert len(plan.entries[1].colliders) == 0


def test_existing_collider_is_planned_without_being_touched(planner):
    collider = sphere(radius=0.3)
    existing = TargetColliderSpec(id="mc_col", node_id=collider.node_id, kind=ColliderKind.SPHERE, radius=0.01)

    plan = planner.plan([bone(colliders=[collider])], existing_colliders={collider.node_id: existing})
    (planned,) = plan.entries[0].colliders

    assert plan.targets[0].collider_collision.colliders == [existing]
    assert planned.target is existing
    assert planned.geometry is not existing and planned.geometry.radius == 0.3
    assert existing.radius == 0.01
    assert plan.entries[0].replacements == []


def test_second_kind_on_same_node_supersedes_first(planner):
    ball = sphere("ball")
    capsule = SourceColliderSpec(id="capsule", node_id=ball.node_id, node_name="capsule", radius=0.1, height=0.3)

    plan = planner.plan(
        [bone("A", colliders=[ball]), bone("B", colliders=[capsule]), bone("C", colliders=[ball])]
    )
    first, second, third = plan.entries
    (replacement,) = second.replacements

    assert replacement.old is first.colliders[0].target
    assert first.colliders[0].superseded
    assert first.target.collider_collision.colliders == []
    assert second.target.collider_collision.colliders == [replacement.new]
    assert third.target.collider_collision.colliders == [replacement.new]


def test_existing_collider_of_other_kind_is_replaced(planner):
    collider = sphere(height=0.4)
    existing = TargetColliderSpec(id="mc_col", node_id=collider.node_id, kind=ColliderKind.SPHERE)

    plan = planner.plan([bone(colliders=[collider])], existing_colliders={collider.node_id: existing})
    (replacement,) = plan.entries[0].replacements

    assert replacement.old is existing
    assert replacement.new.kind == ColliderKind.CAPSULE
    assert plan.targets[0].collider_collision.colliders == [replacement.new]
    assert any("Replacing existing collider" in m for m in messages(plan, NoticeLevel.WARNING))


def test_batch_with_skipped_exclusions(planner):
    floor = SourceColliderSpec(id="floor", node_id="floor", kind="plane")
    sources = [
        bone("Tail", colliders=[sphere("hips")]),
        bone("LeftBreast", colliders=[sphere("chest")]),
        bone("Hair", exclusions=["tip"], colliders=[floor]),
    ]

    plan = planner.plan(sources, skip_exclusions=True)

    assert [t.cloth_type for t in plan.targets] == [ClothType.BONE_CLOTH, ClothType.BONE_SPRING]
    assert [t.source_id for t in plan.targets] == ["db_tail", "db_leftbreast"]
    assert plan.skipped == [sources[2]]
    referenced = {c.node_id for t in plan.targets for c in t.collider_collision.colliders}
    assert "floor" not in referenced
