from __future__ import annotations

import itertools
from copy import deepcopy

import pytest

from magica_bridge.converter import ConversionOptions, ConversionPlanner

SCENE_DOCUMENT = {
    "nodes": [
        {
            "id": "avatar",
            "name": "Avatar",
            "components": [{"type": "Animator", "id": "animator", "controller": "Locomotion"}],
        },
        {
            "id": "tail",
            "name": "Tail",
            "parent": "avatar",
            "position": [0.0, 1.0, -0.2],
            "rotation": [0.0, 0.0, 0.0, 1.0],
            "scale": [1.0, 1.0, 1.0],
            "components": [
                {
                    "type": "DynamicBone",
                    "id": "db_tail",
                    "root": "tail_bone",
                    "damping": 0.2,
                    "elasticity": 0.05,
                    "stiffness": 8.0,
                    "radius": 0.03,
                    "gravity": [0.0, -5.0, 0.0],
                    "colliders": ["col_hips"],
                }
            ],
        },
        {"id": "tail_bone", "name": "TailBone", "parent": "tail"},
        {
            "id": "breast",
            "name": "LeftBreast",
            "parent": "avatar",
            "position": [0.1, 1.4, 0.1],
            "components": [
                {
                    "type": "DynamicBone",
                    "id": "db_breast",
                    "roots": ["breast_bone", None],
                    "colliders": ["col_chest", "col_hips"],
                }
            ],
        },
        {"id": "breast_bone", "name": "BreastBone", "parent": "breast"},
        {
            "id": "hair",
            "name": "Hair",
            "parent": "avatar",
            "components": [
                {
                    "type": "DynamicBone",
                    "id": "db_hair",
                    "root": "hair_root",
                    "exclusions": ["hair_tip"],
                    "colliders": ["col_floor"],
                }
            ],
        },
        {"id": "hair_root", "name": "HairRoot", "parent": "hair"},
        {"id": "hair_tip", "name": "HairTip", "parent": "hair_root"},
        {
            "id": "hips",
            "name": "Hips",
            "parent": "avatar",
            "components": [
                {"type": "DynamicBoneCollider", "id": "col_hips", "kind": "sphere", "radius": 0.1, "height": 0.0}
            ],
        },
        {
            "id": "chest",
            "name": "Chest",
            "parent": "avatar",
            "components": [
                {
                    "type": "DynamicBoneCollider",
                    "id": "col_chest",
                    "kind": "capsule",
                    "center": [0.0, 0.05, 0.0],
                    "radius": 0.1,
                    "radius2": 0.2,
                    "height": 0.3,
                    "direction": "x",
                }
            ],
        },
        {
            "id": "floor",
            "name": "Floor",
            "parent": "avatar",
            "components": [{"type": "DynamicBonePlaneCollider", "id": "col_floor", "bound": "inside"}],
        },
    ]
}


@pytest.fixture
def scene_document() -> dict:
    return deepcopy(SCENE_DOCUMENT)


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id{next(counter)}"


@pytest.fixture
def planner(id_factory) -> ConversionPlanner:
    return ConversionPlanner(ConversionOptions(), id_factory=id_factory)
