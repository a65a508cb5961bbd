"""
DynamicBone to MagicaCloth converter

Rewrites DynamicBone physics components into approximately equivalent
MagicaCloth2 components and removes the originals.
"""

from magica_bridge.converter.host import HostOperationError, SceneHost
from magica_bridge.converter.planner import ConversionPlanner
from magica_bridge.converter.runner import ConversionRunner
from magica_bridge.converter.scene import SceneDocumentError, SceneGraph
from magica_bridge.converter.types import (
    ConversionOptions,
    ConversionPlan,
    ConversionSummary,
    Notice,
    NoticeLevel,
)

__all__ = [
    "ConversionOptions",
    "ConversionPlan",
    "ConversionPlanner",
    "ConversionRunner",
    "ConversionSummary",
    "HostOperationError",
    "Notice",
    "NoticeLevel",
    "SceneDocumentError",
    "SceneGraph",
    "SceneHost",
]
