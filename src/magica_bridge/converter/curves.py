"""
Distribution curve helpers.
"""

from copy import deepcopy
from typing import Optional

from magica_bridge.converter.types import Curve, CurveValue, Keyframe


def is_distributed(curve: Optional[Curve]) -> bool:
    """A curve only carries a distribution when it has more than one keyframe."""
    return curve is not None and len(curve) > 1


def scale_curve(curve: Optional[Curve], factor: float) -> Optional[Curve]:
    """
    Return a new curve with every keyframe value multiplied by ``factor``.

    Times, tangents and wrap modes are copied unchanged. The input is not modified.
    """
    if curve is None:
        return None

    keys = [
        Keyframe(
            time=key.time,
            value=key.value * factor,
            in_tangent=key.in_tangent,
            out_tangent=key.out_tangent,
        )
        for key in curve.keys
    ]
    return Curve(keys=keys, pre_wrap_mode=curve.pre_wrap_mode, post_wrap_mode=curve.post_wrap_mode)


def distributed_value(value: float, curve: Optional[Curve]) -> CurveValue:
    """Copy a scalar, plus its curve when the curve is usable."""
    if is_distributed(curve):
        return CurveValue(value=value, curve=deepcopy(curve))
    return CurveValue(value=value)
