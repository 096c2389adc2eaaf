"""
Persistence primitives — the four footprint variants.
"""

from __future__ import annotations

from footprints.core.models.record import INSTALL_ORDER, ComponentId
from footprints.core.primitives.base import Installation, PersistencePrimitive, PrimitiveContext
from footprints.core.primitives.log_injection import LogInjectionPrimitive
from footprints.core.primitives.report_forgery import ReportForgeryPrimitive
from footprints.core.primitives.service import ServicePrimitive
from footprints.core.primitives.tag import TagPrimitive

PRIMITIVES: dict[ComponentId, type[PersistencePrimitive]] = {
    ComponentId.TAG: TagPrimitive,
    ComponentId.SERVICE: ServicePrimitive,
    ComponentId.LOG_INJECTION: LogInjectionPrimitive,
    ComponentId.REPORT_FORGERY: ReportForgeryPrimitive,
}


def build_primitives(ctx: PrimitiveContext) -> dict[ComponentId, PersistencePrimitive]:
    """One primitive per component, in install order."""
    return {cid: PRIMITIVES[cid](ctx) for cid in INSTALL_ORDER}


__all__ = [
    "Installation",
    "LogInjectionPrimitive",
    "PRIMITIVES",
    "PersistencePrimitive",
    "PrimitiveContext",
    "ReportForgeryPrimitive",
    "ServicePrimitive",
    "TagPrimitive",
    "build_primitives",
]
