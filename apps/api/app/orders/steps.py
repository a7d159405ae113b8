"""Static definition of the order pipeline's ten steps.

The catalog is immutable and process-wide. Its tuple order is the workflow
order; every ordering decision in the engine goes through the helpers here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol, TypeVar

from app.platform.security.roles import Role


@dataclass(frozen=True, slots=True)
class StepDefinition:
    name: str
    assigned_role: Role
    description: str


PIPELINE_STEPS: tuple[StepDefinition, ...] = (
    StepDefinition("Lead", Role.SALES, "Initial Lead Reference"),
    StepDefinition("Account", Role.SALES, "Account Verification"),
    StepDefinition("Deal / Opportunity", Role.SALES, "Deal Finalization"),
    StepDefinition("Customer PO", Role.SALES, "Purchase Order Receipt"),
    StepDefinition("Procurement / Vendor PO", Role.SCM, "Vendor Procurement"),
    StepDefinition("Delivery & Logistics", Role.SCM, "Shipping and Delivery"),
    StepDefinition("Physical Verification", Role.FIELD_ENGINEER, "On-site Verification"),
    StepDefinition("Deployment", Role.DEPLOYMENT, "Solution Deployment"),
    StepDefinition("Invoicing", Role.FINANCE, "Invoice Generation & Payment"),
    StepDefinition("Closure & Support Handover", Role.SALES, "Project Closure"),
)

CUSTOMER_PO_STEP = "Customer PO"
FIRST_STEP_NAME = PIPELINE_STEPS[0].name
LAST_STEP_NAME = PIPELINE_STEPS[-1].name


_INDEX_BY_NAME: Mapping[str, int] = MappingProxyType({step.name: index for index, step in enumerate(PIPELINE_STEPS)})
_BY_NAME: Mapping[str, StepDefinition] = MappingProxyType({step.name: step for step in PIPELINE_STEPS})


# Steps each role may act on in addition to the override roles.
STEP_PERMISSIONS: Mapping[Role, frozenset[str]] = MappingProxyType(
    {
        Role.SALES: frozenset({"Lead", "Account", "Deal / Opportunity", "Customer PO", "Closure & Support Handover"}),
        Role.SCM: frozenset({"Procurement / Vendor PO", "Delivery & Logistics"}),
        Role.FIELD_ENGINEER: frozenset({"Physical Verification"}),
        Role.DEPLOYMENT: frozenset({"Deployment"}),
        Role.FINANCE: frozenset({"Invoicing"}),
    }
)


def step_index(name: str) -> int | None:
    return _INDEX_BY_NAME.get(name)


def is_last_step(name: str) -> bool:
    return name == LAST_STEP_NAME


def next_step_name(name: str) -> str | None:
    """Name of the step following ``name``, or ``None`` for the last or an unknown step."""

    index = _INDEX_BY_NAME.get(name)
    if index is None or index >= len(PIPELINE_STEPS) - 1:
        return None
    return PIPELINE_STEPS[index + 1].name


def role_for_step(name: str) -> Role | None:
    step = _BY_NAME.get(name)
    return step.assigned_role if step is not None else None


def catalog_sort_key(name: str) -> tuple[int, str]:
    # unknown step names sort after every catalog step
    return (_INDEX_BY_NAME.get(name, len(PIPELINE_STEPS)), name)


class _NamedStep(Protocol):
    step_name: str


StepT = TypeVar("StepT", bound=_NamedStep)


def sort_steps(steps: Iterable[StepT]) -> list[StepT]:
    return sorted(steps, key=lambda step: catalog_sort_key(step.step_name))


def _validate_step_permissions() -> None:
    for step in PIPELINE_STEPS:
        if step.name not in STEP_PERMISSIONS.get(step.assigned_role, frozenset()):
            raise RuntimeError(f"step '{step.name}' is not granted to its assigned role '{step.assigned_role}'")
    for role, step_names in STEP_PERMISSIONS.items():
        unknown = sorted(name for name in step_names if name not in _INDEX_BY_NAME)
        if unknown:
            raise RuntimeError(f"role '{role}' is granted unknown steps: {', '.join(unknown)}")


_validate_step_permissions()
