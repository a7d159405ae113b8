from __future__ import annotations

from dataclasses import dataclass

from app.orders.steps import (
    FIRST_STEP_NAME,
    LAST_STEP_NAME,
    PIPELINE_STEPS,
    STEP_PERMISSIONS,
    catalog_sort_key,
    is_last_step,
    next_step_name,
    role_for_step,
    sort_steps,
    step_index,
)
from app.platform.security.roles import Role


@dataclass
class _Row:
    step_name: str


def test_catalog_order_and_roles() -> None:
    assert [step.name for step in PIPELINE_STEPS] == [
        "Lead",
        "Account",
        "Deal / Opportunity",
        "Customer PO",
        "Procurement / Vendor PO",
        "Delivery & Logistics",
        "Physical Verification",
        "Deployment",
        "Invoicing",
        "Closure & Support Handover",
    ]
    assert FIRST_STEP_NAME == "Lead"
    assert LAST_STEP_NAME == "Closure & Support Handover"
    assert role_for_step("Procurement / Vendor PO") is Role.SCM
    assert role_for_step("Physical Verification") is Role.FIELD_ENGINEER
    assert role_for_step("Invoicing") is Role.FINANCE
    assert role_for_step("Unknown") is None


def test_next_step_name_and_last_step() -> None:
    assert next_step_name("Lead") == "Account"
    assert next_step_name("Invoicing") == "Closure & Support Handover"
    assert next_step_name(LAST_STEP_NAME) is None
    assert next_step_name("Not A Step") is None
    assert is_last_step(LAST_STEP_NAME) is True
    assert is_last_step("Lead") is False
    assert step_index("Customer PO") == 3


def test_sort_steps_uses_catalog_order_with_unknown_last() -> None:
    rows = [_Row("Invoicing"), _Row("Zeta"), _Row("Lead"), _Row("Customer PO"), _Row("Alpha")]

    ordered = [row.step_name for row in sort_steps(rows)]

    assert ordered == ["Lead", "Customer PO", "Invoicing", "Alpha", "Zeta"]
    assert catalog_sort_key("Unknown") > catalog_sort_key(LAST_STEP_NAME)


def test_every_step_is_granted_to_its_assigned_role() -> None:
    for step in PIPELINE_STEPS:
        assert step.name in STEP_PERMISSIONS[step.assigned_role]
    assert Role.ORG_ADMIN not in STEP_PERMISSIONS
    assert Role.SUPER_ADMIN not in STEP_PERMISSIONS
