"""Tests for domain enumerations."""

from __future__ import annotations

from wastex.domain.enums import (
    ContractPaymentStatus,
    ContractStatus,
    MaterialCategory,
    PaymentStatus,
    WasteCategory,
)


class TestContractStatus:
    def test_all_states_exist(self) -> None:
        assert {s.value for s in ContractStatus} == {
            "draft",
            "pending",
            "signed",
            "executed",
            "completed",
            "cancelled",
            "disputed",
        }

    def test_string_comparison(self) -> None:
        assert ContractStatus.SIGNED == "signed"


class TestPaymentStatus:
    def test_contract_mirror_covers_every_payment_state(self) -> None:
        mirror = {s.value for s in ContractPaymentStatus}
        assert {s.value for s in PaymentStatus} <= mirror
        assert "not_initiated" in mirror


class TestCategories:
    def test_same_number_of_material_and_waste_categories(self) -> None:
        assert len(MaterialCategory) == len(WasteCategory)
