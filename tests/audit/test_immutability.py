"""
Append-only persistence of ledger entries and operation outcomes.

Verifies:
- LedgerEntry rows cannot be updated or deleted through the ORM
- OperationRecord rows cannot be updated or deleted through the ORM
- Corrections happen through compensating entries, leaving history intact
"""

import pytest
from sqlalchemy import event, select

from inventory_kernel.db.immutability import (
    _check_ledger_entry_update,
    register_immutability_listeners,
)
from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.models import LedgerEntry, OperationRecord


@pytest.fixture
def receipt_entry(session, ops, product, bin_x) -> LedgerEntry:
    result = ops.book_receipt(product.id, bin_x.id, 5, reference_id="RCV-IMM")
    return session.get(LedgerEntry, result.entry_id)


@pytest.fixture
def operation_record(session, ops, product, bin_x) -> OperationRecord:
    ops.book_purchase_order(product.id, bin_x.id, 5, idempotency_key="po-imm")
    return session.execute(
        select(OperationRecord).where(OperationRecord.idempotency_key == "po-imm")
    ).scalar_one()


class TestLedgerEntryImmutability:
    def test_update_blocked(self, session, receipt_entry):
        entry_id = str(receipt_entry.id)
        receipt_entry.change_on_hand = 500

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "LedgerEntry"
        assert exc_info.value.entity_id == entry_id

    def test_notes_update_blocked(self, session, receipt_entry):
        receipt_entry.notes = "edited after the fact"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, receipt_entry):
        session.delete(receipt_entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_correction_is_a_new_entry(self, session, ops, product, bin_x, receipt_entry):
        ops.revert_receipt("RCV-IMM")

        entries = ops.ledger_for_reference("RCV-IMM")
        assert [e.change_on_hand for e in entries] == [5, -5]
        assert session.get(LedgerEntry, receipt_entry.id).change_on_hand == 5


class TestOperationRecordImmutability:
    def test_update_blocked(self, session, operation_record):
        operation_record.result_payload = {"entry_id": "forged"}

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "OperationRecord"

    def test_delete_blocked(self, session, operation_record):
        session.delete(operation_record)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestListenerRegistration:
    def test_registration_is_idempotent(self, db_tables):
        register_immutability_listeners()
        register_immutability_listeners()

        assert event.contains(LedgerEntry, "before_update", _check_ledger_entry_update)
