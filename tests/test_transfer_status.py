"""
StockLedger - Transfer Lifecycle Rules Tests

Pure checks on the status graph and transfer type derivation.
"""

from uuid import uuid4

import pytest

from app.models.transfer import OPEN_TRANSFER_STATUSES, TransferStatus, TransferType
from app.services.transfer_service import Location, determine_transfer_type


class TestTransferStatus:
    """The documented transition graph."""

    @pytest.mark.parametrize("current,target", [
        (TransferStatus.PENDING, TransferStatus.IN_TRANSIT),
        (TransferStatus.PENDING, TransferStatus.REJECTED),
        (TransferStatus.PENDING, TransferStatus.CANCELLED),
        (TransferStatus.IN_TRANSIT, TransferStatus.COMPLETED),
        (TransferStatus.IN_TRANSIT, TransferStatus.CANCELLED),
    ])
    def test_documented_transitions(self, current, target):
        assert current.can_transition_to(target)

    @pytest.mark.parametrize("current,target", [
        (TransferStatus.PENDING, TransferStatus.COMPLETED),
        (TransferStatus.IN_TRANSIT, TransferStatus.REJECTED),
        (TransferStatus.IN_TRANSIT, TransferStatus.PENDING),
        (TransferStatus.REJECTED, TransferStatus.COMPLETED),
        (TransferStatus.CANCELLED, TransferStatus.IN_TRANSIT),
        (TransferStatus.COMPLETED, TransferStatus.CANCELLED),
    ])
    def test_other_transitions_refused(self, current, target):
        assert not current.can_transition_to(target)

    def test_terminal_states(self):
        """Completed, Rejected and Cancelled allow nothing further."""
        terminal = {s for s in TransferStatus if s.is_terminal}

        assert terminal == {TransferStatus.COMPLETED, TransferStatus.REJECTED, TransferStatus.CANCELLED}
        assert set(OPEN_TRANSFER_STATUSES) == {TransferStatus.PENDING, TransferStatus.IN_TRANSIT}


class TestDetermineTransferType:
    """Type follows which part of the location changes."""

    def setup_method(self):
        self.branch, self.counter, self.box = uuid4(), uuid4(), uuid4()
        self.source = Location(self.branch, self.counter, self.box)

    def test_branch_change(self):
        destination = Location(uuid4(), uuid4(), None)
        assert determine_transfer_type(self.source, destination) == TransferType.BRANCH

    def test_counter_change(self):
        destination = Location(self.branch, uuid4(), self.box)
        assert determine_transfer_type(self.source, destination) == TransferType.COUNTER

    def test_box_change(self):
        destination = Location(self.branch, self.counter, uuid4())
        assert determine_transfer_type(self.source, destination) == TransferType.BOX

    def test_counter_and_box_change(self):
        destination = Location(self.branch, uuid4(), None)
        assert determine_transfer_type(self.source, destination) == TransferType.MIXED
