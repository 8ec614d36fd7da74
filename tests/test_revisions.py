"""
Revision log tests - bounded, append-only history alongside the canonical record.
"""

import pytest

from src.core.errors import (
    NotFound,
    Unauthorized,
    MaxVersionsReached,
    InvalidFingerprint,
    InvalidNotes,
)

OWNER = "deployer"
USER1 = "wallet_1"

FP1 = bytes([1]) * 32
FP2 = bytes([2]) * 32


class TestAddRevision:
    """Test appending revisions to a record."""

    def test_first_revision_is_one(self, registered):
        revision = registered.add_revision(1, FP2, "Updated data", caller=OWNER)
        assert revision == 1

        entry = registered.get_revision(1, 1)
        assert entry.fingerprint == FP2
        assert entry.notes == "Updated data"
        assert entry.created > registered.get_record(1).created

    def test_revisions_are_dense(self, registered):
        numbers = [
            registered.add_revision(1, bytes([10 + i]) * 32, f"rev {i}", caller=OWNER)
            for i in range(3)
        ]
        assert numbers == [1, 2, 3]
        assert [r.revision for r in registered.list_revisions(1)] == [1, 2, 3]
        assert registered.get_revision_count(1) == 3

    def test_bound_of_five(self, registered):
        """Test the sixth revision is refused and nothing is written."""
        for i in range(5):
            registered.add_revision(1, bytes([10 + i]) * 32, "", caller=OWNER)

        sequence = registered.current_sequence()
        with pytest.raises(MaxVersionsReached) as exc_info:
            registered.add_revision(1, FP2, "one too many", caller=OWNER)
        assert exc_info.value.code == 107

        assert registered.get_revision_count(1) == 5
        assert registered.get_revision(1, 6) is None
        assert registered.current_sequence() == sequence

    def test_record_and_index_unchanged(self, registered):
        """Test revisions leave the canonical fingerprint and the index alone."""
        registered.add_revision(1, FP2, "", caller=OWNER)

        assert registered.get_record(1).fingerprint == FP1
        assert registered.get_record_by_fingerprint(FP1).id == 1
        assert registered.get_record_by_fingerprint(FP2) is None

    def test_revision_fingerprint_may_repeat(self, registered):
        """Test revision fingerprints are not checked for uniqueness."""
        registered.add_revision(1, FP1, "same content", caller=OWNER)
        registered.add_revision(1, FP1, "again", caller=OWNER)
        assert registered.get_revision_count(1) == 2

    def test_revised_fingerprint_is_still_registrable(self, registered):
        """Test a revision's fingerprint can later be registered as its own record."""
        registered.add_revision(1, FP2, "", caller=OWNER)
        assert registered.register(FP2, 5, "DAC", "Site B", "", caller=USER1) == 2

    def test_notes_at_limit(self, registered):
        registered.add_revision(1, FP2, "n" * 200, caller=OWNER)
        assert len(registered.get_revision(1, 1).notes) == 200

    def test_notes_too_long(self, registered):
        with pytest.raises(InvalidNotes) as exc_info:
            registered.add_revision(1, FP2, "n" * 201, caller=OWNER)
        assert exc_info.value.code == 112
        assert registered.get_revision_count(1) == 0

    def test_invalid_fingerprint(self, registered):
        with pytest.raises(InvalidFingerprint):
            registered.add_revision(1, b"", "", caller=OWNER)
        with pytest.raises(InvalidFingerprint):
            registered.add_revision(1, bytes(33), "", caller=OWNER)


class TestRevisionCheckOrder:
    """Test which failure is reported when several apply."""

    def test_missing_record_is_not_found(self, registry):
        with pytest.raises(NotFound) as exc_info:
            registry.add_revision(99, FP2, "", caller=OWNER)
        assert exc_info.value.code == 106

    def test_not_found_before_invalid_input(self, registry):
        with pytest.raises(NotFound):
            registry.add_revision(99, b"", "n" * 500, caller=OWNER)

    def test_unauthorized_before_invalid_input(self, registered):
        with pytest.raises(Unauthorized) as exc_info:
            registered.add_revision(1, b"", "", caller=USER1)
        assert exc_info.value.code == 101

    def test_bound_before_fingerprint_validation(self, registered):
        for i in range(5):
            registered.add_revision(1, bytes([10 + i]) * 32, "", caller=OWNER)
        with pytest.raises(MaxVersionsReached):
            registered.add_revision(1, b"", "", caller=OWNER)

    def test_fingerprint_before_notes(self, registered):
        with pytest.raises(InvalidFingerprint):
            registered.add_revision(1, b"", "n" * 201, caller=OWNER)

    def test_out_of_range_id_is_not_found(self, registered):
        with pytest.raises(NotFound):
            registered.add_revision(2**63, FP2, "", caller=OWNER)
