"""Tests for named, transactional sequence counters."""

from erp_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_first_values(self, session):
        service = SequenceService(session)
        assert service.next_value("test_seq") == 1
        assert service.next_value("test_seq") == 2
        assert service.next_value("test_seq") == 3

    def test_names_are_independent(self, session):
        service = SequenceService(session)
        service.next_value("seq_a")
        service.next_value("seq_a")
        assert service.next_value("seq_b") == 1
        assert service.current_value("seq_a") == 2

    def test_current_value_before_first_use(self, session):
        assert SequenceService(session).current_value("never_used") is None

    def test_current_value_does_not_increment(self, session):
        service = SequenceService(session)
        service.next_value("peek")
        assert service.current_value("peek") == 1
        assert service.current_value("peek") == 1
        assert service.next_value("peek") == 2
