"""Test fake implementations for dependency injection testing."""

from tests.fakes.fake_record_backend import FakeRecordBackend

__all__ = ["FakeRecordBackend"]
