"""Test factories for generating result data."""

from datetime import timezone

from polyfactory import Use
from polyfactory.factories.pydantic_factory import ModelFactory

from borrower_cli_tester.models.result import TestResult


class TestResultFactory(ModelFactory[TestResult]):
    """Factory for TestResult."""

    __test__ = False

    id = Use(ModelFactory.__faker__.uuid4)
    contract_id = None
    steps_completed = Use(list[str])
    timestamp = Use(ModelFactory.__faker__.date_time, tzinfo=timezone.utc)
