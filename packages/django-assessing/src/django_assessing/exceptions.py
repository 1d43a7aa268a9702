"""Exceptions for django-assessing."""


class AssessingError(Exception):
    """Base exception for assessing errors."""
    pass


class AssessmentYearExistsError(AssessingError):
    """Raised when creating an assessment year that already exists."""

    def __init__(self, municipality_id, year: int):
        self.municipality_id = municipality_id
        self.year = year
        super().__init__(f"Assessment year {year} already exists")


class AssessmentYearNotFoundError(AssessingError):
    """Raised when an assessment year is required but missing."""

    def __init__(self, municipality_id, year: int):
        self.municipality_id = municipality_id
        self.year = year
        super().__init__(f"Assessment year {year} not found for municipality {municipality_id}")
