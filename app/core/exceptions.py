from typing import Iterable
from fastapi import HTTPException, status

class BaseAppException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

class ValidationError(BaseAppException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class NotFoundError(BaseAppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class TemplateNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Template not found"):
        super().__init__(detail=detail)

class EntryNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Entry not found"):
        super().__init__(detail=detail)

class EmployeeNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Employee not found"):
        super().__init__(detail=detail)

class DepartmentNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Department not found"):
        super().__init__(detail=detail)

class InvalidInputError(BaseAppException):
    def __init__(self, detail: str = "Invalid input"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class InvalidKpiKeyError(InvalidInputError):
    def __init__(self, key: str, available: Iterable[str]):
        self.key = key
        self.available = list(available)
        super().__init__(
            detail=f"KPI key not found in template: {key}. Available KPIs: {', '.join(self.available)}"
        )

class MissingKpiValueError(InvalidInputError):
    def __init__(self, metric_name: str):
        self.metric_name = metric_name
        super().__init__(detail=f"Missing value for KPI: {metric_name}")

class MissingSubKpiError(InvalidInputError):
    def __init__(self, metric_name: str, missing: Iterable[str]):
        self.metric_name = metric_name
        self.missing = list(missing)
        super().__init__(detail=f"Missing sub-KPIs for {metric_name}: {', '.join(self.missing)}")

class MissingRequiredParametersError(InvalidInputError):
    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(detail=f"Missing required parameters: {', '.join(self.missing)}")

class InvalidStatusTransitionError(InvalidInputError):
    def __init__(self, current: str, requested: str):
        super().__init__(detail=f"Cannot change entry status from '{current}' to '{requested}'")

class DuplicateEntryError(BaseAppException):
    def __init__(self, detail: str = "Entry already exists for this employee, month, year and KPI labels"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
