from fastapi import HTTPException


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Not authenticated") -> None:
        super().__init__(status_code=401, detail=detail)


class LoginRequired(Exception):
    """Raised by page guards; the app answers with a redirect to the login page."""

    def __init__(self, next_path: str = "/") -> None:
        super().__init__(next_path)
        self.next_path = next_path


class RecordValidationError(HTTPException):
    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__(status_code=422, detail="Validation failed")
        self.errors = errors


class DuplicateRecordDate(HTTPException):
    def __init__(self) -> None:
        super().__init__(status_code=409, detail="A record for this date already exists")


class RecordNotFound(HTTPException):
    def __init__(self) -> None:
        super().__init__(status_code=404, detail="Record not found")


class RecordStoreError(HTTPException):
    def __init__(self, detail: str = "Failed to save record") -> None:
        super().__init__(status_code=500, detail=detail)
