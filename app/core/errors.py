from __future__ import annotations

from typing import Iterable, Optional

from fastapi import HTTPException


class InventoryError(HTTPException):
    status_code = 400

    def __init__(self, message: str, numbers: Optional[Iterable[int]] = None):
        self.message = message
        self.numbers = sorted(numbers) if numbers is not None else []
        detail: object = message
        if numbers is not None:
            detail = {"message": message, "numbers": self.numbers}
        super().__init__(status_code=self.status_code, detail=detail)

    def __str__(self) -> str:
        if self.numbers:
            return f"{self.message}: {', '.join(str(n) for n in self.numbers)}"
        return self.message


class NotFound(InventoryError):
    status_code = 404


class Conflict(InventoryError):
    status_code = 409


class InvalidArgument(InventoryError):
    status_code = 400
