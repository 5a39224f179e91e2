from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ResultError(Exception):
    def __init__(self, error: Optional[str], code: Optional[str], source: Optional[str]):
        self.error = error
        self.code = code
        self.source = source
        super().__init__(f"{source or 'unknown'}: {error} ({code})")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    source: Optional[str] = None

    @staticmethod
    def success(value: T, source: Optional[str] = None) -> "Result[T]":
        return Result(ok=True, value=value, source=source)

    @staticmethod
    def failure(error: str, code: str = "unknown", source: Optional[str] = None) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, source=source)

    def unwrap(self) -> T:
        if not self.ok:
            raise ResultError(self.error, self.error_code, self.source)
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
