"""Results of evaluating a snippet"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional, Tuple


class Outcome(Enum):
    OK = "ok"
    COMPILE_ERROR = "compile_error"
    RUNTIME_ERROR = "runtime_error"


class Serialisable:
    """A basic serialisation mixin.

    The inheriting class must be a dataclass.

    """

    def serialise(self):
        """Produce a JSON-serialisable object"""
        return asdict(self)


@dataclass(frozen=True)
class SourceSpan(Serialisable):
    lineno: int
    col_offset: int
    end_lineno: Optional[int] = None
    end_col_offset: Optional[int] = None

    def __str__(self):
        return f"line {self.lineno}, column {self.col_offset + 1}"


@dataclass(frozen=True)
class Diagnostic(Serialisable):
    """Why a snippet didn't compile"""

    message: str
    span: Optional[SourceSpan]
    text: Optional[str] = None

    def __str__(self):
        where = f" ({self.span})" if self.span else ""
        return f"{self.message}{where}"


@dataclass(frozen=True)
class ErrorInfo(Serialisable):
    """An exception raised by a snippet"""

    type_name: str
    message: str
    traceback: str

    def __str__(self):
        return f"{self.type_name}: {self.message}"


@dataclass(frozen=True)
class EvalResult:
    outcome: Outcome
    session_id: Any
    module_name: Optional[str] = None
    value: Any = None
    result_name: Optional[str] = None
    bound_names: Tuple[str, ...] = ()
    diagnostic: Optional[Diagnostic] = None
    error: Optional[ErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK

    def serialise(self) -> dict:
        """JSON-able summary. The value is included as its repr."""
        return dict(
            outcome=self.outcome.value,
            session_id=self.session_id,
            module_name=self.module_name,
            value=repr(self.value) if self.result_name else None,
            result_name=self.result_name,
            bound_names=list(self.bound_names),
            diagnostic=self.diagnostic.serialise() if self.diagnostic else None,
            error=self.error.serialise() if self.error else None,
        )

    def __str__(self):
        if self.outcome is Outcome.COMPILE_ERROR:
            return f"error: {self.diagnostic}"
        if self.outcome is Outcome.RUNTIME_ERROR:
            return f"{self.error}"
        if self.result_name:
            return f"{self.result_name} = {self.value!r}"
        return ", ".join(self.bound_names)
