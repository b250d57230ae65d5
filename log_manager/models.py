from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError

from .core.exceptions import ConfigurationError

DataCallback = Callable[[bytes], Any]
CloseCallback = Callable[[Optional[int]], Any]
RegistrationCallback = Callable[[Optional[BaseException], str, Optional[str]], Any]


@dataclass(frozen=True)
class ActiveFileRecord:
    """Uncompressed, sequence-numbered log file (``<word>.<pid>.log.<seq>``)."""

    absolute_path: str
    pid: int
    sequence: str  # digits exactly as written, padding preserved

    @property
    def sort_key(self) -> str:
        return f"{self.pid}{self.sequence}"


@dataclass(frozen=True)
class ArchivedFileRecord:
    """Rotated, gzip-compressed log file (``<word>.<pid>.log.<seq>.gz``)."""

    absolute_path: str
    pid: int
    sequence: str

    @property
    def sort_key(self) -> str:
        return f"{self.pid}{self.sequence}"


@dataclass(frozen=True)
class ClassifiedFiles:
    active: list[ActiveFileRecord]
    archived: list[ArchivedFileRecord]


class TailOptions(BaseModel):
    """Arguments for a one-shot ``tail``/``head`` read."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    file: str = Field(min_length=1)
    on_data: DataCallback
    on_close: Optional[CloseCallback] = None
    lines: PositiveInt = 10


class TailFollowOptions(TailOptions):
    """Arguments for a shared ``tail -f`` subscription."""

    on_registration: Optional[RegistrationCallback] = None


def build_options(model: type[BaseModel], **kwargs) -> Any:
    """Validate call arguments, raising ConfigurationError on any problem."""
    try:
        return model(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {model.__name__}: {e}") from e
