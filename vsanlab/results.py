"""
Command outcomes returned by every control-plane command.

Expected domain conditions never raise: they come back as a CommandResult
whose status tells the caller what kind of refusal it was. Unknown entity
ids are programming errors and raise UnknownEntityError instead.
"""

import enum

from pydantic import BaseModel


class ResultStatus(str, enum.Enum):
    OK = "ok"
    INVALID = "invalid"  # validation error, input rejected
    REJECTED = "rejected"  # legal input, currently inadmissible


class CommandResult(BaseModel):
    status: ResultStatus
    message: str

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.OK

    @classmethod
    def success(cls, message: str) -> "CommandResult":
        return cls(status=ResultStatus.OK, message=message)

    @classmethod
    def invalid(cls, message: str) -> "CommandResult":
        return cls(status=ResultStatus.INVALID, message=message)

    @classmethod
    def rejected(cls, message: str) -> "CommandResult":
        return cls(status=ResultStatus.REJECTED, message=message)


class UnknownEntityError(LookupError):
    """Raised when an operation references a host, disk or VM id that does not exist."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} '{entity_id}' not found")
        self.kind = kind
        self.entity_id = entity_id
