from __future__ import annotations


# malformed entry/sample payloads; raised before any classification runs
class InputError(ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


# a history collaborator could not return its rows; never retried by the core
class FetchFailure(RuntimeError):
    pass
