from typing import Protocol


class Reporter(Protocol):
    def output(self, message: str) -> None:
        ...
