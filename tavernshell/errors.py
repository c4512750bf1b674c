from __future__ import annotations


class TavernError(Exception):
    pass


class DiceSyntaxError(TavernError, ValueError):
    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class DiceRollError(TavernError, RuntimeError):
    pass


class DurationSyntaxError(TavernError, ValueError):
    pass


class TrackerNotFound(TavernError, KeyError):
    def __str__(self) -> str:
        # KeyError repr()s its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class ParticipantNotFound(TavernError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
