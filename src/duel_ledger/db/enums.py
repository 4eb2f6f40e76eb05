from __future__ import annotations

from enum import Enum, StrEnum


class ModeFamilyEnum(StrEnum):
    DUELS = "duels"
    TEAM_DUELS = "team_duels"
    OTHER = "other"


class DetailStatusEnum(StrEnum):
    MISSING = "missing"
    OK = "ok"
    ERROR = "error"


class RoleEnum(str, Enum):
    SELF = "self"
    MATE = "mate"
    OPPONENT = "opponent"
    OPPONENT_MATE = "opponent_mate"


class MovementModeEnum(str, Enum):
    MOVING = "moving"
    NO_MOVE = "no move"
    NMPZ = "nmpz"
