from enum import Enum
from typing import Optional

from app.core.exceptions import InvalidStreamError


class Stream(str, Enum):
    BCA = "BCA"
    BBA = "BBA"
    BCOM = "BCom"
    BCOM_SECTION_B = "BCom Section B"
    BCOM_BDA = "BCom-BDA"
    BCOM_A_AND_F = "BCom A and F"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Stream":
        """Exact display value only; anything else is rejected."""
        for stream in cls:
            if stream.value == value:
                return stream
        raise InvalidStreamError(str(value), [s.value for s in cls])


class Language(str, Enum):
    KANNADA = "KANNADA"
    HINDI = "HINDI"
    SANSKRIT = "SANSKRIT"


class SubjectType(str, Enum):
    CORE = "CORE"
    ELECTIVE = "ELECTIVE"
    LANGUAGE = "LANGUAGE"
    OPTIONAL = "OPTIONAL"


class ActiveState(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"

    @classmethod
    def from_flag(cls, flag: Optional[bool]) -> "ActiveState":
        # Legacy rows carry NULL for students that were never deactivated.
        return cls.INACTIVE if flag is False else cls.ACTIVE


class UserRole(str, Enum):
    TEACHER = "teacher"
    ADMIN = "admin"


class MessageType(str, Enum):
    FULL_DAY = "full_day"
    PARTIAL_DAY = "partial_day"
    PRESENT = "present"


class QueueStatus(str, Enum):
    QUEUED = "queued"
    COMPLETED = "completed"
