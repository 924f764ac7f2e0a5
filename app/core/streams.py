"""Per-stream semester layout and storage codes."""

from typing import Dict, List, Tuple

from app.core.enums import Stream
from app.core.exceptions import InvalidSemesterError

MIN_SEMESTER = 1
MAX_SEMESTER = 8
TERMINAL_SEMESTER = 6

STREAM_CODES: Dict[Stream, str] = {
    Stream.BCA: "bca",
    Stream.BBA: "bba",
    Stream.BCOM: "bcom",
    Stream.BCOM_SECTION_B: "bcomsectionb",
    Stream.BCOM_BDA: "bcom_bda",
    Stream.BCOM_A_AND_F: "bcom_a_and_f",
}

# Streams whose cohort only exists in the last two semesters.
LIMITED_STREAMS = frozenset({Stream.BCOM_SECTION_B})


def is_limited_stream(stream: Stream) -> bool:
    return stream in LIMITED_STREAMS


def semester_range(stream: Stream) -> Tuple[int, ...]:
    if is_limited_stream(stream):
        return (TERMINAL_SEMESTER - 1, TERMINAL_SEMESTER)
    return tuple(range(MIN_SEMESTER, TERMINAL_SEMESTER + 1))


def promotion_pairs(stream: Stream) -> List[Tuple[int, int]]:
    """(from, to) pairs, highest source semester first."""
    semesters = semester_range(stream)
    return [(sem, sem + 1) for sem in sorted(semesters[:-1], reverse=True)]


def validate_semester(semester: int) -> int:
    if not isinstance(semester, int) or semester < MIN_SEMESTER or semester > MAX_SEMESTER:
        raise InvalidSemesterError(f"Invalid semester: {semester}. Must be between {MIN_SEMESTER}-{MAX_SEMESTER}")
    return semester


def validate_stream_semester(stream: Stream, semester: int) -> int:
    """Roster writes for a limited stream are only accepted inside its range."""
    validate_semester(semester)
    if is_limited_stream(stream) and semester not in semester_range(stream):
        allowed = " and ".join(str(s) for s in semester_range(stream))
        raise InvalidSemesterError(f"{stream.value} only supports Semesters {allowed}")
    return semester
