"""Parent-facing absence messages (WhatsApp markdown)."""

from datetime import date
from typing import Sequence


def format_message_date(day: date) -> str:
    return day.strftime("%d/%m/%Y")


def render_full_day_message(
    *,
    college_name: str,
    college_phone: str,
    student_name: str,
    student_id: str,
    stream: str,
    semester: int,
    day: date,
    absent_subjects: Sequence[str],
) -> str:
    when = format_message_date(day)
    return (
        f"*{college_name.upper()} - ATTENDANCE ALERT*\n\n"
        "*FULL DAY ABSENCE*\n\n"
        "Dear Parent/Guardian,\n\n"
        f"Your ward *{student_name}* (ID: {student_id}) was absent for the entire day on {when}.\n\n"
        "*Academic Details:*\n"
        f"• Class: {stream} Semester {semester}\n"
        f"• Total Classes Missed: {len(absent_subjects)}\n"
        f"• Date: {when}\n\n"
        "Please contact the college office if your ward was present but not marked "
        "or you need absence documentation.\n\n"
        f"College Office: {college_phone}\n"
        f"{college_name}\n\n"
        "*This is an automated message from our Smart Attendance System*"
    )


def render_partial_day_message(
    *,
    college_name: str,
    college_phone: str,
    student_name: str,
    student_id: str,
    stream: str,
    semester: int,
    day: date,
    absent_subjects: Sequence[str],
    present_count: int,
) -> str:
    when = format_message_date(day)
    missing = "\n".join(f"{i}. {subject}" for i, subject in enumerate(absent_subjects, start=1))
    return (
        f"*{college_name.upper()} - ATTENDANCE ALERT*\n\n"
        "*PARTIAL ABSENCE NOTICE*\n\n"
        "Dear Parent/Guardian,\n\n"
        f"Your ward *{student_name}* (ID: {student_id}) was absent for specific classes on {when}.\n\n"
        "*Missing Classes:*\n"
        f"{missing}\n\n"
        "*Summary:*\n"
        f"• Class: {stream} Semester {semester}\n"
        f"• Classes Missed: {len(absent_subjects)}\n"
        f"• Classes Attended: {present_count}\n"
        f"• Date: {when}\n\n"
        f"For clarifications, contact: {college_phone}\n"
        f"{college_name}\n\n"
        "*This is an automated message from our Smart Attendance System*"
    )
