from app.core.models.message_log import MessageLog
from app.core.models.teacher import QueuedClass, TeacherProfile

__all__ = ["MessageLog", "QueuedClass", "TeacherProfile"]
