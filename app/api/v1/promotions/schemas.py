from datetime import datetime
from typing import List, Literal, Optional

from app.core.schemas import CamelModel


class PromotedStudent(CamelModel):
    id: str
    name: str


class PromotionStep(CamelModel):
    """One graduation or promotion step of a run."""

    action: Literal["graduation", "promotion"]
    semester: Optional[int] = None  # graduation only
    from_semester: Optional[int] = None
    to_semester: Optional[int] = None
    count: int
    students: List[PromotedStudent]


class PromotionReport(CamelModel):
    success: bool = True
    message: str
    stream: str
    stream_type: str
    promotion_date: datetime
    promotion_batch: str
    total_promoted: int
    total_graduated: int
    promotion_flow: List[str]
    promotion_details: List[PromotionStep]
    note: str
