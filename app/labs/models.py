from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LabEntry(BaseModel):
    name: str
    value: str


class PatientContext(BaseModel):
    """Optional patient details; every field may be absent."""
    model_config = ConfigDict(populate_by_name=True)

    age: Optional[int] = None
    sex: Optional[str] = None
    months_post_transplant: Optional[int] = Field(default=None, alias="monthsPostTransplant")
    donor_type: Optional[str] = Field(default=None, alias="donorType")
    medications: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.age or self.sex or self.months_post_transplant or self.medications)


class HistoricalPoint(BaseModel):
    date: str
    labs: List[LabEntry] = Field(default_factory=list)
