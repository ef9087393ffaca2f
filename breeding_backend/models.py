from pydantic import BaseModel
from datetime import datetime


class InitializeBreedingBody(BaseModel):
    initialParity: int = 0
    memo: str | None = None


class BreedingEventBody(BaseModel):
    type: str
    memo: str | None = None
    occurredAt: datetime | None = None
    expectedCalvingDate: datetime | None = None
    scheduledPregnancyCheckDate: datetime | None = None
    isDifficultBirth: bool | None = None

    class Config:
        extra = "ignore"
