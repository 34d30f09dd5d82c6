from datetime import datetime
from sqlmodel import SQLModel, Field


class PinObservation(SQLModel, table=True):
    """first time a pin was seen; ipfs has no native pin timestamp"""
    __tablename__ = "pin_observations"
    cid: str = Field(primary_key=True)
    first_seen_at: datetime = Field(default_factory=datetime.utcnow)
