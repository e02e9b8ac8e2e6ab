from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VoteIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field(..., alias="blogId", min_length=1, examples=["a1"])


class VoteResult(BaseModel):
    """Outcome of a cast/retract: the item's count after the change."""

    item_id: str
    vote_count: int


class VoteStatus(BaseModel):
    """One row of the read path: count + whether the caller has voted."""

    id: str
    vote_count: int
    user_voted: bool


class VoteOut(BaseModel):
    success: bool = True
    newVoteCount: int
    message: str


class VoteEntry(BaseModel):
    id: str
    votes: int
    userVoted: bool


class VotesOut(BaseModel):
    entries: List[VoteEntry]


class ErrorOut(BaseModel):
    error: str
    code: str
    retryAfter: Optional[int] = None
    alreadyVoted: Optional[bool] = None
    notVoted: Optional[bool] = None
