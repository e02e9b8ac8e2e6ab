import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .errors import RateLimited
from .identity import client_address, derive_identity
from .models import VoteEntry, VoteIn, VoteOut, VotesOut
from .observability import short_identity

router = APIRouter(prefix="/api")
log = structlog.get_logger(__name__)


def caller_identity(request: Request) -> str:
    peer = request.client.host if request.client else None
    address = client_address(request.headers, peer)
    return derive_identity(address, request.app.state.identity_salt)


@router.post("/vote")
async def vote(v: VoteIn, request: Request, identity: str = Depends(caller_identity)) -> VoteOut:
    limiter = request.app.state.limiter
    if not limiter.allow(identity):
        log.info("rate_limited", identity=short_identity(identity))
        raise RateLimited(retry_after=limiter.retry_after(identity))

    result = await request.app.state.ledger.cast_vote(v.item_id, identity)
    return VoteOut(newVoteCount=result.vote_count, message="Vote recorded successfully")


async def _unvote(v: VoteIn, request: Request, identity: str) -> VoteOut:
    result = await request.app.state.ledger.retract_vote(v.item_id, identity)
    return VoteOut(newVoteCount=result.vote_count, message="Vote removed successfully")


@router.post("/unvote")
async def unvote(v: VoteIn, request: Request, identity: str = Depends(caller_identity)) -> VoteOut:
    return await _unvote(v, request, identity)


@router.delete("/vote")
async def delete_vote(v: VoteIn, request: Request, identity: str = Depends(caller_identity)) -> VoteOut:
    return await _unvote(v, request, identity)


@router.get("/votes")
async def votes(request: Request, identity: str = Depends(caller_identity)) -> VotesOut:
    statuses = await request.app.state.ledger.list_votes(identity)
    return VotesOut(
        entries=[VoteEntry(id=s.id, votes=s.vote_count, userVoted=s.user_voted) for s in statuses]
    )


@router.get("/blogs")
async def blogs(request: Request):
    data = await request.app.state.ledger.list_entries()
    return JSONResponse(data, headers={"Cache-Control": "s-maxage=60, stale-while-revalidate"})
