# read-validate-write across the ledger and aggregate documents
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import structlog

from .errors import (
    AlreadyVoted,
    ItemNotFound,
    NotVoted,
    StoreUnavailable,
    VoteConflict,
    WriteConflict,
)
from .ledger import (
    find_entry,
    has_voted,
    now_millis,
    parse_aggregate,
    parse_ledger,
    record_vote,
    remove_vote,
    vote_count,
)
from .models import VoteResult, VoteStatus
from .observability import short_identity
from .retry import RetryPolicy
from .store import DocumentStore, PutResult

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _Change:
    """One logical ledger change and the matching +1/-1 on the count."""

    item_id: str
    identity: str
    delta: int
    cast_at: int

    @property
    def verb(self) -> str:
        return "cast" if self.delta > 0 else "retract"

    def apply_ledger(self, ledger: Dict[str, Any]) -> None:
        voted = has_voted(ledger, self.item_id, self.identity)
        if self.delta > 0:
            if voted:
                raise AlreadyVoted()
            record_vote(ledger, self.item_id, self.identity, self.cast_at)
        else:
            if not voted:
                raise NotVoted()
            remove_vote(ledger, self.item_id, self.identity)

    def apply_count(self, aggregate: Dict[str, Any]) -> int:
        entry = find_entry(aggregate, self.item_id)
        if entry is None:
            raise ItemNotFound()
        entry["votes"] = max(0, vote_count(entry) + self.delta)
        return entry["votes"]

    def ledger_message(self) -> str:
        if self.delta > 0:
            return f"Vote recorded for {self.item_id}"
        return f"Vote removed for {self.item_id}"

    def aggregate_message(self) -> str:
        if self.delta > 0:
            return f"Update vote count for {self.item_id}"
        return f"Update vote count for {self.item_id} (removed)"


class VoteLedger:
    """
    Vote/unvote over two independently versioned documents.

    The ledger document decides whether an identity has voted; the aggregate
    document holds the displayed counts. Each document is written with a
    conditional put on the version it was read at. The two writes are not
    atomic: if the ledger write lands and the aggregate write keeps
    conflicting, the count drifts by one for that change and the operation
    reports VoteConflict.
    """

    def __init__(
        self,
        store: DocumentStore,
        aggregate_path: str,
        ledger_path: str,
        policy: Optional[RetryPolicy] = None,
        clock_ms: Callable[[], int] = now_millis,
    ):
        self._store = store
        self._aggregate_path = aggregate_path
        self._ledger_path = ledger_path
        self._policy = policy or RetryPolicy()
        self._clock_ms = clock_ms

    async def cast_vote(self, item_id: str, identity: str) -> VoteResult:
        return await self._run(_Change(item_id, identity, +1, self._clock_ms()))

    async def retract_vote(self, item_id: str, identity: str) -> VoteResult:
        return await self._run(_Change(item_id, identity, -1, self._clock_ms()))

    async def list_votes(self, identity: Optional[str] = None) -> List[VoteStatus]:
        aggregate_doc, ledger_doc = await self._read_both()
        aggregate = parse_aggregate(aggregate_doc.content)
        ledger = parse_ledger(ledger_doc.content)

        result: List[VoteStatus] = []
        for entry in aggregate["entries"]:
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
                continue
            item_id = entry["id"]
            result.append(
                VoteStatus(
                    id=item_id,
                    vote_count=vote_count(entry),
                    user_voted=bool(identity) and has_voted(ledger, item_id, identity),
                )
            )
        return result

    async def list_entries(self) -> Dict[str, Any]:
        doc = await self._store.get(self._aggregate_path)
        return parse_aggregate(doc.content)

    async def _read_both(self):
        # if either read raises, gather propagates it and the attempt is dropped
        return await asyncio.gather(
            self._store.get(self._aggregate_path),
            self._store.get(self._ledger_path),
        )

    async def _run(self, change: _Change) -> VoteResult:
        if not change.item_id:
            raise ItemNotFound("item id is required")

        policy = self._policy
        bound = log.bind(
            op=change.verb,
            item_id=change.item_id,
            identity=short_identity(change.identity),
        )
        ledger_committed = False

        for attempt in policy.attempts():
            try:
                aggregate_doc, ledger_doc = await self._read_both()
                aggregate = parse_aggregate(aggregate_doc.content)
                if find_entry(aggregate, change.item_id) is None:
                    raise ItemNotFound()

                if not ledger_committed:
                    # business checks run inside apply_ledger, also on refreshed copies
                    await self._write(
                        self._ledger_path,
                        parse_ledger(ledger_doc.content),
                        ledger_doc.version,
                        parse_ledger,
                        change.apply_ledger,
                        change.ledger_message(),
                    )
                    ledger_committed = True

                count = await self._write(
                    self._aggregate_path,
                    aggregate,
                    aggregate_doc.version,
                    parse_aggregate,
                    change.apply_count,
                    change.aggregate_message(),
                )
            except (AlreadyVoted, NotVoted) as exc:
                bound.info("vote_rejected", code=exc.code)
                raise
            except ItemNotFound:
                if ledger_committed:
                    bound.error("ledger_drift", reason="item removed after ledger write")
                raise
            except StoreUnavailable:
                if ledger_committed:
                    bound.error(
                        "ledger_drift",
                        reason="aggregate write failed",
                        expected_delta=change.delta,
                    )
                raise
            except WriteConflict as exc:
                bound.warning(
                    "vote_attempt_conflict",
                    path=exc.path,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    ledger_committed=ledger_committed,
                )
                if attempt < policy.max_attempts:
                    await policy.wait_backoff(attempt)
                continue

            bound.info("vote_cast" if change.delta > 0 else "vote_retracted", vote_count=count)
            return VoteResult(item_id=change.item_id, vote_count=count)

        if ledger_committed:
            bound.error(
                "ledger_drift",
                reason="aggregate write exhausted retries",
                expected_delta=change.delta,
            )
        raise VoteConflict()

    async def _write(
        self,
        path: str,
        content: Dict[str, Any],
        version: Optional[str],
        parse: Callable[[Any], Dict[str, Any]],
        mutate: Callable[[Dict[str, Any]], Any],
        message: str,
    ) -> Any:
        """
        Apply mutate to content and write it conditioned on version.
        On conflict: re-read this document only, re-apply mutate to the fresh
        copy and write again with the fresh version.
        """
        policy = self._policy
        result = mutate(content)

        for write in policy.attempts():
            outcome = await self._store.put(path, content, version, message)
            if outcome is PutResult.OK:
                return result
            if outcome is PutResult.NOT_FOUND:
                raise StoreUnavailable(f"{path} disappeared during write")

            log.info("write_conflict", path=path, write=write, max_writes=policy.max_attempts)
            if write >= policy.max_attempts:
                break

            await policy.wait_refresh()
            fresh = await self._store.get(path)
            content = parse(fresh.content)
            version = fresh.version
            result = mutate(content)

        raise WriteConflict(path, policy.max_attempts)
