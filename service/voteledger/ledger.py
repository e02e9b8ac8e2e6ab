# document shapes + helpers
#
# aggregate: {"entries": [{"id": ..., "votes": n, ...}, ...]}
# ledger:    {"votes": {item_id: {identity: cast_at_ms}}}
import time
from typing import Any, Dict, Optional

from .errors import StoreUnavailable


def now_millis() -> int:
    return int(time.time() * 1000)


def parse_aggregate(content: Any) -> Dict[str, Any]:
    if content is None:
        raise StoreUnavailable("Data file not found")
    if not isinstance(content, dict) or not isinstance(content.get("entries"), list):
        raise StoreUnavailable("Data file is malformed")
    return content


def parse_ledger(content: Any) -> Dict[str, Any]:
    """A missing ledger is a valid, empty one."""
    if content is None:
        return {"votes": {}}
    if not isinstance(content, dict):
        raise StoreUnavailable("Votes file is malformed")
    votes = content.get("votes")
    if votes is None:
        content["votes"] = {}
    elif not isinstance(votes, dict):
        raise StoreUnavailable("Votes file is malformed")
    return content


def find_entry(aggregate: Dict[str, Any], item_id: str) -> Optional[Dict[str, Any]]:
    for entry in aggregate["entries"]:
        if isinstance(entry, dict) and entry.get("id") == item_id:
            return entry
    return None


def vote_count(entry: Dict[str, Any]) -> int:
    count = entry.get("votes")
    if isinstance(count, bool) or not isinstance(count, int):
        return 0
    return max(0, count)


def voters(ledger: Dict[str, Any], item_id: str) -> Dict[str, Any]:
    bucket = ledger["votes"].get(item_id)
    return bucket if isinstance(bucket, dict) else {}


def has_voted(ledger: Dict[str, Any], item_id: str, identity: str) -> bool:
    return identity in voters(ledger, item_id)


def record_vote(ledger: Dict[str, Any], item_id: str, identity: str, cast_at: int) -> None:
    bucket = ledger["votes"].get(item_id)
    if not isinstance(bucket, dict):
        bucket = {}
        ledger["votes"][item_id] = bucket
    bucket[identity] = cast_at


def remove_vote(ledger: Dict[str, Any], item_id: str, identity: str) -> None:
    bucket = ledger["votes"].get(item_id)
    if isinstance(bucket, dict):
        bucket.pop(identity, None)
