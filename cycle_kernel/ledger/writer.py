"""Queue header-addressed ledger rows, laid out in the stored header's order."""

from typing import Any, Dict, List, Sequence

from cycle_kernel.intents.queue import queue_batch_append, queue_batch_log
from cycle_kernel.ledger.schema import HeaderIndex
from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.intent import WriteIntent


def header_for(
    ctx: ExecutionContext, collection: str, default_header: Sequence[str]
) -> HeaderIndex:
    """The stored header if the scan saw one, else the default layout."""
    header = ctx.collection_headers.get(collection)
    return HeaderIndex(header if header else default_header)


def queue_ledger_rows(
    ctx: ExecutionContext,
    collection: str,
    default_header: Sequence[str],
    records: Sequence[Dict[str, Any]],
    reason: str,
    domain: str,
    log: bool = False,
) -> WriteIntent:
    """
    Queue one append intent carrying `records`.

    A collection that did not exist at the start-of-cycle scan gets its
    header row in front of the first batch, so the new collection is
    header-addressed from row 1.
    """
    index = header_for(ctx, collection, default_header)
    rows: List[List[Any]] = [index.encode(r) for r in records]

    if not ctx.collection_headers.get(collection):
        rows.insert(0, list(index.header))
        ctx.collection_headers[collection] = list(index.header)
        ctx.existing_collections.add(collection)

    if log:
        return queue_batch_log(ctx, collection, rows, reason=reason)
    return queue_batch_append(ctx, collection, rows, reason=reason, domain=domain)
