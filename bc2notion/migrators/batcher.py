"""
Packing of sanitized blocks into Notion append requests.

Notion enforces three independent limits on ``PATCH
/v1/blocks/{id}/children``: the number of blocks per call, the size of
the request body and the number of children one block may carry.
:func:`plan_batches` satisfies all three:

a. a block with more children than ``max_children`` is replaced by
   several copies of itself, each holding one slice of the children
   (applied at every depth);
b. blocks are packed greedily, a batch being closed as soon as the next
   block would overflow the byte estimate or the block count.  A block is
   never split; a single block larger than ``max_bytes`` travels alone in
   a batch flagged ``oversized``;
c. any batch still above ``max_blocks`` is sliced by count.

Batches keep the original block order and must be delivered in order.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Optional

from bc2notion.models.batch import Batch
from bc2notion.parsers.notion_schema import (
    MAX_BLOCKS_PER_REQUEST,
    MAX_CHILDREN_PER_BLOCK,
    MAX_PAYLOAD_BYTES,
    children_of,
    set_children,
)
from bc2notion.utils.logs import log_message, preview

Block = Dict[str, Any]


class BatchDeliveryError(RuntimeError):
    """An append call failed for one batch; carries what is needed to find it."""

    def __init__(self, batch: Batch, cause: BaseException, context: str = "") -> None:
        self.batch = batch
        self.cause = cause
        self.context = context
        first = batch.blocks[0] if batch.blocks else None
        self.first_block_preview = preview(json.dumps(first, ensure_ascii=False), 500) if first else ""
        super().__init__(
            f"batch {batch.index + 1} ({batch.size} blocks, ~{batch.estimated_bytes} bytes"
            f"{', oversized' if batch.oversized else ''}) failed for {batch.target_id or '?'}"
            f"{f' ({context})' if context else ''}: {cause}"
        )


def estimate_bytes(value: Any) -> int:
    """Size of ``value`` serialized as compact UTF-8 JSON."""
    return len(json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


def split_wide_blocks(blocks: List[Block], max_children: int = MAX_CHILDREN_PER_BLOCK) -> List[Block]:
    out: List[Block] = []
    for b in blocks:
        children = children_of(b)
        if not children:
            out.append(b)
            continue
        children = split_wide_blocks(children, max_children)
        if len(children) <= max_children:
            out.append(set_children(b, children))
            continue
        log_message(
            f"[Batcher] Splitting {b.get('type')} block with {len(children)} children "
            f"into {-(-len(children) // max_children)} siblings",
            "DEBUG",
        )
        shell = copy.deepcopy(set_children(b, []))
        for start in range(0, len(children), max_children):
            copy_block = copy.deepcopy(shell)
            out.append(set_children(copy_block, children[start:start + max_children]))
    return out


def _close(batches: List[Batch], blocks: List[Block], size: int, target_id: Optional[str], max_bytes: int) -> None:
    if blocks:
        batches.append(
            Batch(
                index=len(batches),
                blocks=blocks,
                target_id=target_id,
                estimated_bytes=size,
                oversized=len(blocks) == 1 and size > max_bytes,
            )
        )


def plan_batches(
    blocks: List[Block],
    *,
    target_id: Optional[str] = None,
    max_blocks: int = MAX_BLOCKS_PER_REQUEST,
    max_bytes: int = MAX_PAYLOAD_BYTES,
    max_children: int = MAX_CHILDREN_PER_BLOCK,
) -> List[Batch]:
    blocks = split_wide_blocks(blocks, max_children)

    packed: List[Batch] = []
    current: List[Block] = []
    current_size = 0
    for b in blocks:
        size = estimate_bytes(b)
        if current and (current_size + size > max_bytes or len(current) >= max_blocks):
            _close(packed, current, current_size, target_id, max_bytes)
            current, current_size = [], 0
        current.append(b)
        current_size += size
    _close(packed, current, current_size, target_id, max_bytes)

    batches: List[Batch] = []
    for batch in packed:
        if batch.size <= max_blocks:
            batches.append(batch.model_copy(update={"index": len(batches)}))
            continue
        for start in range(0, batch.size, max_blocks):
            part = batch.blocks[start:start + max_blocks]
            batches.append(
                Batch(index=len(batches), blocks=part, target_id=target_id,
                      estimated_bytes=sum(estimate_bytes(p) for p in part))
            )

    for batch in batches:
        if batch.oversized:
            log_message(
                f"[Batcher] Block of ~{batch.estimated_bytes} bytes exceeds the {max_bytes} byte target; "
                f"sending it alone (batch {batch.index + 1})",
                "WARNING",
            )
    return batches
