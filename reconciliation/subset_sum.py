"""Subset-sum reconstruction of opaque lump sums.

Given an amount the insurer or the clinic reports under a generic glosa
(e.g. "GASTOS NO CUBIERTOS $51.356"), find which bill items add up to it.
A match proves arithmetically where the money came from.

Exposes:
- ArithmeticReconstructor(account).find_matches(target, category_hint) -> ReconstructionResult
- subset_sum_search(amounts, target, tolerance, max_nodes) -> Found | NotFound
"""

import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple, Union

from core.config import get_settings
from core.observability.logging import get_logger
from core.observability.metrics import record_processing_time, record_reconstruction
from models.canonical import BillingItem, BillSection, ExtractedAccount, ReconstructionResult
from reconciliation.families import is_compatible

logger = get_logger(__name__)


# =============================================================================
# Search
# =============================================================================

@dataclass(frozen=True)
class Found:
    """Positions (into the searched amounts) of the first subset that matched."""
    positions: Tuple[int, ...]
    nodes: int


@dataclass(frozen=True)
class NotFound:
    nodes: int
    exhausted: bool = False


SearchOutcome = Union[Found, NotFound]


def subset_sum_search(
    amounts: Sequence[int],
    target: int,
    tolerance: int,
    max_nodes: int,
) -> SearchOutcome:
    """Depth-first include/exclude search with an explicit stack.

    `amounts` must be sorted in descending order. The include branch is
    explored first and the search stops at the first subset whose sum is
    within `tolerance` of `target`. Every popped frame counts as one node;
    going over `max_nodes` stops the search as exhausted.
    """
    n = len(amounts)
    suffix_sums = [0] * (n + 1)
    for i in range(n - 1, -1, -1):
        suffix_sums[i] = suffix_sums[i + 1] + amounts[i]

    stack: List[Tuple[int, int, Tuple[int, ...]]] = [(0, 0, ())]
    nodes = 0

    while stack:
        idx, current, chosen = stack.pop()
        nodes += 1
        if nodes > max_nodes:
            return NotFound(nodes=max_nodes, exhausted=True)

        if abs(current - target) <= tolerance:
            return Found(positions=chosen, nodes=nodes)

        if idx == n:
            continue
        if current > target + tolerance:
            continue
        if current + suffix_sums[idx] < target - tolerance:
            continue

        # Pushed last, popped first: include before exclude
        stack.append((idx + 1, current, chosen))
        stack.append((idx + 1, current + amounts[idx], chosen + (idx,)))

    return NotFound(nodes=nodes)


# =============================================================================
# Reconstructor
# =============================================================================

AmountSelector = Callable[[BillingItem], int]

# Copayment first: it is what the patient actually paid.
STRATEGIES: Tuple[Tuple[str, AmountSelector], ...] = (
    ("copago", lambda item: item.copago or 0),
    ("total", lambda item: item.total),
)


class ArithmeticReconstructor:
    """Finds bill items composing a lump sum, never reusing an item.

    One instance per audit run: matched items are recorded in
    `used_item_ids` so later lump sums cannot claim them again.
    """

    def __init__(
        self,
        account: ExtractedAccount,
        used_item_ids: Optional[Set[str]] = None,
        tolerance: Optional[int] = None,
        max_nodes: Optional[int] = None,
    ):
        settings = get_settings()
        self.account = account
        self.used_item_ids: Set[str] = used_item_ids if used_item_ids is not None else set()
        self.tolerance = settings.amount_tolerance if tolerance is None else tolerance
        self.max_nodes = settings.max_search_nodes if max_nodes is None else max_nodes
        self._entries = list(account.iter_items())

    @classmethod
    def from_items(cls, items: Iterable[BillingItem], **kwargs) -> "ArithmeticReconstructor":
        """Build a reconstructor over a flat list of items (single unnamed section)."""
        account = ExtractedAccount(sections=[BillSection(items=list(items))])
        return cls(account, **kwargs)

    def _pool(
        self,
        selector: AmountSelector,
        category_hint: Optional[str],
    ) -> List[Tuple[str, BillingItem, int]]:
        pool = []
        for uid, section, item in self._entries:
            if uid in self.used_item_ids:
                continue
            amount = selector(item)
            if amount <= 0:
                continue
            if not is_compatible(category_hint, item.description, section):
                continue
            pool.append((uid, item, amount))
        # Stable: equal amounts keep document order
        pool.sort(key=lambda entry: entry[2], reverse=True)
        return pool

    def find_matches(self, target: int, category_hint: Optional[str] = None) -> ReconstructionResult:
        """Find unused, compatible items whose amounts sum to `target` within tolerance.

        Tries item copayments first, then item totals. Both passes share one
        node budget. On success the matched items are marked as used.
        """
        if target <= self.tolerance:
            # The empty subset already lands within tolerance, whatever the pool holds
            rationale = (
                "Nothing to reconstruct" if target <= 0
                else f"Target {target} within tolerance {self.tolerance}, nothing to match"
            )
            return ReconstructionResult(success=True, unmatched_amount=0, rationale=rationale)

        started = time.perf_counter()
        nodes_used = 0
        exhausted = False

        for strategy, selector in STRATEGIES:
            pool = self._pool(selector, category_hint)
            if not pool:
                continue

            budget = self.max_nodes - nodes_used
            if budget <= 0:
                exhausted = True
                break

            outcome = subset_sum_search([amount for _, _, amount in pool], target, self.tolerance, budget)
            nodes_used += outcome.nodes

            if isinstance(outcome, Found):
                matched = [pool[pos] for pos in outcome.positions]
                matched_ids = [uid for uid, _, _ in matched]
                self.used_item_ids.update(matched_ids)
                matched_sum = sum(amount for _, _, amount in matched)

                record_reconstruction(success=True, nodes=nodes_used, strategy=strategy)
                record_processing_time("reconstruction", (time.perf_counter() - started) * 1000)
                logger.info(
                    "Lump sum reconstructed",
                    extra_fields={
                        "target": target,
                        "strategy": strategy,
                        "items": len(matched),
                        "nodes": nodes_used,
                    },
                )
                return ReconstructionResult(
                    matched_items=[item for _, item, _ in matched],
                    matched_item_ids=matched_ids,
                    unmatched_amount=0,
                    success=True,
                    strategy=strategy,
                    nodes_visited=nodes_used,
                    rationale=(
                        f"{len(matched)} item(s) by {strategy} sum {matched_sum} "
                        f"for target {target} (tolerance {self.tolerance})"
                    ),
                )

            if outcome.exhausted:
                exhausted = True
                break

        record_reconstruction(success=False, nodes=nodes_used, exhausted=exhausted)
        record_processing_time("reconstruction", (time.perf_counter() - started) * 1000)
        if exhausted:
            logger.warning(
                "Search budget exhausted",
                extra_fields={"target": target, "max_nodes": self.max_nodes},
            )
        else:
            logger.debug("No subset matches target", extra_fields={"target": target, "nodes": nodes_used})

        return ReconstructionResult(
            unmatched_amount=target,
            success=False,
            nodes_visited=nodes_used,
            exhausted=exhausted,
            rationale="Search budget exhausted" if exhausted else "No combination of items matches the amount",
        )
