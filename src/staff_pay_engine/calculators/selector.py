"""Selection of billable (done, unpaid) work items."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable

from staff_pay_engine.calculators.types import WorkItem

logger = logging.getLogger(__name__)


class UnpaidWorkSelector:
    """Filters a work ledger snapshot down to eligible items.

    Eligible means ``status == "Done"`` and ``paid_state`` is neither "Paid"
    nor "Invoiced". Any other paid_state, blank included, counts as unpaid.
    Ledger order is preserved and nothing is mutated.
    """

    def select(
        self,
        items: Iterable[WorkItem],
        only_item_ids: Collection[int] | None = None,
    ) -> list[WorkItem]:
        """Return eligible items in ledger order.

        Args:
            items: Full ledger snapshot
            only_item_ids: Optional subset to restrict selection to (retries)
        """
        selected: list[WorkItem] = []
        total = 0

        for item in items:
            total += 1
            if only_item_ids is not None and item.item_id not in only_item_ids:
                continue
            if item.is_eligible:
                selected.append(item)
            else:
                logger.debug(
                    "Skipping item %s: status=%r paid_state=%r",
                    item.item_id,
                    item.status,
                    item.paid_state,
                )

        logger.debug("Selected %d of %d ledger rows", len(selected), total)
        return selected
