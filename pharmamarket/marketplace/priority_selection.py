from __future__ import annotations

from typing import Iterable, Tuple

from pharmamarket.errors import QuotaExceeded, SelectionRequired, ValidationError
from pharmamarket.marketplace.offers import Offer


def validate_priority_selection(
    offer: Offer,
    selection: Iterable[str] | None,
    *,
    without_priority: bool = False,
) -> Tuple[str, ...]:
    """Check a buyer's priority picks and return them in submission order.

    ``without_priority`` is the explicit "order without priority product"
    path; it is never implied by an empty selection.
    """
    picked = tuple(str(product_id or "").strip() for product_id in (selection or ()))

    if without_priority:
        if picked:
            raise ValidationError(code="selection_conflict")
        return ()

    if len(set(picked)) != len(picked):
        duplicates = sorted({product_id for product_id in picked if picked.count(product_id) > 1})
        raise ValidationError(code="selection_duplicate", payload={"product_ids": duplicates})

    known = offer.priority_items_by_product()
    unknown = [product_id for product_id in picked if product_id not in known]
    if unknown:
        raise ValidationError(code="selection_unknown_product", payload={"product_ids": unknown})

    quota = offer.effective_quota
    if quota is not None and len(picked) > quota:
        raise QuotaExceeded(payload={"max_quota_selections": quota, "selected": len(picked)})

    if offer.has_priority_items and not picked:
        raise SelectionRequired(payload={"priority_product_ids": sorted(known)})

    return picked
