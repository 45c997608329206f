"""Fulfillment cardinality constraints as pure predicates.

Each predicate judges precomputed AssignmentCounts against a LimitPolicy
and knows nothing about persistence. The "already linked" guards make the
store fan-out and warehouse breadth limits apply to DISTINCT warehouses
and products: adding a second product under a warehouse that already
serves the store does not grow the store's warehouse count, and adding a
product that the warehouse already stores for another store does not grow
the warehouse's product count.
"""

from .errors import LimitExceededError
from .models import AssignmentCounts, LimitPolicy


def exceeds_product_store_fanout(counts: AssignmentCounts, policy: LimitPolicy) -> bool:
    """Constraint A: distinct warehouses per (product, store)."""
    return counts.warehouses_for_product_at_store >= policy.max_warehouses_per_product_per_store


def exceeds_store_fanout(counts: AssignmentCounts, policy: LimitPolicy) -> bool:
    """Constraint B: distinct warehouses per store."""
    if counts.warehouse_linked_to_store:
        return False
    return counts.warehouses_for_store >= policy.max_warehouses_per_store


def exceeds_warehouse_breadth(counts: AssignmentCounts, policy: LimitPolicy) -> bool:
    """Constraint C: distinct products per warehouse."""
    if counts.product_in_warehouse:
        return False
    return counts.products_in_warehouse >= policy.max_products_per_warehouse


def first_violation(
    counts: AssignmentCounts,
    policy: LimitPolicy,
    product_id: int,
    warehouse_code: str,
    store_id: int,
) -> LimitExceededError | None:
    """Return the first violated constraint in A, B, C order, or None."""
    if exceeds_product_store_fanout(counts, policy):
        limit = policy.max_warehouses_per_product_per_store
        return LimitExceededError(
            f"Product {product_id} is already fulfilled by {limit} warehouses "
            f"for store {store_id}. Maximum reached.",
            limit=limit,
            current=counts.warehouses_for_product_at_store,
            constraint="warehouses_per_product_per_store",
            product_id=product_id,
            store_id=store_id,
        )

    if exceeds_store_fanout(counts, policy):
        limit = policy.max_warehouses_per_store
        return LimitExceededError(
            f"Store {store_id} is already fulfilled by {limit} different "
            f"warehouses. Maximum reached.",
            limit=limit,
            current=counts.warehouses_for_store,
            constraint="warehouses_per_store",
            store_id=store_id,
        )

    if exceeds_warehouse_breadth(counts, policy):
        limit = policy.max_products_per_warehouse
        return LimitExceededError(
            f"Warehouse '{warehouse_code}' already stores {limit} different "
            f"products. Maximum reached.",
            limit=limit,
            current=counts.products_in_warehouse,
            constraint="products_per_warehouse",
            warehouse_code=warehouse_code,
        )

    return None
