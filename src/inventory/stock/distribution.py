"""Stock distribution across active stores.

A quantity is split as evenly as possible: every store gets the integer base
share and the first ``remainder`` stores, in store-code order, get one more.
Redistribution keeps every copy already reserved where it is and spreads only
the rest.
"""

from inventory.shared.errors import InsufficientStockError, ValidationError


class StockDistributor:
    @staticmethod
    def distribute(total: int, store_count: int) -> list[int]:
        """Split ``total`` over ``store_count`` stores.

        >>> StockDistributor.distribute(10, 3)
        [4, 3, 3]
        """
        if total is None or total < 0:
            raise ValidationError({"total": ["Total must be zero or more"]})
        if store_count is None or store_count < 1:
            raise ValidationError({"store_count": ["At least one store is required"]})

        base, remainder = divmod(total, store_count)
        return [base + 1 if index < remainder else base for index in range(store_count)]

    @classmethod
    def plan_redistribution(cls, records, new_total: int) -> list[int]:
        """Target available stock for each record, in the given order.

        ``records`` must already be in store-code order. Reserved copies stay
        on their record; the new total must at least cover them.
        """
        if not records:
            raise ValidationError({"records": ["No inventory records to redistribute over"]})
        if new_total is None or new_total < 0:
            raise ValidationError({"new_total": ["Total must be zero or more"]})

        reserved = sum(record.stock_reserved for record in records)
        if new_total < reserved:
            raise InsufficientStockError(
                {"new_total": [f"New total {new_total} is below the {reserved} copies currently reserved"]}
            )

        return cls.distribute(new_total - reserved, len(records))
