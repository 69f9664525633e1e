"""Customer-product interaction matrix.

Aggregates raw transactions into purchase quantities per customer and
product. Malformed transactions are skipped with a warning instead of
aborting the whole build.
"""

import logging
from typing import Any, Dict, Iterable, List, Tuple

import numpy as np
from scipy.sparse import csr_matrix

from src.schemas import id_sort_key, lookup

# Configure module logger
logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("customer_id", "customerId", "user_id", "userId")
PRODUCT_FIELDS = ("product_id", "productId")
QUANTITY_FIELDS = ("quantity", "qty")


class InteractionMatrix:
    """Sparse mapping ``customer -> product -> quantity``.

    Rows are created on first write; absent entries read as zero.
    """

    def __init__(self):
        self._rows: Dict[Any, Dict[Any, float]] = {}
        self.warnings: List[str] = []

    def add(self, customer_id: Any, product_id: Any, quantity: float) -> None:
        row = self._rows.setdefault(customer_id, {})
        row[product_id] = row.get(product_id, 0.0) + quantity

    def get(self, customer_id: Any, product_id: Any) -> float:
        return self._rows.get(customer_id, {}).get(product_id, 0.0)

    def row(self, customer_id: Any) -> Dict[Any, float]:
        return dict(self._rows.get(customer_id, {}))

    def __contains__(self, customer_id: Any) -> bool:
        return customer_id in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def nnz(self) -> int:
        return sum(len(row) for row in self._rows.values())

    def customers(self) -> List[Any]:
        return sorted(self._rows, key=id_sort_key)

    def products(self) -> List[Any]:
        products = {pid for row in self._rows.values() for pid in row}
        return sorted(products, key=id_sort_key)

    def purchased(self, customer_id: Any) -> set:
        return {pid for pid, qty in self._rows.get(customer_id, {}).items() if qty > 0}

    def popularity(self) -> Dict[Any, float]:
        """Total quantity purchased per product across all customers."""
        totals: Dict[Any, float] = {}
        for row in self._rows.values():
            for pid, qty in row.items():
                totals[pid] = totals.get(pid, 0.0) + qty
        return totals

    def to_dict(self) -> Dict[Any, Dict[Any, float]]:
        return {cid: dict(row) for cid, row in self._rows.items()}

    def to_csr(self) -> Tuple[csr_matrix, Dict[Any, int], Dict[Any, int]]:
        """Convert to a CSR matrix with sorted id-to-index mappings.

        Returns:
            A tuple containing:
                - Sparse CSR matrix of shape (n_customers, n_products)
                - Dictionary mapping customer id to matrix row index
                - Dictionary mapping product id to matrix column index
        """
        customer_index = {cid: idx for idx, cid in enumerate(self.customers())}
        product_index = {pid: idx for idx, pid in enumerate(self.products())}

        rows, cols, data = [], [], []
        for cid, row in self._rows.items():
            for pid, qty in row.items():
                rows.append(customer_index[cid])
                cols.append(product_index[pid])
                data.append(qty)

        matrix = csr_matrix(
            (np.asarray(data, dtype=np.float64), (rows, cols)),
            shape=(len(customer_index), len(product_index)),
        )

        logger.debug(
            f"Interaction matrix shape: {matrix.shape}, non-zero entries: {matrix.nnz}"
        )
        return matrix, customer_index, product_index


def _parse_quantity(raw: Any) -> float:
    quantity = float(raw)
    if not np.isfinite(quantity) or quantity <= 0:
        raise ValueError(f"quantity must be positive, got {raw!r}")
    return quantity


def build_interaction_matrix(transactions: Iterable[Any]) -> InteractionMatrix:
    """Accumulate ``matrix[customer][product] += quantity`` over transactions.

    Never raises on bad records: a transaction missing its customer, product
    or quantity, or with a non-positive quantity, is skipped and the reason
    is logged and kept in ``matrix.warnings``.
    """
    matrix = InteractionMatrix()
    count = 0

    for position, transaction in enumerate(transactions):
        count += 1
        try:
            customer_id = lookup(transaction, *CUSTOMER_FIELDS)
            product_id = lookup(transaction, *PRODUCT_FIELDS)
            quantity = _parse_quantity(lookup(transaction, *QUANTITY_FIELDS))
        except KeyError as e:
            reason = f"transaction {position}: missing field '{e.args[0]}'"
        except (TypeError, ValueError) as e:
            reason = f"transaction {position}: invalid quantity ({e})"
        else:
            matrix.add(customer_id, product_id, quantity)
            continue

        logger.warning(f"Skipping {reason}")
        matrix.warnings.append(reason)

    logger.info(
        f"Built interaction matrix from {count} transactions: "
        f"{len(matrix)} customers, {matrix.nnz} entries, "
        f"{len(matrix.warnings)} skipped"
    )
    return matrix
