"""
Item entry drafts - shared quantity handling for the stock-in, stock-out and defect forms
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from defect_status import normalize_defect_type
from quantity_engine import (
    PackagingStructure,
    QuantityConversionEngine,
    QuantityRequest,
    QuantityResult,
    StockSnapshot,
    STOCK_CHECKED_CONTEXTS,
    TransactionContext,
    Unit,
    InvalidStockSnapshotError,
    validate_packaging,
)

logger = logging.getLogger(__name__)


class SubmissionBlockedError(Exception):
    """Draft cannot be submitted yet"""
    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        self.message = errors[0]["message"] if errors else "Submission blocked"
        super().__init__(self.message)


def _form_error(error_code: str, message: str, field: Optional[str] = None) -> Dict[str, Any]:
    return {
        "error_code": error_code,
        "error_type": "SubmissionBlockedError",
        "message": message,
        "field": field,
        "severity": "HARD_ERROR",
    }


# ==================== RECORD PARSERS ====================

def packaging_from_record(record: Mapping[str, Any]) -> PackagingStructure:
    """
    Packaging ratios from a barcode scan (unit_conversion block) or a stock-in item.

    Raises:
        InvalidPackagingStructureError: If the record carries no usable ratios
    """
    source = record.get("unit_conversion") or record
    pieces_per_pack = source.get("pieces_per_pack")
    packs_per_box = source.get("packs_per_box")
    validate_packaging(pieces_per_pack, packs_per_box)
    return PackagingStructure(pieces_per_pack=pieces_per_pack, packs_per_box=packs_per_box)


def stock_figure(record: Mapping[str, Any]) -> Any:
    """Current stock in pieces carried on the record itself, if any."""
    scan_info = record.get("scan_info") or {}
    return scan_info.get("total_pieces_in_stock", record.get("current_stock_pieces"))


def product_id_from_record(record: Mapping[str, Any]) -> Any:
    product = record.get("product") or {}
    return product.get("id", record.get("product_id"))


def stock_from_record(record: Mapping[str, Any], current_stock_pieces: Any = None) -> StockSnapshot:
    """
    Stock snapshot from a barcode scan (scan_info block) or a stock-in item.

    current_stock_pieces, typically from the current-stock report, is used
    when the record carries no figure. A missing stock figure is an error,
    never zero.
    """
    pieces = stock_figure(record)
    if pieces is None:
        pieces = current_stock_pieces
    if pieces is None:
        raise InvalidStockSnapshotError(None, reason="The record does not include current stock in pieces.")
    return StockSnapshot(
        product_id=product_id_from_record(record),
        current_stock_pieces=pieces
    )


def unit_from_scan(record: Mapping[str, Any]) -> Unit:
    """Unit implied by the scanned barcode (piece, pack or box barcode)."""
    scan_info = record.get("scan_info") or {}
    detected = scan_info.get("detected_unit_type")
    return Unit(
        id=scan_info.get("scanned_barcode") or "scan",
        name=str(detected or ""),
        kind=detected
    )


def price_from_record(record: Mapping[str, Any]) -> Optional[Union[int, float]]:
    """Default price from the product master."""
    product = record.get("product") or {}
    return product.get("price")


# ==================== DRAFT ====================

class QuantityDraft:
    """
    One entry form's local state.

    Every change recomputes the result from scratch. Selecting another
    product drops everything derived from the previous one.
    """

    def __init__(
        self,
        transaction_context: Union[TransactionContext, str],
        engine: Optional[QuantityConversionEngine] = None
    ):
        self.transaction_context = TransactionContext(transaction_context)
        self.engine = engine or QuantityConversionEngine()
        self.product_ref: Optional[str] = None
        self.packaging: Optional[PackagingStructure] = None
        self.stock: Optional[StockSnapshot] = None
        self.unit: Optional[Unit] = None
        self.quantity: Any = 1
        self.price_per_unit: Any = None
        self.packaging_override: Optional[PackagingStructure] = None
        self.actual_pieces: Any = None
        self.result: Optional[QuantityResult] = None

    def select_product(
        self,
        packaging: PackagingStructure,
        stock: Optional[StockSnapshot] = None,
        unit: Optional[Union[Unit, Mapping[str, Any]]] = None,
        product_ref: Optional[str] = None,
        price_per_unit: Any = None
    ) -> Optional[QuantityResult]:
        self.result = None
        self.product_ref = product_ref
        logger.debug(f"{self.transaction_context.value} draft switched to product {product_ref}")
        self.packaging = packaging
        self.stock = stock
        self.unit = self._as_unit(unit)
        self.quantity = 1
        self.price_per_unit = price_per_unit
        self.packaging_override = None
        self.actual_pieces = None
        return self.recompute()

    def select_unit(self, unit: Union[Unit, Mapping[str, Any], None]) -> Optional[QuantityResult]:
        self.unit = self._as_unit(unit)
        return self.recompute()

    def set_quantity(self, quantity: Any) -> Optional[QuantityResult]:
        self.quantity = quantity
        return self.recompute()

    def set_price(self, price_per_unit: Any) -> Optional[QuantityResult]:
        self.price_per_unit = price_per_unit
        return self.recompute()

    def set_packaging_override(self, pieces_per_pack: Any = None, packs_per_box: Any = None) -> Optional[QuantityResult]:
        """Custom conversion for this line; call with no arguments to go back to the lot's ratios."""
        if pieces_per_pack is None and packs_per_box is None:
            self.packaging_override = None
        else:
            # A ratio left blank keeps the lot's value
            if self.packaging is not None:
                if pieces_per_pack is None:
                    pieces_per_pack = self.packaging.pieces_per_pack
                if packs_per_box is None:
                    packs_per_box = self.packaging.packs_per_box
            self.packaging_override = PackagingStructure.model_construct(
                pieces_per_pack=pieces_per_pack,
                packs_per_box=packs_per_box
            )
        return self.recompute()

    def set_actual_pieces(self, actual_pieces: Any) -> Optional[QuantityResult]:
        self.actual_pieces = actual_pieces
        return self.recompute()

    @staticmethod
    def _as_unit(unit: Union[Unit, Mapping[str, Any], None]) -> Optional[Unit]:
        if unit is None or isinstance(unit, Unit):
            return unit
        return Unit.model_validate(unit)

    @property
    def is_ready(self) -> bool:
        """Inputs the engine needs have all been loaded."""
        if self.unit is None or self.packaging is None:
            return False
        if self.transaction_context in STOCK_CHECKED_CONTEXTS and self.stock is None:
            return False
        return True

    def recompute(self) -> Optional[QuantityResult]:
        self.result = None
        if not self.is_ready:
            return None
        # Raw form values; the engine reports bad input as typed errors
        request = QuantityRequest.model_construct(
            unit=self.unit,
            quantity=self.quantity,
            transaction_context=self.transaction_context,
            price_per_unit=self.price_per_unit,
            packaging_override=self.packaging_override,
            actual_pieces=self.actual_pieces
        )
        self.result = self.engine.evaluate(request, self.packaging, self.stock)
        return self.result

    @property
    def can_submit(self) -> bool:
        return self.result is not None and self.result.is_success

    def require_result(self) -> QuantityResult:
        """
        Successful result for submission.

        Raises:
            SubmissionBlockedError: Draft incomplete or engine reported errors
        """
        if self.result is None:
            raise SubmissionBlockedError([
                _form_error("INCOMPLETE_DRAFT", "Please select a product and unit first", "unit_id")
            ])
        if not self.result.is_success:
            raise SubmissionBlockedError(self.result.errors)
        return self.result


# ==================== SUBMISSION PAYLOADS ====================

def _require_positive_price(draft: QuantityDraft) -> None:
    price = draft.price_per_unit
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
        raise SubmissionBlockedError([
            _form_error("INVALID_PRICE", "Please enter a valid price", "price_per_unit")
        ])


def stock_in_item_payload(
    draft: QuantityDraft,
    barcode: str,
    warehouse_id: Optional[str],
    container_id: Optional[str],
    rack_id: Optional[str]
) -> Dict[str, Any]:
    """Body for adding a scanned item to a stock-in."""
    draft.require_result()
    _require_positive_price(draft)
    if not (warehouse_id and container_id and rack_id):
        raise SubmissionBlockedError([
            _form_error("MISSING_LOCATION", "Please select storage location", "rack_id")
        ])
    return {
        "barcode": barcode,
        "quantity": draft.quantity,
        "price_per_unit": draft.price_per_unit,
        "warehouse_id": warehouse_id,
        "container_id": container_id,
        "rack_id": rack_id,
    }


def stock_out_item_payload(draft: QuantityDraft, barcode: str) -> Dict[str, Any]:
    """Body for adding a scanned item to a stock-out, with optional override and actual pieces."""
    result = draft.require_result()
    _require_positive_price(draft)
    payload = {
        "barcode": barcode,
        "requested_quantity": draft.quantity,
        "price_per_unit": draft.price_per_unit,
    }
    if draft.actual_pieces is not None:
        payload["actual_pieces"] = result.total_pieces
    if draft.packaging_override is not None:
        payload["pieces_per_pack"] = result.packaging_used.pieces_per_pack
        payload["packs_per_box"] = result.packaging_used.packs_per_box
    return payload


def defect_report_payload(
    draft: QuantityDraft,
    stock_in_item_id: str,
    unit_id: Any,
    defect_type: Optional[str],
    defect_description: Optional[str] = None
) -> Dict[str, Any]:
    """Body for reporting a defect against a stock-in item."""
    draft.require_result()
    try:
        parsed_type = normalize_defect_type(defect_type)
    except ValueError as e:
        raise SubmissionBlockedError([_form_error("INVALID_DEFECT_TYPE", str(e), "defect_type")])
    payload = {
        "stock_in_item_id": stock_in_item_id,
        "unit_id": unit_id,
        "quantity": draft.quantity,
        "defect_type": parsed_type.value,
    }
    if defect_description:
        payload["defect_description"] = defect_description
    return payload
