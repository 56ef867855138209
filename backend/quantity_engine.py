# backend/quantity_engine.py

"""
Quantity Conversion Engine - Stock-Critical Component

This engine is responsible for:
- Unit classification (piece / pack / box) from unit records
- Packaging structure validation (pieces per pack, packs per box)
- Total-pieces derivation for a requested unit + quantity
- Max-quantity derivation from a stock snapshot
- Advisory stock validation for stock-out and defect entry
- Monetary totals in whole Rupiah
- Conversion audit trail

This engine MUST NOT:
- Fetch anything over the network
- Modify stock
- Guess a multiplier for a unit it cannot classify
- Clamp, round away or hide bad input

GLOBAL INVARIANTS (ENFORCED):
1) pieces_per_pack >= 1 and packs_per_box >= 1, checked before any arithmetic
2) total_pieces is always a non-negative whole number
3) Unknown unit kind -> HARD ERROR, never multiplier 1
4) Stock-out and defect: total_pieces <= current_stock_pieces before submission
5) Price is per selected unit, never converted through packaging factors
6) Every calculation is pure and recomputed from scratch

STOCK SAFETY:
- The client-side check is advisory, the backend is authoritative
- Errors are explicit results or typed exceptions, never NaN or negatives
"""

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

ENGINE_VERSION = "1.0.0"

# ==================== ENUMS ====================

class UnitKind(str, Enum):
    """Semantic kind of a unit of measure"""
    PIECE = "piece"
    PACK = "pack"
    BOX = "box"
    UNKNOWN = "unknown"


class TransactionContext(str, Enum):
    """Call sites that share the engine"""
    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"
    DEFECT = "DEFECT"


class ClassificationSource(str, Enum):
    """Where a unit kind came from"""
    EXPLICIT = "EXPLICIT"
    NAME_MATCH = "NAME_MATCH"


class ResultStatus(str, Enum):
    """Evaluation result status"""
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


# Contexts where the request is checked against the stock snapshot
STOCK_CHECKED_CONTEXTS = {TransactionContext.STOCK_OUT, TransactionContext.DEFECT}

# Contexts where the operator may override packaging or enter actual pieces
OVERRIDE_CONTEXTS = {TransactionContext.STOCK_OUT}

# ==================== UNIT KEYWORDS ====================

# Case-insensitive substrings; "dus" is the local word for box
UNIT_KEYWORDS: Dict[UnitKind, Tuple[str, ...]] = {
    UnitKind.BOX: ("box", "dus"),
    UnitKind.PACK: ("pack",),
    UnitKind.PIECE: ("piece", "pcs"),
}

# First match wins
CLASSIFICATION_ORDER: Tuple[UnitKind, ...] = (UnitKind.BOX, UnitKind.PACK, UnitKind.PIECE)

# Whole Rupiah, no fractional subunits
CURRENCY_DECIMAL_PLACES = 0

# ==================== ERROR CLASSES ====================

class QuantityError(Exception):
    """Base quantity calculation error"""
    def __init__(self, error_code: str, message: str, field: Optional[str] = None, severity: str = "HARD_ERROR"):
        self.error_code = error_code
        self.message = message
        self.field = field
        self.severity = severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "error_type": type(self).__name__,
            "message": self.message,
            "field": self.field,
            "severity": self.severity,
        }


class InvalidPackagingStructureError(QuantityError):
    """Pieces per pack / packs per box missing, non-integer or below 1"""
    def __init__(self, field: str, value: Any, reason: Optional[str] = None):
        self.value = value
        super().__init__(
            "INVALID_PACKAGING_STRUCTURE",
            reason or f"'{field}' must be a whole number of at least 1. Received: {value!r}",
            field=field,
            severity="HARD_ERROR"
        )


class UnresolvedUnitError(QuantityError):
    """Unit kind could not be classified"""
    def __init__(self, unit_label: str):
        self.unit_label = unit_label
        super().__init__(
            "UNRESOLVED_UNIT",
            f"Unit '{unit_label}' could not be classified as piece, pack or box. "
            f"Select a recognised unit before submitting.",
            field="unit_id",
            severity="HARD_ERROR"
        )


class InsufficientStockError(QuantityError):
    """Requested quantity exceeds what the stock snapshot allows"""
    def __init__(self, requested_quantity: Any, max_quantity: int, unit_kind: UnitKind = UnitKind.PIECE):
        self.requested_quantity = requested_quantity
        self.max_quantity = max_quantity
        self.unit_kind = UnitKind(unit_kind)
        super().__init__(
            "INSUFFICIENT_STOCK",
            f"Requested {requested_quantity} {self.unit_kind.value}(s) but the maximum available is "
            f"{max_quantity} {self.unit_kind.value}(s).",
            field="quantity",
            severity="RECOVERABLE"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["max_quantity"] = self.max_quantity
        data["max_quantity_unit"] = self.unit_kind.value
        return data


class InvalidQuantityError(QuantityError):
    """Quantity must be a positive whole number"""
    def __init__(self, quantity: Any, field: str = "quantity", reason: Optional[str] = None):
        self.quantity = quantity
        super().__init__(
            "INVALID_QUANTITY",
            reason or f"Quantity must be a positive whole number. Received: {quantity!r}",
            field=field,
            severity="HARD_ERROR"
        )


class InvalidPriceError(QuantityError):
    """Price per unit must be a finite, non-negative number"""
    def __init__(self, price: Any):
        self.price = price
        super().__init__(
            "INVALID_PRICE",
            f"Price per unit must be a non-negative number. Received: {price!r}",
            field="price_per_unit",
            severity="HARD_ERROR"
        )


class InvalidStockSnapshotError(QuantityError):
    """Stock snapshot missing or not a non-negative whole number"""
    def __init__(self, value: Any, reason: Optional[str] = None):
        self.value = value
        super().__init__(
            "INVALID_STOCK_SNAPSHOT",
            reason or f"Current stock must be a non-negative whole number of pieces. Received: {value!r}",
            field="current_stock_pieces",
            severity="HARD_ERROR"
        )


# ==================== DATA MODELS ====================

class Unit(BaseModel):
    """Unit of measure reference data"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Union[str, int] = Field(validation_alias=AliasChoices("id", "unit_id"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "unit_name"))
    abbreviation: str = Field(default="", validation_alias=AliasChoices("abbreviation", "unit_code", "abbr"))
    # Structured kind when the backend provides one (e.g. detected_unit_type on a barcode scan)
    kind: Optional[UnitKind] = Field(
        default=None,
        validation_alias=AliasChoices("kind", "unit_kind", "unit_type", "detected_unit_type")
    )

    @field_validator("name", "abbreviation", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("kind", mode="before")
    @classmethod
    def unrecognised_kind_as_none(cls, value: Any) -> Any:
        # Anything other than piece/pack/box falls back to name matching
        if isinstance(value, str):
            value = value.strip().lower()
            return value if value in {k.value for k in UnitKind} else None
        return value

    @property
    def label(self) -> str:
        return self.name or self.abbreviation or str(self.id)


class UnitClassification(BaseModel):
    """Outcome of classifying a unit"""
    kind: UnitKind
    source: ClassificationSource
    matched_kinds: List[UnitKind] = []
    ambiguous: bool = False


class PackagingStructure(BaseModel):
    """Per-lot packaging ratios, fixed for the life of a stock-in item"""
    model_config = ConfigDict(frozen=True)

    # Unconstrained here; validate_packaging raises InvalidPackagingStructureError
    pieces_per_pack: Union[int, float]
    packs_per_box: Union[int, float]

    @property
    def total_pieces_per_box(self) -> Union[int, float]:
        return self.pieces_per_pack * self.packs_per_box


class StockSnapshot(BaseModel):
    """Last fetched available stock, in pieces"""
    product_id: Optional[Union[str, int]] = None
    current_stock_pieces: Union[int, float]
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QuantityRequest(BaseModel):
    """Engine input contract"""
    unit: Unit
    quantity: Optional[Union[int, float]]
    transaction_context: TransactionContext
    price_per_unit: Optional[Union[int, float]] = None
    # Stock-out only
    packaging_override: Optional[PackagingStructure] = None
    actual_pieces: Optional[Union[int, float]] = None
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConversionStep(BaseModel):
    """Single conversion step in audit trail"""
    step_number: int
    from_unit: UnitKind
    from_qty: int
    to_unit: UnitKind
    to_qty: int
    conversion_factor: Optional[int] = None
    factor_source: str  # "IDENTITY" | "PIECES_PER_PACK" | "PACKS_PER_BOX" | "ACTUAL_PIECES"
    calculation_formula: str


class QuantityWarning(BaseModel):
    """Calculation warning (non-blocking)"""
    warning_code: str
    message: str
    field: Optional[str] = None
    recommendation: Optional[str] = None


class QuantityResult(BaseModel):
    """Engine output contract"""
    transaction_context: TransactionContext
    unit_kind: UnitKind
    quantity: Optional[Union[int, float]]

    # Derived values
    total_pieces: Optional[int] = None
    total_amount: Optional[int] = None
    price_per_unit: Optional[Union[int, float]] = None
    max_quantity: Optional[int] = None
    max_quantity_unit: Optional[UnitKind] = None
    current_stock_pieces: Optional[int] = None
    remaining_stock_pieces: Optional[int] = None

    # Inputs actually used
    packaging_used: Optional[PackagingStructure] = None
    classification: Optional[UnitClassification] = None

    # Audit trail
    conversion_breakdown: List[ConversionStep] = []

    # Status
    status: ResultStatus
    errors: List[Dict[str, Any]] = []
    warnings: List[QuantityWarning] = []

    # Metadata
    calculated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    calculation_version: str = ENGINE_VERSION

    @property
    def is_success(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    def to_payload(self) -> Dict[str, Any]:
        """Compact form consumed by the entry forms."""
        if self.is_success:
            return {"total_pieces": self.total_pieces, "total_amount": self.total_amount}
        error = self.errors[0]
        payload: Dict[str, Any] = {"error": error["error_type"]}
        if error.get("max_quantity") is not None:
            payload["max_quantity"] = error["max_quantity"]
        return payload


# ==================== INPUT GUARDS ====================

def _as_whole_number(value: Any) -> Optional[int]:
    """Return value as int when it is a finite whole number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    return value


def _reportable(value: Any) -> Optional[Union[int, float]]:
    """Echo a raw input back in a result only when it is a finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def validate_packaging(pieces_per_pack: Any, packs_per_box: Any) -> Tuple[int, int]:
    """
    Validate a packaging structure before any arithmetic.

    Returns:
        (pieces_per_pack, packs_per_box) as ints

    Raises:
        InvalidPackagingStructureError: If either ratio is missing, non-integer or < 1
    """
    checked = []
    for field, value in (("pieces_per_pack", pieces_per_pack), ("packs_per_box", packs_per_box)):
        whole = _as_whole_number(value)
        if whole is None or whole < 1:
            raise InvalidPackagingStructureError(field, value)
        checked.append(whole)
    return checked[0], checked[1]


def _require_quantity(quantity: Any, field: str = "quantity") -> int:
    whole = _as_whole_number(quantity)
    if whole is None or whole <= 0:
        raise InvalidQuantityError(quantity, field=field)
    return whole


def _require_stock(current_stock_pieces: Any) -> int:
    whole = _as_whole_number(current_stock_pieces)
    if whole is None or whole < 0:
        raise InvalidStockSnapshotError(current_stock_pieces)
    return whole


def _require_price(price_per_unit: Any) -> Decimal:
    if isinstance(price_per_unit, bool) or not isinstance(price_per_unit, (int, float)):
        raise InvalidPriceError(price_per_unit)
    if isinstance(price_per_unit, float) and not math.isfinite(price_per_unit):
        raise InvalidPriceError(price_per_unit)
    if price_per_unit < 0:
        raise InvalidPriceError(price_per_unit)
    return Decimal(str(price_per_unit))


# ==================== UNIT CLASSIFICATION ====================

def classify_unit_details(unit: Union[Unit, Mapping[str, Any]]) -> UnitClassification:
    """
    Classify a unit by its semantic kind.

    An explicit kind on the record wins. Otherwise the name and abbreviation
    are matched case-insensitively against UNIT_KEYWORDS in the order
    box > pack > piece. Records matching more than one kind are flagged as
    ambiguous and logged for review.
    """
    if not isinstance(unit, Unit):
        unit = Unit.model_validate(unit)

    if unit.kind is not None and unit.kind != UnitKind.UNKNOWN:
        return UnitClassification(kind=unit.kind, source=ClassificationSource.EXPLICIT, matched_kinds=[unit.kind])

    texts = (unit.name.lower(), unit.abbreviation.lower())
    matched = [
        kind for kind in CLASSIFICATION_ORDER
        if any(keyword in text for keyword in UNIT_KEYWORDS[kind] for text in texts)
    ]

    if not matched:
        logger.warning(f"Unit '{unit.label}' (id={unit.id}) does not match any known unit kind")
        return UnitClassification(kind=UnitKind.UNKNOWN, source=ClassificationSource.NAME_MATCH)

    ambiguous = len(matched) > 1
    if ambiguous:
        logger.warning(
            f"Unit '{unit.label}' (id={unit.id}) matches several unit kinds "
            f"{[k.value for k in matched]}; using '{matched[0].value}'"
        )
    return UnitClassification(
        kind=matched[0],
        source=ClassificationSource.NAME_MATCH,
        matched_kinds=matched,
        ambiguous=ambiguous
    )


def classify_unit(unit: Union[Unit, Mapping[str, Any]]) -> UnitKind:
    """Return piece, pack, box or unknown for a unit record."""
    return classify_unit_details(unit).kind


# ==================== CALCULATIONS ====================

def unit_multiplier(unit_kind: Union[UnitKind, str], pieces_per_pack: int, packs_per_box: int) -> int:
    """Pieces contained in one unit of the given kind."""
    kind = UnitKind(unit_kind)
    if kind == UnitKind.PIECE:
        return 1
    if kind == UnitKind.PACK:
        return pieces_per_pack
    if kind == UnitKind.BOX:
        return pieces_per_pack * packs_per_box
    raise UnresolvedUnitError(kind.value)


def total_pieces(
    unit_kind: Union[UnitKind, str],
    quantity: Any,
    pieces_per_pack: Any,
    packs_per_box: Any
) -> int:
    """
    Convert a quantity in the selected unit to base-unit pieces.

    piece -> quantity
    pack  -> quantity × pieces_per_pack
    box   -> quantity × packs_per_box × pieces_per_pack

    Raises:
        InvalidPackagingStructureError: Checked first, before any arithmetic
        UnresolvedUnitError: For unknown unit kind
        InvalidQuantityError: If quantity is not a positive whole number
    """
    ppp, ppb = validate_packaging(pieces_per_pack, packs_per_box)
    kind = UnitKind(unit_kind)
    if kind == UnitKind.UNKNOWN:
        raise UnresolvedUnitError(kind.value)
    qty = _require_quantity(quantity)
    return qty * unit_multiplier(kind, ppp, ppb)


def max_quantity(
    unit_kind: Union[UnitKind, str],
    current_stock_pieces: Any,
    pieces_per_pack: Any,
    packs_per_box: Any
) -> int:
    """
    Largest quantity of the selected unit the stock snapshot can cover.

    Floors, so it never overestimates. Unknown unit kind yields 0, which
    blocks any submission until the unit is resolved.
    """
    ppp, ppb = validate_packaging(pieces_per_pack, packs_per_box)
    stock = _require_stock(current_stock_pieces)
    kind = UnitKind(unit_kind)
    if kind == UnitKind.UNKNOWN:
        return 0
    return stock // unit_multiplier(kind, ppp, ppb)


def validate_quantity(
    requested_quantity: Any,
    max_qty: int,
    unit_kind: Union[UnitKind, str] = UnitKind.PIECE
) -> None:
    """
    Pass iff 0 < requested_quantity <= max_qty.

    Raises:
        InsufficientStockError: Carrying max_qty for display
    """
    if isinstance(requested_quantity, bool) or not isinstance(requested_quantity, (int, float)):
        raise InvalidQuantityError(requested_quantity)
    if not (0 < requested_quantity <= max_qty):
        raise InsufficientStockError(requested_quantity, max_qty, UnitKind(unit_kind))


def total_amount(quantity: Any, price_per_unit: Any) -> int:
    """quantity × price for the selected unit, in whole Rupiah (ROUND_HALF_UP)."""
    qty = _require_quantity(quantity)
    price = _require_price(price_per_unit)
    amount = (Decimal(qty) * price).quantize(
        Decimal(10) ** -CURRENCY_DECIMAL_PLACES,
        rounding=ROUND_HALF_UP
    )
    return int(amount)


# ==================== QUANTITY CONVERSION ENGINE ====================

class QuantityConversionEngine:
    """
    Stateless quantity engine shared by stock-in, stock-out and defect entry.

    Callers pass values already fetched from the backend; the engine never
    does I/O and returns an explicit SUCCESS or ERROR result.
    """

    def __init__(self):
        self.version = ENGINE_VERSION

    def resolve_packaging(
        self,
        request: QuantityRequest,
        packaging: Optional[PackagingStructure]
    ) -> PackagingStructure:
        """
        Pick the packaging for this request.

        The stock-out form may override the lot's ratios; no other context
        may, since a lot's ratios are fixed once received.

        Raises:
            InvalidPackagingStructureError: Missing packaging or override outside stock-out
        """
        if request.packaging_override is not None:
            if request.transaction_context not in OVERRIDE_CONTEXTS:
                raise InvalidPackagingStructureError(
                    "packaging_override",
                    request.packaging_override,
                    reason=f"Packaging override is not allowed for {request.transaction_context.value}. "
                           f"The stock-in item's own ratios must be used."
                )
            return request.packaging_override

        if packaging is None:
            raise InvalidPackagingStructureError(
                "packaging", None, reason="Packaging structure is required before calculating quantities."
            )
        return packaging

    def build_breakdown(
        self,
        unit_kind: UnitKind,
        quantity: int,
        pieces_per_pack: int,
        packs_per_box: int
    ) -> List[ConversionStep]:
        """Audit trail for a unit -> pieces conversion."""
        steps: List[ConversionStep] = []

        if unit_kind == UnitKind.PIECE:
            steps.append(ConversionStep(
                step_number=1,
                from_unit=UnitKind.PIECE,
                from_qty=quantity,
                to_unit=UnitKind.PIECE,
                to_qty=quantity,
                conversion_factor=1,
                factor_source="IDENTITY",
                calculation_formula=f"{quantity} piece = {quantity} piece"
            ))
            return steps

        packs = quantity
        if unit_kind == UnitKind.BOX:
            packs = quantity * packs_per_box
            steps.append(ConversionStep(
                step_number=len(steps) + 1,
                from_unit=UnitKind.BOX,
                from_qty=quantity,
                to_unit=UnitKind.PACK,
                to_qty=packs,
                conversion_factor=packs_per_box,
                factor_source="PACKS_PER_BOX",
                calculation_formula=f"{quantity} × {packs_per_box} = {packs}"
            ))

        pieces = packs * pieces_per_pack
        steps.append(ConversionStep(
            step_number=len(steps) + 1,
            from_unit=UnitKind.PACK,
            from_qty=packs,
            to_unit=UnitKind.PIECE,
            to_qty=pieces,
            conversion_factor=pieces_per_pack,
            factor_source="PIECES_PER_PACK",
            calculation_formula=f"{packs} × {pieces_per_pack} = {pieces}"
        ))
        return steps

    def evaluate(
        self,
        request: QuantityRequest,
        packaging: Optional[PackagingStructure],
        stock: Optional[StockSnapshot] = None
    ) -> QuantityResult:
        """
        Main evaluation method.

        1) Resolve and validate packaging (before any arithmetic)
        2) Classify the unit
        3) Read the stock snapshot and derive max quantity (stock-out, defect)
        4) Block unresolved units
        5) Validate quantity
        6) Derive total pieces (or take actual pieces in flexible mode)
        7) Validate against stock (stock-out, defect)
        8) Derive total amount when a price is given

        Args:
            request: QuantityRequest
            packaging: Packaging of the product lot (stock-in item)
            stock: Snapshot of current stock, required for stock-out and defect

        Returns:
            QuantityResult; engine errors are reported in result.errors
        """
        errors: List[Dict[str, Any]] = []
        warnings: List[QuantityWarning] = []
        steps: List[ConversionStep] = []
        context = request.transaction_context
        classification: Optional[UnitClassification] = None
        unit_kind = UnitKind.UNKNOWN
        packaging_used: Optional[PackagingStructure] = None
        current_stock: Optional[int] = None
        max_qty: Optional[int] = None
        max_unit: Optional[UnitKind] = None

        try:
            # Step 1: Packaging (INVARIANT: checked before any arithmetic)
            packaging_used = self.resolve_packaging(request, packaging)
            ppp, ppb = validate_packaging(packaging_used.pieces_per_pack, packaging_used.packs_per_box)

            # Step 2: Classify unit
            classification = classify_unit_details(request.unit)
            unit_kind = classification.kind
            if classification.ambiguous:
                warnings.append(QuantityWarning(
                    warning_code="AMBIGUOUS_UNIT_NAME",
                    message=f"Unit '{request.unit.label}' matches several unit kinds; treated as "
                            f"'{unit_kind.value}'.",
                    field="unit_id",
                    recommendation="Give the unit an explicit kind in master data."
                ))

            # Step 3: Stock snapshot
            if context in STOCK_CHECKED_CONTEXTS:
                if stock is None:
                    raise InvalidStockSnapshotError(
                        None, reason=f"A current stock snapshot is required for {context.value}."
                    )
                current_stock = _require_stock(stock.current_stock_pieces)
                max_qty = max_quantity(unit_kind, current_stock, ppp, ppb)
                max_unit = unit_kind

            # Step 4: Unit must be resolved (INVARIANT: no default multiplier)
            if unit_kind == UnitKind.UNKNOWN:
                raise UnresolvedUnitError(request.unit.label)

            # Step 5: Quantity
            quantity = _require_quantity(request.quantity)

            # Step 6: Total pieces
            flexible = request.actual_pieces is not None
            if flexible:
                if context not in OVERRIDE_CONTEXTS:
                    raise InvalidQuantityError(
                        request.actual_pieces,
                        field="actual_pieces",
                        reason=f"Actual pieces can only be entered for {TransactionContext.STOCK_OUT.value}."
                    )
                pieces = _require_quantity(request.actual_pieces, field="actual_pieces")
                steps.append(ConversionStep(
                    step_number=1,
                    from_unit=unit_kind,
                    from_qty=quantity,
                    to_unit=UnitKind.PIECE,
                    to_qty=pieces,
                    factor_source="ACTUAL_PIECES",
                    calculation_formula=f"{quantity} {unit_kind.value} entered as {pieces} actual piece(s)"
                ))
            else:
                pieces = total_pieces(unit_kind, quantity, ppp, ppb)
                steps = self.build_breakdown(unit_kind, quantity, ppp, ppb)

            # Step 7: Stock validation (advisory, backend re-checks)
            remaining: Optional[int] = None
            if current_stock is not None:
                if flexible:
                    # Actual pieces are checked against stock in pieces
                    max_qty, max_unit = current_stock, UnitKind.PIECE
                    validate_quantity(pieces, max_qty, max_unit)
                else:
                    validate_quantity(quantity, max_qty, unit_kind)
                remaining = current_stock - pieces

            # Step 8: Money
            amount: Optional[int] = None
            if request.price_per_unit is not None:
                amount = total_amount(quantity, request.price_per_unit)

            return QuantityResult(
                transaction_context=context,
                unit_kind=unit_kind,
                quantity=_reportable(request.quantity),
                total_pieces=pieces,
                total_amount=amount,
                price_per_unit=_reportable(request.price_per_unit),
                max_quantity=max_qty,
                max_quantity_unit=max_unit,
                current_stock_pieces=current_stock,
                remaining_stock_pieces=remaining,
                packaging_used=packaging_used,
                classification=classification,
                conversion_breakdown=steps,
                status=ResultStatus.SUCCESS,
                warnings=warnings,
                calculation_version=self.version
            )

        except QuantityError as e:
            errors.append(e.to_dict())
            return QuantityResult(
                transaction_context=context,
                unit_kind=unit_kind,
                quantity=_reportable(request.quantity),
                price_per_unit=_reportable(request.price_per_unit),
                max_quantity=max_qty,
                max_quantity_unit=max_unit,
                current_stock_pieces=current_stock,
                packaging_used=packaging_used,
                classification=classification,
                conversion_breakdown=steps,
                status=ResultStatus.ERROR,
                errors=errors,
                warnings=warnings,
                calculation_version=self.version
            )
