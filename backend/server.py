from fastapi import FastAPI, APIRouter, HTTPException, Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
import logging
import requests
from pydantic import BaseModel
from typing import Optional, Dict, Any, Iterator, Union
from datetime import datetime, timezone

from dashboard_config import APP_NAME, CORS_ORIGINS, LOG_LEVEL, CURRENCY_CODE
from quantity_engine import (
    ENGINE_VERSION,
    QuantityConversionEngine,
    QuantityError,
    QuantityRequest,
    QuantityResult,
    PackagingStructure,
    StockSnapshot,
    TransactionContext,
    Unit,
    UnitClassification,
    classify_unit_details,
)
from defect_status import (
    INITIAL_DEFECT_STATUS,
    InvalidStatusTransitionError,
    available_actions,
    is_terminal,
    normalize_status,
    transition,
)
from item_entry import (
    QuantityDraft,
    SubmissionBlockedError,
    defect_report_payload,
    packaging_from_record,
    price_from_record,
    product_id_from_record,
    stock_figure,
    stock_from_record,
    stock_in_item_payload,
    stock_out_item_payload,
    unit_from_scan,
)
from inventory_client import InventoryApiClient, InventoryApiError

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME)
api_router = APIRouter(prefix="/api")

engine = QuantityConversionEngine()

logger.info(f"CORS allowed origins: {CORS_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Accept",
        "Origin",
    ],
    max_age=600,  # Cache preflight for 10 minutes
)

# ==================== HEALTH ENDPOINT (ROOT LEVEL) ====================
@app.get("/api/health")
async def health_check():
    """Health check endpoint for monitoring and CORS verification"""
    return {
        "ok": True,
        "time": datetime.now(timezone.utc).isoformat(),
        "service": APP_NAME,
        "version": ENGINE_VERSION,
        "currency": CURRENCY_CODE
    }

# ==================== ERROR HANDLERS ====================

@app.exception_handler(InventoryApiError)
async def inventory_api_error_handler(request: Request, exc: InventoryApiError):
    status_code = exc.status_code if exc.status_code and 400 <= exc.status_code < 600 else 502
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


@app.exception_handler(requests.RequestException)
async def inventory_unreachable_handler(request: Request, exc: requests.RequestException):
    logger.error(f"Inventory API unreachable for {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": "Inventory API is unreachable"})


@app.exception_handler(QuantityError)
async def quantity_error_handler(request: Request, exc: QuantityError):
    # Raised while reading upstream records, before any draft exists
    return JSONResponse(status_code=422, content={"detail": exc.message, "errors": [exc.to_dict()]})

# ==================== AUTH ====================

security = HTTPBearer(auto_error=False)


def forwarded_token(
    credentials: Optional[HTTPAuthorizationCredentials],
    authorization: Optional[str]
) -> str:
    """Raw token for the inventory API, from a Bearer header or the bare header value."""
    if credentials is not None:
        return credentials.credentials
    token = (authorization or "").strip()
    scheme, _, rest = token.partition(" ")
    if scheme.lower() == "bearer":
        token = rest.strip()
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return token


def get_inventory_client(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    authorization: Optional[str] = Header(None)
) -> Iterator[InventoryApiClient]:
    """Forward the caller's token to the inventory API."""
    client = InventoryApiClient(forwarded_token(credentials, authorization))
    try:
        yield client
    finally:
        client.close()


def load_stock(record: Dict[str, Any], client: InventoryApiClient) -> StockSnapshot:
    """Stock from the record, or from the current-stock report when the record has none."""
    product_id = product_id_from_record(record)
    if stock_figure(record) is None and product_id is not None:
        return stock_from_record(record, client.get_current_stock_pieces(product_id))
    return stock_from_record(record)


def _blocked(draft: QuantityDraft, e: SubmissionBlockedError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "message": e.message,
            "errors": e.errors,
            "result": draft.result.to_payload() if draft.result is not None else None
        }
    )

# ==================== MODELS ====================

class ClassifyUnitRequest(BaseModel):
    unit: Unit


class EvaluateQuantityRequest(BaseModel):
    unit: Unit
    transaction_context: TransactionContext
    quantity: Optional[Union[int, float]] = None
    pieces_per_pack: Optional[Union[int, float]] = None
    packs_per_box: Optional[Union[int, float]] = None
    current_stock_pieces: Optional[Union[int, float]] = None
    price_per_unit: Optional[Union[int, float]] = None
    packaging_override: Optional[PackagingStructure] = None
    actual_pieces: Optional[Union[int, float]] = None


class EvaluationResponse(BaseModel):
    result: QuantityResult
    payload: Dict[str, Any]


class DefectReportCreate(BaseModel):
    stock_in_item_id: str
    unit_id: Union[str, int]
    quantity: Optional[Union[int, float]] = None
    defect_type: Optional[str] = None
    defect_description: Optional[str] = None


class DefectStatusUpdate(BaseModel):
    status: str


class StockOutItemCreate(BaseModel):
    barcode: str
    quantity: Optional[Union[int, float]] = None
    price_per_unit: Optional[Union[int, float]] = None
    # Custom conversion for this line
    pieces_per_pack: Optional[Union[int, float]] = None
    packs_per_box: Optional[Union[int, float]] = None
    actual_pieces: Optional[Union[int, float]] = None


class StockInItemCreate(BaseModel):
    barcode: str
    quantity: Optional[Union[int, float]] = None
    price_per_unit: Optional[Union[int, float]] = None
    warehouse_id: Optional[str] = None
    container_id: Optional[str] = None
    rack_id: Optional[str] = None

# ==================== QUANTITY PREVIEW ROUTES ====================

@api_router.post("/quantity/classify-unit", response_model=UnitClassification)
async def classify_unit_route(data: ClassifyUnitRequest):
    return classify_unit_details(data.unit)


@api_router.post("/quantity/evaluate", response_model=EvaluationResponse)
async def evaluate_quantity(data: EvaluateQuantityRequest):
    """Evaluate explicit inputs; engine errors come back in the result, not as HTTP errors."""
    packaging = None
    if data.pieces_per_pack is not None and data.packs_per_box is not None:
        packaging = PackagingStructure(pieces_per_pack=data.pieces_per_pack, packs_per_box=data.packs_per_box)
    stock = None
    if data.current_stock_pieces is not None:
        stock = StockSnapshot(current_stock_pieces=data.current_stock_pieces)

    request = QuantityRequest(
        unit=data.unit,
        quantity=data.quantity,
        transaction_context=data.transaction_context,
        price_per_unit=data.price_per_unit,
        packaging_override=data.packaging_override,
        actual_pieces=data.actual_pieces
    )
    result = engine.evaluate(request, packaging, stock)
    return {"result": result, "payload": result.to_payload()}

# ==================== DEFECT ROUTES ====================

def _defect_draft(data: DefectReportCreate, client: InventoryApiClient) -> QuantityDraft:
    item = client.get_stock_in_item_for_defect(data.stock_in_item_id)
    unit = client.get_unit(data.unit_id)
    draft = QuantityDraft(TransactionContext.DEFECT, engine)
    draft.select_product(
        packaging_from_record(item),
        load_stock(item, client),
        unit=unit,
        product_ref=data.stock_in_item_id
    )
    draft.set_quantity(data.quantity)
    return draft


@api_router.post("/defects/preview", response_model=EvaluationResponse)
def preview_defect(data: DefectReportCreate, client: InventoryApiClient = Depends(get_inventory_client)):
    result = _defect_draft(data, client).result
    return {"result": result, "payload": result.to_payload()}


@api_router.post("/defects")
def create_defect(data: DefectReportCreate, client: InventoryApiClient = Depends(get_inventory_client)):
    draft = _defect_draft(data, client)
    try:
        payload = defect_report_payload(
            draft,
            data.stock_in_item_id,
            data.unit_id,
            data.defect_type,
            data.defect_description
        )
    except SubmissionBlockedError as e:
        raise _blocked(draft, e)

    defect = client.report_defect(payload)
    logger.info(
        f"Defect reported for stock in item {data.stock_in_item_id}: "
        f"{draft.quantity} {draft.result.unit_kind.value} = {draft.result.total_pieces} pieces"
    )
    # New defects always start pending
    return {
        "defect": defect,
        "status": INITIAL_DEFECT_STATUS.value,
        "actions": available_actions(INITIAL_DEFECT_STATUS),
        "result": draft.result.to_payload()
    }


@api_router.put("/defects/{defect_id}/status")
def update_defect_status(
    defect_id: str,
    data: DefectStatusUpdate,
    client: InventoryApiClient = Depends(get_inventory_client)
):
    """Check the transition locally, then let the inventory API apply it."""
    try:
        target = normalize_status(data.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    defect = client.get_defect(defect_id) or {}
    try:
        new_status = transition(defect.get("status", ""), target)
    except ValueError as e:
        raise HTTPException(status_code=502, detail=f"Inventory API returned an invalid defect: {e}")
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)

    updated = client.update_defect_status(defect_id, new_status.value)
    logger.info(f"Defect {defect_id} status changed to {new_status.value}")
    return {
        "defect": updated,
        "status": new_status.value,
        "is_terminal": is_terminal(new_status),
        "actions": available_actions(new_status)
    }

# ==================== STOCK OUT / STOCK IN ROUTES ====================

@api_router.post("/stock-out/{stock_out_id}/items")
def add_stock_out_item(
    stock_out_id: str,
    data: StockOutItemCreate,
    client: InventoryApiClient = Depends(get_inventory_client)
):
    scan = client.scan_barcode(data.barcode)
    draft = QuantityDraft(TransactionContext.STOCK_OUT, engine)
    draft.select_product(
        packaging_from_record(scan),
        load_stock(scan, client),
        unit=unit_from_scan(scan),
        product_ref=data.barcode,
        price_per_unit=data.price_per_unit if data.price_per_unit is not None else price_from_record(scan)
    )
    draft.set_quantity(data.quantity)
    if data.pieces_per_pack is not None or data.packs_per_box is not None:
        draft.set_packaging_override(data.pieces_per_pack, data.packs_per_box)
    if data.actual_pieces is not None:
        draft.set_actual_pieces(data.actual_pieces)

    try:
        payload = stock_out_item_payload(draft, data.barcode)
    except SubmissionBlockedError as e:
        raise _blocked(draft, e)

    item = client.add_stock_out_item_by_barcode(stock_out_id, payload)
    logger.info(f"Stock out {stock_out_id}: added {data.barcode} ({draft.result.total_pieces} pieces)")
    return {"item": item, "result": draft.result.to_payload()}


@api_router.post("/stock-in/{stock_in_id}/items")
def add_stock_in_item(
    stock_in_id: str,
    data: StockInItemCreate,
    client: InventoryApiClient = Depends(get_inventory_client)
):
    scan = client.scan_barcode(data.barcode)
    draft = QuantityDraft(TransactionContext.STOCK_IN, engine)
    draft.select_product(
        packaging_from_record(scan),
        unit=unit_from_scan(scan),
        product_ref=data.barcode,
        price_per_unit=data.price_per_unit if data.price_per_unit is not None else price_from_record(scan)
    )
    draft.set_quantity(data.quantity)

    try:
        payload = stock_in_item_payload(draft, data.barcode, data.warehouse_id, data.container_id, data.rack_id)
    except SubmissionBlockedError as e:
        raise _blocked(draft, e)

    item = client.add_stock_in_item_by_barcode(stock_in_id, payload)
    logger.info(f"Stock in {stock_in_id}: added {data.barcode} ({draft.result.total_pieces} pieces)")
    return {"item": item, "result": draft.result.to_payload()}


# Include router
app.include_router(api_router)
