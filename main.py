import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import SessionLocal, engine
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetPatch,
    MonthlyActualIn,
    MonthlyActualOut,
    MonthlyDataIn,
    MonthlyDataOut,
    UserIn,
    UserOut,
    format_validation_errors,
    is_valid_month,
)
from services import BudgetingService
from storage import Storage

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    service = BudgetingService(Storage.open(engine, SessionLocal))
    user = service.ensure_user(settings.default_username)
    app.state.service = service
    app.state.user_id = user.id
    logger.info(f"startup: default_user_id={user.id}")
    yield


app = FastAPI(title="Budgeting API", lifespan=lifespan)


def get_service(request: Request) -> BudgetingService:
    return request.app.state.service


def get_current_user_id(request: Request) -> int:
    # trusted; authentication happens in front of this service
    return request.app.state.user_id


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400, content={"message": format_validation_errors(exc.errors())}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"request_failed: {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


_INTEGER = re.compile(r"-?[0-9]{1,32}")


def _parse_id(raw: str, label: str) -> int:
    if not _INTEGER.fullmatch(raw):
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID")
    return int(raw)


def _parse_month(raw: str) -> int:
    month = int(raw) if _INTEGER.fullmatch(raw) else None
    if month is None or not is_valid_month(month):
        raise HTTPException(status_code=400, detail="Invalid month (must be 0-11)")
    return month


def _load_budget(service: BudgetingService, budget_id: int):
    budget = service.get_budget(budget_id)
    if not budget:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


def _require_budget(service: BudgetingService, raw_id: str):
    return _load_budget(service, _parse_id(raw_id, "budget"))


def _budget_json(budget) -> dict:
    return jsonable_encoder(BudgetOut.from_row(budget))


@app.post("/api/users", status_code=201)
def api_create_user(data: UserIn, service: BudgetingService = Depends(get_service)):
    try:
        user = service.create_user(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return UserOut.model_validate(user)


@app.get("/api/users/{user_id}")
def api_get_user(user_id: str, service: BudgetingService = Depends(get_service)):
    user = service.get_user(_parse_id(user_id, "user"))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserOut.model_validate(user)


@app.get("/api/budgets")
def api_list_budgets(
    service: BudgetingService = Depends(get_service),
    user_id: int = Depends(get_current_user_id),
):
    return [_budget_json(b) for b in service.list_budgets(user_id)]


@app.get("/api/budgets/{budget_id}")
def api_get_budget(budget_id: str, service: BudgetingService = Depends(get_service)):
    return _budget_json(_require_budget(service, budget_id))


@app.post("/api/budgets", status_code=201)
def api_create_budget(
    data: BudgetIn,
    service: BudgetingService = Depends(get_service),
    user_id: int = Depends(get_current_user_id),
):
    if data.user_id is None:
        data.user_id = user_id
    return _budget_json(service.create_budget(data))


@app.patch("/api/budgets/{budget_id}")
def api_update_budget(
    budget_id: str,
    data: BudgetPatch,
    service: BudgetingService = Depends(get_service),
):
    budget = _require_budget(service, budget_id)
    updated = service.update_budget(budget.id, data)
    if not updated:
        raise HTTPException(status_code=404, detail="Budget not found")
    return _budget_json(updated)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def api_delete_budget(budget_id: str, service: BudgetingService = Depends(get_service)):
    budget = _require_budget(service, budget_id)
    if not service.delete_budget(budget.id):
        raise HTTPException(status_code=500, detail="Failed to delete budget")
    return Response(status_code=204)


@app.get("/api/budgets/{budget_id}/monthly-data")
def api_list_monthly_data(
    budget_id: str, service: BudgetingService = Depends(get_service)
):
    budget = _require_budget(service, budget_id)
    return [MonthlyDataOut.model_validate(row) for row in service.list_monthly_data(budget.id)]


@app.post("/api/budgets/{budget_id}/monthly-data", status_code=201)
def api_save_monthly_data(
    budget_id: str,
    data: list[MonthlyDataIn],
    service: BudgetingService = Depends(get_service),
):
    budget = _require_budget(service, budget_id)
    rows = service.save_monthly_data(budget.id, data)
    return [MonthlyDataOut.model_validate(row) for row in rows]


@app.get("/api/budgets/{budget_id}/monthly-actuals")
def api_list_monthly_actuals(
    budget_id: str, service: BudgetingService = Depends(get_service)
):
    budget = _require_budget(service, budget_id)
    return [
        MonthlyActualOut.model_validate(row)
        for row in service.list_monthly_actuals(budget.id)
    ]


@app.get("/api/budgets/{budget_id}/monthly-actuals/{month}")
def api_get_monthly_actual(
    budget_id: str, month: str, service: BudgetingService = Depends(get_service)
):
    parsed_id = _parse_id(budget_id, "budget")
    parsed_month = _parse_month(month)
    budget = _load_budget(service, parsed_id)
    actual = service.get_monthly_actual(budget.id, parsed_month)
    if not actual:
        raise HTTPException(status_code=404, detail="Monthly actual not found")
    return MonthlyActualOut.model_validate(actual)


@app.post("/api/budgets/{budget_id}/monthly-actuals", status_code=201)
def api_save_monthly_actual(
    budget_id: str,
    data: MonthlyActualIn,
    service: BudgetingService = Depends(get_service),
):
    budget = _require_budget(service, budget_id)
    return MonthlyActualOut.model_validate(service.save_monthly_actual(budget.id, data))


@app.delete("/api/budgets/{budget_id}/monthly-actuals/{month}", status_code=204)
def api_delete_monthly_actual(
    budget_id: str, month: str, service: BudgetingService = Depends(get_service)
):
    parsed_id = _parse_id(budget_id, "budget")
    parsed_month = _parse_month(month)
    budget = _load_budget(service, parsed_id)
    deleted: Optional[bool] = service.delete_monthly_actual(budget.id, parsed_month)
    if deleted is None:
        raise HTTPException(status_code=404, detail="Monthly actual not found")
    if not deleted:
        raise HTTPException(status_code=500, detail="Failed to delete monthly actual")
    return Response(status_code=204)


@app.delete("/api/budgets/{budget_id}/monthly-actuals", status_code=204)
def api_delete_monthly_actuals(
    budget_id: str, service: BudgetingService = Depends(get_service)
):
    budget = _require_budget(service, budget_id)
    if not service.delete_monthly_actuals_for_budget(budget.id):
        raise HTTPException(status_code=500, detail="Failed to delete monthly actuals")
    return Response(status_code=204)
