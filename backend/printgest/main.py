from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from printgest.core.config import settings
from printgest.core.errors import LifecycleError
from printgest.core.logging import setup_logging, get_logger
from printgest.routers import health, subscriptions, admin_subscriptions, admin_users, scheduler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションライフサイクル管理"""
    setup_logging(debug=settings.DEBUG, service="api")
    logger.info("アプリケーション起動")
    yield
    logger.info("アプリケーション終了")


app = FastAPI(
    title=settings.SITE_NAME,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- バリデーションエラー日本語化 ---
_FIELD_JA = {
    "userId": "ユーザーID",
    "newTier": "新しいTier",
    "trialDays": "トライアル日数",
    "amount": "金額",
    "currency": "通貨",
    "invoiceId": "請求書ID",
    "reason": "理由",
    "notes": "メモ",
    "refundRequestId": "返金申請ID",
    "action": "処理内容",
}


def _translate_error(err: dict) -> str:
    t = err.get("type", "")
    loc = err.get("loc", [])
    field = str(loc[-1]) if loc else ""
    fj = _FIELD_JA.get(field, field)

    if t == "missing":
        return f"{fj}は必須です"
    if t in ("int_parsing", "int_type", "int_from_float"):
        return f"{fj}は整数で入力してください"
    if t in ("float_parsing", "float_type"):
        return f"{fj}は数値で入力してください"
    if t == "string_type":
        return f"{fj}は文字列で入力してください"
    if t == "bool_parsing":
        return f"{fj}は真偽値で入力してください"
    if t == "json_invalid":
        return "リクエストボディが不正なJSONです"
    return f"{fj}: 入力値が不正です"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = [_translate_error(e) for e in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": "、".join(messages)})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ルーター登録
app.include_router(health.router)
app.include_router(subscriptions.router)
app.include_router(admin_subscriptions.router)
app.include_router(admin_users.router)
app.include_router(scheduler.router)
