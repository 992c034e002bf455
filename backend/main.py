# backend/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import init_db
from utils.errors import ShopError
from utils.stripe_client import build_stripe_client

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Import routerów
from routes.cart import router as cart_router
from routes.orders import router as orders_router
from routes.payment import router as payment_router

# Inicjalizacja
init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await app.state.payment_gateway.aclose()


app = FastAPI(title="Storefront Checkout API", version="1.0.0", lifespan=lifespan)

# Payment gateway client shared by all requests, handed out via Depends
app.state.payment_gateway = build_stripe_client()

# CORS Configuration
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors -> {success: false, error}
@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(status_code=400, content={"success": False, "error": "; ".join(messages)})


# Rejestracja routerów
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(payment_router)


@app.get("/health")
def health():
    return {"status": "ok"}
