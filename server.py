from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import CORS_ORIGINS
from errors import CartError, MergeAbortedError
from logging_config import get_logger
from microservices.cart_store import MongoCartStore
from microservices.local_cart import dump_entries
from mongomanager import carts_collection
from routes.cart_route import router as cart_router
from services.cart_service import CartService

logger = get_logger(__name__)

cart_store = MongoCartStore(carts_collection)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await cart_store.ensure_indexes()
    logger.info("Cart indexes ready")
    yield


app = FastAPI(lifespan=lifespan)
app.state.cart_service = CartService(cart_store)

app.include_router(cart_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,  # Allow cookies & auth headers
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CartError)
async def cart_error_handler(request: Request, exc: CartError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    content = {"status": "failure", "message": exc.message}
    if isinstance(exc, MergeAbortedError):
        content["cause"] = exc.cause.message
        content["merged"] = exc.merged
        content["remaining"] = dump_entries(exc.remaining)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/")
def connection():
    return {"message": "Connected Successfully"}
