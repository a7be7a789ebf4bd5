import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, models, realtime, schemas
from .auth_utils import create_access_token, get_password_hash, verify_password
from .database import async_engine, get_db_async, init_db
from .errors import ApiError, AuthError
from .routers import items, list_items, lists, menus

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing database...")
    await init_db()
    yield
    await async_engine.dispose()
    logger.info("Shutting down application...")


app = FastAPI(title="listsync", version="0.1.0", lifespan=lifespan)

app.include_router(lists.router)
app.include_router(list_items.router)
app.include_router(menus.router)
app.include_router(items.router)
app.include_router(realtime.router)


UNIFIED_AUTH_ERROR_CONTENT = {
    "error": {"code": "unauthorized", "message": "Invalid credentials"}
}


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return JSONResponse(
        status_code=401,
        content=UNIFIED_AUTH_ERROR_CONTENT,
    )


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(
        status_code=exc.status,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "validation_error",
                "message": f"{field}: {message}" if field else message,
            }
        },
    )


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


@app.post(
    "/register", response_model=schemas.UserBase, status_code=status.HTTP_201_CREATED
)
async def register_user(
    user: schemas.UserAuth, db: AsyncSession = Depends(get_db_async)
):
    stmt = select(models.User).where(models.User.username == user.username)
    result = await db.execute(stmt)
    db_user_exists = result.scalar_one_or_none()

    if db_user_exists:
        raise ApiError(
            code="user_exists", message="User already exists or bad request", status=400
        )

    hashed_pwd = get_password_hash(user.password)
    db_user = models.User(username=user.username, hashed_password=hashed_pwd)

    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)

    return db_user


@app.post("/login")
async def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: AsyncSession = Depends(get_db_async),
):
    stmt = select(models.User).where(models.User.username == form_data.username)
    result = await db.execute(stmt)
    db_user = result.scalar_one_or_none()

    if not db_user or not verify_password(form_data.password, db_user.hashed_password):
        raise AuthError(
            code="login_failed_internal",
            message="Credentials check failed",
            status=status.HTTP_401_UNAUTHORIZED,
        )

    access_token = create_access_token(data={"sub": db_user.username})

    return {
        "message": "Login successful",
        "access_token": access_token,
        "token_type": "bearer",
    }


@app.get("/health")
def health():
    return {"status": "ok"}
