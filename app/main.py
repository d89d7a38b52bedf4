from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.admin.audit import router as audit_router
from app.api.incentives import router as incentives_router
from app.api.pickups import router as pickups_router
from app.api.route import router as route_router
from app.core.config import get_settings
from app.core.errors import DomainError
from app.core.logging import configure_logging
from app.db.mongo import ensure_indexes, get_database

HTTP_KINDS = {
    401: "authentication_error",
    403: "authorization_error",
    404: "not_found",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await ensure_indexes(get_database())
    yield


settings = get_settings()
app = FastAPI(title=f"{settings.app_name} (MongoDB)", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": exc.kind, "detail": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in e["loc"] if p != "body") for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"kind": "validation_error", "detail": f"Invalid fields: {', '.join(fields)}"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": HTTP_KINDS.get(exc.status_code, "error"), "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


app.include_router(pickups_router)
app.include_router(route_router)
app.include_router(incentives_router)
app.include_router(audit_router)


@app.get("/")
def root():
    return {"ok": True, "message": "Ward-level Waste Management API running", "docs": "/docs"}
