"""
Crowdsale Settlement API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from domain.errors import SaleError
from repositories.balance_ledger import InsufficientBalanceError

# Create FastAPI application
app = FastAPI(
    title="Crowdsale Settlement API",
    description="REST API for buying, claiming and administering a token crowdsale",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for demo
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

ERROR_STATUS = {
    "admission": 403,
    "authorization": 403,
    "capacity": 409,
    "timing": 409,
    "state": 409,
    "validation": 400,
}


@app.exception_handler(SaleError)
async def sale_error_handler(request: Request, exc: SaleError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.category, 400),
        content={
            "error": type(exc).__name__,
            "code": exc.code,
            "category": exc.category,
            "detail": str(exc),
        },
    )


@app.exception_handler(InsufficientBalanceError)
async def insufficient_balance_handler(request: Request, exc: InsufficientBalanceError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "error": type(exc).__name__,
            "code": "INSUFFICIENT_BALANCE",
            "category": "balance",
            "detail": str(exc),
        },
    )


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "crowdsale-settlement-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Crowdsale Settlement API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import admin, claims, purchases, sale

app.include_router(sale.router, prefix="/api/v1", tags=["Sale"])
app.include_router(purchases.router, prefix="/api/v1", tags=["Purchases"])
app.include_router(claims.router, prefix="/api/v1", tags=["Claims"])
app.include_router(admin.router, prefix="/api/v1", tags=["Admin"])
