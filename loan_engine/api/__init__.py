"""
Loan Engine API Application Factory
"""

import logging

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import (
    GatewayFailure, InvalidStateError, LoanEngineError, NotFoundError,
    OperationNotAllowedError, UnauthorizedError, ValidationError
)
from .admin import router as admin_router
from .borrowers import router as borrowers_router
from .lenders import router as lenders_router


logger = logging.getLogger("loan_engine.api")

ERROR_STATUS = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (OperationNotAllowedError, status.HTTP_400_BAD_REQUEST),
    (GatewayFailure, status.HTTP_502_BAD_GATEWAY),
)


def status_for(exc: LoanEngineError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def loan_engine_error_handler(request: Request, exc: LoanEngineError) -> JSONResponse:
    """Map engine errors to HTTP responses"""
    status_code = status_for(exc)
    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, GatewayFailure):
        body["transaction_id"] = exc.transaction_id
        body["reason"] = exc.reason

    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content=body)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Loan Engine API",
        description="Consumer loan lifecycle and repayment engine",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LoanEngineError, loan_engine_error_handler)

    # Include routers
    app.include_router(borrowers_router, prefix="/v1/borrower", tags=["Borrower"])
    app.include_router(lenders_router, prefix="/v1/lender", tags=["Lender"])
    app.include_router(admin_router, prefix="/v1/admin", tags=["Admin"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_engine_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Loan Engine API",
            "version": __version__,
            "description": "Consumer loan lifecycle and repayment engine",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "borrower": "/v1/borrower",
                "lender": "/v1/lender",
                "admin": "/v1/admin"
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "loan_engine.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
