import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sportshub.config import settings
from sportshub.core.exceptions import DomainError, NotOwner, PaymentGatewayError
from sportshub import models  # noqa: F401  (registra todas las tablas)
from sportshub.database import Base, engine
from sportshub.routers import credits, cron, notifications, payments, reservations, tariffs

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("sportshub")

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="SportsHub - Reservas y Pagos",
    description="API del ciclo de vida de reservas, monedero de créditos y conciliación de pagos",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configuración CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
        "X-Cron-Secret",
    ],
    max_age=600,
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if isinstance(exc, NotOwner) or exc.status_code == status.HTTP_401_UNAUTHORIZED:
        logger.warning(f"🚫 {request.method} {request.url.path}: {exc.kind} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PaymentGatewayError)
async def gateway_error_handler(request: Request, exc: PaymentGatewayError):
    logger.warning(f"❌ [PAGOS] {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"kind": "PaymentGatewayError", "message": exc.message},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    # El detalle se queda en el log del servidor
    logger.exception(f"💥 Error no controlado en {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"kind": "InternalError", "message": "Error interno del servidor"},
    )


# Routers
app.include_router(reservations.router, prefix="/reservations", tags=["Reservas"])
app.include_router(payments.router, prefix="/payments", tags=["Pagos"])
app.include_router(credits.router, prefix="/credits", tags=["Créditos"])
app.include_router(tariffs.router, prefix="/tariffs", tags=["Tarifas"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notificaciones"])
app.include_router(cron.router, prefix="/cron", tags=["Cron"])


@app.get("/")
def read_root():
    return {
        "mensaje": "SportsHub API funcionando correctamente",
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": "SportsHub API",
    }
