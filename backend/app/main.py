from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import BillingError
from app.routers import merchants, subscription_charges, subscriptions

OPENAPI_TAGS = [
    {"name": "Merchants", "description": "Register merchants and manage API keys."},
    {"name": "Subscriptions", "description": "Create, approve, and cancel USDC subscriptions."},
    {"name": "Charges", "description": "Internal scheduler endpoints for subscription billing."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Recurring USDC subscription billing. Merchants create subscriptions, "
        "customers approve an on-chain allowance, and a scheduled batch charges "
        "each subscription when it falls due."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(merchants.router, prefix="/v1/merchants", tags=["Merchants"])
# Must precede the subscriptions router: "/charge" also matches "/{subscription_id}".
app.include_router(
    subscription_charges.router,
    prefix="/v1/subscriptions",
    tags=["Charges"],
)
app.include_router(subscriptions.router, prefix="/v1/subscriptions", tags=["Subscriptions"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }
