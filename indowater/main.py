from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from indowater.core.config import settings
from indowater.routers import payment_gateways, payments, webhooks

OPENAPI_TAGS = [
    {"name": "Webhooks", "description": "Inbound Midtrans and DOKU payment notifications."},
    {"name": "Payments", "description": "Create, query and cancel prepaid top-up payments."},
    {
        "name": "Payment Gateways",
        "description": "Gateway capabilities and per-tenant credential configuration.",
    },
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Payment gateway integration for prepaid water credit: "
        "top-up payments through Midtrans and DOKU, with verified, idempotent "
        "webhook reconciliation and retry."
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
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(payments.router, prefix="/v1/payments", tags=["Payments"])
app.include_router(
    payment_gateways.router,
    prefix="/v1/payment_gateways",
    tags=["Payment Gateways"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
