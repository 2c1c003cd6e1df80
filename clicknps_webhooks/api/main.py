from dotenv import load_dotenv

# Load environment variables first, before importing modules that depend on them
load_dotenv()

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from clicknps_webhooks.db.session import Base, engine
from clicknps_webhooks.models import business, webhook_delivery  # noqa: F401  (register tables)
from clicknps_webhooks.api.routes.businesses import router as businesses_router
from clicknps_webhooks.api.routes.responses import router as responses_router
from clicknps_webhooks.api.routes.deliveries import router as deliveries_router

# Auto-create all tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="ClickNPS Webhook Delivery",
    version="0.1.0",
    openapi_url="/openapi.json",
    docs_url="/docs",
)

origins = [
    os.getenv("UI_ORIGIN", "http://localhost:8501"), # Streamlit default dev server
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Businesses & webhook settings
app.include_router(
    businesses_router,
    prefix="/businesses",
    tags=["businesses"],
)

# Survey response ingestion
app.include_router(
    responses_router,
    tags=["responses"],
)

# Delivery status
app.include_router(
    deliveries_router,
    tags=["deliveries"],
)
