"""FastAPI application setup for Microclimate Hub."""

from fastapi import FastAPI

from .api import router as api_router

app = FastAPI(title="Microclimate Hub")

# API routes
app.include_router(api_router, prefix="/v1")
