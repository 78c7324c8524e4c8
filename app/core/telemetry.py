"""
OpenTelemetry Instrumentation for FastAPI

Works alongside Dapr for automatic span creation and trace enrichment.
Dapr handles trace context propagation and OTLP export.
"""

from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor
from app.core.logger import logger


def instrument_app(app):
    """
    Instrument FastAPI application with OpenTelemetry for automatic span creation.

    Args:
        app: FastAPI application instance
    """
    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumented with OpenTelemetry")

        # Outgoing blob storage calls go through aiohttp
        AioHttpClientInstrumentor().instrument()
        logger.info("aiohttp client instrumented with OpenTelemetry")

        PymongoInstrumentor().instrument()
        logger.info("PyMongo instrumented with OpenTelemetry")

    except Exception as e:
        logger.error("Failed to instrument application", error=e)
