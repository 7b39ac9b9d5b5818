import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from storefront.version import VERSION
from storefront.core.config import settings
from storefront.core.errors import StorefrontError
from storefront.api import products, cart, orders

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title='Storefront Service', version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "detail": exc.message, "error": exc.to_dict()})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # storage/infrastructure failures: log everything, return nothing internal
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "detail": "Internal server error"})

@app.get('/health')
def health(): return {'status':'ok'}

@app.get('/v1/_info')
def info(): return {'service':'storefront','version':VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("%s %s", route.methods, route.path)

app.include_router(products.router, prefix='/catalog/v1/products', tags=['products'])
app.include_router(cart.router, prefix='/cart', tags=['cart'])
app.include_router(orders.router, prefix='/order', tags=['orders'])
