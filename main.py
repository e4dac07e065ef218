import logging
import os
from typing import List, Optional
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import get_repository, settings
from repositories import ProductRepository, StorageError
from schemas import ErrorOut, Product, ProductIn

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("storefront")

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorOut},
    404: {"model": ErrorOut},
    500: {"model": ErrorOut},
}

# Errors

def api_error(status_code: int, message: str, error: str = "") -> HTTPException:
    return HTTPException(status_code=status_code, detail={"message": message, "error": error})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        body = exc.detail
    else:
        body = {"message": str(exc.detail), "error": ""}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"message": "Invalid product data", "error": problems})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    cause = exc.__cause__ or exc
    return JSONResponse(status_code=500, content={"message": str(exc), "error": str(cause)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Something went wrong", "error": str(exc)})


@app.get("/")
async def root():
    return {"message": "Storefront API is running"}


@app.get("/test")
async def test(repository: ProductRepository = Depends(get_repository)):
    try:
        status = await repository.status()
        return {
            "backend": "✅ Running",
            "database": "✅ Available" if status.get("connected") else "❌ Not Available",
            "storage": status,
        }
    except Exception as e:
        return {"backend": "Error", "error": str(e)}


# Products

@app.get("/api/products", response_model=List[Product], responses=ERROR_RESPONSES)
async def list_products(
    term: Optional[str] = Query(None, description="Search name and description"),
    repository: ProductRepository = Depends(get_repository),
):
    if term and term.strip():
        return await repository.search(term.strip())
    return await repository.list_all()


@app.get("/api/products/featured", response_model=List[Product], responses=ERROR_RESPONSES)
async def featured_products(repository: ProductRepository = Depends(get_repository)):
    return await repository.featured()


@app.get("/api/products/category/{category}", response_model=List[Product], responses=ERROR_RESPONSES)
async def products_by_category(category: str, repository: ProductRepository = Depends(get_repository)):
    return await repository.by_category(category)


@app.get("/api/products/{product_id}", response_model=Product, responses=ERROR_RESPONSES)
async def get_product(product_id: str, repository: ProductRepository = Depends(get_repository)):
    product = await repository.get(product_id)
    if product is None:
        raise api_error(404, "Product not found")
    return product


@app.post("/api/products", response_model=Product, status_code=201, responses=ERROR_RESPONSES)
async def create_product(payload: ProductIn, repository: ProductRepository = Depends(get_repository)):
    missing = payload.missing_required()
    if missing:
        raise api_error(
            400,
            "Required fields (name, price, category, stock) were not provided",
            f"missing: {', '.join(missing)}",
        )
    # createdAt is assigned by the store, never taken from the client
    product = await repository.create(payload.model_dump(by_alias=True, exclude={"created_at"}))
    logger.info("Created product %s (%s)", product.id, product.name)
    return product


@app.put("/api/products/{product_id}", response_model=Product, responses=ERROR_RESPONSES)
async def update_product(product_id: str, payload: ProductIn, repository: ProductRepository = Depends(get_repository)):
    product = await repository.update(product_id, payload)
    if product is None:
        raise api_error(404, "Product not found for update")
    logger.info("Updated product %s", product_id)
    return product


@app.delete("/api/products/{product_id}", responses=ERROR_RESPONSES)
async def delete_product(product_id: str, repository: ProductRepository = Depends(get_repository)):
    if not await repository.delete(product_id):
        raise api_error(404, "Product not found for deletion")
    logger.info("Deleted product %s", product_id)
    return {"message": "Product deleted"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
