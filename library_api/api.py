import logging
import secrets
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Security, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, StrictBool

from library_api.book import utc_now
from library_api.config import Settings, settings
from library_api.errors import LibraryError, StorageError
from library_api.library import Library

logger = logging.getLogger(__name__)


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    available: bool
    borrower: Optional[str] = None
    borrowedAt: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class BookPageModel(BaseModel):
    total: int
    page: int
    limit: int
    data: List[BookModel]


class BookCreateModel(BaseModel):
    # Unknown fields (borrower, id, timestamps...) are dropped here
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    author: Optional[str] = None
    available: Optional[StrictBool] = None


class BookUpdateModel(BaseModel):
    """Title/author changes. ``available`` is type-checked, then ignored."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    author: Optional[str] = None
    available: Optional[StrictBool] = None


class BorrowModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    borrower: Optional[str] = None


class DeleteResponseModel(BaseModel):
    message: str
    id: int


# --- Security ---
API_KEY_HEADER = "X-API-Key"
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def check_api_key(api_key: Optional[str], expected: Optional[str]) -> Optional[JSONResponse]:
    """Return the rejection for a request carrying ``api_key``, or None to let it through."""
    if not expected:
        return None
    if not api_key:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Missing API key"},
            headers={"WWW-Authenticate": "APIKey"},
        )
    if not secrets.compare_digest(api_key.encode(), expected.encode()):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": "Could not validate credentials"},
        )
    return None


def get_library(request: Request) -> Library:
    return request.app.state.library


# The key is checked by the access_gate middleware before any body parsing;
# declaring the header here only documents it in the OpenAPI schema.
router = APIRouter(dependencies=[Security(api_key_header)], tags=["books"])


# --- API Endpoints ---
@router.get("/books", response_model=BookPageModel)
def list_books(
    q: Optional[str] = Query(None, description="Search title or author (case-insensitive)"),
    page: Optional[int] = Query(None, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Books per page (capped)"),
    library: Library = Depends(get_library),
):
    """List books with optional search and paging."""
    return library.list_books(query=q, page=page, limit=limit).to_dict()


@router.get("/books/search", response_model=BookPageModel)
def search_books(
    q: Optional[str] = Query(None, description="Search query"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    library: Library = Depends(get_library),
):
    return library.list_books(query=q, page=page, limit=limit).to_dict()


@router.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, library: Library = Depends(get_library)):
    return library.find_book(book_id).to_dict()


@router.post("/books", response_model=BookModel, status_code=status.HTTP_201_CREATED)
def create_book(payload: Optional[BookCreateModel] = None, library: Library = Depends(get_library)):
    payload = payload or BookCreateModel()
    book = library.add_book(payload.title, payload.author, payload.available)
    return book.to_dict()


@router.put("/books/{book_id}", response_model=BookModel)
def update_book(book_id: str, payload: Optional[BookUpdateModel] = None,
                library: Library = Depends(get_library)):
    """Update title and/or author. Availability only changes through borrow/return."""
    payload = payload or BookUpdateModel()
    return library.update_book(book_id, payload.model_dump(exclude_none=True)).to_dict()


@router.patch("/books/{book_id}", response_model=BookModel)
def patch_book(book_id: str, payload: Optional[BookUpdateModel] = None,
               library: Library = Depends(get_library)):
    payload = payload or BookUpdateModel()
    return library.patch_book(book_id, payload.model_dump(exclude_none=True)).to_dict()


@router.delete("/books/{book_id}", response_model=DeleteResponseModel)
def delete_book(book_id: str, library: Library = Depends(get_library)):
    removed_id = library.remove_book(book_id)
    return {"message": "Book deleted successfully", "id": removed_id}


@router.api_route("/borrow/{book_id}", methods=["POST", "PUT"], response_model=BookModel)
def borrow_book(book_id: str, payload: Optional[BorrowModel] = None,
                library: Library = Depends(get_library)):
    payload = payload or BorrowModel()
    return library.borrow_book(book_id, payload.borrower).to_dict()


@router.api_route("/return/{book_id}", methods=["POST", "PUT"], response_model=BookModel)
def return_book(book_id: str, library: Library = Depends(get_library)):
    return library.return_book(book_id).to_dict()


# --- Error Handlers ---
async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid value')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": errors},
    )


# --- Application ---
def create_app(config: Optional[Settings] = None, library: Optional[Library] = None) -> FastAPI:
    """Build the FastAPI application.

    When ``library`` is omitted, the configured store is opened (and seeded)
    during application start-up.
    """
    config = config or settings
    logging.basicConfig(level=config.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.library is None:
            app.state.library = Library.from_settings(config)
            logger.info(f"Using {config.storage_backend} storage")
        yield

    app = FastAPI(title=config.app_name, version=config.app_version, lifespan=lifespan)
    app.state.settings = config
    app.state.library = library

    # Registered first so it sits innermost: CORS preflights and security
    # headers still apply to rejected requests.
    @app.middleware("http")
    async def access_gate(request: Request, call_next):
        if request.url.path.startswith(config.api_prefix):
            rejection = check_api_key(request.headers.get(API_KEY_HEADER), config.api_key)
            if rejection is not None:
                logger.warning(f"Rejected {request.method} {request.url.path}: {rejection.status_code}")
                return rejection
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        return response

    app.add_exception_handler(LibraryError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/health")
    def health(request: Request):
        """Lightweight health check; never behind the access gate."""
        total_books = None
        try:
            total_books = request.app.state.library.total_books()
            status_text = "healthy"
        except StorageError:
            status_text = "degraded"
        return {
            "status": status_text,
            "timestamp": utc_now(),
            "total_books": total_books,
            "storage": config.storage_backend,
        }

    app.include_router(router, prefix=config.api_prefix)
    return app


app = create_app()
