import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from accounts import Accounts
from config import settings
from database import database_time, initialize_database
from errors import LibraryError, StorageError
from library import Library

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

library = Library()
accounts = Accounts()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A broken database is logged, not fatal: requests then fail one by one.
    initialize_database()
    logger.info("%s %s listening for requests", settings.app_name, settings.app_version)
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


# --- Error handling ---
@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    if isinstance(exc, StorageError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(sqlite3.Error)
async def database_error_handler(request: Request, exc: sqlite3.Error):
    logger.error("%s %s failed: database unavailable", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"message": StorageError.default_message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


# --- Models ---
class UserModel(BaseModel):
    id: int
    email: str
    name: str
    role: str
    created_at: str | None = None


class RegisterModel(BaseModel):
    email: str
    password: str
    name: str
    role: str | None = None


class LoginModel(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    message: str
    user: UserModel


class BookModel(BaseModel):
    id: int
    title: str
    author: str
    isbn: str
    category: str | None = None
    available: bool
    added_at: str | None = None


class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str
    category: str | None = None


class BookUpdateModel(BaseModel):
    # Full replace: every field must be sent, category may be null.
    title: str
    author: str
    isbn: str
    category: Optional[str]
    available: bool


class BookResponse(BaseModel):
    message: str
    book: BookModel


class BorrowRecordModel(BaseModel):
    id: int
    book_id: int
    user_id: int
    borrowed_date: str | None = None
    due_date: str | None = None
    returned_date: str | None = None
    status: str


class BorrowModel(BaseModel):
    book_id: int
    user_id: int


class ReturnModel(BaseModel):
    record_id: int


class BorrowResponse(BaseModel):
    message: str
    record: BorrowRecordModel


class LoanModel(BookModel):
    borrowed_date: str | None = None
    due_date: str | None = None
    status: str
    record_id: int


class MessageModel(BaseModel):
    message: str


class DatabaseStatusModel(BaseModel):
    message: str
    time: str


# --- Health ---
@app.get("/", response_class=PlainTextResponse)
def root():
    """Liveness probe."""
    return f"{settings.app_name} is running"


@app.get("/test-db", response_model=DatabaseStatusModel)
def test_db():
    """Check that the database answers a query."""
    try:
        now = database_time()
    except (sqlite3.Error, StorageError) as e:
        raise StorageError("Database connection failed") from e
    return DatabaseStatusModel(message="Database connected successfully", time=str(now))


# --- Auth ---
@app.post("/api/auth/register", response_model=UserResponse, status_code=201)
def register(payload: RegisterModel):
    user = accounts.register(payload.email, payload.password, payload.name, payload.role)
    return UserResponse(message="User registered successfully", user=UserModel(**user.to_dict()))


@app.post("/api/auth/login", response_model=UserResponse)
def login(payload: LoginModel):
    user = accounts.authenticate(payload.email, payload.password)
    return UserResponse(message="Login successful", user=UserModel(**user.to_dict()))


# --- Catalog ---
@app.get("/api/books", response_model=List[BookModel])
def get_books(search: Optional[str] = Query(None, description="Case-insensitive title/author substring")):
    """List all books by title, optionally filtered."""
    return [BookModel(**b.to_dict()) for b in library.list_books(search)]


@app.post("/api/books", response_model=BookResponse, status_code=201)
def add_book(payload: BookCreateModel):
    book = library.add_book(payload.title, payload.author, payload.isbn, payload.category)
    return BookResponse(message="Book added successfully", book=BookModel(**book.to_dict()))


@app.put("/api/books/{book_id}", response_model=BookResponse)
def update_book(book_id: int, payload: BookUpdateModel):
    book = library.update_book(
        book_id,
        title=payload.title,
        author=payload.author,
        isbn=payload.isbn,
        category=payload.category,
        available=payload.available,
    )
    return BookResponse(message="Book updated successfully", book=BookModel(**book.to_dict()))


@app.delete("/api/books/{book_id}", response_model=MessageModel)
def delete_book(book_id: int):
    library.remove_book(book_id)
    return MessageModel(message="Book deleted successfully")


# --- Circulation ---
@app.post("/api/borrow/borrow", response_model=BorrowResponse, status_code=201)
def borrow_book(payload: BorrowModel):
    record = library.borrow_book(payload.book_id, payload.user_id)
    return BorrowResponse(message="Book borrowed successfully", record=BorrowRecordModel(**record.to_dict()))


@app.post("/api/borrow/return", response_model=BorrowResponse)
def return_book(payload: ReturnModel):
    record = library.return_book(payload.record_id)
    return BorrowResponse(message="Book returned successfully", record=BorrowRecordModel(**record.to_dict()))


@app.get("/api/borrow/user/{user_id}", response_model=List[LoanModel])
def get_user_loans(user_id: int):
    """Books the user currently has out, soonest due first."""
    return [LoanModel(**loan.to_dict()) for loan in library.list_user_loans(user_id)]
