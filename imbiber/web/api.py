"""
API routes for Book Imbiber.
"""

import json
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from imbiber.config import get_runtime_config
from imbiber.library import author_suggestions
from imbiber.models import CheckRun, FollowedAuthor, OwnedBook
from imbiber.series import find_more_books_in_series, group_books_by_series
from imbiber.services import ServiceContext

router = APIRouter()


def get_services(request: Request) -> ServiceContext:
    return request.app.state.services


async def get_session(services: ServiceContext = Depends(get_services)):
    """Dependency for getting database sessions from the active services."""
    async with services.session_factory() as session:
        yield session


# Pydantic models for request/response
class FollowAuthorRequest(BaseModel):
    name: str
    author_id: Optional[str] = None
    books_count: int = Field(default=0, ge=0)
    genres: list[str] = Field(default_factory=list)


class FollowedAuthorResponse(BaseModel):
    id: str
    author_name: str
    author_id: Optional[str]
    books_count: int
    genres: list[str]
    last_checked: Optional[str]
    is_active: bool
    created_at: str


class BookCreate(BaseModel):
    title: str
    author: str = "Unknown"
    description: str = ""
    published_date: str = ""
    google_books_id: Optional[str] = None
    thumbnail: Optional[str] = None
    categories: str = ""
    average_rating: float = 0.0
    ratings_count: int = 0
    read: bool = False


class OwnedBookResponse(BaseModel):
    id: str
    title: str
    author: str
    description: str
    published_date: str
    google_books_id: Optional[str]
    thumbnail: Optional[str]
    categories: str
    average_rating: float
    ratings_count: int
    read: bool
    read_at: Optional[str]


class LibraryResponse(BaseModel):
    unread: list[OwnedBookResponse]
    read: list[OwnedBookResponse]


class ReadUpdate(BaseModel):
    read: bool = True


class CheckRunResponse(BaseModel):
    id: int
    started_at: str
    completed_at: Optional[str]
    status: str
    forced: bool
    total_users: int
    total_authors: int
    total_releases: int
    error_message: Optional[str]


class PushTestRequest(BaseModel):
    title: str = "Test Notification"
    body: str = "This is a test from Book Imbiber"


class SettingsResponse(BaseModel):
    """Response model for settings (excludes sensitive data)."""
    # Catalog
    google_books_api_url: str
    google_books_configured: bool
    default_language: str
    # Cache
    author_cache_ttl_hours: int
    query_cache_ttl_hours: int
    identifier_cache_ttl_days: int
    # Release checks
    check_cooldown_minutes: int
    check_interval_hours: int
    check_batch_size: int
    check_batch_delay_ms: int
    author_search_max_results: int
    release_year_window: int
    releases_per_notification: int
    notification_retention: int
    timezone: str
    next_check: Optional[str]
    # Bark
    bark_enabled: bool
    bark_configured: bool
    bark_server_url: str
    # HTTP
    request_timeout: int
    user_agent: str


class SettingsUpdate(BaseModel):
    """Request model for updating settings; only provided fields change."""
    google_books_api_url: Optional[str] = None
    google_books_api_key: Optional[str] = None
    default_language: Optional[str] = Field(default=None, min_length=2, max_length=8)
    author_cache_ttl_hours: Optional[int] = Field(default=None, ge=0)
    query_cache_ttl_hours: Optional[int] = Field(default=None, ge=0)
    identifier_cache_ttl_days: Optional[int] = Field(default=None, ge=0)
    check_cooldown_minutes: Optional[int] = Field(default=None, ge=0)
    check_interval_hours: Optional[int] = Field(default=None, ge=1, le=24 * 7)
    check_batch_size: Optional[int] = Field(default=None, ge=1, le=20)
    check_batch_delay_ms: Optional[int] = Field(default=None, ge=0, le=60000)
    author_search_max_results: Optional[int] = Field(default=None, ge=1, le=40)
    release_year_window: Optional[int] = Field(default=None, ge=0)
    releases_per_notification: Optional[int] = Field(default=None, ge=1)
    notification_retention: Optional[int] = Field(default=None, ge=1)
    timezone: Optional[str] = None
    bark_enabled: Optional[bool] = None
    bark_device_key: Optional[str] = None
    bark_server_url: Optional[str] = None
    request_timeout: Optional[int] = Field(default=None, ge=5, le=300)
    user_agent: Optional[str] = None


SCHEDULE_FIELDS = {"check_interval_hours", "timezone"}
CLEARABLE_FIELDS = {"google_books_api_key", "bark_device_key"}


def _author_response(author: FollowedAuthor) -> FollowedAuthorResponse:
    try:
        genres = json.loads(author.genres or "[]")
    except json.JSONDecodeError:
        genres = []
    return FollowedAuthorResponse(
        id=author.id,
        author_name=author.author_name,
        author_id=author.author_id,
        books_count=author.books_count or 0,
        genres=genres,
        last_checked=author.last_checked.isoformat() if author.last_checked else None,
        is_active=author.is_active,
        created_at=author.created_at.isoformat() if author.created_at else datetime.utcnow().isoformat(),
    )


def _book_response(row: OwnedBook) -> OwnedBookResponse:
    return OwnedBookResponse(
        id=row.id,
        title=row.title,
        author=row.author,
        description=row.description or "",
        published_date=row.published_date or "",
        google_books_id=row.google_books_id,
        thumbnail=row.thumbnail,
        categories=row.categories or "",
        average_rating=row.average_rating or 0.0,
        ratings_count=row.ratings_count or 0,
        read=row.is_read,
        read_at=row.read_at.isoformat() if row.read_at else None,
    )


# =============================================================================
# Settings API
# =============================================================================

@router.get("/settings", response_model=SettingsResponse)
async def get_settings():
    """Get current application settings (sensitive values masked)."""
    from imbiber.scheduler import get_next_run_time

    config = get_runtime_config()

    return SettingsResponse(
        google_books_api_url=config.google_books_api_url,
        google_books_configured=bool(config.google_books_api_key),
        default_language=config.default_language,
        author_cache_ttl_hours=config.author_cache_ttl_hours,
        query_cache_ttl_hours=config.query_cache_ttl_hours,
        identifier_cache_ttl_days=config.identifier_cache_ttl_days,
        check_cooldown_minutes=config.check_cooldown_minutes,
        check_interval_hours=config.check_interval_hours,
        check_batch_size=config.check_batch_size,
        check_batch_delay_ms=config.check_batch_delay_ms,
        author_search_max_results=config.author_search_max_results,
        release_year_window=config.release_year_window,
        releases_per_notification=config.releases_per_notification,
        notification_retention=config.notification_retention,
        timezone=config.timezone,
        next_check=get_next_run_time(),
        bark_enabled=config.bark_enabled,
        bark_configured=bool(config.bark_device_key),
        bark_server_url=config.bark_server_url,
        request_timeout=config.request_timeout,
        user_agent=config.user_agent,
    )


@router.patch("/settings")
async def update_settings(
    data: SettingsUpdate,
    db: AsyncSession = Depends(get_session),
    services: ServiceContext = Depends(get_services),
):
    """Update application settings."""
    from imbiber.config_store import update_runtime_config
    from imbiber.scheduler import reschedule_check_job

    updates: dict[str, Any] = {}
    for name, value in data.model_dump(exclude_none=True).items():
        # Empty string means "clear the key"
        if name in CLEARABLE_FIELDS and not value:
            value = None
        updates[name] = value

    if not updates:
        raise HTTPException(status_code=400, detail="No updates provided")

    await update_runtime_config(db, updates)
    services.apply_config()

    if SCHEDULE_FIELDS & updates.keys():
        reschedule_check_job()

    return {
        "status": "updated",
        "updated_fields": list(updates.keys()),
    }


# =============================================================================
# Catalog API
# =============================================================================

@router.get("/search")
async def search_books(
    q: str = "",
    max_results: int = Query(default=10, ge=1, le=40),
    locale: Optional[str] = None,
    services: ServiceContext = Depends(get_services),
):
    """Free-text catalog search."""
    books = await services.catalog.search_by_query(q, max_results=max_results, locale=locale)
    return {"query": q, "books": [book.to_dict() for book in books]}


@router.get("/isbn/{isbn}")
async def lookup_isbn(isbn: str, services: ServiceContext = Depends(get_services)):
    """Look up one book by ISBN-10 or ISBN-13."""
    book = await services.catalog.search_by_identifier(isbn)
    if book is None:
        raise HTTPException(status_code=404, detail="No book found for this ISBN")
    return book.to_dict()


@router.get("/series/more")
async def more_in_series(
    series_name: str,
    author: str,
    max_results: int = Query(default=20, ge=1, le=40),
    services: ServiceContext = Depends(get_services),
):
    """Catalog books that look like other volumes of a series."""
    entries = await find_more_books_in_series(services.catalog, series_name, author, max_results)
    return {
        "series_name": series_name,
        "books": [{**entry.book.to_dict(), "book_number": entry.book_number} for entry in entries],
    }


@router.delete("/cache")
async def clear_cache(services: ServiceContext = Depends(get_services)):
    """Drop every cached catalog response."""
    removed = await services.cache.clear_all()
    return {"status": "cleared", "removed": removed}


# =============================================================================
# Followed authors API
# =============================================================================

@router.get("/users/{user_id}/authors", response_model=list[FollowedAuthorResponse])
async def list_authors(user_id: str, services: ServiceContext = Depends(get_services)):
    """List the authors a user follows, newest first."""
    authors = await services.roster.authors_for(user_id)
    return [_author_response(a) for a in authors]


@router.post("/users/{user_id}/authors", response_model=FollowedAuthorResponse)
async def follow_author(
    user_id: str,
    data: FollowAuthorRequest,
    services: ServiceContext = Depends(get_services),
):
    """Start following an author."""
    author = await services.authors.follow_author(
        user_id,
        data.name,
        author_id=data.author_id,
        books_count=data.books_count,
        genres=data.genres,
    )
    return _author_response(author)


@router.delete("/users/{user_id}/authors/{author_id}")
async def unfollow_author(
    user_id: str,
    author_id: str,
    services: ServiceContext = Depends(get_services),
):
    """Stop following an author."""
    await services.authors.unfollow_author(user_id, author_id)
    return {"status": "deleted", "id": author_id}


@router.get("/users/{user_id}/authors/suggestions")
async def suggest_authors(
    user_id: str,
    min_books: int = Query(default=2, ge=1),
    limit: int = Query(default=5, ge=1, le=50),
    services: ServiceContext = Depends(get_services),
):
    """Authors the user owns several books by but does not follow."""
    library = await services.books.list_books(user_id)
    followed = await services.roster.authors_for(user_id)
    suggestions = author_suggestions(
        library.all_books,
        [a.author_name for a in followed],
        min_books=min_books,
        limit=limit,
    )
    return [
        {"name": s.name, "books_count": s.books_count, "reason": s.reason}
        for s in suggestions
    ]


# =============================================================================
# Library API
# =============================================================================

@router.get("/users/{user_id}/books", response_model=LibraryResponse)
async def list_books(user_id: str, services: ServiceContext = Depends(get_services)):
    """A user's library split into unread and read books."""
    library = await services.books.list_books(user_id)
    return LibraryResponse(
        unread=[_book_response(row) for row in library.unread],
        read=[_book_response(row) for row in library.read],
    )


@router.post("/users/{user_id}/books", response_model=OwnedBookResponse)
async def add_book(
    user_id: str,
    data: BookCreate,
    services: ServiceContext = Depends(get_services),
):
    """Add a book to the library."""
    if not data.title.strip():
        raise HTTPException(status_code=400, detail="Title cannot be empty")
    row = await services.books.add_book(user_id, data.model_dump(exclude={"read"}), read=data.read)
    return _book_response(row)


@router.patch("/users/{user_id}/books/{book_id}/read", response_model=OwnedBookResponse)
async def mark_book_read(
    user_id: str,
    book_id: str,
    data: ReadUpdate,
    services: ServiceContext = Depends(get_services),
):
    """Mark a book read (or unread again)."""
    row = await services.books.set_read(user_id, book_id, read=data.read)
    return _book_response(row)


@router.delete("/users/{user_id}/books/{book_id}")
async def delete_book(
    user_id: str,
    book_id: str,
    services: ServiceContext = Depends(get_services),
):
    """Remove a book from the library."""
    await services.books.delete_book(user_id, book_id)
    return {"status": "deleted", "id": book_id}


@router.get("/users/{user_id}/series")
async def list_series(user_id: str, services: ServiceContext = Depends(get_services)):
    """The user's library grouped into detected series and standalone books."""
    library = await services.books.list_books(user_id)
    grouping = group_books_by_series(library.all_books)
    return {
        "series": [
            {
                "series_name": group.series_name,
                "author": group.author,
                "confidence": group.confidence,
                "books": [
                    {**entry.book.to_dict(), "book_number": entry.book_number}
                    for entry in group.entries
                ],
            }
            for group in grouping.series
        ],
        "standalone": [book.to_dict() for book in grouping.standalone],
    }


# =============================================================================
# Release checks and notifications API
# =============================================================================

@router.post("/check/run")
async def trigger_check(
    force: bool = False,
    services: ServiceContext = Depends(get_services),
):
    """Manually trigger a release check for every user."""
    from imbiber.runner import run_check

    try:
        return await run_check(services, force_refresh=force)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/users/{user_id}/check")
async def trigger_user_check(
    user_id: str,
    force: bool = False,
    services: ServiceContext = Depends(get_services),
):
    """Release check for one user (pull-to-refresh)."""
    from imbiber.runner import run_check

    try:
        result = await run_check(services, force_refresh=force, user_id=user_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

    states = services.checker.states.get(user_id, {})
    result["authors_state"] = {name: state.value for name, state in states.items()}
    return result


@router.get("/users/{user_id}/notifications")
async def list_notifications(user_id: str, services: ServiceContext = Depends(get_services)):
    """Notification history, newest first."""
    records = await services.checker.list_notifications(user_id)
    return [record.to_dict() for record in records]


@router.get("/users/{user_id}/notifications/new-releases")
async def new_releases(user_id: str, services: ServiceContext = Depends(get_services)):
    """Unread releases with books the user owns by now filtered out."""
    library = await services.books.list_books(user_id)
    batches = await services.checker.current_new_releases(user_id, library.all_books)
    return [batch.to_dict() for batch in batches]


@router.post("/users/{user_id}/notifications/{record_id}/read")
async def mark_notification_read(
    user_id: str,
    record_id: str,
    services: ServiceContext = Depends(get_services),
):
    """Mark one notification read."""
    changed = await services.checker.mark_notification_read(user_id, record_id)
    return {"status": "read", "id": record_id, "changed": changed}


@router.delete("/users/{user_id}/notifications/{record_id}")
async def delete_notification(
    user_id: str,
    record_id: str,
    services: ServiceContext = Depends(get_services),
):
    """Delete one notification."""
    deleted = await services.checker.delete_notification(user_id, record_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "deleted", "id": record_id}


@router.get("/users/{user_id}/badge")
async def get_badge(user_id: str, services: ServiceContext = Depends(get_services)):
    return {"count": await services.badge.get(user_id)}


@router.delete("/users/{user_id}/badge")
async def clear_badge(user_id: str, services: ServiceContext = Depends(get_services)):
    await services.badge.clear(user_id)
    return {"count": 0}


@router.get("/runs", response_model=list[CheckRunResponse])
async def list_runs(
    limit: int = Query(default=20, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
):
    """List recent check runs."""
    result = await db.execute(
        select(CheckRun).order_by(desc(CheckRun.started_at), desc(CheckRun.id)).limit(limit)
    )
    runs = result.scalars().all()

    return [
        CheckRunResponse(
            id=r.id,
            started_at=r.started_at.isoformat(),
            completed_at=r.completed_at.isoformat() if r.completed_at else None,
            status=r.status,
            forced=r.forced,
            total_users=r.total_users,
            total_authors=r.total_authors,
            total_releases=r.total_releases,
            error_message=r.error_message,
        )
        for r in runs
    ]


# =============================================================================
# Push notification API
# =============================================================================

@router.post("/push/test")
async def test_push(
    data: PushTestRequest,
    services: ServiceContext = Depends(get_services),
):
    """Test Bark push notification."""
    if not services.notifier.ensure_permissions():
        raise HTTPException(
            status_code=400,
            detail="Bark push is disabled or the device key is not configured. Update it in Settings.",
        )

    success = await services.notifier.send(title=data.title, body=data.body)

    if success:
        return {"status": "sent", "title": data.title}
    else:
        raise HTTPException(status_code=500, detail="Failed to send notification")
