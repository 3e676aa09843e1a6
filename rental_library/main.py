from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rental_library.core.config import configure_logging
from rental_library.core.database import init_db
from rental_library.api import routes
from rental_library.services.errors import LibraryError, NotFound

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Rental Library", lifespan=lifespan)
app.include_router(routes.router)


@app.exception_handler(LibraryError)
def library_error_handler(request: Request, exc: LibraryError):
    status_code = 404 if isinstance(exc, NotFound) else 400
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "error": exc.kind})


@app.get("/health")
def health():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}
