"""FastAPI server for the API catalog."""

import io
import json
import logging
import os
import zipfile
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from bruno_catalog.config import AppConfig, load_config
from bruno_catalog.db import Database
from bruno_catalog.downloader import Downloader
from bruno_catalog.errors import FatalConfigurationError
from bruno_catalog.models import ScrapeRun
from bruno_catalog.pipeline import ConversionPipeline
from bruno_catalog.runner import BatchRunner
from bruno_catalog.sources import BaseSource, DiscoveryOptions, create_source

load_dotenv()

logger = logging.getLogger("bruno_catalog")

app = FastAPI(
    title="Bruno API Catalog",
    version="1.0.0",
    description=(
        "Catalog of public OpenAPI specifications converted to Bruno collections. "
        "Browse APIs by tag, download collections, and trigger discovery runs."
    ),
)

# --- Rate limiting ---
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return Response(
        content=json.dumps({"error": "Rate limit exceeded. Please slow down."}),
        status_code=429,
        media_type="application/json",
    )


# --- CORS ---
default_origins = "http://localhost:3000,http://127.0.0.1:3000"
cors_origins = os.environ.get("CORS_ORIGINS", default_origins).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def service_header_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Powered-By"] = "bruno-api-catalog"
    return response


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return load_config(os.environ.get("CATALOG_CONFIG", "config.yaml"))


@lru_cache(maxsize=1)
def _database(db_path: str) -> Database:
    return Database(db_path)


def get_db(config: AppConfig = Depends(get_config)) -> Database:
    return _database(config.db_path)


def with_tags(db: Database, api: dict) -> dict:
    api["tags"] = db.get_api_tags(api["id"])
    return api


# --- Models ---

class ScrapeRequest(BaseModel):
    min_stars: Optional[int] = None
    max_results: Optional[int] = None


class ImportRequest(BaseModel):
    max_apis: Optional[int] = None
    skip_existing: bool = True


class RegenerateRequest(BaseModel):
    api_id: Optional[str] = None


# --- Background runs ---

def start_run(config: AppConfig, db: Database, source_name: str):
    """Create the run record now so its id can be returned before the run executes."""
    downloader = Downloader(config)
    pipeline = ConversionPipeline(config, downloader)
    source = create_source(source_name, config, db, downloader)
    runner = BatchRunner(config, db, pipeline)
    try:
        run = runner.start(source)
    except FatalConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Scheduled {source_name} run {run.id}")
    return runner, source, run


async def execute_run(runner: BatchRunner, source: BaseSource, options: DiscoveryOptions,
                      run: ScrapeRun):
    try:
        await runner.run(source, options, run)
    finally:
        await source.close()
        await runner.pipeline.close()


# --- Routes ---

@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "bruno-api-catalog"}


@app.get("/api/apis")
@limiter.limit("60/minute")
async def list_apis(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    search: str = "",
    order_by: str = "created_at",
    db: Database = Depends(get_db),
):
    """List cataloged APIs with pagination and name/description search."""
    offset = (page - 1) * per_page
    total = db.count_apis(search)
    apis = [with_tags(db, a) for a in db.list_apis(per_page, offset, search, order_by)]
    return {
        "apis": apis,
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
    }


@app.get("/api/apis/{api_id}")
@limiter.limit("60/minute")
async def get_api(request: Request, api_id: str, db: Database = Depends(get_db)):
    api = db.get_api(api_id)
    if not api:
        raise HTTPException(status_code=404, detail="API not found")
    return with_tags(db, api)


@app.get("/api/apis/{api_id}/download")
@limiter.limit("20/minute")
async def download_collection(request: Request, api_id: str,
                              config: AppConfig = Depends(get_config),
                              db: Database = Depends(get_db)):
    """Serve the API's collection directory as a zip archive."""
    api = db.get_api(api_id)
    if not api:
        raise HTTPException(status_code=404, detail="API not found")

    collection_path = api["collection_path"]
    if not collection_path:
        raise HTTPException(status_code=404, detail="Collection not generated")

    # Path traversal protection: resolve and verify within data dir
    data_dir = os.path.realpath(config.data_dir)
    resolved = os.path.realpath(collection_path)
    if not resolved.startswith(data_dir + os.sep):
        raise HTTPException(status_code=403, detail="Access denied")
    if not os.path.isdir(resolved):
        raise HTTPException(status_code=404, detail="Collection not found on disk")

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for root, _, files in os.walk(resolved):
            for name in files:
                full = os.path.join(root, name)
                zf.write(full, os.path.relpath(full, resolved))

    filename = f"{api['name']}-{api['version'] or 'collection'}.zip".replace(" ", "_")
    return Response(
        content=buf.getvalue(),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/tags")
@limiter.limit("60/minute")
async def list_tags(request: Request, db: Database = Depends(get_db)):
    return db.list_tags()


@app.get("/api/tags/{tag_name}/apis")
@limiter.limit("60/minute")
async def apis_by_tag(request: Request, tag_name: str, db: Database = Depends(get_db)):
    return [with_tags(db, a) for a in db.get_apis_by_tag(tag_name)]


@app.get("/api/stats")
async def stats(db: Database = Depends(get_db)):
    return db.get_stats()


@app.post("/api/scrape", status_code=202)
@limiter.limit("5/minute")
async def start_scrape(request: Request, background_tasks: BackgroundTasks,
                       req: Optional[ScrapeRequest] = None,
                       config: AppConfig = Depends(get_config),
                       db: Database = Depends(get_db)):
    """Start a GitHub discovery run in the background."""
    req = req or ScrapeRequest()
    runner, source, run = start_run(config, db, "github")
    options = DiscoveryOptions(min_stars=req.min_stars, max_results=req.max_results)
    background_tasks.add_task(execute_run, runner, source, options, run)
    return {"run_id": run.id, "status": run.status.value}


@app.get("/api/scrape/latest")
async def latest_scrape(db: Database = Depends(get_db)):
    run = db.get_latest_scrape_run()
    if not run:
        raise HTTPException(status_code=404, detail="No scrape runs yet")
    return run


@app.get("/api/scrape/{run_id}")
async def get_scrape(run_id: str, db: Database = Depends(get_db)):
    run = db.get_scrape_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Scrape run not found")
    return run


@app.post("/api/import/apisguru", status_code=202)
@limiter.limit("5/minute")
async def import_apisguru(request: Request, background_tasks: BackgroundTasks,
                          req: Optional[ImportRequest] = None,
                          config: AppConfig = Depends(get_config),
                          db: Database = Depends(get_db)):
    """Start an APIs.guru import in the background."""
    req = req or ImportRequest()
    runner, source, run = start_run(config, db, "apisguru")
    options = DiscoveryOptions(max_results=req.max_apis, skip_existing=req.skip_existing)
    background_tasks.add_task(execute_run, runner, source, options, run)
    return {"run_id": run.id, "status": run.status.value}


@app.post("/api/regenerate-docs", status_code=202)
@limiter.limit("5/minute")
async def regenerate_docs(request: Request, background_tasks: BackgroundTasks,
                          req: Optional[RegenerateRequest] = None,
                          config: AppConfig = Depends(get_config),
                          db: Database = Depends(get_db)):
    req = req or RegenerateRequest()
    if req.api_id and not db.get_api(req.api_id):
        raise HTTPException(status_code=404, detail="API not found")
    runner = BatchRunner(config, db, ConversionPipeline(config))
    background_tasks.add_task(runner.regenerate_docs, req.api_id)
    return {"status": "started", "api_id": req.api_id}
