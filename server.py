"""HTTP server for the calendar aggregator."""
import asyncio
import json
import logging
import os
import re
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from config_loader import AppConfig, ConfigLoadError, load_config
from fetcher.ics_fetcher import IcsFetcher
from processor.ics_combiner import build_combined_calendar
from processor.refresh_orchestrator import RefreshOrchestrator, RefreshScheduler
from storage.event_cache import EventCache, select_events

logger = logging.getLogger(__name__)

ICS_MEDIA_TYPE = 'text/calendar; charset=utf-8'

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED_LOG_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including extra= fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_LOG_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip('/')


def _ics_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type=ICS_MEDIA_TYPE,
        headers={'Content-Disposition': f'inline; filename="{filename}"'}
    )


def sanitize_filename(name: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r'[^a-zA-Z0-9]', '_', name)


router = APIRouter()


@router.get('/api/sources')
def list_sources(request: Request) -> Dict[str, Any]:
    """List configured sources with their per-source ICS URLs."""
    config: AppConfig = request.app.state.config
    base_url = _base_url(request)

    sources = [
        {
            'id': source.id,
            'name': source.name,
            'color': source.color,
            'enabled': source.enabled,
            'icsUrl': f"{base_url}/ics/{source.id}.ics"
        }
        for source in config.sources
    ]
    return {
        'sources': sources,
        'combinedIcsUrl': f"{base_url}/ics/all.ics"
    }


@router.get('/api/events')
def list_events(request: Request, sources: Optional[str] = None) -> Dict[str, Any]:
    """Return cached events sorted by start, optionally filtered by source ids."""
    cache: EventCache = request.app.state.cache
    source_ids = sources.split(',') if sources else None

    # Read one snapshot so events and timestamp match
    snapshot = cache.snapshot
    events = sorted(select_events(snapshot, source_ids), key=lambda event: event.start)
    return {
        'events': [event.to_dict() for event in events],
        'lastRefresh': _iso(snapshot.last_refresh)
    }


@router.post('/api/refresh')
def refresh(request: Request) -> Dict[str, Any]:
    """Run a full refresh cycle before answering."""
    orchestrator: RefreshOrchestrator = request.app.state.orchestrator
    snapshot = orchestrator.refresh_all()
    return {'success': True, 'lastRefresh': _iso(snapshot.last_refresh)}


@router.get('/api/config')
def get_config(request: Request) -> Dict[str, Any]:
    config: AppConfig = request.app.state.config
    cache: EventCache = request.app.state.cache
    return {
        'title': config.title,
        'refreshInterval': config.refresh_interval,
        'lastRefresh': _iso(cache.get_last_refresh())
    }


# Must be registered before the per-source route, which would also match it
@router.get('/ics/all.ics')
def combined_calendar(request: Request) -> Response:
    """Serve all cached sources merged into one calendar."""
    cache: EventCache = request.app.state.cache
    return _ics_response(build_combined_calendar(cache.snapshot), 'all.ics')


@router.get('/ics/{source_id}.ics')
def source_calendar(request: Request, source_id: str) -> Response:
    """Serve the raw cached calendar of one source."""
    config: AppConfig = request.app.state.config
    cache: EventCache = request.app.state.cache

    ics_text = cache.get_raw_payload(source_id)
    if ics_text is None:
        return PlainTextResponse('Calendar not found', status_code=404)

    source = config.get_source(source_id)
    filename = sanitize_filename(source.name) if source else source_id
    return _ics_response(ics_text, f"{filename}.ics")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initial refresh on startup, then periodic refreshes until shutdown."""
    await asyncio.to_thread(app.state.orchestrator.refresh_all)
    app.state.scheduler.start()
    try:
        yield
    finally:
        app.state.scheduler.stop()


def create_app(
    config: AppConfig,
    cache: Optional[EventCache] = None,
    fetcher: Optional[IcsFetcher] = None
) -> FastAPI:
    """
    Build the FastAPI application and its collaborators.

    Args:
        config: Loaded configuration
        cache: Event cache (default: new empty cache)
        fetcher: Source fetcher (default: IcsFetcher with config timeout)

    Returns:
        FastAPI application
    """
    cache = cache or EventCache()
    fetcher = fetcher or IcsFetcher(timeout=config.fetch_timeout)
    orchestrator = RefreshOrchestrator(config.sources, fetcher, cache)

    app = FastAPI(title=config.title, lifespan=lifespan)
    app.state.config = config
    app.state.cache = cache
    app.state.orchestrator = orchestrator
    app.state.scheduler = RefreshScheduler(orchestrator, config.refresh_interval)
    app.include_router(router)
    return app


def main() -> None:
    """Load configuration and serve until interrupted."""
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))

    try:
        config = load_config()
    except ConfigLoadError as e:
        logger.error(f"Error loading config: {e}")
        sys.exit(1)

    app = create_app(config)
    logger.info(f"Server running on http://localhost:{config.port}")
    uvicorn.run(app, host='0.0.0.0', port=config.port, log_config=None)


if __name__ == '__main__':
    main()
