import asyncio
import contextlib
import logging

from databases import Database
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

import config
import db
from domain.exceptions import InvalidRequest
import services
from worker import Worker, openai_generator, setup_logging


CONFIG = config.Config()


logger = logging.getLogger(__name__)


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"ok": True, "worker": CONFIG.worker_id})


async def recommend(request: Request) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse({"ok": False, "error": "body must be JSON"}, status_code=400)
    if not isinstance(payload, dict):
        return JSONResponse({"ok": False, "error": "body must be an object"}, status_code=400)

    try:
        queued = await services.enqueue_blend(payload, jobs=request.app.state.jobs)
    except InvalidRequest as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return JSONResponse({"ok": True, **queued})


async def job_detail(request: Request) -> JSONResponse:
    id = request.path_params["id"]
    try:
        job = await services.poll_job(id, jobs=request.app.state.jobs)
    except db.JobNotFound:
        return JSONResponse({"ok": False, "error": f"job {id} not found"}, status_code=404)
    return JSONResponse({"ok": True, "job": job})


def create_app(
    *,
    database: Database | None = None,
    settings: config.Config | None = None,
    start_worker: bool | None = None,
) -> Starlette:
    database = db.db if database is None else database
    settings = CONFIG if settings is None else settings
    start_worker = settings.worker_enabled if start_worker is None else start_worker

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        setup_logging(settings.log_level)
        await database.connect()
        await db.create_db(database)
        task: asyncio.Task[None] | None = None
        worker: Worker | None = None
        if start_worker:
            worker = Worker(
                jobs=app.state.jobs,
                catalog_source=db.IngredientsRepository(database),
                generator=openai_generator(settings),
                settings=settings,
            )
            task = asyncio.create_task(worker.run())
        yield
        if worker is not None and task is not None:
            worker.stop()
            await task
        await database.disconnect()

    app = Starlette(
        debug=True if settings.env == config.Env.local else False,
        routes=[
            Route("/health", health),
            Route("/api/recommend", recommend, methods=["POST"]),
            Route("/api/jobs/{id:str}", job_detail),
        ],
        lifespan=lifespan,
    )
    app.state.jobs = db.JobsRepository(database)
    return app


app = create_app()
