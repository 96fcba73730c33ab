from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    engine = getattr(request.app.state, "engine", None)
    scheduler_status = "disabled"
    if engine is not None:
        scheduler_status = "running" if engine.scheduler.running else "stopped"

    telegram_task = getattr(request.app.state, "telegram_task", None)
    telegram_status = "disabled"
    if telegram_task is not None:
        telegram_status = "stopped" if telegram_task.done() else "running"

    return {
        "status": "ok",
        "services": {
            "api": "running",
            "engine": "live" if engine is not None and engine.live else "idle",
            "scheduler": scheduler_status,
            "telegram": telegram_status,
        },
    }


@router.get("/ready")
async def ready(request: Request):
    engine = getattr(request.app.state, "engine", None)
    live = bool(engine is not None and engine.live)
    return {"status": "ready" if live else "not_ready", "live": live}
