"""
Fleet telemetry API.

Runs the robot simulation on a fixed tick, serves the entity and
simulation-control HTTP surface and streams telemetry to WebSocket
observers at ``/ws/telemetry``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth.credentials import CredentialVerifier, VerifiedIdentity, require_identity
from config.settings import Settings, get_settings, validate_startup
from errors.handlers import register_exception_handlers
from fleet.memory_store import InMemoryEntityStore
from fleet.models import EntityConfigUpdate, EntitySpec, EntityStatus
from fleet.query import BatteryLevel, EntityQuery, paginate
from fleet.redis_store import RedisEntityStore
from fleet.seed import seed_demo_fleet
from fleet.store import EntityStore
from health.service import HealthCheckService
from middleware.rate_limiter import setup_rate_limiting
from middleware.request_id import RequestIDMiddleware
from observability.service import initialize_observability
from realtime.gateway import ConnectionGateway
from realtime.hub import BroadcastHub
from simulation.battery import BatteryModel
from simulation.clock import SimulationClock
from simulation.controller import SimulationController
from simulation.engine import SimulationEngine

logger = logging.getLogger(__name__)

SERVICE_NAME = "Fleet Telemetry API"
SERVICE_VERSION = "1.0.0"


def create_entity_store(settings: Settings) -> EntityStore:
    if settings.entity_store_type == "redis":
        return RedisEntityStore(settings.redis_url or "redis://localhost:6379")
    return InMemoryEntityStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the store, seed it, and run the simulation clock for the app's lifetime."""
    settings: Settings = app.state.settings
    store = app.state.store
    clock: SimulationClock = app.state.clock

    logger.info(f"Starting {SERVICE_NAME}...")
    if isinstance(store, RedisEntityStore):
        await store.connect()
    if settings.seed_demo_fleet:
        try:
            await seed_demo_fleet(store)
        except Exception as e:
            # the simulation still runs against whatever the store holds
            logger.error(f"Failed to seed demo fleet: {e}", exc_info=True)
    clock.start()

    yield

    logger.info(f"Shutting down {SERVICE_NAME}...")
    await clock.stop()
    await app.state.hub.close_all()
    if isinstance(store, RedisEntityStore):
        await store.disconnect()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    validate_startup(settings)
    observability = initialize_observability(settings)

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

    store = create_entity_store(settings)
    controller = SimulationController(global_enabled=settings.simulation_enabled_at_start)
    engine = SimulationEngine(battery=BatteryModel(settings.battery_drain_rates))
    hub = BroadcastHub()
    clock = SimulationClock(
        store=store,
        controller=controller,
        engine=engine,
        hub=hub,
        interval_seconds=settings.tick_interval_seconds,
        stall_threshold_seconds=settings.cycle_stall_threshold_seconds,
        observability=observability,
    )
    verifier = CredentialVerifier(settings.jwt_secret, settings.jwt_algorithm)

    app.state.settings = settings
    app.state.observability = observability
    app.state.store = store
    app.state.controller = controller
    app.state.engine = engine
    app.state.hub = hub
    app.state.clock = clock
    app.state.verifier = verifier
    app.state.gateway = ConnectionGateway(
        verifier=verifier,
        hub=hub,
        queue_size=settings.outbound_queue_size,
        policy=settings.overflow_policy,
    )
    app.state.health = HealthCheckService(store=store, clock=clock, check_timeout=5.0)

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Content-Type",
            "Authorization",
            "X-Request-ID",
        ],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
        max_age=600,
    )
    setup_rate_limiting(app, requests_per_minute=settings.rate_limit_requests_per_minute)
    # outermost, so rate-limited responses carry the request id too
    app.add_middleware(RequestIDMiddleware)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    @app.get("/")
    async def root():
        return {"message": f"{SERVICE_NAME} is running"}

    # Robots

    @app.get("/api/robots")
    async def list_robots(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=50),
        status: Optional[EntityStatus] = None,
        zone: Optional[str] = None,
        battery_level: Optional[BatteryLevel] = Query(default=None, alias="batteryLevel"),
        search: Optional[str] = None,
        identity: VerifiedIdentity = Depends(require_identity),
    ):
        query = EntityQuery(
            page=page,
            limit=limit,
            status=status,
            zone=zone,
            battery_level=battery_level,
            search=search,
        )
        entities = await request.app.state.store.list()
        return paginate(entities, query).model_dump(mode="json", by_alias=True)

    @app.post("/api/robots", status_code=201)
    async def create_robot(
        spec: EntitySpec,
        request: Request,
        identity: VerifiedIdentity = Depends(require_identity),
    ):
        robot = await request.app.state.store.create(spec)
        request.app.state.observability.log_audit_event(
            event_type="robot_management",
            user_id=identity.user_id,
            resource_type="robot",
            resource_id=robot.id,
            action="create",
        )
        return {"success": True, "robot": robot.model_dump(mode="json", by_alias=True)}

    @app.get("/api/robots/{robot_id}")
    async def get_robot(
        robot_id: str,
        request: Request,
        identity: VerifiedIdentity = Depends(require_identity),
    ):
        robot = await request.app.state.store.get(robot_id)
        return robot.model_dump(mode="json", by_alias=True)

    @app.put("/api/robots/{robot_id}/config")
    async def update_robot_config(
        robot_id: str,
        update: EntityConfigUpdate,
        request: Request,
        identity: VerifiedIdentity = Depends(require_identity),
    ):
        """
        Merge a partial configuration into the robot.

        Only ``config`` is written, so a concurrent simulation tick keeps
        its location, battery and status changes.
        """
        store: EntityStore = request.app.state.store
        current = await store.get(robot_id)
        robot = await store.update(robot_id, {"config": update.apply_to(current.config)})
        request.app.state.observability.log_audit_event(
            event_type="robot_management",
            user_id=identity.user_id,
            resource_type="robot",
            resource_id=robot_id,
            action="update_config",
            details=update.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        return {"success": True, "robot": robot.model_dump(mode="json", by_alias=True)}

    # Simulation control

    @app.post("/api/simulation/start")
    async def start_simulation(request: Request, identity: VerifiedIdentity = Depends(require_identity)):
        request.app.state.controller.set_global(True)
        _audit_simulation(request, identity, None, "start")
        return {"success": True, "message": "Simulation started", "isRunning": True}

    @app.post("/api/simulation/stop")
    async def stop_simulation(request: Request, identity: VerifiedIdentity = Depends(require_identity)):
        request.app.state.controller.set_global(False)
        _audit_simulation(request, identity, None, "stop")
        return {"success": True, "message": "Simulation stopped", "isRunning": False}

    @app.get("/api/simulation/status")
    async def simulation_status(request: Request, identity: VerifiedIdentity = Depends(require_identity)):
        is_running = request.app.state.controller.get_global()
        return {
            "isRunning": is_running,
            "message": "Simulation is running" if is_running else "Simulation is stopped",
        }

    @app.post("/api/simulation/robot/{robot_id}/start")
    async def start_robot_simulation(
        robot_id: str,
        request: Request,
        identity: VerifiedIdentity = Depends(require_identity),
    ):
        request.app.state.controller.set_entity(robot_id, True)
        _audit_simulation(request, identity, robot_id, "start")
        return {
            "success": True,
            "message": f"Simulation started for robot {robot_id}",
            "robotId": robot_id,
            "isRunning": True,
        }

    @app.post("/api/simulation/robot/{robot_id}/stop")
    async def stop_robot_simulation(
        robot_id: str,
        request: Request,
        identity: VerifiedIdentity = Depends(require_identity),
    ):
        request.app.state.controller.set_entity(robot_id, False)
        _audit_simulation(request, identity, robot_id, "stop")
        return {
            "success": True,
            "message": f"Simulation stopped for robot {robot_id}",
            "robotId": robot_id,
            "isRunning": False,
        }

    @app.get("/api/simulation/robot/{robot_id}/status")
    async def robot_simulation_status(
        robot_id: str,
        request: Request,
        identity: VerifiedIdentity = Depends(require_identity),
    ):
        controller: SimulationController = request.app.state.controller
        is_running = controller.get_entity(robot_id)
        return {
            "robotId": robot_id,
            "isRunning": is_running,
            "simulated": controller.should_simulate(robot_id),
            "message": (
                f"Simulation is running for robot {robot_id}"
                if is_running else f"Simulation is stopped for robot {robot_id}"
            ),
        }

    # Telemetry stream

    @app.websocket("/ws/telemetry")
    async def telemetry_websocket(websocket: WebSocket):
        await websocket.app.state.gateway.handle(websocket)

    # Health

    @app.get("/health")
    async def health_basic(request: Request):
        result = await request.app.state.health.check_health()
        result["service"] = SERVICE_NAME
        result["version"] = SERVICE_VERSION
        return result

    @app.get("/health/ready")
    async def health_ready(request: Request):
        health_status = await request.app.state.health.check_readiness()
        response_data = health_status.to_dict()
        response_data["service"] = SERVICE_NAME
        response_data["version"] = SERVICE_VERSION
        status_code = 503 if health_status.status == "unhealthy" else 200
        return JSONResponse(content=response_data, status_code=status_code)

    @app.get("/health/live")
    async def health_live(request: Request):
        return await request.app.state.health.check_liveness()


def _audit_simulation(
    request: Request,
    identity: VerifiedIdentity,
    robot_id: Optional[str],
    action: str,
) -> None:
    request.app.state.observability.log_audit_event(
        event_type="simulation_control",
        user_id=identity.user_id,
        resource_type="robot" if robot_id else "simulation",
        resource_id=robot_id,
        action=action,
    )


app = create_app()

if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
