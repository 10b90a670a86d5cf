import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError, confloat, conint

from config import CONFIG
from ledger import ActionResult, Failure
from population import build_provider, create_engine
from settlement import SettlementEngine

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="MemeEcon Settlement Backend", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

FAILURE_STATUS = {
    Failure.BUSY: 409,
    Failure.UNKNOWN_AGENT: 404,
}

# ---------- Request Models ----------

class SetupRequest(BaseModel):
    num_bots: conint(ge=0, le=1000) = CONFIG.population.num_bots
    seed: Optional[int] = None
    provider: str = "heuristic"  # none / heuristic / llm

class CountRequest(BaseModel):
    count: conint(ge=1) = 1

class AmountRequest(BaseModel):
    amount: confloat(gt=0)

class RatioRequest(BaseModel):
    ratio: confloat(ge=0, le=1) = 0.5

# ---------- Simulation Manager ----------

class SimulationManager:
    def __init__(self):
        self.engine: Optional[SettlementEngine] = None
        self.is_running = False
        self.active_websocket: Optional[WebSocket] = None
        self.auto_interval_seconds = 1.0

    def initialize(self, setup: Optional[SetupRequest] = None) -> SettlementEngine:
        setup = setup or SetupRequest()
        provider = build_provider(setup.provider, CONFIG, setup.seed)
        logger.info(f"Initializing economy with {setup.num_bots} bots ({setup.provider} decisions)...")
        self.engine = create_engine(provider, CONFIG, seed=setup.seed, num_bots=setup.num_bots)
        # Remote oracle calls are slow and rate limited
        self.auto_interval_seconds = 4.0 if setup.provider == "llm" else 1.0
        return self.engine

    def require_engine(self) -> SettlementEngine:
        if self.engine is None:
            self.initialize()
        return self.engine

    def state(self) -> Dict[str, Any]:
        engine = self.require_engine()
        return {
            "ledger": engine.ledger.snapshot(),
            "amm": engine.amm.to_dict(),
            "busy": engine.busy,
            "phase": engine.state.value,
        }

    async def run_loop(self):
        logger.info("Starting auto-advance loop")
        try:
            while self.is_running and self.active_websocket:
                # Looked up every day so a SETUP mid-run switches the loop to the new economy
                result = await self.require_engine().advance_day()
                if result.ok:
                    await self.active_websocket.send_json({"type": "DAY", "log": result.log.to_dict()})
                await asyncio.sleep(self.auto_interval_seconds)
        except WebSocketDisconnect:
            self.is_running = False
        except Exception as e:
            logger.exception(f"Simulation loop error: {e}")
            self.is_running = False
            if self.active_websocket:
                await self.active_websocket.send_json({"error": str(e)})


manager = SimulationManager()

# ---------- Helpers ----------

def _respond(result: ActionResult) -> Dict[str, Any]:
    if not result.ok:
        status = FAILURE_STATUS.get(result.failure, 400)
        raise HTTPException(status_code=status, detail={"failure": result.failure.value, "reason": result.message})
    return {"result": result.to_dict(), **manager.state()}


def _act(action: str, *args) -> Dict[str, Any]:
    return _respond(manager.require_engine().act(action, None, *args))

# ---------- API Endpoints ----------

@app.post("/setup")
async def setup(req: SetupRequest):
    if manager.engine is not None and manager.engine.busy:
        raise HTTPException(status_code=409, detail={"failure": Failure.BUSY.value, "reason": "day-step in progress"})
    try:
        manager.initialize(req)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return manager.state()

@app.get("/state")
async def get_state():
    return manager.state()

@app.get("/history")
async def get_history():
    return [log.to_dict() for log in manager.require_engine().history]

@app.post("/actions/craft")
async def craft(req: CountRequest):
    return _act("craft", req.count)

@app.post("/actions/salvage")
async def salvage(req: CountRequest):
    return _act("salvage", req.count)

@app.post("/actions/open-chests")
async def open_chests(req: CountRequest):
    return _act("open_chests", req.count)

@app.post("/actions/invest-medals")
async def invest_medals():
    return _act("invest_medals")

@app.post("/actions/stake")
async def stake(req: AmountRequest):
    return _act("stake", req.amount)

@app.post("/actions/unstake")
async def unstake(req: AmountRequest):
    return _act("unstake", req.amount)

@app.post("/actions/sell")
async def sell(req: RatioRequest):
    return _act("sell_ratio", req.ratio)

@app.post("/claims/pool")
async def claim_pool():
    return _act("claim_pool_reward")

@app.post("/claims/redistribution")
async def claim_redistribution():
    return _act("claim_redistribution")

@app.post("/claims/staking")
async def claim_staking():
    return _act("claim_staking_reward")

@app.post("/advance")
async def advance_day():
    result = await manager.require_engine().advance_day()
    if not result.ok:
        raise HTTPException(status_code=FAILURE_STATUS.get(result.failure, 400),
                            detail={"failure": result.failure.value, "reason": "day-step already in progress"})
    notes: Dict[int, List[str]] = {k: v for k, v in result.notes.items() if v}
    return {"log": result.log.to_dict(), "notes": notes, **manager.state()}

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    manager.active_websocket = websocket
    logger.info("WebSocket connected")

    try:
        while True:
            data = await websocket.receive_json()
            command = data.get("command")

            if command == "SETUP":
                if manager.engine is not None and manager.engine.busy:
                    await websocket.send_json({"type": "BUSY"})
                    continue
                try:
                    manager.initialize(SetupRequest(**data.get("config", {})))
                except (ValueError, ValidationError) as e:
                    await websocket.send_json({"type": "ERROR", "error": str(e)})
                    continue
                await websocket.send_json({"type": "SETUP_COMPLETE"})
            elif command == "START":
                if not manager.is_running:
                    manager.is_running = True
                    asyncio.create_task(manager.run_loop())
            elif command == "STOP":
                manager.is_running = False
            elif command == "ADVANCE":
                result = await manager.require_engine().advance_day()
                if result.ok:
                    await websocket.send_json({"type": "DAY", "log": result.log.to_dict()})
                else:
                    await websocket.send_json({"type": "BUSY"})

    except WebSocketDisconnect:
        manager.is_running = False
        manager.active_websocket = None
        logger.info("Client disconnected")
