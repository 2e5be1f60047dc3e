import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from antithesis.lifecycle import setup_complete
from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

import race_oracle.constants as C
from race_oracle.config import cfg
from race_oracle.errors import HarnessError
from race_oracle.logging_config import setup_logging
from race_oracle.oracle import Oracle
from race_oracle.rpc import NodeClient

setup_logging()
log = logging.getLogger("race_oracle.app")


class ScenarioReq(BaseModel):
    capacity: int = Field(ge=0, le=1)
    resource: C.Resource = C.Resource.GAS
    account: str | None = None


class AccountResp(BaseModel):
    address: str
    balance: int
    nonce: int


def _oracle(request: Request) -> Oracle:
    return request.app.state.oracle


def create_app(conf: dict | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the control API.

    transport replaces the HTTP transport of the node client; tests pass an
    httpx.MockTransport serving a fake node.
    """
    conf = conf or cfg
    to = conf.get("timeout", {})

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = NodeClient.from_config(conf, transport=transport)
        oracle = Oracle(conf, client)

        # Startup probes to make sure the node is producing blocks
        async with asyncio.timeout(float(to.get("startup", 120))):
            log.info("Probing RPC endpoint...")
            height = await client.probe(
                max_retries=int(to.get("startup_retries", 30)),
                retry_delay=float(to.get("startup_retry_delay", 2.0)),
            )
            log.info("RPC OK at height %s. Waiting for block production...", height)
            height = await oracle.finality.wait(int(to.get("initial_blocks", 1)))

        await oracle.refresh_gas()
        app.state.oracle = oracle
        setup_complete({"height": height, "funding": oracle.pool.funding, "gas_price": oracle.gas.gas_price})
        log.info(f"Node is live at height {height}. Ready to accept requests!")

        try:
            yield
        finally:
            log.info("Shutting down...")
            await client.aclose()
        log.info("Shutdown complete")

    app = FastAPI(
        title="Race Oracle",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Scenarios", "description": "Run concurrent-conflict scenarios"},
            {"name": "State", "description": "Recorded verdicts and gas schedule"},
            {"name": "Accounts", "description": "Query live account state"},
        ],
    )

    r_scenarios = APIRouter(prefix="/scenarios", tags=["Scenarios"])
    r_state = APIRouter(prefix="/state", tags=["State"])
    r_accounts = APIRouter(prefix="/accounts", tags=["Accounts"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # Registered before /{kind} so "suite" is not parsed as a scenario kind
    @r_scenarios.post("/suite")
    async def run_suite(request: Request):
        oracle = _oracle(request)
        try:
            reports = await oracle.run_suite()
        except HarnessError as e:
            log.error("Suite aborted: %s", e)
            raise HTTPException(status_code=503, detail=f"{type(e).__name__}: {e}")
        return {
            "passed": all(r.passed for r in reports),
            "reports": [r.to_dict() for r in reports],
        }

    @r_scenarios.post("/{kind}")
    async def run_scenario(kind: C.TxKind, req: ScenarioReq, request: Request):
        oracle = _oracle(request)
        try:
            report = await oracle.run_scenario(kind, req.capacity, resource=req.resource, account=req.account)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except HarnessError as e:
            log.error("Scenario %s aborted: %s", kind, e)
            await oracle.restore_after_abort()
            raise HTTPException(status_code=503, detail=f"{type(e).__name__}: {e}")

        try:
            await oracle.restore()
        except HarnessError as e:
            raise HTTPException(status_code=503, detail=f"restore failed: {type(e).__name__}: {e}")
        return report.to_dict()

    @r_state.get("/summary")
    async def state_summary(request: Request):
        return _oracle(request).snapshot_stats()

    @r_state.get("/scenarios")
    async def state_scenarios(request: Request, failed_only: bool = False):
        store = _oracle(request).store
        return await (store.failures() if failed_only else store.all_records())

    @r_state.get("/gas")
    async def state_gas(request: Request):
        return _oracle(request).gas.to_dict()

    @r_accounts.get("/{address}", response_model=AccountResp)
    async def get_account(address: str, request: Request):
        try:
            account = await _oracle(request).account(address)
        except HarnessError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return AccountResp(address=account.address, balance=account.balance, nonce=account.nonce)

    app.include_router(r_scenarios)
    app.include_router(r_state)
    app.include_router(r_accounts)
    return app


app = create_app()
