import asyncio
from contextlib import asynccontextmanager

from decouple import config as dconfig
from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from loguru import logger
from starlette import status
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import RedirectResponse

from lnbridge.lightning.models import InitLnRepoUpdate, LnInitState
from lnbridge.lightning.router import router as ln_router
from lnbridge.lightning.service import initialize_ln_repo, ln
from lnbridge.logging import configure_logger

# start server with "uvicorn lnbridge.main:app --reload"

configure_logger()

node_type = dconfig("ln_node", default="lnd_rest").lower()
if node_type == "":
    node_type = "none"

ln_status = InitLnRepoUpdate()


@logger.catch(exclude=(HTTPException,))
async def _initialize_lightning():
    global ln_status

    if node_type == "none":
        logger.info("Lightning node is disabled, skipping initialization")
        return

    async for u in initialize_ln_repo():
        if u.state != ln_status.state or u.msg != ln_status.msg:
            logger.debug(f"Lightning status: {u.state.value} {u.msg}")
        ln_status = u


@asynccontextmanager
async def lifespan(app: FastAPI):
    loop = asyncio.get_event_loop()
    task = loop.create_task(_initialize_lightning())

    yield

    if not task.done():
        task.cancel()
    if ln is not None:
        await ln.close()


app = FastAPI(lifespan=lifespan)
if node_type != "none":
    app.include_router(ln_router)

origins = [
    "http://localhost",
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def index(req: Request):
    return RedirectResponse(
        "/docs",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@app.get("/status")
def get_status() -> InitLnRepoUpdate:
    if node_type == "none":
        return InitLnRepoUpdate(state=LnInitState.OFFLINE, msg="disabled")

    return ln_status
