import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from latency_profile import load_profile
from latency_simulator import LatencySimulator, ProfileError

host = os.environ.get('LATENCY_HOST', '0.0.0.0')
port = int(os.environ.get('LATENCY_PORT', '8080'))

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: profile is read once and shared read-only by every request
    app.state.simulator = LatencySimulator(load_profile())
    yield


app = FastAPI(lifespan=lifespan)


def get_simulator(request: Request) -> LatencySimulator:
    return request.app.state.simulator


@app.exception_handler(ProfileError)
async def profile_error(request: Request, exc: ProfileError):
    logger.error(f'{request.url.path} -> {exc}')
    return JSONResponse({'error': str(exc)}, status_code=500)


@app.get('/simulate_latency')
async def simulate_latency(sim: LatencySimulator = Depends(get_simulator)):
    result = await sim.simulate()
    return JSONResponse(result.as_dict())


@app.get('/profile')
async def profile(sim: LatencySimulator = Depends(get_simulator)):
    return JSONResponse(dict(sim.profile))


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host=host, port=port, log_level='warning')
