import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import config
from .utils.logger import setup_logger


def _prepare_folders() -> None:
    """Create the logs/workspace roots and the workspace folders the API writes into."""
    base_dirs = config.get('base_dirs', {})
    for folder in base_dirs.values():
        os.makedirs(folder, exist_ok=True)

    workspace_root = base_dirs.get('workspace')
    if not workspace_root:
        return
    for sub in config.get('workspace_sub_dirs', {}).values():
        # nested entries are created on demand by the run that needs them
        if sub and os.path.sep not in sub:
            os.makedirs(os.path.join(workspace_root, sub), exist_ok=True)


_prepare_folders()
setup_logger('app_init').info('SQL dialect switch package loaded.')

api_cfg = config.get('api', {})
app = FastAPI(
    title="SQL Dialect Switch API",
    description="Rewrites SQL between Oracle, MySQL and PostgreSQL.",
    version=api_cfg.get('version', 'v1'),
)

# Browser tools on any localhost port may call the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from .api.routes import api_router  # noqa: E402

app.include_router(api_router)

_route_logger = setup_logger('routes')
for route in app.routes:
    methods = getattr(route, 'methods', None)
    if methods:
        _route_logger.debug(f"{sorted(methods)}  {route.path}")
