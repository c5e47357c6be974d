from fastapi import FastAPI

from rackctl.api.middleware import AuthMiddleware
from rackctl.api.routes import cluster

app = FastAPI(title="rackctl")
app.add_middleware(AuthMiddleware)

app.include_router(cluster.router)
