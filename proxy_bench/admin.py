from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from proxy_bench.proxy import ProxyServer


def create_admin_app(server: ProxyServer) -> FastAPI:
    app = FastAPI(title="proxy-bench proxy admin")

    @app.get("/health")
    async def health():
        data = server.health()
        status_code = 200 if data["status"] == "ok" else 503
        return JSONResponse(content=data, status_code=status_code)

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return PlainTextResponse(data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    return app
