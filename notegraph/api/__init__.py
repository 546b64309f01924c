from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notegraph.api.endpoints import get_endpoints_router
from notegraph.service import KnowledgeIndex


def create_app(*, index: KnowledgeIndex, analysis_timeout: float | None = None) -> FastAPI:
    """Create FastAPI app."""
    app = FastAPI()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        router=get_endpoints_router(index=index, analysis_timeout=analysis_timeout)
    )

    return app
