from fastapi import APIRouter

from chatpanels import __version__
from chatpanels.providers.registry import registry

router = APIRouter()


@router.get("/health")
def health():
    """Constant-time health check; no vendor is contacted."""
    return {"status": "healthy", "providers": len(registry.list_providers())}


@router.get("/version")
async def version():
    return {"version": __version__}
