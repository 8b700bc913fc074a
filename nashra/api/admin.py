from fastapi import APIRouter, Depends

from nashra.api.deps import get_pipeline, require_admin
from nashra.container import Pipeline
from nashra.schemas.response import Response

router = APIRouter()

PROVIDER_KEYS = {
    "alpha_vantage": ("ALPHA_VANTAGE_KEY", "stocks"),
    "news_api": ("NEWS_API_KEY", "news"),
    "openai": ("OPENAI_API_KEY", "ai"),
    "anthropic": ("ANTHROPIC_API_KEY", "ai"),
    "google_translate": ("GOOGLE_TRANSLATE_KEY", "translation"),
}


@router.get("/api/admin/settings/apis", response_model=Response)
def list_api_settings(
    _: dict = Depends(require_admin),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Which provider keys are configured. Values are never returned."""
    settings = pipeline.settings
    data = [
        {"name": name, "category": category, "env": env, "configured": bool(getattr(settings, env))}
        for name, (env, category) in PROVIDER_KEYS.items()
    ]
    return Response.success(data={
        "sources": {
            "stocks": settings.STOCK_SOURCE,
            "news": settings.NEWS_SOURCE,
            "indices": settings.INDEX_SOURCE,
        },
        "apis": data,
    }, total=len(data))
