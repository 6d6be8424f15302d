"""Export schema table and overview/content classification.

Exporters name the same metric differently depending on the platform and
the account language. Every accepted spelling lives in ``ExportSchema`` so a
new exporter format is a data change: point ``EXPORT_SCHEMA_PATH`` at a JSON
file with the same shape as ``DEFAULT_EXPORT_SCHEMA``.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Literal

from pydantic import BaseModel, ValidationError

from social_analytics.config import settings
from social_analytics.normalize import has_any

logger = logging.getLogger(__name__)

ExportKind = Literal["overview", "content"]


class ExportSchema(BaseModel):
    """Alias and marker lists driving classification and field mapping.

    Alias lists are ordered: when a row carries several spellings of the
    same field, the first non-empty one in list order is used.
    """

    # Columns that only appear in account overview exports
    overview_markers: list[str]
    impressions_keys: list[str]
    # Columns that only appear in per-post content exports
    text_keys: list[str]

    overview_date: list[str]
    # Model attribute -> ordered aliases, coerced with coerce_int
    overview_metrics: dict[str, list[str]]

    content_post_id: list[str]
    content_date: list[str]
    content_text: list[str]
    content_url: list[str]
    content_metrics: dict[str, list[str]]


DEFAULT_EXPORT_SCHEMA = ExportSchema(
    overview_markers=["nuevos_seguidores", "dejar_de_seguir", "new_followers", "unfollows", "create_post"],
    impressions_keys=["impresiones", "impressions"],
    text_keys=["texto_post", "texto_del_post", "text", "content"],
    overview_date=["date", "fecha"],
    overview_metrics={
        "impressions": ["impresiones", "impressions"],
        "likes": ["me_gusta", "likes"],
        "interactions": ["interacciones", "interactions", "engagement", "engagement_rate"],
        "saves": ["guardados", "saves"],
        "shares": ["compartidos", "shares"],
        "new_followers": ["nuevos_seguidores", "new_followers"],
        "unfollows": ["dejar_de_seguir", "unfollows"],
        "replies": ["respuestas", "replies"],
        "reposts": ["reposts"],
        "profile_visits": ["visitas_del_perfil", "visitas_perfil", "profile_visits"],
        "create_post": ["create_post"],
        "video_plays": ["reproducciones_de_video", "reproducciones_video", "video_plays", "video_views"],
        "media_views": [
            "visualizaciones_de_contenido_multimedia",
            "visualizaciones_multimedia",
            "media_views",
        ],
    },
    content_post_id=["post_id", "id_del_post", "id", "tweet_id", "postid"],
    content_date=["fecha", "date", "published_at", "publishedat"],
    content_text=["texto_del_post", "texto_post", "text", "content"],
    content_url=["postear_enlace", "url_post", "url", "permalink"],
    content_metrics={
        "impressions": ["impresiones", "impressions"],
        "likes": ["me_gusta", "likes"],
        "interactions": ["interacciones", "interactions", "engagement", "engagement_rate"],
        "saves": ["guardados", "saves"],
        "shares": ["compartidos", "shares", "retweets"],
        "new_followers": ["nuevos_seguidores", "new_followers"],
        "replies": ["respuestas", "replies", "comments"],
        "reposts": ["reposts"],
        "profile_visits": ["visitas_del_perfil", "visitas_perfil", "profile_visits"],
        "detail_expands": ["detail_expands", "detail_expansions"],
        "url_clicks": ["url_clicks", "link_clicks"],
        "hashtag_clicks": ["hashtag_clicks"],
        "permalink_clicks": ["permalink_clicks"],
    },
)


class SchemaConfigError(Exception):
    """Raised when an export schema override file cannot be loaded."""


def load_export_schema(path: Path) -> ExportSchema:
    """Load an export schema table from a JSON file.

    Raises:
        SchemaConfigError: If the file is missing, not JSON, or has the wrong shape.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        return ExportSchema.model_validate(raw)
    except (OSError, ValueError, ValidationError) as exc:
        raise SchemaConfigError(f"Could not load export schema from '{path}': {exc}") from exc


@lru_cache(maxsize=1)
def get_export_schema() -> ExportSchema:
    """Return the configured export schema (override file or built-in table)."""
    if settings.export_schema_path:
        schema = load_export_schema(settings.export_schema_path)
        logger.info("Loaded export schema override from %s", settings.export_schema_path)
        return schema
    return DEFAULT_EXPORT_SCHEMA


def classify_export(
    keys: Iterable[str],
    file_name: str,
    schema: ExportSchema | None = None,
) -> ExportKind:
    """Decide whether a file is an account overview or a per-post content export.

    Overview and content exports share several metric columns, so columns
    unique to one schema are checked before the weaker signal of
    "impressions present, post text absent".

    Args:
        keys: Normalized header keys of the file.
        file_name: Original upload file name.
        schema: Alias table; defaults to the configured one.
    """
    schema = schema or get_export_schema()
    key_set = set(keys)

    if "overview" in file_name.lower():
        return "overview"
    if has_any(key_set, schema.overview_markers):
        return "overview"
    if has_any(key_set, schema.impressions_keys) and not has_any(key_set, schema.text_keys):
        return "overview"
    return "content"
