"""Seed the database with sample exports for development and testing.

Usage:
    python scripts/seed_sample.py --user-id 1
    python scripts/seed_sample.py --user-id 1 --reset  # drop the user's data first

Generates and ingests, through the same pipeline as the upload route:
    - a Spanish, semicolon-delimited account overview export (90 days)
    - an English, comma-delimited per-post content export (20 posts)
Prints a bearer token for the user when JWT_SECRET is configured.
"""

import argparse
import csv
import random
import sys
import tempfile
from datetime import date, timedelta
from pathlib import Path

# Ensure the package is importable when running from the project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from social_analytics.auth import create_access_token
from social_analytics.config import settings
from social_analytics.database import Database
from social_analytics.ingest import ingest_csv
from social_analytics.uploads import reset_user_data

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

SEED = 42
random.seed(SEED)

NUM_POSTS = 20
DAYS = 90
BASE_DATE = date.today() - timedelta(days=DAYS)

POST_TEXTS = [
    "Cinco métricas que de verdad importan en tu cuenta",
    "How we doubled profile visits without paid reach",
    "Hilo: lo que aprendí publicando a diario durante un mes",
    "Stop chasing impressions, start measuring saves",
    "El formato carrusel sigue funcionando en 2026",
    "A quick teardown of our best performing post",
    "Por qué los reposts valen más que los me gusta",
    "Three hooks that consistently get replies",
]

OVERVIEW_HEADER = [
    "Fecha",
    "Impresiones",
    "Me gusta",
    "Interacciones",
    "Guardados",
    "Compartidos",
    "Nuevos seguidores",
    "Dejar de seguir",
    "Respuestas",
    "Reposts",
    "Visitas del perfil",
    "Reproducciones de vídeo",
]

CONTENT_HEADER = [
    "Post id",
    "Date",
    "Text",
    "Permalink",
    "Impressions",
    "Likes",
    "Engagement",
    "Retweets",
    "Replies",
    "Url clicks",
    "Detail expands",
]


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


def _thousands(n: int) -> str:
    """Format with "." as the thousands separator, the way Spanish exports do."""
    return f"{n:,}".replace(",", ".")


def write_overview_csv(path: Path) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, delimiter=";")
        writer.writerow(OVERVIEW_HEADER)
        for i in range(DAYS):
            day = BASE_DATE + timedelta(days=i)
            impressions = random.randint(400, 8000)
            likes = random.randint(int(impressions * 0.01), int(impressions * 0.05))
            writer.writerow([
                day.isoformat(),
                _thousands(impressions),
                likes,
                likes + random.randint(0, 40),
                random.randint(0, 15),
                random.randint(0, 10),
                random.randint(0, 12),
                random.randint(0, 4),
                random.randint(0, 20),
                random.randint(0, 8),
                random.randint(5, 60),
                random.randint(0, 300),
            ])


def write_content_csv(path: Path) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CONTENT_HEADER)
        interval = DAYS // NUM_POSTS
        for i in range(NUM_POSTS):
            post_id = 1_900_000_000_000_000_000 + i
            impressions = random.randint(800, 12000)
            writer.writerow([
                post_id,
                (BASE_DATE + timedelta(days=i * interval)).isoformat(),
                POST_TEXTS[i % len(POST_TEXTS)],
                f"https://x.com/sample/status/{post_id}",
                impressions,
                random.randint(int(impressions * 0.01), int(impressions * 0.06)),
                random.randint(int(impressions * 0.02), int(impressions * 0.08)),
                random.randint(0, 30),
                random.randint(0, 25),
                random.randint(0, 60),
                random.randint(0, 120),
            ])


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed sample analytics exports.")
    parser.add_argument("--user-id", type=int, default=1, help="Owner of the seeded rows")
    parser.add_argument("--reset", action="store_true", help="Delete the user's data first")
    args = parser.parse_args()

    database = Database()
    database.open()
    try:
        with tempfile.TemporaryDirectory() as tmp:
            tmp_dir = Path(tmp)
            overview_path = tmp_dir / "account_overview_analytics.csv"
            content_path = tmp_dir / "content_analytics.csv"
            write_overview_csv(overview_path)
            write_content_csv(content_path)

            session = database.session()
            try:
                if args.reset:
                    stats = reset_user_data(session, args.user_id)
                    print(f"Removed {stats.total_rows} rows and {stats.uploads} uploads.")
                for path in (overview_path, content_path):
                    result = ingest_csv(session, path, path.name, args.user_id)
                    print(f"Imported {result.rows_imported} {result.kind} rows from {path.name}")
            finally:
                session.close()
    finally:
        database.close()

    if settings.auth_enabled:
        print(f"Bearer token for user {args.user_id}:")
        print(create_access_token(args.user_id))
    else:
        print("JWT_SECRET is not set; no token printed.")


if __name__ == "__main__":
    main()
