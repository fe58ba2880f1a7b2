"""Build stores in the layout written before schema versioning existed."""

from pathlib import Path

from sqlalchemy import create_engine, text

from channelwatch.db.sqlalchemy_core import DB_FILE_NAME

LEGACY_CHANNELS = [
    (1, "First Channel", "https://www.youtube.com/feeds/videos.xml?channel_id=UC_first"),
    (2, "Second Channel", "https://www.youtube.com/feeds/videos.xml?channel_id=UC_second"),
]

LEGACY_VIDEOS = [
    (1, "Old video", "https://www.youtube.com/watch?v=vid_a", "2019-03-04", 1, 1),
    (2, "Newer video", "https://www.youtube.com/watch?v=vid_b", "2020-11-30", 0, 1),
    (3, "Broken date", "https://www.youtube.com/watch?v=vid_c", "not a date", 0, 2),
]


def create_legacy_store(db_dir: Path, with_rows: bool = True) -> Path:
    """Create a legacy store file in ``db_dir`` and return its path.

    This function is synchronous and intended for test setup.
    """
    db_path = db_dir / DB_FILE_NAME
    engine = create_engine(f"sqlite:///{db_path}")
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE channel ("
                "id INTEGER PRIMARY KEY, name TEXT NOT NULL, url TEXT NOT NULL)"
            )
        )
        conn.execute(
            text(
                "CREATE TABLE video ("
                "id INTEGER PRIMARY KEY, title TEXT NOT NULL, url TEXT NOT NULL, "
                "date TEXT, thumbnail_url TEXT, watched BOOLEAN NOT NULL DEFAULT 0, "
                "channel_id INTEGER NOT NULL REFERENCES channel(id) ON DELETE CASCADE)"
            )
        )
        if with_rows:
            for channel_id, name, url in LEGACY_CHANNELS:
                conn.execute(
                    text("INSERT INTO channel (id, name, url) VALUES (:id, :name, :url)"),
                    {"id": channel_id, "name": name, "url": url},
                )
            for video_id, title, url, date, watched, channel_id in LEGACY_VIDEOS:
                conn.execute(
                    text(
                        "INSERT INTO video (id, title, url, date, thumbnail_url, "
                        "watched, channel_id) VALUES (:id, :title, :url, :date, "
                        ":thumb, :watched, :channel_id)"
                    ),
                    {
                        "id": video_id,
                        "title": title,
                        "url": url,
                        "date": date,
                        "thumb": f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
                        "watched": watched,
                        "channel_id": channel_id,
                    },
                )
    engine.dispose()
    return db_path
