"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Media Catalog
        # `name` is the dedup key for import/backup, hence UNIQUE per kind
        conn.execute("""
        CREATE TABLE IF NOT EXISTS photos (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            name            TEXT NOT NULL UNIQUE,
            file_path       TEXT NOT NULL,
            mime_type       TEXT NOT NULL,
            size_bytes      INTEGER NOT NULL,
            capture_time    TEXT,
            aperture        REAL,
            shutter_speed   TEXT,
            iso             INTEGER,
            focal_length    REAL,
            white_balance   TEXT,
            width           INTEGER,
            height          INTEGER,
            orientation     INTEGER,
            latitude        REAL,
            longitude       REAL,
            altitude        REAL,
            device_make     TEXT,
            device_model    TEXT,
            location_name   TEXT,
            source_id       TEXT,
            created_at      TEXT NOT NULL
        );
        """)

        conn.execute("""
        CREATE TABLE IF NOT EXISTS videos (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            name                TEXT NOT NULL UNIQUE,
            file_path           TEXT NOT NULL,
            mime_type           TEXT NOT NULL,
            size_bytes          INTEGER NOT NULL,
            capture_time        TEXT,
            duration_seconds    REAL,
            width               INTEGER,
            height              INTEGER,
            frame_rate          REAL,
            video_codec         TEXT,
            video_bitrate_kbps  INTEGER,
            audio_codec         TEXT,
            audio_bitrate_kbps  INTEGER,
            audio_channels      INTEGER,
            audio_sample_rate   INTEGER,
            thumbnail           BLOB,
            thumbnail_mime_type TEXT,
            source_id           TEXT,
            created_at          TEXT NOT NULL
        );
        """)

        # 3. Reverse Geocoding Cache (coordinates rounded to 3 decimals)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS location_cache (
            latitude        REAL NOT NULL,
            longitude       REAL NOT NULL,
            language        TEXT NOT NULL,
            display_name    TEXT,
            cached_at       TEXT NOT NULL,
            PRIMARY KEY (latitude, longitude, language)
        );
        """)

        # 4. External Drive Backups
        conn.execute("""
        CREATE TABLE IF NOT EXISTS storage_backups (
            backup_path     TEXT PRIMARY KEY,
            source_path     TEXT NOT NULL,
            backed_up_at    TEXT NOT NULL
        );
        """)

        # 5. Upload Ledger (content hash is the dedup key)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS uploaded_files (
            file_hash       TEXT PRIMARY KEY,
            name            TEXT NOT NULL,
            remote_id       TEXT NOT NULL,
            uploaded_at     TEXT NOT NULL
        );
        """)

        # 6. Commenters and comments imported from shared-album exports
        conn.execute("""
        CREATE TABLE IF NOT EXISTS commenters (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            name            TEXT NOT NULL UNIQUE,
            created_at      TEXT NOT NULL
        );
        """)

        # `media_id` points into photos or videos depending on `media_kind`
        conn.execute("""
        CREATE TABLE IF NOT EXISTS comments (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            media_kind      TEXT NOT NULL,
            media_id        INTEGER NOT NULL,
            commenter_id    INTEGER REFERENCES commenters(id),
            comment_seq     INTEGER NOT NULL,
            body            TEXT NOT NULL,
            commented_on    TEXT,
            created_at      TEXT NOT NULL,
            UNIQUE (media_kind, media_id, comment_seq)
        );
        """)

        # 7. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_capture ON photos(capture_time);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_videos_capture ON videos(capture_time);")

    logging.debug("Database schema initialized.")
