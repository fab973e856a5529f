"""Tubely video hosting backend.

Modules:
    - core: Configuration, logging, metrics, database and object storage
    - modules.auth: Users, password hashing and JWT bearer authentication
    - modules.transcoding: Upload staging and ffmpeg/ffprobe processing
    - modules.video: Video metadata, media ingestion and signed playback URLs
"""

__version__ = "0.1.0"
