from typing import Optional

from redis import Redis
from rq import Queue

from metransfer.config import Settings

QUEUE_NAME = "thumbnails"


def get_queue(settings: Settings) -> Optional[Queue]:
    """Return the thumbnail RQ queue, or None when no Redis connection is configured."""
    if settings.redis_url is None:
        return None
    connection = Redis.from_url(str(settings.redis_url))
    return Queue(QUEUE_NAME, connection=connection)
