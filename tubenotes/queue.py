"""RQ queue helpers."""

from redis import Redis
from rq import Queue, Retry

from tubenotes.config import settings


def get_queue() -> Queue:
    conn = Redis.from_url(settings.redis_url)
    return Queue(settings.rq_queue_name, connection=conn)


def enqueue_task(func_path: str, *args, max_retries: int = 0):
    """Enqueue a task by dotted path.

    Summarization runs are never retried by RQ: a failed attempt is terminal
    and the client starts a new one.
    """
    q = get_queue()
    retry = Retry(max=max_retries, interval=[10, 30]) if max_retries else None
    return q.enqueue(
        func_path,
        *args,
        job_timeout=settings.job_timeout,
        retry=retry,
    )
