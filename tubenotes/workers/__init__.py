"""Workers package exports for RQ dotted-path task resolution."""

# RQ resolves tasks through `tubenotes.workers.tasks.*`.
from . import tasks  # noqa: F401
