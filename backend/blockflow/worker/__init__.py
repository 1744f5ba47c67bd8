"""In-process background work.

Runs started by scheduled triggers are queued on ``RunQueue`` and drained by
asyncio worker tasks inside the API process; the queue is started and stopped
by the FastAPI lifespan through ``Runtime.start`` / ``Runtime.stop``.
"""
