from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from redis import Redis
from redis.exceptions import RedisError
from rq import Queue
from flask import current_app

# kwargs understood by Queue.enqueue but not by the job function itself
RQ_KEYS = {'job_id', 'job_timeout', 'timeout', 'at_front', 'depends_on', 'result_ttl', 'ttl', 'meta', 'description'}


class RQWrapper:
    def __init__(self):
        self.redis = None
        self.queue = None

    def init_app(self, app):
        self.redis = None
        self.queue = None
        url = app.config.get("REDIS_URL")
        if not url:
            app.logger.info('REDIS_URL not set, jobs run synchronously')
            return
        # connecting is lazy; reachability is checked on enqueue
        self.redis = Redis.from_url(url)
        self.queue = Queue(app.config.get("RQ_QUEUE", "default"), connection=self.redis)

    def _run_sync(self, func, *args, **kwargs):
        safe_kwargs = {k: v for k, v in kwargs.items() if k not in RQ_KEYS}
        return func(*args, **safe_kwargs)

    def enqueue(self, func, *args, **kwargs):
        """Enqueue ``func`` on RQ, or call it in-process when Redis is unreachable.

        Returns the RQ job, or None when the call ran synchronously.
        """
        if not self.queue:
            self._run_sync(func, *args, **kwargs)
            return None
        try:
            return self.queue.enqueue(func, *args, **kwargs)
        except RedisError:
            current_app.logger.exception('RQ enqueue failed, falling back to sync execution')
            self._run_sync(func, *args, **kwargs)
            return None


db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
rq = RQWrapper()
