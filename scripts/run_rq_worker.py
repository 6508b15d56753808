"""Run an RQ worker inside the Flask app context.

Usage:
  source .venv/bin/activate
  export OBJC_DISABLE_INITIALIZE_FORK_SAFETY=YES   # macOS fork safety if needed
  STATUS_RELAY=redis python scripts/run_rq_worker.py

The worker builds the app so jobs can use ``current_app`` and the pipeline
services. Run the web process with ``STATUS_RELAY=redis`` too, otherwise
status events emitted here never reach its subscribers.
"""

import os
import sys

# Ensure project root is on sys.path when running from scripts/ or other cwd
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import redis
from rq import Queue, Worker

from resume_evaluator import create_app


def main():
    app = create_app()
    redis_url = app.config.get('REDIS_URL') or os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    conn = redis.from_url(redis_url)
    if app.config.get('STATUS_RELAY') != 'redis':
        app.logger.warning('STATUS_RELAY is not "redis"; web clients will not see progress from this worker')
    with app.app_context():
        q = Queue(app.config.get('RQ_QUEUE', 'default'), connection=conn)
        worker = Worker([q], connection=conn)
        print('RQ worker starting (pid', os.getpid(), ')')
        try:
            worker.work(burst=False, with_scheduler=True, logging_level='INFO')
        finally:
            print('RQ worker exiting (pid', os.getpid(), ')')


if __name__ == '__main__':
    main()
