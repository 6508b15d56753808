import asyncio

from flask import current_app


def run_evaluation(evaluation_id, user_id, file_bytes, file_type, job_description, job_title,
                   original_filename=None):
    """RQ entry point: run one evaluation inside the worker's app context.

    Status events reach web clients through the Redis relay
    (``STATUS_RELAY=redis``); the outcome dict is kept as the job result.
    """
    services = current_app.extensions["resume_evaluator"]
    current_app.logger.info("[run_evaluation] start evaluation=%s user=%s", evaluation_id, user_id)
    outcome = asyncio.run(services.orchestrator.evaluate_resume(
        file_bytes, file_type, user_id, job_description, job_title,
        evaluation_id=evaluation_id, original_filename=original_filename,
    ))
    if outcome.success:
        current_app.logger.info("[run_evaluation] done evaluation=%s overall=%s persisted=%s",
                                evaluation_id, outcome.scores.overall, outcome.persisted)
    else:
        current_app.logger.info("[run_evaluation] evaluation=%s ended %s: %s",
                                evaluation_id, outcome.error_kind, outcome.error)
    return outcome.to_dict()
