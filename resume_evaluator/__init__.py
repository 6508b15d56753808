import atexit

from flask import Flask

from .extensions import db, login_manager, migrate, rq


class ResumeServices:
    """Pipeline components built from the app config, one set per app."""

    def __init__(self, app):
        from .pipeline import PipelineOrchestrator
        from .services.broadcaster import ProgressBroadcaster
        from .services.extractor import Extractor
        from .services.gateway import PersistenceGateway
        from .services.grader import Grader
        from .services.validator import Validator

        cfg = app.config
        self.validator = Validator(max_file_size_mb=cfg.get("MAX_FILE_SIZE_MB", 10))
        self.extractor = Extractor(
            ocr_enabled=cfg.get("OCR_ENABLED", True),
            ocr_lang=cfg.get("OCR_LANG", "eng"),
            ocr_resolution=cfg.get("OCR_RESOLUTION", 300),
            min_chars_per_page=cfg.get("OCR_MIN_CHARS_PER_PAGE", 25),
        )
        self.grader = Grader(
            backend=cfg.get("GRADER_BACKEND", "heuristic"),
            openai_api_key=cfg.get("OPENAI_API_KEY"),
            openai_model=cfg.get("OPENAI_MODEL", "gpt-4o-mini"),
            weight_ai=cfg.get("GRADER_WEIGHT_AI", 0.6),
            weight_h=cfg.get("GRADER_WEIGHT_H", 0.4),
        )
        self.gateway = PersistenceGateway()
        self.broadcaster = ProgressBroadcaster(
            relay=cfg.get("STATUS_RELAY", "local"),
            redis_url=cfg.get("REDIS_URL"),
            subscription_ttl=cfg.get("STATUS_SUBSCRIPTION_TTL", 120),
        )
        self.orchestrator = PipelineOrchestrator(
            validator=self.validator,
            extractor=self.extractor,
            grader=self.grader,
            gateway=self.gateway,
            broadcaster=self.broadcaster,
            workers=cfg.get("PIPELINE_WORKERS", 4),
            stage_timeout=cfg.get("STAGE_TIMEOUT_SECONDS", 60),
            extraction_timeout=cfg.get("EXTRACTION_TIMEOUT_SECONDS"),
            grading_timeout=cfg.get("GRADING_TIMEOUT_SECONDS"),
        )

    def start(self):
        self.broadcaster.init()

    def shutdown(self):
        self.broadcaster.shutdown()
        self.orchestrator.shutdown()


def create_app(config_object='config.Config'):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db, directory="alembic")
    login_manager.init_app(app)
    rq.init_app(app)

    from . import auth  # registers the request loader
    from . import models  # noqa: F401

    services = ResumeServices(app)
    services.start()
    app.extensions["resume_evaluator"] = services
    atexit.register(services.shutdown)

    from .blueprints.resumes import bp as resumes_bp
    app.register_blueprint(resumes_bp, url_prefix="/api/resumes")

    if app.config.get("CREATE_TABLES"):
        with app.app_context():
            db.create_all()

    @app.get('/healthz')
    def healthz():
        return {"ok": True, "inFlight": len(services.orchestrator.in_flight())}

    app.logger.info('resume evaluator ready (storage=%s relay=%s grader=%s)',
                    app.config.get('STORAGE_BACKEND'), app.config.get('STATUS_RELAY'),
                    app.config.get('GRADER_BACKEND'))
    return app
