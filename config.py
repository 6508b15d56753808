import os
from dotenv import load_dotenv
load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///resume_evaluator.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", "./storage")
    S3_ENDPOINT = os.getenv("S3_ENDPOINT")
    S3_REGION = os.getenv("S3_REGION")
    S3_BUCKET = os.getenv("S3_BUCKET")
    S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
    S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    # grading: "heuristic" or "openai" (model scores blended with heuristics)
    GRADER_BACKEND = os.getenv("GRADER_BACKEND", "heuristic")
    GRADER_WEIGHT_AI = float(os.getenv("GRADER_WEIGHT_AI", "0.6"))
    GRADER_WEIGHT_H = float(os.getenv("GRADER_WEIGHT_H", "0.4"))

    # upload / extraction
    MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "10"))
    OCR_ENABLED = os.getenv("OCR_ENABLED", "1") == "1"
    OCR_LANG = os.getenv("OCR_LANG", "eng")
    OCR_RESOLUTION = int(os.getenv("OCR_RESOLUTION", "300"))
    OCR_MIN_CHARS_PER_PAGE = int(os.getenv("OCR_MIN_CHARS_PER_PAGE", "25"))

    # pipeline
    PIPELINE_WORKERS = int(os.getenv("PIPELINE_WORKERS", "4"))
    STAGE_TIMEOUT_SECONDS = float(os.getenv("STAGE_TIMEOUT_SECONDS", "60"))
    EXTRACTION_TIMEOUT_SECONDS = float(os.getenv("EXTRACTION_TIMEOUT_SECONDS", "120"))
    GRADING_TIMEOUT_SECONDS = float(os.getenv("GRADING_TIMEOUT_SECONDS", "90"))

    # status channel: "local" (in-process) or "redis" (pub/sub relay for RQ workers)
    STATUS_RELAY = os.getenv("STATUS_RELAY", "local")
    STATUS_HEARTBEAT_SECONDS = float(os.getenv("STATUS_HEARTBEAT_SECONDS", "15"))
    STATUS_SUBSCRIPTION_TTL = float(os.getenv("STATUS_SUBSCRIPTION_TTL", "120"))
    API_TOKEN_MAX_AGE = int(os.getenv("API_TOKEN_MAX_AGE", str(60 * 60 * 24)))

    # create tables on startup instead of running migrations (local dev, tests)
    CREATE_TABLES = os.getenv("CREATE_TABLES", "0") == "1"

    # background jobs
    RQ_QUEUE = os.getenv("RQ_QUEUE", "default")
    RQ_JOB_TIMEOUT = int(os.getenv("RQ_JOB_TIMEOUT", "600"))
