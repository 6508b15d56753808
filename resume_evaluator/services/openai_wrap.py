"""Model-backed resume grading through the OpenAI Responses HTTP API.

Called with ``requests`` directly rather than through the ``openai`` SDK so
that SDK version drift cannot break the worker. Scores returned here are
approximate and can vary between runs; the grader blends them with the
deterministic heuristic scores.
"""
import json
import logging
import random
import re
import time
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)

RESPONSES_URL = "https://api.openai.com/v1/responses"
MAX_ATTEMPTS = 3


class ModelGradingError(Exception):
    pass


def build_prompt(resume: Dict[str, Any], job_description: str, job_title: str) -> str:
    summary = {
        "personalInfo": resume.get("personalInfo", {}),
        "experience": resume.get("experience", []),
        "education": resume.get("education", []),
        "skills": resume.get("skills", []),
        "projects": resume.get("projects", []),
        "certifications": resume.get("certifications", []),
        "rawText": (resume.get("rawText") or "")[:2000],
    }
    return "\n".join([
        "You are an expert resume evaluator. Analyze the resume against the job description.",
        "Return ONLY a JSON object of this exact shape, no markdown:",
        '{"scores": {"overall": 0-100, "ats": 0-100, "keyword": 0-100, "format": 0-100},',
        ' "reviewText": "<at least 3 paragraphs: strengths, gaps, the single most important improvement>",',
        ' "suggestions": [{"id": "s_001", "title": "...", "description": "...", "example": "...",',
        '   "category": "achievements|keywords|formatting|experience|education|skills|general",',
        '   "priority": 1-5 (1 is highest), "status": "pending"}]}',
        "Scores must be integers. Provide 4-10 suggestions.",
        "--",
        f"JOB TITLE: {job_title or 'Not specified'}",
        "JOB DESCRIPTION:",
        job_description,
        "--",
        "RESUME DATA:",
        json.dumps(summary, ensure_ascii=False, indent=2),
    ])


def _response_text(jr) -> str:
    if not isinstance(jr, dict):
        return ""
    text = jr.get("output_text") or ""
    if text:
        return text
    parts = []
    for item in jr.get("output") or []:
        if isinstance(item, dict):
            for c in item.get("content", []):
                if isinstance(c, dict) and "text" in c:
                    parts.append(c["text"])
                elif isinstance(c, str):
                    parts.append(c)
        elif isinstance(item, str):
            parts.append(item)
    return "\n".join(parts)


def validate_grading(data) -> bool:
    if not isinstance(data, dict) or not isinstance(data.get("scores"), dict):
        return False
    for key in ("overall", "ats", "keyword", "format"):
        v = data["scores"].get(key)
        if not isinstance(v, (int, float)) or not 0 <= v <= 100:
            return False
    review = data.get("reviewText")
    if not isinstance(review, str) or len(review) < 100:
        return False
    if not isinstance(data.get("suggestions"), list):
        return False
    for s in data["suggestions"]:
        if not isinstance(s, dict) or not s.get("title") or not s.get("description"):
            return False
    return True


def _post_with_retry(body, api_key, timeout):
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    backoff = 1.0
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            r = requests.post(RESPONSES_URL, headers=headers, json=body, timeout=timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning("OpenAI network error, attempt %d/%d: %s", attempt, MAX_ATTEMPTS, exc)
            if attempt == MAX_ATTEMPTS:
                raise ModelGradingError(f"OpenAI request failed: {exc}") from exc
            time.sleep(backoff + random.uniform(0, 0.5))
            backoff *= 2
            continue

        if r.status_code == 429 and "quota" in (r.text or "").lower():
            raise ModelGradingError("OpenAI quota exhausted")
        if r.status_code == 429 or 500 <= r.status_code < 600:
            try:
                wait = float(r.headers.get("Retry-After") or backoff)
            except ValueError:
                wait = backoff
            logger.warning("OpenAI returned %s, attempt %d/%d, retrying in %.1fs",
                           r.status_code, attempt, MAX_ATTEMPTS, wait)
            if attempt == MAX_ATTEMPTS:
                raise ModelGradingError(f"OpenAI returned {r.status_code}")
            time.sleep(wait + random.uniform(0, 0.5))
            backoff *= 2
            continue
        if r.status_code >= 400:
            raise ModelGradingError(f"OpenAI HTTP error {r.status_code}: {(r.text or '')[:500]}")
        return r.json()
    raise ModelGradingError("OpenAI returned no data after retries")


def gen_resume_grading(resume: Dict[str, Any], job_description: str, job_title: str,
                       api_key: str, model: str = "gpt-4o-mini", timeout: float = 30) -> Dict[str, Any]:
    """Return ``{"scores", "reviewText", "suggestions"}`` from the model or raise ModelGradingError."""
    if not api_key:
        raise ModelGradingError("OPENAI_API_KEY is not configured")

    body = {
        "model": model,
        "input": build_prompt(resume, job_description, job_title),
        "max_output_tokens": 1800,
        "temperature": 0.2,
    }
    jr = _post_with_retry(body, api_key, timeout)
    text = _response_text(jr).strip()
    text = re.sub(r"^```(?:json)?\s*|\s*```$", "", text)
    m = re.search(r"\{[\s\S]*\}", text)
    try:
        data = json.loads(m.group(0) if m else text)
    except (TypeError, ValueError) as exc:
        raise ModelGradingError(f"Failed to parse JSON response: {exc}") from exc
    if not validate_grading(data):
        raise ModelGradingError("Response does not match expected structure")
    return data
