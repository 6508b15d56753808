"""Resume grading against a job description.

The heuristic grader is deterministic: the same resume and job description
always produce the same scores. With ``backend="openai"`` the model's scores
are blended with the heuristic ones (weights from config), which makes the
result approximate and subject to small run-to-run variation.
"""
import logging
import re
from collections import Counter
from datetime import date
from typing import Dict, List, Optional, Tuple

import requests

from ..schemas import GradingResult, ResumeData, Scores, Suggestion, SUGGESTION_CATEGORIES
from .openai_wrap import ModelGradingError, gen_resume_grading
from .parser import BULLET_RE, DATE_RANGE_RE, KNOWN_SKILLS, split_sections

logger = logging.getLogger(__name__)

WEIGHTS = {"ats": 0.35, "keyword": 0.35, "format": 0.15, "experience": 0.15}
MAX_TERMS = 25

STOPWORDS = set("""
a about above after again all also an and any are as at be because been before being below between both but by
can could did do does doing down during each etc few for from further had has have having he her here hers him his
how i if in into is it its itself just me more most must my no nor not now of off on once only or other our ours out
over own per plus same she should so some such than that the their theirs them then there these they this those
through to too under until up very via was we were what when where which while who whom why will with within without
would you your yours able ability across including include includes strong excellent good great work working team
teams role candidate candidates looking seeking join us company position job responsibilities requirements required
preferred experience years year knowledge skills skill understanding using use used new well related environment
opportunity based like least minimum ideal ideally day days help make ensure others across support
""".split())

SHORT_TERMS = {"go", "c", "r", "ai", "ml", "ui", "ux", "qa", "bi", "c#", "c++", "sql", "aws", "gcp", "api", "css", "php"}
QUANTIFIED_RE = re.compile(
    r"\d+(?:\.\d+)?\s*(?:%|percent\b|x\b|k\b|m\b)|\$\s?\d"
    r"|\b\d+\+?\s+(?:users|customers|clients|people|engineers|projects|services|requests|hours|days|weeks|million|billion|thousand)\b",
    re.I,
)
YEARS_REQ_RE = re.compile(r"(\d{1,2})\s*\+?\s*(?:years|yrs)", re.I)
YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
DATE_STYLES = (
    ("month_year", re.compile(r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+\d{4}", re.I)),
    ("numeric", re.compile(r"\b\d{1,2}/\d{4}\b")),
)

ACHIEVEMENT_EXAMPLE = "Reduced API response time by 35% by introducing Redis caching for the ten busiest endpoints."


def _clamp(v) -> int:
    return int(round(max(0.0, min(100.0, float(v)))))


def _tokens(text: str) -> List[str]:
    raw = re.findall(r"[a-z][a-z0-9+#.\-/]*", (text or "").lower())
    return [t.strip(".-/") for t in raw]


def _term_in(term: str, text_lower: str) -> bool:
    return re.search(rf"(?<![\w+#]){re.escape(term)}(?![\w+#])", text_lower) is not None


def key_terms(job_description: str, job_title: str) -> List[Tuple[str, float]]:
    """Weighted key terms of a job description: frequency, x2 when in the title, x1.5 for known skills."""
    counts = Counter(
        t for t in _tokens(job_description)
        if t and t not in STOPWORDS and (len(t) >= 3 or t in SHORT_TERMS)
    )
    jd_lower = (job_description or "").lower()
    for skill in KNOWN_SKILLS:
        s = skill.lower()
        if " " in s and _term_in(s, jd_lower):
            counts[s] += 1
    title_tokens = {t for t in _tokens(job_title) if t not in STOPWORDS}
    for t in title_tokens:
        counts[t] += 1
    known = {s.lower() for s in KNOWN_SKILLS}
    weighted = {}
    for term, freq in counts.items():
        w = float(freq)
        if term in title_tokens:
            w *= 2
        if term in known:
            w *= 1.5
        weighted[term] = w
    ranked = sorted(weighted.items(), key=lambda kv: (-kv[1], kv[0]))
    return ranked[:MAX_TERMS]


def keyword_score(resume_text: str, terms: List[Tuple[str, float]]) -> Tuple[int, List[str], List[str]]:
    if not terms:
        return 50, [], []
    text_lower = (resume_text or "").lower()
    matched, missing = [], []
    got = total = 0.0
    for term, w in terms:
        total += w
        if _term_in(term, text_lower):
            got += w
            matched.append(term)
        else:
            missing.append(term)
    return _clamp(100 * got / total), matched, missing


def _lines(text: str) -> List[str]:
    return [ln.strip() for ln in (text or "").split("\n") if ln.strip()]


def table_artifacts(text: str) -> int:
    return sum(1 for ln in (text or "").split("\n") if ln.count("|") >= 2 or "\t\t" in ln)


def ats_score(resume: ResumeData, text: str, extraction_method: str) -> int:
    info = resume.personal_info
    score = 0
    score += 5 if info.name else 0
    score += 10 if info.email else 0
    score += 10 if info.phone else 0
    if resume.experience is not None:
        score += 15 + (5 if resume.experience else 0)
    if resume.education is not None:
        score += 10 + (5 if resume.education else 0)
    if resume.skills is not None:
        score += 10 + (5 if resume.skills else 0)
    score += 10 if table_artifacts(text) < 3 else 0
    score += 10 if extraction_method != "ocr" else 0
    score += 5 if len(text.split()) >= 150 else 0
    return _clamp(score)


def quantified_lines(resume: ResumeData, text: str) -> int:
    source = "\n".join(e.get("description", "") for e in (resume.experience or [])) or text
    count = 0
    for ln in _lines(source):
        if QUANTIFIED_RE.search(ln) and not DATE_RANGE_RE.search(ln):
            count += 1
    return count


def format_score(resume: ResumeData, text: str) -> int:
    lines = _lines(text)
    words = len(text.split())
    score = 0
    if 300 <= words <= 1200:
        score += 25
    elif 150 <= words < 300 or 1200 < words <= 2000:
        score += 15
    else:
        score += 5

    bullets = sum(1 for ln in lines if BULLET_RE.match(ln))
    if lines and bullets / len(lines) >= 0.15:
        score += 20
    elif bullets:
        score += 10

    q = quantified_lines(resume, text)
    score += 20 if q >= 3 else (10 if q else 0)

    long_lines = sum(1 for ln in lines if len(ln) > 200)
    score += 15 if not lines or long_lines / len(lines) <= 0.1 else 5

    styles = {name for name, rx in DATE_STYLES if rx.search(text)}
    score += 10 if len(styles) <= 1 else 5

    headings = len([k for k in split_sections(text) if k != "header"])
    score += 10 if headings >= 3 else (5 if headings else 0)
    return _clamp(score)


def candidate_years(resume: ResumeData, text: str) -> Optional[float]:
    years = 0.0
    for e in resume.experience or []:
        start = YEAR_RE.search(e.get("start_date") or "")
        end_raw = e.get("end_date") or ""
        end = YEAR_RE.search(end_raw)
        if start and end:
            years += max(0, int(end.group(0)) - int(start.group(0)))
        elif start and end_raw == "Present":
            years += max(0, date.today().year - int(start.group(0)))
    if years:
        return years
    m = YEARS_REQ_RE.search(text or "")
    return float(m.group(1)) if m else None


def experience_fit(resume: ResumeData, text: str, job_description: str, job_title: str) -> Tuple[int, Optional[int], Optional[float]]:
    req_m = YEARS_REQ_RE.search(job_description or "")
    required = int(req_m.group(1)) if req_m else None
    have = candidate_years(resume, text)
    if required:
        score = 100 * min(1.0, (have or 0) / required)
    elif resume.experience:
        score = 70 + min(30, 10 * len(resume.experience))
    else:
        score = 30
    positions = " ".join((e.get("position") or "") for e in resume.experience or []).lower()
    title_tokens = [t for t in _tokens(job_title) if t not in STOPWORDS]
    if title_tokens and any(_term_in(t, positions) for t in title_tokens):
        score += 10
    return _clamp(score), required, have


def overall_score(ats: int, keyword: int, fmt: int, experience: int) -> int:
    return _clamp(
        WEIGHTS["ats"] * ats + WEIGHTS["keyword"] * keyword
        + WEIGHTS["format"] * fmt + WEIGHTS["experience"] * experience
    )


def _number(suggestions: List[dict]) -> List[Suggestion]:
    ordered = sorted(enumerate(suggestions), key=lambda kv: (kv[1]["priority"], kv[0]))
    return [
        Suggestion(id=f"s_{i:03d}", **s) for i, (_, s) in enumerate(ordered, start=1)
    ]


def build_suggestions(resume: ResumeData, text: str, job_title: str, missing_terms: List[str], kw: int,
                      extraction_method: str, required_years, have_years) -> List[Suggestion]:
    out = []
    info = resume.personal_info
    if not info.email or not info.phone:
        lacking = " and ".join(x for x, v in (("an email address", info.email), ("a phone number", info.phone)) if not v)
        out.append(dict(
            title="Add complete contact details",
            description=f"The resume is missing {lacking}. ATS parsers and recruiters look for contact details at the top.",
            category="general", priority=1,
            example="Jane Doe | jane.doe@example.com | +1 555 010 0199 | linkedin.com/in/janedoe",
        ))
    if kw < 70 and missing_terms:
        top = missing_terms[:8]
        out.append(dict(
            title="Add missing keywords from the job description",
            description="These job description terms do not appear in the resume: " + ", ".join(top)
                        + ". Work the ones you genuinely have into your skills and experience bullets.",
            category="keywords", priority=1,
            example="Skills: " + ", ".join(t.title() if len(t) > 3 else t.upper() for t in top[:5]),
        ))
    if resume.experience is None:
        out.append(dict(
            title="Add a clearly labelled Work Experience section",
            description="No experience section was detected. Use a standard heading such as 'Work Experience' "
                        "with role, company and dates for each position.",
            category="experience", priority=1,
            example="Software Engineer, Acme Corp | Jan 2021 - Present",
        ))
    elif required_years and (have_years or 0) < required_years:
        out.append(dict(
            title="Make your relevant experience explicit",
            description=f"The role asks for {required_years}+ years; the resume shows about "
                        f"{int(have_years or 0)}. Include dates for every role and relevant freelance or project work.",
            category="experience", priority=2,
        ))
    if quantified_lines(resume, text) == 0:
        out.append(dict(
            title="Quantify your achievements",
            description="None of the experience bullets contain numbers. Add measurable outcomes "
                        "(percentages, revenue, time saved, scale).",
            category="achievements", priority=2, example=ACHIEVEMENT_EXAMPLE,
        ))
    if not resume.skills:
        out.append(dict(
            title="Add a dedicated Skills section",
            description="A 'Skills' section lets ATS keyword matching find your tools and technologies.",
            category="skills", priority=2, example="Skills: Python, SQL, Docker, AWS",
        ))
    if table_artifacts(text) >= 3:
        out.append(dict(
            title="Avoid tables and multi-column layouts",
            description="Table or column structures were detected. Many ATS parsers read them out of order.",
            category="formatting", priority=2,
        ))
    if extraction_method == "ocr":
        out.append(dict(
            title="Upload a text-based PDF",
            description="The document had no usable text layer and had to be read with OCR. Export the resume "
                        "directly from your editor so ATS systems can read it reliably.",
            category="formatting", priority=2,
        ))
    if resume.education is None:
        out.append(dict(
            title="Add an Education section",
            description="No education section was detected. Include degree, institution and graduation year.",
            category="education", priority=3,
            example="B.Sc. Computer Science, State University, 2019",
        ))
    lines = _lines(text)
    if lines and not any(BULLET_RE.match(ln) for ln in lines):
        out.append(dict(
            title="Use bullet points for responsibilities",
            description="Dense paragraphs are hard to scan. Break each role into 3-6 concise bullets.",
            category="formatting", priority=3,
        ))
    words = len(text.split())
    if words < 300 or words > 1200:
        out.append(dict(
            title="Adjust the resume length",
            description=f"The resume has about {words} words; 300-1200 words (one to two pages) works best.",
            category="formatting", priority=3,
        ))
    title_tokens = [t for t in _tokens(job_title) if t not in STOPWORDS]
    if title_tokens and not all(_term_in(t, text.lower()) for t in title_tokens):
        out.append(dict(
            title="Mirror the job title",
            description=f"Use the exact title '{job_title}' in your summary or headline where it truthfully applies.",
            category="keywords", priority=3,
        ))
    if not out:
        out.append(dict(
            title="Tailor your summary to the role",
            description=f"The resume is in good shape. Open with a two-line summary aimed specifically at the "
                        f"{job_title} role.",
            category="general", priority=5,
        ))
    return _number(out)


def build_review(job_title: str, scores: Scores, matched: List[str], terms_total: int,
                 resume: ResumeData, suggestions: List[Suggestion]) -> str:
    strengths = []
    if terms_total:
        strengths.append(f"it covers {len(matched)} of {terms_total} key terms from the job description")
    found = [name for name, v in (("experience", resume.experience), ("education", resume.education),
                                  ("skills", resume.skills), ("projects", resume.projects)) if v]
    if found:
        strengths.append("it has clearly labelled " + ", ".join(found) + " sections")
    if resume.personal_info.email and resume.personal_info.phone:
        strengths.append("contact details are easy to find")
    p1 = (f"For the {job_title} role this resume scores {scores.overall}/100 overall "
          f"(ATS {scores.ats}, keyword match {scores.keyword}, format {scores.format}). ")
    p1 += ("Strengths: " + "; ".join(strengths) + ".") if strengths else "Few strengths could be detected automatically."

    gaps = [s.title.lower() for s in suggestions if s.priority <= 3]
    p2 = ("Main gaps: " + "; ".join(gaps) + ".") if gaps else "No major gaps were detected."

    top = suggestions[0]
    p3 = f"The single highest-leverage improvement: {top.title}. {top.description}"
    return "\n\n".join([p1, p2, p3])


def _normalize_model_suggestions(raw: List[dict]) -> List[Suggestion]:
    out = []
    for s in raw:
        category = (s.get("category") or "general").lower()
        if category == "format":
            category = "formatting"
        if category not in SUGGESTION_CATEGORIES:
            category = "general"
        priority = s.get("priority")
        out.append(dict(
            title=str(s.get("title") or "Improvement suggestion"),
            description=str(s.get("description") or ""),
            category=category,
            priority=max(1, min(5, int(priority))) if isinstance(priority, (int, float)) else 3,
            example=s.get("example") or None,
        ))
    return _number(out)


class Grader:
    def __init__(self, backend="heuristic", openai_api_key=None, openai_model="gpt-4o-mini",
                 weight_ai=0.6, weight_h=0.4, request_timeout=30):
        self.backend = backend
        self.openai_api_key = openai_api_key
        self.openai_model = openai_model
        self.weight_ai = weight_ai
        self.weight_h = weight_h
        self.request_timeout = request_timeout

    def grade(self, resume_data: ResumeData, plain_text: str, job_description: str, job_title: str,
              extraction_method: str = "native") -> GradingResult:
        heuristic = self.grade_heuristic(resume_data, plain_text, job_description, job_title, extraction_method)
        if self.backend != "openai" or not self.openai_api_key:
            return heuristic
        try:
            data = gen_resume_grading(resume_data.to_dict(), job_description, job_title,
                                      api_key=self.openai_api_key, model=self.openai_model,
                                      timeout=self.request_timeout)
        except (ModelGradingError, requests.exceptions.RequestException) as exc:
            logger.warning("Model grading unavailable, using heuristic scores: %s", exc)
            return heuristic
        return self.blend(heuristic, data)

    def blend(self, heuristic: GradingResult, data: Dict) -> GradingResult:
        h = heuristic.scores
        ai = data["scores"]

        def mix(key):
            return _clamp(ai[key] * self.weight_ai + getattr(h, key) * self.weight_h)

        scores = Scores(overall=mix("overall"), ats=mix("ats"), keyword=mix("keyword"), format=mix("format"))
        suggestions = _normalize_model_suggestions(data["suggestions"]) or heuristic.suggestions
        return GradingResult(scores=scores, suggestions=suggestions,
                             review=data["reviewText"].strip(), source="blended")

    def grade_heuristic(self, resume_data: ResumeData, plain_text: str, job_description: str, job_title: str,
                        extraction_method: str = "native") -> GradingResult:
        text = plain_text or resume_data.raw_text or ""
        terms = key_terms(job_description, job_title)
        kw, matched, missing = keyword_score(text, terms)
        ats = ats_score(resume_data, text, extraction_method)
        fmt = format_score(resume_data, text)
        exp, required, have = experience_fit(resume_data, text, job_description, job_title)
        scores = Scores(overall=overall_score(ats, kw, fmt, exp), ats=ats, keyword=kw, format=fmt)
        suggestions = build_suggestions(resume_data, text, job_title, missing, kw, extraction_method, required, have)
        review = build_review(job_title, scores, matched, len(terms), resume_data, suggestions)
        return GradingResult(scores=scores, suggestions=suggestions, review=review)
