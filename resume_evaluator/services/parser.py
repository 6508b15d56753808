"""Heuristic resume parser.

Turns extracted plain text into ``ResumeData``. Parsing is best-effort and
never raises on content: sections whose heading cannot be found stay None so
the grader can tell "not found" apart from "found but empty".
"""
import re
from typing import Dict, List, Optional, Tuple

from ..schemas import PersonalInfo, ResumeData

SECTION_ALIASES = {
    "summary": ["summary", "profile", "professional summary", "about", "about me", "objective", "career objective"],
    "experience": [
        "experience", "work experience", "professional experience", "employment", "employment history",
        "work history", "career history", "relevant experience",
    ],
    "education": ["education", "academic background", "academics", "qualifications", "education and training"],
    "skills": [
        "skills", "technical skills", "core skills", "key skills", "competencies", "core competencies",
        "expertise", "proficiencies", "technologies",
    ],
    "projects": ["projects", "personal projects", "selected projects", "portfolio", "key projects"],
    "certifications": ["certifications", "certificates", "licenses", "licences", "credentials", "certifications and licenses"],
    "awards": ["awards", "honors", "honours", "achievements", "awards and honors", "recognition"],
}
HEADING_TO_SECTION = {alias: section for section, aliases in SECTION_ALIASES.items() for alias in aliases}

KNOWN_SKILLS = [
    "JavaScript", "TypeScript", "Python", "Java", "C++", "C#", "PHP", "Ruby", "Go", "Rust", "Kotlin", "Swift", "Scala",
    "React", "Angular", "Vue", "Node.js", "Express", "Django", "Flask", "FastAPI", "Spring", "Laravel",
    "SQL", "MySQL", "PostgreSQL", "MongoDB", "Redis", "Elasticsearch", "Kafka", "Spark", "Airflow",
    "AWS", "Azure", "GCP", "Docker", "Kubernetes", "Terraform", "Git", "CI/CD", "Linux",
    "HTML", "CSS", "SASS", "Tailwind", "REST API", "GraphQL", "gRPC",
    "Machine Learning", "Deep Learning", "NLP", "Pandas", "NumPy", "TensorFlow", "PyTorch",
    "Data Science", "DevOps", "Agile", "Scrum", "Excel", "Tableau", "Power BI",
]

ROLE_WORDS = re.compile(
    r"\b(engineer|developer|manager|director|analyst|specialist|consultant|lead|intern|associate|executive|"
    r"officer|coordinator|assistant|architect|designer|administrator|scientist|head|founder|programmer|"
    r"technician|representative|accountant|teacher|nurse)\b",
    re.I,
)

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]{1,64}@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"(?<!\w)(?:\+?\d{1,3}[\s.-]?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}(?!\w)")
URL_RE = re.compile(r"(?:https?://[^\s,;|]+|www\.[^\s,;|]+|(?:linkedin|github)\.com/[^\s,;|]+)", re.I)
# addresses are looked for line by line, in the first ADDRESS_SCAN_CHARS of each line
ADDRESS_SCAN_CHARS = 200
ADDRESS_RE = re.compile(
    r"\d{1,6}\s+[A-Za-z0-9 .]{1,60}?\b(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Court|Ct|Place|Pl)\b\.?"
    r"(?:,\s*[A-Za-z .]+)?(?:,\s*[A-Z]{2}\s*\d{5})?"
)

MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
DATE = rf"(?:{MONTH}\s+\d{{4}}|\d{{1,2}}/\d{{4}}|\d{{4}})"
DATE_RANGE_RE = re.compile(rf"({DATE})\s*(?:-|–|—|to|until)\s*({DATE}|present|current|now)", re.I)
SINGLE_DATE_RE = re.compile(DATE, re.I)
INSTITUTION_RE = re.compile(
    r"((?:[A-Z][\w&.'-]*\s+){0,5}?(?:University|College|Institute|School|Academy|Polytechnic)\b"
    r"(?:\s+of\s+[A-Z]\w*(?:[ ]+[A-Z]\w*)*)?)"
)
DEGREE_RE = re.compile(
    r"\b(Bachelor(?:'s)?(?: of [A-Za-z ]+)?|Master(?:'s)?(?: of [A-Za-z ]+)?|Ph\.?D\.?|Doctorate|Associate(?: of [A-Za-z ]+)?|"
    r"Diploma|B\.?Sc?\.?|B\.?A\.?|B\.?Tech|M\.?Sc?\.?|M\.?A\.?|M\.?B\.?A\.?|M\.?Tech)(?=[\s,.]|$)(?:\s+(?:in|of)\s+[A-Za-z &]+)?"
)
GPA_RE = re.compile(r"\bGPA[:\s]*([0-4](?:\.\d{1,2})?)", re.I)
BULLET_RE = re.compile(r"^\s*[•\-\*–·▪●◦»>]+\s*")
TITLE_SPLIT_RE = re.compile(r"\s+(?:at|@)\s+|\s*[|,]\s*|\s+[-–—]\s+")
PROJECT_HEAD_RE = re.compile(r"^(?P<name>[^:–—]+?)(?:\s+[-–—]\s+|\s*:\s*)(?P<desc>.*)$")


def _strip_bullet(line: str) -> str:
    return BULLET_RE.sub("", line).strip()


def _heading(line: str) -> Optional[Tuple[str, str]]:
    """Return (section, inline remainder) when the line is a section heading."""
    raw = line.strip()
    if not raw or len(raw) > 60:
        return None
    head, sep, rest = raw.partition(":")
    key = re.sub(r"[^a-z& ]", "", head.lower()).replace("&", "and").strip()
    key = re.sub(r"\s+", " ", key)
    section = HEADING_TO_SECTION.get(key)
    if section is None:
        return None
    return section, rest.strip() if sep else ""


def split_sections(text: str) -> Dict[str, List[str]]:
    """Split text into {section: lines}; text before the first heading goes to 'header'."""
    sections: Dict[str, List[str]] = {"header": []}
    current = "header"
    for line in text.split("\n"):
        found = _heading(line)
        if found:
            current, rest = found
            sections.setdefault(current, [])
            if rest:
                sections[current].append(rest)
            continue
        sections[current].append(line.strip())
    return sections


def _blocks(lines: List[str]) -> List[List[str]]:
    """Group section lines into entries: blank lines separate entries, and so does a new dated header line."""
    blocks: List[List[str]] = []
    cur: List[str] = []
    for line in lines:
        if not line:
            if cur:
                blocks.append(cur)
                cur = []
            continue
        is_bullet = bool(BULLET_RE.match(line))
        if cur and not is_bullet and DATE_RANGE_RE.search(line) and any(DATE_RANGE_RE.search(x) for x in cur):
            blocks.append(cur)
            cur = []
        cur.append(line)
    if cur:
        blocks.append(cur)
    return blocks


def _date_range(lines: List[str]) -> Tuple[Optional[str], Optional[str]]:
    for line in lines:
        m = DATE_RANGE_RE.search(line)
        if m:
            end = m.group(2)
            if end.lower() in ("present", "current", "now"):
                end = "Present"
            return m.group(1), end
    for line in lines:
        m = SINGLE_DATE_RE.search(line)
        if m:
            return None, m.group(0)
    return None, None


def _known_skills_in(text: str) -> List[str]:
    found = []
    for skill in KNOWN_SKILLS:
        if re.search(rf"(?<![\w+#]){re.escape(skill)}(?![\w+#])", text, re.I):
            found.append(skill)
    return found


def find_address(text: str) -> Optional[str]:
    for line in text.split("\n"):
        m = ADDRESS_RE.search(line[:ADDRESS_SCAN_CHARS])
        if m:
            return m.group(0).strip()
    return None


def extract_personal_info(text: str, header_lines: List[str]) -> PersonalInfo:
    info = PersonalInfo()
    m = EMAIL_RE.search(text)
    if m:
        info.email = m.group(0)
    m = PHONE_RE.search(text)
    if m:
        info.phone = m.group(0).strip()
    for url in URL_RE.findall(text):
        low = url.lower()
        if "linkedin.com" in low:
            info.linkedin = info.linkedin or url
        elif "github.com" in low:
            info.github = info.github or url
        elif info.website is None and "@" not in url:
            info.website = url
    info.address = find_address(text)

    candidates = [ln for ln in header_lines if ln] or [ln.strip() for ln in text.split("\n") if ln.strip()]
    for line in candidates[:5]:
        if EMAIL_RE.search(line) or PHONE_RE.search(line) or URL_RE.search(line):
            continue
        if 2 < len(line) < 50 and re.search(r"[A-Za-z]", line) and len(line.split()) <= 5 and not re.search(r"\d", line):
            info.name = line
            break
    return info


def extract_experience(lines: List[str]) -> List[Dict[str, str]]:
    entries = []
    for block in _blocks(lines):
        header = _strip_bullet(block[0])
        start, end = _date_range(block)
        title_line = DATE_RANGE_RE.sub("", header).strip(" ,|-–—()")
        parts = [p.strip() for p in TITLE_SPLIT_RE.split(title_line) if p and p.strip()]
        position = company = None
        for p in parts:
            if position is None and ROLE_WORDS.search(p):
                position = p
            elif company is None:
                company = p
        if position is None and company is None:
            continue
        entry = {"position": position, "company": company, "start_date": start, "end_date": end}
        body = [_strip_bullet(x) for x in block[1:] if not DATE_RANGE_RE.fullmatch(x.strip())]
        if body:
            entry["description"] = "\n".join(body)
        entries.append({k: v for k, v in entry.items() if v})
    return entries


def extract_education(lines: List[str]) -> List[Dict[str, str]]:
    entries = []
    for block in _blocks(lines):
        text = "\n".join(block)
        inst = next(filter(None, (INSTITUTION_RE.search(line) for line in block)), None)
        degree = DEGREE_RE.search(text)
        if not inst and not degree:
            continue
        start, end = _date_range(block)
        gpa = GPA_RE.search(text)
        entry = {
            "institution": inst.group(1).strip(" ,") if inst else None,
            "degree": degree.group(0).strip(" ,") if degree else None,
            "start_date": start,
            "end_date": end,
            "gpa": gpa.group(1) if gpa else None,
        }
        entries.append({k: v for k, v in entry.items() if v})
    return entries


def extract_skills(lines: List[str]) -> List[str]:
    text = "\n".join(lines)
    skills = _known_skills_in(text)
    seen = {s.lower() for s in skills}
    for line in lines:
        line = _strip_bullet(line)
        if ":" in line:
            line = line.split(":", 1)[1]
        for item in re.split(r"[,;|•]", line):
            item = item.strip(" .")
            if 2 <= len(item) < 50 and len(item.split()) <= 4 and item.lower() not in seen:
                seen.add(item.lower())
                skills.append(item)
    return skills


def _project_blocks(lines: List[str]) -> List[List[str]]:
    # every non-bullet "Name - description" / "Name: description" line opens a new project
    blocks: List[List[str]] = []
    for block in _blocks(lines):
        cur: List[str] = []
        for line in block:
            if cur and not BULLET_RE.match(line) and PROJECT_HEAD_RE.match(line):
                blocks.append(cur)
                cur = []
            cur.append(line)
        blocks.append(cur)
    return blocks


def extract_projects(lines: List[str]) -> List[Dict[str, object]]:
    projects = []
    for block in _project_blocks(lines):
        head = _strip_bullet(block[0])
        m = PROJECT_HEAD_RE.match(head)
        name, desc = (m.group("name"), m.group("desc")) if m else (head, "")
        name = DATE_RANGE_RE.sub("", name).strip(" ,|()")
        if len(name) <= 3:
            continue
        description = "\n".join(filter(None, [desc.strip()] + [_strip_bullet(x) for x in block[1:]]))
        project = {"name": name}
        if description:
            project["description"] = description
        tech = _known_skills_in(" ".join(block))
        if tech:
            project["technologies"] = tech
        projects.append(project)
    return projects


def extract_named_items(lines: List[str]) -> List[Dict[str, str]]:
    items = []
    for line in lines:
        name = _strip_bullet(line)
        if len(name) > 2:
            item = {"name": name}
            m = SINGLE_DATE_RE.search(name)
            if m:
                item["date"] = m.group(0)
            items.append(item)
    return items


def parse(plain_text: str) -> ResumeData:
    text = plain_text or ""
    sections = split_sections(text)
    data = ResumeData(raw_text=text)
    data.personal_info = extract_personal_info(text, sections.get("header", []))
    if "experience" in sections:
        data.experience = extract_experience(sections["experience"])
    if "education" in sections:
        data.education = extract_education(sections["education"])
    if "skills" in sections:
        data.skills = extract_skills(sections["skills"])
    if "projects" in sections:
        data.projects = extract_projects(sections["projects"])
    if "certifications" in sections:
        data.certifications = extract_named_items(sections["certifications"])
    if "awards" in sections:
        data.awards = extract_named_items(sections["awards"])
    return data
