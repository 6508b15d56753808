import time

from resume_evaluator.services.parser import parse, split_sections

from .conftest import SAMPLE_RESUME


def test_contact_details():
    info = parse(SAMPLE_RESUME).personal_info
    assert info.name == "Jane Doe"
    assert info.email == "jane.doe@example.com"
    assert info.phone == "(555) 123-4567"
    assert info.linkedin == "linkedin.com/in/janedoe"
    assert info.github == "github.com/janedoe"


def test_sections_are_split_on_headings():
    sections = split_sections(SAMPLE_RESUME)
    assert {"header", "summary", "experience", "education", "skills", "projects", "certifications"} <= set(sections)
    assert "awards" not in sections


def test_experience_entries():
    experience = parse(SAMPLE_RESUME).experience
    assert len(experience) == 2
    first = experience[0]
    assert first["position"] == "Senior Software Engineer"
    assert first["company"] == "Acme Corp"
    assert first["start_date"] == "Jan 2020"
    assert first["end_date"] == "Present"
    assert "Redis caching" in first["description"]
    assert experience[1]["company"] == "Beta LLC"
    assert experience[1]["end_date"] == "Dec 2019"


def test_education_entry():
    education = parse(SAMPLE_RESUME).education
    assert len(education) == 1
    entry = education[0]
    assert entry["institution"] == "University of Somewhere"
    assert entry["degree"].startswith("Bachelor of Science")
    assert entry["gpa"] == "3.8"
    assert entry["end_date"] == "2016"


def test_skills_keep_known_and_listed_items():
    skills = parse(SAMPLE_RESUME).skills
    for s in ("Python", "Flask", "PostgreSQL", "Docker", "Git"):
        assert s in skills
    assert len(skills) == len({s.lower() for s in skills})


def test_projects_one_per_line():
    projects = parse(SAMPLE_RESUME).projects
    assert [p["name"] for p in projects] == ["Resume Parser", "Job Board"]
    assert "Python" in projects[0]["technologies"]
    assert "PostgreSQL" in projects[1]["technologies"]


def test_certifications_are_named_items():
    certs = parse(SAMPLE_RESUME).certifications
    assert certs == [{"name": "AWS Certified Developer 2021", "date": "2021"}]


def test_missing_sections_stay_none():
    data = parse("John Smith\njohn@example.com\nI have worked with computers for a long time.")
    assert data.experience is None
    assert data.education is None
    assert data.skills is None
    assert data.awards is None
    assert data.personal_info.email == "john@example.com"
    assert data.raw_text.startswith("John Smith")


def test_found_but_empty_section_is_empty_list():
    data = parse("John Smith\n\nExperience\n\nSkills\nPython")
    assert data.experience == []
    assert data.skills == ["Python"]


def test_inline_heading_content():
    data = parse("John Smith\nSkills: Python, SQL, Tableau")
    assert data.skills == ["Python", "SQL", "Tableau"]


def test_never_raises_on_garbage():
    data = parse("\x0c\x0c ||| \n\n\t--\n")
    assert data.personal_info.email is None
    assert parse("").raw_text == ""


def test_to_dict_uses_camel_case_and_omits_none():
    out = parse(SAMPLE_RESUME).to_dict()
    assert out["personalInfo"]["email"] == "jane.doe@example.com"
    assert "startDate" in out["experience"][0]
    assert "awards" not in out


def test_street_address_is_found():
    text = "Jane Doe\n123 Main Street, Springfield, IL 62704\njane@example.com\n"
    assert parse(text).personal_info.address == "123 Main Street, Springfield, IL 62704"


def test_long_single_line_parses_quickly():
    text = "12 abc " * 30000
    start = time.monotonic()
    data = parse(text)
    assert time.monotonic() - start < 5
    assert data.personal_info.address is None
    assert data.raw_text == text


def test_long_unbroken_token_parses_quickly():
    text = "a" * 200000
    start = time.monotonic()
    assert parse(text).personal_info.email is None
    assert time.monotonic() - start < 5
