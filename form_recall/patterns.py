from __future__ import annotations

import re

# Pattern tables shared by the classifier, key generator and cache store.
# Keep these centralized so they can be tuned without touching control flow.

# Survey / consent / motivation questions are never sectional, even when they
# mention employment ("how did you hear about this job").
FLAT_SURVEY_PATTERN = re.compile(
    r"\b(how\b.*\bdid\b.*\bhear|source|referral|referred|motivation|interested\s+in|"
    r"availability|preferences|pronouns|authorization|sponsorship|visa|"
    r"legal\b.*\bconsent|consent|agreement|acknowledg(e|ment)|background\s+check)\b",
    re.IGNORECASE,
)

# Set-like nouns for checkbox / multi-select groups.
ATOMIC_SET_PATTERN = re.compile(
    r"\b(skills?|technolog(y|ies)|tools?|languages?|hobbies|interests?|competenc(y|ies))\b",
    re.IGNORECASE,
)

# Compound phrases only; loose single words ("role", "company") false-positive
# on survey questions.
SECTION_KEYWORD_PATTERN = re.compile(
    r"\b(job\s*title|position\s*title|employer\s*name|company\s*name|"
    r"work\s*experience|employment\s*history|school\s*name|university\s*name|"
    r"degree\s*(type|name)|graduation\s*(year|date)|field\s*of\s*study|"
    r"start\s*date|end\s*date|gpa|major|minor)\b",
    re.IGNORECASE,
)

PROFILE_QUESTION_PATTERN = re.compile(
    r"\b(visa|sponsor(ship)?|veteran|military|disability|handicap|citizen(ship)?|"
    r"work\W?auth(orization)?|authorized|ethnic(ity)?|race|gender|sex|pronouns)\b",
    re.IGNORECASE,
)

# Person-level facts that stay global even inside a repeating section.
GLOBAL_FACT_PATTERN = re.compile(
    r"(notice_period|visa|sponsor|work_auth|authorized|citizenship|gender|race|"
    r"ethnic|veteran|disabilit|years_of_experience|experience_years|"
    r"total_experience|education_level|highest_degree|highest_education)"
)

EDUCATION_CONTEXT_PATTERN = re.compile(
    r"\b(education|school|university|college|institution|degree|major|minor|gpa|"
    r"graduat\w*|field\s*of\s*study|academic)\b|\bedu[_-]",
    re.IGNORECASE,
)

WORK_CONTEXT_PATTERN = re.compile(
    r"\b(work|employ\w*|employer|company|job|position|occupation|experience|"
    r"organi[sz]ation|responsibilit\w*)\b|\bwork[_-]",
    re.IGNORECASE,
)

REFERENCE_CONTEXT_PATTERN = re.compile(r"\b(references?|referee)\b", re.IGNORECASE)

DATE_CONTEXT_PATTERN = re.compile(r"\b(date|month|year|from|to|start|end)\b", re.IGNORECASE)

# Container tokens whose trailing index identifies a row of a repeating section.
REPEATER_INDEX_PATTERN = re.compile(
    r"(?P<container>work_?experience|employment|experience|education|edu|work|job|"
    r"position|school|reference)[\s\[\]._-]*(?P<index>\d{1,2})(?!\d)",
    re.IGNORECASE,
)

DATE_PART_PATTERN = re.compile(r"(?:^|[^a-z])(month|year|day)(?:[^a-z]|$)")

# Labels that carry no identity of their own (option text of radios).
GENERIC_LABEL_PATTERN = re.compile(r"^(yes|no|male|female|other|m|f|true|false)$", re.IGNORECASE)

SECTION_NAMES = {
    "work": "work_experience",
    "work_experience": "work_experience",
    "employment": "work_experience",
    "experience": "work_experience",
    "job": "work_experience",
    "education": "education",
    "edu": "education",
    "school": "education",
    "reference": "references",
    "references": "references",
}

DEFAULT_SECTION_NAME = "work_experience"
