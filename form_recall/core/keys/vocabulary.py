"""
Vocabulary tables for semantic keys.

Aliases are exact key equivalences (used for canonical storage keys). Stems,
synonyms and weights drive the token-level similarity used by the fuzzy matcher.
"""

from __future__ import annotations

from ...patterns import GLOBAL_FACT_PATTERN

# alias -> primary key
KEY_ALIASES: dict[str, str] = {
    "company_name": "employer_name",
    "company": "employer_name",
    "employer": "employer_name",
    "organization_name": "employer_name",
    "organisation_name": "employer_name",
    "current_company": "employer_name",
    "position_title": "job_title",
    "role_title": "job_title",
    "position": "job_title",
    "title_of_position": "job_title",
    "school": "school_name",
    "university_name": "school_name",
    "university": "school_name",
    "institution_name": "school_name",
    "college_name": "school_name",
    "degree_type": "degree",
    "degree_name": "degree",
    "major": "field_of_study",
    "area_of_study": "field_of_study",
    "discipline": "field_of_study",
    "zip": "zip_code",
    "zipcode": "zip_code",
    "postal_code": "zip_code",
    "postcode": "zip_code",
    "phone": "phone_number",
    "mobile_number": "phone_number",
    "telephone": "phone_number",
    "cell_phone": "phone_number",
    "email_address": "email",
    "e_mail": "email",
    "linkedin": "linkedin_url",
    "linkedin_profile": "linkedin_url",
    "given_name": "first_name",
    "fname": "first_name",
    "surname": "last_name",
    "family_name": "last_name",
    "lname": "last_name",
    "from_date": "start_date",
    "date_started": "start_date",
    "to_date": "end_date",
    "date_ended": "end_date",
    "graduation_date": "graduation_year",
    "year_of_graduation": "graduation_year",
    "notice": "notice_period",
    "salary_expectation": "expected_salary",
    "desired_salary": "expected_salary",
}

STEM_MAP: dict[str, str] = {
    "employment": "employ",
    "employed": "employ",
    "employer": "employ",
    "employers": "employ",
    "employee": "employ",
    "companies": "company",
    "organizations": "organization",
    "positions": "position",
    "titles": "title",
    "schools": "school",
    "universities": "university",
    "degrees": "degree",
    "graduation": "graduate",
    "graduated": "graduate",
    "studies": "study",
    "studying": "study",
    "skills": "skill",
    "technologies": "technology",
    "languages": "language",
    "numbers": "number",
    "addresses": "address",
    "responsibilities": "responsibility",
    "dates": "date",
    "years": "year",
    "months": "month",
    "experiences": "experience",
    "references": "reference",
    "sponsorship": "sponsor",
    "sponsored": "sponsor",
    "authorization": "authorize",
    "authorized": "authorize",
    "relocation": "relocate",
    "relocating": "relocate",
}

SYNONYM_GROUPS: tuple[frozenset[str], ...] = (
    frozenset({"employ", "company", "organization", "firm", "business"}),
    frozenset({"job", "position", "role", "occupation", "designation"}),
    frozenset({"school", "university", "college", "institution", "academy"}),
    frozenset({"degree", "qualification", "diploma"}),
    frozenset({"zip", "postal", "postcode", "zipcode", "pincode"}),
    frozenset({"phone", "mobile", "cell", "telephone", "tel"}),
    frozenset({"email", "mail"}),
    frozenset({"first", "given", "fname"}),
    frozenset({"last", "surname", "family", "lname"}),
    frozenset({"salary", "compensation", "pay", "remuneration", "ctc"}),
    frozenset({"major", "discipline", "concentration"}),
    frozenset({"start", "begin", "from"}),
    frozenset({"end", "finish", "until"}),
    frozenset({"state", "province", "region"}),
    frozenset({"website", "url", "site", "homepage"}),
)

# Core nouns dominate similarity; filler words barely count.
TOKEN_WEIGHTS: dict[str, float] = {
    "zip": 3.0,
    "phone": 3.0,
    "email": 3.0,
    "employ": 3.0,
    "degree": 3.0,
    "school": 3.0,
    "salary": 3.0,
    "linkedin": 3.0,
    "github": 3.0,
    "visa": 3.0,
    "sponsor": 3.0,
    "gender": 3.0,
    "veteran": 3.0,
    "disability": 3.0,
    "job": 2.5,
    "title": 2.0,
    "first": 2.0,
    "last": 2.0,
    "start": 2.0,
    "end": 2.0,
    "city": 2.0,
    "country": 2.0,
    "state": 2.0,
    "major": 2.0,
    "skill": 2.0,
    "month": 1.5,
    "year": 1.5,
    "day": 1.5,
    "date": 1.0,
    "name": 0.5,
    "number": 0.5,
    "code": 0.5,
    "address": 1.0,
    "the": 0.2,
    "please": 0.2,
    "enter": 0.2,
    "your": 0.2,
    "you": 0.2,
    "of": 0.2,
    "and": 0.2,
    "for": 0.2,
    "what": 0.3,
    "is": 0.2,
    "are": 0.2,
    "select": 0.3,
    "choose": 0.3,
    "field": 0.3,
    "current": 0.5,
    "required": 0.2,
    "optional": 0.2,
}

# Filler dropped while building tokenized keys.
STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "and", "for", "of", "are", "you", "have", "over", "enter", "your",
        "please", "select", "choose", "this", "that", "with", "will", "what",
        "how", "when", "where", "why", "can", "could", "would", "should", "is",
        "do", "does", "our", "us", "field", "input", "required", "optional",
        "provide", "here", "a", "an", "in", "on", "to",
    }
)


def _synonym_index() -> dict[str, str]:
    index: dict[str, str] = {}
    for group in SYNONYM_GROUPS:
        representative = sorted(group)[0]
        for token in group:
            index[token] = representative
    return index


SYNONYM_INDEX: dict[str, str] = _synonym_index()


def is_global_fact(key: str) -> bool:
    """Person-level facts stay unscoped even when they sit inside a section."""
    if not key:
        return False
    return GLOBAL_FACT_PATTERN.search(key.lower()) is not None
